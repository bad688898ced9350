"""
Analysis Session

Ties the analyzers together for a host that edits documents:

  analyze(text, version)      one synchronous pass -> AnalysisResult
  schedule(uri, text, version) debounced pass, result delivered to on_result
  set_board(board_id)         switch board, re-analyse every open document
  close(uri)                  forget a document
  describe_symbol(text, l, c) explain the word at a cursor position

Every pass works on its own immutable SourceText.  Results carry the version
they were computed from; a result older than the newest one already
published for the same URI is dropped (``analyze`` returns None), so a slow
pass can never overwrite a fresher one.

Symbolic names are resolved with the active board's toolchain macros
predefined, so ``#ifdef ESP32`` branches follow the selected board.

When the memory estimate fails outright, the last good estimate for the
document is reported instead of nothing.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .comment_stripper import strip
from .config import config
from .diagnostic_engine import DiagnosticEngine
from .hardware_db import BoardDescriptor, HardwareDatabase
from .memory_analyzer import MemoryAnalyzer, MemoryEstimate
from .models import Diagnostic, DiagnosticSeverity, SourceText
from .pin_tracker import PinRecord, PinTracker
from .preprocessor import SketchPreprocessor
from .symbol_info import SymbolDescriber, SymbolInfo

logger = logging.getLogger(__name__)

DEFAULT_URI = "untitled:sketch.ino"


@dataclass
class AnalysisResult:
    uri: str
    version: int
    diagnostics: List[Diagnostic] = field(default_factory=list)
    pin_map: List[PinRecord] = field(default_factory=list)
    memory: Optional[MemoryEstimate] = None
    board_id: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "uri": self.uri,
            "version": self.version,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "pinMap": [p.to_dict() for p in self.pin_map],
            "memory": self.memory.to_dict() if self.memory is not None else None,
        }

    def count(self, severity: DiagnosticSeverity) -> int:
        return sum(1 for d in self.diagnostics if d.severity == severity)

    def codes(self) -> List[str]:
        return [d.code for d in self.diagnostics]


class AnalysisSession:
    """Versioned, debounced analysis of open sketch documents."""

    def __init__(self, hardware_db: Optional[HardwareDatabase] = None,
                 board_id: Optional[str] = None,
                 on_result: Optional[Callable[[AnalysisResult], None]] = None,
                 debounce_ms: Optional[int] = None,
                 parallel: Optional[bool] = None):
        if hardware_db is None:
            hardware_db = HardwareDatabase()
            hardware_db.initialize()
            if board_id is None:
                board_id = config.default_board
        self.hardware_db = hardware_db
        if board_id is not None:
            self.hardware_db.load_board(board_id)

        self.on_result = on_result
        self.debounce_ms = config.debounce_ms if debounce_ms is None else debounce_ms

        # One symbol-table cache for all three analyzers
        self.preprocessor = SketchPreprocessor()
        self.engine = DiagnosticEngine(hardware_db, parallel=parallel, preprocessor=self.preprocessor)
        self.pin_tracker = PinTracker(hardware_db, self.preprocessor)
        self.memory_analyzer = MemoryAnalyzer(hardware_db, self.preprocessor)
        self.describer = SymbolDescriber(hardware_db, self.preprocessor)

        self._lock = threading.Lock()           # documents / versions / timers
        self._pass_lock = threading.Lock()      # one pass at a time
        self._documents: Dict[str, Tuple[str, int]] = {}
        self._published: Dict[str, int] = {}
        self._last_memory: Dict[str, MemoryEstimate] = {}
        self._pending: Dict[str, Tuple[str, int]] = {}
        self._timers: Dict[str, threading.Timer] = {}

    # ────────────────────────────────────────────────────────────────
    #  Board
    # ────────────────────────────────────────────────────────────────

    @property
    def board(self) -> Optional[BoardDescriptor]:
        return self.hardware_db.get_current_board()

    @property
    def board_id(self) -> Optional[str]:
        board = self.board
        return board.board_id if board is not None else None

    def set_board(self, board_id: Optional[str]) -> List[AnalysisResult]:
        """Switch the active board and re-analyse every open document."""
        board = self.hardware_db.load_board(board_id)
        logger.info("Active board: %s", board.name if board else "none")
        with self._lock:
            documents = list(self._documents.items())
        results = []
        for uri, (text, version) in documents:
            result = self.analyze(text, version, uri=uri)
            if result is not None:
                results.append(result)
        return results

    def _ensure_board(self, board_id: str) -> None:
        resolved = self.hardware_db.resolve_board_id(board_id)
        if resolved is None or resolved != self.board_id:
            self.hardware_db.load_board(board_id)

    # ────────────────────────────────────────────────────────────────
    #  Analysis
    # ────────────────────────────────────────────────────────────────

    def analyze(self, text: str, version: int, board_id: Optional[str] = None,
                uri: str = DEFAULT_URI) -> Optional[AnalysisResult]:
        """Run one full pass; None when *version* is already superseded."""
        if board_id is not None:
            self._ensure_board(board_id)

        with self._lock:
            if self._is_stale(uri, version):
                logger.debug("Skipping stale version %d of %s", version, uri)
                return None
            self._documents[uri] = (text, version)

        result = self._run_pass(SourceText(text=text, uri=uri, version=version))

        with self._lock:
            if self._is_stale(uri, version):
                logger.debug("Dropping result for superseded version %d of %s", version, uri)
                return None
            self._published[uri] = version
        return result

    def describe_symbol(self, text: str, line: int, character: int,
                        board_id: Optional[str] = None) -> Optional[SymbolInfo]:
        """Describe the word at (line, character) for the active board."""
        if board_id is not None:
            self._ensure_board(board_id)
        with self._pass_lock:
            board = self.board
            self.preprocessor.set_target(board.predefined_macros if board is not None else {})
            return self.describer.describe_symbol(text, line, character)

    def _is_stale(self, uri: str, version: int) -> bool:
        newest = self._published.get(uri)
        return newest is not None and version < newest

    def _run_pass(self, source: SourceText) -> AnalysisResult:
        with self._pass_lock:
            board = self.board
            self.preprocessor.set_target(board.predefined_macros if board is not None else {})
            stripped = strip(source.text)
            diagnostics = self.engine.validate(source, stripped)

            try:
                pin_map = self.pin_tracker.build_pin_map(
                    self.pin_tracker.analyze_pin_usage(source, stripped))
            except Exception:
                logger.exception("Pin tracking failed for %s", source.uri)
                pin_map = []

            try:
                memory = self.memory_analyzer.analyze_memory(source, stripped=stripped)
                self._last_memory[source.uri] = memory
            except Exception:
                logger.exception("Memory estimate failed for %s", source.uri)
                memory = self._last_memory.get(source.uri)

        return AnalysisResult(
            uri=source.uri,
            version=source.version,
            diagnostics=diagnostics,
            pin_map=pin_map,
            memory=memory,
            board_id=self.board_id,
        )

    # ────────────────────────────────────────────────────────────────
    #  Debounced analysis
    # ────────────────────────────────────────────────────────────────

    def schedule(self, uri: str, text: str, version: int) -> None:
        """Analyse after ``debounce_ms`` of quiet; only the latest edit runs."""
        with self._lock:
            timer = self._timers.pop(uri, None)
            if timer is not None:
                timer.cancel()
            self._pending[uri] = (text, version)
            timer = threading.Timer(self.debounce_ms / 1000.0, self._fire, args=(uri,))
            timer.daemon = True
            self._timers[uri] = timer
            timer.start()

    def _fire(self, uri: str) -> None:
        with self._lock:
            self._timers.pop(uri, None)
            pending = self._pending.pop(uri, None)
        if pending is None:
            return
        text, version = pending
        result = self.analyze(text, version, uri=uri)
        if result is None or self.on_result is None:
            return
        try:
            self.on_result(result)
        except Exception:
            logger.exception("Result callback failed for %s", uri)

    def close(self, uri: str) -> None:
        with self._lock:
            timer = self._timers.pop(uri, None)
            if timer is not None:
                timer.cancel()
            self._pending.pop(uri, None)
            self._documents.pop(uri, None)
            self._published.pop(uri, None)
            self._last_memory.pop(uri, None)

    def shutdown(self) -> None:
        """Cancel every pending debounced pass."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._pending.clear()
