"""
Diagnostic Rule Engine

Runs every registered validator over one comment-stripped sketch and
concatenates their diagnostics.

A validator is a plain function ``(ctx: RuleContext) -> List[Diagnostic]``
registered with the ``@rule`` decorator.  Validators never see each other's
output, so they can run sequentially or on a thread pool with identical
results.  A validator that raises is logged and contributes nothing; the
other validators still run.

Board-specific validators read ``ctx.board`` and return early when it is
None.  ESP32 validators use ``ctx.is_esp32``, which falls back to looking
for ESP32 markers in the text when no board is loaded.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import cached_property
from typing import Callable, Dict, List, NamedTuple, Optional, Union

from .comment_stripper import strip
from .config import config
from .hardware_db import BoardDescriptor, HardwareDatabase, ProtocolDescriptor
from .models import Diagnostic, DiagnosticSeverity, SourceText
from .pin_tracker import PinResolver
from .preprocessor import SketchPreprocessor
from .sketch_scanner import mask_literals

logger = logging.getLogger(__name__)

_ESP32_MARKERS_RE = re.compile(
    r"ESP32|esp32|#\s*include\s*<(?:WiFi|BLEDevice)\.h>|\besp_deep_sleep"
)


# ═══════════════════════════════════════════════════════════════════════
#  Registry
# ═══════════════════════════════════════════════════════════════════════

class RegisteredRule(NamedTuple):
    name: str
    check: Callable[["RuleContext"], List[Diagnostic]]


_REGISTRY: List[RegisteredRule] = []


def rule(name: str):
    """Register a validator under *name* (registration order is run order)."""
    def decorator(func):
        _REGISTRY.append(RegisteredRule(name, func))
        return func
    return decorator


def registered_rules() -> List[RegisteredRule]:
    _load_rule_modules()
    return list(_REGISTRY)


def _load_rule_modules():
    # Importing the modules runs their @rule decorators
    from . import embedded_rules, esp32_rules  # noqa: F401


# ═══════════════════════════════════════════════════════════════════════
#  Per-run context
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RuleContext:
    """Everything a validator may read.  Shared, never mutated."""
    text: str                                   # comment-stripped
    source: SourceText
    board: Optional[BoardDescriptor] = None
    hardware_db: Optional[HardwareDatabase] = None
    symbols: Dict[str, str] = field(default_factory=dict)

    @cached_property
    def code(self) -> str:
        """Stripped text with string/char literal contents blanked."""
        return mask_literals(self.text)

    @cached_property
    def resolver(self) -> PinResolver:
        return PinResolver(self.board, self.symbols)

    @property
    def is_esp32(self) -> bool:
        if self.board is not None:
            return self.board.is_esp32
        return _ESP32_MARKERS_RE.search(self.text) is not None

    @property
    def is_avr(self) -> bool:
        return self.board is not None and self.board.is_avr

    def protocol(self, protocol_id: str) -> Optional[ProtocolDescriptor]:
        if self.hardware_db is None:
            return None
        return self.hardware_db.get_protocol(protocol_id)

    def protocol_constraint(self, protocol_id: str, key: str, default):
        proto = self.protocol(protocol_id)
        if proto is None:
            return default
        return proto.constraints.get(key, default)

    def diagnostic(self, severity: DiagnosticSeverity, offset: int, length: int,
                   message: str, code: str) -> Diagnostic:
        return Diagnostic(
            severity=severity,
            range=self.source.range_at(offset, length),
            message=message,
            code=code,
        )

    def error(self, offset: int, length: int, message: str, code: str) -> Diagnostic:
        return self.diagnostic(DiagnosticSeverity.ERROR, offset, length, message, code)

    def warning(self, offset: int, length: int, message: str, code: str) -> Diagnostic:
        return self.diagnostic(DiagnosticSeverity.WARNING, offset, length, message, code)

    def info(self, offset: int, length: int, message: str, code: str) -> Diagnostic:
        return self.diagnostic(DiagnosticSeverity.INFO, offset, length, message, code)


# ═══════════════════════════════════════════════════════════════════════
#  Engine
# ═══════════════════════════════════════════════════════════════════════

class DiagnosticEngine:
    """Run all registered validators against a sketch."""

    def __init__(self, hardware_db: Optional[HardwareDatabase] = None,
                 parallel: Optional[bool] = None,
                 max_workers: Optional[int] = None,
                 preprocessor: Optional[SketchPreprocessor] = None):
        _load_rule_modules()
        self.hardware_db = hardware_db
        self.parallel = config.parallel_rules if parallel is None else parallel
        self.max_workers = max_workers
        self.preprocessor = preprocessor or SketchPreprocessor()

    def _board(self) -> Optional[BoardDescriptor]:
        if self.hardware_db is None:
            return None
        return self.hardware_db.get_current_board()

    def build_context(self, source: SourceText, stripped: Optional[str] = None) -> RuleContext:
        text = stripped if stripped is not None else strip(source.text)
        # Symbols are resolved here, before any fan-out
        return RuleContext(
            text=text,
            source=source,
            board=self._board(),
            hardware_db=self.hardware_db,
            symbols=self.preprocessor.symbol_table(text),
        )

    def validate(self, source: Union[SourceText, str],
                 stripped: Optional[str] = None) -> List[Diagnostic]:
        if isinstance(source, str):
            source = SourceText(source)
        ctx = self.build_context(source, stripped)
        # Force the lazily built helpers once so worker threads only read them
        _ = (ctx.code, ctx.resolver)

        rules = list(_REGISTRY)
        if self.parallel and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(lambda r: self._run(r, ctx), rules))
        else:
            results = [self._run(r, ctx) for r in rules]

        diagnostics: List[Diagnostic] = []
        for found in results:
            diagnostics.extend(found)
        logger.debug("%d diagnostics for %s", len(diagnostics), source.uri)
        return diagnostics

    @staticmethod
    def _run(registered: RegisteredRule, ctx: RuleContext) -> List[Diagnostic]:
        try:
            return list(registered.check(ctx))
        except Exception:
            logger.exception("Validator '%s' failed", registered.name)
            return []
