"""
Core data model shared by the scanners.

SourceText is an immutable snapshot of one document version.  Positions are
derived from it by newline counting; the line index belongs to the snapshot
itself, so nothing computed for one version can leak into another.
"""

import bisect
import logging
import os
from dataclasses import dataclass, field
from enum import IntEnum
from functools import cached_property
from typing import Dict, List, Optional

from .config import config

logger = logging.getLogger(__name__)

MAX_SKETCH_BYTES = 4 * 1024 * 1024  # safety cap for very large files


@dataclass(frozen=True)
class Position:
    line: int           # 0-based
    character: int      # 0-based, code points

    def to_dict(self) -> Dict[str, int]:
        return {"line": self.line, "character": self.character}


@dataclass(frozen=True)
class Range:
    start: Position
    end: Position       # exclusive

    def to_dict(self) -> Dict:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}


@dataclass(frozen=True)
class SourceText:
    """One version of a sketch document."""
    text: str
    uri: str = "untitled:sketch.ino"
    version: int = 0

    @cached_property
    def _line_starts(self) -> List[int]:
        starts = [0]
        find = self.text.find
        i = find("\n")
        while i != -1:
            starts.append(i + 1)
            i = find("\n", i + 1)
        return starts

    def position_at(self, offset: int) -> Position:
        offset = max(0, min(offset, len(self.text)))
        line = bisect.bisect_right(self._line_starts, offset) - 1
        return Position(line, offset - self._line_starts[line])

    def offset_at(self, position: Position) -> int:
        if position.line < 0:
            return 0
        if position.line >= len(self._line_starts):
            return len(self.text)
        start = self._line_starts[position.line]
        if position.line + 1 < len(self._line_starts):
            line_end = self._line_starts[position.line + 1] - 1
        else:
            line_end = len(self.text)
        return min(start + max(position.character, 0), line_end)

    def range_at(self, offset: int, length: int) -> Range:
        return Range(self.position_at(offset), self.position_at(offset + max(length, 0)))

    def line_of(self, offset: int) -> int:
        return self.position_at(offset).line

    @classmethod
    def from_file(cls, path: str, version: int = 0) -> Optional["SourceText"]:
        """Read a sketch from disk; None for missing, binary or unreadable files."""
        if not os.path.isfile(path):
            logger.error("Sketch not found: %s", path)
            return None
        try:
            with open(path, "rb") as fb:
                data = fb.read(MAX_SKETCH_BYTES + 1)
        except OSError as e:
            logger.error("Error reading %s: %s", path, e)
            return None
        if b"\x00" in data[:8192]:
            logger.warning("Skipping binary file: %s", path)
            return None
        if len(data) > MAX_SKETCH_BYTES:
            logger.warning("File %s exceeds %d bytes, truncated", path, MAX_SKETCH_BYTES)
            data = data[:MAX_SKETCH_BYTES]
        text = data.decode("utf-8", errors="replace")
        uri = "file://" + os.path.abspath(path).replace("\\", "/")
        return cls(text=text, uri=uri, version=version)


class DiagnosticSeverity(IntEnum):
    ERROR = 1
    WARNING = 2
    INFO = 3


@dataclass(frozen=True)
class Diagnostic:
    severity: DiagnosticSeverity
    range: Range
    message: str
    code: str
    source: str = field(default_factory=lambda: config.diagnostic_source)

    def to_dict(self) -> Dict:
        return {
            "severity": int(self.severity),
            "range": self.range.to_dict(),
            "message": self.message,
            "code": self.code,
            "source": self.source,
        }

    @property
    def line(self) -> int:
        return self.range.start.line
