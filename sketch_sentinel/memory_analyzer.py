"""
Memory Estimator

Static RAM / Flash estimate for a sketch, computed from source text alone:

  1. global variables (with a liveness check standing in for dead-stripping)
  2. global struct instances
  3. string literals placed in Flash
  4. dynamic allocation (heap overhead + warnings)
  5. stack depth (rough: call depth x frame size)
  6. framework overhead of the libraries the sketch starts

Framework constants are empirical (calibrated against real Arduino Uno
builds) and can be overridden per board in the hardware descriptors.  Every
number here is an estimate, not a linker map: a global referenced only from a
function that is never called still counts, and one reached only through a
macro or pointer alias may be reported as unused.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from .comment_stripper import STRING, iter_spans, strip
from .config import config
from .hardware_db import BoardDescriptor, HardwareDatabase, MemoryCalibration
from .models import SourceText
from .preprocessor import SketchPreprocessor, parse_int
from .sketch_scanner import count_functions, is_global_scope, mask_literals

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════
#  Type sizes (AVR; boards override through ``type_sizes``)
# ═══════════════════════════════════════════════════════════════════════

AVR_TYPE_SIZES: Dict[str, int] = {
    "bool": 1,
    "boolean": 1,
    "byte": 1,
    "char": 1,
    "unsigned char": 1,
    "int": 2,
    "unsigned int": 2,
    "short": 2,
    "unsigned short": 2,
    "long": 4,
    "unsigned long": 4,
    "float": 4,
    "double": 4,        # same as float on AVR
    "void*": 2,
    "int8_t": 1,
    "uint8_t": 1,
    "int16_t": 2,
    "uint16_t": 2,
    "int32_t": 4,
    "uint32_t": 4,
    "size_t": 2,
}
UNKNOWN_TYPE_SIZE = 4
STRING_OBJECT_SIZE = 6      # Arduino String header; contents live on the heap

LARGE_LITERAL_BYTES = 20
LITERAL_PREVIEW_CHARS = 30
FLASH_STRINGS_HINT_BYTES = 1000

_GLOBAL_VAR_RE = re.compile(
    r"^(?:static\s+|const\s+|volatile\s+)*\s*"
    r"(bool|boolean|byte|char|unsigned\s+char|int|unsigned\s+int|short|unsigned\s+short|"
    r"long|unsigned\s+long|float|double|int8_t|uint8_t|int16_t|uint16_t|int32_t|uint32_t|"
    r"size_t|String)\s+(\w+)(?:\s*\[\s*(\w*)\s*\])?\s*(=|;)",
    re.MULTILINE,
)
_STRUCT_DEF_RE = re.compile(r"\bstruct\s+(\w+)\s*\{([^}]+)\}")
_STRUCT_MEMBER_RE = re.compile(r"(?:const\s+)?(\w+(?:\s+\w+)?)\s+(\w+)(?:\s*\[\s*(\w+)\s*\])?\s*;")
_ALLOC_CALL_RE = re.compile(r"\b(malloc|calloc|realloc)\s*\(")
_HEAP_ALLOC_RE = re.compile(r"\b(malloc|calloc|realloc|new)\b")
_STRING_CONCAT_RE = re.compile(r"\bString\s+\w+\s*=[^;\n]*\+")
_INCLUDE_LINE_RE = re.compile(r"^[ \t]*#[ \t]*include\b.*$", re.MULTILINE)

_SERIAL_BEGIN_RE = re.compile(r"\bSerial\.begin\s*\(")
_WIRE_BEGIN_RE = re.compile(r"\bWire\.begin\s*\(")
_SPI_BEGIN_RE = re.compile(r"\bSPI\.begin\s*\(")
_WIRELESS_RE = re.compile(r"\bWiFi\.begin\s*\(|\bBLEDevice::init\s*\(")


def _liveness_re(name: str) -> "re.Pattern":
    n = re.escape(name)
    return re.compile(
        rf"\b{n}\s*(?:\[|\)|,|\.|->|\?|\+\+|--|[-+*/%&|^<>!=]=?)"
        rf"|(?:[-+*/%&|^<>!=,(?:\[~]|\breturn|\+\+|--)\s*{n}\b"
    )


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percentage(used: int, limit: int) -> int:
    if limit <= 0:
        return 0
    return round_half_up(used * 100.0 / limit)


# ═══════════════════════════════════════════════════════════════════════
#  Result types
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class RamItem:
    name: str
    type: str
    size: int
    array_size: int = 1

    def to_dict(self) -> Dict:
        return {"name": self.name, "type": self.type, "size": self.size, "arraySize": self.array_size}


@dataclass
class FlashItem:
    content: str
    size: int

    def to_dict(self) -> Dict:
        return {"content": self.content, "size": self.size}


@dataclass
class MemoryWarning:
    severity: str       # "error" | "warning" | "info"
    message: str
    category: str

    def to_dict(self) -> Dict:
        return {"severity": self.severity, "message": self.message, "category": self.category}


@dataclass
class RamUsage:
    global_variables: int = 0
    stack_estimate: int = 0
    framework_overhead: int = 0
    dynamic_overhead: int = 0
    dynamic_warnings: int = 0
    total: int = 0
    percentage: int = 0
    items: List[RamItem] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "globalVariables": self.global_variables,
            "stackEstimate": self.stack_estimate,
            "frameworkOverhead": self.framework_overhead,
            "dynamicOverhead": self.dynamic_overhead,
            "dynamicWarnings": self.dynamic_warnings,
            "total": self.total,
            "percentage": self.percentage,
            "items": [i.to_dict() for i in self.items],
        }


@dataclass
class FlashUsage:
    code: int = 0
    strings: int = 0
    total: int = 0
    percentage: int = 0
    items: List[FlashItem] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "code": self.code,
            "strings": self.strings,
            "total": self.total,
            "percentage": self.percentage,
            "items": [i.to_dict() for i in self.items],
        }


@dataclass
class MemoryLimits:
    ram: int
    flash: int

    def to_dict(self) -> Dict:
        return {"ram": self.ram, "flash": self.flash}


@dataclass
class MemoryEstimate:
    limits: MemoryLimits
    ram: RamUsage = field(default_factory=RamUsage)
    flash: FlashUsage = field(default_factory=FlashUsage)
    warnings: List[MemoryWarning] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "ram": self.ram.to_dict(),
            "flash": self.flash.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
            "limits": self.limits.to_dict(),
        }


# ═══════════════════════════════════════════════════════════════════════
#  Analyzer
# ═══════════════════════════════════════════════════════════════════════

class MemoryAnalyzer:
    """Estimate RAM / Flash consumption of a sketch against the active board."""

    def __init__(self, hardware_db: Optional[HardwareDatabase] = None,
                 preprocessor: Optional[SketchPreprocessor] = None):
        self.hardware_db = hardware_db
        self.preprocessor = preprocessor or SketchPreprocessor()

    def _board(self) -> Optional[BoardDescriptor]:
        if self.hardware_db is None:
            return None
        return self.hardware_db.get_current_board()

    def board_limits(self) -> MemoryLimits:
        board = self._board()
        if board is not None:
            return MemoryLimits(ram=board.ram_size, flash=board.flash_size)
        return MemoryLimits(ram=config.default_ram_bytes, flash=config.default_flash_bytes)

    def type_sizes(self) -> Dict[str, int]:
        sizes = dict(AVR_TYPE_SIZES)
        board = self._board()
        if board is not None:
            sizes.update(board.type_sizes)
        return sizes

    def analyze_memory(self, source: Union[SourceText, str],
                       limits: Optional[MemoryLimits] = None,
                       stripped: Optional[str] = None) -> MemoryEstimate:
        if isinstance(source, str):
            source = SourceText(source)
        text = stripped if stripped is not None else strip(source.text)
        board = self._board()
        calibration = board.memory if board is not None else MemoryCalibration()
        estimate = MemoryEstimate(limits=limits or self.board_limits())
        code = mask_literals(text)

        steps = (
            ("global variables", lambda: self._analyze_globals(text, estimate)),
            ("structs", lambda: self._analyze_structs(text, estimate)),
            ("string literals", lambda: self._analyze_string_literals(text, estimate)),
            ("dynamic allocation", lambda: self._analyze_dynamic_allocation(code, estimate, calibration)),
            ("stack", lambda: self._analyze_stack(text, estimate, calibration)),
            ("framework overhead", lambda: self._analyze_framework(code, estimate, calibration)),
        )
        for name, step in steps:
            try:
                step()
            except Exception:
                logger.exception("Memory estimation step '%s' failed for %s", name, source.uri)

        ram, flash = estimate.ram, estimate.flash
        ram.total = ram.global_variables + ram.stack_estimate + ram.framework_overhead + ram.dynamic_overhead
        ram.percentage = percentage(ram.total, estimate.limits.ram)
        flash.code = calibration.flash_base
        flash.total = flash.strings + flash.code
        flash.percentage = percentage(flash.total, estimate.limits.flash)

        estimate.warnings.extend(self._threshold_warnings(estimate))
        return estimate

    # ────────────────────────────────────────────────────────────────
    #  Steps (each computes locally, then commits)
    # ────────────────────────────────────────────────────────────────

    def _analyze_globals(self, text: str, estimate: MemoryEstimate) -> None:
        sizes = self.type_sizes()
        symbols = self.preprocessor.symbol_table(text)
        code = mask_literals(text)
        total = 0
        dynamic = 0
        items: List[RamItem] = []

        for m in _GLOBAL_VAR_RE.finditer(text):
            if not is_global_scope(code, m.start()):
                continue
            type_name = " ".join(m.group(1).split())
            name = m.group(2)
            array_size = self._array_size(text, m, symbols)

            if type_name == "String":
                size = STRING_OBJECT_SIZE * array_size
                dynamic += 1
            elif type_name == "char" and m.group(3) is not None:
                size = array_size
            else:
                size = sizes.get(type_name, UNKNOWN_TYPE_SIZE) * array_size

            used = _liveness_re(name).search(code, m.end()) is not None
            if not used:
                size = 0
            total += size
            items.append(RamItem(name=name, type=type_name, size=size, array_size=array_size))

        estimate.ram.global_variables += total
        estimate.ram.dynamic_warnings += dynamic
        estimate.ram.items.extend(items)

    @staticmethod
    def _array_size(text: str, m: "re.Match", symbols: Dict[str, str]) -> int:
        dim = m.group(3)
        if dim is None:
            return 1
        if dim:
            value = parse_int(dim)
            if value is None and dim in symbols:
                value = parse_int(symbols[dim])
            return value if value is not None and value > 0 else 1
        # ``name[] = ...``: size from the initializer
        if m.group(4) != "=":
            return 1
        rest = text[m.end():].lstrip()
        if rest.startswith('"'):
            for span in iter_spans(rest):
                if span.kind == STRING:
                    return max(span.end - span.start - 2, 0) + 1
                break
        if rest.startswith("{"):
            close = rest.find("}")
            body = rest[1:close] if close != -1 else rest[1:]
            elements = [e for e in body.split(",") if e.strip()]
            return max(len(elements), 1)
        return 1

    def _analyze_structs(self, text: str, estimate: MemoryEstimate) -> None:
        sizes = self.type_sizes()
        struct_sizes: Dict[str, int] = {}
        for m in _STRUCT_DEF_RE.finditer(text):
            size = 0
            for member in _STRUCT_MEMBER_RE.finditer(m.group(2)):
                member_type = " ".join(member.group(1).split())
                count = parse_int(member.group(3)) if member.group(3) else 1
                size += sizes.get(member_type, UNKNOWN_TYPE_SIZE) * (count or 1)
            struct_sizes[m.group(1)] = size

        code = mask_literals(text)
        total = 0
        items: List[RamItem] = []
        for struct_name, size in struct_sizes.items():
            pattern = re.compile(
                rf"(?<![\w.]){re.escape(struct_name)}\s+(\w+)(?:\s*\[\s*(\d+)\s*\])?\s*[;=]"
            )
            for inst in pattern.finditer(text):
                if not is_global_scope(code, inst.start()):
                    continue
                count = int(inst.group(2)) if inst.group(2) else 1
                total += size * count
                items.append(RamItem(name=inst.group(1), type=struct_name,
                                     size=size * count, array_size=count))

        estimate.ram.global_variables += total
        estimate.ram.items.extend(items)

    def _analyze_string_literals(self, text: str, estimate: MemoryEstimate) -> None:
        include_lines = [(m.start(), m.end()) for m in _INCLUDE_LINE_RE.finditer(text)]
        strings = 0
        items: List[FlashItem] = []
        for span in iter_spans(text):
            if span.kind != STRING:
                continue
            if any(start <= span.start < end for start, end in include_lines):
                continue
            closed = span.end - span.start >= 2 and text[span.end - 1] == '"'
            content = text[span.start + 1:span.end - 1 if closed else span.end]
            size = len(content) + 1
            strings += size
            if size > LARGE_LITERAL_BYTES:
                preview = content[:LITERAL_PREVIEW_CHARS]
                if len(content) > LITERAL_PREVIEW_CHARS:
                    preview += "..."
                items.append(FlashItem(content=preview, size=size))

        estimate.flash.strings += strings
        estimate.flash.items.extend(items)

    def _analyze_dynamic_allocation(self, code: str, estimate: MemoryEstimate,
                                    calibration: MemoryCalibration) -> None:
        alloc_calls = len(_ALLOC_CALL_RE.findall(code))
        concat = len(_STRING_CONCAT_RE.findall(code))
        heap = len(_HEAP_ALLOC_RE.findall(code)) * calibration.heap_per_allocation

        warnings = []
        if alloc_calls:
            warnings.append(MemoryWarning(
                "warning",
                f"Found {alloc_calls} dynamic allocation(s). Avoid malloc/calloc on "
                f"embedded systems - use static allocation.",
                "dynamic-allocation",
            ))
        if concat:
            warnings.append(MemoryWarning(
                "warning",
                f"Found {concat} String concatenation(s). String objects cause heap "
                f"fragmentation - use char arrays instead.",
                "string-concat",
            ))

        estimate.ram.dynamic_warnings += alloc_calls + concat
        estimate.ram.dynamic_overhead += heap
        estimate.warnings.extend(warnings)

    def _analyze_stack(self, text: str, estimate: MemoryEstimate,
                       calibration: MemoryCalibration) -> None:
        # setup()/loop() plus one or two helper levels is typical
        call_depth = 3 if count_functions(text) > 5 else 2
        estimate.ram.stack_estimate = call_depth * calibration.stack_frame_bytes

    def _analyze_framework(self, code: str, estimate: MemoryEstimate,
                           calibration: MemoryCalibration) -> None:
        overhead = calibration.base_overhead
        has_serial = _SERIAL_BEGIN_RE.search(code) is not None
        if has_serial:
            overhead += calibration.serial
        if _WIRE_BEGIN_RE.search(code):
            overhead += calibration.wire_with_serial if has_serial else calibration.wire
        if _SPI_BEGIN_RE.search(code):
            overhead += calibration.spi
        if _WIRELESS_RE.search(code):
            overhead += calibration.wireless
        estimate.ram.framework_overhead = overhead

    # ────────────────────────────────────────────────────────────────
    #  Threshold warnings
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def _threshold_warnings(estimate: MemoryEstimate) -> List[MemoryWarning]:
        warnings = []
        ram_pct = estimate.ram.percentage
        if ram_pct >= 90:
            warnings.append(MemoryWarning(
                "error",
                f"RAM usage at {ram_pct}%! Imminent crash risk. Remove global variables or upgrade board.",
                "ram-critical",
            ))
        elif ram_pct >= 75:
            warnings.append(MemoryWarning(
                "warning", f"RAM usage at {ram_pct}%. Approaching limit - monitor closely.", "ram-high",
            ))
        elif ram_pct >= 60:
            warnings.append(MemoryWarning(
                "info", f"RAM usage at {ram_pct}%. Consider optimization if adding more features.",
                "ram-moderate",
            ))

        flash_pct = estimate.flash.percentage
        if flash_pct >= 95:
            warnings.append(MemoryWarning(
                "error",
                f"Flash usage at {flash_pct}%! Code may not fit. Remove features or upgrade board.",
                "flash-critical",
            ))

        if estimate.flash.strings > FLASH_STRINGS_HINT_BYTES:
            warnings.append(MemoryWarning(
                "info",
                f"{estimate.flash.strings} bytes of string literals. Consider using F() macro "
                f"to keep strings in Flash.",
                "flash-strings",
            ))
        return warnings

