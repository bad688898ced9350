"""
Pin Usage Tracker

Finds every construct in a sketch that touches a pin, resolves the pin to its
numeric id and classifies each pin by the combination of ways it is used.

  analyze_pin_usage(source) -> [PinUsage]   one scan per construct kind
  build_pin_map(usages)     -> [PinRecord]  grouped, classified, labelled

Bus initialisation (``Wire.begin``, ``SPI.begin``, ``Serial.begin``) reserves
the bus's fixed pins even though the sketch never names them, so those calls
synthesize one usage per bus pin.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from .comment_stripper import strip
from .hardware_db import BoardDescriptor, HardwareDatabase
from .models import Position, SourceText
from .preprocessor import SketchPreprocessor, parse_int
from .sketch_scanner import iter_calls, mask_literals

logger = logging.getLogger(__name__)


class UsageKind(str, Enum):
    DIGITAL_OUTPUT = "digital-output"
    DIGITAL_INPUT = "digital-input"
    ANALOG_INPUT = "analog-input"
    PWM = "pwm"
    INTERRUPT = "interrupt"
    I2C_SDA = "i2c-sda"
    I2C_SCL = "i2c-scl"
    SPI_SS = "spi-ss"
    SPI_MOSI = "spi-mosi"
    SPI_MISO = "spi-miso"
    SPI_SCK = "spi-sck"
    SERIAL_RX = "serial-rx"
    SERIAL_TX = "serial-tx"


OUTPUT_KINDS = frozenset({UsageKind.DIGITAL_OUTPUT, UsageKind.PWM})
INPUT_KINDS = frozenset({UsageKind.DIGITAL_INPUT, UsageKind.ANALOG_INPUT})
PLAIN_DIGITAL_KINDS = frozenset({UsageKind.DIGITAL_OUTPUT, UsageKind.DIGITAL_INPUT})
PROTOCOL_KINDS = frozenset({
    UsageKind.I2C_SDA, UsageKind.I2C_SCL,
    UsageKind.SPI_SS, UsageKind.SPI_MOSI, UsageKind.SPI_MISO, UsageKind.SPI_SCK,
})
SERIAL_KINDS = frozenset({UsageKind.SERIAL_RX, UsageKind.SERIAL_TX})

PIN_MODES = {
    "OUTPUT": UsageKind.DIGITAL_OUTPUT,
    "INPUT": UsageKind.DIGITAL_INPUT,
    "INPUT_PULLUP": UsageKind.DIGITAL_INPUT,
    "INPUT_PULLDOWN": UsageKind.DIGITAL_INPUT,
}

# Arduino Uno bus pins, used when no board is active
DEFAULT_BUS_PINS: Dict[str, Dict[str, int]] = {
    "i2c": {"sda": 18, "scl": 19},
    "spi": {"ss": 10, "mosi": 11, "miso": 12, "sck": 13},
    "uart": {"rx": 0, "tx": 1},
}
DEFAULT_ANALOG_OFFSET = 14

_ANALOG_NAME_RE = re.compile(r"^A(\d+)$")
_DIGITAL_PIN_TO_INTERRUPT_RE = re.compile(r"^digitalPinToInterrupt\s*\((.*)\)$", re.DOTALL)

_BUS_KINDS = {
    "i2c": (("sda", UsageKind.I2C_SDA), ("scl", UsageKind.I2C_SCL)),
    "spi": (("ss", UsageKind.SPI_SS), ("mosi", UsageKind.SPI_MOSI),
            ("miso", UsageKind.SPI_MISO), ("sck", UsageKind.SPI_SCK)),
    "uart": (("rx", UsageKind.SERIAL_RX), ("tx", UsageKind.SERIAL_TX)),
}


# ═══════════════════════════════════════════════════════════════════════
#  Data
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PinUsage:
    pin: int
    kind: UsageKind
    function: str           # construct that touched the pin
    position: Position
    offset: int

    def to_dict(self) -> Dict:
        return {
            "pin": self.pin,
            "type": self.kind.value,
            "function": self.function,
            "line": self.position.line,
            "character": self.position.character,
            "offset": self.offset,
        }


@dataclass
class PinRecord:
    pin: int
    usages: List[PinUsage] = field(default_factory=list)
    status: str = "valid"           # "valid" | "warning" | "conflict"
    message: str = ""
    primary_type: str = ""
    pin_label: str = ""

    def to_dict(self) -> Dict:
        return {
            "pin": self.pin,
            "usages": [u.to_dict() for u in self.usages],
            "status": self.status,
            "message": self.message,
            "primaryType": self.primary_type,
            "pinLabel": self.pin_label,
        }


# ═══════════════════════════════════════════════════════════════════════
#  Pin name resolution
# ═══════════════════════════════════════════════════════════════════════

class PinResolver:
    """Turn a pin expression from the sketch into a numeric pin id.

    Tried in order: integer literal, board alias (``LED_BUILTIN``, ``A0``,
    ``SDA``...), ``A<n>`` as analog offset + n, then sketch symbols
    (``#define`` / ``const``), followed recursively.  Anything else is None.
    """

    _MAX_DEPTH = 8

    def __init__(self, board: Optional[BoardDescriptor] = None,
                 symbols: Optional[Dict[str, str]] = None):
        self.board = board
        self.symbols = symbols or {}

    @property
    def analog_offset(self) -> int:
        if self.board is not None:
            return self.board.analog_offset
        return DEFAULT_ANALOG_OFFSET

    def resolve(self, token: str, _depth: int = 0) -> Optional[int]:
        token = token.strip()
        while token.startswith("(") and token.endswith(")"):
            token = token[1:-1].strip()
        if not token or _depth > self._MAX_DEPTH:
            return None

        value = parse_int(token)
        if value is not None:
            return value

        if self.board is not None and token in self.board.pin_aliases:
            return self.board.pin_aliases[token]

        m = _ANALOG_NAME_RE.match(token)
        if m:
            return self.analog_offset + int(m.group(1))

        if token in self.symbols:
            return self.resolve(self.symbols[token], _depth + 1)
        return None


def bus_pins(board: Optional[BoardDescriptor], bus: str) -> Dict[str, int]:
    """Role -> pin map for *bus*, from the board or the Uno defaults."""
    if board is not None:
        pins = board.bus_pins(bus)
        if pins:
            return pins
    return dict(DEFAULT_BUS_PINS[bus])


# ═══════════════════════════════════════════════════════════════════════
#  Tracker
# ═══════════════════════════════════════════════════════════════════════

class PinTracker:
    """Extract pin usages from a sketch and classify conflicts per pin."""

    def __init__(self, hardware_db: Optional[HardwareDatabase] = None,
                 preprocessor: Optional[SketchPreprocessor] = None):
        self.hardware_db = hardware_db
        self.preprocessor = preprocessor or SketchPreprocessor()

    def _board(self) -> Optional[BoardDescriptor]:
        if self.hardware_db is None:
            return None
        return self.hardware_db.get_current_board()

    def resolver_for(self, stripped: str) -> PinResolver:
        return PinResolver(self._board(), self.preprocessor.symbol_table(stripped))

    # ────────────────────────────────────────────────────────────────
    #  Usage extraction
    # ────────────────────────────────────────────────────────────────

    def analyze_pin_usage(self, source: Union[SourceText, str],
                          stripped: Optional[str] = None) -> List[PinUsage]:
        if isinstance(source, str):
            source = SourceText(source)
        text = stripped if stripped is not None else strip(source.text)
        code = mask_literals(text)
        resolver = self.resolver_for(text)
        usages: List[PinUsage] = []

        def add(pin: Optional[int], kind: UsageKind, function: str, offset: int):
            if pin is None:
                return
            usages.append(PinUsage(pin, kind, function, source.position_at(offset), offset))

        for call in iter_calls(code, "pinMode"):
            if len(call.args) < 2:
                continue
            kind = PIN_MODES.get(call.args[1])
            if kind is not None:
                add(resolver.resolve(call.args[0]), kind, "pinMode", call.start)

        for name, kind in (("digitalWrite", UsageKind.DIGITAL_OUTPUT),
                           ("digitalRead", UsageKind.DIGITAL_INPUT),
                           ("analogWrite", UsageKind.PWM),
                           ("analogRead", UsageKind.ANALOG_INPUT)):
            for call in iter_calls(code, name):
                if call.args:
                    add(resolver.resolve(call.args[0]), kind, name, call.start)

        for call in iter_calls(code, "attachInterrupt"):
            if not call.args:
                continue
            target = call.args[0]
            m = _DIGITAL_PIN_TO_INTERRUPT_RE.match(target)
            if m:
                target = m.group(1)
            add(resolver.resolve(target), UsageKind.INTERRUPT, "attachInterrupt", call.start)

        board = self._board()
        for callee, bus, label in ((r"Wire\.begin", "i2c", "Wire"),
                                   (r"SPI\.begin", "spi", "SPI"),
                                   (r"Serial\.begin", "uart", "Serial")):
            call = next(iter_calls(code, callee), None)
            if call is None:
                continue
            pins = bus_pins(board, bus)
            if bus == "i2c" and len(call.args) >= 2:
                # Wire.begin(sda, scl) on boards with remappable I2C
                sda, scl = resolver.resolve(call.args[0]), resolver.resolve(call.args[1])
                if sda is not None and scl is not None:
                    pins = {"sda": sda, "scl": scl}
            for role, kind in _BUS_KINDS[bus]:
                if role in pins:
                    add(pins[role], kind, label, call.start)

        logger.debug("Found %d pin usages in %s", len(usages), source.uri)
        return usages

    # ────────────────────────────────────────────────────────────────
    #  Classification
    # ────────────────────────────────────────────────────────────────

    def build_pin_map(self, usages: List[PinUsage]) -> List[PinRecord]:
        grouped: Dict[int, List[PinUsage]] = {}
        for usage in usages:
            grouped.setdefault(usage.pin, []).append(usage)

        records = []
        for pin, pin_usages in grouped.items():
            status, message = classify(pin, frozenset(u.kind for u in pin_usages))
            records.append(PinRecord(
                pin=pin,
                usages=pin_usages,
                status=status,
                message=message,
                primary_type=pin_usages[0].kind.value,
                pin_label=self._pin_label(pin),
            ))
        return records

    def _pin_label(self, pin: int) -> str:
        if self.hardware_db is None:
            return f"Pin {pin}"
        return self.hardware_db.pin_label(pin)


def classify(pin: int, kinds: FrozenSet[UsageKind]) -> Tuple[str, str]:
    """Status and message for one pin; checks run in order, first match wins."""
    if kinds & OUTPUT_KINDS and kinds & INPUT_KINDS:
        return "conflict", f"Pin {pin} used as both input and output"
    if UsageKind.INTERRUPT in kinds and UsageKind.DIGITAL_OUTPUT in kinds:
        return "conflict", f"Pin {pin} used for interrupt and digitalWrite - may cause issues"
    if kinds & PROTOCOL_KINDS and kinds & PLAIN_DIGITAL_KINDS:
        return "conflict", f"Pin {pin} used for both protocol (I2C/SPI) and digital I/O"
    if kinds & SERIAL_KINDS and kinds & PLAIN_DIGITAL_KINDS:
        return "warning", f"Pin {pin} used for both Serial and digital I/O - disable Serial if using pin"
    return "valid", ""
