"""
Symbol descriptions.

Explains the word under a cursor position with what the hardware database
knows about it, as markdown:

  • register names and register bits (address, bit position, mask);
  • pins, written as numbers inside pin calls or as board aliases
    (``A0``, ``LED_BUILTIN``, ``SDA``) and sketch constants;
  • bus functions after ``Wire.`` / ``SPI.`` / ``Serial.``;
  • I2C addresses passed to ``beginTransmission`` / ``requestFrom``;
  • Arduino core functions and constants;
  • C types, with their size on the active board.

Words inside comments or string literals are never described.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .comment_stripper import strip
from .hardware_db import BoardDescriptor, HardwareDatabase
from .memory_analyzer import AVR_TYPE_SIZES
from .models import Position, Range, SourceText
from .pin_tracker import PinResolver
from .preprocessor import SketchPreprocessor, parse_int
from .sketch_scanner import mask_literals

logger = logging.getLogger(__name__)

CORE_LIBRARY = "arduino-core"

_WORD_CHARS = re.compile(r"\w")
_BUS_PREFIX_RE = re.compile(r"\b(Wire|SPI|Serial)\d*\s*\.\s*$")
_PIN_CALL_RE = re.compile(
    r"\b(?:pinMode|digitalWrite|digitalRead|analogRead|analogWrite|"
    r"digitalPinToInterrupt|tone|noTone)\s*\(\s*$"
)
_I2C_CALL_RE = re.compile(r"\b(?:beginTransmission|requestFrom)\s*\(\s*$")
_ANALOG_ALIAS_RE = re.compile(r"^A\d+$")

_BUS_PROTOCOLS = {"Wire": ("i2c", "I2C"), "SPI": ("spi", "SPI"), "Serial": ("serial", "Serial")}
_UNSIGNED_TYPES = {"byte", "word", "size_t", "uint8_t", "uint16_t", "uint32_t"}
_SIGNED_TYPES = {"char", "short", "int", "long", "int8_t", "int16_t", "int32_t"}


@dataclass(frozen=True)
class SymbolInfo:
    word: str
    kind: str       # register, register-bit, pin, bus-function, i2c-address, function, constant, type
    range: Range
    markdown: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "word": self.word,
            "kind": self.kind,
            "range": self.range.to_dict(),
            "contents": self.markdown,
        }


class SymbolDescriber:
    """Describe the symbol at a position using the active board's tables."""

    def __init__(self, hardware_db: Optional[HardwareDatabase] = None,
                 preprocessor: Optional[SketchPreprocessor] = None):
        self.hardware_db = hardware_db
        self.preprocessor = preprocessor or SketchPreprocessor()

    @property
    def board(self) -> Optional[BoardDescriptor]:
        if self.hardware_db is None:
            return None
        return self.hardware_db.get_current_board()

    def describe_symbol(self, text: str, line: int, character: int) -> Optional[SymbolInfo]:
        """Return a description of the word at (line, character), 0-based, or None."""
        source = SourceText(text)
        stripped = strip(text)
        code = mask_literals(stripped)
        offset = source.offset_at(Position(line, character))

        start = offset
        while start > 0 and _WORD_CHARS.match(code[start - 1]):
            start -= 1
        end = offset
        while end < len(code) and _WORD_CHARS.match(code[end]):
            end += 1
        if start == end:
            return None

        word = code[start:end]
        before = code[max(0, start - 100):start]
        symbols = self.preprocessor.symbol_table(stripped)
        found = self._describe(word, before, symbols)
        if found is None:
            logger.debug("No description for '%s' at %d:%d", word, line, character)
            return None
        kind, markdown = found
        return SymbolInfo(word=word, kind=kind, range=source.range_at(start, end - start), markdown=markdown)

    def _describe(self, word: str, before: str, symbols: Dict[str, str]):
        board = self.board

        bus = _BUS_PREFIX_RE.search(before)
        if bus:
            markdown = self._bus_function(bus.group(1), word)
            return ("bus-function", markdown) if markdown else None

        if board is not None:
            if word in board.registers:
                return "register", self._register(board, word)
            bit = self._register_bit(board, word)
            if bit:
                return "register-bit", bit

        value = parse_int(word)
        if value is not None:
            if _I2C_CALL_RE.search(before):
                return "i2c-address", self._i2c_address(value)
            if _PIN_CALL_RE.search(before) and board is not None:
                return "pin", self._pin(board, value, word)
            return None

        if board is not None:
            if word in board.pin_aliases:
                return "pin", self._pin(board, board.pin_aliases[word], word)
            if word in symbols and _PIN_CALL_RE.search(before):
                pin = PinResolver(board, symbols).resolve(word)
                if pin is not None:
                    return "pin", self._pin(board, pin, word)

        library = self.hardware_db.get_library(CORE_LIBRARY) if self.hardware_db else None
        if library is not None:
            if word in library.functions:
                return "function", self._function(word, library.functions[word], board)
            if word in library.constants:
                return "constant", f"## {word}\n\n{library.constants[word]}\n"

        sizes = dict(AVR_TYPE_SIZES)
        if board is not None:
            sizes.update(board.type_sizes)
        if word in sizes:
            return "type", self._type(word, sizes[word], board)
        return None

    # ────────────────────────────────────────────────────────────────
    #  Registers
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def _register(board: BoardDescriptor, name: str) -> str:
        register = board.registers[name]
        md = f"## {name}\n\n"
        md += f"**Register** of {board.mcu or board.name} at `{register.address}`\n\n"
        if register.bits:
            md += "| Bit | Position | Mask |\n|-----|----------|------|\n"
            for bit, position in sorted(register.bits.items(), key=lambda b: b[1]):
                md += f"| `{bit}` | {position} | `0x{1 << position:02X}` |\n"
        md += "\n**Arduino alternative**: `digitalWrite()` / `digitalRead()` are portable across boards.\n"
        return md

    @staticmethod
    def _register_bit(board: BoardDescriptor, word: str) -> Optional[str]:
        for name, register in board.registers.items():
            if word not in register.bits:
                continue
            position = register.bits[word]
            mask = 1 << position
            md = f"## {word}\n\n"
            md += f"**Register**: {name} (`{register.address}`)\n\n"
            md += f"**Bit position**: {position}\n\n"
            md += f"**Mask**: `0b{mask:08b}` (`0x{mask:02X}`)\n\n"
            md += "```c\n"
            md += f"{name} |= (1 << {word});   // set\n"
            md += f"{name} &= ~(1 << {word});  // clear\n"
            md += f"{name} ^= (1 << {word});   // toggle\n"
            md += "```\n"
            return md
        return None

    # ────────────────────────────────────────────────────────────────
    #  Pins and buses
    # ────────────────────────────────────────────────────────────────

    def _pin(self, board: BoardDescriptor, pin: int, word: str) -> str:
        pins = board.pins
        capabilities: List[str] = []
        if pin in pins.digital:
            capabilities.append("Digital I/O")
        if pin in pins.analog:
            analog_name = next((name for name, p in board.pin_aliases.items()
                                if p == pin and _ANALOG_ALIAS_RE.match(name)),
                               f"A{pins.analog.index(pin)}")
            capabilities.append(f"Analog input ({analog_name})")
        if pin in pins.pwm:
            capabilities.append("PWM output (`analogWrite`)")
        if pins.interrupts is None:
            if pin in pins.digital:
                capabilities.append("External interrupt (`attachInterrupt`)")
        elif pin in pins.interrupts:
            capabilities.append("External interrupt (`attachInterrupt`)")
        if pin in pins.touch:
            capabilities.append("Touch sensing")
        for bus in ("uart", "spi", "i2c"):
            for port in getattr(board.peripherals, bus):
                for role, bus_pin in port.pins.items():
                    if bus_pin == pin:
                        capabilities.append(f"{port.name} {role.upper()}")

        notes: List[str] = []
        if not capabilities:
            notes.append(f"Pin {pin} does not exist on {board.name}")
        if pin in board.input_only_pins:
            notes.append("Input only: cannot drive an output")
        if pin in board.strapping_pins:
            notes.append("Strapping pin: its level at reset selects the boot mode")
        if pin in board.tone_conflict_pins:
            notes.append("PWM on this pin stops while `tone()` is playing")
        uart = board.bus_pins("uart")
        if pin in uart.values():
            notes.append("Shared with the USB serial port; avoid when using the Serial Monitor")

        title = self.hardware_db.pin_label(pin) if self.hardware_db else f"Pin {pin}"
        md = f"## {title}\n\n"
        if word != str(pin):
            md += f"`{word}` = pin {pin}\n\n"
        md += f"**Board**: {board.name}\n\n"
        if capabilities:
            md += "**Capabilities**:\n" + "".join(f"- {c}\n" for c in capabilities) + "\n"
        if notes:
            md += "**⚠ Notes**:\n" + "".join(f"- {n}\n" for n in notes)
        return md

    def _bus_function(self, bus: str, word: str) -> Optional[str]:
        protocol_id, label = _BUS_PROTOCOLS[bus]
        protocol = self.hardware_db.get_protocol(protocol_id) if self.hardware_db else None
        if protocol is None or word not in protocol.functions:
            return None
        md = _function_markdown(f"{bus}.{word}", protocol.functions[word])
        if label == "I2C" and protocol.common_addresses:
            md += "\n**Common I2C addresses**:\n"
            md += "".join(f"- {addr}: {device}\n" for addr, device in protocol.common_addresses.items())
        if label == "SPI" and protocol.modes:
            md += "\n**SPI modes**:\n"
            md += "".join(f"- `{mode}`: {desc}\n" for mode, desc in protocol.modes.items())
        return md

    def _i2c_address(self, address: int) -> str:
        md = f"## I2C address 0x{address:02X}\n\n"
        if 0 <= address < 0x08 or 0x78 <= address <= 0x7F:
            md += "Reserved address. Valid 7-bit range: 0x08-0x77\n"
        elif address > 0x7F or address < 0:
            md += "Not a 7-bit address. Valid range: 0x08-0x77\n"
        else:
            device = self.hardware_db.get_i2c_device(address) if self.hardware_db else None
            md += f"**Common device**: {device}\n" if device else "No well-known device at this address.\n"
        return md

    # ────────────────────────────────────────────────────────────────
    #  Core library and types
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def _function(name: str, spec: Dict[str, Any], board: Optional[BoardDescriptor]) -> str:
        md = _function_markdown(name, spec)
        if name == "pinMode" and board is not None:
            md += f"\n**Pins on {board.name}**:\n"
            md += f"- Digital: {', '.join(map(str, board.pins.digital))}\n"
            if board.pins.pwm:
                md += f"- PWM: {', '.join(map(str, board.pins.pwm))}\n"
            if board.pins.interrupts:
                md += f"- Interrupt: {', '.join(map(str, board.pins.interrupts))}\n"
        return md

    @staticmethod
    def _type(name: str, size: int, board: Optional[BoardDescriptor]) -> str:
        target = board.name if board is not None else "AVR boards"
        md = f"## {name}\n\n**Size on {target}**: {size} byte{'s' if size != 1 else ''}\n"
        bits = size * 8
        if name in _UNSIGNED_TYPES:
            md += f"**Range**: 0 to {2 ** bits - 1:,}\n"
        elif name in _SIGNED_TYPES:
            md += f"**Range**: {-2 ** (bits - 1):,} to {2 ** (bits - 1) - 1:,}\n"
        return md


def _function_markdown(title: str, spec: Dict[str, Any]) -> str:
    md = f"## {title}\n\n"
    if spec.get("description"):
        md += f"{spec['description']}\n\n"
    if spec.get("signature"):
        md += f"**Signature**: `{spec['signature']}`\n\n"
    params = spec.get("parameters") or []
    if params:
        md += "**Parameters**:\n"
        md += "".join(f"- `{p.get('name')}` ({p.get('type')}): {p.get('description', '')}\n" for p in params)
        md += "\n"
    if spec.get("returns"):
        md += f"**Returns**: {spec['returns']}\n\n"
    for constraint in spec.get("constraints") or []:
        md += f"- ⚠ {constraint}\n"
    return md
