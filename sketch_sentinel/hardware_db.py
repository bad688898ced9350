"""
Hardware Database

Read-only capability tables for the supported boards, bus protocols and
core libraries.  Descriptors are bundled JSON files laid out as:

  data/boards/<board-id>.json
  data/protocols/<protocol-id>.json
  data/libraries/<library-id>.json

Each file is validated into a pydantic model.  Missing directories, bad JSON
and schema errors are logged and skipped: the analyzer keeps running with
whatever loaded (possibly nothing) and board-specific rules simply stay
silent.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError

from .config import config

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)

ARDUINO_VERSION = "10819"     # Arduino IDE 1.8.19


# ═══════════════════════════════════════════════════════════════════════
#  Descriptor models
# ═══════════════════════════════════════════════════════════════════════

class PinSets(BaseModel):
    digital: List[int] = Field(default_factory=list)
    analog: List[int] = Field(default_factory=list)
    pwm: List[int] = Field(default_factory=list)
    interrupts: Optional[List[int]] = None     # None: every GPIO can interrupt
    touch: List[int] = Field(default_factory=list)


class Peripheral(BaseModel):
    name: str
    pins: Dict[str, int] = Field(default_factory=dict)     # role -> pin
    baud: List[int] = Field(default_factory=list)


class Peripherals(BaseModel):
    uart: List[Peripheral] = Field(default_factory=list)
    spi: List[Peripheral] = Field(default_factory=list)
    i2c: List[Peripheral] = Field(default_factory=list)
    wifi: bool = False
    bluetooth: bool = False


class RegisterSpec(BaseModel):
    address: str
    bits: Dict[str, int] = Field(default_factory=dict)


class BoardConstraints(BaseModel):
    max_stack_depth: Optional[int] = None      # bytes
    max_isr_time: Optional[float] = None       # microseconds
    max_loop_time: Optional[float] = None      # milliseconds
    max_spi_speed: Optional[int] = None        # Hz


class MemoryCalibration(BaseModel):
    """Empirical framework costs in bytes (Arduino Uno builds by default)."""
    base_overhead: int = 9
    serial: int = 175
    wire: int = 196
    wire_with_serial: int = 185
    spi: int = 20
    wireless: int = 150
    heap_per_allocation: int = 8
    stack_frame_bytes: int = 14
    flash_base: int = 2000


class BoardDescriptor(BaseModel):
    board_id: str = ""
    name: str
    mcu: str = ""
    architecture: str = ""
    fqbn: List[str] = Field(default_factory=list)
    flash_size: int
    ram_size: int
    eeprom_size: int = 0
    clock_speed: int = 0
    pins: PinSets = Field(default_factory=PinSets)
    peripherals: Peripherals = Field(default_factory=Peripherals)
    registers: Dict[str, RegisterSpec] = Field(default_factory=dict)
    constraints: BoardConstraints = Field(default_factory=BoardConstraints)
    pin_labels: Dict[int, str] = Field(default_factory=dict)
    pin_aliases: Dict[str, int] = Field(default_factory=dict)
    analog_pin_offset: Optional[int] = None
    strapping_pins: List[int] = Field(default_factory=list)
    input_only_pins: List[int] = Field(default_factory=list)
    tone_conflict_pins: List[int] = Field(default_factory=list)
    type_sizes: Dict[str, int] = Field(default_factory=dict)
    memory: MemoryCalibration = Field(default_factory=MemoryCalibration)

    @property
    def is_esp32(self) -> bool:
        return self.architecture.lower() in ("esp32", "xtensa") or self.mcu.upper().startswith("ESP32")

    @property
    def is_avr(self) -> bool:
        return self.architecture.lower() == "avr"

    @property
    def predefined_macros(self) -> Dict[str, str]:
        """Macros the Arduino toolchain defines when building for this board."""
        macros = {"ARDUINO": ARDUINO_VERSION}
        if self.architecture:
            macros[f"ARDUINO_ARCH_{self.architecture.upper()}"] = "1"
        if self.is_avr:
            macros["__AVR__"] = "1"
            if self.mcu:
                macros[f"__AVR_{self.mcu}__"] = "1"
        if self.is_esp32:
            macros["ESP32"] = "1"
        return macros

    @property
    def analog_offset(self) -> int:
        """Numeric id of A0 when the board has no explicit alias for it."""
        if self.analog_pin_offset is not None:
            return self.analog_pin_offset
        return len(self.pins.digital)

    def bus_pins(self, bus: str) -> Dict[str, int]:
        """Role -> pin map of the board's primary *bus* ("uart", "spi", "i2c")."""
        ports = getattr(self.peripherals, bus, None) or []
        return dict(ports[0].pins) if ports else {}


class ProtocolDescriptor(BaseModel):
    name: str
    description: str = ""
    functions: Dict[str, Any] = Field(default_factory=dict)
    common_addresses: Dict[str, str] = Field(default_factory=dict)
    modes: Dict[str, str] = Field(default_factory=dict)
    constraints: Dict[str, Any] = Field(default_factory=dict)


class LibraryDescriptor(BaseModel):
    name: str
    description: str = ""
    functions: Dict[str, Any] = Field(default_factory=dict)
    constants: Dict[str, str] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════
#  Store
# ═══════════════════════════════════════════════════════════════════════

class HardwareDatabase:
    """Load and query board / protocol / library descriptors."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or config.hardware_db_path
        self.boards: Dict[str, BoardDescriptor] = {}
        self.protocols: Dict[str, ProtocolDescriptor] = {}
        self.libraries: Dict[str, LibraryDescriptor] = {}
        self._aliases: Dict[str, str] = {}
        self.current_board: Optional[BoardDescriptor] = None

    # ────────────────────────────────────────────────────────────────
    #  Loading
    # ────────────────────────────────────────────────────────────────

    def initialize(self) -> None:
        self.boards = self._load_dir("boards", BoardDescriptor)
        self.protocols = self._load_dir("protocols", ProtocolDescriptor)
        self.libraries = self._load_dir("libraries", LibraryDescriptor)

        self._aliases = {}
        for board_id, board in self.boards.items():
            board.board_id = board_id
            for alias in board.fqbn:
                self._aliases[alias] = board_id

        logger.info(
            "Hardware database initialized: %d boards, %d protocols, %d libraries",
            len(self.boards), len(self.protocols), len(self.libraries),
        )

    def _load_dir(self, sub: str, model: Type[_M]) -> Dict[str, _M]:
        path = os.path.join(self.db_path, sub)
        loaded: Dict[str, _M] = {}
        if not os.path.isdir(path):
            logger.warning("Hardware descriptor directory not found: %s", path)
            return loaded

        try:
            names = sorted(os.listdir(path))
        except OSError as e:
            logger.error("Cannot list %s: %s", path, e)
            return loaded

        for fn in names:
            if not fn.endswith(".json"):
                continue
            full = os.path.join(path, fn)
            try:
                with open(full, "r", encoding="utf-8") as f:
                    data = json.load(f)
                loaded[fn[:-len(".json")]] = model.model_validate(data)
            except json.JSONDecodeError as e:
                logger.error("Invalid JSON in %s: %s", full, e)
            except ValidationError as e:
                logger.error("Descriptor %s does not match schema: %s", full, e)
            except (OSError, UnicodeDecodeError) as e:
                logger.error("Cannot read %s: %s", full, e)
        return loaded

    # ────────────────────────────────────────────────────────────────
    #  Lookups
    # ────────────────────────────────────────────────────────────────

    def resolve_board_id(self, board_id: Optional[str]) -> Optional[str]:
        if not board_id:
            return None
        if board_id in self.boards:
            return board_id
        return self._aliases.get(board_id)

    def load_board(self, board_id: Optional[str]) -> Optional[BoardDescriptor]:
        """Switch the active board.  Unknown or empty ids leave no board active."""
        resolved = self.resolve_board_id(board_id)
        if board_id and resolved is None:
            logger.warning("Unknown board '%s', board-specific checks disabled", board_id)
        self.current_board = self.boards.get(resolved) if resolved else None
        return self.current_board

    def get_current_board(self) -> Optional[BoardDescriptor]:
        return self.current_board

    def get_board(self, board_id: str) -> Optional[BoardDescriptor]:
        resolved = self.resolve_board_id(board_id)
        return self.boards.get(resolved) if resolved else None

    def get_protocol(self, protocol_id: str) -> Optional[ProtocolDescriptor]:
        return self.protocols.get(protocol_id)

    def get_library(self, library_id: str) -> Optional[LibraryDescriptor]:
        return self.libraries.get(library_id)

    def list_boards(self) -> List[BoardDescriptor]:
        return list(self.boards.values())

    # ────────────────────────────────────────────────────────────────
    #  Capability queries (False, never an exception, without a board)
    # ────────────────────────────────────────────────────────────────

    def is_pin_valid(self, pin: int, kind: str = "digital") -> bool:
        return self.is_pin_capable(pin, kind)

    def is_pin_capable(self, pin: int, capability: str) -> bool:
        board = self.current_board
        if board is None:
            return False
        pins = getattr(board.pins, capability, None)
        return bool(pins) and pin in pins

    def pin_label(self, pin: int) -> str:
        board = self.current_board
        if board is not None and pin in board.pin_labels:
            return board.pin_labels[pin]
        return f"Pin {pin}"

    def get_i2c_device(self, address: int) -> Optional[str]:
        """Name of the device commonly found at *address*, if known."""
        i2c = self.protocols.get("i2c")
        if i2c is None:
            return None
        for addr, device in i2c.common_addresses.items():
            try:
                if int(addr, 16) == address:
                    return device
            except ValueError:
                continue
        return None

    @staticmethod
    def check_i2c_conflicts(addresses: List[int]) -> List[Dict[str, Any]]:
        counts: Dict[int, int] = {}
        for addr in addresses:
            counts[addr] = counts.get(addr, 0) + 1
        return [
            {
                "address": addr,
                "count": count,
                "message": f"I2C address 0x{addr:02X} used by {count} devices - this will cause bus conflicts!",
            }
            for addr, count in counts.items() if count > 1
        ]

    def validate_constraint(self, kind: str, value: float) -> bool:
        """True when *value* is within the active board's limit (or no limit is known)."""
        board = self.current_board
        if board is None:
            return True
        limit = {
            "stack_depth": board.constraints.max_stack_depth,
            "isr_time": board.constraints.max_isr_time,
            "loop_time": board.constraints.max_loop_time,
        }.get(kind)
        return limit is None or value <= limit
