"""
Embedded validators.

Pin configuration, stack use, I2C / SPI / Serial bus usage, interrupt
handlers, timing, analog and PWM I/O, and memory-hungry patterns.  Every
function here is registered with the rule engine and receives a shared
``RuleContext``; scanning is done on ``ctx.code`` (comments removed, literal
contents blanked) so text inside strings never triggers a rule.

Validators marked *board* return nothing when no board is active.
"""

import logging
import re
from typing import Dict, List, NamedTuple, Optional

from .config import config
from .diagnostic_engine import RuleContext, rule
from .hardware_db import HardwareDatabase
from .memory_analyzer import AVR_TYPE_SIZES, UNKNOWN_TYPE_SIZE
from .models import Diagnostic
from .pin_tracker import bus_pins
from .sketch_scanner import (
    find_function, is_global_scope, iter_calls, iter_functions, iter_isr_bodies,
    split_args,
)

logger = logging.getLogger(__name__)

DEFAULT_BAUD_RATES = [300, 1200, 2400, 4800, 9600, 14400, 19200, 28800,
                      38400, 57600, 115200, 230400, 460800, 921600]
MAX_RELIABLE_BAUD = 115200
I2C_BUFFER_BYTES = 32
SPI_MAX_SPEED = 8000000

STACK_WARNING_RATIO = 0.5
STACK_INFO_RATIO = 0.25
LONG_ISR_LINES = 10
LONG_DELAY_MS = 1000
BLOCKING_DELAY_MS = 5000
EXCESSIVE_SERIAL_PRINTS = 20
EEPROM_WRITE_LIMIT = 5
EXCESSIVE_GLOBALS = 15
PROGMEM_INITIALIZER_CHARS = 100
PWM_MAX = 255
PWM_FREQ_RANGE = (100, 40000)

_INPUT_MODES = ("INPUT", "INPUT_PULLUP", "INPUT_PULLDOWN")

_LOCAL_ARRAY_RE = re.compile(
    r"\b(?:(static)\s+)?(?:const\s+)?"
    r"(char|byte|bool|boolean|short|int|long|float|double|"
    r"unsigned\s+(?:char|short|int|long)|u?int(?:8|16|32)_t)\s+"
    r"(\w+)\s*\[\s*(\w+)\s*\]"
)
_GLOBAL_DECL_RE = re.compile(
    r"^[ \t]*((?:(?:static|const|volatile|extern|unsigned|signed)\s+)*)"
    r"(bool|boolean|byte|char|short|int|long|float|double|word|String|size_t|"
    r"u?int(?:8|16|32|64)_t)\s+(\w+)\s*(?:\[[^\]]*\]\s*)?[=;]",
    re.MULTILINE,
)
_PROGMEM_CANDIDATE_RE = re.compile(
    r"\b(?:const\s+)?(?:char|byte|int|long|uint8_t|uint16_t|unsigned\s+char|unsigned\s+int)\s+"
    r"\w+\s*\[\s*\w*\s*\]\s*=\s*(\{[^}]*\}|\"[^\"]*\")"
)
_I2C_ADDRESS_CALL_RE = re.compile(r"(?<![\w.])(?:\w+\.)?(?:beginTransmission|requestFrom)\s*\(")
_WIRE_USE_RE = re.compile(r"(?<![\w.])Wire\.(?:beginTransmission|requestFrom|write|read)\s*\(")
_SPI_USE_RE = re.compile(r"(?<![\w.])SPI\.(?!begin\b)\w+\s*\(")
_SPI_TRANSFER_RE = re.compile(r"(?<![\w.])SPI\.transfer\w*\s*\(")
_SPI_SETTINGS_RE = re.compile(r"\bSPISettings\s*(?:\w+\s*)?\(")
_SERIAL_USE_RE = re.compile(r"(?<![\w.])Serial\.(?!begin\b)\w+\s*\(")
_SERIAL_PRINT_RE = re.compile(r"(?<![\w.])Serial\.print(?:ln|f)?\s*\(")
_DELAY_CALL_RE = re.compile(r"(?<![\w.])delay\s*\(")
_UNSAFE_STRING_RE = re.compile(r"(?<![\w.])(strcpy|strcat|sprintf|gets)\s*\(")
_ALLOC_RE = re.compile(r"(?<![\w.])(malloc|calloc|realloc|free)\s*\(")
_STRING_CONCAT_RE = re.compile(r"\bString\s+\w+\s*=[^;\n]*\+|\b\w+\s*\+=\s*String\b")
_FLOAT_DECL_RE = re.compile(r"\b(float|double)\s+\w+")
_EEPROM_WRITE_RE = re.compile(r"\bEEPROM\.write\s*\(")
_TIMER_REGISTER_RE = re.compile(r"\bTCCR\d[AB]\b")
_AREF_EXTERNAL_RE = re.compile(r"\banalogReference\s*\(\s*(EXTERNAL)\s*\)")
_DIGITAL_PIN_TO_INTERRUPT_RE = re.compile(r"^digitalPinToInterrupt\s*\((.*)\)$", re.DOTALL)


class _PinConfig(NamedTuple):
    mode: str
    line: int
    owner: Optional[str] = None     # bus call that reserved the pin


def _pin_display(token: str, pin: int) -> str:
    return f"D{pin}" if token.isdigit() else token


def _interrupt_pin_token(call) -> Optional[str]:
    """Pin expression of ``attachInterrupt(digitalPinToInterrupt(pin), ...)``."""
    if not call.args:
        return None
    m = _DIGITAL_PIN_TO_INTERRUPT_RE.match(call.args[0])
    return m.group(1).strip() if m else None


def _format_bytes(size: int) -> str:
    if size >= 1024 and size % 1024 == 0:
        return f"{size // 1024}KB"
    return f"{size} bytes"


def _pin_list(pins: List[int]) -> str:
    return ", ".join(str(p) for p in pins) if pins else "none"


# ═══════════════════════════════════════════════════════════════════════
#  Pins
# ═══════════════════════════════════════════════════════════════════════

@rule("pin-usage")
def check_pin_usage(ctx: RuleContext) -> List[Diagnostic]:
    """pinMode validity, repeated configuration and interrupt/SPI overlap."""
    diags: List[Diagnostic] = []
    board = ctx.board
    code = ctx.code
    configured: Dict[int, _PinConfig] = {}
    first_pinmode: Dict[int, tuple] = {}

    wire = next(iter_calls(code, r"Wire\.begin"), None)
    if wire is not None:
        pins = bus_pins(board, "i2c")
        if len(wire.args) >= 2:
            sda, scl = ctx.resolver.resolve(wire.args[0]), ctx.resolver.resolve(wire.args[1])
            if sda is not None and scl is not None:
                pins = {"sda": sda, "scl": scl}
        line = ctx.source.line_of(wire.start)
        for role, pin in pins.items():
            configured[pin] = _PinConfig(f"I2C {role.upper()}", line, "Wire.begin()")

    for call in iter_calls(code, "pinMode"):
        if len(call.args) < 2:
            continue
        token, mode = call.args[0], call.args[1]
        pin = ctx.resolver.resolve(token)
        if pin is None:
            continue
        offset = call.arg_offsets[0]

        if board is not None and pin not in board.pins.digital and pin not in board.pins.analog:
            diags.append(ctx.error(
                offset, len(token),
                f"Pin {pin} is not valid for {board.name}. "
                f"Valid pins: {_pin_list(board.pins.digital + board.pins.analog)}",
                "invalid-pin",
            ))
            continue

        prior = configured.get(pin)
        if prior is not None:
            name = _pin_display(token, pin)
            if prior.owner:
                message = (f"Pin {name} (pin {pin}) conflicts with {prior.owner} "
                           f"which uses this pin for {prior.mode}")
            else:
                message = f"Pin {name} is already configured as {prior.mode} at line {prior.line + 1}"
            diags.append(ctx.error(offset, len(token), message, "pin-conflict"))
        else:
            configured[pin] = _PinConfig(mode, ctx.source.line_of(call.start))
            first_pinmode[pin] = (call, mode)

        if board is not None:
            message = None
            if mode == "ANALOG" and pin not in board.pins.analog:
                message = (f"Pin {pin} does not support analog input. "
                           f"Analog pins: {_pin_list(board.pins.analog)}")
            elif mode == "INPUT_PULLDOWN" and board.is_avr:
                message = (f"{board.name} has no internal pull-down resistors. "
                           f"Use INPUT with an external pull-down, or INPUT_PULLUP")
            elif mode.startswith("OUTPUT") and pin in board.input_only_pins:
                message = f"Pin {pin} is input-only on {board.name} and cannot be configured as OUTPUT"
            if message:
                diags.append(ctx.error(call.arg_offsets[1], len(mode), message, "invalid-pin-mode"))

    for call in iter_calls(code, "digitalWrite"):
        if not call.args:
            continue
        pin = ctx.resolver.resolve(call.args[0])
        prior = configured.get(pin) if pin is not None else None
        if prior is not None and prior.owner is None and prior.mode in _INPUT_MODES:
            diags.append(ctx.warning(
                call.arg_offsets[0], len(call.args[0]),
                f"Writing to pin {pin} configured as {prior.mode}. Consider changing to OUTPUT mode",
                "write-to-input-pin",
            ))

    for call in iter_calls(code, "attachInterrupt"):
        token = _interrupt_pin_token(call)
        if token is None:
            continue
        pin = ctx.resolver.resolve(token)
        prior = configured.get(pin) if pin is not None else None
        if prior is None:
            continue
        if prior.owner is not None or prior.mode.startswith("OUTPUT"):
            diags.append(ctx.error(
                call.arg_offsets[0], len(call.args[0]),
                f"Pin {pin} is already configured as {prior.mode} at line {prior.line + 1} "
                f"and cannot also be used as an interrupt input",
                "pin-conflict-interrupt",
            ))

    if board is not None and re.search(r"(?<![\w.])SPI\.begin\s*\(", code):
        for role, pin in board.bus_pins("spi").items():
            if pin not in first_pinmode:
                continue
            call, mode = first_pinmode[pin]
            # Driving chip select as an output is the normal SPI setup
            if role == "ss" and mode.startswith("OUTPUT"):
                continue
            diags.append(ctx.warning(
                call.start, len(call.name),
                f"Pin {pin} is used by SPI interface. Manual pinMode() may conflict with SPI.begin()",
                "spi-pin-conflict",
            ))
    return diags


@rule("pin-mode-before-use")
def check_missing_pinmode(ctx: RuleContext) -> List[Diagnostic]:
    configured = set()
    for call in iter_calls(ctx.code, "pinMode"):
        if call.args:
            pin = ctx.resolver.resolve(call.args[0])
            if pin is not None:
                configured.add(pin)

    diags = []
    for func, mode in (("digitalWrite", "OUTPUT"), ("digitalRead", "INPUT")):
        for call in iter_calls(ctx.code, func):
            if not call.args:
                continue
            token = call.args[0]
            pin = ctx.resolver.resolve(token)
            if pin is None or pin in configured:
                continue
            diags.append(ctx.warning(
                call.arg_offsets[0], len(token),
                f"Pin {pin} used in {func}() without pinMode(). "
                f"Add pinMode({token}, {mode}) in setup()",
                "missing-pinmode",
            ))
    return diags


# ═══════════════════════════════════════════════════════════════════════
#  Stack
# ═══════════════════════════════════════════════════════════════════════

@rule("stack-usage")
def check_stack_usage(ctx: RuleContext) -> List[Diagnostic]:
    """*board*: local arrays measured against the board's stack budget."""
    board = ctx.board
    if board is None or not board.constraints.max_stack_depth:
        return []
    limit = board.constraints.max_stack_depth
    sizes = dict(AVR_TYPE_SIZES)
    sizes.update(board.type_sizes)

    diags = []
    for m in _LOCAL_ARRAY_RE.finditer(ctx.code):
        if m.group(1) or is_global_scope(ctx.code, m.start()):
            continue
        count = ctx.resolver.resolve(m.group(4))
        if count is None or count <= 0:
            continue
        type_name = " ".join(m.group(2).split())
        size = count * sizes.get(type_name, UNKNOWN_TYPE_SIZE)
        offset = m.start(2)
        length = m.end() - offset
        if size > limit * STACK_WARNING_RATIO:
            diags.append(ctx.warning(
                offset, length,
                f"Large array ({size} bytes) may cause stack overflow. Consider using dynamic "
                f"allocation or reducing size. Available stack: ~{limit} bytes",
                "stack-overflow-risk",
            ))
        elif size > limit * STACK_INFO_RATIO:
            diags.append(ctx.info(
                offset, length,
                f"Medium-sized array ({size} bytes) uses {round(size * 100 / limit)}% "
                f"of the ~{limit} bytes of stack",
                "stack-usage-info",
            ))
    return diags


@rule("recursion")
def check_recursion(ctx: RuleContext) -> List[Diagnostic]:
    diags = []
    for fn in iter_functions(ctx.code):
        body = ctx.code[fn.body_start:fn.body_end]
        if re.search(rf"(?<![\w.]){re.escape(fn.name)}\s*\(", body):
            diags.append(ctx.warning(
                fn.name_start, len(fn.name),
                f"Potential recursive function '{fn.name}'. "
                f"Recursion can quickly exhaust stack memory on microcontrollers",
                "recursion-warning",
            ))
    return diags


# ═══════════════════════════════════════════════════════════════════════
#  Buses
# ═══════════════════════════════════════════════════════════════════════

@rule("i2c")
def check_i2c(ctx: RuleContext) -> List[Diagnostic]:
    """Address ranges, duplicates, missing Wire.begin() and buffer size."""
    code = ctx.code
    diags = []
    addressed = []

    for call in iter_calls(code, _I2C_ADDRESS_CALL_RE):
        if not call.args:
            continue
        token = call.args[0]
        address = ctx.resolver.resolve(token)
        if address is None:
            continue
        offset, length = call.arg_offsets[0], len(token)
        # Reserved sub-ranges take precedence over the generic range check
        if 0 <= address < 0x08:
            diags.append(ctx.error(
                offset, length,
                f"I2C address 0x{address:02X} is reserved. Valid range: 0x08-0x77",
                "reserved-i2c-address",
            ))
        elif 0x78 <= address <= 0x7F:
            diags.append(ctx.error(
                offset, length,
                f"I2C address 0x{address:02X} is reserved for 10-bit addressing. "
                f"Valid range: 0x08-0x77",
                "reserved-i2c-address",
            ))
        elif address > 0x7F or address < 0:
            diags.append(ctx.error(
                offset, length,
                f"I2C address 0x{address:02X} is outside valid range (0x00-0x7F). "
                f"Use 7-bit addresses only (0x08-0x77)",
                "invalid-i2c-address",
            ))
        else:
            addressed.append((address, offset, length))

    # Every repeat after the first call to an address is reported
    repeated = {c["address"]: c["count"]
                for c in HardwareDatabase.check_i2c_conflicts([a for a, _, _ in addressed])}
    seen = set()
    for address, offset, length in addressed:
        if address in seen:
            diags.append(ctx.info(
                offset, length,
                f"I2C address 0x{address:02X} is used {repeated[address]} times. "
                f"Ensure this is intentional",
                "duplicate-i2c-address",
            ))
        seen.add(address)

    first_use = _WIRE_USE_RE.search(code)
    if first_use and not re.search(r"(?<![\w.])Wire\.begin\s*\(", code):
        diags.append(ctx.error(
            first_use.start(), len("Wire"),
            "Wire functions used without Wire.begin(). Add Wire.begin() in setup()",
            "missing-wire-begin",
        ))

    buffer_size = ctx.protocol_constraint("i2c", "buffer_size", I2C_BUFFER_BYTES)
    writes = list(iter_calls(code, r"Wire\.write"))
    if len(writes) > buffer_size:
        extra = writes[buffer_size]
        diags.append(ctx.warning(
            extra.start, len(extra.name),
            f"I2C buffer limited to {buffer_size} bytes. Too many Wire.write() calls may overflow",
            "i2c-buffer-overflow",
        ))
    for call in writes:
        if len(call.args) < 2:
            continue
        count = ctx.resolver.resolve(call.args[1])
        if count is not None and count > buffer_size:
            diags.append(ctx.warning(
                call.arg_offsets[1], len(call.args[1]),
                f"Wire.write() of {count} bytes exceeds the {buffer_size}-byte I2C buffer",
                "i2c-buffer-overflow",
            ))
    return diags


@rule("spi")
def check_spi(ctx: RuleContext) -> List[Diagnostic]:
    code = ctx.code
    diags = []

    first_use = _SPI_USE_RE.search(code)
    if first_use and not re.search(r"(?<![\w.])SPI\.begin\s*\(", code):
        diags.append(ctx.error(
            first_use.start(), len("SPI"),
            "SPI functions used without SPI.begin(). Add SPI.begin() in setup()",
            "missing-spi-begin",
        ))

    transfer = _SPI_TRANSFER_RE.search(code)
    if transfer and not re.search(r"(?<![\w.])SPI\.beginTransaction\s*\(", code):
        diags.append(ctx.warning(
            transfer.start(), transfer.end() - transfer.start() - 1,
            "SPI.transfer() used without SPI.beginTransaction(). "
            "Consider using transactions for reliable communication",
            "missing-spi-transaction",
        ))

    board = ctx.board
    if board is not None and board.constraints.max_spi_speed:
        limit = board.constraints.max_spi_speed
        target = board.name
    else:
        limit = ctx.protocol_constraint("spi", "max_speed", SPI_MAX_SPEED)
        target = "Most Arduino devices"
    for m in _SPI_SETTINGS_RE.finditer(code):
        args, offsets, _ = split_args(code, m.end() - 1)
        if not args:
            continue
        speed = ctx.resolver.resolve(args[0])
        if speed is not None and speed > limit:
            diags.append(ctx.warning(
                offsets[0], len(args[0]),
                f"SPI speed {speed}Hz may be too fast. {target} support max "
                f"{limit / 1000000:g}MHz. Check your device specs",
                "spi-speed-warning",
            ))
    return diags


@rule("serial")
def check_serial(ctx: RuleContext) -> List[Diagnostic]:
    code = ctx.code
    diags = []

    first_use = _SERIAL_USE_RE.search(code)
    if first_use and not re.search(r"(?<![\w.])Serial\.begin\s*\(", code):
        diags.append(ctx.warning(
            first_use.start(), len("Serial"),
            "Serial functions used without Serial.begin(). "
            "Add Serial.begin(9600) in setup() for debugging output",
            "missing-serial-begin",
        ))

    standard = ctx.protocol_constraint("serial", "standard_baud_rates", DEFAULT_BAUD_RATES)
    max_reliable = ctx.protocol_constraint("serial", "max_reliable_baud", MAX_RELIABLE_BAUD)
    for call in iter_calls(code, r"Serial\d*\.begin"):
        if not call.args:
            continue
        baud = ctx.resolver.resolve(call.args[0])
        if baud is not None:
            if baud not in standard:
                diags.append(ctx.warning(
                    call.arg_offsets[0], len(call.args[0]),
                    f"Unusual baud rate {baud}. Standard rates: 9600, 115200, etc.",
                    "non-standard-baud",
                ))
            elif baud > max_reliable:
                diags.append(ctx.info(
                    call.arg_offsets[0], len(call.args[0]),
                    f"High baud rate {baud} may be unreliable over USB. Consider {max_reliable} or lower",
                    "high-baud-rate",
                ))
        if len(call.args) >= 2 and not call.args[1].startswith("SERIAL_"):
            diags.append(ctx.error(
                call.arg_offsets[1], len(call.args[1]),
                f"Invalid serial config '{call.args[1]}'. Use SERIAL_8N1, SERIAL_8E1, etc.",
                "invalid-serial-config",
            ))

    prints = list(_SERIAL_PRINT_RE.finditer(code))
    if len(prints) > EXCESSIVE_SERIAL_PRINTS:
        first = prints[0]
        diags.append(ctx.info(
            first.start(), first.end() - first.start() - 1,
            f"{len(prints)} Serial.print() calls detected. "
            f"Consider reducing debug output or using higher baud rate",
            "excessive-serial",
        ))
    return diags


# ═══════════════════════════════════════════════════════════════════════
#  Interrupts
# ═══════════════════════════════════════════════════════════════════════

@rule("interrupts")
def check_interrupts(ctx: RuleContext) -> List[Diagnostic]:
    """Handler bodies (any board) and interrupt-capable pins (*board*)."""
    code = ctx.code
    diags = []

    shared_globals = []
    for m in _GLOBAL_DECL_RE.finditer(code):
        if not is_global_scope(code, m.start()):
            continue
        qualifiers = m.group(1).split()
        if "volatile" in qualifiers or "const" in qualifiers:
            continue
        shared_globals.append((m.group(3), m.start(3)))

    flagged = set()
    for isr in iter_isr_bodies(code):
        body = code[isr.body_start:isr.body_end]

        for d in _DELAY_CALL_RE.finditer(body):
            diags.append(ctx.error(
                isr.body_start + d.start(), len("delay"),
                "delay() should not be used in interrupt handlers. Use non-blocking alternatives",
                "delay-in-isr",
            ))

        lines = [line for line in body.split("\n") if line.strip()]
        busy_us = sum(ctx.resolver.resolve(c.args[0]) or 0
                      for c in iter_calls(body, "delayMicroseconds") if c.args)
        if len(lines) > LONG_ISR_LINES:
            diags.append(ctx.warning(
                isr.start, isr.body_start - 1 - isr.start,
                f"ISR contains {len(lines)} lines. Keep interrupt handlers short and fast",
                "long-isr",
            ))
        elif (busy_us and ctx.board is not None and ctx.hardware_db is not None
              and not ctx.hardware_db.validate_constraint("isr_time", busy_us)):
            diags.append(ctx.warning(
                isr.start, isr.body_start - 1 - isr.start,
                f"ISR busy-waits {busy_us}us in delayMicroseconds(), over the "
                f"{ctx.board.constraints.max_isr_time:g}us handler budget of {ctx.board.name}",
                "long-isr",
            ))

        for name, offset in shared_globals:
            if name in flagged:
                continue
            if re.search(rf"\b{re.escape(name)}\b", body):
                flagged.add(name)
                diags.append(ctx.warning(
                    offset, len(name),
                    f"Interrupt used with global variable '{name}'. Mark ISR-accessed "
                    f"variables as 'volatile' to prevent optimization issues",
                    "missing-volatile",
                ))

    board = ctx.board
    if board is not None and board.pins.interrupts is not None:
        for call in iter_calls(code, "attachInterrupt"):
            token = _interrupt_pin_token(call)
            if token is None:
                continue
            pin = ctx.resolver.resolve(token)
            if pin is None or pin in board.pins.interrupts:
                continue
            offset = call.arg_offsets[0] + call.args[0].index(token)
            diags.append(ctx.error(
                offset, len(token),
                f"Pin {pin} does not support external interrupts. "
                f"Available interrupt pins: {_pin_list(board.pins.interrupts)}",
                "invalid-interrupt-pin",
            ))
    return diags


# ═══════════════════════════════════════════════════════════════════════
#  Timing
# ═══════════════════════════════════════════════════════════════════════

@rule("timing")
def check_timing(ctx: RuleContext) -> List[Diagnostic]:
    code = ctx.code
    diags = []

    for call in iter_calls(code, "delay"):
        if not call.args:
            continue
        ms = ctx.resolver.resolve(call.args[0])
        if ms is None:
            continue
        offset, length = call.arg_offsets[0], len(call.args[0])
        if LONG_DELAY_MS < ms <= BLOCKING_DELAY_MS:
            diags.append(ctx.info(
                offset, length,
                f"Long delay ({ms}ms) blocks execution. Consider non-blocking alternatives like millis()",
                "long-delay",
            ))
        elif ms > BLOCKING_DELAY_MS and not ctx.is_esp32:
            diags.append(ctx.warning(
                offset, length,
                f"Long delay ({ms}ms) blocks all execution. Consider using millis() for non-blocking timing",
                "blocking-delay",
            ))

    millis = re.search(r"(?<![\w.])millis\s*\(\s*\)", code)
    if millis:
        diags.append(ctx.info(
            millis.start(), len("millis"),
            "millis() overflows after ~49.7 days. For long-running applications, handle overflow",
            "millis-overflow",
        ))

    wdt = re.search(r"\bwdt_(?:enable|reset)\s*\(", code)
    if wdt and _DELAY_CALL_RE.search(code):
        diags.append(ctx.warning(
            wdt.start(), wdt.end() - wdt.start() - 1,
            "Watchdog timer enabled with delay() calls. "
            "Ensure wdt_reset() called before timeout or system will reboot",
            "watchdog-delay",
        ))

    for m in _TIMER_REGISTER_RE.finditer(code):
        diags.append(ctx.info(
            m.start(), m.end() - m.start(),
            "Direct timer register manipulation detected. "
            "This will affect millis(), delay(), and PWM. Document this carefully",
            "timer-register-warning",
        ))

    low, high = PWM_FREQ_RANGE
    for callee, index in (("analogWriteFreq", 0), ("analogWriteFrequency", 1), ("ledcSetup", 1)):
        for call in iter_calls(code, callee):
            if len(call.args) <= index:
                continue
            freq = ctx.resolver.resolve(call.args[index])
            if freq is not None and (freq < low or freq > high):
                diags.append(ctx.warning(
                    call.arg_offsets[index], len(call.args[index]),
                    f"PWM frequency {freq}Hz is unusual. "
                    f"Typical range: 500-5000Hz for motors, 20000Hz+ for LED dimming",
                    "unusual-pwm-freq",
                ))
    return diags


# ═══════════════════════════════════════════════════════════════════════
#  Analog / PWM I/O
# ═══════════════════════════════════════════════════════════════════════

@rule("io")
def check_io(ctx: RuleContext) -> List[Diagnostic]:
    code = ctx.code
    board = ctx.board
    diags = []

    if board is not None:
        analog = board.pins.analog
        for call in iter_calls(code, "analogRead"):
            if not call.args:
                continue
            pin = ctx.resolver.resolve(call.args[0])
            # analogRead(0) is channel 0, i.e. A0
            if pin is None or pin in analog or 0 <= pin < len(analog):
                continue
            diags.append(ctx.warning(
                call.arg_offsets[0], len(call.args[0]),
                f"Pin {pin} may not have ADC. {board.name} analog pins: {_pin_list(analog)}",
                "invalid-analog-pin",
            ))

    wide_pwm = re.search(r"\banalogWriteResolution\s*\(", code) is not None
    for call in iter_calls(code, "analogWrite"):
        if not call.args:
            continue
        if board is not None:
            pin = ctx.resolver.resolve(call.args[0])
            if pin is not None and pin not in board.pins.pwm:
                diags.append(ctx.error(
                    call.arg_offsets[0], len(call.args[0]),
                    f"Pin {pin} does not support PWM. {board.name} PWM pins: {_pin_list(board.pins.pwm)}",
                    "no-pwm-support",
                ))
        if len(call.args) >= 2 and not wide_pwm:
            value = ctx.resolver.resolve(call.args[1])
            if value is not None and value > PWM_MAX:
                diags.append(ctx.error(
                    call.arg_offsets[1], len(call.args[1]),
                    f"PWM value {value} exceeds maximum (0-{PWM_MAX})",
                    "pwm-value-overflow",
                ))

    if board is not None and board.tone_conflict_pins:
        affected = " and ".join(str(p) for p in board.tone_conflict_pins)
        for call in iter_calls(code, "tone"):
            if not call.args:
                continue
            pin = ctx.resolver.resolve(call.args[0])
            if pin in board.tone_conflict_pins:
                diags.append(ctx.warning(
                    call.arg_offsets[0], len(call.args[0]),
                    f"tone() on pin {pin} will disable PWM on pins {affected}",
                    "tone-pwm-conflict",
                ))

    for call in iter_calls(code, "map"):
        if len(call.args) < 5:
            continue
        from_low = ctx.resolver.resolve(call.args[1])
        from_high = ctx.resolver.resolve(call.args[2])
        if from_low is not None and from_low == from_high:
            diags.append(ctx.error(
                call.arg_offsets[1], call.arg_offsets[2] + len(call.args[2]) - call.arg_offsets[1],
                f"map() fromLow ({from_low}) equals fromHigh ({from_high}); the mapping divides by zero",
                "invalid-map-range",
            ))

    random = re.search(r"(?<![\w.])random\s*\(", code)
    if random and not re.search(r"\brandomSeed\s*\(", code):
        diags.append(ctx.info(
            random.start(), len("random"),
            "random() without randomSeed() produces same sequence. "
            "Use randomSeed(analogRead(0)) for variety",
            "missing-random-seed",
        ))

    for m in _AREF_EXTERNAL_RE.finditer(code):
        diags.append(ctx.warning(
            m.start(1), len(m.group(1)),
            "EXTERNAL ADC reference requires voltage on AREF pin (0-5V). "
            "Exceeding 5V will damage Arduino",
            "aref-external-warning",
        ))
    return diags


# ═══════════════════════════════════════════════════════════════════════
#  Memory
# ═══════════════════════════════════════════════════════════════════════

@rule("memory")
def check_memory(ctx: RuleContext) -> List[Diagnostic]:
    code = ctx.code
    diags = []

    for m in _UNSAFE_STRING_RE.finditer(code):
        func = m.group(1)
        diags.append(ctx.warning(
            m.start(1), len(func),
            f"{func}() can cause buffer overflows. "
            f"Consider safer alternatives: strncpy(), strncat(), snprintf()",
            "unsafe-string-function",
        ))

    for m in _ALLOC_RE.finditer(code):
        diags.append(ctx.info(
            m.start(1), len(m.group(1)),
            "Dynamic memory allocation on microcontrollers can cause memory fragmentation. "
            "Consider static allocation",
            "dynamic-allocation",
        ))

    for m in _STRING_CONCAT_RE.finditer(code):
        diags.append(ctx.info(
            m.start(), m.end() - m.start(),
            "String concatenation causes memory fragmentation. Consider using char arrays or F() macro",
            "string-fragmentation",
        ))

    if ctx.is_avr:
        for m in _FLOAT_DECL_RE.finditer(code):
            diags.append(ctx.info(
                m.start(1), len(m.group(1)),
                "Floating point math is slow on 8-bit AVR. "
                "Consider fixed-point arithmetic if performance matters",
                "slow-float",
            ))

    if not ctx.is_esp32:
        for m in _PROGMEM_CANDIDATE_RE.finditer(code):
            if len(m.group(1)) <= PROGMEM_INITIALIZER_CHARS:
                continue
            if not is_global_scope(code, m.start()):
                continue
            line_start = code.rfind("\n", 0, m.start()) + 1
            if "PROGMEM" in code[line_start:m.end()]:
                continue
            diags.append(ctx.info(
                m.start(), m.start(1) - m.start(),
                "Large array detected. Consider using PROGMEM to store in flash instead of RAM",
                "use-progmem",
            ))

    diags.extend(_check_eeprom_wear(ctx))
    diags.extend(_check_globals(ctx))
    return diags


def _check_eeprom_wear(ctx: RuleContext) -> List[Diagnostic]:
    writes = list(_EEPROM_WRITE_RE.finditer(ctx.code))
    if len(writes) > EEPROM_WRITE_LIMIT:
        m = writes[EEPROM_WRITE_LIMIT]
        return [ctx.warning(
            m.start(), m.end() - m.start() - 1,
            "Multiple EEPROM.write() detected. EEPROM has ~100k write cycle limit. "
            "Use EEPROM.update() to reduce writes",
            "eeprom-wear",
        )]

    loop = find_function(ctx.code, "loop")
    if loop is None:
        return []
    _, body_start, body_end = loop
    for m in writes:
        if body_start <= m.start() < body_end:
            return [ctx.warning(
                m.start(), m.end() - m.start() - 1,
                "EEPROM.write() inside loop() runs on every iteration. EEPROM has ~100k write "
                "cycle limit. Use EEPROM.update() or write only when the value changes",
                "eeprom-wear",
            )]
    return []


def _check_globals(ctx: RuleContext) -> List[Diagnostic]:
    decls = [m for m in _GLOBAL_DECL_RE.finditer(ctx.code) if is_global_scope(ctx.code, m.start())]
    if len(decls) < EXCESSIVE_GLOBALS:
        return []
    board = ctx.board
    name = board.name if board is not None else "Arduino Uno"
    ram = board.ram_size if board is not None else config.default_ram_bytes
    first = decls[0]
    return [ctx.info(
        first.start(3), len(first.group(3)),
        f"{len(decls)} global variables detected. {name} has only {_format_bytes(ram)} RAM. "
        f"Consider reducing globals",
        "excessive-globals",
    )]
