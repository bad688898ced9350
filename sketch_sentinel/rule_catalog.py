"""
Sketch Rule Catalog

One entry per diagnostic code the rule engine can emit: title, category,
default severity, rationale, short non-compliant / compliant examples and a
human-readable fix strategy.  Used by the ``explain_rule`` tool and by the
coverage report.
"""

from typing import Dict, List, Optional
from dataclasses import dataclass

from .models import DiagnosticSeverity


@dataclass
class RuleInfo:
    code: str
    title: str
    category: str                   # "Pins" | "Stack" | "I2C" | ... | "ESP32"
    severity: DiagnosticSeverity
    rationale: str
    fix_strategy: str
    non_compliant: str = ""
    compliant: str = ""
    board_specific: bool = False    # silent when no board is active


_RULES: Dict[str, RuleInfo] = {}

E = DiagnosticSeverity.ERROR
W = DiagnosticSeverity.WARNING
I = DiagnosticSeverity.INFO  # noqa: E741


def _add(rule: RuleInfo):
    _RULES[rule.code] = rule


# ═══════════════════════════════════════════════════════════════════════
#  Pins
# ═══════════════════════════════════════════════════════════════════════

_add(RuleInfo(
    code="invalid-pin",
    title="Pin does not exist on the selected board",
    category="Pins", severity=E, board_specific=True,
    rationale=(
        "pinMode() on a pin number the board does not have compiles fine but "
        "silently touches nothing, or a different port bit on some cores."
    ),
    non_compliant="pinMode(25, OUTPUT);   // Uno has D0-D19",
    compliant="pinMode(7, OUTPUT);",
    fix_strategy="Pick a pin from the board's digital or analog pin list.",
))

_add(RuleInfo(
    code="pin-conflict",
    title="Pin configured more than once",
    category="Pins", severity=E,
    rationale=(
        "A second pinMode() on the same pin overrides the first.  Usually two "
        "peripherals were wired to the same pin, or a bus (I2C) already owns it."
    ),
    non_compliant="""\
pinMode(5, OUTPUT);
pinMode(5, INPUT);""",
    compliant="""\
pinMode(5, OUTPUT);
pinMode(6, INPUT);""",
    fix_strategy="Give each device its own pin, or keep one pinMode() per pin.",
))

_add(RuleInfo(
    code="invalid-pin-mode",
    title="Pin mode not supported by this pin",
    category="Pins", severity=E, board_specific=True,
    rationale=(
        "Some modes need hardware the pin lacks: AVR chips have no internal "
        "pull-downs and ESP32 GPIO34-39 are input-only."
    ),
    non_compliant="pinMode(2, INPUT_PULLDOWN);   // on an AVR board",
    compliant="pinMode(2, INPUT_PULLUP);",
    fix_strategy="Use a mode the pin supports or add the resistor externally.",
))

_add(RuleInfo(
    code="write-to-input-pin",
    title="digitalWrite() on a pin configured as input",
    category="Pins", severity=W,
    rationale=(
        "Writing to an input pin only toggles its pull-up; the pin never "
        "drives the line."
    ),
    non_compliant="""\
pinMode(4, INPUT);
digitalWrite(4, HIGH);""",
    compliant="""\
pinMode(4, OUTPUT);
digitalWrite(4, HIGH);""",
    fix_strategy="Configure the pin as OUTPUT, or use INPUT_PULLUP explicitly.",
))

_add(RuleInfo(
    code="pin-conflict-interrupt",
    title="Interrupt attached to an output or bus pin",
    category="Pins", severity=E,
    rationale=(
        "An external interrupt listens to the level the pin sees.  On a pin the "
        "sketch drives itself, or that a bus owns, the handler fires on the "
        "sketch's own writes."
    ),
    non_compliant="""\
pinMode(2, OUTPUT);
attachInterrupt(digitalPinToInterrupt(2), onEdge, RISING);""",
    compliant="""\
pinMode(2, INPUT_PULLUP);
attachInterrupt(digitalPinToInterrupt(2), onEdge, RISING);""",
    fix_strategy="Use a separate input pin for the interrupt source.",
))

_add(RuleInfo(
    code="spi-pin-conflict",
    title="Manual pinMode() on an SPI bus pin",
    category="Pins", severity=W, board_specific=True,
    rationale="SPI.begin() configures MOSI, MISO and SCK itself; reconfiguring them breaks the bus.",
    non_compliant="""\
SPI.begin();
pinMode(12, OUTPUT);   // MISO on Uno""",
    fix_strategy="Leave the SPI pins to SPI.begin(); only configure chip-select pins.",
))

_add(RuleInfo(
    code="missing-pinmode",
    title="Pin used without pinMode()",
    category="Pins", severity=W,
    rationale=(
        "Pins start as inputs.  digitalWrite() without pinMode(OUTPUT) only "
        "switches the weak pull-up and the LED glows dimly at best."
    ),
    non_compliant="""\
void loop() {
  digitalWrite(8, HIGH);
}""",
    compliant="""\
void setup() {
  pinMode(8, OUTPUT);
}""",
    fix_strategy="Add the matching pinMode() call in setup().",
))

# ═══════════════════════════════════════════════════════════════════════
#  Stack
# ═══════════════════════════════════════════════════════════════════════

_add(RuleInfo(
    code="stack-overflow-risk",
    title="Local array uses more than half the stack",
    category="Stack", severity=W, board_specific=True,
    rationale=(
        "Local arrays live on the stack.  On small MCUs the stack silently "
        "grows into globals and the heap, corrupting them."
    ),
    non_compliant="""\
void log() {
  char buffer[1024];
}""",
    compliant="""\
static char buffer[1024];
void log() { }""",
    fix_strategy="Move the buffer to static storage or shrink it.",
))

_add(RuleInfo(
    code="stack-usage-info",
    title="Local array uses a quarter of the stack",
    category="Stack", severity=I, board_specific=True,
    rationale="Medium-sized local arrays leave little headroom for nested calls and interrupts.",
    fix_strategy="Keep an eye on call depth, or make the array static.",
))

_add(RuleInfo(
    code="recursion-warning",
    title="Function calls itself",
    category="Stack", severity=W,
    rationale="Each recursive call adds a frame; a few KB of stack runs out quickly.",
    non_compliant="""\
int fact(int n) {
  return n <= 1 ? 1 : n * fact(n - 1);
}""",
    compliant="""\
int fact(int n) {
  int r = 1;
  while (n > 1) r *= n--;
  return r;
}""",
    fix_strategy="Rewrite the recursion as a loop, or bound its depth.",
))

# ═══════════════════════════════════════════════════════════════════════
#  I2C
# ═══════════════════════════════════════════════════════════════════════

_add(RuleInfo(
    code="reserved-i2c-address",
    title="Reserved I2C address",
    category="I2C", severity=E,
    rationale=(
        "0x00-0x07 are reserved for general call, CBUS and high-speed mode; "
        "0x78-0x7F introduce 10-bit addressing.  No ordinary device answers there."
    ),
    non_compliant="Wire.beginTransmission(0x03);",
    compliant="Wire.beginTransmission(0x3C);",
    fix_strategy="Use the device's 7-bit address from its datasheet (0x08-0x77).",
))

_add(RuleInfo(
    code="invalid-i2c-address",
    title="I2C address wider than 7 bits",
    category="I2C", severity=E,
    rationale=(
        "The Wire library takes 7-bit addresses.  Datasheets often print the "
        "8-bit read/write form, which is twice the real address."
    ),
    non_compliant="Wire.beginTransmission(0xD0);",
    compliant="Wire.beginTransmission(0x68);   // 0xD0 >> 1",
    fix_strategy="Shift 8-bit datasheet addresses right by one.",
))

_add(RuleInfo(
    code="duplicate-i2c-address",
    title="I2C address used more than once",
    category="I2C", severity=I,
    rationale="Two devices on one bus cannot share an address.",
    fix_strategy="Confirm the repeated address is the same device, or change the strap pins.",
))

_add(RuleInfo(
    code="missing-wire-begin",
    title="Wire used without Wire.begin()",
    category="I2C", severity=E,
    rationale="The TWI peripheral is off until Wire.begin(); transfers hang or fail.",
    non_compliant="""\
void setup() {
  Wire.beginTransmission(0x3C);
}""",
    compliant="""\
void setup() {
  Wire.begin();
  Wire.beginTransmission(0x3C);
}""",
    fix_strategy="Call Wire.begin() in setup() before any transfer.",
))

_add(RuleInfo(
    code="i2c-buffer-overflow",
    title="More data than the I2C buffer holds",
    category="I2C", severity=W,
    rationale="The AVR Wire library buffers 32 bytes per transmission; extra bytes are dropped.",
    fix_strategy="Split the data into several transmissions of at most 32 bytes.",
))

# ═══════════════════════════════════════════════════════════════════════
#  SPI
# ═══════════════════════════════════════════════════════════════════════

_add(RuleInfo(
    code="missing-spi-begin",
    title="SPI used without SPI.begin()",
    category="SPI", severity=E,
    rationale="Until SPI.begin() the SPI pins are not configured and transfers return garbage.",
    non_compliant="SPI.transfer(0x42);",
    compliant="""\
SPI.begin();
SPI.transfer(0x42);""",
    fix_strategy="Call SPI.begin() in setup().",
))

_add(RuleInfo(
    code="missing-spi-transaction",
    title="SPI.transfer() outside a transaction",
    category="SPI", severity=W,
    rationale=(
        "Without beginTransaction() the clock, bit order and mode are whatever "
        "the last library left behind."
    ),
    non_compliant="SPI.transfer(0x42);",
    compliant="""\
SPI.beginTransaction(SPISettings(1000000, MSBFIRST, SPI_MODE0));
SPI.transfer(0x42);
SPI.endTransaction();""",
    fix_strategy="Wrap transfers in beginTransaction()/endTransaction().",
))

_add(RuleInfo(
    code="spi-speed-warning",
    title="SPI clock above the supported maximum",
    category="SPI", severity=W,
    rationale="Most peripherals and AVR boards top out around 8 MHz.",
    non_compliant="SPISettings(16000000, MSBFIRST, SPI_MODE0)",
    compliant="SPISettings(4000000, MSBFIRST, SPI_MODE0)",
    fix_strategy="Use the clock rate from the device datasheet.",
))

# ═══════════════════════════════════════════════════════════════════════
#  Serial
# ═══════════════════════════════════════════════════════════════════════

_add(RuleInfo(
    code="missing-serial-begin",
    title="Serial used without Serial.begin()",
    category="Serial", severity=W,
    rationale="Output is discarded until the UART is opened.",
    non_compliant='Serial.println("hello");',
    compliant="""\
Serial.begin(9600);
Serial.println("hello");""",
    fix_strategy="Call Serial.begin(<baud>) in setup().",
))

_add(RuleInfo(
    code="non-standard-baud",
    title="Non-standard baud rate",
    category="Serial", severity=W,
    rationale="Serial monitors and USB bridges only offer the standard rates.",
    non_compliant="Serial.begin(9000);",
    compliant="Serial.begin(9600);",
    fix_strategy="Use a standard rate such as 9600 or 115200.",
))

_add(RuleInfo(
    code="high-baud-rate",
    title="Baud rate above 115200",
    category="Serial", severity=I,
    rationale="Clock error at high rates on 16 MHz parts causes corrupted characters.",
    fix_strategy="Stay at or below 115200 unless the link is known to cope.",
))

_add(RuleInfo(
    code="invalid-serial-config",
    title="Unknown serial frame configuration",
    category="Serial", severity=E,
    rationale="The second argument to Serial.begin() must be a SERIAL_xxx frame constant.",
    non_compliant="Serial.begin(9600, 8N1);",
    compliant="Serial.begin(9600, SERIAL_8N1);",
    fix_strategy="Use one of the SERIAL_8N1, SERIAL_8E1, ... constants.",
))

_add(RuleInfo(
    code="excessive-serial",
    title="Many Serial.print() calls",
    category="Serial", severity=I,
    rationale="At low baud rates printing dominates loop time once the TX buffer fills.",
    fix_strategy="Trim debug output or raise the baud rate.",
))

# ═══════════════════════════════════════════════════════════════════════
#  Interrupts
# ═══════════════════════════════════════════════════════════════════════

_add(RuleInfo(
    code="delay-in-isr",
    title="delay() inside an interrupt handler",
    category="Interrupts", severity=E,
    rationale="Interrupts are disabled in a handler, so the millis() counter stops and delay() never returns.",
    non_compliant="""\
void onButton() {
  delay(50);
}""",
    compliant="""\
volatile bool pressed;
void onButton() {
  pressed = true;
}""",
    fix_strategy="Set a flag in the handler and do the waiting in loop().",
))

_add(RuleInfo(
    code="long-isr",
    title="Long interrupt handler",
    category="Interrupts", severity=W,
    rationale="Long handlers delay other interrupts, including the timer behind millis(). "
              "Busy-waiting with delayMicroseconds() beyond the board's ISR time budget is reported too.",
    fix_strategy="Keep handlers to a few statements; defer work to loop().",
))

_add(RuleInfo(
    code="missing-volatile",
    title="ISR-shared global not declared volatile",
    category="Interrupts", severity=W,
    rationale="Without volatile the compiler may cache the variable and never see the handler's writes.",
    non_compliant="""\
int count;
void onPulse() { count++; }""",
    compliant="""\
volatile int count;
void onPulse() { count++; }""",
    fix_strategy="Declare every variable shared with a handler as volatile.",
))

_add(RuleInfo(
    code="invalid-interrupt-pin",
    title="Pin cannot raise external interrupts",
    category="Interrupts", severity=E, board_specific=True,
    rationale="digitalPinToInterrupt() returns NOT_AN_INTERRUPT and the handler is never attached.",
    non_compliant="attachInterrupt(digitalPinToInterrupt(7), onEdge, RISING);   // Uno",
    compliant="attachInterrupt(digitalPinToInterrupt(2), onEdge, RISING);",
    fix_strategy="Move the signal to an interrupt-capable pin.",
))

# ═══════════════════════════════════════════════════════════════════════
#  Timing
# ═══════════════════════════════════════════════════════════════════════

_add(RuleInfo(
    code="long-delay",
    title="delay() between 1 and 5 seconds",
    category="Timing", severity=I,
    rationale="The sketch cannot react to input while it waits.",
    fix_strategy="Compare millis() against a start time instead of blocking.",
))

_add(RuleInfo(
    code="blocking-delay",
    title="delay() longer than 5 seconds",
    category="Timing", severity=W,
    rationale="Multi-second blocking makes buttons, serial input and watchdogs unreliable.",
    non_compliant="delay(10000);",
    compliant="""\
if (millis() - last >= 10000) {
  last = millis();
}""",
    fix_strategy="Use millis()-based scheduling.",
))

_add(RuleInfo(
    code="millis-overflow",
    title="millis() wraps after ~49.7 days",
    category="Timing", severity=I,
    rationale="Comparisons like millis() > deadline break at the wrap; subtraction does not.",
    fix_strategy="Always compare elapsed time: millis() - start >= interval.",
))

_add(RuleInfo(
    code="watchdog-delay",
    title="Watchdog combined with delay()",
    category="Timing", severity=W,
    rationale="A delay longer than the watchdog timeout resets the board.",
    fix_strategy="Keep delays shorter than the timeout or call wdt_reset() while waiting.",
))

_add(RuleInfo(
    code="timer-register-warning",
    title="Direct timer register write",
    category="Timing", severity=I,
    rationale="Timer0 drives millis()/delay(); timers 1 and 2 drive PWM and tone().",
    fix_strategy="Document which core features the timer change disables.",
))

_add(RuleInfo(
    code="unusual-pwm-freq",
    title="PWM frequency outside the usual range",
    category="Timing", severity=W,
    rationale="Very low frequencies flicker; very high ones lose resolution and heat drivers.",
    fix_strategy="Use 500-5000 Hz for motors or 20 kHz+ for silent LED dimming.",
))

# ═══════════════════════════════════════════════════════════════════════
#  Analog / PWM I/O
# ═══════════════════════════════════════════════════════════════════════

_add(RuleInfo(
    code="invalid-analog-pin",
    title="analogRead() on a pin without ADC",
    category="I/O", severity=W, board_specific=True,
    rationale="Pins that are not routed to the ADC return meaningless values.",
    non_compliant="analogRead(7);   // Uno has A0-A5",
    compliant="analogRead(A3);",
    fix_strategy="Read from one of the board's analog pins.",
))

_add(RuleInfo(
    code="no-pwm-support",
    title="analogWrite() on a pin without PWM",
    category="I/O", severity=E, board_specific=True,
    rationale="On a non-PWM pin analogWrite() degrades to on/off at 128.",
    non_compliant="analogWrite(2, 128);   // Uno",
    compliant="analogWrite(3, 128);",
    fix_strategy="Use a PWM-capable pin.",
))

_add(RuleInfo(
    code="pwm-value-overflow",
    title="PWM duty above 255",
    category="I/O", severity=E,
    rationale="analogWrite() takes 8 bits by default; larger values wrap or saturate.",
    non_compliant="analogWrite(9, 300);",
    compliant="analogWrite(9, map(level, 0, 1023, 0, 255));",
    fix_strategy="Scale the value into 0-255, or set analogWriteResolution() where supported.",
))

_add(RuleInfo(
    code="tone-pwm-conflict",
    title="tone() disables PWM on shared-timer pins",
    category="I/O", severity=W, board_specific=True,
    rationale="tone() takes over a hardware timer that also drives PWM on some pins.",
    fix_strategy="Move PWM outputs off the pins that share the tone() timer.",
))

_add(RuleInfo(
    code="invalid-map-range",
    title="map() with an empty input range",
    category="I/O", severity=E,
    rationale="map() divides by (fromHigh - fromLow); equal bounds divide by zero.",
    non_compliant="map(x, 10, 10, 0, 255);",
    compliant="map(x, 0, 1023, 0, 255);",
    fix_strategy="Give map() distinct input bounds.",
))

_add(RuleInfo(
    code="missing-random-seed",
    title="random() without randomSeed()",
    category="I/O", severity=I,
    rationale="The generator starts from the same seed on every reset.",
    fix_strategy="Call randomSeed(analogRead(0)) in setup().",
))

_add(RuleInfo(
    code="aref-external-warning",
    title="EXTERNAL analog reference",
    category="I/O", severity=W,
    rationale="The AREF pin must carry 0-5V; more damages the ADC.",
    fix_strategy="Verify the voltage on AREF before switching the reference.",
))

# ═══════════════════════════════════════════════════════════════════════
#  Memory
# ═══════════════════════════════════════════════════════════════════════

_add(RuleInfo(
    code="unsafe-string-function",
    title="Unbounded string function",
    category="Memory", severity=W,
    rationale="strcpy/strcat/sprintf/gets write past the destination without a length limit.",
    non_compliant="strcpy(buf, input);",
    compliant="strncpy(buf, input, sizeof(buf) - 1);",
    fix_strategy="Use the bounded variant with the destination size.",
))

_add(RuleInfo(
    code="dynamic-allocation",
    title="Heap allocation",
    category="Memory", severity=I,
    rationale="With a few KB of RAM, repeated malloc/free fragments the heap until allocations fail.",
    fix_strategy="Allocate once in setup() or use static buffers.",
))

_add(RuleInfo(
    code="string-fragmentation",
    title="String concatenation",
    category="Memory", severity=I,
    rationale="Each concatenation reallocates the String's heap buffer.",
    non_compliant='String msg = "T=" + String(t);',
    compliant='Serial.print(F("T=")); Serial.println(t);',
    fix_strategy="Print the pieces separately or use a fixed char buffer with snprintf().",
))

_add(RuleInfo(
    code="slow-float",
    title="Floating point on an 8-bit AVR",
    category="Memory", severity=I, board_specific=True,
    rationale="AVR has no FPU; every float operation is a software routine.",
    fix_strategy="Use scaled integers where precision allows.",
))

_add(RuleInfo(
    code="use-progmem",
    title="Large constant table in RAM",
    category="Memory", severity=I,
    rationale="On AVR, initialized arrays are copied to RAM at startup unless marked PROGMEM.",
    non_compliant="const byte table[] = { /* 100+ values */ };",
    compliant="const byte table[] PROGMEM = { /* 100+ values */ };",
    fix_strategy="Mark the table PROGMEM and read it with pgm_read_byte().",
))

_add(RuleInfo(
    code="eeprom-wear",
    title="Frequent EEPROM writes",
    category="Memory", severity=W,
    rationale="Each EEPROM cell survives about 100,000 writes.",
    non_compliant="""\
void loop() {
  EEPROM.write(0, value);
}""",
    compliant="""\
void loop() {
  EEPROM.update(0, value);
}""",
    fix_strategy="Use EEPROM.update() and only write when the value changed.",
))

_add(RuleInfo(
    code="excessive-globals",
    title="Many global variables",
    category="Memory", severity=I,
    rationale="Globals occupy RAM for the whole run, leaving less for the stack.",
    fix_strategy="Group related state into structs or move it into functions.",
))

# ═══════════════════════════════════════════════════════════════════════
#  ESP32
# ═══════════════════════════════════════════════════════════════════════

_add(RuleInfo(
    code="voltage-level-warning",
    title="ESP32 outputs are 3.3V",
    category="ESP32", severity=I,
    rationale="5V modules may not register 3.3V as HIGH, and 5V inputs damage ESP32 pins.",
    fix_strategy="Use 3.3V parts or a level shifter.",
))

_add(RuleInfo(
    code="esp32-wifi-credentials",
    title="WiFi.begin() without credentials",
    category="ESP32", severity=E,
    rationale="Without SSID and password the station reconnects to whatever was stored, if anything.",
    non_compliant="WiFi.begin();",
    compliant="WiFi.begin(ssid, password);",
    fix_strategy="Pass the network SSID and password.",
))

_add(RuleInfo(
    code="esp32-wifi-include",
    title="WiFi used without #include <WiFi.h>",
    category="ESP32", severity=E,
    rationale="The WiFi object is declared in WiFi.h.",
    fix_strategy="Add #include <WiFi.h> at the top of the sketch.",
))

_add(RuleInfo(
    code="esp32-wifi-power",
    title="WiFi mode not set to station",
    category="ESP32", severity=I,
    rationale="The default mode may keep the soft-AP running and drawing power.",
    fix_strategy="Call WiFi.mode(WIFI_STA) before WiFi.begin().",
))

_add(RuleInfo(
    code="esp32-ble-wifi-conflict",
    title="BLE and WiFi used together",
    category="ESP32", severity=W,
    rationale="Both stacks together need well over 100KB of heap and share the radio.",
    fix_strategy="Monitor free heap, or release one stack when it is not needed.",
))

_add(RuleInfo(
    code="esp32-ble-init",
    title="BLE used without BLEDevice::init()",
    category="ESP32", severity=E,
    rationale="Servers and characteristics need the BLE controller started first.",
    non_compliant="BLEServer *server = BLEDevice::createServer();",
    compliant="""\
BLEDevice::init("Sensor");
BLEServer *server = BLEDevice::createServer();""",
    fix_strategy='Call BLEDevice::init("Name") first.',
))

_add(RuleInfo(
    code="esp32-deep-sleep-wakeup",
    title="Deep sleep without wake-up source",
    category="ESP32", severity=W,
    rationale="With no wake-up source the chip only wakes on reset.",
    non_compliant="esp_deep_sleep_start();",
    compliant="""\
esp_sleep_enable_timer_wakeup(60ULL * 1000000);
esp_deep_sleep_start();""",
    fix_strategy="Enable a timer, ext0/ext1 or touch wake-up before sleeping.",
))

_add(RuleInfo(
    code="esp32-power-optimization",
    title="Long delay on a battery-capable board",
    category="ESP32", severity=I,
    rationale="delay() keeps the CPU and radio powered; deep sleep draws microamps.",
    fix_strategy="Use esp_deep_sleep() for long idle periods.",
))

_add(RuleInfo(
    code="esp32-core0-conflict",
    title="Task pinned to core 0",
    category="ESP32", severity=W,
    rationale="The WiFi and Bluetooth stacks run on core 0; busy tasks there starve them.",
    fix_strategy="Pin application tasks to core 1.",
))

_add(RuleInfo(
    code="esp32-freertos-include",
    title="FreeRTOS API used without its headers",
    category="ESP32", severity=E,
    rationale="Task functions are declared in freertos/FreeRTOS.h and freertos/task.h.",
    fix_strategy="Include both FreeRTOS headers explicitly.",
))

_add(RuleInfo(
    code="esp32-psram-config",
    title="PSRAM allocation",
    category="ESP32", severity=I,
    rationale="ps_malloc() returns NULL when PSRAM is disabled in the board options.",
    fix_strategy="Enable PSRAM in the board configuration and check for NULL.",
))

_add(RuleInfo(
    code="esp32-large-malloc",
    title="Large allocation from internal RAM",
    category="ESP32", severity=I,
    rationale="Internal heap is shared with WiFi/BLE; big buffers fit better in PSRAM.",
    fix_strategy="Use ps_malloc() on boards with PSRAM.",
))

_add(RuleInfo(
    code="esp32-strapping-pin",
    title="Strapping pin used as GPIO",
    category="ESP32", severity=W,
    rationale=(
        "GPIO0, 2, 5, 12 and 15 are sampled at reset to pick the boot mode and "
        "flash voltage.  External pull resistors on them can prevent booting."
    ),
    non_compliant="pinMode(12, INPUT);",
    compliant="pinMode(13, INPUT);",
    fix_strategy="Prefer non-strapping GPIOs, or make sure the pin floats at reset.",
))


# ═══════════════════════════════════════════════════════════════════════
#  Public API
# ═══════════════════════════════════════════════════════════════════════

def get_rule(code: str) -> Optional[RuleInfo]:
    """Look up a rule by its diagnostic code (e.g. 'missing-volatile')."""
    return _RULES.get(code)


def get_all_rules() -> Dict[str, RuleInfo]:
    return dict(_RULES)


def get_rules_by_category(category: str) -> List[RuleInfo]:
    return [r for r in _RULES.values() if r.category.lower() == category.lower()]


def format_rule_explanation(code: str) -> str:
    """Return a human-readable markdown explanation of a rule."""
    rule = get_rule(code)
    if rule is None:
        return f"Unknown rule: {code}"

    explanation = f"""## {rule.code}: {rule.title}
**Category**: {rule.category}  |  **Severity**: {rule.severity.name.title()}"""
    if rule.board_specific:
        explanation += "  |  requires a selected board"
    explanation += f"""

### Rationale
{rule.rationale}
"""
    if rule.non_compliant:
        explanation += f"""
### Non-Compliant Example
```cpp
{rule.non_compliant}
```
"""
    if rule.compliant:
        explanation += f"""
### Compliant Example
```cpp
{rule.compliant}
```
"""
    explanation += f"""
### How to Fix
{rule.fix_strategy}"""
    return explanation
