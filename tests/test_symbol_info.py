
import unittest
import os
import sys

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from sketch_sentinel.hardware_db import HardwareDatabase
from sketch_sentinel.models import SourceText
from sketch_sentinel.symbol_info import SymbolDescriber


class SymbolTestCase(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.db = HardwareDatabase()
        cls.db.initialize()

    def describe(self, text, needle, board="arduino-uno", at=1):
        """Describe the symbol *at* characters into the first *needle* in *text*."""
        self.db.load_board(board)
        pos = SourceText(text).position_at(text.index(needle) + at)
        return SymbolDescriber(self.db).describe_symbol(text, pos.line, pos.character)


class TestRegisters(SymbolTestCase):

    SKETCH = "void setup() {\n  PORTB |= (1 << PB5);\n}\n"

    def test_register_bit(self):
        info = self.describe(self.SKETCH, "PB5")
        self.assertEqual(info.kind, "register-bit")
        self.assertEqual(info.word, "PB5")
        self.assertIn("**Register**: PORTB (`0x25`)", info.markdown)
        self.assertIn("**Bit position**: 5", info.markdown)
        self.assertIn("`0b00100000` (`0x20`)", info.markdown)
        self.assertEqual((info.range.start.line, info.range.start.character), (1, 17))
        self.assertEqual(info.range.end.character, 20)

    def test_register(self):
        info = self.describe(self.SKETCH, "PORTB")
        self.assertEqual(info.kind, "register")
        self.assertIn("ATmega328P at `0x25`", info.markdown)
        self.assertIn("| `PB5` | 5 | `0x20` |", info.markdown)

    def test_registers_need_a_board(self):
        self.assertIsNone(self.describe(self.SKETCH, "PB5", board=None))
        self.assertIsNone(self.describe(self.SKETCH, "PORTB", board="esp32-devkit"))


class TestPins(SymbolTestCase):

    def test_pin_number_in_pin_call(self):
        info = self.describe("pinMode(9, OUTPUT);", "9", at=0)
        self.assertEqual(info.kind, "pin")
        self.assertIn("## D9 (PWM)", info.markdown)
        self.assertIn("PWM output", info.markdown)
        self.assertNotIn("External interrupt", info.markdown)

    def test_serial_pin_note(self):
        info = self.describe("pinMode(0, INPUT);", "0", at=0)
        self.assertIn("Serial RX", info.markdown)
        self.assertIn("USB serial port", info.markdown)

    def test_number_outside_pin_call(self):
        self.assertIsNone(self.describe("int x = 9;", "9", at=0))

    def test_board_alias(self):
        info = self.describe("void loop() {\n  analogRead(A4);\n}\n", "A4")
        self.assertEqual(info.kind, "pin")
        self.assertIn("## A4 (SDA)", info.markdown)
        self.assertIn("`A4` = pin 18", info.markdown)
        self.assertIn("Analog input (A4)", info.markdown)
        self.assertIn("Wire SDA", info.markdown)

    def test_sketch_constant(self):
        text = "#define LED 13\nvoid setup() {\n  pinMode(LED, OUTPUT);\n}\n"
        info = self.describe(text, "LED, OUTPUT")
        self.assertEqual(info.kind, "pin")
        self.assertIn("## D13 (SCK)", info.markdown)
        self.assertIn("`LED` = pin 13", info.markdown)

    def test_esp32_pin_notes(self):
        info = self.describe("pinMode(34, INPUT);", "34", board="esp32-devkit", at=0)
        self.assertIn("GPIO34 (input only)", info.markdown)
        self.assertIn("Input only", info.markdown)
        self.assertIn("Analog input (A6)", info.markdown)
        self.assertIn("External interrupt", info.markdown)
        strapping = self.describe("digitalWrite(12, HIGH);", "12", board="esp32-devkit", at=0)
        self.assertIn("Strapping pin", strapping.markdown)

    def test_missing_pin(self):
        info = self.describe("pinMode(40, OUTPUT);", "40", at=0)
        self.assertIn("does not exist on Arduino Uno", info.markdown)


class TestBuses(SymbolTestCase):

    def test_wire_function(self):
        info = self.describe("Wire.beginTransmission(0x3C);", "beginTransmission")
        self.assertEqual(info.kind, "bus-function")
        self.assertIn("## Wire.beginTransmission", info.markdown)
        self.assertIn("7-bit I2C address", info.markdown)
        self.assertIn("0x3C: OLED Display (SSD1306)", info.markdown)

    def test_spi_function(self):
        info = self.describe("SPI.transfer(0x00);", "transfer")
        self.assertIn("**Returns**: uint8_t received data", info.markdown)
        self.assertIn("`SPI_MODE0`", info.markdown)

    def test_unknown_bus_function(self):
        self.assertIsNone(self.describe("Wire.setClock(400000);", "setClock"))

    def test_i2c_address(self):
        info = self.describe("Wire.beginTransmission(0x3C);", "0x3C")
        self.assertEqual(info.kind, "i2c-address")
        self.assertIn("OLED Display (SSD1306)", info.markdown)
        reserved = self.describe("Wire.requestFrom(0x05, 1);", "0x05")
        self.assertIn("Reserved address", reserved.markdown)
        unknown = self.describe("Wire.beginTransmission(0x09);", "0x09")
        self.assertIn("No well-known device", unknown.markdown)


class TestCoreAndTypes(SymbolTestCase):

    def test_core_function(self):
        info = self.describe("void loop() {\n  delay(100);\n}\n", "delay")
        self.assertEqual(info.kind, "function")
        self.assertIn("**Signature**: `void delay(unsigned long ms)`", info.markdown)

    def test_pin_mode_lists_board_pins(self):
        info = self.describe("pinMode(9, OUTPUT);", "pinMode")
        self.assertIn("**Pins on Arduino Uno**", info.markdown)
        self.assertIn("- PWM: 3, 5, 6, 9, 10, 11", info.markdown)

    def test_constant(self):
        info = self.describe("pinMode(9, OUTPUT);", "OUTPUT")
        self.assertEqual(info.kind, "constant")
        self.assertIn("Configure pin as output", info.markdown)

    def test_type_size_per_board(self):
        uno = self.describe("int count;", "int")
        self.assertIn("**Size on Arduino Uno**: 2 bytes", uno.markdown)
        self.assertIn("-32,768 to 32,767", uno.markdown)
        esp32 = self.describe("int count;", "int", board="esp32-devkit")
        self.assertIn("4 bytes", esp32.markdown)
        byte = self.describe("byte flags;", "byte", board=None)
        self.assertIn("**Size on AVR boards**: 1 byte\n", byte.markdown)
        self.assertIn("0 to 255", byte.markdown)


class TestIgnoredPositions(SymbolTestCase):

    def test_comment_and_string(self):
        self.assertIsNone(self.describe("// PORTB |= 1;\n", "PORTB"))
        self.assertIsNone(self.describe('Serial.println("PORTB");', "PORTB"))

    def test_whitespace_and_unknown_word(self):
        self.assertIsNone(self.describe("int  x;", "  ", at=1))
        self.assertIsNone(self.describe("counter++;", "counter"))

    def test_to_dict(self):
        info = self.describe("pinMode(9, OUTPUT);", "9", at=0)
        data = info.to_dict()
        self.assertEqual(set(data), {"word", "kind", "range", "contents"})
        self.assertEqual(data["range"]["start"], {"line": 0, "character": 8})


if __name__ == "__main__":
    unittest.main()
