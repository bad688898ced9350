
import unittest
import os
import re
import sys

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from sketch_sentinel.diagnostic_engine import DiagnosticEngine, registered_rules
from sketch_sentinel.hardware_db import HardwareDatabase
from sketch_sentinel.models import DiagnosticSeverity
from sketch_sentinel.rule_catalog import (
    format_rule_explanation, get_all_rules, get_rule, get_rules_by_category,
)

RULE_SOURCES = [
    os.path.join(PROJECT_ROOT, "sketch_sentinel", "embedded_rules.py"),
    os.path.join(PROJECT_ROOT, "sketch_sentinel", "esp32_rules.py"),
]
_KEBAB_LITERAL_RE = re.compile(r'"([a-z0-9]+(?:-[a-z0-9]+)+)"')


def emitted_codes():
    """Every kebab-case string literal in the validator modules, minus rule names."""
    names = {r.name for r in registered_rules()}
    codes = set()
    for path in RULE_SOURCES:
        with open(path, encoding="utf-8") as f:
            codes.update(_KEBAB_LITERAL_RE.findall(f.read()))
    return codes - names


class TestCatalogCoverage(unittest.TestCase):

    def test_every_emitted_code_documented(self):
        missing = emitted_codes() - set(get_all_rules())
        self.assertEqual(missing, set())

    def test_every_documented_code_emitted(self):
        unused = set(get_all_rules()) - emitted_codes()
        self.assertEqual(unused, set())

    def test_entries_complete(self):
        for code, info in get_all_rules().items():
            self.assertEqual(info.code, code)
            self.assertTrue(info.title, code)
            self.assertTrue(info.rationale, code)
            self.assertTrue(info.fix_strategy, code)
            self.assertIsInstance(info.severity, DiagnosticSeverity)

    def test_categories(self):
        esp32 = get_rules_by_category("esp32")
        self.assertTrue(esp32)
        self.assertTrue(all(r.code.startswith("esp32-") or r.code == "voltage-level-warning"
                            for r in esp32))
        self.assertIn("pin-conflict", [r.code for r in get_rules_by_category("Pins")])


class TestSeverityAgreement(unittest.TestCase):
    """Diagnostics are emitted with the severity the catalog documents."""

    SKETCHES = {
        "arduino-uno": (
            "int count = 0;\n"
            "float volts;\n"
            "void onTick() {\n  count++;\n  delay(5);\n}\n"
            "void setup() {\n"
            "  pinMode(5, OUTPUT);\n  pinMode(5, INPUT);\n  pinMode(25, OUTPUT);\n"
            "  pinMode(7, INPUT_PULLDOWN);\n"
            "  attachInterrupt(digitalPinToInterrupt(4), onTick, RISING);\n"
            "  Wire.beginTransmission(0x03);\n  Wire.beginTransmission(0x03);\n"
            "  SPI.transfer(1);\n  Serial.begin(12345, 8N1);\n"
            "}\n"
            "void loop() {\n"
            "  int buffer[600];\n  char line[400];\n"
            "  analogWrite(2, 400);\n  analogRead(7);\n  tone(3, 440);\n"
            "  delay(2000);\n  delay(9000);\n  digitalWrite(8, HIGH);\n"
            "  Serial.println(millis() + random(5));\n  TCCR1A = 0;\n"
            "  strcpy(a, b);\n  p = malloc(4);\n  EEPROM.write(0, 1);\n"
            "  int v = map(x, 3, 3, 0, 9);\n  analogReference(EXTERNAL);\n"
            "}\n"
        ),
        "esp32-devkit": (
            "void setup() {\n"
            "  pinMode(12, INPUT);\n  pinMode(34, OUTPUT);\n  digitalWrite(4, HIGH);\n"
            "  WiFi.begin();\n  BLEDevice::init(\"x\");\n"
            "  xTaskCreatePinnedToCore(w, \"w\", 2048, NULL, 1, NULL, 0);\n"
            "  buf = ps_malloc(64);\n  big = malloc(20000);\n"
            "  esp_deep_sleep_start();\n"
            "}\n"
        ),
    }

    def test_severities_match(self):
        db = HardwareDatabase()
        db.initialize()
        seen = set()
        for board, text in self.SKETCHES.items():
            db.load_board(board)
            for diag in DiagnosticEngine(db, parallel=False).validate(text):
                info = get_rule(diag.code)
                self.assertIsNotNone(info, diag.code)
                self.assertEqual(diag.severity, info.severity, diag.code)
                seen.add(diag.code)
        self.assertGreater(len(seen), 30)


class TestExplanation(unittest.TestCase):

    def test_known_rule(self):
        text = format_rule_explanation("missing-volatile")
        self.assertTrue(text.startswith("## missing-volatile: "))
        self.assertIn("### Rationale", text)
        self.assertIn("### How to Fix", text)
        self.assertIn("**Severity**: Warning", text)

    def test_board_specific_marker(self):
        self.assertIn("requires a selected board", format_rule_explanation("no-pwm-support"))

    def test_unknown_rule(self):
        self.assertEqual(format_rule_explanation("no-such-rule"), "Unknown rule: no-such-rule")
        self.assertIsNone(get_rule("no-such-rule"))


if __name__ == "__main__":
    unittest.main()
