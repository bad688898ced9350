
import unittest
import json
import os
import sys
import tempfile

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

import fastmcp_server as srv
from sketch_sentinel.hardware_db import HardwareDatabase
from sketch_sentinel.rule_catalog import get_all_rules
from sketch_sentinel.session import AnalysisSession

BLINK = """\
void setup() {
  Serial.begin(9600);
  pinMode(13, OUTPUT);
}

void loop() {
  digitalWrite(13, HIGH);
}
"""


class TestServerTools(unittest.TestCase):

    def setUp(self):
        db = HardwareDatabase()
        db.initialize()
        srv.session = AnalysisSession(hardware_db=db, board_id="arduino-uno")

    def tearDown(self):
        srv.session = None

    def test_analyze_clean_sketch(self):
        report = srv.analyze_sketch(BLINK)
        self.assertIn("# Sketch Analysis - sketch", report)
        self.assertIn("**Board**: Arduino Uno (`arduino-uno`)", report)
        self.assertIn("No issues found.", report)
        self.assertIn("| RAM | 212 B | 2048 B | 10% |", report)

    def test_analyze_reports_diagnostics(self):
        report = srv.analyze_sketch("void loop() {\n  analogWrite(2, 128);\n}\n")
        self.assertIn("`no-pwm-support`", report)
        self.assertIn("1 error(s)", report)

    def test_board_argument_switches_board(self):
        report = srv.analyze_sketch("void loop() {\n  analogWrite(2, 128);\n}\n", board_id="esp32-devkit")
        self.assertNotIn("`no-pwm-support`", report)
        self.assertEqual(srv.session.board_id, "esp32-devkit")

    def test_analyze_json(self):
        data = json.loads(srv.analyze_sketch_json(BLINK))
        self.assertEqual(set(data), {"uri", "version", "diagnostics", "pinMap", "memory"})
        self.assertEqual(data["diagnostics"], [])
        self.assertEqual(data["memory"]["ram"]["total"], 212)
        self.assertEqual({p["pin"] for p in data["pinMap"]}, {0, 1, 13})

    def test_versions_increase(self):
        first = json.loads(srv.analyze_sketch_json(BLINK))["version"]
        second = json.loads(srv.analyze_sketch_json(BLINK))["version"]
        self.assertGreater(second, first)

    def test_analyze_file(self):
        with tempfile.NamedTemporaryFile("w", suffix=".ino", delete=False) as f:
            f.write(BLINK)
            path = f.name
        try:
            report = srv.analyze_file(path)
            self.assertIn(f"# Sketch Analysis - {os.path.basename(path)}", report)
        finally:
            os.unlink(path)
        self.assertTrue(srv.analyze_file(path).startswith("Error: File not found"))

    def test_pin_map_tool(self):
        report = srv.pin_map("pinMode(5, OUTPUT);\ndigitalRead(5);\n")
        self.assertIn("# Pin Map", report)
        self.assertIn("| 5 | D5 (PWM) |", report)
        self.assertIn("conflict", report)

    def test_memory_report_tool(self):
        report = srv.memory_report("byte buf[2000];\nvoid loop() {\n  buf[0] = 1;\n}\n")
        self.assertIn("# Memory Report", report)
        self.assertIn("ram-critical", report)
        self.assertIn("`buf[2000]`", report)

    def test_set_board(self):
        self.assertIn("Active board: **Arduino Nano**", srv.set_board("arduino:avr:nano"))
        self.assertTrue(srv.set_board("teensy").startswith("Error: Unknown board"))
        self.assertEqual(srv.session.board_id, "arduino-nano")
        self.assertIn("Board cleared", srv.set_board(""))
        self.assertIsNone(srv.session.board)

    def test_list_boards(self):
        listing = srv.list_boards()
        for board_id in ("arduino-uno", "arduino-nano", "arduino-mega", "esp32-devkit"):
            self.assertIn(f"`{board_id}`", listing)

    def test_board_info(self):
        info = srv.board_info("esp32-devkit")
        self.assertIn("# ESP32 DevKit", info)
        self.assertIn("**Input only**: 34, 35, 36, 39", info)
        self.assertIn("any GPIO", info)
        self.assertTrue(srv.board_info("nope").startswith("Error: Unknown board"))

    def test_explain_rule(self):
        self.assertTrue(srv.explain_rule("pin-conflict").startswith("## pin-conflict:"))
        self.assertTrue(srv.explain_rule("`missing-volatile`").startswith("## missing-volatile:"))
        self.assertTrue(srv.explain_rule("nope").startswith("Unknown rule: `nope`"))

    def test_coverage_report(self):
        report = srv.coverage_report()
        self.assertIn("# Sketch Sentinel Coverage Report", report)
        self.assertIn(f"**Total Rules Supported**: {len(get_all_rules())}", report)
        self.assertIn("| **ESP32** |", report)

    def test_coverage_report_category(self):
        report = srv.coverage_report("i2c")
        self.assertIn("| **I2C** |", report)
        self.assertNotIn("| **ESP32** |", report)
        missing = srv.coverage_report("audio")
        self.assertTrue(missing.startswith("Unknown category: `audio`"))
        self.assertIn("Pins", missing)

    def test_one_shot_tools_leave_no_open_documents(self):
        with tempfile.NamedTemporaryFile("w", suffix=".ino", delete=False) as f:
            f.write(BLINK)
            path = f.name
        try:
            srv.analyze_file(path)
            srv.analyze_sketch(BLINK)
        finally:
            os.unlink(path)
        self.assertEqual(srv.session._documents, {})
        self.assertNotIn("Re-analysed", srv.set_board("arduino-nano"))

    def test_describe_symbol(self):
        code = "void setup() {\n  PORTB |= (1 << PB5);\n}\n"
        self.assertIn("**Bit position**: 5", srv.describe_symbol(code, 1, 18))
        self.assertEqual(srv.describe_symbol(code, 0, 0),
                         "No hardware information for the symbol at this position.")
        info = srv.describe_symbol("pinMode(34, INPUT);", 0, 9, board_id="esp32-devkit")
        self.assertIn("Input only", info)
        self.assertEqual(srv.session.board_id, "esp32-devkit")


if __name__ == "__main__":
    unittest.main()
