
import unittest
import os
import sys
import threading
import time
from unittest import mock

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from sketch_sentinel.hardware_db import HardwareDatabase
from sketch_sentinel.session import AnalysisSession

PWM_ON_PIN_2 = "void loop() {\n  analogWrite(2, 128);\n}\n"


def make_session(board_id="arduino-uno", **kwargs):
    db = HardwareDatabase()
    db.initialize()
    return AnalysisSession(hardware_db=db, board_id=board_id, **kwargs)


class TestAnalyze(unittest.TestCase):

    def test_result_contents(self):
        s = make_session()
        result = s.analyze(PWM_ON_PIN_2, 1)
        self.assertEqual(result.version, 1)
        self.assertEqual(result.board_id, "arduino-uno")
        self.assertEqual(result.codes(), ["no-pwm-support"])
        self.assertEqual([r.pin for r in result.pin_map], [2])
        self.assertEqual(result.memory.limits.ram, 2048)

        data = result.to_dict()
        self.assertEqual(set(data), {"uri", "version", "diagnostics", "pinMap", "memory"})
        self.assertEqual(data["pinMap"][0]["primaryType"], "pwm")

    def test_stale_version_dropped(self):
        """A result older than the newest published one is never returned."""
        s = make_session()
        self.assertIsNotNone(s.analyze(PWM_ON_PIN_2, 5))
        self.assertIsNone(s.analyze("void loop() {}\n", 4))
        self.assertIsNotNone(s.analyze("void loop() {}\n", 5))

    def test_documents_are_independent(self):
        s = make_session()
        s.analyze(PWM_ON_PIN_2, 9, uri="file:///a.ino")
        self.assertIsNotNone(s.analyze(PWM_ON_PIN_2, 1, uri="file:///b.ino"))

    def test_close_forgets_versions(self):
        s = make_session()
        s.analyze(PWM_ON_PIN_2, 7, uri="file:///a.ino")
        s.close("file:///a.ino")
        self.assertIsNotNone(s.analyze(PWM_ON_PIN_2, 1, uri="file:///a.ino"))

    def test_board_override_per_call(self):
        s = make_session()
        result = s.analyze(PWM_ON_PIN_2, 1, board_id="arduino:avr:mega")
        self.assertEqual(result.board_id, "arduino-mega")
        self.assertEqual(result.memory.limits.ram, 8192)
        self.assertEqual(result.codes(), [])


class TestBoardSwitch(unittest.TestCase):

    def test_set_board_reanalyses_open_documents(self):
        s = make_session()
        self.assertEqual(s.analyze(PWM_ON_PIN_2, 1).codes(), ["no-pwm-support"])

        results = s.set_board("esp32-devkit")
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].board_id, "esp32-devkit")
        self.assertNotIn("no-pwm-support", results[0].codes())
        self.assertEqual(results[0].memory.limits.ram, 327680)

    def test_board_macros_select_branch(self):
        """#ifdef branches follow the active board's toolchain defines."""
        text = ("#ifdef ESP32\n#define LED 2\n#else\n#define LED 13\n#endif\n"
                "void setup() {\n  pinMode(LED, OUTPUT);\n}\n")
        s = make_session()
        self.assertEqual([r.pin for r in s.analyze(text, 1).pin_map], [13])
        results = s.set_board("esp32-devkit")
        self.assertEqual([r.pin for r in results[0].pin_map], [2])

    def test_describe_symbol_follows_board(self):
        text = ("#ifdef ESP32\n#define LED 2\n#else\n#define LED 13\n#endif\n"
                "void setup() {\n  pinMode(LED, OUTPUT);\n}\n")
        s = make_session()
        self.assertIn("`LED` = pin 13", s.describe_symbol(text, 6, 11).markdown)
        info = s.describe_symbol(text, 6, 11, board_id="esp32-devkit")
        self.assertIn("`LED` = pin 2", info.markdown)
        self.assertIn("Strapping pin", info.markdown)
        self.assertEqual(s.board_id, "esp32-devkit")

    def test_clear_board(self):
        s = make_session()
        s.set_board(None)
        self.assertIsNone(s.board)
        result = s.analyze(PWM_ON_PIN_2, 1)
        self.assertEqual(result.codes(), [])
        self.assertEqual(result.memory.limits.ram, 2048)


class TestDegradation(unittest.TestCase):

    def test_memory_failure_keeps_last_estimate(self):
        s = make_session()
        first = s.analyze(PWM_ON_PIN_2, 1)
        with mock.patch.object(s.memory_analyzer, "analyze_memory", side_effect=RuntimeError("boom")):
            second = s.analyze(PWM_ON_PIN_2 + "int x;\n", 2)
        self.assertIs(second.memory, first.memory)
        self.assertEqual(second.codes(), ["no-pwm-support"])

    def test_pin_tracker_failure_keeps_diagnostics(self):
        s = make_session()
        with mock.patch.object(s.pin_tracker, "analyze_pin_usage", side_effect=RuntimeError("boom")):
            result = s.analyze(PWM_ON_PIN_2, 1)
        self.assertEqual(result.pin_map, [])
        self.assertEqual(result.codes(), ["no-pwm-support"])
        self.assertIsNotNone(result.memory)


class TestDebounce(unittest.TestCase):

    def test_only_latest_edit_is_analysed(self):
        received = []
        done = threading.Event()

        def on_result(result):
            received.append(result)
            done.set()

        s = make_session(on_result=on_result, debounce_ms=50)
        try:
            s.schedule("file:///a.ino", "void loop() {}\n", 1)
            s.schedule("file:///a.ino", "void loop() {\n  delay(2000);\n}\n", 2)
            s.schedule("file:///a.ino", PWM_ON_PIN_2, 3)
            self.assertTrue(done.wait(5))
            time.sleep(0.2)
        finally:
            s.shutdown()

        self.assertEqual([r.version for r in received], [3])
        self.assertEqual(received[0].codes(), ["no-pwm-support"])

    def test_close_cancels_pending(self):
        received = []
        s = make_session(on_result=received.append, debounce_ms=100)
        s.schedule("file:///a.ino", PWM_ON_PIN_2, 1)
        s.close("file:///a.ino")
        time.sleep(0.3)
        self.assertEqual(received, [])

    def test_callback_error_is_logged(self):
        done = threading.Event()

        def on_result(result):
            done.set()
            raise ValueError("consumer failed")

        s = make_session(on_result=on_result, debounce_ms=10)
        with self.assertLogs("sketch_sentinel.session", level="ERROR"):
            s.schedule("file:///a.ino", PWM_ON_PIN_2, 1)
            self.assertTrue(done.wait(5))
            time.sleep(0.1)


if __name__ == "__main__":
    unittest.main()
