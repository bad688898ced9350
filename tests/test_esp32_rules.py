
import unittest
import os
import sys

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from sketch_sentinel.diagnostic_engine import DiagnosticEngine
from sketch_sentinel.hardware_db import HardwareDatabase
from sketch_sentinel.models import SourceText


class TestEsp32Rules(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.db = HardwareDatabase()
        cls.db.initialize()

    def codes(self, text, board="esp32-devkit"):
        self.db.load_board(board)
        engine = DiagnosticEngine(self.db if board else None, parallel=False)
        return sorted(d.code for d in engine.validate(SourceText(text)))

    def esp32_codes(self, text, board="esp32-devkit"):
        esp_only = ("esp32-", "voltage-level-warning")
        return [c for c in self.codes(text, board) if c.startswith(esp_only)]

    # ── Gating ──

    def test_markers_enable_rules_without_board(self):
        """With no board loaded, an ESP32 include is enough to run the checks."""
        text = "#include <WiFi.h>\nvoid setup() {\n  WiFi.begin();\n}\n"
        self.assertEqual(self.esp32_codes(text, None),
                         ["esp32-wifi-credentials", "esp32-wifi-power"])

    def test_non_esp32_board_disables_rules(self):
        text = "#include <WiFi.h>\nvoid setup() {\n  WiFi.begin();\n}\n"
        self.assertEqual(self.esp32_codes(text, "arduino-uno"), [])

    def test_plain_sketch_without_board(self):
        self.assertEqual(self.esp32_codes("void setup() {\n  pinMode(12, INPUT);\n}\n", None), [])

    # ── WiFi / BLE ──

    def test_wifi_include_missing(self):
        text = "void setup() {\n  WiFi.mode(WIFI_STA);\n  WiFi.begin(ssid, password);\n}\n"
        self.assertEqual(self.esp32_codes(text), ["esp32-wifi-include"])

    def test_ble_with_wifi(self):
        text = ('#include <WiFi.h>\n#include <BLEDevice.h>\n'
                'void setup() {\n  WiFi.mode(WIFI_STA);\n  WiFi.begin(ssid, pw);\n'
                '  BLEDevice::init("sensor");\n}\n')
        self.assertEqual(self.esp32_codes(text), ["esp32-ble-wifi-conflict"])

    def test_ble_server_without_init(self):
        text = "void setup() {\n  BLEServer* server = BLEDevice::createServer();\n}\n"
        self.assertEqual(self.esp32_codes(text), ["esp32-ble-init"])

    # ── Power / tasks / heap ──

    def test_deep_sleep_without_wakeup(self):
        self.assertEqual(self.esp32_codes("void loop() {\n  esp_deep_sleep_start();\n}\n"),
                         ["esp32-deep-sleep-wakeup"])
        text = "void loop() {\n  esp_sleep_enable_timer_wakeup(1000000);\n  esp_deep_sleep_start();\n}\n"
        self.assertEqual(self.esp32_codes(text), [])

    def test_task_on_core_zero(self):
        text = ('void setup() {\n'
                '  xTaskCreatePinnedToCore(worker, "worker", 2048, NULL, 1, NULL, 0);\n}\n')
        self.assertEqual(self.esp32_codes(text), ["esp32-core0-conflict", "esp32-freertos-include"])

        text = "#include <freertos/FreeRTOS.h>\n" + text.replace("NULL, 0)", "NULL, 1)")
        self.assertEqual(self.esp32_codes(text), [])

    def test_heap(self):
        self.assertEqual(self.esp32_codes("void setup() {\n  buf = ps_malloc(4096);\n}\n"),
                         ["esp32-psram-config"])
        self.assertEqual(self.esp32_codes("void setup() {\n  buf = malloc(20000);\n}\n"),
                         ["esp32-large-malloc"])
        self.assertEqual(self.esp32_codes("void setup() {\n  buf = malloc(512);\n}\n"), [])

    # ── Pins ──

    def test_strapping_pin(self):
        self.assertEqual(self.esp32_codes("void setup() {\n  pinMode(12, INPUT);\n}\n"),
                         ["esp32-strapping-pin"])
        self.assertEqual(self.esp32_codes("void setup() {\n  pinMode(13, INPUT);\n}\n"), [])

    def test_voltage_level(self):
        text = "void setup() {\n  pinMode(4, OUTPUT);\n  digitalWrite(4, HIGH);\n}\n"
        self.assertEqual(self.esp32_codes(text), ["voltage-level-warning"])

    def test_uno_rules_relaxed_on_esp32(self):
        """PWM on any GPIO and interrupts on any pin are fine on ESP32."""
        text = ("void setup() {\n  attachInterrupt(digitalPinToInterrupt(4), onEdge, RISING);\n}\n"
                "void loop() {\n  analogWrite(13, 128);\n}\n")
        self.assertEqual(self.codes(text), [])


if __name__ == "__main__":
    unittest.main()
