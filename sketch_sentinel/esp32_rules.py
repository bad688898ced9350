"""
ESP32 validators: WiFi, BLE, deep sleep, FreeRTOS tasks, PSRAM and
strapping pins.

All of them are gated on ``ctx.is_esp32``: an ESP32 board is active, or no
board is loaded and the sketch itself looks like ESP32 code.
"""

import logging
import re
from typing import List

from .diagnostic_engine import RuleContext, rule
from .models import Diagnostic
from .sketch_scanner import iter_calls

logger = logging.getLogger(__name__)

DEFAULT_STRAPPING_PINS = [0, 2, 5, 12, 15]
DEEP_SLEEP_HINT_MS = 5000
LARGE_MALLOC_BYTES = 10000
CORE_AFFINITY_ARG = 6

_WIFI_USE_RE = re.compile(r"(?<![\w.])WiFi\.\w+")
_WIFI_INCLUDE_RE = re.compile(r"#\s*include\s*[<\"]WiFi\.h[>\"]")
_FREERTOS_INCLUDE_RE = re.compile(r"#\s*include\s*[<\"]freertos/FreeRTOS\.h[>\"]")
_BLE_INIT_RE = re.compile(r"\bBLEDevice::init\s*\(")
_BLE_SERVER_RE = re.compile(r"\bBLEServer\b|\bBLEDevice::createServer\s*\(")
_WAKEUP_SOURCE_RE = re.compile(r"\besp_(?:deep_)?sleep_enable_\w+\s*\(")
_PSRAM_ALLOC_RE = re.compile(r"\b(ps_malloc|heap_caps_malloc)\s*\(")


def _check_wifi(ctx: RuleContext) -> List[Diagnostic]:
    code = ctx.code
    diags = []

    for call in iter_calls(code, r"WiFi\.begin"):
        if not call.args:
            diags.append(ctx.error(
                call.start, len(call.name),
                "WiFi.begin() requires SSID and password: WiFi.begin(ssid, password)",
                "esp32-wifi-credentials",
            ))

    first_use = _WIFI_USE_RE.search(code)
    if first_use and not _WIFI_INCLUDE_RE.search(ctx.text):
        diags.append(ctx.error(
            first_use.start(), len("WiFi"),
            "Missing #include <WiFi.h> for WiFi functionality",
            "esp32-wifi-include",
        ))

    begin = re.search(r"(?<![\w.])WiFi\.begin\s*\(", code)
    if begin and not re.search(r"\bWiFi\.mode\s*\(\s*WIFI_STA\s*\)", code):
        diags.append(ctx.info(
            begin.start(), len("WiFi.begin"),
            "Consider WiFi.mode(WIFI_STA) to reduce power consumption (disables AP mode)",
            "esp32-wifi-power",
        ))
    return diags


def _check_ble(ctx: RuleContext) -> List[Diagnostic]:
    code = ctx.code
    diags = []
    init = _BLE_INIT_RE.search(code)

    if init and _WIFI_USE_RE.search(code):
        diags.append(ctx.warning(
            init.start(), len("BLEDevice::init"),
            "Using both BLE and WiFi simultaneously requires significant RAM (>100KB). "
            "Monitor memory usage closely.",
            "esp32-ble-wifi-conflict",
        ))

    server = _BLE_SERVER_RE.search(code)
    if server and not init:
        diags.append(ctx.error(
            server.start(), len(server.group(0).rstrip("( \t")),
            'BLE requires initialization with BLEDevice::init("DeviceName") before use',
            "esp32-ble-init",
        ))
    return diags


def _check_power(ctx: RuleContext) -> List[Diagnostic]:
    code = ctx.code
    diags = []

    for m in re.finditer(r"\besp_deep_sleep_start\s*\(", code):
        if not _WAKEUP_SOURCE_RE.search(code, 0, m.start()):
            diags.append(ctx.warning(
                m.start(), len("esp_deep_sleep_start"),
                "Deep sleep without wake-up source configured. ESP32 will sleep indefinitely. "
                "Use esp_sleep_enable_timer_wakeup() or esp_sleep_enable_ext0_wakeup()",
                "esp32-deep-sleep-wakeup",
            ))

    if not re.search(r"\besp_deep_sleep", code):
        for call in iter_calls(code, "delay"):
            if not call.args:
                continue
            ms = ctx.resolver.resolve(call.args[0])
            if ms is not None and ms > DEEP_SLEEP_HINT_MS:
                diags.append(ctx.info(
                    call.arg_offsets[0], len(call.args[0]),
                    f"Long delay ({ms}ms) blocks all execution. "
                    f"Consider using esp_deep_sleep() to save power on battery applications.",
                    "esp32-power-optimization",
                ))
    return diags


def _check_tasks(ctx: RuleContext) -> List[Diagnostic]:
    code = ctx.code
    diags = []

    for call in iter_calls(code, "xTaskCreatePinnedToCore"):
        if len(call.args) <= CORE_AFFINITY_ARG:
            continue
        if ctx.resolver.resolve(call.args[CORE_AFFINITY_ARG]) == 0:
            diags.append(ctx.warning(
                call.arg_offsets[CORE_AFFINITY_ARG], len(call.args[CORE_AFFINITY_ARG]),
                "Task pinned to Core 0. WiFi/Bluetooth also run on Core 0, which may cause "
                "performance issues. Consider Core 1 for application tasks.",
                "esp32-core0-conflict",
            ))

    task = re.search(r"\bxTask\w+", code)
    if task and not _FREERTOS_INCLUDE_RE.search(ctx.text):
        diags.append(ctx.error(
            task.start(), task.end() - task.start(),
            "FreeRTOS tasks require #include <freertos/FreeRTOS.h> and #include <freertos/task.h>",
            "esp32-freertos-include",
        ))
    return diags


def _check_heap(ctx: RuleContext) -> List[Diagnostic]:
    code = ctx.code
    diags = []

    psram = _PSRAM_ALLOC_RE.search(code)
    if psram and not re.search(r"\bMALLOC_CAP_(?:SPIRAM|8BIT)\b", code):
        diags.append(ctx.info(
            psram.start(1), len(psram.group(1)),
            "Using PSRAM allocation. Ensure PSRAM is enabled in board configuration "
            "(Tools > PSRAM: Enabled)",
            "esp32-psram-config",
        ))

    for call in iter_calls(code, "malloc"):
        if not call.args:
            continue
        size = ctx.resolver.resolve(call.args[0])
        if size is not None and size > LARGE_MALLOC_BYTES:
            diags.append(ctx.info(
                call.arg_offsets[0], len(call.args[0]),
                f"Large allocation ({size} bytes). Consider using ps_malloc() to allocate in "
                f"PSRAM instead of limited internal RAM.",
                "esp32-large-malloc",
            ))
    return diags


def _check_pins(ctx: RuleContext) -> List[Diagnostic]:
    code = ctx.code
    diags = []
    board = ctx.board
    strapping = board.strapping_pins if board is not None else DEFAULT_STRAPPING_PINS

    first_high = re.search(r"\bdigitalWrite\s*\([^;]*?,\s*HIGH\s*\)", code)
    if first_high:
        diags.append(ctx.info(
            first_high.start(), len("digitalWrite"),
            "ESP32 outputs 3.3V. Ensure connected devices are 3.3V tolerant (not 5V Arduino modules)",
            "voltage-level-warning",
        ))

    flagged = set()
    for call in iter_calls(code, "pinMode"):
        if not call.args:
            continue
        pin = ctx.resolver.resolve(call.args[0])
        if pin is None or pin not in strapping or pin in flagged:
            continue
        flagged.add(pin)
        diags.append(ctx.warning(
            call.arg_offsets[0], len(call.args[0]),
            f"GPIO{pin} is a strapping pin sampled at boot. External circuitry holding it "
            f"high or low can stop the ESP32 from booting or entering flash mode",
            "esp32-strapping-pin",
        ))
    return diags


@rule("esp32")
def check_esp32(ctx: RuleContext) -> List[Diagnostic]:
    if not ctx.is_esp32:
        return []
    diags: List[Diagnostic] = []
    for check in (_check_pins, _check_wifi, _check_ble, _check_power, _check_tasks, _check_heap):
        diags.extend(check(ctx))
    return diags
