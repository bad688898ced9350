"""Configuration for the sketch analyzer"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Ignoring %s=%r (not an integer), using %d", name, raw, default)
        return default


@dataclass
class SentinelConfig:
    """Sketch Sentinel configuration"""

    # Board selected at startup (id or FQBN)
    default_board: str = os.getenv("SENTINEL_BOARD", "arduino-uno")

    # Bundled hardware descriptors (boards / protocols / libraries)
    hardware_db_path: str = os.getenv(
        "SENTINEL_HARDWARE_DB",
        str(Path(__file__).parent / "data")
    )

    # Edit coalescing for on-change analysis
    debounce_ms: int = _env_int("SENTINEL_DEBOUNCE_MS", 300)

    # Fan validators out on a thread pool
    parallel_rules: bool = _env_bool("SENTINEL_PARALLEL")

    log_level: str = os.getenv("SENTINEL_LOG_LEVEL", "INFO").upper()

    # "source" field of every diagnostic
    diagnostic_source: str = os.getenv("SENTINEL_SOURCE", "Sentinel")

    # Memory limits when no board is loaded (Arduino Uno)
    default_ram_bytes: int = _env_int("SENTINEL_DEFAULT_RAM", 2048)
    default_flash_bytes: int = _env_int("SENTINEL_DEFAULT_FLASH", 32768)


config = SentinelConfig()
