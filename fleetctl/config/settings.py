"""
Console Settings
=================
Console parameters, persisted to disk. Transport, persistence and
announcement settings can be adjusted via the CLI at runtime; the
poll interval and register map are read from the settings file only
and stay fixed while the console runs.

Register addresses follow the device firmware map:
  - 0:  control register (write 1 = start, 0 = stop)
  - 1:  status register (0 idle, 1 running, 2 fault)
  - 10: run counter, two registers, low word first
"""

from dataclasses import dataclass, field
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Not adjustable while polling is live
FIXED_KEYS = frozenset({
    "poll_interval_ms",
    "control_address",
    "status_address",
    "run_count_address",
    "read_function_code",
    "write_function_code",
})


@dataclass
class Settings:
    """Tunable parameters for polling, control and persistence."""

    # ── Polling ──────────────────────────────────────────────
    poll_interval_ms: int = 5000        # Fleet-wide poll period

    # ── Register Map ─────────────────────────────────────────
    control_address: int = 0
    status_address: int = 1
    run_count_address: int = 10
    read_function_code: int = 3         # Read holding registers
    write_function_code: int = 6        # Write single register

    # ── Modbus TCP Transport ─────────────────────────────────
    modbus_port: int = 502
    modbus_timeout_sec: float = 1.0     # Per-request transport timeout

    # ── Persistence ──────────────────────────────────────────
    store_path: str = "config/fleet.json"

    # ── Announcements ────────────────────────────────────────
    announcements_enabled: bool = True
    start_announcement: str = "starting, please stand clear"
    stop_announcement: str = "stopping, please stand clear"

    _config_path: str = field(
        default="config/settings.json", repr=False
    )

    def save(self, path: str = None):
        """Persist current settings to JSON."""
        filepath = Path(path or self._config_path)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_text(json.dumps(self.as_dict(), indent=2))

    @classmethod
    def load(cls, path: str = None) -> "Settings":
        """Load settings from JSON, falling back to defaults."""
        filepath = Path(path or "config/settings.json")
        settings = cls()
        if filepath.exists():
            data = json.loads(filepath.read_text())
            for key, value in data.items():
                if not hasattr(settings, key) or key.startswith("_"):
                    continue
                try:
                    setattr(settings, key, _checked(key, getattr(settings, key), value))
                except (ValueError, TypeError) as exc:
                    logger.warning(
                        "Ignoring setting %s=%r from %s: %s", key, value, filepath, exc
                    )
        return settings

    def update(self, key: str, value) -> bool:
        """Update a single setting, returning True on success."""
        if not hasattr(self, key) or key.startswith("_") or key in FIXED_KEYS:
            return False
        try:
            setattr(self, key, _checked(key, getattr(self, key), value))
            return True
        except (ValueError, TypeError):
            return False

    def as_dict(self) -> dict:
        """Return all settings as a flat dictionary."""
        return {
            k: v for k, v in self.__dict__.items()
            if not k.startswith("_")
        }

    @property
    def poll_interval_sec(self) -> float:
        return self.poll_interval_ms / 1000.0


def _coerce(current, value):
    """Convert `value` to the type of the existing setting."""
    if isinstance(current, bool):
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off"):
                return False
            raise ValueError(f"not a boolean: {value!r}")
        return bool(value)
    return type(current)(value)


def _checked(key: str, current, value):
    """Coerce `value` and enforce the range its setting allows."""
    value = _coerce(current, value)
    if key in ("poll_interval_ms", "modbus_timeout_sec") and value <= 0:
        raise ValueError(f"{key} must be positive")
    if key == "modbus_port" and not 0 < value <= 0xFFFF:
        raise ValueError(f"{key} out of range")
    if key.endswith("_address") and not 0 <= value <= 0xFFFF:
        raise ValueError(f"{key} out of range")
    return value
