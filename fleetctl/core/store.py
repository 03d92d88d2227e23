"""
Fleet Store
============
Persistence boundary for device identity and last-known state.

The catalog only depends on the FleetStore protocol:

    load_all() -> [PersistedDevice]     once at startup
    save(id, name, ip, slave_id, operable, run_count)
                                        after every device change

JsonFleetStore is the bundled implementation: a single JSON
document holding one record per device, rewritten on save.
"""

import json
import time
import logging
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class PersistedDevice:
    """One stored device record. Missing address fields are None."""
    device_id: int
    name: Optional[str] = None
    ip: Optional[str] = None
    slave_id: Optional[int] = None
    operable: bool = False
    run_count: int = 0
    timestamp: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> "PersistedDevice":
        slave_id = data.get("slave_id")
        return cls(
            device_id=int(data["device_id"]),
            name=data.get("name") or None,
            ip=data.get("ip") or None,
            slave_id=int(slave_id) if slave_id else None,
            operable=bool(data.get("operable", False)),
            run_count=int(data.get("run_count", 0)),
            timestamp=float(data.get("timestamp", 0.0)),
        )


class FleetStore(Protocol):
    """Protocol for device persistence backends."""

    def load_all(self) -> list: ...
    def save(
        self, device_id: int, name: str, ip: str, slave_id: int,
        operable: bool, run_count: int,
    ) -> None: ...


class JsonFleetStore:
    """
    File-backed FleetStore.

    Records keep their insertion order, which is the catalog
    order used for positional address defaults.
    """

    def __init__(self, path: str = "config/fleet.json"):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._records: dict = {}  # device_id -> dict
        self._read()

    def load_all(self) -> list:
        """Return every stored record in catalog order."""
        with self._lock:
            records = []
            for data in self._records.values():
                try:
                    records.append(PersistedDevice.from_dict(data))
                except (KeyError, TypeError, ValueError):
                    logger.warning("Skipping malformed device record: %s", data)
            return records

    def save(
        self, device_id: int, name: str, ip: str, slave_id: int,
        operable: bool, run_count: int,
    ) -> None:
        """Insert or update a device record and rewrite the file."""
        record = PersistedDevice(
            device_id=device_id,
            name=name,
            ip=ip,
            slave_id=slave_id,
            operable=operable,
            run_count=run_count,
            timestamp=time.time(),
        )
        with self._lock:
            self._records[str(device_id)] = asdict(record)
            self._write()

    def _read(self):
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text())
        except (OSError, ValueError):
            logger.exception("Failed to read fleet store %s", self.path)
            return
        for entry in data.get("devices", []):
            if isinstance(entry, dict) and "device_id" in entry:
                self._records[str(entry["device_id"])] = entry

    def _write(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"devices": list(self._records.values())}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2))
        tmp.replace(self.path)
