"""
Fleet Catalog
==============
Ordered registry of every device the console manages.

Populated once at startup:
  - from the FleetStore when it holds records (addresses missing
    from a record are filled from the default topology by
    position; stored values always win), or
  - synthesized from the default topology and immediately
    persisted back when the store is empty.

Devices are never removed at runtime. Each device is wired so
that every field change is saved back to the store.
"""

import logging
from typing import Iterator, Optional

from fleetctl.config.topology import (
    DEFAULT_FLEET_SIZE, default_endpoint, default_name,
)
from fleetctl.core.device import DeviceChange, DeviceState
from fleetctl.core.store import FleetStore
from fleetctl.drivers.protocol import Endpoint

logger = logging.getLogger(__name__)


class FleetCatalog:
    """
    Ordered collection of DeviceState, addressable by id or position.
    """

    def __init__(self, store: Optional[FleetStore] = None):
        self.store = store
        self._devices: list = []
        self._by_id: dict = {}

    @classmethod
    def bootstrap(
        cls, store: FleetStore, default_size: int = DEFAULT_FLEET_SIZE
    ) -> "FleetCatalog":
        """Build the catalog from the store, seeding defaults if empty."""
        catalog = cls(store)
        records = store.load_all()
        if records:
            catalog._hydrate(records)
        else:
            catalog._seed_defaults(default_size)
        return catalog

    # ── Registry ─────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._devices)

    def __iter__(self) -> Iterator[DeviceState]:
        return iter(list(self._devices))

    def get(self, device_id: int) -> Optional[DeviceState]:
        return self._by_id.get(device_id)

    def at(self, position: int) -> DeviceState:
        return self._devices[position]

    def operable_devices(self) -> list:
        return [d for d in self._devices if d.operable]

    def add(self, device: DeviceState):
        """Append a device and persist each of its future changes."""
        if device.device_id in self._by_id:
            raise ValueError(f"Duplicate device id: {device.device_id}")
        self._devices.append(device)
        self._by_id[device.device_id] = device
        if self.store is not None:
            device.subscribe(self._persist_change)

    def summary(self) -> dict:
        """Device counts by status, plus operable count."""
        by_status = {}
        for device in self._devices:
            key = device.status.value
            by_status[key] = by_status.get(key, 0) + 1
        return {
            "total_devices": len(self._devices),
            "operable": sum(1 for d in self._devices if d.operable),
            "by_status": by_status,
        }

    # ── Startup ──────────────────────────────────────────────

    def _hydrate(self, records: list):
        for position, record in enumerate(records):
            fallback = default_endpoint(position)
            endpoint = Endpoint(
                ip=record.ip or fallback.ip,
                slave_id=record.slave_id if record.slave_id and record.slave_id > 0
                else fallback.slave_id,
            )
            device = DeviceState(
                device_id=record.device_id,
                name=record.name or default_name(position),
                endpoint=endpoint,
                operable=record.operable,
                run_count=record.run_count,
            )
            self.add(device)
            logger.info(
                "Loaded device: id=%d name=%s endpoint=%s operable=%s run_count=%d",
                device.device_id, device.name, device.endpoint,
                device.operable, device.run_count,
            )

    def _seed_defaults(self, size: int):
        for position in range(size):
            device = DeviceState(
                device_id=position + 1,
                name=default_name(position),
                endpoint=default_endpoint(position),
            )
            self.add(device)
            self._save(device)
            logger.info(
                "Initialized default device: id=%d name=%s endpoint=%s",
                device.device_id, device.name, device.endpoint,
            )

    # ── Persistence ──────────────────────────────────────────

    def _persist_change(self, device: DeviceState, change: DeviceChange):
        self.store.save(
            change.device_id, change.name, change.ip, change.slave_id,
            change.operable, change.run_count,
        )
        logger.debug("Saved device %s after %s change", device.name, change.field)

    def _save(self, device: DeviceState):
        snap = device.snapshot()
        self.store.save(
            snap.device_id, snap.name, snap.ip, snap.slave_id,
            snap.operable, snap.run_count,
        )
