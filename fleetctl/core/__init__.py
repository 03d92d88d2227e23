from fleetctl.core.device import DeviceState, DeviceStatus
from fleetctl.core.store import JsonFleetStore, PersistedDevice
from fleetctl.core.catalog import FleetCatalog
from fleetctl.core.scheduler import PollingScheduler
from fleetctl.core.permissions import Permission, PermissionService
from fleetctl.core.announce import LoggingAnnouncer
from fleetctl.core.control import ControlGate

__all__ = [
    "DeviceState",
    "DeviceStatus",
    "JsonFleetStore",
    "PersistedDevice",
    "FleetCatalog",
    "PollingScheduler",
    "Permission",
    "PermissionService",
    "LoggingAnnouncer",
    "ControlGate",
]
