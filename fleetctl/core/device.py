"""
Device State
=============
In-memory view of one field device: identity, endpoint, and
the live values refreshed by polling.

Status Diagram:

    UNKNOWN ──poll──► IDLE / RUNNING / FAULT / UNKNOWN
       │
       ├── start ──► STARTING ──► (re-poll result) | START_FAILED
       ├── stop  ──► STOPPING ──► (re-poll result) | STOP_FAILED
       │
       └── poll failure (any state) ──► COMM_FAILURE  (operable cleared)

Every effective change of a field notifies the registered
listeners exactly once; assigning the current value again is
silent.
"""

from enum import Enum
import logging
import threading
from dataclasses import dataclass
from typing import Callable

from fleetctl.drivers.protocol import Endpoint

logger = logging.getLogger(__name__)


class DeviceStatus(Enum):
    UNKNOWN = "UNKNOWN"
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    FAULT = "FAULT"
    COMM_FAILURE = "COMM_FAILURE"
    STARTING = "STARTING"
    STOPPING = "STOPPING"
    START_FAILED = "START_FAILED"
    STOP_FAILED = "STOP_FAILED"


# Status register value -> displayed status
_STATUS_CODES = {
    0: DeviceStatus.IDLE,
    1: DeviceStatus.RUNNING,
    2: DeviceStatus.FAULT,
}

# Statuses that block a control request
START_BLOCKED = (DeviceStatus.RUNNING, DeviceStatus.COMM_FAILURE)
STOP_BLOCKED = (DeviceStatus.IDLE, DeviceStatus.COMM_FAILURE)


def decode_status(value: int) -> DeviceStatus:
    """Map a raw status register value to a DeviceStatus."""
    return _STATUS_CODES.get(value, DeviceStatus.UNKNOWN)


def decode_run_count(low: int, high: int) -> int:
    """Combine the low/high run-counter words into a 32-bit count."""
    return ((high & 0xFFFF) << 16) | (low & 0xFFFF)


@dataclass
class DeviceChange:
    """Snapshot passed to listeners after a field changed."""
    device_id: int
    field: str
    name: str
    ip: str
    slave_id: int
    operable: bool
    run_count: int
    status: DeviceStatus


Listener = Callable[["DeviceState", DeviceChange], None]


class DeviceState:
    """
    One device of the fleet.

    `device_id` is fixed at construction. Every other field is
    exposed as a property whose setter notifies listeners when
    the value actually changes.
    """

    def __init__(
        self,
        device_id: int,
        name: str,
        endpoint: Endpoint,
        operable: bool = False,
        run_count: int = 0,
        status: DeviceStatus = DeviceStatus.UNKNOWN,
    ):
        self._id = device_id
        self._name = name
        self._endpoint = endpoint
        self._status = status
        self._run_count = run_count & 0xFFFFFFFF
        self._operable = operable
        self._listeners: list = []
        self._lock = threading.RLock()

    # ── Identity ─────────────────────────────────────────────

    @property
    def device_id(self) -> int:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str):
        self._set("name", value)

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @endpoint.setter
    def endpoint(self, value: Endpoint):
        self._set("endpoint", value)

    # ── Live fields ──────────────────────────────────────────

    @property
    def status(self) -> DeviceStatus:
        return self._status

    @status.setter
    def status(self, value: DeviceStatus):
        self._set("status", value)

    @property
    def run_count(self) -> int:
        return self._run_count

    @run_count.setter
    def run_count(self, value: int):
        self._set("run_count", value & 0xFFFFFFFF)

    @property
    def operable(self) -> bool:
        return self._operable

    @operable.setter
    def operable(self, value: bool):
        self._set("operable", bool(value))

    # ── Control preconditions ────────────────────────────────

    def can_start(self) -> bool:
        return self._operable and self._status not in START_BLOCKED

    def can_stop(self) -> bool:
        return self._operable and self._status not in STOP_BLOCKED

    def mark_comm_failure(self):
        """Degrade after a failed poll: CommFailure and out of the poll set."""
        self.status = DeviceStatus.COMM_FAILURE
        self.operable = False

    # ── Notification ─────────────────────────────────────────

    def subscribe(self, listener: Listener):
        """Register a callback invoked after every field change."""
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def snapshot(self, field_name: str = "") -> DeviceChange:
        return DeviceChange(
            device_id=self._id,
            field=field_name,
            name=self._name,
            ip=self._endpoint.ip,
            slave_id=self._endpoint.slave_id,
            operable=self._operable,
            run_count=self._run_count,
            status=self._status,
        )

    def _set(self, field_name: str, value):
        with self._lock:
            attr = "_" + field_name
            if getattr(self, attr) == value:
                return
            setattr(self, attr, value)
            change = self.snapshot(field_name)
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(self, change)
            except Exception:
                logger.exception(
                    "Listener failed for device %s (%s change)", self._name, field_name
                )

    def __repr__(self) -> str:
        return (
            f"DeviceState(id={self._id}, name={self._name!r}, "
            f"endpoint={self._endpoint}, status={self._status.value}, "
            f"run_count={self._run_count}, operable={self._operable})"
        )
