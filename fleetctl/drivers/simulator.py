"""
Fleet Simulator
================
Simulates the field devices for development and testing
without real hardware. Each simulated device exposes the same
register map as the real controllers:

  - Register 0:      control (write 1 = run, 0 = stop)
  - Register 1:      status  (0 idle, 1 running, 2 fault)
  - Registers 10/11: run counter, low word then high word

Running devices accumulate cycles over time. Endpoints can be
taken offline or faulted to exercise the failure paths.

Use this backend in place of ModbusDriver for offline work.
"""

import time
import logging
import threading
from dataclasses import dataclass, field

from fleetctl.drivers.protocol import (
    CommError,
    Endpoint,
    FC_READ_HOLDING_REGISTERS,
    FC_READ_INPUT_REGISTERS,
    FC_WRITE_SINGLE_REGISTER,
)

logger = logging.getLogger(__name__)

REG_CONTROL = 0
REG_STATUS = 1
REG_RUN_COUNT_LO = 10
REG_RUN_COUNT_HI = 11

STATUS_IDLE = 0
STATUS_RUNNING = 1
STATUS_FAULT = 2


@dataclass
class SimulatedDevice:
    """Internal state of one simulated controller."""
    status: int = STATUS_IDLE
    run_count: int = 0
    online: bool = True
    cycles_per_sec: float = 0.5
    _carry: float = 0.0
    _last_update: float = field(default_factory=time.monotonic)


class FleetSimulator:
    """
    Simulates every device of the fleet behind the ProtocolClient
    contract. Unknown endpoints are created on first access.

    Every call is recorded in `calls` as
    (operation, endpoint, function_code, address, quantity_or_value)
    so tests can assert on protocol traffic and ordering.
    """

    def __init__(self, accumulate_cycles: bool = True):
        self._devices: dict = {}
        self._lock = threading.Lock()
        self._accumulate = accumulate_cycles
        self.calls: list = []
        self.closed_count = 0

    # ── ProtocolClient Implementation ────────────────────────

    def read_registers(
        self, endpoint: Endpoint, function_code: int, address: int, quantity: int
    ) -> list:
        with self._lock:
            self.calls.append(("read", endpoint, function_code, address, quantity))
            if function_code not in (FC_READ_HOLDING_REGISTERS, FC_READ_INPUT_REGISTERS):
                raise CommError(f"unsupported read function code {function_code}", endpoint)
            dev = self._device(endpoint)
            if not dev.online:
                raise CommError("no response (device offline)", endpoint)
            self._update(dev)
            return [self._get_register(dev, address + i) for i in range(quantity)]

    def write_register(
        self, endpoint: Endpoint, function_code: int, address: int, value: int
    ) -> None:
        with self._lock:
            self.calls.append(("write", endpoint, function_code, address, value))
            if function_code != FC_WRITE_SINGLE_REGISTER:
                raise CommError(f"unsupported write function code {function_code}", endpoint)
            dev = self._device(endpoint)
            if not dev.online:
                raise CommError("no response (device offline)", endpoint)
            self._update(dev)
            if address == REG_CONTROL:
                if dev.status == STATUS_FAULT:
                    logger.debug("Sim %s ignoring control write while faulted", endpoint)
                    return
                dev.status = STATUS_RUNNING if value else STATUS_IDLE
            else:
                raise CommError(f"illegal data address {address}", endpoint)

    def close_all(self) -> None:
        with self._lock:
            self.closed_count += 1

    # ── Test / operator overrides ────────────────────────────

    def device(self, endpoint: Endpoint) -> SimulatedDevice:
        with self._lock:
            return self._device(endpoint)

    def set_online(self, endpoint: Endpoint, online: bool):
        with self._lock:
            self._device(endpoint).online = online

    def set_fault(self, endpoint: Endpoint, faulted: bool = True):
        with self._lock:
            self._device(endpoint).status = STATUS_FAULT if faulted else STATUS_IDLE

    def set_status(self, endpoint: Endpoint, status: int):
        with self._lock:
            self._device(endpoint).status = status

    def set_run_count(self, endpoint: Endpoint, count: int):
        with self._lock:
            dev = self._device(endpoint)
            dev.run_count = count & 0xFFFFFFFF
            dev._carry = 0.0

    def reads(self) -> list:
        with self._lock:
            return [c for c in self.calls if c[0] == "read"]

    def writes(self) -> list:
        with self._lock:
            return [c for c in self.calls if c[0] == "write"]

    def reset_calls(self):
        with self._lock:
            self.calls.clear()

    # ── Simulation ───────────────────────────────────────────

    def _device(self, endpoint: Endpoint) -> SimulatedDevice:
        dev = self._devices.get(endpoint)
        if dev is None:
            dev = SimulatedDevice()
            if not self._accumulate:
                dev.cycles_per_sec = 0.0
            self._devices[endpoint] = dev
        return dev

    @staticmethod
    def _update(dev: SimulatedDevice):
        """Advance the run counter of a running device."""
        now = time.monotonic()
        elapsed = now - dev._last_update
        dev._last_update = now
        if dev.status != STATUS_RUNNING or dev.cycles_per_sec <= 0:
            return
        dev._carry += elapsed * dev.cycles_per_sec
        whole = int(dev._carry)
        if whole:
            dev._carry -= whole
            dev.run_count = (dev.run_count + whole) & 0xFFFFFFFF

    @staticmethod
    def _get_register(dev: SimulatedDevice, address: int) -> int:
        if address == REG_CONTROL:
            return 1 if dev.status == STATUS_RUNNING else 0
        if address == REG_STATUS:
            return dev.status
        if address == REG_RUN_COUNT_LO:
            return dev.run_count & 0xFFFF
        if address == REG_RUN_COUNT_HI:
            return (dev.run_count >> 16) & 0xFFFF
        return 0
