"""
Polling Scheduler — Fleet Poll Loop
====================================
Refreshes every operable device on a fixed interval. Each tick:

    for each operable device, in catalog order:
        1. Read the status register (1 register)
        2. Read the run counter (2 registers, low word first)
        3. On any failure: COMM_FAILURE, drop from the poll set

A failing device never aborts the tick for the rest of the fleet.

The scheduler is armed/disarmed as a whole. Disarming stops
future ticks only; a tick already running completes. Callers
that need the wire to themselves (control writes) use
`exclusive()`, which waits for an in-flight tick to finish.
"""

import time
import logging
import threading
from contextlib import contextmanager
from typing import Optional

from fleetctl.config.settings import Settings
from fleetctl.core.catalog import FleetCatalog
from fleetctl.core.device import DeviceState, decode_run_count, decode_status
from fleetctl.drivers.protocol import CommError, ProtocolClient

logger = logging.getLogger(__name__)


class PollingScheduler:
    """
    Recurring poll timer for the device fleet.

    Runs in a daemon thread while armed. `tick()` may also be
    called directly for an immediate poll pass.
    """

    def __init__(
        self,
        catalog: FleetCatalog,
        client: ProtocolClient,
        settings: Optional[Settings] = None,
    ):
        self.catalog = catalog
        self.client = client
        self.settings = settings or Settings()

        self._armed = False
        self._state_lock = threading.Lock()
        self._tick_lock = threading.RLock()
        self._wake: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

        self._tick_count = 0
        self._tick_time_ms = 0.0
        self._max_tick_time_ms = 0.0

    @property
    def is_armed(self) -> bool:
        return self._armed

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def tick_time_ms(self) -> float:
        return self._tick_time_ms

    @property
    def max_tick_time_ms(self) -> float:
        return self._max_tick_time_ms

    def start(self):
        """Arm the recurring timer. No-op if already armed."""
        with self._state_lock:
            if self._armed:
                return
            self._armed = True
            self._wake = threading.Event()
            self._thread = threading.Thread(
                target=self._timer_loop,
                args=(self._wake,),
                name="fleet-poller",
                daemon=True,
            )
            self._thread.start()
        logger.info(
            "Polling armed (interval: %d ms)", self.settings.poll_interval_ms
        )

    def stop(self):
        """Disarm the timer. No-op if already disarmed."""
        with self._state_lock:
            if not self._armed:
                return
            self._armed = False
            self._wake.set()
        logger.info("Polling disarmed")

    @contextmanager
    def exclusive(self):
        """Hold the protocol path; waits out any in-flight tick."""
        with self._tick_lock:
            yield

    def tick(self):
        """Poll every operable device once."""
        with self._tick_lock:
            t_start = time.monotonic()
            self._tick_count += 1

            for device in self.catalog:
                if not device.operable:
                    continue
                self._poll_device(device)

            elapsed = time.monotonic() - t_start
            self._tick_time_ms = elapsed * 1000.0
            self._max_tick_time_ms = max(self._max_tick_time_ms, self._tick_time_ms)

    def _timer_loop(self, wake: threading.Event):
        interval = self.settings.poll_interval_sec

        # wait() returns True once stop() sets this generation's event
        while not wake.wait(interval):
            try:
                self.tick()
            except Exception:
                logger.exception("Poll tick exception")

            if self._tick_time_ms > self.settings.poll_interval_ms:
                logger.warning(
                    "Poll overrun: %.1f ms (interval: %d ms)",
                    self._tick_time_ms, self.settings.poll_interval_ms,
                )

    def _poll_device(self, device: DeviceState):
        """Refresh one device; any failure degrades it to COMM_FAILURE."""
        sp = self.settings
        try:
            try:
                values = self.client.read_registers(
                    device.endpoint, sp.read_function_code, sp.status_address, 1
                )
            except CommError as exc:
                self._degrade(device, "status", str(exc))
                return
            if not values:
                self._degrade(device, "status", "empty response")
                return

            device.status = decode_status(values[0])
            logger.debug("Device %s status: %s", device.name, device.status.value)

            if not device.operable:
                return

            try:
                values = self.client.read_registers(
                    device.endpoint, sp.read_function_code, sp.run_count_address, 2
                )
            except CommError as exc:
                self._degrade(device, "run count", str(exc))
                return
            if len(values) < 2:
                self._degrade(device, "run count", f"short response ({len(values)} registers)")
                return

            device.run_count = decode_run_count(values[0], values[1])
            logger.debug("Device %s run count: %d", device.name, device.run_count)

        except Exception:
            logger.exception("Failed to update device %s", device.name)
            device.mark_comm_failure()

    @staticmethod
    def _degrade(device: DeviceState, what: str, reason: str):
        logger.warning("Failed to read %s for device %s: %s", what, device.name, reason)
        device.mark_comm_failure()
