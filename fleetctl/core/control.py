"""
Control Gate — Operator Start/Stop
===================================
Authorizes and executes operator control requests.

A start/stop request:

    1. Requires the ControlDevice permission (else silently rejected)
    2. Requires the device's current status to allow it
    3. Disarms the poll scheduler (fleet-wide pause)
    4. Writes the control register, then re-polls the fleet once
    5. Fires the announcement hook (best effort)
    6. Re-arms the scheduler if the operator may still control devices

Rejected requests change nothing and send nothing on the wire.
A failed write leaves the device in START_FAILED / STOP_FAILED
with `operable` untouched.

Losing the ControlDevice permission disarms polling and releases
all connections immediately; polling only comes back through an
explicit `resume_polling()`.
"""

import logging
from typing import Iterable, Optional

from fleetctl.config.settings import Settings
from fleetctl.core.announce import AnnouncementHook
from fleetctl.core.catalog import FleetCatalog
from fleetctl.core.device import DeviceState, DeviceStatus
from fleetctl.core.permissions import Permission, PermissionOracle
from fleetctl.core.scheduler import PollingScheduler
from fleetctl.drivers.protocol import ProtocolClient

logger = logging.getLogger(__name__)


class ControlGate:
    """
    Operator command entry point for the device fleet.

    Every command returns a short human-readable outcome string.
    """

    def __init__(
        self,
        catalog: FleetCatalog,
        scheduler: PollingScheduler,
        client: ProtocolClient,
        oracle: PermissionOracle,
        announcer: Optional[AnnouncementHook] = None,
        settings: Optional[Settings] = None,
    ):
        self.catalog = catalog
        self.scheduler = scheduler
        self.client = client
        self.oracle = oracle
        self.announcer = announcer
        self.sp = settings or scheduler.settings

        oracle.subscribe(self._on_permissions_changed)

    # ── Operator Commands ────────────────────────────────────

    def start(self, device_id: int, permissions: Iterable[Permission]) -> str:
        """Operator: start a device."""
        return self._control(device_id, permissions, start=True)

    def stop(self, device_id: int, permissions: Iterable[Permission]) -> str:
        """Operator: stop a device."""
        return self._control(device_id, permissions, start=False)

    def enable(self, device_id: int, permissions: Iterable[Permission]) -> str:
        """Operator: return a non-operable device to the poll set."""
        if Permission.CONTROL_DEVICE not in set(permissions):
            logger.warning("Enable of device %s rejected: no ControlDevice permission", device_id)
            return "Permission denied"
        device = self.catalog.get(device_id)
        if device is None:
            return f"Unknown device: {device_id}"
        if device.operable:
            return f"{device.name} already enabled"
        device.operable = True
        device.status = DeviceStatus.UNKNOWN
        logger.info("Device %s re-enabled for polling", device.name)
        return f"{device.name} enabled"

    def resume_polling(self) -> str:
        """Poll the fleet once and arm the scheduler (entering the monitored view)."""
        if not self.oracle.has_control_capability():
            logger.info("Resume polling skipped: no ControlDevice permission")
            return "Permission denied"
        self.scheduler.tick()
        self.scheduler.start()
        return "Polling resumed"

    def pause_polling(self) -> str:
        """Disarm polling and release all connections."""
        self.scheduler.stop()
        self.client.close_all()
        logger.info("Polling stopped and connections cleaned up")
        return "Polling paused"

    def shutdown(self):
        """Tear down polling at process exit."""
        self.pause_polling()

    def get_status(self) -> dict:
        """Return a snapshot of polling state and every device."""
        return {
            "polling": self.scheduler.is_armed,
            "tick_count": self.scheduler.tick_count,
            "tick_time_ms": round(self.scheduler.tick_time_ms, 1),
            "can_control": self.oracle.has_control_capability(),
            "devices": [
                {
                    "id": d.device_id,
                    "name": d.name,
                    "endpoint": str(d.endpoint),
                    "status": d.status.value,
                    "run_count": d.run_count,
                    "operable": d.operable,
                }
                for d in self.catalog
            ],
        }

    # ── Internals ────────────────────────────────────────────

    def _control(self, device_id: int, permissions, start: bool) -> str:
        verb = "start" if start else "stop"

        if Permission.CONTROL_DEVICE not in set(permissions):
            logger.warning("%s of device %s rejected: no ControlDevice permission",
                           verb.capitalize(), device_id)
            return "Permission denied"

        device = self.catalog.get(device_id)
        if device is None:
            logger.warning("%s rejected: unknown device %s", verb.capitalize(), device_id)
            return f"Unknown device: {device_id}"

        allowed = device.can_start() if start else device.can_stop()
        if not allowed:
            logger.warning(
                "Cannot %s device %s: operable=%s status=%s",
                verb, device.name, device.operable, device.status.value,
            )
            state = device.status.value if device.operable else "not operable"
            return f"Cannot {verb} {device.name}: {state}"

        device.status = DeviceStatus.STARTING if start else DeviceStatus.STOPPING
        self.scheduler.stop()
        logger.info("Poll timer stopped for %s of %s", verb, device.name)

        try:
            with self.scheduler.exclusive():
                self.client.write_register(
                    device.endpoint,
                    self.sp.write_function_code,
                    self.sp.control_address,
                    1 if start else 0,
                )
                self.scheduler.tick()
            self._announce(device, start)
            result = f"{verb.capitalize()} command issued to {device.name}"
        except Exception as exc:
            logger.exception("%s of device %s failed", verb.capitalize(), device.name)
            device.status = DeviceStatus.START_FAILED if start else DeviceStatus.STOP_FAILED
            result = f"{verb.capitalize()} of {device.name} failed: {exc}"
        finally:
            if self.oracle.has_control_capability():
                self.scheduler.start()
                logger.info("Poll timer restarted after %s of %s", verb, device.name)
            else:
                logger.info("Poll timer left stopped: ControlDevice permission revoked")

        return result

    def _announce(self, device: DeviceState, start: bool):
        if self.announcer is None or not self.sp.announcements_enabled:
            return
        label = self.sp.start_announcement if start else self.sp.stop_announcement
        try:
            self.announcer.announce(device.name, label)
        except Exception:
            logger.exception("Announcement failed for device %s", device.name)

    def _on_permissions_changed(self):
        if self.oracle.has_control_capability():
            return
        self.pause_polling()
        logger.info("Polling stopped: ControlDevice permission revoked")
