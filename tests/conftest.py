"""
Shared test fixtures for the fleet console test suite.
"""

import pytest

from fleetctl.config.settings import Settings
from fleetctl.core.announce import LoggingAnnouncer
from fleetctl.core.catalog import FleetCatalog
from fleetctl.core.control import ControlGate
from fleetctl.core.device import DeviceState
from fleetctl.core.permissions import Permission, PermissionService
from fleetctl.core.scheduler import PollingScheduler
from fleetctl.core.store import JsonFleetStore
from fleetctl.drivers.protocol import Endpoint
from fleetctl.drivers.simulator import FleetSimulator

CONTROL = frozenset({Permission.VIEW_HOME, Permission.CONTROL_DEVICE})
VIEW_ONLY = frozenset({Permission.VIEW_HOME})


def make_device(device_id, operable=True, ip="10.0.0.1", slave_id=None, **kwargs):
    return DeviceState(
        device_id=device_id,
        name=f"Device {device_id}",
        endpoint=Endpoint(ip, slave_id or device_id),
        operable=operable,
        **kwargs,
    )


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def simulator():
    return FleetSimulator(accumulate_cycles=False)


@pytest.fixture
def store(tmp_path):
    return JsonFleetStore(str(tmp_path / "fleet.json"))


@pytest.fixture
def catalog(store):
    """Three operable devices on one gateway."""
    cat = FleetCatalog(store)
    for device_id in (1, 2, 3):
        cat.add(make_device(device_id))
    return cat


@pytest.fixture
def scheduler(catalog, simulator, settings):
    sched = PollingScheduler(catalog, simulator, settings)
    yield sched
    sched.stop()


@pytest.fixture
def session():
    svc = PermissionService()
    svc.login("operator", CONTROL)
    return svc


@pytest.fixture
def announcer():
    return LoggingAnnouncer()


@pytest.fixture
def gate(catalog, scheduler, simulator, session, announcer, settings):
    g = ControlGate(catalog, scheduler, simulator, session, announcer, settings)
    yield g
    scheduler.stop()
