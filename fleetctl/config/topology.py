"""
Default Fleet Topology
=======================
Where each catalog position lives on the wire when nothing
better is known. Used to seed a fresh catalog and to fill in
records persisted without an address.

  Positions 0-9:  shared RS-485 gateway, slave ids 1-10
  Position 10:    first secondary gateway, slave id 1
  Position 11+:   second secondary gateway, slave id 1
"""

from fleetctl.drivers.protocol import Endpoint

DEFAULT_FLEET_SIZE = 12

PRIMARY_GATEWAY_IP = "192.168.64.52"
PRIMARY_GATEWAY_SLOTS = 10
SECONDARY_GATEWAY_IPS = ("192.168.64.87", "192.168.64.89")


def default_endpoint(position: int) -> Endpoint:
    """Default endpoint for the device at catalog `position`."""
    if position < 0:
        raise ValueError(f"Invalid catalog position: {position}")
    if position < PRIMARY_GATEWAY_SLOTS:
        return Endpoint(PRIMARY_GATEWAY_IP, position + 1)
    if position == PRIMARY_GATEWAY_SLOTS:
        return Endpoint(SECONDARY_GATEWAY_IPS[0], 1)
    return Endpoint(SECONDARY_GATEWAY_IPS[1], 1)


def default_name(position: int) -> str:
    return f"Device {position + 1}"
