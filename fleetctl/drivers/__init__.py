from fleetctl.drivers.protocol import (
    CommError, Endpoint, ProtocolClient,
    FC_READ_HOLDING_REGISTERS, FC_READ_INPUT_REGISTERS, FC_WRITE_SINGLE_REGISTER,
)
from fleetctl.drivers.modbus_driver import ModbusDriver
from fleetctl.drivers.simulator import FleetSimulator

__all__ = [
    "CommError",
    "Endpoint",
    "ProtocolClient",
    "FC_READ_HOLDING_REGISTERS",
    "FC_READ_INPUT_REGISTERS",
    "FC_WRITE_SINGLE_REGISTER",
    "ModbusDriver",
    "FleetSimulator",
]
