"""
Protocol Client Contract
=========================
Wire-level vocabulary shared by every protocol backend
(real Modbus driver or the fleet simulator):

  - Endpoint:   (IP address, slave id) of one physical device
  - Function codes used by the console
  - CommError:  the single failure type for any read/write that
                did not complete

Backends never retry; retry policy belongs to the caller.
"""

from dataclasses import dataclass
from typing import Protocol


FC_READ_HOLDING_REGISTERS = 3
FC_READ_INPUT_REGISTERS = 4
FC_WRITE_SINGLE_REGISTER = 6


@dataclass(frozen=True)
class Endpoint:
    """Address of one device on the wire."""
    ip: str
    slave_id: int

    def __str__(self) -> str:
        return f"{self.ip}#{self.slave_id}"


class CommError(Exception):
    """A register read or write did not complete successfully."""

    def __init__(self, message: str, endpoint: Endpoint = None):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint

    def __str__(self) -> str:
        if self.endpoint is None:
            return self.message
        return f"{self.endpoint}: {self.message}"


class ProtocolClient(Protocol):
    """Protocol for register-level backends."""

    def read_registers(
        self, endpoint: Endpoint, function_code: int, address: int, quantity: int
    ) -> list: ...
    def write_register(
        self, endpoint: Endpoint, function_code: int, address: int, value: int
    ) -> None: ...
    def close_all(self) -> None: ...
