"""
Modbus TCP Communication Driver
================================
Talks to the field devices through Modbus TCP gateways.

Several devices share one gateway (one IP, ascending slave ids
on the RS-485 side), so a single pymodbus client is opened per
gateway address and reused for every slave behind it.

Every failure -- refused connection, timeout, exception
response, short or malformed payload -- is reported as a
CommError. The driver never retries. Transport failures close
the gateway client so the next call reconnects; exception
responses from a single slave leave the shared link open.
"""

import logging
import threading
from typing import Callable, Optional

from pymodbus.client import ModbusTcpClient
from pymodbus.exceptions import ModbusException

from fleetctl.drivers.protocol import (
    CommError,
    Endpoint,
    FC_READ_HOLDING_REGISTERS,
    FC_READ_INPUT_REGISTERS,
    FC_WRITE_SINGLE_REGISTER,
)

logger = logging.getLogger(__name__)


def _tcp_client(host: str, port: int, timeout: float):
    return ModbusTcpClient(host=host, port=port, timeout=timeout)


class ModbusDriver:
    """
    Register-level Modbus client for the whole fleet.

    Wraps pymodbus for reading holding/input registers and writing
    single registers, keyed by device endpoint.
    """

    def __init__(
        self,
        port: int = 502,
        timeout: float = 1.0,
        client_factory: Optional[Callable] = None,
    ):
        self.port = port
        self.timeout = timeout
        self._client_factory = client_factory or _tcp_client
        self._clients: dict = {}  # ip -> pymodbus client
        self._lock = threading.Lock()

    @property
    def open_connections(self) -> int:
        with self._lock:
            return len(self._clients)

    def read_registers(
        self, endpoint: Endpoint, function_code: int, address: int, quantity: int
    ) -> list:
        """Read `quantity` registers starting at `address`."""
        if function_code == FC_READ_HOLDING_REGISTERS:
            method = "read_holding_registers"
        elif function_code == FC_READ_INPUT_REGISTERS:
            method = "read_input_registers"
        else:
            raise CommError(f"unsupported read function code {function_code}", endpoint)

        client = self._connection(endpoint)
        try:
            result = getattr(client, method)(
                address, count=quantity, slave=endpoint.slave_id
            )
        except (ModbusException, OSError) as exc:
            self._drop(endpoint.ip)
            raise CommError(f"read at {address} failed: {exc}", endpoint) from exc

        # Exception responses come from one slave; the gateway link is fine
        if result is None or result.isError():
            raise CommError(f"error response reading address {address}", endpoint)

        registers = getattr(result, "registers", None)
        if registers is None:
            raise CommError(f"malformed response reading address {address}", endpoint)
        return [int(r) & 0xFFFF for r in registers[:quantity]]

    def write_register(
        self, endpoint: Endpoint, function_code: int, address: int, value: int
    ) -> None:
        """Write a single holding register."""
        if function_code != FC_WRITE_SINGLE_REGISTER:
            raise CommError(f"unsupported write function code {function_code}", endpoint)
        if not 0 <= value <= 0xFFFF:
            raise CommError(f"register value out of range: {value}", endpoint)

        client = self._connection(endpoint)
        try:
            result = client.write_register(address, value, slave=endpoint.slave_id)
        except (ModbusException, OSError) as exc:
            self._drop(endpoint.ip)
            raise CommError(f"write at {address} failed: {exc}", endpoint) from exc

        if result is None or result.isError():
            raise CommError(f"error response writing address {address}", endpoint)

    def close_all(self):
        """Close every open gateway connection."""
        with self._lock:
            clients = list(self._clients.items())
            self._clients.clear()
        for ip, client in clients:
            try:
                client.close()
            except Exception:
                logger.exception("Error closing Modbus connection to %s", ip)
        if clients:
            logger.info("Closed %d Modbus connection(s)", len(clients))

    # ── Connection handling ──────────────────────────────────

    def _connection(self, endpoint: Endpoint):
        """Return a connected client for the endpoint's gateway."""
        with self._lock:
            client = self._clients.get(endpoint.ip)
            if client is None:
                client = self._client_factory(endpoint.ip, self.port, self.timeout)
                self._clients[endpoint.ip] = client
                logger.debug("Opened Modbus client for %s:%d", endpoint.ip, self.port)

        try:
            connected = client.connected or client.connect()
        except (ModbusException, OSError) as exc:
            self._drop(endpoint.ip)
            raise CommError(f"connect failed: {exc}", endpoint) from exc
        if not connected:
            self._drop(endpoint.ip)
            raise CommError(f"unable to connect to {endpoint.ip}:{self.port}", endpoint)
        return client

    def _drop(self, ip: str):
        """Forget a gateway connection so the next call reconnects."""
        with self._lock:
            client = self._clients.pop(ip, None)
        if client is not None:
            try:
                client.close()
            except Exception:
                logger.debug("Ignoring close error for %s", ip, exc_info=True)
