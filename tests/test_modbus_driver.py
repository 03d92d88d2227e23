"""
Tests for the Modbus TCP driver, using a fake pymodbus client.
"""

import pytest
from pymodbus.exceptions import ConnectionException

from fleetctl.drivers.modbus_driver import ModbusDriver
from fleetctl.drivers.protocol import CommError, Endpoint


class FakeResponse:
    def __init__(self, registers=None, error=False):
        self.registers = registers
        self._error = error

    def isError(self):
        return self._error


class FakeModbusClient:
    """Stands in for pymodbus.client.ModbusTcpClient."""

    def __init__(self, host, port, timeout):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.connected = False
        self.connect_ok = True
        self.closed = False
        self.calls = []
        self.next_response = FakeResponse(registers=[0])
        self.raise_on_call = None

    def connect(self):
        self.connected = self.connect_ok
        return self.connected

    def close(self):
        self.closed = True
        self.connected = False

    def _respond(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if self.raise_on_call:
            raise self.raise_on_call
        return self.next_response

    def read_holding_registers(self, address, count=1, slave=1):
        return self._respond("read_holding_registers", address, count=count, slave=slave)

    def read_input_registers(self, address, count=1, slave=1):
        return self._respond("read_input_registers", address, count=count, slave=slave)

    def write_register(self, address, value, slave=1):
        return self._respond("write_register", address, value, slave=slave)


GW = Endpoint("192.168.64.52", 3)


class TestModbusDriver:

    @pytest.fixture
    def clients(self):
        return []

    @pytest.fixture
    def driver(self, clients):
        def factory(host, port, timeout):
            client = FakeModbusClient(host, port, timeout)
            clients.append(client)
            return client
        return ModbusDriver(port=1502, timeout=0.5, client_factory=factory)

    def test_read_holding_registers(self, driver, clients):
        driver.read_registers(GW, 3, 1, 1)
        clients[0].next_response = FakeResponse(registers=[5, 1])
        values = driver.read_registers(GW, 3, 10, 2)
        assert values == [5, 1]
        name, args, kwargs = clients[0].calls[-1]
        assert name == "read_holding_registers"
        assert args == (10,)
        assert kwargs == {"count": 2, "slave": 3}

    def test_factory_receives_port_and_timeout(self, driver, clients):
        driver.read_registers(GW, 3, 1, 1)
        assert clients[0].host == "192.168.64.52"
        assert clients[0].port == 1502
        assert clients[0].timeout == 0.5

    def test_input_registers_function_code(self, driver, clients):
        driver.read_registers(GW, 4, 0, 1)
        assert clients[0].calls[0][0] == "read_input_registers"

    def test_connection_reused_across_slaves(self, driver, clients):
        driver.read_registers(Endpoint("192.168.64.52", 1), 3, 1, 1)
        driver.read_registers(Endpoint("192.168.64.52", 2), 3, 1, 1)
        assert len(clients) == 1
        assert driver.open_connections == 1

    def test_separate_gateways_get_separate_clients(self, driver, clients):
        driver.read_registers(Endpoint("192.168.64.87", 1), 3, 1, 1)
        driver.read_registers(Endpoint("192.168.64.89", 1), 3, 1, 1)
        assert len(clients) == 2

    def test_error_response_raises_comm_error(self, driver, clients):
        driver.read_registers(GW, 3, 1, 1)
        clients[0].next_response = FakeResponse(error=True)
        with pytest.raises(CommError) as exc_info:
            driver.read_registers(GW, 3, 1, 1)
        assert exc_info.value.endpoint == GW

    def test_error_response_keeps_shared_gateway_open(self, driver, clients):
        driver.read_registers(Endpoint("192.168.64.52", 1), 3, 1, 1)
        clients[0].next_response = FakeResponse(error=True)
        with pytest.raises(CommError):
            driver.read_registers(Endpoint("192.168.64.52", 4), 3, 1, 1)
        with pytest.raises(CommError):
            driver.write_register(Endpoint("192.168.64.52", 4), 6, 0, 1)
        assert not clients[0].closed
        assert driver.open_connections == 1

        # Neighbour slave on the same gateway still reads over the same client
        clients[0].next_response = FakeResponse(registers=[1])
        assert driver.read_registers(Endpoint("192.168.64.52", 2), 3, 1, 1) == [1]
        assert len(clients) == 1

    def test_failure_drops_connection(self, driver, clients):
        driver.read_registers(GW, 3, 1, 1)
        clients[0].raise_on_call = ConnectionException("reset by peer")
        with pytest.raises(CommError):
            driver.read_registers(GW, 3, 1, 1)
        assert clients[0].closed
        assert driver.open_connections == 0

        # Next call reconnects with a fresh client
        driver.read_registers(GW, 3, 1, 1)
        assert len(clients) == 2

    def test_os_error_wrapped(self, driver, clients):
        driver.read_registers(GW, 3, 1, 1)
        clients[0].raise_on_call = OSError("host unreachable")
        with pytest.raises(CommError):
            driver.read_registers(GW, 3, 1, 1)

    def test_connect_failure(self, clients):
        def factory(host, port, timeout):
            client = FakeModbusClient(host, port, timeout)
            client.connect_ok = False
            clients.append(client)
            return client
        driver = ModbusDriver(client_factory=factory)
        with pytest.raises(CommError, match="unable to connect"):
            driver.read_registers(GW, 3, 1, 1)
        assert driver.open_connections == 0

    def test_malformed_response(self, driver, clients):
        driver.read_registers(GW, 3, 1, 1)
        clients[0].next_response = FakeResponse(registers=None)
        with pytest.raises(CommError, match="malformed"):
            driver.read_registers(GW, 3, 1, 1)

    def test_unsupported_read_function_code(self, driver, clients):
        with pytest.raises(CommError):
            driver.read_registers(GW, 6, 0, 1)
        assert clients == []

    def test_write_register(self, driver, clients):
        driver.write_register(GW, 6, 0, 1)
        name, args, kwargs = clients[0].calls[0]
        assert name == "write_register"
        assert args == (0, 1)
        assert kwargs == {"slave": 3}

    def test_write_error_response(self, driver, clients):
        driver.read_registers(GW, 3, 1, 1)
        clients[0].next_response = FakeResponse(error=True)
        with pytest.raises(CommError):
            driver.write_register(GW, 6, 0, 0)

    def test_write_unsupported_function_code(self, driver):
        with pytest.raises(CommError):
            driver.write_register(GW, 16, 0, 1)

    def test_write_value_out_of_range(self, driver):
        with pytest.raises(CommError):
            driver.write_register(GW, 6, 0, 0x10000)

    def test_close_all(self, driver, clients):
        driver.read_registers(Endpoint("192.168.64.87", 1), 3, 1, 1)
        driver.read_registers(Endpoint("192.168.64.89", 1), 3, 1, 1)
        driver.close_all()
        assert all(c.closed for c in clients)
        assert driver.open_connections == 0

    def test_close_all_when_empty(self, driver):
        driver.close_all()
        assert driver.open_connections == 0
