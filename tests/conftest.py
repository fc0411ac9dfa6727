import socket
import time

import pytest

from mock_scpi_server import MockInstrument, idn_handler


@pytest.fixture
def mock_instrument():
    """Factory for started mock instruments, stopped at teardown."""
    servers = []

    def make(handler=None, **kwargs):
        server = MockInstrument(handler, **kwargs).start()
        servers.append(server)
        return server

    yield make
    for server in servers:
        server.stop()


@pytest.fixture
def idn_server(mock_instrument):
    return mock_instrument(idn_handler())


@pytest.fixture
def closed_port():
    """A localhost port with nothing listening on it."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
