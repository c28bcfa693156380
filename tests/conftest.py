"""
Shared fixtures: key pairs and loopback connection pairs.
"""

import asyncio

import pytest

from boxwire.common.crypto import KeyPair
from boxwire.common.protocol import FramedConnection

TIMEOUT = 5.0


@pytest.fixture
def alice() -> KeyPair:
    return KeyPair.generate()


@pytest.fixture
def bob() -> KeyPair:
    return KeyPair.generate()


@pytest.fixture
def mallory() -> KeyPair:
    return KeyPair.generate()


async def _tcp_pair(**kwargs):
    """Return (client_side, server_side) FramedConnections over one loopback socket."""
    accepted = asyncio.get_running_loop().create_future()

    async def on_conn(reader, writer):
        accepted.set_result((reader, writer))

    server = await asyncio.start_server(on_conn, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    r1, w1 = await asyncio.open_connection("127.0.0.1", port)
    r2, w2 = await asyncio.wait_for(accepted, TIMEOUT)
    server.close()
    return FramedConnection(r1, w1, **kwargs), FramedConnection(r2, w2, **kwargs)


@pytest.fixture
def tcp_pair():
    return _tcp_pair


async def _closed_port() -> int:
    """A loopback port with nothing listening on it."""
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    return port


@pytest.fixture
def closed_port():
    return _closed_port
