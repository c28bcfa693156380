"""
Tests for the command line tools: keygen, the server loop and the client loop.
"""

import asyncio
import io
import threading

import pytest

from boxwire import keygen
from boxwire.client import main as client_main
from boxwire.client.net import Initiator, connect
from boxwire.common.errors import ConnectionClosed
from boxwire.common.keys import load_key_pair, save_key_pair
from boxwire.common.protocol import FramedConnection
from boxwire.server import main as server_main
from boxwire.server.listener import Listener

TIMEOUT = 5.0


class IdleLines:
    """Line source that blocks like an idle terminal until released, then hits end of input."""

    def __init__(self):
        self.release = threading.Event()

    def readline(self) -> str:
        self.release.wait(TIMEOUT)
        return ""


class TestKeygen:
    """Tests for boxwire-keygen."""

    def test_writes_loadable_key(self, tmp_path, capsys):
        path = str(tmp_path / "id.pem")
        assert keygen.main([path]) == 0
        key_pair = load_key_pair(path)
        out = capsys.readouterr().out
        assert key_pair.public_key.hex() in out

    def test_refuses_to_overwrite(self, tmp_path, capsys):
        path = str(tmp_path / "id.pem")
        keygen.main([path])
        first = load_key_pair(path)
        assert keygen.main([path]) == 1
        assert load_key_pair(path) == first
        assert "--force" in capsys.readouterr().out

    def test_force(self, tmp_path):
        path = str(tmp_path / "id.pem")
        keygen.main([path])
        first = load_key_pair(path)
        assert keygen.main([path, "--force"]) == 0
        assert load_key_pair(path) != first

    def test_pem_output(self, tmp_path, capsys):
        keygen.main([str(tmp_path / "id.pem"), "--pem"])
        assert "-----BEGIN PUBLIC KEY-----" in capsys.readouterr().out


class TestServerCli:
    """Tests for boxwire-server."""

    @pytest.mark.asyncio
    async def test_echo(self, alice, bob, capsys):
        """Messages are printed and, with echo on, sent back."""
        listener = Listener(bob, 0, "127.0.0.1")
        server = asyncio.create_task(server_main.run(listener, echo=True))
        while not listener.serving:
            await asyncio.sleep(0.01)

        client = await connect("127.0.0.1", listener.port, alice, bob.public_key)
        client.send(b"echo me")
        assert await asyncio.wait_for(client.recv(), TIMEOUT) == b"echo me"

        await listener.stop()
        await asyncio.wait_for(server, TIMEOUT)
        client.destroy()
        out = capsys.readouterr().out
        assert "echo me" in out
        assert alice.public_key.hex() in out

    @pytest.mark.asyncio
    async def test_nested_json_drops_client(self, alice, bob, capsys):
        """A frame nested past the JSON recursion limit ends only that client's session."""
        listener = Listener(bob, 0, "127.0.0.1")
        await listener.start()
        raw = FramedConnection.open("127.0.0.1", listener.port)
        raw.send(alice.public_key)
        raw.send(b"[" * 200_000 + b"]" * 200_000)

        channel = await asyncio.wait_for(listener.accept(), TIMEOUT)
        await asyncio.wait_for(server_main.serve_client(channel), TIMEOUT)
        assert channel.closed
        assert len(listener.state) == 0
        assert "dropped" in capsys.readouterr().out
        with pytest.raises(ConnectionClosed):
            await asyncio.wait_for(raw.recv(), TIMEOUT)
        await listener.stop()

    def test_missing_key_file(self, tmp_path, capsys):
        code = server_main.main(["--key-file", str(tmp_path / "missing.pem")])
        assert code == 1
        assert "boxwire-keygen" in capsys.readouterr().out


class TestClientCli:
    """Tests for boxwire-client."""

    @pytest.mark.asyncio
    async def test_lines_become_messages(self, alice, bob, capsys):
        listener = Listener(bob, 0, "127.0.0.1")
        await listener.start()
        client = Initiator("127.0.0.1", listener.port, alice, bob.public_key)
        session = asyncio.create_task(client_main.run(client, io.StringIO("hello\nworld\n")))

        channel = await asyncio.wait_for(listener.accept(), TIMEOUT)
        received = [await asyncio.wait_for(channel.recv(), TIMEOUT) for _ in range(2)]
        assert received == [b"hello", b"world"]

        await asyncio.wait_for(session, TIMEOUT)
        assert client.closed
        await listener.stop()
        out = capsys.readouterr().out
        assert "Connected to 127.0.0.1" in out
        assert "Disconnected." in out

    @pytest.mark.asyncio
    async def test_server_going_away_ends_session(self, alice, bob):
        listener = Listener(bob, 0, "127.0.0.1")
        await listener.start()
        client = Initiator("127.0.0.1", listener.port, alice, bob.public_key)
        lines = IdleLines()
        session = asyncio.create_task(client_main.run(client, lines))

        channel = await asyncio.wait_for(listener.accept(), TIMEOUT)
        channel.destroy()
        await asyncio.wait_for(session, TIMEOUT)
        assert client.closed
        lines.release.set()
        await listener.stop()

    def test_bad_peer_key(self, tmp_path, alice, capsys):
        key_file = str(tmp_path / "id.pem")
        save_key_pair(key_file, alice)
        code = client_main.main(["--key-file", key_file, "--peer-key", "not-a-key"])
        assert code == 1
        assert capsys.readouterr().out.strip()
