import asyncio
import logging
from typing import Callable, List, Optional, Set

from boxwire.common.channel import EncryptedChannel
from boxwire.common.config import HANDSHAKE_TIMEOUT, HOST, MAX_FRAME_SIZE, MAX_SEND_BUFFER
from boxwire.common.crypto import KeyPair
from boxwire.common.errors import ConnectionClosed, ProtocolError
from boxwire.common.handshake import accept_handshake
from boxwire.common.protocol import FramedConnection
from boxwire.server.state import Client, ServerState

logger = logging.getLogger(__name__)

ClientObserver = Callable[[EncryptedChannel], None]


def format_address(peername) -> str:
    if not peername:
        return "unknown"
    return f"{peername[0]}:{peername[1]}"


class Listener:
    '''
    Accepts TCP connections, runs the responder handshake on each one and emits
    ready EncryptedChannels.

    Channels are delivered to every `on_client` observer and to an unbounded
    queue read with `await accept()` or `async for channel in listener`. A bad
    handshake closes that connection only. stop() ends the stream of clients.

        async with Listener(key_pair, 5050) as listener:
            async for channel in listener:
                ...
    '''

    def __init__(self, key_pair: KeyPair, port: int, host: str = HOST, *,
                 max_frame_size: int = MAX_FRAME_SIZE,
                 max_send_buffer: Optional[int] = MAX_SEND_BUFFER,
                 handshake_timeout: Optional[float] = HANDSHAKE_TIMEOUT):
        self.key_pair = key_pair
        self.host = host
        self._port = port
        self.max_frame_size = max_frame_size
        self.max_send_buffer = max_send_buffer
        self.handshake_timeout = handshake_timeout
        self.state = ServerState()
        self._server: Optional[asyncio.AbstractServer] = None
        self._observers: List[ClientObserver] = []
        self._clients: "asyncio.Queue[Optional[EncryptedChannel]]" = asyncio.Queue()
        self._handshaking: Set[FramedConnection] = set()
        self._stopped = False

    @property
    def port(self) -> int:
        ''' Bound port once started; differs from the requested one when 0 was passed '''
        return self._port

    @property
    def serving(self) -> bool:
        return self._server is not None and not self._stopped

    def on_client(self, cb: ClientObserver) -> None:
        ''' Register cb(channel), called for every established channel '''
        self._observers.append(cb)

    async def start(self) -> None:
        if self._server is not None:
            return
        self._server = await asyncio.start_server(self._handle_client, self.host, self._port)
        if self._server.sockets:
            self._port = self._server.sockets[0].getsockname()[1]
        logger.info("listening on %s:%s", self.host, self.port)

    async def stop(self, close_clients: bool = True) -> None:
        '''
        Stop accepting connections and end the client stream. Handshakes in
        progress are dropped. With close_clients, established channels are
        destroyed as well; otherwise their owners keep them.
        '''
        if self._stopped:
            return
        self._stopped = True
        if self._server is not None:
            self._server.close()
        for conn in list(self._handshaking):
            conn.destroy()
        if close_clients:
            for c in self.state.all_clients():
                c.channel.destroy()
        self._clients.put_nowait(None)   # end marker
        if self._server is not None and close_clients:
            await self._server.wait_closed()
        logger.info("listener on port %s stopped", self.port)

    async def accept(self) -> EncryptedChannel:
        ''' Wait for the next established channel. Raises ConnectionClosed once stopped. '''
        channel = await self._clients.get()
        if channel is None:
            self._clients.put_nowait(None)  # keep the marker for other waiters
            raise ConnectionClosed("listener stopped")
        return channel

    def __aiter__(self):
        return self

    async def __anext__(self) -> EncryptedChannel:
        try:
            return await self.accept()
        except ConnectionClosed:
            raise StopAsyncIteration from None

    async def __aenter__(self) -> "Listener":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        conn = FramedConnection(reader, writer,
                                max_frame_size=self.max_frame_size,
                                max_send_buffer=self.max_send_buffer)
        address = format_address(conn.peername)
        if self._stopped:
            conn.destroy()
            return
        self._handshaking.add(conn)
        try:
            channel = await accept_handshake(conn, self.key_pair, self.handshake_timeout)
        except ProtocolError as e:
            logger.warning("rejected %s: %s", address, e)
            return
        except ConnectionClosed:
            logger.debug("%s closed before completing the handshake", address)
            return
        finally:
            self._handshaking.discard(conn)

        if self._stopped:
            channel.destroy()
            return
        self.state.add_client(Client(address=address, channel=channel))
        channel.add_close_listener(lambda reason, a=address: self._on_closed(a, reason))
        logger.info("client %s connected, announced key %s", address, channel.remote_public_key.hex())

        for cb in list(self._observers):
            try:
                cb(channel)
            except Exception:
                logger.exception("on_client observer raised")
        self._clients.put_nowait(channel)

    def _on_closed(self, address: str, reason: Optional[BaseException]) -> None:
        self.state.remove(address)
        if reason is None:
            logger.info("client %s disconnected", address)
        else:
            logger.info("client %s disconnected: %s", address, reason)
