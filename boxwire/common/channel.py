import logging
from typing import Optional

from .crypto import KEY_SIZE, make_box, open_envelope, seal_envelope
from .errors import AuthenticationFailure, ConnectionClosed, ProtocolError
from .protocol import CloseListener, FramedConnection

logger = logging.getLogger(__name__)


class EncryptedChannel:
    '''
    Authenticated encryption over one FramedConnection, bound for its whole
    life to one remote public key and one local secret key.

    Messages are read with `await recv()` or `async for message in channel`.
    Frames that fail authentication are dropped without a trace and the
    channel stays usable. A malformed envelope destroys the channel and raises
    ProtocolError once; afterwards recv() raises ConnectionClosed.
    '''

    def __init__(self, connection: FramedConnection, remote_public_key: bytes, local_secret_key: bytes):
        if len(remote_public_key) != KEY_SIZE:
            raise ValueError(f"remote public key must be {KEY_SIZE} bytes")
        self._conn = connection
        self._remote_pk = bytes(remote_public_key)
        self._box = make_box(self._remote_pk, local_secret_key)

    @property
    def remote_public_key(self) -> bytes:
        return self._remote_pk

    @property
    def connection(self) -> FramedConnection:
        return self._conn

    @property
    def peername(self):
        return self._conn.peername

    @property
    def closed(self) -> bool:
        return self._conn.closed

    def send(self, message: bytes) -> None:
        ''' Encrypt one message under a fresh nonce and write it as one frame '''
        self._conn.send(seal_envelope(self._box, bytes(message)))

    async def drain(self) -> None:
        await self._conn.drain()

    async def recv(self) -> bytes:
        ''' Return the next authenticated plaintext, in stream order '''
        while True:
            frame = await self._conn.recv()
            try:
                return open_envelope(self._box, frame)
            except AuthenticationFailure:
                logger.debug("dropped a frame from %s that failed authentication", self.peername)
                continue
            except ProtocolError as e:
                logger.warning("protocol error from %s: %s", self.peername, e)
                self._conn.abort(e)
                raise

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        try:
            return await self.recv()
        except ConnectionClosed:
            raise StopAsyncIteration from None

    def add_close_listener(self, cb: CloseListener) -> None:
        self._conn.add_close_listener(cb)

    async def wait_closed(self) -> None:
        await self._conn.wait_closed()

    @property
    def close_reason(self) -> Optional[BaseException]:
        return self._conn.close_reason

    def destroy(self) -> None:
        ''' Tear down the underlying connection. Idempotent. '''
        self._conn.destroy()

    def __repr__(self) -> str:
        return f"<EncryptedChannel remote={self._remote_pk.hex()[:16]} peer={self.peername}>"
