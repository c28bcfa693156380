import logging
from typing import Optional

from boxwire.common.channel import EncryptedChannel
from boxwire.common.config import MAX_FRAME_SIZE, MAX_SEND_BUFFER
from boxwire.common.crypto import KEY_SIZE, KeyPair
from boxwire.common.handshake import initiate_handshake
from boxwire.common.protocol import FramedConnection

logger = logging.getLogger(__name__)


class Initiator(EncryptedChannel):
    '''
    Encrypted channel to a known listener, usable as soon as it is constructed.

    The TCP connect runs in the background. Our public key goes out first and any
    message sent before the connection is up is queued behind it, so

        client = Initiator("127.0.0.1", 5050, my_keys, their_public_key)
        client.send(b"hello")

    works without awaiting. A failed connect closes the channel for good (no
    retries); wait_connected() reports it. Must be constructed inside a running
    event loop.
    '''

    def __init__(self, host: str, port: int, key_pair: KeyPair, remote_public_key: bytes, *,
                 max_frame_size: int = MAX_FRAME_SIZE,
                 max_send_buffer: Optional[int] = MAX_SEND_BUFFER):
        if len(remote_public_key) != KEY_SIZE:
            raise ValueError(f"remote public key must be {KEY_SIZE} bytes")
        self.host, self.port = host, port
        conn = FramedConnection.open(host, port,
                                     max_frame_size=max_frame_size,
                                     max_send_buffer=max_send_buffer)
        try:
            super().__init__(conn, remote_public_key, key_pair.secret_key)
        except ValueError:
            conn.destroy()
            raise
        initiate_handshake(self, key_pair)
        logger.debug("connecting to %s:%s as %s", host, port, key_pair.public_key.hex())

    async def wait_connected(self) -> None:
        ''' Wait for the TCP connect. Raises ConnectionClosed if it failed or the channel was destroyed. '''
        await self.connection.wait_connected()

    def __repr__(self) -> str:
        return f"<Initiator {self.host}:{self.port} remote={self.remote_public_key.hex()[:16]}>"


async def connect(host: str, port: int, key_pair: KeyPair, remote_public_key: bytes, **kwargs) -> Initiator:
    '''
    Open a channel and wait until the connection is established.
        Input:
            - host, port: listener address
            - key_pair: our key pair; its public half is announced to the listener
            - remote_public_key: key the listener is expected to hold
        Output: connected Initiator
    Raises ConnectionClosed when the connect fails.
    '''
    client = Initiator(host, port, key_pair, remote_public_key, **kwargs)
    await client.wait_connected()
    return client
