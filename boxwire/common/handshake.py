"""
One-shot bootstrap that tells the responder which public key the initiator claims.

The first frame on every connection is the initiator's raw 32-byte public key,
in the clear. Everything after it is an encrypted envelope.

The announced key is self-asserted: nothing proves the initiator holds the
matching secret key, so the responder learns who the initiator *claims* to be,
not who it is. A peer announcing someone else's key cannot read replies or
produce frames that open, but it can make the responder hold a channel bound
to that key. Changing this needs a new protocol version.
"""
import asyncio
import logging
from typing import Optional

from .channel import EncryptedChannel
from .crypto import KEY_SIZE, KeyPair
from .errors import ConnectionClosed, ProtocolError
from .protocol import FramedConnection

logger = logging.getLogger(__name__)


async def accept_handshake(conn: FramedConnection, key_pair: KeyPair,
                           timeout: Optional[float] = None) -> EncryptedChannel:
    '''
    Responder side: read the first frame as the remote public key and bind a channel to it.
    Raises ProtocolError (connection destroyed) for a key of the wrong length, a key
    no shared secret can be derived from, or a timeout. Raises ConnectionClosed if
    the stream ends first.
    '''
    try:
        announced = await asyncio.wait_for(conn.recv(), timeout)
    except asyncio.TimeoutError:
        err = ProtocolError(f"no handshake frame within {timeout} seconds")
        conn.abort(err)
        raise err from None
    except ConnectionClosed:
        conn.destroy()
        raise
    if len(announced) != KEY_SIZE:
        err = ProtocolError(f"handshake key must be {KEY_SIZE} bytes, got {len(announced)}")
        conn.abort(err)
        raise err
    logger.debug("peer %s announced key %s", conn.peername, announced.hex())
    try:
        return EncryptedChannel(conn, announced, key_pair.secret_key)
    except ValueError as e:
        # right length, but not a usable Curve25519 point (e.g. low order)
        err = ProtocolError(f"handshake key rejected: {e}")
        conn.abort(err)
        raise err from None


def initiate_handshake(channel: EncryptedChannel, key_pair: KeyPair) -> EncryptedChannel:
    '''
    Initiator side: announce our raw public key, unencrypted, as the first frame
    of the channel's connection. The channel is already bound to the key we
    expect the other end to hold; every later frame is an envelope.
    '''
    channel.connection.send(key_pair.public_key)
    return channel
