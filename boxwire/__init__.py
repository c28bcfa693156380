"""
Public API:
- KeyPair, generate_key_pair: X25519 identities
- FramedConnection: length-prefixed frames over an asyncio stream
- EncryptedChannel: public-key authenticated encryption over one connection
- Listener: accepts connections, runs the responder handshake, emits channels
- Initiator, connect: dial a listener whose public key is already known
- save_key_pair, load_key_pair, load_public_key: key material on disk
"""

from .common.crypto import KeyPair, generate_key_pair, box, box_open, random_bytes
from .common.protocol import FramedConnection, FrameDecoder, encode_frame
from .common.channel import EncryptedChannel
from .common.handshake import accept_handshake, initiate_handshake
from .common.keys import save_key_pair, load_key_pair, load_public_key
from .common.errors import (
    BoxwireError,
    FramingError,
    ProtocolError,
    AuthenticationFailure,
    ConnectionClosed,
    BackpressureError,
    KeyFileError,
)
from .server.listener import Listener
from .client.net import Initiator, connect

__all__ = [
    "KeyPair",
    "generate_key_pair",
    "box",
    "box_open",
    "random_bytes",
    "FramedConnection",
    "FrameDecoder",
    "encode_frame",
    "EncryptedChannel",
    "accept_handshake",
    "initiate_handshake",
    "save_key_pair",
    "load_key_pair",
    "load_public_key",
    "BoxwireError",
    "FramingError",
    "ProtocolError",
    "AuthenticationFailure",
    "ConnectionClosed",
    "BackpressureError",
    "KeyFileError",
    "Listener",
    "Initiator",
    "connect",
]

__version__ = "0.1.0"
