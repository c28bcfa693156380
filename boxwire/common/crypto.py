import base64
from dataclasses import dataclass
from typing import Optional

from nacl.exceptions import CryptoError
from nacl.public import Box, PrivateKey, PublicKey
from nacl.utils import random as nacl_random

from .errors import AuthenticationFailure, ProtocolError
from .messages import Envelope

KEY_SIZE = PublicKey.SIZE      # 32 bytes, public and secret alike
NONCE_SIZE = Box.NONCE_SIZE    # 24 bytes


@dataclass(frozen=True)
class KeyPair:
    ''' X25519 key pair. The secret half never leaves the process. '''
    public_key: bytes
    secret_key: bytes

    def __post_init__(self):
        if len(self.public_key) != KEY_SIZE or len(self.secret_key) != KEY_SIZE:
            raise ValueError(f"public and secret keys must be {KEY_SIZE} bytes each")

    @classmethod
    def generate(cls) -> "KeyPair":
        return generate_key_pair()

    @classmethod
    def from_secret_key(cls, secret_key: bytes) -> "KeyPair":
        ''' Rebuild a key pair from its 32-byte secret half '''
        sk = PrivateKey(secret_key)
        return cls(public_key=bytes(sk.public_key), secret_key=bytes(sk))

    def __repr__(self) -> str:
        return f"KeyPair(public_key={self.public_key.hex()})"


def generate_key_pair() -> KeyPair:
    ''' The function generates a fresh X25519 key pair from the system CSPRNG '''
    sk = PrivateKey.generate()
    return KeyPair(public_key=bytes(sk.public_key), secret_key=bytes(sk))


def random_bytes(n: int) -> bytes:
    ''' This function returns n bytes from a cryptographically secure source '''
    return nacl_random(n)


def make_box(their_pk: bytes, our_sk: bytes) -> Box:
    '''
    This function precomputes the shared box for one (remote public key, local secret key) pair.
        Input:
            - their_pk: remote party's 32-byte public key
            - our_sk: our 32-byte secret key
        Output: nacl Box usable for both directions of one channel
    Raises ValueError if either key has the wrong length.
    '''
    try:
        return Box(PrivateKey(our_sk), PublicKey(their_pk))
    except (CryptoError, TypeError) as e:
        raise ValueError(f"invalid key material: {e}") from e


def box(message: bytes, nonce: bytes, their_pk: bytes, our_sk: bytes) -> bytes:
    '''
    This function encrypts and authenticates a message for the holder of their_pk.
        Input:
            - message: plaintext bytes
            - nonce: 24 fresh random bytes
            - their_pk: receiver's public key
            - our_sk: sender's secret key
        Output: ciphertext (16-byte Poly1305 tag followed by the encrypted bytes)
    '''
    return make_box(their_pk, our_sk).encrypt(message, nonce).ciphertext


def box_open(ciphertext: bytes, nonce: bytes, their_pk: bytes, our_sk: bytes) -> Optional[bytes]:
    '''
    This function verifies and decrypts a ciphertext produced by box().
        Input:
            - ciphertext: output of box()
            - nonce: nonce the sender used
            - their_pk: sender's public key
            - our_sk: receiver's secret key
        Output: plaintext bytes, or None when authentication fails
    '''
    try:
        return make_box(their_pk, our_sk).decrypt(ciphertext, nonce)
    except CryptoError:
        return None


def seal_envelope(shared: Box, message: bytes) -> bytes:
    '''
    This function encrypts one application message into the bytes of one frame.
        Input:
            - shared: box from make_box()
            - message: plaintext bytes
        Output: UTF-8 JSON {"data": b64(ciphertext), "nonce": b64(nonce)}
    '''
    nonce = random_bytes(NONCE_SIZE)  # fresh per message, never reused
    ct = shared.encrypt(message, nonce).ciphertext
    return Envelope(ciphertext=ct, nonce=nonce).encode()


def open_envelope(shared: Box, frame: bytes) -> bytes:
    '''
    This function parses and decrypts the bytes of one frame.
        Input:
            - shared: box from make_box()
            - frame: frame payload produced by seal_envelope()
        Output: plaintext bytes
    Raises ProtocolError for a malformed envelope and AuthenticationFailure
    when the box does not open.
    '''
    env = Envelope.decode(frame)
    if len(env.nonce) != NONCE_SIZE:
        raise ProtocolError(f"nonce must be {NONCE_SIZE} bytes, got {len(env.nonce)}")
    try:
        return shared.decrypt(env.ciphertext, env.nonce)
    except CryptoError:
        raise AuthenticationFailure("box failed to open") from None


def b64(b: bytes) -> str:
    ''' This function encodes bytes to a Base64 string '''
    return base64.b64encode(b).decode()


def b64d(s: str) -> bytes:
    ''' This function decodes a Base64 string to bytes, rejecting non-alphabet characters '''
    return base64.b64decode(s.encode(), validate=True)
