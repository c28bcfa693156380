import binascii
import os

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey

from .crypto import KEY_SIZE, KeyPair, b64d
from .errors import KeyFileError


def private_key_pem(key_pair: KeyPair) -> bytes:
    '''
    The function returns the secret key as an unencrypted PKCS#8 PEM block.
    X25519 keys in this format are readable by openssl.
    '''
    priv = X25519PrivateKey.from_private_bytes(key_pair.secret_key)
    return priv.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption()
    )


def public_key_pem(public_key: bytes) -> str:
    '''
    The function returns a raw public key as a SubjectPublicKeyInfo PEM string.
        Input:
            - public_key: 32-byte X25519 public key
        Output:
            - PEM string of the public key
    '''
    pub = X25519PublicKey.from_public_bytes(public_key)
    pem = pub.public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return pem.decode()


def save_key_pair(path: str, key_pair: KeyPair) -> None:
    ''' This function writes the key pair to path as PEM, readable only by the owner '''
    data = private_key_pem(key_pair)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    os.chmod(path, 0o600)


def load_key_pair(path: str) -> KeyPair:
    '''
    This function reads a key pair written by save_key_pair().
    Raises KeyFileError if the file is missing or does not hold an X25519 private key.
    '''
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise KeyFileError(f"cannot read key file {path}: {e}") from e
    try:
        priv = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError) as e:
        raise KeyFileError(f"{path} is not a PEM private key: {e}") from e
    if not isinstance(priv, X25519PrivateKey):
        raise KeyFileError(f"{path} does not hold an X25519 key")
    raw = priv.private_bytes(
        serialization.Encoding.Raw,
        serialization.PrivateFormat.Raw,
        serialization.NoEncryption()
    )
    return KeyPair.from_secret_key(raw)


def load_public_key(text: str) -> bytes:
    '''
    This function parses a public key given as PEM, 64 hex characters, or base64 of 32 bytes.
        Input:
            - text: encoded public key
        Output: raw 32-byte public key
    '''
    text = text.strip()
    if text.startswith("-----BEGIN"):
        try:
            pub = serialization.load_pem_public_key(text.encode())
        except (ValueError, TypeError) as e:
            raise KeyFileError(f"not a PEM public key: {e}") from e
        if not isinstance(pub, X25519PublicKey):
            raise KeyFileError("PEM public key is not an X25519 key")
        return pub.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)

    raw = None
    if len(text) == 2 * KEY_SIZE:
        try:
            raw = bytes.fromhex(text)
        except ValueError:
            raw = None
    if raw is None:
        try:
            raw = b64d(text)
        except (binascii.Error, ValueError):
            raise KeyFileError("public key is neither PEM, hex nor base64") from None
    if len(raw) != KEY_SIZE:
        raise KeyFileError(f"public key must be {KEY_SIZE} bytes, got {len(raw)}")
    return raw


def read_public_key(value: str) -> bytes:
    ''' This function accepts either an encoded key or the path of a file holding one '''
    if os.path.isfile(value):
        try:
            with open(value, "r", encoding="utf-8") as f:
                value = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise KeyFileError(f"cannot read public key file: {e}") from e
    return load_public_key(value)
