"""
Unit tests for key pairs, box/box_open and envelopes.

Tests:
- key sizes and rebuilding from the secret half
- authenticated encryption round trip and its failure cases
- envelope wire form and malformed envelopes
"""

import base64
import json

import pytest

from boxwire.common.crypto import (
    KEY_SIZE,
    NONCE_SIZE,
    KeyPair,
    box,
    box_open,
    make_box,
    open_envelope,
    random_bytes,
    seal_envelope,
)
from boxwire.common.errors import AuthenticationFailure, ProtocolError
from boxwire.common.messages import Envelope


class TestKeyPair:
    """Tests for X25519 key pairs."""

    def test_sizes(self, alice):
        assert len(alice.public_key) == KEY_SIZE == 32
        assert len(alice.secret_key) == KEY_SIZE

    def test_distinct(self, alice, bob):
        """Two generated pairs never share a key."""
        assert alice.public_key != bob.public_key
        assert alice.secret_key != bob.secret_key

    def test_from_secret_key(self, alice):
        """The public half is recomputed from the secret half."""
        assert KeyPair.from_secret_key(alice.secret_key) == alice

    def test_wrong_size_rejected(self):
        with pytest.raises(ValueError):
            KeyPair(public_key=b"\x00" * 31, secret_key=b"\x00" * 32)

    def test_repr_hides_secret(self, alice):
        text = repr(alice)
        assert alice.public_key.hex() in text
        assert alice.secret_key.hex() not in text


class TestBox:
    """Tests for box and box_open."""

    def test_round_trip(self, alice, bob):
        nonce = random_bytes(NONCE_SIZE)
        ct = box(b"attack at dawn", nonce, bob.public_key, alice.secret_key)
        assert ct != b"attack at dawn"
        assert len(ct) == len(b"attack at dawn") + 16
        assert box_open(ct, nonce, alice.public_key, bob.secret_key) == b"attack at dawn"

    def test_empty_message(self, alice, bob):
        nonce = random_bytes(NONCE_SIZE)
        ct = box(b"", nonce, bob.public_key, alice.secret_key)
        assert box_open(ct, nonce, alice.public_key, bob.secret_key) == b""

    def test_wrong_key_fails(self, alice, bob, mallory):
        """A third party's secret key does not open the box."""
        nonce = random_bytes(NONCE_SIZE)
        ct = box(b"secret", nonce, bob.public_key, alice.secret_key)
        assert box_open(ct, nonce, alice.public_key, mallory.secret_key) is None

    def test_tampered_ciphertext_fails(self, alice, bob):
        nonce = random_bytes(NONCE_SIZE)
        ct = bytearray(box(b"secret", nonce, bob.public_key, alice.secret_key))
        ct[-1] ^= 0x01
        assert box_open(bytes(ct), nonce, alice.public_key, bob.secret_key) is None

    def test_wrong_nonce_fails(self, alice, bob):
        ct = box(b"secret", random_bytes(NONCE_SIZE), bob.public_key, alice.secret_key)
        assert box_open(ct, random_bytes(NONCE_SIZE), alice.public_key, bob.secret_key) is None

    def test_bad_key_length(self, alice):
        with pytest.raises(ValueError):
            make_box(b"\x01" * 16, alice.secret_key)


class TestEnvelope:
    """Tests for the JSON envelope carried in each frame."""

    def test_wire_form(self, alice, bob):
        """An envelope is a JSON object with base64 "data" and "nonce"."""
        frame = seal_envelope(make_box(bob.public_key, alice.secret_key), b"hi")
        obj = json.loads(frame.decode("utf-8"))
        assert set(obj) == {"data", "nonce"}
        assert len(base64.b64decode(obj["nonce"])) == NONCE_SIZE
        assert len(base64.b64decode(obj["data"])) == len(b"hi") + 16

    def test_open(self, alice, bob):
        frame = seal_envelope(make_box(bob.public_key, alice.secret_key), b"hello bob")
        assert open_envelope(make_box(alice.public_key, bob.secret_key), frame) == b"hello bob"

    def test_fresh_nonce_per_message(self, alice, bob):
        shared = make_box(bob.public_key, alice.secret_key)
        first = Envelope.decode(seal_envelope(shared, b"same"))
        second = Envelope.decode(seal_envelope(shared, b"same"))
        assert first.nonce != second.nonce
        assert first.ciphertext != second.ciphertext

    def test_tampered_envelope_is_authentication_failure(self, alice, bob):
        env = Envelope.decode(seal_envelope(make_box(bob.public_key, alice.secret_key), b"x"))
        forged = Envelope(ciphertext=bytes(16) + b"y", nonce=env.nonce).encode()
        with pytest.raises(AuthenticationFailure):
            open_envelope(make_box(alice.public_key, bob.secret_key), forged)

    @pytest.mark.parametrize("frame", [
        b"\xff\xfe not utf-8",
        b"not json",
        b"[1, 2]",
        b'{"data": "AAAA"}',
        b'{"data": 5, "nonce": "AAAA"}',
        b'{"data": "AAAA", "nonce": "!!!!"}',
        b"[" * 200_000 + b"]" * 200_000,
    ])
    def test_malformed_is_protocol_error(self, alice, bob, frame):
        with pytest.raises(ProtocolError):
            open_envelope(make_box(alice.public_key, bob.secret_key), frame)

    def test_short_nonce_is_protocol_error(self, alice, bob):
        frame = Envelope(ciphertext=bytes(32), nonce=bytes(8)).encode()
        with pytest.raises(ProtocolError):
            open_envelope(make_box(alice.public_key, bob.secret_key), frame)
