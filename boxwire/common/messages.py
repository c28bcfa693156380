import base64
import binascii
import json
from dataclasses import dataclass

from .config import ENC
from .errors import ProtocolError


# Carried as the payload of exactly one frame once a channel is encrypting.
@dataclass(frozen=True)
class Envelope:
    ciphertext: bytes    # sent as "data"
    nonce: bytes         # 24 bytes, sent as "nonce"

    def encode(self) -> bytes:
        obj = {
            "data": base64.b64encode(self.ciphertext).decode(),
            "nonce": base64.b64encode(self.nonce).decode(),
        }
        return json.dumps(obj, separators=(",", ":")).encode(ENC)

    @classmethod
    def decode(cls, frame: bytes) -> "Envelope":
        '''
        Parse one frame payload. Anything other than a JSON object with base64
        string fields "data" and "nonce" raises ProtocolError.
        '''
        try:
            obj = json.loads(frame.decode(ENC))
        except (UnicodeDecodeError, ValueError, RecursionError) as e:
            raise ProtocolError(f"envelope is not valid JSON: {e}") from None
        if not isinstance(obj, dict):
            raise ProtocolError("envelope must be a JSON object")

        fields = {}
        for name in ("data", "nonce"):
            value = obj.get(name)
            if not isinstance(value, str):
                raise ProtocolError(f"envelope field {name!r} missing or not a string")
            try:
                fields[name] = base64.b64decode(value.encode(), validate=True)
            except (binascii.Error, ValueError):
                raise ProtocolError(f"envelope field {name!r} is not base64") from None
        return cls(ciphertext=fields["data"], nonce=fields["nonce"])
