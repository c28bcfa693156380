import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

HOST = "0.0.0.0"          # listener bind address
CLIENT_HOST = "127.0.0.1"  # default address the client dials
PORT = 5050
ENC = "utf-8"             # encoding for JSON text and CLI lines
KEY_FILE = "boxwire_key.pem"

MAX_FRAME_SIZE = 16 * 1024 * 1024    # 16 MiB
MAX_SEND_BUFFER = 64 * 1024 * 1024   # 64 MiB
HANDSHAKE_TIMEOUT = 30.0             # seconds


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass
class Settings:
    ''' Runtime settings shared by the listener, the client and the CLIs '''
    host: str = HOST
    client_host: str = CLIENT_HOST
    port: int = PORT
    key_file: str = KEY_FILE
    max_frame_size: int = MAX_FRAME_SIZE
    max_send_buffer: Optional[int] = MAX_SEND_BUFFER   # None => unbounded
    handshake_timeout: Optional[float] = HANDSHAKE_TIMEOUT  # None => wait forever
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        '''
        Build settings from BOXWIRE_* environment variables (a .env file in the
        working directory is loaded on import). Zero disables the send buffer
        bound and the handshake timeout.
        '''
        send_buffer = _env_int("BOXWIRE_MAX_SEND_BUFFER", MAX_SEND_BUFFER)
        timeout = _env_float("BOXWIRE_HANDSHAKE_TIMEOUT", HANDSHAKE_TIMEOUT)
        max_frame = _env_int("BOXWIRE_MAX_FRAME_SIZE", MAX_FRAME_SIZE)
        if max_frame <= 0:
            raise ValueError("BOXWIRE_MAX_FRAME_SIZE must be positive")
        return cls(
            host=os.getenv("BOXWIRE_HOST", HOST),
            client_host=os.getenv("BOXWIRE_HOST", CLIENT_HOST),
            port=_env_int("BOXWIRE_PORT", PORT),
            key_file=os.getenv("BOXWIRE_KEY_FILE", KEY_FILE),
            max_frame_size=max_frame,
            max_send_buffer=send_buffer if send_buffer > 0 else None,
            handshake_timeout=timeout if timeout > 0 else None,
            log_level=os.getenv("BOXWIRE_LOG_LEVEL", "INFO").upper(),
        )
