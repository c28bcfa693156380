class BoxwireError(Exception):
    """Base class for every error raised by boxwire."""
    pass


class FramingError(BoxwireError):
    """Raised when a length prefix is malformed, too large, or the stream ends mid-frame."""
    pass


class ProtocolError(BoxwireError):
    """Raised when a peer sends a bad handshake frame or a malformed envelope."""
    pass


class AuthenticationFailure(BoxwireError):
    """Raised when a box fails to open. Channels drop the frame instead of propagating this."""
    pass


class ConnectionClosed(BoxwireError):
    """Terminal signal: the underlying stream ended, errored, or was destroyed."""
    pass


class BackpressureError(BoxwireError):
    """Raised by send() when the pending write buffer would exceed its bound."""
    pass


class KeyFileError(BoxwireError):
    """Raised when key material cannot be read or decoded."""
    pass
