import asyncio
import logging
from collections import deque
from typing import Callable, Deque, List, Optional

from .config import MAX_FRAME_SIZE, MAX_SEND_BUFFER
from .errors import BackpressureError, ConnectionClosed, FramingError

logger = logging.getLogger(__name__)

READ_SIZE = 64 * 1024      # bytes requested per read from the stream
MAX_PREFIX_BYTES = 10      # a 64-bit varint never needs more

CloseListener = Callable[[Optional[BaseException]], None]


def encode_varint(n: int) -> bytes:
    '''
    The function encodes a non-negative integer as an unsigned LEB128 varint
    (7 bits per byte, least significant group first, high bit = more bytes follow).
    '''
    if n < 0:
        raise ValueError("varint must be non-negative")
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(b | 0x80)
        else:
            out.append(b)
            return bytes(out)


def encode_frame(frame: bytes) -> bytes:
    ''' This function returns the length-prefixed wire form of one frame '''
    return encode_varint(len(frame)) + bytes(frame)


class FrameDecoder:
    '''
    Incremental decoder for length-prefixed frames. Bytes may be fed in chunks of
    any size; a frame is returned only once its whole payload has arrived.

    A malformed prefix or a claimed length above max_frame_size puts the decoder
    into a failed state: feed() returns the frames decoded before the bad prefix
    and sets `error`; later calls return nothing.
    '''

    def __init__(self, max_frame_size: int = MAX_FRAME_SIZE):
        self.max_frame_size = max_frame_size
        self.error: Optional[FramingError] = None
        self._buf = bytearray()
        self._need: Optional[int] = None   # payload length once the prefix is parsed

    @property
    def mid_frame(self) -> bool:
        ''' True when a prefix or payload has started but not finished '''
        return bool(self._buf) or self._need is not None

    def feed(self, chunk: bytes) -> List[bytes]:
        if self.error is not None:
            return []
        self._buf.extend(chunk)
        frames: List[bytes] = []
        while True:
            if self._need is None:
                try:
                    parsed = self._parse_prefix()
                except FramingError as e:
                    self.error = e
                    self._buf.clear()
                    return frames
                if parsed is None:
                    return frames
                self._need, used = parsed
                del self._buf[:used]
            if len(self._buf) < self._need:
                return frames
            frames.append(bytes(self._buf[:self._need]))
            del self._buf[:self._need]
            self._need = None

    def reset(self) -> None:
        self._buf = bytearray()
        self._need = None

    def _parse_prefix(self):
        # Returns (length, prefix_size), or None while the prefix is incomplete.
        n = 0
        shift = 0
        for i, b in enumerate(self._buf):
            if i >= MAX_PREFIX_BYTES:
                raise FramingError(f"length prefix longer than {MAX_PREFIX_BYTES} bytes")
            n |= (b & 0x7F) << shift
            shift += 7
            if not b & 0x80:
                if n > self.max_frame_size:
                    raise FramingError(f"frame length {n} exceeds limit {self.max_frame_size}")
                return n, i + 1
        return None


class FramedConnection:
    '''
    Frames over an asyncio stream pair.

    Frames are read with `await recv()` or `async for frame in conn`. When the
    stream ends, errors, or is destroyed, recv() raises ConnectionClosed, the
    iteration stops, and every close listener is called exactly once.

    Writes never wait: send() appends to the transport buffer. When the buffer
    would grow past max_send_buffer, send() raises BackpressureError and writes
    nothing; callers that prefer to block await drain() between sends.
    '''

    def __init__(self, reader: Optional[asyncio.StreamReader],
                 writer: Optional[asyncio.StreamWriter], *,
                 max_frame_size: int = MAX_FRAME_SIZE,
                 max_send_buffer: Optional[int] = MAX_SEND_BUFFER,
                 read_size: int = READ_SIZE):
        self._reader = reader
        self._writer = writer
        self._decoder = FrameDecoder(max_frame_size)
        self._max_send_buffer = max_send_buffer
        self._read_size = read_size
        self._frames: Deque[bytes] = deque()   # decoded, not yet handed out
        self._pending = bytearray()            # writes queued before the transport exists
        self._connect_task: Optional[asyncio.Task] = None
        self._connect_error: Optional[BaseException] = None
        self._at_eof = False
        self._error: Optional[BaseException] = None
        self._closed = False
        self._close_reason: Optional[BaseException] = None
        self._close_listeners: List[CloseListener] = []
        self._closed_event = asyncio.Event()
        self.peername = writer.get_extra_info("peername") if writer is not None else None

    @classmethod
    def open(cls, host: str, port: int, **kwargs) -> "FramedConnection":
        '''
        Start connecting to (host, port) in the background and return at once.
        Frames sent before the connection is up are queued and flushed in order.
        Must be called with an event loop running.
        '''
        conn = cls(None, None, **kwargs)
        loop = asyncio.get_running_loop()
        conn._connect_task = loop.create_task(conn._connect(host, port))
        return conn

    async def _connect(self, host: str, port: int) -> None:
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as e:
            logger.warning("connect to %s:%s failed: %s", host, port, e)
            self._connect_error = e
            self._close(e)
            return
        if self._closed:
            # destroyed while the connect was in flight
            writer.close()
            return
        self._reader, self._writer = reader, writer
        self.peername = writer.get_extra_info("peername")
        logger.debug("connected to %s:%s", host, port)
        if self._pending:
            writer.write(bytes(self._pending))
            self._pending.clear()

    async def wait_connected(self) -> None:
        ''' Wait until the stream is up. Raises ConnectionClosed if it never will be. '''
        if self._connect_task is not None:
            await asyncio.wait({self._connect_task})
        if self._connect_error is not None:
            raise ConnectionClosed(f"connect failed: {self._connect_error}") from self._connect_error
        if self._closed:
            raise ConnectionClosed("connection is closed")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def close_reason(self) -> Optional[BaseException]:
        ''' The error that ended the connection, or None for a clean close '''
        return self._close_reason

    def add_close_listener(self, cb: CloseListener) -> None:
        ''' Register cb(reason); called once when the connection closes (at once if already closed) '''
        if self._closed:
            self._notify(cb)
        else:
            self._close_listeners.append(cb)

    async def wait_closed(self) -> None:
        await self._closed_event.wait()

    def send(self, frame: bytes) -> None:
        '''
        Write one frame.
        Raises ConnectionClosed after close, BackpressureError when the send
        buffer bound would be exceeded.
        '''
        if self._closed:
            raise ConnectionClosed("connection is closed")
        data = encode_frame(frame)
        if self._writer is None:
            queued = len(self._pending)
        else:
            queued = self._writer.transport.get_write_buffer_size()
        if self._max_send_buffer is not None and queued + len(data) > self._max_send_buffer:
            raise BackpressureError(
                f"send buffer holds {queued} bytes; {len(data)} more would exceed {self._max_send_buffer}")
        if self._writer is None:
            self._pending.extend(data)
        else:
            self._writer.write(data)

    async def drain(self) -> None:
        ''' Wait for the transport to flush its write buffer '''
        await self.wait_connected()
        try:
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            self._close(e)
            raise ConnectionClosed(f"write failed: {e}") from e

    async def recv(self) -> bytes:
        ''' Return the next frame, in stream order. Raises ConnectionClosed at the end. '''
        while not self._frames:
            if self._closed:
                raise ConnectionClosed("connection is closed")
            if self._at_eof:
                self._close(self._error)
                continue
            if self._reader is None:
                if self._connect_task is not None:
                    await asyncio.wait({self._connect_task})
                if self._reader is None and not self._closed:
                    self._close(ConnectionClosed("no stream to read from"))
                continue
            try:
                chunk = await self._reader.read(self._read_size)
            except (ConnectionError, OSError) as e:
                logger.debug("read from %s failed: %s", self.peername, e)
                self._error = e
                self._at_eof = True
                continue
            if self._closed:
                continue
            if not chunk:
                self._at_eof = True
                if self._decoder.mid_frame:
                    self._error = FramingError("stream ended in the middle of a frame")
                    logger.warning("%s: %s", self.peername, self._error)
                continue
            self._frames.extend(self._decoder.feed(chunk))
            if self._decoder.error is not None:
                # frames decoded before the bad prefix are still delivered
                self._error = self._decoder.error
                self._at_eof = True
                logger.warning("closing %s: %s", self.peername, self._error)
                self._shutdown_transport()
        return self._frames.popleft()

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        try:
            return await self.recv()
        except ConnectionClosed:
            raise StopAsyncIteration from None

    def destroy(self) -> None:
        ''' Close the stream and release buffers. Safe to call any number of times. '''
        self._close(None)

    def abort(self, reason: BaseException) -> None:
        ''' Close the connection, recording reason as the close cause '''
        self._close(reason)

    def _shutdown_transport(self) -> None:
        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()
        if self._writer is not None:
            self._writer.close()

    def _close(self, reason: Optional[BaseException]) -> None:
        if self._closed:
            return
        self._closed = True
        self._close_reason = reason
        self._frames.clear()
        self._pending = bytearray()
        self._decoder.reset()
        self._shutdown_transport()
        logger.debug("connection %s closed (%s)", self.peername, reason or "clean")
        listeners, self._close_listeners = self._close_listeners, []
        for cb in listeners:
            self._notify(cb)
        self._closed_event.set()

    def _notify(self, cb: CloseListener) -> None:
        try:
            cb(self._close_reason)
        except Exception:
            # listener errors stay out of the connection lifecycle
            logger.exception("close listener raised")
