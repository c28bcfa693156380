"""
Main entry point for the boxwire client.
Connect to a listener whose public key we already know, then send every stdin
line as one encrypted message and print whatever comes back.
"""
import argparse
import asyncio
import logging
import sys
import threading

from boxwire.common.config import ENC, Settings
from boxwire.common.errors import BoxwireError, ConnectionClosed, ProtocolError
from boxwire.common.keys import load_key_pair, read_public_key
from .net import Initiator

logger = logging.getLogger(__name__)


async def print_messages(client: Initiator):
    ''' Print incoming messages until the channel closes '''
    try:
        async for message in client:
            print(f"< {message.decode(ENC, errors='replace')}")
    except ProtocolError as e:
        print(f"Server sent a malformed message: {e}")
    print("Disconnected.")


async def run(client: Initiator, lines=None):
    '''
    Step 1: wait for the connection (the key frame is already queued)
    Step 2: pump input lines into the channel while printing replies
    Step 3: tear down on end of input or when the server goes away
    '''
    await client.wait_connected()
    print(f"Connected to {client.host}:{client.port}")
    reader = asyncio.create_task(print_messages(client))
    closed = asyncio.create_task(client.wait_closed())
    queue: asyncio.Queue = asyncio.Queue()
    threading.Thread(target=_read_lines,
                     args=(lines or sys.stdin, asyncio.get_running_loop(), queue),
                     daemon=True).start()
    try:
        while True:
            get = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({get, closed}, return_when=asyncio.FIRST_COMPLETED)
            if get not in done:
                get.cancel()
                break
            line = get.result()
            if line is None:
                break
            client.send(line.rstrip("\n").encode(ENC))
            await client.drain()
    except ConnectionClosed:
        pass
    finally:
        client.destroy()
        closed.cancel()
        await reader


def _read_lines(stream, loop, queue):
    ''' Thread function: blocking reads from stream, handed to the event loop. None marks the end. '''
    try:
        for line in iter(stream.readline, ""):
            loop.call_soon_threadsafe(queue.put_nowait, line)
        loop.call_soon_threadsafe(queue.put_nowait, None)
    except RuntimeError:
        # event loop already closed
        return


def main(argv=None):
    settings = Settings.from_env()
    ap = argparse.ArgumentParser(description="Open an encrypted boxwire channel")
    ap.add_argument("--host", default=settings.client_host, help="Server host address")
    ap.add_argument("--port", type=int, default=settings.port, help="Server port")
    ap.add_argument("--key-file", default=settings.key_file, help="Our key pair (boxwire-keygen)")
    ap.add_argument("--peer-key", required=True,
                    help="Server public key: hex, base64, PEM, or a file holding one")
    ap.add_argument("--log-level", default=settings.log_level, help="Logging level")
    args = ap.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        key_pair = load_key_pair(args.key_file)
        peer_key = read_public_key(args.peer_key)
    except BoxwireError as e:
        print(e)
        return 1

    async def _main():
        client = Initiator(args.host, args.port, key_pair, peer_key,
                           max_frame_size=settings.max_frame_size,
                           max_send_buffer=settings.max_send_buffer)
        await run(client)

    try:
        asyncio.run(_main())
    except ConnectionClosed as e:
        print(f"Cannot connect: {e}")
        return 1
    except KeyboardInterrupt:
        print("Exiting.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
