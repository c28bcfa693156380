"""
boxwire-server: listen for encrypted channels and print what each client sends.
"""
import argparse
import asyncio
import logging

from boxwire.common.channel import EncryptedChannel
from boxwire.common.config import ENC, Settings
from boxwire.common.errors import BoxwireError, ConnectionClosed, ProtocolError
from boxwire.common.keys import load_key_pair
from boxwire.server.listener import Listener, format_address

logger = logging.getLogger(__name__)


async def serve_client(channel: EncryptedChannel, echo: bool = False):
    ''' This function prints every message from one client until its channel closes
        Inputs:
        - channel: established channel for one client
        - echo: send each message back to the client
    '''
    tag = f"{format_address(channel.peername)} {channel.remote_public_key.hex()[:16]}"
    try:
        async for message in channel:
            print(f"[{tag}] {message.decode(ENC, errors='replace')}")
            if echo:
                channel.send(message)
    except ProtocolError as e:
        print(f"[{tag}] dropped: {e}")
    except BoxwireError:
        logger.exception("client %s failed", tag)
        channel.destroy()


async def run(listener: Listener, echo: bool = False):
    await listener.start()
    print(f"Server listening on {listener.host}:{listener.port}")
    print(f"Public key: {listener.key_pair.public_key.hex()}")
    tasks = set()
    try:
        while True:
            try:
                channel = await listener.accept()
            except ConnectionClosed:
                break
            print(f"[{format_address(channel.peername)}] joined as {channel.remote_public_key.hex()}")
            task = asyncio.create_task(serve_client(channel, echo))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
    finally:
        await listener.stop()
        for task in list(tasks):
            task.cancel()


def main(argv=None):
    settings = Settings.from_env()
    ap = argparse.ArgumentParser(description="Accept encrypted boxwire channels")
    ap.add_argument("--host", default=settings.host, help="Bind address")
    ap.add_argument("--port", type=int, default=settings.port, help="Port to listen on")
    ap.add_argument("--key-file", default=settings.key_file, help="Key pair written by boxwire-keygen")
    ap.add_argument("--echo", action="store_true", help="Send every message back to its sender")
    ap.add_argument("--log-level", default=settings.log_level, help="Logging level")
    args = ap.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        key_pair = load_key_pair(args.key_file)
    except BoxwireError as e:
        print(f"{e}\nCreate one with: boxwire-keygen {args.key_file}")
        return 1

    listener = Listener(key_pair, args.port, args.host,
                        max_frame_size=settings.max_frame_size,
                        max_send_buffer=settings.max_send_buffer,
                        handshake_timeout=settings.handshake_timeout)
    try:
        asyncio.run(run(listener, args.echo))
    except KeyboardInterrupt:
        print("Server stopped.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
