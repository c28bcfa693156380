"""
boxwire-keygen: create the key pair a listener or client identifies itself with.
"""
import argparse
import os

from boxwire.common.config import Settings
from boxwire.common.crypto import b64, generate_key_pair
from boxwire.common.keys import public_key_pem, save_key_pair


def main(argv=None):
    settings = Settings.from_env()
    ap = argparse.ArgumentParser(description="Generate an X25519 key pair for boxwire")
    ap.add_argument("path", nargs="?", default=settings.key_file, help="Where to write the key pair")
    ap.add_argument("--force", action="store_true", help="Overwrite an existing key file")
    ap.add_argument("--pem", action="store_true", help="Also print the public key as PEM")
    args = ap.parse_args(argv)

    if os.path.exists(args.path) and not args.force:
        print(f"{args.path} already exists; pass --force to replace it")
        return 1

    key_pair = generate_key_pair()
    save_key_pair(args.path, key_pair)
    print(f"Key pair written to {args.path}")
    print(f"Public key (hex):    {key_pair.public_key.hex()}")
    print(f"Public key (base64): {b64(key_pair.public_key)}")
    if args.pem:
        print(public_key_pem(key_pair.public_key), end="")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
