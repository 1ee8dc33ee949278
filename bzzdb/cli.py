#!/usr/bin/env python3
"""
bzzdb CLI

Command-line access to a key-value store kept on a Swarm node:
  bzzdb keygen - Create a signing key
  bzzdb put/get/delete/has - Key-value operations
  bzzdb stamps - List postage batches
  bzzdb devnode - Run an in-memory development node

Usage:
  bzzdb keygen -o key.pem
  bzzdb put <key> <value> [--config <file>] [--node-url <url>]
  bzzdb put <key> --file <path>
  bzzdb get <key> [-o <path>]
  bzzdb devnode --port 1633
"""

import argparse
import logging
import sys
from pathlib import Path

from .config import BzzConfig, load_config
from .context import Context
from .errors import BzzError, NotFoundError
from .signing import Signer


def _load(args) -> BzzConfig:
    config = load_config(args.config)
    if args.node_url:
        config.node_url = args.node_url
    if args.key_file:
        config.private_key = None
        config.private_key_file = args.key_file
    return config


def _context(args) -> Context:
    return Context(timeout=args.timeout) if args.timeout else Context()


def _open_db(args):
    from .db import BzzDB

    return BzzDB.from_config(_load(args))


def cmd_keygen(args):
    """Create a signing key."""
    signer = Signer.generate()
    if args.output:
        path = signer.save(args.output)
        print(f"Key saved to: {path}")
    else:
        print(signer.to_hex())
    print(f"Owner: {signer.owner.hex()}", file=sys.stderr)


def cmd_put(args):
    """Store a value."""
    if args.file:
        value = Path(args.file).read_bytes()
    elif args.value is not None:
        value = args.value.encode()
    else:
        value = sys.stdin.buffer.read()

    with _open_db(args) as db:
        db.put(args.key.encode(), value, ctx=_context(args))
    print(f"Stored {len(value)} bytes under {args.key!r}")


def cmd_get(args):
    """Fetch a value."""
    with _open_db(args) as db:
        value = db.get(args.key.encode(), ctx=_context(args))

    if args.output:
        Path(args.output).write_bytes(value)
        print(f"Saved {len(value)} bytes to: {args.output}")
    else:
        sys.stdout.buffer.write(value)
        sys.stdout.buffer.flush()


def cmd_delete(args):
    """Delete a key."""
    with _open_db(args) as db:
        db.delete(args.key.encode(), ctx=_context(args))
    print(f"Deleted {args.key!r}")


def cmd_has(args):
    """Check whether a key holds a value."""
    with _open_db(args) as db:
        found = db.has(args.key.encode(), ctx=_context(args))
    print("yes" if found else "no")
    return 0 if found else 1


def cmd_stamps(args):
    """List postage batches."""
    from .client import HttpClient

    config = _load(args)
    client = HttpClient(
        config.node_url,
        api_port=config.api_port,
        debug_api_port=config.debug_api_port,
        timeout=config.timeout,
    )
    stamps = client.list_tickets(ctx=_context(args))
    if not stamps:
        print("No postage batches")
    for stamp in stamps:
        flags = []
        if stamp.usable:
            flags.append("usable")
        if stamp.immutable_flag:
            flags.append("immutable")
        if stamp.expired:
            flags.append("expired")
        print(f"{stamp.batch_id}  depth={stamp.depth} amount={stamp.amount} "
              f"utilization={stamp.utilization} {','.join(flags)}")


def cmd_devnode(args):
    """Run a development node."""
    from .devnode import DevNode

    node = DevNode(host=args.host, port=args.port)
    print(f"Dev node running on http://{node.host}:{node.port}")
    node.start()


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="bzzdb",
        description="Key-value store on Swarm feeds",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    node_args = argparse.ArgumentParser(add_help=False)
    node_args.add_argument("--config", help="YAML config file")
    node_args.add_argument("--node-url", help="Node URL without port (overrides config)")
    node_args.add_argument("--key-file", help="PEM private key (overrides config)")
    node_args.add_argument("--timeout", type=float, help="Operation timeout in seconds")

    keygen_parser = subparsers.add_parser("keygen", help="Create a signing key")
    keygen_parser.add_argument("-o", "--output", help="Write the key as PEM to this path")
    keygen_parser.set_defaults(func=cmd_keygen)

    put_parser = subparsers.add_parser("put", parents=[node_args], help="Store a value")
    put_parser.add_argument("key", help="Key")
    put_parser.add_argument("value", nargs="?", help="Value (default: read stdin)")
    put_parser.add_argument("--file", help="Read the value from a file")
    put_parser.set_defaults(func=cmd_put)

    get_parser = subparsers.add_parser("get", parents=[node_args], help="Fetch a value")
    get_parser.add_argument("key", help="Key")
    get_parser.add_argument("-o", "--output", help="Write the value to a file")
    get_parser.set_defaults(func=cmd_get)

    delete_parser = subparsers.add_parser("delete", parents=[node_args], help="Delete a key")
    delete_parser.add_argument("key", help="Key")
    delete_parser.set_defaults(func=cmd_delete)

    has_parser = subparsers.add_parser("has", parents=[node_args], help="Check a key")
    has_parser.add_argument("key", help="Key")
    has_parser.set_defaults(func=cmd_has)

    stamps_parser = subparsers.add_parser("stamps", parents=[node_args], help="List postage batches")
    stamps_parser.set_defaults(func=cmd_stamps)

    devnode_parser = subparsers.add_parser("devnode", help="Run an in-memory development node")
    devnode_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    devnode_parser.add_argument("--port", type=int, default=1633, help="Port to bind to")
    devnode_parser.set_defaults(func=cmd_devnode)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        return args.func(args) or 0
    except NotFoundError as e:
        print(f"Not found: {e}", file=sys.stderr)
        return 1
    except (BzzError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
