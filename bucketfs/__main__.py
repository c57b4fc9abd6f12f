"""CLI entrypoint for the bucketfs file gateway."""

import argparse
import logging
import os
import sys

from cheroot.wsgi import Server as WSGIServer

from .gateway import EventLoopThread, FileGateway, HttpBackendFactory
from .models import AdapterConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve an object-store bucket as a file tree")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8082, help="Port to bind (default: 8082)")
    parser.add_argument("--base-url", help="Object store base URL (default: $BUCKETFS_BASE_URL)")
    parser.add_argument("--bucket", help="Bucket to serve (default: $BUCKETFS_BUCKET)")
    parser.add_argument("--root", help="Key prefix to serve as / (default: $BUCKETFS_ROOT)")
    parser.add_argument("--timeout", type=float, help="Object store request timeout in seconds")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def apply_overrides(args: argparse.Namespace) -> None:
    """Let command line options take precedence over the environment."""
    for name, value in (
        ("BUCKETFS_BASE_URL", args.base_url),
        ("BUCKETFS_BUCKET", args.bucket),
        ("BUCKETFS_ROOT", args.root),
        ("BUCKETFS_TIMEOUT", None if args.timeout is None else str(args.timeout)),
    ):
        if value is not None:
            os.environ[name] = value


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s"
    )

    apply_overrides(args)
    try:
        config = AdapterConfig.from_env()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Set BUCKETFS_BASE_URL, BUCKETFS_BUCKET and BUCKETFS_TOKEN", file=sys.stderr)
        sys.exit(1)

    loop = EventLoopThread()
    factory = HttpBackendFactory(config)
    app = FileGateway(factory, loop=loop)
    server = WSGIServer((args.host, args.port), app)

    print(f"Serving bucket {config.bucket} on http://{args.host}:{args.port}")
    print("Press Ctrl+C to stop")

    try:
        server.start()
    except KeyboardInterrupt:
        server.stop()
        print("\nShutdown complete")
    finally:
        loop.run(factory.aclose())
        loop.stop()


if __name__ == "__main__":
    main()
