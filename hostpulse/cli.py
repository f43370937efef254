# hostpulse/cli.py

import argparse
import asyncio
import json
import platform
import sys

import uvicorn

from hostpulse import __version__
from hostpulse.internal.config.config import load_config
from hostpulse.internal.errors import HostpulseError
from hostpulse.internal.providers.local import LocalHostProvider
from hostpulse.internal.storage.backends import open_storage
from hostpulse.main import configure_logging, create_app


def main(argv=None):
    """
    Main entrypoint for hostpulse.
    Parses command-line arguments and runs the selected command.
    """
    parser = argparse.ArgumentParser(description="hostpulse resource monitor")
    parser.add_argument(
        "--config", default=None,
        help="Path to config.toml (defaults to $HOSTPULSE_CONFIG, then ./config.toml)",
    )
    parser.add_argument("--version", action="version", version=f"hostpulse {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True,
                                       help="Available commands")

    # --- 'serve' command ---
    serve_parser = subparsers.add_parser("serve", help="Run the collector, aggregator and HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.set_defaults(func=serve)

    # --- 'init-db' command ---
    init_parser = subparsers.add_parser("init-db", help="Create the database schema and exit")
    init_parser.set_defaults(func=init_db)

    # --- 'sample' command ---
    sample_parser = subparsers.add_parser("sample", help="Print one sample of this machine as JSON")
    sample_parser.set_defaults(func=print_sample)

    args = parser.parse_args(argv)

    try:
        args.settings = load_config(args.config)
    except HostpulseError as e:
        print(f"CRITICAL: {e}", file=sys.stderr)
        return 1
    configure_logging(args.settings.logging.level)

    return args.func(args) or 0


def serve(args):
    print("hostpulse")
    print("--------------------")
    print(f"Version: {__version__}")
    print(f"Database backend: {args.settings.database.backend}")
    print(f"Targets: {', '.join(t.id for t in args.settings.targets)}")
    print("--------------------")
    app = create_app(args.settings)
    uvicorn.run(app, host=args.host, port=args.port)


def init_db(args):
    async def _init():
        storage = await open_storage(args.settings.database)
        await storage.close()

    try:
        asyncio.run(_init())
    except HostpulseError as e:
        print(f"CRITICAL: Failed to initialize database: {e}", file=sys.stderr)
        return 1
    print(f"Database schema ready ({args.settings.database.backend}).")


def print_sample(args):
    provider = LocalHostProvider()
    sample = provider.collect_sample(platform.node() or "localhost")
    print(json.dumps(sample.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    sys.exit(main())
