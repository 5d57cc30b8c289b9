"""Command-line interface for the todossh server.

Provides the main entry point for running the SSH server and managing
its host key.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="todossh",
        description="Todo list served over SSH",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/todossh.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("serve", help="Run the SSH server")
    keygen_parser = subparsers.add_parser("keygen", help="Generate the SSH host key")
    keygen_parser.add_argument(
        "--force", action="store_true",
        help="Overwrite an existing host key",
    )

    return parser.parse_args(argv)


async def _serve(settings) -> None:
    """Open the stores and run the SSH server until cancelled."""
    from todossh.server.ssh import TodoSshServer
    from todossh.store.credentials import JsonCredentialStore
    from todossh.store.tasks import JsonTaskStore

    task_store = JsonTaskStore(settings.storage.data_dir)
    credential_store = JsonCredentialStore(settings.storage.data_dir)

    server = TodoSshServer(
        settings.server,
        task_store,
        credential_store,
        session_config=settings.session,
    )
    await server.start()
    try:
        await server.serve_forever()
    finally:
        await server.stop()


def _keygen(settings, force: bool) -> int:
    from todossh.server.ssh import HostKeyError, generate_host_key

    path = settings.server.host_key_path
    try:
        key = generate_host_key(path, settings.server.host_key_bits, force=force)
    except HostKeyError as e:
        print(f"Error: {e}", file=sys.stderr)
        if not force and Path(path).exists():
            print("Use --force to overwrite it.", file=sys.stderr)
        return 1
    print(f"Wrote host key to {path}")
    print(f"Fingerprint: {key.fingerprint}")
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the todossh CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from todossh.config.settings import load_settings
    from todossh.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        logger.info("Starting SSH server on %s:%d", settings.server.host, settings.server.port)
        try:
            asyncio.run(_serve(settings))
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")

    elif args.command == "keygen":
        sys.exit(_keygen(settings, force=args.force))


if __name__ == "__main__":
    main()
