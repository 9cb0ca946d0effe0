"""
NetAuth - Command line entry points.

netauth-server runs the reference TCP server with credentials taken from the
[auth] config section. netauth-client connects, authenticates and optionally
sends one encrypted request.
"""

import argparse
import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .auth import CredentialStore
from .config import Config
from .constants import LOG_BACKUP_COUNT, LOG_DATE_FORMAT, LOG_FORMAT, LOG_MAX_BYTES
from .errors import NetAuthError
from .transport import NetAuthClient, NetAuthServer

logger = logging.getLogger(__name__)
console = Console()


def setup_logging(config: Config, debug: bool = False) -> None:
    """Install console and optional rotating file handlers on the package logger."""
    level_name = "DEBUG" if debug else str(config.get("logging", "level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger("netauth")
    root.setLevel(level)
    root.handlers.clear()

    if config.get("logging", "console_logging", True):
        root.addHandler(RichHandler(console=Console(stderr=True), show_path=False))

    if config.get("logging", "file_logging", False):
        log_file = Path(config.get("logging", "log_file")).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        root.addHandler(file_handler)


def _common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--version", action="version", version=f"NetAuth {__version__}")
    parser.add_argument("--config", type=str, default=None, help="Path to configuration file")
    parser.add_argument("--host", type=str, default=None, help="Server address")
    parser.add_argument("--port", type=int, default=None, help="Server port")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")


def _load_config(args: argparse.Namespace) -> Config:
    config = Config(Path(args.config) if args.config else None)
    if args.host:
        config.set("network", "host", args.host)
    if args.port is not None:
        config.set("network", "port", args.port)
    return config


def echo_handler(connection_id: str, text: str) -> str:
    """Default request handler for the reference server."""
    return f"echo: {text}"


async def async_server_main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="NetAuth Server - authenticated encrypted channel server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  netauth-server                         # Listen with default settings
  netauth-server --port 7001             # Use custom listen port
  netauth-server --write-config cfg.toml # Write an example configuration
        """,
    )
    _common_arguments(parser)
    parser.add_argument(
        "--write-config", type=str, default=None, help="Write an example configuration file and exit"
    )
    args = parser.parse_args(argv)

    if args.write_config:
        Config.create_example(Path(args.write_config))
        console.print(f"Example configuration written to [bold]{args.write_config}[/bold]")
        return 0

    try:
        config = _load_config(args)
        setup_logging(config, args.debug)
        settings = config.crypto_settings()
    except NetAuthError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return 1

    username = config.get("auth", "username")
    password = config.get("auth", "password")
    if not username or not password:
        console.print("[red]Set auth.username and auth.password in the configuration[/red]")
        return 1

    store = CredentialStore()
    store.add_user(username, password)

    server = NetAuthServer(
        store,
        settings,
        host=config.get("network", "host"),
        port=config.get("network", "port"),
        handshake_timeout=config.get("network", "handshake_timeout"),
        max_auth_attempts=config.get("auth", "max_attempts"),
        request_handler=echo_handler,
    )
    if not await server.start():
        return 1

    try:
        await server.serve_forever()
    except asyncio.CancelledError:
        pass
    finally:
        await server.stop()
    return 0


async def async_client_main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="NetAuth Client - authenticate and send an encrypted request",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  netauth-client -u alice -p secret
  netauth-client -u alice -p secret -m "hello"
        """,
    )
    _common_arguments(parser)
    parser.add_argument("-u", "--username", required=True, help="Login name")
    parser.add_argument("-p", "--password", required=True, help="Password")
    parser.add_argument("-m", "--message", default=None, help="Encrypted request to send after login")
    args = parser.parse_args(argv)

    try:
        config = _load_config(args)
        setup_logging(config, args.debug)
        settings = config.crypto_settings()
    except NetAuthError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return 1

    host = config.get("network", "host")
    port = config.get("network", "port")
    timeout = config.get("network", "handshake_timeout")

    client = NetAuthClient(settings)
    try:
        await client.connect(host, port, timeout=timeout)
        authenticated = await client.authenticate(args.username, args.password, timeout=timeout)

        table = Table(title=f"NetAuth session {client.connection.connection_id}")
        table.add_column("Step")
        table.add_column("Result")
        table.add_row("Handshake", client.connection.handshake_state.name)
        table.add_row("Authentication", "[green]accepted[/green]" if authenticated else "[red]rejected[/red]")

        if authenticated and args.message is not None:
            reply = await client.request(args.message, timeout=timeout)
            table.add_row("Reply", reply)

        console.print(table)
        return 0 if authenticated else 2
    except (NetAuthError, ConnectionError, OSError, asyncio.TimeoutError) as e:
        console.print(f"[red]Session failed:[/red] {e or type(e).__name__}")
        return 1
    finally:
        await client.close()


def server_main() -> None:
    """Entry point for netauth-server."""
    try:
        sys.exit(asyncio.run(async_server_main()))
    except KeyboardInterrupt:
        console.print("\nShutting down...")


def client_main() -> None:
    """Entry point for netauth-client."""
    sys.exit(asyncio.run(async_client_main()))


if __name__ == "__main__":
    server_main()
