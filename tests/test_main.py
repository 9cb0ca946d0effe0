"""
NetAuth - Command line tests.
"""

import logging
import socket

import pytest

from netauth.config import Config
from netauth.main import async_client_main, async_server_main, echo_handler, setup_logging


@pytest.fixture
def restore_logging():
    """Remove handlers installed by setup_logging."""
    yield
    root = logging.getLogger("netauth")
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)


def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_echo_handler():
    assert echo_handler("c1", "hi") == "echo: hi"


def test_setup_logging_file(temp_dir, restore_logging):
    """Test file logging writes to the configured path."""
    log_file = temp_dir / "logs" / "netauth.log"
    config = Config(temp_dir / "missing.toml")
    config.set("logging", "console_logging", False)
    config.set("logging", "file_logging", True)
    config.set("logging", "log_file", str(log_file))

    setup_logging(config, debug=True)
    logging.getLogger("netauth.test").debug("written to file")
    for handler in logging.getLogger("netauth").handlers:
        handler.flush()

    assert logging.getLogger("netauth").level == logging.DEBUG
    assert "written to file" in log_file.read_text()


@pytest.mark.asyncio
async def test_write_config(temp_dir):
    """Test --write-config produces a loadable file."""
    path = temp_dir / "netauth.toml"

    assert await async_server_main(["--write-config", str(path)]) == 0
    assert Config(path).get("crypto", "p_selector") == 12


@pytest.mark.asyncio
async def test_server_requires_credentials(temp_dir, restore_logging):
    """Test the server refuses to start without auth credentials."""
    path = temp_dir / "netauth.toml"
    Config.create_example(path)

    assert await async_server_main(["--config", str(path)]) == 1


@pytest.mark.asyncio
async def test_client_unreachable_server(temp_dir, restore_logging):
    """Test the client exits with 1 when nothing listens."""
    args = [
        "--config", str(temp_dir / "missing.toml"),
        "--host", "127.0.0.1",
        "--port", str(free_port()),
        "-u", "alice",
        "-p", "secret",
    ]

    assert await async_client_main(args) == 1
