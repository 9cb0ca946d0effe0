"""
Pytest configuration and fixtures for NetAuth tests.

Provides common fixtures and test utilities for unit and integration tests.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator, Tuple

import pytest

from netauth.auth import ServerAuthenticator, StaticCredentials
from netauth.channel import EncryptedChannelServer
from netauth.config import CryptoSettings
from netauth.connection import Connection, Role
from netauth.crypto import CipherSession, CipherStrength, PaddingPolicy
from netauth.peer import ClientPeer, ServerPeer

USERNAME = "HelloWorld"
PASSWORD = "HelloWorld"

# Exponent table entries used wherever reproducible runs are needed
CLIENT_EXPONENT = 0
SERVER_EXPONENT = 1


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Yields:
        Path: Temporary directory path
    """
    tmp = Path(tempfile.mkdtemp(prefix="netauth_test_"))
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def settings() -> CryptoSettings:
    """Default (P=12, G=6), AES-128, zero padding."""
    return CryptoSettings()


@pytest.fixture
def ready_session() -> Generator[CipherSession, None, None]:
    """A cipher session with a fixed key and IV installed."""
    session = CipherSession(PaddingPolicy.ZERO, CipherStrength.AES_128)
    session.install(bytes(range(16)), bytes(range(16, 32)))
    try:
        yield session
    finally:
        session.close()


def handshake_pair(
    settings: CryptoSettings, server_settings: CryptoSettings = None
) -> Tuple[Connection, Connection]:
    """Run a complete in-memory handshake and return (client, server)."""
    client = Connection(Role.INITIATOR, settings, "client", exponent_selector=CLIENT_EXPONENT)
    server = Connection(Role.RESPONDER, server_settings or settings, "server", exponent_selector=SERVER_EXPONENT)
    request = client.handshake.start()
    response = server.handshake.handle_request(request)
    client.handshake.handle_response(response)
    return client, server


@pytest.fixture
def connected_pair(settings) -> Generator[Tuple[Connection, Connection], None, None]:
    """Client and server connections that have completed the handshake."""
    client, server = handshake_pair(settings)
    try:
        yield client, server
    finally:
        client.close()
        server.close()


@pytest.fixture
def server_authenticator() -> ServerAuthenticator:
    return ServerAuthenticator(StaticCredentials(USERNAME, PASSWORD))


@pytest.fixture
def peers(settings, server_authenticator) -> Generator[Tuple[ClientPeer, ServerPeer], None, None]:
    """A client and server peer wired for in-memory byte exchange."""
    channel = EncryptedChannelServer(lambda connection_id, text: text.upper())
    client = ClientPeer(settings, exponent_selector=CLIENT_EXPONENT)
    server = ServerPeer(server_authenticator, channel, settings)
    try:
        yield client, server
    finally:
        client.close()
        server.close()


def pump(frames, receiver) -> list:
    """Feed every frame to receiver and collect its replies."""
    replies = []
    for frame in frames:
        replies.extend(receiver.feed(frame))
    return replies


# Pytest marks
def pytest_configure(config):
    """
    Configure pytest markers.

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


def pytest_collection_modifyitems(config, items):
    """
    Modify test collection to add markers based on test location.

    Args:
        config: Pytest configuration
        items: List of collected test items
    """
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)
