"""
NetAuth - Authentication exchange tests.

Covers the (P=12, G=6) login scenario, the re-authentication guard and the
attempt limit.
"""

import pytest

from conftest import PASSWORD, USERNAME
from netauth.auth import (
    AuthenticationResult,
    ClientAuthenticator,
    CredentialStore,
    ServerAuthenticator,
    StaticCredentials,
)
from netauth.connection import AuthenticationState, Connection, Role
from netauth.errors import (
    AlreadyAuthenticated,
    AuthenticationAttemptsExceeded,
    AuthenticationError,
    ErrorCode,
    HandshakeNotCompleted,
    ProtocolError,
)
from netauth.handshake_fsm import HandshakeState
from netauth.protocol import AuthenticationRequest, AuthenticationResponse


def login(client, server, authenticator, username, password):
    request = ClientAuthenticator(client).build_request(username, password)
    return authenticator.handle_request(server, request)


def test_successful_login(connected_pair, server_authenticator):
    """Test correct credentials authenticate the connection."""
    client, server = connected_pair
    client_auth = ClientAuthenticator(client)

    response = server_authenticator.handle_request(server, client_auth.build_request(USERNAME, PASSWORD))
    assert client_auth.handle_response(response) is True

    assert response == AuthenticationResponse(authenticated=True)
    assert server.auth_state == AuthenticationState.AUTHENTICATED
    assert client.auth_state == AuthenticationState.AUTHENTICATED


def test_wrong_password_allows_one_retry(connected_pair, server_authenticator):
    """Test a failed login keeps the session and permits exactly one more attempt."""
    client, server = connected_pair

    response = login(client, server, server_authenticator, USERNAME, "wrong")

    assert response.authenticated is False
    assert server.handshake_state == HandshakeState.COMPLETED
    assert server.auth_state == AuthenticationState.UNAUTHENTICATED
    assert server.failed_auth_attempts == 1

    assert login(client, server, server_authenticator, USERNAME, PASSWORD).authenticated


def test_attempts_exceeded(connected_pair, server_authenticator):
    """Test the third request after two failures is fatal."""
    client, server = connected_pair
    login(client, server, server_authenticator, USERNAME, "wrong")
    login(client, server, server_authenticator, USERNAME, "wrong again")

    with pytest.raises(AuthenticationAttemptsExceeded) as exc_info:
        login(client, server, server_authenticator, USERNAME, PASSWORD)

    assert Connection.is_fatal(exc_info.value)
    assert not server.is_authenticated


def test_reauthentication_is_rejected(connected_pair, server_authenticator):
    """Test a second request on an authenticated connection is fatal and not reported."""
    client, server = connected_pair
    results = []
    server_authenticator.add_listener(results.append)

    request = ClientAuthenticator(client).build_request(USERNAME, PASSWORD)
    server_authenticator.handle_request(server, request)

    with pytest.raises(AlreadyAuthenticated) as exc_info:
        server_authenticator.handle_request(server, request)

    assert exc_info.value.code == ErrorCode.E301_ALREADY_AUTHENTICATED
    assert Connection.is_fatal(exc_info.value)
    assert len(results) == 1


def test_client_refuses_second_login(connected_pair, server_authenticator):
    """Test the client will not build a request once authenticated."""
    client, server = connected_pair
    client_auth = ClientAuthenticator(client)
    client_auth.handle_response(
        server_authenticator.handle_request(server, client_auth.build_request(USERNAME, PASSWORD))
    )

    with pytest.raises(AlreadyAuthenticated):
        client_auth.build_request(USERNAME, PASSWORD)


def test_request_before_handshake(settings, connected_pair, server_authenticator):
    """Test requests before completion are rejected without dropping."""
    client, _ = connected_pair
    request = ClientAuthenticator(client).build_request(USERNAME, PASSWORD)
    fresh = Connection(Role.RESPONDER, settings)

    with pytest.raises(HandshakeNotCompleted) as exc_info:
        server_authenticator.handle_request(fresh, request)

    assert not Connection.is_fatal(exc_info.value)
    assert fresh.failed_auth_attempts == 0


def test_client_requires_handshake(settings):
    """Test credentials cannot be encrypted before the handshake."""
    client = Connection(Role.INITIATOR, settings)

    with pytest.raises(HandshakeNotCompleted):
        ClientAuthenticator(client).build_request(USERNAME, PASSWORD)


def test_credentials_are_encrypted(connected_pair):
    """Test neither credential appears in the request."""
    client, _ = connected_pair
    request = ClientAuthenticator(client).build_request(USERNAME, PASSWORD)

    assert USERNAME.encode() not in request.username
    assert PASSWORD.encode() not in request.password
    assert len(request.password) == 16
    assert request.password_pad_count == 6


def test_listener_results(connected_pair, server_authenticator):
    """Test listeners receive results carrying the connection identity."""
    client, server = connected_pair
    results = []
    server_authenticator.add_listener(results.append)

    login(client, server, server_authenticator, USERNAME, "wrong")
    login(client, server, server_authenticator, USERNAME, PASSWORD)

    assert results == [
        AuthenticationResult("server", False, ErrorCode.E302_CREDENTIAL_MISMATCH),
        AuthenticationResult("server", True, None),
    ]


def test_undecryptable_credentials_count_as_mismatch(connected_pair, server_authenticator):
    """Test garbage ciphertext is a failed attempt, not a crash."""
    _, server = connected_pair
    request = AuthenticationRequest(b"\x00" * 16, 20, b"\x00" * 16, 0)

    response = server_authenticator.handle_request(server, request)

    assert response.authenticated is False
    assert server.failed_auth_attempts == 1


def test_overlong_credential(connected_pair):
    """Test credentials above the size limit are refused locally."""
    client, _ = connected_pair

    with pytest.raises(AuthenticationError):
        ClientAuthenticator(client).build_request("u" * 300, PASSWORD)


def test_static_credentials():
    """Test the fixed-pair oracle."""
    oracle = StaticCredentials(USERNAME, PASSWORD)

    assert oracle.verify(USERNAME, PASSWORD)
    assert not oracle.verify(USERNAME, "wrong")
    assert not oracle.verify("bob", PASSWORD)


def test_credential_store():
    """Test the Argon2id credential store."""
    store = CredentialStore(time_cost=1, memory_cost=8, parallelism=1)
    store.add_user(USERNAME, PASSWORD)

    assert USERNAME in store
    assert len(store) == 1
    assert store.verify(USERNAME, PASSWORD)
    assert not store.verify(USERNAME, "wrong")
    assert not store.verify("nobody", PASSWORD)

    assert store.remove_user(USERNAME)
    assert not store.verify(USERNAME, PASSWORD)


def test_credential_store_as_oracle(connected_pair):
    """Test the server accepts a credential store as its oracle."""
    client, server = connected_pair
    store = CredentialStore(time_cost=1, memory_cost=8, parallelism=1)
    store.add_user(USERNAME, PASSWORD)

    assert login(client, server, ServerAuthenticator(store), USERNAME, PASSWORD).authenticated


def test_unsolicited_verdict_is_rejected(connected_pair):
    """Test a verdict without a pending request is a protocol error."""
    client, _ = connected_pair
    client_auth = ClientAuthenticator(client)
    verdicts = []
    client_auth.add_listener(verdicts.append)

    with pytest.raises(ProtocolError) as exc_info:
        client_auth.handle_response(AuthenticationResponse(authenticated=True))

    assert exc_info.value.code == ErrorCode.E208_UNEXPECTED_MESSAGE
    assert client.auth_state == AuthenticationState.UNAUTHENTICATED
    assert verdicts == []
