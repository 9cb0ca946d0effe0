"""
NetAuth - Authentication exchange.

Once the handshake has completed, the client sends its username and password,
each encrypted independently under the session key. The server decrypts
them, asks a credential oracle for a verdict and answers with a plain
AuthenticationResponse.

A connection authenticates at most once. A second request on an authenticated
connection raises AlreadyAuthenticated, and a connection that keeps failing
is cut off with AuthenticationAttemptsExceeded; both are fatal.
"""

import logging
import os
import secrets
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from argon2.low_level import Type, hash_secret_raw

from .connection import Connection
from .constants import MAX_AUTH_ATTEMPTS, MAX_CREDENTIAL_LENGTH
from .errors import (
    AlreadyAuthenticated,
    AuthenticationAttemptsExceeded,
    AuthenticationError,
    CryptoError,
    ErrorCode,
    HandshakeNotCompleted,
    ProtocolError,
)
from .protocol import AuthenticationRequest, AuthenticationResponse

logger = logging.getLogger(__name__)


class CredentialOracle(Protocol):
    """Anything that can judge a username/password pair."""

    def verify(self, username: str, password: str) -> bool:
        ...


class StaticCredentials:
    """A single fixed username/password pair, compared in constant time."""

    def __init__(self, username: str, password: str):
        self._username = username.encode("utf-8")
        self._password = password.encode("utf-8")

    def verify(self, username: str, password: str) -> bool:
        user_ok = secrets.compare_digest(username.encode("utf-8"), self._username)
        pass_ok = secrets.compare_digest(password.encode("utf-8"), self._password)
        return user_ok and pass_ok


class CredentialStore:
    """
    In-memory credential store keyed by username.

    Passwords are kept as Argon2id digests with a per-user salt:
    - Time cost: 3 iterations
    - Memory cost: 65536 KB (64 MB)
    - Parallelism: 1 thread
    - Output: 32 bytes

    Costs can be lowered for tests.
    """

    SALT_LENGTH = 16
    HASH_LENGTH = 32

    def __init__(self, time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 1):
        self.time_cost = time_cost
        self.memory_cost = memory_cost
        self.parallelism = parallelism
        self._entries: Dict[str, Tuple[bytes, bytes]] = {}
        # Verified against for unknown users so lookups take similar time
        self._decoy_salt = os.urandom(self.SALT_LENGTH)

    def _hash(self, password: str, salt: bytes) -> bytes:
        return hash_secret_raw(
            secret=password.encode("utf-8"),
            salt=salt,
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
            hash_len=self.HASH_LENGTH,
            type=Type.ID,
        )

    def add_user(self, username: str, password: str) -> None:
        """Add a user or replace an existing user's password."""
        salt = os.urandom(self.SALT_LENGTH)
        self._entries[username] = (salt, self._hash(password, salt))
        logger.debug(f"Stored credentials for user {username!r}")

    def remove_user(self, username: str) -> bool:
        return self._entries.pop(username, None) is not None

    def __contains__(self, username: str) -> bool:
        return username in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def verify(self, username: str, password: str) -> bool:
        entry = self._entries.get(username)
        if entry is None:
            self._hash(password, self._decoy_salt)
            return False
        salt, expected = entry
        return secrets.compare_digest(self._hash(password, salt), expected)


@dataclass
class AuthenticationResult:
    """Outcome of one authentication request."""

    connection_id: str
    authenticated: bool
    error_code: Optional[ErrorCode] = None


ResultListener = Callable[[AuthenticationResult], None]


def _encode_credential(value: str, name: str) -> bytes:
    data = value.encode("utf-8")
    if len(data) > MAX_CREDENTIAL_LENGTH:
        raise AuthenticationError(
            ErrorCode.E002_INVALID_ARGUMENT,
            f"{name} too long",
            {"field": name, "max_length": MAX_CREDENTIAL_LENGTH},
        )
    return data


class ClientAuthenticator:
    """Client side of the authentication exchange for one connection."""

    def __init__(self, connection: Connection):
        self.connection = connection
        self.pending = False
        self.authenticated: Optional[bool] = None
        self._listeners: List[Callable[[bool], None]] = []

    def add_listener(self, listener: Callable[[bool], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[bool], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def build_request(self, username: str, password: str) -> AuthenticationRequest:
        """
        Encrypt credentials into an AuthenticationRequest.

        Raises:
            HandshakeNotCompleted: No session key yet
            AlreadyAuthenticated: This connection already logged in
        """
        self.connection.require_completed()
        if self.connection.is_authenticated:
            raise AlreadyAuthenticated(details={"connection_id": self.connection.connection_id})

        user_ct, user_pad = self.connection.encrypt(_encode_credential(username, "username"))
        pass_ct, pass_pad = self.connection.encrypt(_encode_credential(password, "password"))
        self.pending = True
        return AuthenticationRequest(
            username=user_ct,
            username_pad_count=user_pad,
            password=pass_ct,
            password_pad_count=pass_pad,
        )

    def handle_response(self, response: AuthenticationResponse) -> bool:
        """
        Record the server's verdict and notify listeners.

        Raises:
            ProtocolError: No authentication request was outstanding
        """
        if not self.pending:
            raise ProtocolError(
                ErrorCode.E208_UNEXPECTED_MESSAGE,
                "Unsolicited authentication response",
                {"connection_id": self.connection.connection_id},
            )
        self.pending = False
        self.authenticated = response.authenticated
        if response.authenticated and not self.connection.is_authenticated:
            self.connection.mark_authenticated()

        logger.info(
            f"Authentication {'accepted' if response.authenticated else 'rejected'} "
            f"on connection {self.connection.connection_id}"
        )
        for listener in list(self._listeners):
            try:
                listener(response.authenticated)
            except Exception as e:
                logger.error(f"Authentication listener error: {e}")
        return response.authenticated


class ServerAuthenticator:
    """Server side of the authentication exchange.

    One instance serves any number of connections; per-connection state lives
    on the Connection.
    """

    def __init__(self, oracle: CredentialOracle, max_attempts: int = MAX_AUTH_ATTEMPTS):
        self.oracle = oracle
        self.max_attempts = max_attempts
        self._listeners: List[ResultListener] = []

    def add_listener(self, listener: ResultListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ResultListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def handle_request(
        self, connection: Connection, request: AuthenticationRequest
    ) -> AuthenticationResponse:
        """
        Judge one authentication request.

        Raises:
            HandshakeNotCompleted: No session key yet; rejected locally
            AlreadyAuthenticated: Connection already authenticated; fatal
            AuthenticationAttemptsExceeded: Too many failures; fatal
        """
        if not connection.is_handshake_completed():
            logger.warning(
                f"Authentication request before handshake on connection {connection.connection_id}"
            )
            raise HandshakeNotCompleted(details={"connection_id": connection.connection_id})

        if connection.is_authenticated:
            logger.warning(
                f"Dropping connection {connection.connection_id}: already authenticated"
            )
            raise AlreadyAuthenticated(details={"connection_id": connection.connection_id})

        if connection.failed_auth_attempts >= self.max_attempts:
            logger.warning(
                f"Dropping connection {connection.connection_id}: "
                f"{connection.failed_auth_attempts} failed attempts"
            )
            raise AuthenticationAttemptsExceeded(
                details={
                    "connection_id": connection.connection_id,
                    "max_attempts": self.max_attempts,
                }
            )

        authenticated = False
        try:
            username = connection.decrypt(request.username, request.username_pad_count).decode("utf-8")
            password = connection.decrypt(request.password, request.password_pad_count).decode("utf-8")
        except (CryptoError, UnicodeDecodeError) as e:
            logger.warning(f"Undecryptable credentials on connection {connection.connection_id}: {e}")
        else:
            authenticated = self.oracle.verify(username, password)

        if authenticated:
            connection.mark_authenticated()
            result = AuthenticationResult(connection.connection_id, True)
        else:
            connection.failed_auth_attempts += 1
            logger.info(
                f"Credential mismatch on connection {connection.connection_id} "
                f"(attempt {connection.failed_auth_attempts}/{self.max_attempts})"
            )
            result = AuthenticationResult(
                connection.connection_id, False, ErrorCode.E302_CREDENTIAL_MISMATCH
            )

        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception as e:
                logger.error(f"Authentication listener error: {e}")

        return AuthenticationResponse(authenticated=authenticated)
