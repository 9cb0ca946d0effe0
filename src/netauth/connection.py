"""
NetAuth - Per-connection security state.

A Connection owns everything one peer link needs: the handshake state
machine, the handshake role, the cipher session and the authentication
state. Nothing here is shared between connections. close() zeroes key
material and is safe to call more than once.
"""

import logging
import secrets
from enum import Enum, auto
from typing import Optional, Tuple

from .config import CryptoSettings
from .crypto import CipherSession
from .errors import AlreadyAuthenticated, HandshakeNotCompleted, NetAuthError
from .handshake import HandshakeInitiator, HandshakeResponder
from .handshake_fsm import HandshakeState, HandshakeStateMachine

logger = logging.getLogger(__name__)


class Role(Enum):
    INITIATOR = auto()
    RESPONDER = auto()


class AuthenticationState(Enum):
    """Authentication state. Only ever moves forward."""

    UNAUTHENTICATED = auto()
    AUTHENTICATED = auto()


class Connection:
    """Security state for one peer link."""

    def __init__(
        self,
        role: Role,
        settings: Optional[CryptoSettings] = None,
        connection_id: Optional[str] = None,
        exponent_selector: Optional[int] = None,
    ):
        self.role = role
        self.settings = settings or CryptoSettings()
        self.connection_id = connection_id or secrets.token_hex(8)
        self.fsm = HandshakeStateMachine()
        self.session = CipherSession(self.settings.padding, self.settings.strength)

        role_cls = HandshakeInitiator if role == Role.INITIATOR else HandshakeResponder
        self.handshake = role_cls(self.session, self.settings, self.fsm, exponent_selector)

        self.auth_state = AuthenticationState.UNAUTHENTICATED
        self.failed_auth_attempts = 0
        self.closed = False

    @property
    def handshake_state(self) -> HandshakeState:
        return self.fsm.get_state()

    @property
    def is_authenticated(self) -> bool:
        return self.auth_state == AuthenticationState.AUTHENTICATED

    def is_handshake_completed(self) -> bool:
        return not self.closed and self.fsm.is_completed()

    def require_completed(self) -> None:
        """Raise HandshakeNotCompleted unless the key is installed."""
        if not self.is_handshake_completed():
            raise HandshakeNotCompleted(
                details={"connection_id": self.connection_id, "state": self.handshake_state.name}
            )

    def encrypt(self, data: bytes) -> Tuple[bytes, int]:
        self.require_completed()
        return self.session.encrypt(data)

    def decrypt(self, ciphertext: bytes, pad_count: Optional[int]) -> bytes:
        self.require_completed()
        return self.session.decrypt(ciphertext, pad_count)

    def mark_authenticated(self) -> None:
        """
        Record a successful login.

        Raises:
            AlreadyAuthenticated: The connection was already authenticated
        """
        if self.is_authenticated:
            raise AlreadyAuthenticated(details={"connection_id": self.connection_id})
        self.auth_state = AuthenticationState.AUTHENTICATED
        logger.info(f"Connection {self.connection_id} authenticated")

    @staticmethod
    def is_fatal(error: BaseException) -> bool:
        """Whether the host must drop the connection after this error."""
        return isinstance(error, NetAuthError) and error.fatal

    def close(self) -> None:
        """Zero key material and release the handshake state."""
        if self.closed:
            return
        self.closed = True
        self.handshake.close()
        self.session.close()
        logger.debug(f"Connection {self.connection_id} closed")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.connection_id}, role={self.role.name}, "
            f"handshake={self.handshake_state.name}, auth={self.auth_state.name})"
        )
