"""
NetAuth - Authenticated encrypted channel over untrusted transports.

Diffie-Hellman key agreement, PBKDF2 key derivation, AES-CBC sessions,
wire obfuscation and a username/password exchange on top.

Version: 1.0.0
"""

__version__ = "1.0.0"

from .auth import (
    AuthenticationResult,
    ClientAuthenticator,
    CredentialOracle,
    CredentialStore,
    ServerAuthenticator,
    StaticCredentials,
)
from .channel import EncryptedChannelClient, EncryptedChannelServer
from .config import Config, CryptoSettings
from .connection import AuthenticationState, Connection, Role
from .constants import APP_NAME, VERSION
from .crypto import CipherSession, CipherStrength, PaddingPolicy, derive_key
from .errors import (
    AlreadyAuthenticated,
    AuthenticationAttemptsExceeded,
    AuthenticationError,
    ChannelError,
    ConfigError,
    CryptoError,
    ErrorCode,
    HandshakeFailure,
    HandshakeNotCompleted,
    NetAuthError,
    ParameterGenerationFailure,
    ProtocolError,
)
from .handshake import HandshakeInitiator, HandshakeResponder
from .handshake_fsm import HandshakeState, HandshakeStateMachine
from .peer import ClientPeer, ServerPeer

__all__ = [
    "APP_NAME",
    "VERSION",
    "AlreadyAuthenticated",
    "AuthenticationAttemptsExceeded",
    "AuthenticationError",
    "AuthenticationResult",
    "AuthenticationState",
    "CipherSession",
    "ChannelError",
    "CipherStrength",
    "ClientAuthenticator",
    "ClientPeer",
    "Config",
    "ConfigError",
    "Connection",
    "CredentialOracle",
    "CredentialStore",
    "CryptoError",
    "CryptoSettings",
    "EncryptedChannelClient",
    "EncryptedChannelServer",
    "ErrorCode",
    "HandshakeFailure",
    "HandshakeInitiator",
    "HandshakeNotCompleted",
    "HandshakeResponder",
    "HandshakeState",
    "HandshakeStateMachine",
    "NetAuthError",
    "PaddingPolicy",
    "ParameterGenerationFailure",
    "ProtocolError",
    "Role",
    "ServerAuthenticator",
    "ServerPeer",
    "StaticCredentials",
    "derive_key",
    "__version__",
]
