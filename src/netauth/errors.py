"""
NetAuth - Custom Exception Classes and Error Codes

This module defines all custom exceptions and error codes used throughout
NetAuth. Each error has a unique code for logging and debugging.

Error messages and details never carry key material: exponents, shared
secrets, derived keys, salts and IVs stay out of every exception.

Version: 1.0.0
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Enumeration of all NetAuth error codes."""

    # General Errors (E001-E099)
    E001_UNKNOWN_ERROR = "E001"
    E002_INVALID_ARGUMENT = "E002"

    # Crypto Errors (E100-E199)
    E100_CRYPTO_ERROR = "E100"
    E101_ENCRYPTION_FAILED = "E101"
    E102_DECRYPTION_FAILED = "E102"
    E103_INVALID_KEY = "E103"
    E104_INVALID_PARAMETER = "E104"
    E108_KEY_DERIVATION_FAILED = "E108"
    E110_PARAMETER_GENERATION_FAILED = "E110"

    # Protocol Errors (E200-E299)
    E200_PROTOCOL_ERROR = "E200"
    E203_CONNECTION_CLOSED = "E203"
    E206_INVALID_MESSAGE = "E206"
    E207_MESSAGE_TOO_LARGE = "E207"
    E208_UNEXPECTED_MESSAGE = "E208"
    E210_HANDSHAKE_FAILED = "E210"
    E211_HANDSHAKE_NOT_COMPLETED = "E211"

    # Authentication Errors (E300-E399)
    E300_AUTHENTICATION_ERROR = "E300"
    E301_ALREADY_AUTHENTICATED = "E301"
    E302_CREDENTIAL_MISMATCH = "E302"
    E303_TOO_MANY_ATTEMPTS = "E303"

    # Channel Errors (E400-E499)
    E400_CHANNEL_ERROR = "E400"
    E401_HANDLER_FAILED = "E401"
    E402_REPLY_TOO_LARGE = "E402"

    # Config Errors (E700-E799)
    E700_CONFIG_ERROR = "E700"
    E701_CONFIG_LOAD_FAILED = "E701"
    E702_CONFIG_SAVE_FAILED = "E702"
    E703_INVALID_CONFIG = "E703"
    E704_CONFIG_PARSE_ERROR = "E704"


class NetAuthError(Exception):
    """Base exception class for all NetAuth errors.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Additional error details (optional)
    """

    #: Whether the owning connection must be dropped when this is raised.
    fatal = False

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {"code": self.code.value, "message": self.message, "details": self.details}


class CryptoError(NetAuthError):
    """Exception raised for cryptographic operation failures.

    This includes encryption, decryption, padding and key derivation errors.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E100_CRYPTO_ERROR,
        message: str = "Cryptographic operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ParameterGenerationFailure(CryptoError):
    """No primitive-root witness was found for a generated prime.

    Fatal to the handshake attempt. The caller may retry with fresh parameters.
    """

    def __init__(
        self,
        message: str = "No primitive root found within the search window",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E110_PARAMETER_GENERATION_FAILED, message, details)


class ProtocolError(NetAuthError):
    """Exception raised for malformed, oversized or out-of-order messages."""

    fatal = True

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E200_PROTOCOL_ERROR,
        message: str = "Protocol violation",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class HandshakeFailure(ProtocolError):
    """Key agreement produced an empty public value or key, or peers disagree."""

    def __init__(
        self,
        message: str = "Handshake failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E210_HANDSHAKE_FAILED, message, details)


class HandshakeNotCompleted(NetAuthError):
    """An operation needing a shared key ran before the handshake completed.

    Rejected locally; the connection may stay open to finish the handshake.
    """

    def __init__(
        self,
        message: str = "Handshake has not completed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E211_HANDSHAKE_NOT_COMPLETED, message, details)


class AuthenticationError(NetAuthError):
    """Base class for authentication exchange failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E300_AUTHENTICATION_ERROR,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class AlreadyAuthenticated(AuthenticationError):
    """A second authentication request arrived on an authenticated connection."""

    fatal = True

    def __init__(
        self,
        message: str = "Connection is already authenticated",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E301_ALREADY_AUTHENTICATED, message, details)


class AuthenticationAttemptsExceeded(AuthenticationError):
    """Too many failed authentication attempts on one connection."""

    fatal = True

    def __init__(
        self,
        message: str = "Too many failed authentication attempts",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E303_TOO_MANY_ATTEMPTS, message, details)


class ChannelError(NetAuthError):
    """The host's request handler failed to produce a usable reply.

    Not fatal: the server answers with an empty reply and keeps the connection.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E400_CHANNEL_ERROR,
        message: str = "Request handler failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ConfigError(NetAuthError):
    """Exception raised for configuration failures.

    This includes loading, parsing, and validating configuration files.
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E700_CONFIG_ERROR,
        message: str = "Configuration operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)
