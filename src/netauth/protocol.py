"""
NetAuth - Wire protocol definitions.

This module defines the framing and message records exchanged by peers.
Every frame is a header followed by a JSON payload:
- Protocol version (1 byte)
- Message type (2 bytes)
- Payload length (4 bytes)

Total header size: 7 bytes. Byte fields inside the payload are base64.
The complete frame passes through the obfuscation transform on the way out
and through its inverse on the way in.
"""

import base64
import binascii
import json
import logging
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, ClassVar, Dict, Optional, Tuple, Union

from .constants import MAX_MESSAGE_SIZE, MAX_TEXT_MESSAGE_SIZE, PROTOCOL_VERSION, SALT_AND_IV_SIZE
from .errors import ErrorCode, ProtocolError
from .obfuscation import deobfuscate, obfuscate

logger = logging.getLogger(__name__)


class MessageType(IntEnum):
    """Message type definitions."""

    # Key agreement
    HANDSHAKE_REQUEST = 1
    HANDSHAKE_RESPONSE = 2

    # Authentication
    AUTHENTICATION_REQUEST = 10
    AUTHENTICATION_RESPONSE = 11

    # Generic encrypted channel
    ENCRYPTED_MESSAGE_REQUEST = 20
    ENCRYPTED_MESSAGE_RESPONSE = 21

    # Connection management
    DISCONNECT = 90


def b64e(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64d(text: str) -> bytes:
    if not isinstance(text, str):
        raise ProtocolError(
            ErrorCode.E206_INVALID_MESSAGE,
            f"Byte field must be a base64 string, got {type(text).__name__}",
        )
    return base64.b64decode(text.encode("ascii"), validate=True)


def _require_int(value: Any, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ProtocolError(
            ErrorCode.E206_INVALID_MESSAGE, f"Field must be an integer: {name}", {"field": name}
        )
    return value


@dataclass
class HandshakeRequest:
    """Initiator's public value and the parameters it was computed under.

    modulus is only sent when the initiator generated a fresh prime
    (p_selector is None).
    """

    TYPE: ClassVar[MessageType] = MessageType.HANDSHAKE_REQUEST

    public_value: bytes
    p_selector: Optional[int]
    generator: int
    modulus: Optional[bytes] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "public_value": b64e(self.public_value),
            "p_selector": self.p_selector,
            "generator": self.generator,
            "modulus": b64e(self.modulus) if self.modulus is not None else None,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "HandshakeRequest":
        selector = payload["p_selector"]
        modulus = payload.get("modulus")
        return cls(
            public_value=b64d(payload["public_value"]),
            p_selector=_require_int(selector, "p_selector") if selector is not None else None,
            generator=_require_int(payload["generator"], "generator"),
            modulus=b64d(modulus) if modulus is not None else None,
        )


@dataclass
class HandshakeResponse:
    """Responder's public value plus 64 bytes of salt followed by a 16-byte IV."""

    TYPE: ClassVar[MessageType] = MessageType.HANDSHAKE_RESPONSE

    public_value: bytes
    salt_and_iv: bytes

    def to_payload(self) -> Dict[str, Any]:
        return {"public_value": b64e(self.public_value), "salt_and_iv": b64e(self.salt_and_iv)}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "HandshakeResponse":
        salt_and_iv = b64d(payload["salt_and_iv"])
        if len(salt_and_iv) != SALT_AND_IV_SIZE:
            raise ProtocolError(
                ErrorCode.E206_INVALID_MESSAGE,
                "Malformed salt/IV block",
                {"length": len(salt_and_iv), "expected": SALT_AND_IV_SIZE},
            )
        return cls(public_value=b64d(payload["public_value"]), salt_and_iv=salt_and_iv)


@dataclass
class AuthenticationRequest:
    """Independently encrypted username and password with their pad counts."""

    TYPE: ClassVar[MessageType] = MessageType.AUTHENTICATION_REQUEST

    username: bytes
    username_pad_count: int
    password: bytes
    password_pad_count: int

    def to_payload(self) -> Dict[str, Any]:
        return {
            "username": b64e(self.username),
            "username_pad_count": self.username_pad_count,
            "password": b64e(self.password),
            "password_pad_count": self.password_pad_count,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AuthenticationRequest":
        return cls(
            username=b64d(payload["username"]),
            username_pad_count=_require_int(payload["username_pad_count"], "username_pad_count"),
            password=b64d(payload["password"]),
            password_pad_count=_require_int(payload["password_pad_count"], "password_pad_count"),
        )


@dataclass
class AuthenticationResponse:
    TYPE: ClassVar[MessageType] = MessageType.AUTHENTICATION_RESPONSE

    authenticated: bool

    def to_payload(self) -> Dict[str, Any]:
        return {"authenticated": self.authenticated}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AuthenticationResponse":
        value = payload["authenticated"]
        if not isinstance(value, bool):
            raise ProtocolError(
                ErrorCode.E206_INVALID_MESSAGE,
                "Field must be a boolean: authenticated",
                {"field": "authenticated"},
            )
        return cls(authenticated=value)


@dataclass
class EncryptedMessageRequest:
    TYPE: ClassVar[MessageType] = MessageType.ENCRYPTED_MESSAGE_REQUEST

    cipher: bytes
    pad_count: int

    def to_payload(self) -> Dict[str, Any]:
        return {"cipher": b64e(self.cipher), "pad_count": self.pad_count}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "EncryptedMessageRequest":
        return cls(
            cipher=b64d(payload["cipher"]),
            pad_count=_require_int(payload["pad_count"], "pad_count"),
        )


@dataclass
class EncryptedMessageResponse:
    """Server reply to an encrypted request. The reply travels in plain text."""

    TYPE: ClassVar[MessageType] = MessageType.ENCRYPTED_MESSAGE_RESPONSE

    plaintext: str

    def to_payload(self) -> Dict[str, Any]:
        return {"plaintext": self.plaintext}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "EncryptedMessageResponse":
        text = payload["plaintext"]
        if not isinstance(text, str):
            raise ProtocolError(
                ErrorCode.E206_INVALID_MESSAGE, "Field must be a string: plaintext", {"field": "plaintext"}
            )
        return cls(plaintext=text)


@dataclass
class Disconnect:
    TYPE: ClassVar[MessageType] = MessageType.DISCONNECT

    reason: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {"reason": self.reason}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Disconnect":
        return cls(reason=str(payload["reason"]))


Message = Union[
    HandshakeRequest,
    HandshakeResponse,
    AuthenticationRequest,
    AuthenticationResponse,
    EncryptedMessageRequest,
    EncryptedMessageResponse,
    Disconnect,
]

MESSAGE_CLASSES = {
    cls.TYPE: cls
    for cls in (
        HandshakeRequest,
        HandshakeResponse,
        AuthenticationRequest,
        AuthenticationResponse,
        EncryptedMessageRequest,
        EncryptedMessageResponse,
        Disconnect,
    )
}

REQUIRED_FIELDS = {
    MessageType.HANDSHAKE_REQUEST: ("public_value", "p_selector", "generator"),
    MessageType.HANDSHAKE_RESPONSE: ("public_value", "salt_and_iv"),
    MessageType.AUTHENTICATION_REQUEST: (
        "username",
        "username_pad_count",
        "password",
        "password_pad_count",
    ),
    MessageType.AUTHENTICATION_RESPONSE: ("authenticated",),
    MessageType.ENCRYPTED_MESSAGE_REQUEST: ("cipher", "pad_count"),
    MessageType.ENCRYPTED_MESSAGE_RESPONSE: ("plaintext",),
    MessageType.DISCONNECT: ("reason",),
}


class Protocol:
    """Network protocol handler."""

    VERSION = PROTOCOL_VERSION
    HEADER_SIZE = 7
    MAX_PAYLOAD_SIZE = MAX_MESSAGE_SIZE

    @staticmethod
    def pack_message(msg_type: MessageType, payload: Dict) -> bytes:
        """
        Pack and obfuscate a message.

        Format before obfuscation:
        - Version: 1 byte (unsigned char)
        - Message Type: 2 bytes (unsigned short, big-endian)
        - Payload Length: 4 bytes (unsigned int, big-endian)
        - Payload: variable length (JSON)

        Raises:
            ProtocolError: If validation fails or the payload is too large
        """
        Protocol.validate_message(msg_type, payload)

        payload_bytes = json.dumps(payload).encode("utf-8")

        if len(payload_bytes) > Protocol.MAX_PAYLOAD_SIZE:
            raise ProtocolError(
                ErrorCode.E207_MESSAGE_TOO_LARGE,
                f"Payload too large: {len(payload_bytes)} bytes",
                {"size": len(payload_bytes), "max_size": Protocol.MAX_PAYLOAD_SIZE},
            )

        header = struct.pack("!BHI", Protocol.VERSION, int(msg_type), len(payload_bytes))
        logger.debug(f"Packed {msg_type.name} frame ({len(payload_bytes)} payload bytes)")
        return obfuscate(header + payload_bytes)

    @staticmethod
    def unpack_message(data: bytes) -> Optional[Tuple[MessageType, Dict, int]]:
        """
        Unpack one message from the front of an obfuscated byte stream.

        Returns:
        - Message type
        - Payload dictionary
        - Total bytes consumed (header + payload)

        Returns None if the stream does not yet hold a whole frame.

        Raises:
            ProtocolError: Unsupported version, unknown type, oversize or
            unparsable payload
        """
        if len(data) < Protocol.HEADER_SIZE:
            return None

        header = deobfuscate(data[: Protocol.HEADER_SIZE])
        version, msg_type_int, length = struct.unpack("!BHI", header)

        if version != Protocol.VERSION:
            raise ProtocolError(
                ErrorCode.E206_INVALID_MESSAGE,
                f"Unsupported protocol version: {version}",
                {"version": version, "expected": Protocol.VERSION},
            )

        # Checked before waiting for the body so a bogus length cannot stall the reader
        if length > Protocol.MAX_PAYLOAD_SIZE:
            raise ProtocolError(
                ErrorCode.E207_MESSAGE_TOO_LARGE,
                f"Payload too large: {length} bytes",
                {"size": length, "max_size": Protocol.MAX_PAYLOAD_SIZE},
            )

        if len(data) < Protocol.HEADER_SIZE + length:
            return None

        try:
            msg_type = MessageType(msg_type_int)
        except ValueError:
            raise ProtocolError(
                ErrorCode.E206_INVALID_MESSAGE,
                f"Invalid message type: {msg_type_int}",
                {"type": msg_type_int},
            ) from None

        payload_bytes = deobfuscate(data[Protocol.HEADER_SIZE : Protocol.HEADER_SIZE + length])
        try:
            payload = json.loads(payload_bytes.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(
                ErrorCode.E206_INVALID_MESSAGE, f"Failed to parse message: {e}", {"error": str(e)}
            ) from None

        if not isinstance(payload, dict):
            raise ProtocolError(
                ErrorCode.E206_INVALID_MESSAGE,
                "Payload must be a JSON object",
                {"message_type": msg_type.name},
            )

        Protocol.validate_message(msg_type, payload)
        return msg_type, payload, Protocol.HEADER_SIZE + length

    @staticmethod
    def encode(message: Message) -> bytes:
        """Pack a typed message record into an obfuscated frame."""
        return Protocol.pack_message(message.TYPE, message.to_payload())

    @staticmethod
    def decode(data: bytes) -> Optional[Tuple[Message, int]]:
        """
        Decode one typed message from the front of an obfuscated stream.

        Returns:
            (message, bytes consumed), or None if the frame is incomplete

        Raises:
            ProtocolError: If the frame or any field is malformed
        """
        unpacked = Protocol.unpack_message(data)
        if unpacked is None:
            return None

        msg_type, payload, consumed = unpacked
        try:
            message = MESSAGE_CLASSES[msg_type].from_payload(payload)
        except (KeyError, TypeError, ValueError, binascii.Error) as e:
            raise ProtocolError(
                ErrorCode.E206_INVALID_MESSAGE,
                f"Malformed {msg_type.name} payload",
                {"message_type": msg_type.name, "error": type(e).__name__},
            ) from None
        return message, consumed

    @staticmethod
    def create_disconnect(reason: str = "") -> bytes:
        """Create disconnect message."""
        return Protocol.encode(Disconnect(reason=reason))

    @staticmethod
    def validate_message(msg_type: MessageType, payload: Dict) -> None:
        """
        Validate message structure and size.

        Args:
            msg_type: Message type
            payload: Message payload

        Raises:
            ProtocolError: If validation fails
        """
        for field in REQUIRED_FIELDS.get(msg_type, ()):
            if field not in payload:
                raise ProtocolError(
                    ErrorCode.E206_INVALID_MESSAGE,
                    f"Missing required field: {field}",
                    {"message_type": msg_type.name, "field": field},
                )

        if msg_type == MessageType.ENCRYPTED_MESSAGE_RESPONSE:
            content = payload.get("plaintext", "")
            if isinstance(content, str) and len(content) > MAX_TEXT_MESSAGE_SIZE:
                raise ProtocolError(
                    ErrorCode.E207_MESSAGE_TOO_LARGE,
                    f"Text message too large: {len(content)} > {MAX_TEXT_MESSAGE_SIZE}",
                    {"size": len(content), "max_size": MAX_TEXT_MESSAGE_SIZE},
                )
