"""
NetAuth - Message dispatch for one connection.

ServerPeer and ClientPeer turn raw wire bytes into typed messages, route each
one to the handshake, authentication or channel handler, and return any
reply frames. They are transport-agnostic: a host feeds them whatever bytes
arrive and writes back whatever they return.
"""

import logging
from typing import Callable, List, Optional

from .auth import ClientAuthenticator, ServerAuthenticator
from .channel import EncryptedChannelClient, EncryptedChannelServer
from .config import CryptoSettings
from .connection import Connection, Role
from .constants import MAX_MESSAGE_SIZE
from .errors import ChannelError, ErrorCode, NetAuthError, ProtocolError
from .handshake_fsm import HandshakeState
from .protocol import (
    AuthenticationRequest,
    AuthenticationResponse,
    Disconnect,
    EncryptedMessageRequest,
    EncryptedMessageResponse,
    HandshakeRequest,
    HandshakeResponse,
    Message,
    Protocol,
)

logger = logging.getLogger(__name__)

HandshakeResultCallback = Callable[[str, bool], None]


class _FramedPeer:
    """Receive buffer and frame loop shared by both peer kinds."""

    RECEIVE_BUFFER_MAX_SIZE = MAX_MESSAGE_SIZE + Protocol.HEADER_SIZE

    def __init__(self, connection: Connection):
        self.connection = connection
        self.buffer = b""
        self.closed = False
        self.disconnect_reason: Optional[str] = None
        self.last_error: Optional[NetAuthError] = None

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id

    def feed(self, data: bytes) -> List[bytes]:
        """
        Consume received bytes and return reply frames in order.

        Non-fatal errors are logged and the offending message is dropped.

        Raises:
            NetAuthError: A fatal error; the host must drop the connection
        """
        self.buffer += data
        if len(self.buffer) > self.RECEIVE_BUFFER_MAX_SIZE:
            raise ProtocolError(
                ErrorCode.E207_MESSAGE_TOO_LARGE,
                "Receive buffer overflow",
                {"size": len(self.buffer), "max_size": self.RECEIVE_BUFFER_MAX_SIZE},
            )

        replies: List[bytes] = []
        while not self.closed and len(self.buffer) >= Protocol.HEADER_SIZE:
            result = Protocol.decode(self.buffer)
            if result is None:
                break

            message, consumed = result
            self.buffer = self.buffer[consumed:]

            try:
                reply = self.handle_message(message)
            except NetAuthError as e:
                self.last_error = e
                if e.fatal:
                    raise
                logger.warning(f"Rejected {message.TYPE.name} on connection {self.connection_id}: {e}")
                continue

            if reply is not None:
                replies.append(Protocol.encode(reply))

        return replies

    def on_handshake_result(self, callback: HandshakeResultCallback) -> None:
        """
        Register callback(connection_id, ok) for the end of the handshake.

        ok is True once the session key is installed and False if the
        handshake fails. The callback runs at most once per connection.
        """

        def listener(old_state: HandshakeState, new_state: HandshakeState) -> None:
            if new_state == HandshakeState.COMPLETED:
                callback(self.connection_id, True)
            elif new_state == HandshakeState.FAILED:
                callback(self.connection_id, False)

        self.connection.fsm.add_listener(listener)

    def handle_message(self, message: Message) -> Optional[Message]:
        raise NotImplementedError

    def _handle_disconnect(self, message: Disconnect) -> None:
        logger.info(f"Peer disconnected from connection {self.connection_id}: {message.reason or 'no reason'}")
        self.disconnect_reason = message.reason
        self.close()

    def close(self) -> None:
        self.closed = True
        self.buffer = b""
        self.connection.close()


class ServerPeer(_FramedPeer):
    """Responder-side dispatch for one accepted connection."""

    def __init__(
        self,
        authenticator: ServerAuthenticator,
        channel: Optional[EncryptedChannelServer] = None,
        settings: Optional[CryptoSettings] = None,
        connection: Optional[Connection] = None,
    ):
        super().__init__(connection or Connection(Role.RESPONDER, settings))
        self.authenticator = authenticator
        self.channel = channel

    def handle_message(self, message: Message) -> Optional[Message]:
        if isinstance(message, HandshakeRequest):
            return self.connection.handshake.handle_request(message)
        if isinstance(message, AuthenticationRequest):
            return self.authenticator.handle_request(self.connection, message)
        if isinstance(message, EncryptedMessageRequest):
            if self.channel is None:
                raise ProtocolError(
                    ErrorCode.E208_UNEXPECTED_MESSAGE, "Encrypted channel is not enabled"
                )
            try:
                return self.channel.handle_request(self.connection, message)
            except ChannelError as e:
                # The client still gets its one reply
                self.last_error = e
                logger.warning(f"Request failed on connection {self.connection_id}: {e}")
                return EncryptedMessageResponse(plaintext="")
        if isinstance(message, Disconnect):
            self._handle_disconnect(message)
            return None

        raise ProtocolError(
            ErrorCode.E208_UNEXPECTED_MESSAGE,
            f"Unexpected message for server: {message.TYPE.name}",
            {"message_type": message.TYPE.name},
        )


class ClientPeer(_FramedPeer):
    """Initiator-side dispatch for one outbound connection."""

    def __init__(
        self,
        settings: Optional[CryptoSettings] = None,
        connection: Optional[Connection] = None,
        exponent_selector: Optional[int] = None,
    ):
        super().__init__(
            connection or Connection(Role.INITIATOR, settings, exponent_selector=exponent_selector)
        )
        self.authenticator = ClientAuthenticator(self.connection)
        self.channel = EncryptedChannelClient(self.connection)

    def start(self) -> bytes:
        """Open the handshake. Returns the frame to send."""
        return Protocol.encode(self.connection.handshake.start())

    def authenticate(self, username: str, password: str) -> bytes:
        """Build the authentication frame. The verdict arrives through feed()."""
        return Protocol.encode(self.authenticator.build_request(username, password))

    def request(self, message: str, on_response: Optional[Callable[[str], None]] = None) -> bytes:
        """Build an encrypted request frame. The reply is passed to on_response."""
        return Protocol.encode(self.channel.build_request(message, on_response))

    def disconnect(self, reason: str = "") -> bytes:
        """Build a disconnect frame and close the connection."""
        frame = Protocol.create_disconnect(reason)
        self.close()
        return frame

    def handle_message(self, message: Message) -> Optional[Message]:
        if isinstance(message, HandshakeResponse):
            self.connection.handshake.handle_response(message)
        elif isinstance(message, AuthenticationResponse):
            self.authenticator.handle_response(message)
        elif isinstance(message, EncryptedMessageResponse):
            self.channel.handle_response(message)
        elif isinstance(message, Disconnect):
            self._handle_disconnect(message)
        else:
            raise ProtocolError(
                ErrorCode.E208_UNEXPECTED_MESSAGE,
                f"Unexpected message for client: {message.TYPE.name}",
                {"message_type": message.TYPE.name},
            )
        return None
