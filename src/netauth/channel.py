"""
NetAuth - Generic encrypted request/response channel.

The client encrypts a text request under the session key; the server decrypts
it, hands it to the registered request handler and returns the handler's
string as the reply. One request is outstanding at a time.
"""

import logging
from typing import Callable, Optional

from .connection import Connection
from .constants import MAX_TEXT_MESSAGE_SIZE
from .errors import ChannelError, CryptoError, ErrorCode, HandshakeNotCompleted, ProtocolError
from .protocol import EncryptedMessageRequest, EncryptedMessageResponse

logger = logging.getLogger(__name__)

RequestHandler = Callable[[str, str], str]
ResponseCallback = Callable[[str], None]


class EncryptedChannelClient:
    """Client side of the encrypted channel for one connection."""

    def __init__(self, connection: Connection):
        self.connection = connection
        self._awaiting = False
        self._on_response: Optional[ResponseCallback] = None

    @property
    def awaiting_response(self) -> bool:
        return self._awaiting

    def build_request(
        self, message: str, on_response: Optional[ResponseCallback] = None
    ) -> EncryptedMessageRequest:
        """
        Encrypt a text request.

        Args:
            message: Request text
            on_response: Called with the server's reply text

        Raises:
            HandshakeNotCompleted: No session key yet
            ProtocolError: A previous request is still awaiting its response,
                or the message is too large
        """
        self.connection.require_completed()
        if self._awaiting:
            raise ProtocolError(
                ErrorCode.E208_UNEXPECTED_MESSAGE, "A request is already awaiting its response"
            )

        data = message.encode("utf-8")
        if len(data) > MAX_TEXT_MESSAGE_SIZE:
            raise ProtocolError(
                ErrorCode.E207_MESSAGE_TOO_LARGE,
                f"Text message too large: {len(data)} > {MAX_TEXT_MESSAGE_SIZE}",
                {"size": len(data), "max_size": MAX_TEXT_MESSAGE_SIZE},
            )

        cipher, pad_count = self.connection.encrypt(data)
        self._awaiting = True
        self._on_response = on_response
        return EncryptedMessageRequest(cipher=cipher, pad_count=pad_count)

    def handle_response(self, response: EncryptedMessageResponse) -> str:
        """
        Deliver the reply to the pending callback.

        Raises:
            ProtocolError: No request was outstanding
        """
        if not self._awaiting:
            raise ProtocolError(
                ErrorCode.E208_UNEXPECTED_MESSAGE, "Unsolicited encrypted message response"
            )

        callback = self._on_response
        self._awaiting = False
        self._on_response = None

        if callback is not None:
            try:
                callback(response.plaintext)
            except Exception as e:
                logger.error(f"Response callback error: {e}")
        return response.plaintext


class EncryptedChannelServer:
    """Server side of the encrypted channel.

    The handler is called as handler(connection_id, text) and its return value
    becomes the reply. Without a handler the reply is empty.
    """

    def __init__(self, handler: Optional[RequestHandler] = None):
        self._handler = handler

    def set_handler(self, handler: Optional[RequestHandler]) -> None:
        self._handler = handler

    def handle_request(
        self, connection: Connection, request: EncryptedMessageRequest
    ) -> EncryptedMessageResponse:
        """
        Decrypt a request and produce the handler's reply.

        Raises:
            HandshakeNotCompleted: No session key yet; rejected locally
            CryptoError: The payload does not decrypt to UTF-8 text
            ChannelError: The handler raised or returned an unusable reply
        """
        if not connection.is_handshake_completed():
            logger.warning(
                f"Encrypted request before handshake on connection {connection.connection_id}"
            )
            raise HandshakeNotCompleted(details={"connection_id": connection.connection_id})

        data = connection.decrypt(request.cipher, request.pad_count)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            raise CryptoError(
                ErrorCode.E102_DECRYPTION_FAILED, "Decrypted payload is not UTF-8 text"
            ) from None

        logger.debug(f"Encrypted request on connection {connection.connection_id} ({len(data)} bytes)")
        if self._handler is None:
            return EncryptedMessageResponse(plaintext="")

        try:
            reply = self._handler(connection.connection_id, text)
        except Exception as e:
            logger.error(f"Request handler error on connection {connection.connection_id}: {e}")
            raise ChannelError(
                ErrorCode.E401_HANDLER_FAILED,
                f"Request handler raised {type(e).__name__}",
                {"connection_id": connection.connection_id},
            ) from e

        reply = reply or ""
        if not isinstance(reply, str):
            raise ChannelError(
                ErrorCode.E401_HANDLER_FAILED,
                f"Request handler returned {type(reply).__name__}, expected str",
                {"connection_id": connection.connection_id},
            )
        if len(reply) > MAX_TEXT_MESSAGE_SIZE:
            raise ChannelError(
                ErrorCode.E402_REPLY_TOO_LARGE,
                f"Reply too large: {len(reply)} > {MAX_TEXT_MESSAGE_SIZE}",
                {"size": len(reply), "max_size": MAX_TEXT_MESSAGE_SIZE},
            )
        return EncryptedMessageResponse(plaintext=reply)
