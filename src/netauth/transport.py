"""
NetAuth - Asyncio TCP transport.

Reference host for the protocol. NetAuthServer accepts TCP connections and
runs one receive loop per connection; NetAuthClient connects, performs the
handshake and exposes awaitable authenticate() and request() calls.

The handshake timeout is enforced here, not in the protocol core.
"""

import asyncio
import logging
from typing import Dict, Optional

from .auth import AuthenticationResult, CredentialOracle, ServerAuthenticator
from .channel import EncryptedChannelServer, RequestHandler
from .config import CryptoSettings
from .constants import (
    DEFAULT_HOST,
    DEFAULT_SERVER_PORT,
    HANDSHAKE_TIMEOUT,
    MAX_AUTH_ATTEMPTS,
    READ_CHUNK_SIZE,
)
from .errors import ErrorCode, NetAuthError, ProtocolError
from .peer import ClientPeer, HandshakeResultCallback, ServerPeer
from .protocol import Protocol

logger = logging.getLogger(__name__)


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    try:
        writer.close()
        await writer.wait_closed()
    except (ConnectionError, OSError) as e:
        logger.debug(f"Error closing writer: {e}")


class NetAuthServer:
    """Listens for incoming connections using asyncio."""

    def __init__(
        self,
        oracle: CredentialOracle,
        settings: Optional[CryptoSettings] = None,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_SERVER_PORT,
        handshake_timeout: float = HANDSHAKE_TIMEOUT,
        max_auth_attempts: int = MAX_AUTH_ATTEMPTS,
        request_handler: Optional[RequestHandler] = None,
        on_handshake_result: Optional[HandshakeResultCallback] = None,
    ):
        self.settings = settings or CryptoSettings()
        self.on_handshake_result = on_handshake_result
        self.host = host
        self.port = port
        self.handshake_timeout = handshake_timeout
        self.authenticator = ServerAuthenticator(oracle, max_auth_attempts)
        self.channel = EncryptedChannelServer(request_handler)

        self.server: Optional[asyncio.AbstractServer] = None
        self.running = False
        self.peers: Dict[str, ServerPeer] = {}

        self.authenticator.add_listener(self._on_authentication_result)

    @property
    def bound_port(self) -> Optional[int]:
        """Actual listening port, useful when started with port 0."""
        if not self.server or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    async def start(self) -> bool:
        """Start listening for connections."""
        try:
            self.server = await asyncio.start_server(self._handle_client, self.host, self.port)
        except OSError as e:
            logger.error(f"Failed to start server on {self.host}:{self.port}: {e}")
            return False
        self.running = True
        logger.info(f"NetAuth server listening on {self.host}:{self.bound_port}")
        return True

    async def stop(self) -> None:
        """Stop listening and drop every connection."""
        self.running = False
        for peer in list(self.peers.values()):
            peer.close()
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
            logger.info("NetAuth server stopped")

    async def serve_forever(self) -> None:
        if not self.server:
            raise ProtocolError(ErrorCode.E203_CONNECTION_CLOSED, "Server is not started")
        async with self.server:
            await self.server.serve_forever()

    def _on_handshake_result(self, connection_id: str, ok: bool) -> None:
        if ok:
            logger.info(f"Handshake completed on connection {connection_id}")
        else:
            logger.warning(f"Handshake failed on connection {connection_id}")
        if self.on_handshake_result is not None:
            self.on_handshake_result(connection_id, ok)

    def _on_authentication_result(self, result: AuthenticationResult) -> None:
        if result.authenticated:
            logger.info(f"Connection {result.connection_id} logged in")
        else:
            logger.info(f"Connection {result.connection_id} failed login ({result.error_code.value})")

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Run the receive loop for one accepted connection."""
        address = writer.get_extra_info("peername")
        peer = ServerPeer(self.authenticator, self.channel, self.settings)
        peer.on_handshake_result(self._on_handshake_result)
        self.peers[peer.connection_id] = peer
        logger.debug(f"Incoming connection {peer.connection_id} from {address}")

        try:
            while not peer.closed:
                timeout = None
                if not peer.connection.fsm.is_terminal():
                    timeout = max(0.0, self.handshake_timeout - peer.connection.fsm.get_time_in_state())

                data = await asyncio.wait_for(reader.read(READ_CHUNK_SIZE), timeout=timeout)
                if not data:
                    logger.debug(f"Connection {peer.connection_id} closed by peer")
                    break

                try:
                    replies = peer.feed(data)
                except NetAuthError as e:
                    logger.warning(f"Dropping connection {peer.connection_id}: {e}")
                    writer.write(Protocol.create_disconnect(e.code.value))
                    await writer.drain()
                    break

                for frame in replies:
                    writer.write(frame)
                if replies:
                    await writer.drain()

        except asyncio.TimeoutError:
            logger.warning(f"Handshake timeout on connection {peer.connection_id} from {address}")
        except (ConnectionError, OSError) as e:
            logger.debug(f"Connection {peer.connection_id} error: {e}")
        finally:
            peer.close()
            self.peers.pop(peer.connection_id, None)
            await _close_writer(writer)


class NetAuthClient:
    """Connects to a NetAuth server and drives one session."""

    def __init__(
        self,
        settings: Optional[CryptoSettings] = None,
        exponent_selector: Optional[int] = None,
    ):
        self.peer = ClientPeer(settings, exponent_selector=exponent_selector)
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.receive_task: Optional[asyncio.Task] = None

        self._handshake_done: Optional[asyncio.Event] = None
        self._auth_future: Optional[asyncio.Future] = None
        self._reply_future: Optional[asyncio.Future] = None

        self.peer.authenticator.add_listener(self._on_auth_verdict)

    @property
    def connection(self):
        return self.peer.connection

    async def connect(
        self, host: str = DEFAULT_HOST, port: int = DEFAULT_SERVER_PORT, timeout: float = HANDSHAKE_TIMEOUT
    ) -> None:
        """
        Open the TCP connection and complete the handshake.

        Raises:
            ConnectionError: Connection lost before the handshake completed
            asyncio.TimeoutError: Handshake did not complete in time
            NetAuthError: Handshake failed
        """
        self._handshake_done = asyncio.Event()
        self.peer.on_handshake_result(lambda connection_id, ok: self._handshake_done.set())

        self.reader, self.writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=timeout
        )
        logger.info(f"Connected to {host}:{port}")

        self.writer.write(self.peer.start())
        await self.writer.drain()
        self.receive_task = asyncio.create_task(self._receive_loop())

        done_wait = asyncio.create_task(self._handshake_done.wait())
        try:
            await asyncio.wait(
                {done_wait, self.receive_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            done_wait.cancel()

        if not self.connection.is_handshake_completed():
            error = self.peer.last_error
            reason = self.peer.disconnect_reason
            receive_ended = self.receive_task.done()
            await self.close()
            if error is not None:
                raise error
            if receive_ended:
                raise ConnectionError(f"Connection closed during handshake ({reason or 'no reason'})")
            raise asyncio.TimeoutError("Handshake did not complete")

    async def authenticate(self, username: str, password: str, timeout: float = HANDSHAKE_TIMEOUT) -> bool:
        """Send credentials and wait for the server's verdict."""
        self._auth_future = asyncio.get_running_loop().create_future()
        await self._send(self.peer.authenticate(username, password))
        try:
            return await asyncio.wait_for(self._auth_future, timeout=timeout)
        finally:
            self._auth_future = None

    async def request(self, message: str, timeout: float = HANDSHAKE_TIMEOUT) -> str:
        """Send an encrypted request and wait for the reply text."""
        future = asyncio.get_running_loop().create_future()
        self._reply_future = future

        def on_response(text: str) -> None:
            if not future.done():
                future.set_result(text)

        await self._send(self.peer.request(message, on_response))
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self._reply_future = None

    async def close(self, reason: str = "") -> None:
        """Send a disconnect, then tear down the connection."""
        if self.writer is not None:
            if not self.peer.closed:
                try:
                    self.writer.write(self.peer.disconnect(reason))
                    await self.writer.drain()
                except (ConnectionError, OSError) as e:
                    logger.debug(f"Error sending disconnect: {e}")
            await _close_writer(self.writer)
            self.writer = None

        self.peer.close()
        if self.receive_task and not self.receive_task.done():
            self.receive_task.cancel()
            try:
                await self.receive_task
            except asyncio.CancelledError:
                pass
        self.receive_task = None

    async def __aenter__(self) -> "NetAuthClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _send(self, frame: bytes) -> None:
        if self.writer is None or self.peer.closed:
            raise ConnectionError("Not connected")
        self.writer.write(frame)
        await self.writer.drain()

    def _on_auth_verdict(self, authenticated: bool) -> None:
        if self._auth_future is not None and not self._auth_future.done():
            self._auth_future.set_result(authenticated)

    def _fail_pending(self, error: BaseException) -> None:
        for future in (self._auth_future, self._reply_future):
            if future is not None and not future.done():
                future.set_exception(error)

    async def _receive_loop(self) -> None:
        """Background task for receiving frames."""
        try:
            while not self.peer.closed:
                data = await self.reader.read(READ_CHUNK_SIZE)
                if not data:
                    logger.info("Connection closed by server")
                    break
                self.peer.feed(data)
        except NetAuthError as e:
            logger.warning(f"Protocol failure: {e}")
            self.peer.last_error = e
            self._fail_pending(e)
        except (ConnectionError, OSError) as e:
            logger.debug(f"Receive error: {e}")
        finally:
            reason = self.peer.disconnect_reason
            self.peer.close()
            message = f"Disconnected by server ({reason})" if reason else "Connection closed"
            self._fail_pending(ConnectionError(message))
