"""
NetAuth - Handshake roles.

The initiator opens with its public value and parameters; the responder
answers with its own public value plus the session salt and IV. Both sides
derive the same key from the agreed secret and install it, with the IV, in
their cipher session.

Message flow:
    initiator                          responder
    start()        HandshakeRequest  ->  handle_request()
    handle_response() <- HandshakeResponse
"""

import logging
from typing import Optional

from .config import CryptoSettings
from .constants import IV_SIZE, RANDOM_PRIME_BITS, SALT_AND_IV_SIZE, SALT_SIZE
from .crypto import CipherSession, derive_key, generate_iv, generate_salt
from .errors import CryptoError, ErrorCode, HandshakeFailure, ProtocolError
from .handshake_fsm import HandshakeEvent, HandshakeState, HandshakeStateMachine
from .keyexchange import (
    KeyAgreementParameters,
    bytes_to_int,
    compute_public,
    compute_shared,
    generate_parameters,
    int_to_bytes,
    parameters_from_modulus,
)
from .protocol import HandshakeRequest, HandshakeResponse

logger = logging.getLogger(__name__)


class _HandshakeRole:
    """State shared by both ends of the handshake."""

    def __init__(
        self,
        session: CipherSession,
        settings: CryptoSettings,
        fsm: Optional[HandshakeStateMachine] = None,
        exponent_selector: Optional[int] = None,
    ):
        self.session = session
        self.settings = settings
        self.fsm = fsm or HandshakeStateMachine()
        self.exponent_selector = exponent_selector
        self.params: Optional[KeyAgreementParameters] = None
        self.public_value: bytes = b""

    @property
    def state(self) -> HandshakeState:
        return self.fsm.get_state()

    def _fail(self, message: str, details: Optional[dict] = None) -> None:
        self.fsm.transition(HandshakeEvent.FAILURE, message)
        self._clear_params()
        raise HandshakeFailure(message, details)

    def _agree(self, peer_public: bytes, salt: bytes) -> bytearray:
        """Compute the shared secret with the peer and derive the session key."""
        try:
            shared = compute_shared(self.params, bytes_to_int(peer_public))
        except HandshakeFailure as e:
            self._fail(e.message, e.details)

        key = derive_key(shared, salt, self.settings.strength.key_size, self.params.modulus_bytes)
        del shared
        if not self.public_value or not any(key):
            self._fail("Empty public value or derived key")
        return key

    def _install(self, key: bytearray, iv: bytes) -> None:
        try:
            self.session.install(key, iv)
        finally:
            for i in range(len(key)):
                key[i] = 0
        self._clear_params()

    def _clear_params(self) -> None:
        if self.params is not None:
            self.params.clear()

    def close(self) -> None:
        """Drop exponent material."""
        self._clear_params()
        self.params = None


class HandshakeInitiator(_HandshakeRole):
    """Client end of the handshake."""

    def start(self) -> HandshakeRequest:
        """
        Generate parameters and build the opening request.

        Raises:
            ProtocolError: Handshake already started
            ParameterGenerationFailure: No primitive root for a fresh prime;
                state stays NOT_STARTED so start() may be retried
        """
        if self.state != HandshakeState.NOT_STARTED:
            raise ProtocolError(
                ErrorCode.E208_UNEXPECTED_MESSAGE,
                "Handshake already started",
                {"state": self.state.name},
            )

        self.params = generate_parameters(
            self.settings.p_selector, self.settings.generator, self.exponent_selector
        )
        width = self.params.modulus_bytes
        self.public_value = int_to_bytes(compute_public(self.params), width)

        modulus = None
        if self.params.p_selector is None:
            modulus = int_to_bytes(self.params.modulus, width)

        self.fsm.transition(HandshakeEvent.REQUEST_SENT)
        return HandshakeRequest(
            public_value=self.public_value,
            p_selector=self.params.p_selector,
            generator=self.params.generator,
            modulus=modulus,
        )

    def handle_response(self, response: HandshakeResponse) -> None:
        """
        Derive and install the session key from the responder's reply.

        Raises:
            ProtocolError: Response arrived outside AWAITING_PEER_KEY
            HandshakeFailure: Bad salt/IV block, peer value or empty key
        """
        if self.state != HandshakeState.AWAITING_PEER_KEY:
            raise ProtocolError(
                ErrorCode.E208_UNEXPECTED_MESSAGE,
                "Unexpected handshake response",
                {"state": self.state.name},
            )

        block = response.salt_and_iv
        if len(block) != SALT_AND_IV_SIZE:
            self._fail("Malformed salt/IV block", {"length": len(block)})
        salt = block[:SALT_SIZE]
        iv = block[SALT_SIZE : SALT_SIZE + IV_SIZE]

        key = self._agree(response.public_value, salt)
        self.fsm.transition(HandshakeEvent.PEER_KEY_RECEIVED)
        self._install(key, iv)
        self.fsm.transition(HandshakeEvent.KEY_INSTALLED)


class HandshakeResponder(_HandshakeRole):
    """Server end of the handshake."""

    def handle_request(self, request: HandshakeRequest) -> Optional[HandshakeResponse]:
        """
        Answer an initiator's request and install the session key.

        A repeated request after completion is logged and ignored.

        Returns:
            The response to send, or None when the request was ignored

        Raises:
            ProtocolError: Request arrived after the handshake failed
            HandshakeFailure: Parameter mismatch, bad peer value or empty key
        """
        if self.fsm.is_completed():
            logger.warning("Ignoring repeated handshake request on completed connection")
            return None
        if self.state != HandshakeState.NOT_STARTED:
            raise ProtocolError(
                ErrorCode.E208_UNEXPECTED_MESSAGE,
                "Unexpected handshake request",
                {"state": self.state.name},
            )

        self.params = self._resolve_parameters(request)
        self.public_value = int_to_bytes(compute_public(self.params), self.params.modulus_bytes)

        salt = generate_salt()
        iv = generate_iv()
        key = self._agree(request.public_value, salt)

        self.fsm.transition(HandshakeEvent.PEER_KEY_RECEIVED)
        self._install(key, iv)
        self.fsm.transition(HandshakeEvent.KEY_INSTALLED)

        return HandshakeResponse(public_value=self.public_value, salt_and_iv=salt + iv)

    def _resolve_parameters(self, request: HandshakeRequest) -> KeyAgreementParameters:
        settings = self.settings

        if request.p_selector is not None:
            offered = (request.p_selector, request.generator)
            if offered != (settings.p_selector, settings.generator) and not settings.negotiate_parameters:
                self._fail(
                    "Peer parameters do not match configuration",
                    {
                        "peer_selector": request.p_selector,
                        "peer_generator": request.generator,
                        "selector": settings.p_selector,
                        "generator": settings.generator,
                    },
                )
            try:
                return generate_parameters(request.p_selector, request.generator, self.exponent_selector)
            except CryptoError as e:
                self._fail(e.message, e.details)

        # Initiator generated a fresh prime
        if request.modulus is None:
            self._fail("Handshake request carries neither selector nor modulus")
        if settings.p_selector is not None and not settings.negotiate_parameters:
            self._fail("Peer generated parameters but negotiation is disabled")

        modulus = bytes_to_int(request.modulus)
        if modulus.bit_length() < RANDOM_PRIME_BITS or modulus % 2 == 0:
            self._fail("Peer modulus rejected", {"modulus_bits": modulus.bit_length()})
        try:
            return parameters_from_modulus(modulus, request.generator, self.exponent_selector)
        except CryptoError as e:
            self._fail(e.message, e.details)
