"""
NetAuth - Handshake tests.

Tests for the initiator and responder roles over in-memory message passing.
"""

import dataclasses

import pytest

from conftest import CLIENT_EXPONENT, SERVER_EXPONENT, handshake_pair
from netauth.config import CryptoSettings
from netauth.connection import Connection, Role
from netauth.crypto import CipherStrength, PaddingPolicy
from netauth.errors import HandshakeFailure, ProtocolError
from netauth.handshake_fsm import HandshakeEvent, HandshakeState
from netauth.protocol import HandshakeResponse


def test_handshake_completes_with_identical_keys(settings):
    """Test both sides finish COMPLETED holding the same 16-byte key and IV."""
    client, server = handshake_pair(settings)

    assert client.handshake_state == HandshakeState.COMPLETED
    assert server.handshake_state == HandshakeState.COMPLETED
    assert len(client.session._key) == 16
    assert client.session._key == server.session._key
    assert client.session._iv == server.session._iv


def test_handshake_keys_interoperate(connected_pair):
    """Test data encrypted by one side decrypts on the other."""
    client, server = connected_pair

    ciphertext, pad_count = client.encrypt(b"HelloWorld")
    assert server.decrypt(ciphertext, pad_count) == b"HelloWorld"

    ciphertext, pad_count = server.encrypt(b"reply")
    assert client.decrypt(ciphertext, pad_count) == b"reply"


def test_request_carries_parameters(settings):
    """Test the request names the table parameters and not the modulus."""
    client = Connection(Role.INITIATOR, settings)
    request = client.handshake.start()

    assert request.p_selector == 12
    assert request.generator == 6
    assert request.modulus is None
    assert len(request.public_value) == 256
    assert client.handshake_state == HandshakeState.AWAITING_PEER_KEY


def test_response_layout(settings):
    """Test the response carries 64 bytes of salt then the 16-byte IV."""
    client = Connection(Role.INITIATOR, settings)
    server = Connection(Role.RESPONDER, settings)
    response = server.handshake.handle_request(client.handshake.start())

    assert len(response.salt_and_iv) == 80
    assert response.salt_and_iv[64:] == server.session._iv


def test_fixed_exponents_are_reproducible(settings):
    """Test fixed exponent selectors give reproducible public values."""
    first = Connection(Role.INITIATOR, settings, exponent_selector=CLIENT_EXPONENT)
    second = Connection(Role.INITIATOR, settings, exponent_selector=CLIENT_EXPONENT)

    assert first.handshake.start().public_value == second.handshake.start().public_value


@pytest.mark.parametrize("strength", list(CipherStrength))
@pytest.mark.parametrize("padding", list(PaddingPolicy))
def test_handshake_under_each_cipher_setting(strength, padding):
    """Test key size follows the configured strength."""
    settings = CryptoSettings(strength=strength, padding=padding)
    client, server = handshake_pair(settings)

    assert len(client.session._key) == strength.key_size
    ciphertext, pad_count = client.encrypt(b"x" * 33)
    assert server.decrypt(ciphertext, pad_count) == b"x" * 33


def test_parameter_mismatch_fails(settings):
    """Test a responder pinned to other parameters refuses the request."""
    server_settings = dataclasses.replace(settings, p_selector=13)
    client = Connection(Role.INITIATOR, settings)
    server = Connection(Role.RESPONDER, server_settings)

    with pytest.raises(HandshakeFailure):
        server.handshake.handle_request(client.handshake.start())

    assert server.handshake_state == HandshakeState.FAILED
    assert not server.session.is_ready


def test_negotiation_adopts_initiator_parameters(settings):
    """Test a negotiating responder adopts the initiator's selector."""
    server_settings = dataclasses.replace(settings, p_selector=13, negotiate_parameters=True)
    client, server = handshake_pair(settings, server_settings)

    assert server.handshake_state == HandshakeState.COMPLETED
    ciphertext, pad_count = client.encrypt(b"ok")
    assert server.decrypt(ciphertext, pad_count) == b"ok"


def test_repeated_request_is_ignored(settings):
    """Test a second request on a completed responder gets no reply."""
    client = Connection(Role.INITIATOR, settings)
    server = Connection(Role.RESPONDER, settings)
    request = client.handshake.start()
    server.handshake.handle_request(request)

    assert server.handshake.handle_request(request) is None
    assert server.handshake_state == HandshakeState.COMPLETED


def test_response_outside_awaiting_state(settings):
    """Test a response before start() is a protocol error."""
    client = Connection(Role.INITIATOR, settings)

    with pytest.raises(ProtocolError):
        client.handshake.handle_response(HandshakeResponse(b"\x05", b"\x00" * 80))


def test_start_twice(settings):
    """Test start() cannot be repeated."""
    client = Connection(Role.INITIATOR, settings)
    client.handshake.start()

    with pytest.raises(ProtocolError):
        client.handshake.start()


def test_degenerate_peer_value_fails(settings):
    """Test a public value of 1 moves the initiator to FAILED."""
    client = Connection(Role.INITIATOR, settings)
    client.handshake.start()

    with pytest.raises(HandshakeFailure):
        client.handshake.handle_response(HandshakeResponse(b"\x01", b"\x00" * 80))

    assert client.handshake_state == HandshakeState.FAILED
    assert client.fsm.error_message == "Peer public value out of range"


def test_malformed_salt_block_fails(settings):
    """Test a short salt/IV block moves the initiator to FAILED."""
    client = Connection(Role.INITIATOR, settings)
    client.handshake.start()

    with pytest.raises(HandshakeFailure):
        client.handshake.handle_response(HandshakeResponse(b"\x05", b"\x00" * 40))

    assert client.handshake_state == HandshakeState.FAILED


def test_failed_responder_rejects_later_requests(settings):
    """Test FAILED is terminal for the responder."""
    server = Connection(Role.RESPONDER, settings)
    server.fsm.transition(HandshakeEvent.FAILURE, "test")
    request = Connection(Role.INITIATOR, settings).handshake.start()

    with pytest.raises(ProtocolError):
        server.handshake.handle_request(request)


def test_exponents_cleared_after_completion(settings):
    """Test exponent material is dropped once the key is installed."""
    client, server = handshake_pair(settings)

    assert client.handshake.params.private_exponent == 0
    assert server.handshake.params.private_exponent == 0


@pytest.mark.slow
def test_fresh_prime_handshake():
    """Test a handshake over a freshly generated prime."""
    client_settings = CryptoSettings(p_selector=None)
    server_settings = CryptoSettings(negotiate_parameters=True)
    client = Connection(Role.INITIATOR, client_settings)
    server = Connection(Role.RESPONDER, server_settings, exponent_selector=SERVER_EXPONENT)

    request = client.handshake.start()
    assert request.p_selector is None
    assert request.modulus is not None

    client.handshake.handle_response(server.handshake.handle_request(request))

    ciphertext, pad_count = client.encrypt(b"fresh")
    assert server.decrypt(ciphertext, pad_count) == b"fresh"
