"""
NetAuth - Key agreement engine tests.

Tests for parameter generation, primitive-root search and shared secret
computation.
"""

import pytest

from netauth import keyexchange
from netauth.errors import CryptoError, HandshakeFailure, ParameterGenerationFailure
from netauth.primes import get_modulus


def test_factorize_small_numbers():
    """Test distinct prime factors are found."""
    assert keyexchange.factorize(22) == [2, 11]
    assert keyexchange.factorize(60) == [2, 3, 5]
    assert keyexchange.factorize(97) == [97]
    assert keyexchange.factorize(1024) == [2]


def test_factorize_appends_cofactor_after_limit():
    """Test the cofactor is appended once the factor limit is reached."""
    # 2 * 3 * 5 * 7: division stops after three factors, 7 is the cofactor
    assert keyexchange.factorize(210) == [2, 3, 5, 7]


def test_factorize_respects_bound():
    """Test a composite cofactor is kept when the divisor bound is hit."""
    assert keyexchange.factorize(2 * 101 * 103, bound=50) == [2, 101 * 103]


def test_find_primitive_root_returns_largest_witness():
    """Test the largest of the first three witnesses is returned."""
    # Primitive roots of 23 start 5, 7, 10
    assert keyexchange.find_primitive_root(23) == 10
    # Primitive roots of 7 are 3 and 5
    assert keyexchange.find_primitive_root(7) == 5


def test_find_primitive_root_window_exhausted():
    """Test failure when no witness lies in the search window."""
    with pytest.raises(ParameterGenerationFailure) as exc_info:
        keyexchange.find_primitive_root(23, window=4)

    assert exc_info.value.details["window"] == 4
    assert not exc_info.value.fatal


def test_find_primitive_root_rejects_tiny_modulus():
    """Test moduli below 3 are rejected."""
    with pytest.raises(ParameterGenerationFailure):
        keyexchange.find_primitive_root(2)


def test_generate_parameters_from_table():
    """Test table parameters use the requested selector and generator."""
    params = keyexchange.generate_parameters(12, 6)

    assert params.modulus == get_modulus(12)
    assert params.generator == 6
    assert params.p_selector == 12
    assert params.modulus_bytes == 256
    assert 2 <= params.private_exponent <= params.modulus - 2


def test_generate_parameters_default_generator():
    """Test the default generator is used when none is given."""
    assert keyexchange.generate_parameters(13).generator == 6


def test_generate_parameters_fixed_exponent():
    """Test exponent selectors give reproducible public values."""
    first = keyexchange.generate_parameters(12, 6, exponent_selector=2)
    second = keyexchange.generate_parameters(12, 6, exponent_selector=2)

    assert keyexchange.compute_public(first) == keyexchange.compute_public(second)


def test_generate_parameters_rejects_bad_generator():
    """Test generators outside [2, p-2] are rejected."""
    with pytest.raises(CryptoError):
        keyexchange.generate_parameters(12, 1)


def test_generate_parameters_unknown_selector():
    """Test unknown selectors are rejected."""
    with pytest.raises(CryptoError):
        keyexchange.generate_parameters(3, 6)


@pytest.mark.slow
def test_generate_parameters_fresh_prime():
    """Test a fresh safe prime gets a verified primitive root."""
    params = keyexchange.generate_parameters()
    p = params.modulus

    assert params.p_selector is None
    assert p.bit_length() == 512
    assert 2 <= params.generator <= 4096
    # p is a safe prime, so a primitive root is a quadratic non-residue
    assert pow(params.generator, (p - 1) // 2, p) == p - 1


def test_agreement_correctness():
    """Test both sides compute the same shared secret."""
    alice = keyexchange.generate_parameters(12, 6)
    bob = keyexchange.generate_parameters(12, 6)

    alice_public = keyexchange.compute_public(alice)
    bob_public = keyexchange.compute_public(bob)

    assert alice_public != bob_public
    assert keyexchange.compute_shared(alice, bob_public) == keyexchange.compute_shared(bob, alice_public)


@pytest.mark.parametrize(
    "peer_of",
    [lambda p: 0, lambda p: 1, lambda p: p - 1, lambda p: p],
    ids=["zero", "one", "p-1", "p"],
)
def test_compute_shared_rejects_degenerate_peer_values(peer_of):
    """Test peer values outside [2, p-2] are refused."""
    params = keyexchange.generate_parameters(12, 6)
    peer = peer_of(params.modulus)

    with pytest.raises(HandshakeFailure):
        keyexchange.compute_shared(params, peer)


def test_cleared_parameters_are_unusable():
    """Test clear() drops all numeric material."""
    params = keyexchange.generate_parameters(12, 6)
    params.clear()

    assert params.cleared
    assert params.private_exponent == 0
    with pytest.raises(CryptoError):
        keyexchange.compute_public(params)
    with pytest.raises(CryptoError):
        keyexchange.compute_shared(params, 5)


def test_repr_hides_private_exponent():
    """Test the private exponent never appears in repr()."""
    params = keyexchange.generate_parameters(12, 6, exponent_selector=0)

    assert "private_exponent" not in repr(params)
    assert str(params.private_exponent) not in repr(params)


def test_int_bytes_helpers():
    """Test fixed-width big-endian serialization."""
    assert keyexchange.int_to_bytes(1, 4) == b"\x00\x00\x00\x01"
    assert keyexchange.bytes_to_int(b"\x00\x00\x01\x00") == 256

    with pytest.raises(CryptoError):
        keyexchange.int_to_bytes(1 << 40, 4)
