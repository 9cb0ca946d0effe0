"""
NetAuth - Diffie-Hellman key agreement engine.

This module implements the modular-exponentiation key agreement used by the
handshake:
- Private exponent generation from the system CSPRNG
- Public value computation (g^x mod p)
- Shared secret computation (peer^x mod p)
- Fresh safe-prime generation with primitive-root discovery when no fixed
  parameters are selected

The raw shared secret is never used as a key; it always goes through
netauth.crypto.derive_key.
"""

import logging
import secrets
from dataclasses import dataclass, field
from typing import List, Optional

from cryptography.hazmat.primitives.asymmetric import dh

from .constants import (
    DEFAULT_GENERATOR,
    MAX_PRIME_FACTORS,
    MAX_PRIMITIVE_ROOTS,
    PRIMITIVE_ROOT_SEARCH_WINDOW,
    PRIVATE_EXPONENT_BITS,
    RANDOM_PRIME_BITS,
    TRIAL_DIVISION_BOUND,
)
from .errors import CryptoError, ErrorCode, HandshakeFailure, ParameterGenerationFailure
from .primes import get_exponent, get_modulus

logger = logging.getLogger(__name__)


@dataclass
class KeyAgreementParameters:
    """One side's key agreement parameters for one session.

    The private exponent is never transmitted and is excluded from repr().
    Call clear() when the session ends.
    """

    modulus: int
    generator: int
    private_exponent: int = field(repr=False)
    p_selector: Optional[int] = None

    @property
    def modulus_bytes(self) -> int:
        """Width in bytes of every value serialized under this modulus."""
        return (self.modulus.bit_length() + 7) // 8

    @property
    def cleared(self) -> bool:
        return self.modulus == 0

    def clear(self) -> None:
        """Drop all numeric material."""
        self.private_exponent = 0
        self.modulus = 0
        self.generator = 0


def int_to_bytes(value: int, length: int) -> bytes:
    """Serialize a non-negative integer big-endian at a fixed width.

    Raises:
        CryptoError: If the value does not fit in length bytes
    """
    try:
        return value.to_bytes(length, "big")
    except OverflowError:
        raise CryptoError(
            ErrorCode.E002_INVALID_ARGUMENT,
            "Value does not fit the requested width",
            {"width": length, "bits": value.bit_length() if value >= 0 else None},
        ) from None


def bytes_to_int(data: bytes) -> int:
    """Parse an unsigned big-endian integer."""
    return int.from_bytes(data, "big")


def random_exponent(modulus: int) -> int:
    """Draw a private exponent in [2, modulus - 2]."""
    exponent = secrets.randbits(PRIVATE_EXPONENT_BITS) | (1 << (PRIVATE_EXPONENT_BITS - 1))
    if exponent >= modulus - 1:
        exponent = 2 + secrets.randbelow(modulus - 3)
    return exponent


def generate_prime(bits: int = RANDOM_PRIME_BITS) -> int:
    """Generate a fresh safe prime of the given size.

    OpenSSL refuses sizes below 512 bits.
    """
    logger.debug(f"Generating {bits}-bit safe prime")
    parameters = dh.generate_parameters(generator=2, key_size=bits)
    return parameters.parameter_numbers().p


def factorize(
    n: int, max_factors: int = MAX_PRIME_FACTORS, bound: int = TRIAL_DIVISION_BOUND
) -> List[int]:
    """
    Find the distinct prime factors of n by trial division.

    Division stops once max_factors factors are found, once the divisor
    passes bound, or once divisor^2 exceeds what is left. Any remaining
    cofactor above 1 is appended as the last factor, so the result may hold
    max_factors + 1 entries. When division stops early the cofactor may be
    composite.

    Args:
        n: Number to factor (p - 1 for a prime p)
        max_factors: Stop after this many small factors
        bound: Largest trial divisor

    Returns:
        Distinct factors in ascending order of discovery
    """
    factors: List[int] = []
    remaining = n
    divisor = 2
    while (
        divisor * divisor <= remaining
        and divisor <= bound
        and len(factors) < max_factors
    ):
        if remaining % divisor == 0:
            factors.append(divisor)
            while remaining % divisor == 0:
                remaining //= divisor
        divisor += 1 if divisor == 2 else 2

    if remaining > 1:
        factors.append(remaining)
    return factors


def find_primitive_root(
    p: int,
    window: int = PRIMITIVE_ROOT_SEARCH_WINDOW,
    max_roots: int = MAX_PRIMITIVE_ROOTS,
) -> int:
    """
    Search for a primitive root of the prime p.

    Candidates 2, 3, ... up to window (or p - 1) are tested against every
    factor f of p - 1: a witness satisfies r^((p-1)/f) != 1 (mod p) for all
    of them. The search stops after max_roots witnesses and returns the
    largest one found.

    Raises:
        ParameterGenerationFailure: If no witness lies within the window
    """
    if p < 3:
        raise ParameterGenerationFailure("Modulus too small for a primitive root", {"modulus_bits": p.bit_length()})

    order = p - 1
    factors = factorize(order)
    roots: List[int] = []

    for candidate in range(2, min(window, order) + 1):
        if all(pow(candidate, order // f, p) != 1 for f in factors):
            roots.append(candidate)
            if len(roots) >= max_roots:
                break

    if not roots:
        raise ParameterGenerationFailure(
            details={"modulus_bits": p.bit_length(), "window": window}
        )
    return max(roots)


def parameters_from_modulus(
    modulus: int,
    generator: int,
    exponent_selector: Optional[int] = None,
    p_selector: Optional[int] = None,
) -> KeyAgreementParameters:
    """Build parameters around a known modulus and generator.

    Raises:
        CryptoError: If the generator is outside [2, modulus - 2]
    """
    if not isinstance(generator, int) or not 2 <= generator <= modulus - 2:
        raise CryptoError(
            ErrorCode.E104_INVALID_PARAMETER,
            "Generator out of range for modulus",
            {"generator": generator, "modulus_bits": modulus.bit_length()},
        )

    if exponent_selector is not None:
        exponent = get_exponent(exponent_selector)
    else:
        exponent = random_exponent(modulus)

    return KeyAgreementParameters(modulus, generator, exponent, p_selector)


def generate_parameters(
    selector: Optional[int] = None,
    generator: Optional[int] = None,
    exponent_selector: Optional[int] = None,
    prime_bits: int = RANDOM_PRIME_BITS,
) -> KeyAgreementParameters:
    """
    Produce key agreement parameters for one side of a session.

    With a selector, the modulus comes from the parameter table and the
    generator from the caller (DEFAULT_GENERATOR when omitted). Without one,
    a fresh safe prime is generated and its generator found by
    find_primitive_root; a caller-supplied generator is ignored in that case.

    Args:
        selector: P selector into the modulus table, or None for a fresh prime
        generator: Generator to pair with a table modulus
        exponent_selector: Fixed exponent material for reproducible runs
        prime_bits: Size of a freshly generated prime

    Raises:
        CryptoError: Unknown selector or out-of-range generator
        ParameterGenerationFailure: No primitive root within the search window
    """
    if selector is not None:
        modulus = get_modulus(selector)
        if generator is None:
            generator = DEFAULT_GENERATOR
        return parameters_from_modulus(modulus, generator, exponent_selector, selector)

    modulus = generate_prime(prime_bits)
    root = find_primitive_root(modulus)
    logger.info(f"Generated {modulus.bit_length()}-bit modulus with primitive root {root}")
    return parameters_from_modulus(modulus, root, exponent_selector)


def compute_public(params: KeyAgreementParameters) -> int:
    """Compute the public value g^x mod p."""
    if params.cleared:
        raise CryptoError(ErrorCode.E103_INVALID_KEY, "Key agreement parameters have been cleared")
    return pow(params.generator, params.private_exponent, params.modulus)


def compute_shared(params: KeyAgreementParameters, peer_public: int) -> int:
    """
    Compute the raw shared secret peer_public^x mod p.

    Raises:
        HandshakeFailure: If the peer's public value is outside [2, p - 2]
    """
    if params.cleared:
        raise CryptoError(ErrorCode.E103_INVALID_KEY, "Key agreement parameters have been cleared")
    if not 2 <= peer_public <= params.modulus - 2:
        raise HandshakeFailure(
            "Peer public value out of range",
            {"peer_bits": peer_public.bit_length(), "modulus_bits": params.modulus.bit_length()},
        )
    return pow(peer_public, params.private_exponent, params.modulus)
