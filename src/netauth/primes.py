"""
NetAuth - Prime/Parameter Table.

Fixed, pre-vetted key agreement moduli indexed by a small integer
"P selector", plus deterministic exponent material indexed by an
"X selector". Everything here is read-only and safe to share between
connections.

The moduli are the RFC 3526 MODP safe primes. Both peers must use the same
selector, so hosts are expected to pin it in configuration.
"""

import hashlib
from types import MappingProxyType
from typing import Mapping, Tuple

from .constants import PRIVATE_EXPONENT_BITS
from .errors import CryptoError, ErrorCode

# RFC 3526 group 14, 2048-bit MODP safe prime
_MODP_2048 = (
    "FFFFFFFFFFFFFFFFC90FDAA22168C234C4C6628B80DC1CD129024E088A67CC74"
    "020BBEA63B139B22514A08798E3404DDEF9519B3CD3A431B302B0A6DF25F1437"
    "4FE1356D6D51C245E485B576625E7EC6F44C42E9A637ED6B0BFF5CB6F406B7ED"
    "EE386BFB5A899FA5AE9F24117C4B1FE649286651ECE45B3DC2007CB8A163BF05"
    "98DA48361C55D39A69163FA8FD24CF5F83655D23DCA3AD961C62F356208552BB"
    "9ED529077096966D670C354E4ABC9804F1746C08CA18217C32905E462E36CE3B"
    "E39E772C180E86039B2783A2EC07A28FB5C55DF06F4C52C9DE2BCBF695581718"
    "3995497CEA956AE515D2261898FA051015728E5A8AACAA68FFFFFFFFFFFFFFFF"
)

# RFC 3526 group 15, 3072-bit MODP safe prime
_MODP_3072 = (
    "FFFFFFFFFFFFFFFFC90FDAA22168C234C4C6628B80DC1CD129024E088A67CC74"
    "020BBEA63B139B22514A08798E3404DDEF9519B3CD3A431B302B0A6DF25F1437"
    "4FE1356D6D51C245E485B576625E7EC6F44C42E9A637ED6B0BFF5CB6F406B7ED"
    "EE386BFB5A899FA5AE9F24117C4B1FE649286651ECE45B3DC2007CB8A163BF05"
    "98DA48361C55D39A69163FA8FD24CF5F83655D23DCA3AD961C62F356208552BB"
    "9ED529077096966D670C354E4ABC9804F1746C08CA18217C32905E462E36CE3B"
    "E39E772C180E86039B2783A2EC07A28FB5C55DF06F4C52C9DE2BCBF695581718"
    "3995497CEA956AE515D2261898FA051015728E5A8AAAC42DAD33170D04507A33"
    "A85521ABDF1CBA64ECFB850458DBEF0A8AEA71575D060C7DB3970F85A6E1E4C7"
    "ABF5AE8CDB0933D71E8C94E04A25619DCEE3D2261AD2EE6BF12FFA06D98A0864"
    "D87602733EC86A64521F2B18177B200CBBE117577A615D6C770988C0BAD946E2"
    "08E24FA074E5AB3143DB5BFCE0FD108E4B82D120A93AD2CAFFFFFFFFFFFFFFFF"
)

# RFC 3526 group 16, 4096-bit MODP safe prime
_MODP_4096 = (
    "FFFFFFFFFFFFFFFFC90FDAA22168C234C4C6628B80DC1CD129024E088A67CC74"
    "020BBEA63B139B22514A08798E3404DDEF9519B3CD3A431B302B0A6DF25F1437"
    "4FE1356D6D51C245E485B576625E7EC6F44C42E9A637ED6B0BFF5CB6F406B7ED"
    "EE386BFB5A899FA5AE9F24117C4B1FE649286651ECE45B3DC2007CB8A163BF05"
    "98DA48361C55D39A69163FA8FD24CF5F83655D23DCA3AD961C62F356208552BB"
    "9ED529077096966D670C354E4ABC9804F1746C08CA18217C32905E462E36CE3B"
    "E39E772C180E86039B2783A2EC07A28FB5C55DF06F4C52C9DE2BCBF695581718"
    "3995497CEA956AE515D2261898FA051015728E5A8AAAC42DAD33170D04507A33"
    "A85521ABDF1CBA64ECFB850458DBEF0A8AEA71575D060C7DB3970F85A6E1E4C7"
    "ABF5AE8CDB0933D71E8C94E04A25619DCEE3D2261AD2EE6BF12FFA06D98A0864"
    "D87602733EC86A64521F2B18177B200CBBE117577A615D6C770988C0BAD946E2"
    "08E24FA074E5AB3143DB5BFCE0FD108E4B82D120A92108011A723C12A787E6D7"
    "88719A10BDBA5B2699C327186AF4E23C1A946834B6150BDA2583E9CA2AD44CE8"
    "DBBBC2DB04DE8EF92E8EFC141FBECAA6287C59474E6BC05D99B2964FA090C3A2"
    "233BA186515BE7ED1F612970CEE2D7AFB81BDD762170481CD0069127D5B05AA9"
    "93B4EA988D8FDDC186FFB7DC90A6C08F4DF435C934063199FFFFFFFFFFFFFFFF"
)

MODULUS_TABLE: Mapping[int, int] = MappingProxyType(
    {
        12: int(_MODP_2048, 16),
        13: int(_MODP_3072, 16),
        14: int(_MODP_4096, 16),
    }
)


def _exponent_material(index: int) -> int:
    # Stretch a fixed label to PRIVATE_EXPONENT_BITS and force the top bit
    digest = b""
    counter = 0
    while len(digest) * 8 < PRIVATE_EXPONENT_BITS:
        digest += hashlib.sha256(f"netauth-exponent-{index}-{counter}".encode("ascii")).digest()
        counter += 1
    value = int.from_bytes(digest, "big") >> (len(digest) * 8 - PRIVATE_EXPONENT_BITS)
    return value | (1 << (PRIVATE_EXPONENT_BITS - 1))


EXPONENT_TABLE: Tuple[int, ...] = tuple(_exponent_material(i) for i in range(16))


def available_selectors() -> Tuple[int, ...]:
    """Return the P selectors present in the table, ascending."""
    return tuple(sorted(MODULUS_TABLE))


def get_modulus(selector: int) -> int:
    """Look up a pre-vetted modulus by P selector.

    Raises:
        CryptoError: If the selector is not in the table
    """
    try:
        return MODULUS_TABLE[selector]
    except (KeyError, TypeError):
        raise CryptoError(
            ErrorCode.E104_INVALID_PARAMETER,
            f"Unknown P selector: {selector!r}",
            {"selector": selector, "available": list(available_selectors())},
        ) from None


def get_exponent(selector: int) -> int:
    """Look up fixed exponent material by X selector.

    Only meant for reproducible test vectors; live sessions draw their
    exponent from the system CSPRNG.

    Raises:
        CryptoError: If the selector is out of range
    """
    if not isinstance(selector, int) or not 0 <= selector < len(EXPONENT_TABLE):
        raise CryptoError(
            ErrorCode.E104_INVALID_PARAMETER,
            f"Unknown X selector: {selector!r}",
            {"selector": selector, "available": len(EXPONENT_TABLE)},
        )
    return EXPONENT_TABLE[selector]
