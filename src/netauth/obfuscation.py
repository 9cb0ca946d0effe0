"""
NetAuth - Wire obfuscation transform.

A fixed, keyless, per-byte substitution applied to every frame on its way to
and from the transport. It hides the frame structure from casual inspection
and provides no confidentiality; the cipher session does that.

The forward map is the affine permutation b -> (167 * b + 91) mod 256. 167 is
odd and therefore invertible modulo 256.
"""

_MULTIPLIER = 167
_OFFSET = 91

_FORWARD = bytes((_MULTIPLIER * b + _OFFSET) & 0xFF for b in range(256))


def _invert(table: bytes) -> bytes:
    inverse = bytearray(256)
    for plain, mapped in enumerate(table):
        inverse[mapped] = plain
    return bytes(inverse)


_INVERSE = _invert(_FORWARD)


def obfuscate(buffer: bytes) -> bytes:
    """Apply the outgoing transform. Length is preserved."""
    return bytes(buffer).translate(_FORWARD)


def deobfuscate(buffer: bytes) -> bytes:
    """Undo obfuscate()."""
    return bytes(buffer).translate(_INVERSE)
