"""
NetAuth - Symmetric cryptography.

This module implements the symmetric half of a session:
- PBKDF2-HMAC-SHA256 key derivation from the agreed secret
- AES-CBC cipher session with a pinned padding policy
- Salt and IV generation

All cryptographic operations use the cryptography library
(Apache 2.0/BSD License).
"""

import logging
import os
from enum import Enum
from typing import Optional, Tuple

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .constants import BLOCK_SIZE, IV_SIZE, KDF_ITERATIONS, KEY_SIZE_128, KEY_SIZE_256, SALT_SIZE
from .errors import CryptoError, ErrorCode, HandshakeNotCompleted
from .keyexchange import int_to_bytes

logger = logging.getLogger(__name__)


class PaddingPolicy(Enum):
    """How plaintext is brought to a whole number of blocks."""

    ZERO = "zero"  # zero bytes, explicit pad count carried on the wire
    PKCS7 = "pkcs7"


class CipherStrength(Enum):
    """AES key size in bits."""

    AES_128 = 128
    AES_256 = 256

    @property
    def key_size(self) -> int:
        return KEY_SIZE_128 if self is CipherStrength.AES_128 else KEY_SIZE_256


def generate_salt() -> bytes:
    """Generate a fresh per-session KDF salt."""
    return os.urandom(SALT_SIZE)


def generate_iv() -> bytes:
    """Generate a fresh per-session CBC initialization vector."""
    return os.urandom(IV_SIZE)


def zero_pad_count(length: int) -> int:
    """Number of zero bytes ZERO padding appends to a plaintext of length bytes.

    An empty plaintext still produces one full block.
    """
    if length == 0:
        return BLOCK_SIZE
    return -length % BLOCK_SIZE


def derive_key(
    shared_secret: int,
    salt: bytes,
    length: int = KEY_SIZE_128,
    modulus_bytes: Optional[int] = None,
) -> bytearray:
    """
    Derive a symmetric key from a raw shared secret.

    The secret is serialized big-endian at modulus_bytes width so both peers
    hash identical input regardless of leading zero bytes.

    Args:
        shared_secret: Raw agreed secret
        salt: Per-session salt (64 bytes from the responder)
        length: Output key size, 16 or 32
        modulus_bytes: Serialization width; defaults to the secret's own width

    Returns:
        Key bytes in a mutable buffer so the owner can zero them

    Raises:
        CryptoError: Empty salt or unsupported length
    """
    if not salt:
        raise CryptoError(ErrorCode.E108_KEY_DERIVATION_FAILED, "Salt must not be empty")
    if length not in (KEY_SIZE_128, KEY_SIZE_256):
        raise CryptoError(
            ErrorCode.E108_KEY_DERIVATION_FAILED,
            "Unsupported key length",
            {"length": length, "supported": [KEY_SIZE_128, KEY_SIZE_256]},
        )

    width = modulus_bytes or max(1, (shared_secret.bit_length() + 7) // 8)
    secret_bytes = int_to_bytes(shared_secret, width)

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=bytes(salt),
        iterations=KDF_ITERATIONS,
    )
    return bytearray(kdf.derive(secret_bytes))


class CipherSession:
    """
    AES-CBC encryption bound to one connection.

    The session starts empty. The handshake installs a key and IV together
    exactly once; close() zeroes the key and makes the session unusable.
    """

    def __init__(
        self,
        policy: PaddingPolicy = PaddingPolicy.ZERO,
        strength: CipherStrength = CipherStrength.AES_128,
    ):
        self.policy = PaddingPolicy(policy)
        self.strength = CipherStrength(strength)
        self._key: Optional[bytearray] = None
        self._iv: Optional[bytes] = None
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return self._key is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def install(self, key: bytes, iv: bytes) -> None:
        """
        Install key and IV as a pair.

        Raises:
            CryptoError: Wrong sizes, or material already installed
            HandshakeNotCompleted: Session already closed
        """
        if self._closed:
            raise HandshakeNotCompleted("Cipher session is closed")
        if self._key is not None:
            raise CryptoError(ErrorCode.E103_INVALID_KEY, "Key material already installed")
        if len(key) != self.strength.key_size:
            raise CryptoError(
                ErrorCode.E103_INVALID_KEY,
                "Key size does not match cipher strength",
                {"expected": self.strength.key_size, "actual": len(key)},
            )
        if len(iv) != IV_SIZE:
            raise CryptoError(
                ErrorCode.E103_INVALID_KEY,
                "IV must be one block",
                {"expected": IV_SIZE, "actual": len(iv)},
            )

        self._key = bytearray(key)
        self._iv = bytes(iv)
        logger.debug(f"Installed AES-{self.strength.value} key ({self.policy.value} padding)")

    def _cipher(self) -> Cipher:
        if self._closed:
            raise HandshakeNotCompleted("Cipher session is closed")
        if self._key is None:
            raise HandshakeNotCompleted("No key installed for this session")
        return Cipher(algorithms.AES(bytes(self._key)), modes.CBC(self._iv))

    def encrypt(self, plaintext: bytes) -> Tuple[bytes, int]:
        """
        Encrypt plaintext under the installed key and IV.

        Returns:
            (ciphertext, pad_count); ciphertext length is a non-zero multiple
            of the block size
        """
        cipher = self._cipher()
        data = bytes(plaintext)

        if self.policy is PaddingPolicy.ZERO:
            pad_count = zero_pad_count(len(data))
            padded = data + b"\x00" * pad_count
        else:
            padder = sym_padding.PKCS7(BLOCK_SIZE * 8).padder()
            padded = padder.update(data) + padder.finalize()
            pad_count = len(padded) - len(data)

        encryptor = cipher.encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return ciphertext, pad_count

    def decrypt(self, ciphertext: bytes, pad_count: Optional[int] = None) -> bytes:
        """
        Decrypt ciphertext and strip padding.

        Args:
            ciphertext: Output of encrypt() on the peer
            pad_count: Required under ZERO padding; checked under PKCS7 if given

        Raises:
            CryptoError: Bad ciphertext length, pad count or padding bytes
        """
        cipher = self._cipher()

        if not ciphertext or len(ciphertext) % BLOCK_SIZE:
            raise CryptoError(
                ErrorCode.E102_DECRYPTION_FAILED,
                "Ciphertext length must be a non-zero multiple of the block size",
                {"length": len(ciphertext)},
            )

        decryptor = cipher.decryptor()
        padded = decryptor.update(bytes(ciphertext)) + decryptor.finalize()

        if self.policy is PaddingPolicy.ZERO:
            if pad_count is None:
                raise CryptoError(ErrorCode.E102_DECRYPTION_FAILED, "Pad count required for zero padding")
            if not isinstance(pad_count, int) or not 0 <= pad_count <= BLOCK_SIZE or pad_count > len(padded):
                raise CryptoError(
                    ErrorCode.E102_DECRYPTION_FAILED,
                    "Pad count out of range",
                    {"pad_count": pad_count, "length": len(padded)},
                )
            end = len(padded) - pad_count
            if any(padded[end:]):
                raise CryptoError(ErrorCode.E102_DECRYPTION_FAILED, "Padding bytes are not zero")
            return padded[:end]

        unpadder = sym_padding.PKCS7(BLOCK_SIZE * 8).unpadder()
        try:
            data = unpadder.update(padded) + unpadder.finalize()
        except ValueError:
            raise CryptoError(ErrorCode.E102_DECRYPTION_FAILED, "Invalid PKCS7 padding") from None

        if pad_count is not None and pad_count != len(padded) - len(data):
            raise CryptoError(
                ErrorCode.E102_DECRYPTION_FAILED,
                "Pad count disagrees with PKCS7 padding",
                {"pad_count": pad_count},
            )
        return data

    def close(self) -> None:
        """Zero the key in place and invalidate the session."""
        if self._key is not None:
            for i in range(len(self._key)):
                self._key[i] = 0
        self._key = None
        self._iv = None
        self._closed = True

    def __enter__(self) -> "CipherSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else ("ready" if self._key is not None else "empty")
        return f"CipherSession(AES-{self.strength.value}, {self.policy.value}, {state})"
