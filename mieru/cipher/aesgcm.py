"""AES-GCM block cipher with optional implicit nonce mode."""

from __future__ import annotations

import os
import secrets
import threading
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

DEFAULT_NONCE_SIZE = 12
DEFAULT_OVERHEAD = 16
DEFAULT_KEY_LEN = 32
AES_BLOCK_SIZE = 16

NONCE_PRINTABLE_PREFIX_LEN = 8
PRINTABLE_CHAR_MIN = 0x20
PRINTABLE_CHAR_MAX = 0x7E

_PRINTABLE = bytes(range(PRINTABLE_CHAR_MIN, PRINTABLE_CHAR_MAX + 1))


class CipherError(ValueError):
    """Raised when encryption or decryption cannot be done."""


@dataclass
class BlockContext:
    """Optional context attached to a cipher block."""

    user_name: str = ""


def validate_key_size(key: bytes | None) -> None:
    """Raise CipherError unless the key is 16, 24 or 32 bytes long."""
    length = 0 if key is None else len(key)
    if length not in (16, 24, 32):
        raise CipherError(f"AES key length is {length}, want 16 or 24 or 32")


def increment_nonce(nonce: bytes) -> bytes:
    """Return the nonce increased by one as a big-endian number, wrapping around."""
    if not nonce:
        return bytes(nonce)
    size = len(nonce)
    value = (int.from_bytes(nonce, "big") + 1) % (1 << (8 * size))
    return value.to_bytes(size, "big")


class AESGCMBlockCipher:
    """Block cipher built on AES-GCM.

    In implicit nonce mode the nonce is exchanged once, on the first
    encrypt or decrypt, and increased by one on every later call.
    """

    def __init__(self, key: bytes) -> None:
        validate_key_size(key)
        self._key = bytes(key)
        self._aead = AESGCM(self._key)
        self._implicit = False
        self._implicit_nonce: bytes | None = None
        self._lock = threading.Lock()
        self.block_context = BlockContext()

    @property
    def nonce_size(self) -> int:
        return DEFAULT_NONCE_SIZE

    @property
    def overhead(self) -> int:
        return DEFAULT_OVERHEAD

    @property
    def block_size(self) -> int:
        return AES_BLOCK_SIZE

    @property
    def implicit_nonce(self) -> bytes | None:
        """The current implicit nonce, or None when none is set."""
        return self._implicit_nonce

    @implicit_nonce.setter
    def implicit_nonce(self, value: bytes | None) -> None:
        with self._lock:
            self._implicit_nonce = bytes(value) if value else None

    def _new_nonce(self) -> bytes:
        prefix_len = min(NONCE_PRINTABLE_PREFIX_LEN, self.nonce_size)
        prefix = bytes(secrets.choice(_PRINTABLE) for _ in range(prefix_len))
        return prefix + os.urandom(self.nonce_size - prefix_len)

    def _advance_nonce(self) -> bytes:
        if not self._implicit or not self._implicit_nonce:
            raise CipherError("implicit nonce mode is not enabled")
        self._implicit_nonce = increment_nonce(self._implicit_nonce)
        return self._implicit_nonce

    def _open(self, nonce: bytes, ciphertext: bytes) -> bytes:
        try:
            return self._aead.decrypt(nonce, bytes(ciphertext), None)
        except InvalidTag as exc:
            raise CipherError("AES-GCM authentication failed") from exc

    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt, prefixing the nonce unless it is implicit and already shared."""
        with self._lock:
            send_nonce = True
            if self._implicit:
                if not self._implicit_nonce:
                    self._implicit_nonce = self._new_nonce()
                    nonce = self._implicit_nonce
                else:
                    nonce = self._advance_nonce()
                    send_nonce = False
            else:
                nonce = self._new_nonce()
            sealed = self._aead.encrypt(nonce, bytes(plaintext), None)
            return nonce + sealed if send_nonce else sealed

    def encrypt_with_nonce(self, plaintext: bytes, nonce: bytes) -> bytes:
        """Encrypt with the given nonce; not allowed in implicit nonce mode."""
        with self._lock:
            if self._implicit:
                raise CipherError(
                    "encrypt_with_nonce() is not supported when implicit nonce is enabled"
                )
            if len(nonce) != DEFAULT_NONCE_SIZE:
                raise CipherError(f"want nonce size {DEFAULT_NONCE_SIZE}, got {len(nonce)}")
            return self._aead.encrypt(bytes(nonce), bytes(plaintext), None)

    def decrypt(self, ciphertext: bytes) -> bytes:
        """Decrypt, reading the nonce from the data unless it is implicit."""
        with self._lock:
            data = bytes(ciphertext)
            if self._implicit:
                if not self._implicit_nonce:
                    if len(data) < self.nonce_size:
                        raise CipherError("ciphertext is smaller than nonce size")
                    self._implicit_nonce = data[: self.nonce_size]
                    data = data[self.nonce_size:]
                    nonce = self._implicit_nonce
                else:
                    nonce = self._advance_nonce()
            else:
                if len(data) < self.nonce_size:
                    raise CipherError("ciphertext is smaller than nonce size")
                nonce = data[: self.nonce_size]
                data = data[self.nonce_size:]
            return self._open(nonce, data)

    def decrypt_with_nonce(self, ciphertext: bytes, nonce: bytes) -> bytes:
        """Decrypt with the given nonce; not allowed in implicit nonce mode."""
        with self._lock:
            if self._implicit:
                raise CipherError(
                    "decrypt_with_nonce() is not supported when implicit nonce is enabled"
                )
            if len(nonce) != DEFAULT_NONCE_SIZE:
                raise CipherError(f"want nonce size {DEFAULT_NONCE_SIZE}, got {len(nonce)}")
            return self._open(bytes(nonce), ciphertext)

    def clone(self) -> AESGCMBlockCipher:
        """Return an independent copy carrying the same key, mode, nonce and context."""
        with self._lock:
            copy = AESGCMBlockCipher(self._key)
            copy._implicit = self._implicit
            copy._implicit_nonce = self._implicit_nonce
            copy.block_context = BlockContext(self.block_context.user_name)
            return copy

    def set_implicit_nonce_mode(self, enable: bool) -> None:
        """Turn implicit nonce mode on or off; turning it off drops the nonce."""
        with self._lock:
            self._implicit = bool(enable)
            if not enable:
                self._implicit_nonce = None

    def is_stateless(self) -> bool:
        """True when encrypt and decrypt may be called in any order."""
        with self._lock:
            return not self._implicit