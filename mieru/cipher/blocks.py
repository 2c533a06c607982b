"""Password hashing and creation of cipher blocks derived from a password."""

from __future__ import annotations

import hashlib
import threading
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from mieru.cipher.aesgcm import DEFAULT_KEY_LEN, AESGCMBlockCipher, CipherError
from mieru.cipher.keygen import DEFAULT_ITER, derive_key, salts_from_time

CACHE_VALID_INTERVAL = 60.0  # seconds


@dataclass(frozen=True)
class _CachedCiphers:
    ciphers: list[AESGCMBlockCipher]
    create_time: float


_cache: dict[bytes, _CachedCiphers] = {}
_cache_lock = threading.Lock()


def hash_password(raw_password: bytes, unique_value: bytes) -> bytes:
    """Hash the password decorated by a unique value, such as the user name."""
    # A zero byte separates the password and the unique value.
    return hashlib.sha256(bytes(raw_password) + b"\x00" + bytes(unique_value)).digest()


def _new_block_cipher_list(
    password: bytes, stateless: bool
) -> tuple[list[AESGCMBlockCipher], float]:
    now = time.time()
    ciphers = []
    for salt in salts_from_time(now):
        try:
            key = derive_key(password, salt, DEFAULT_KEY_LEN, DEFAULT_ITER)
        except ValueError as exc:
            raise CipherError(f"key derivation failed: {exc}") from exc
        block = AESGCMBlockCipher(key)
        if not stateless:
            block.set_implicit_nonce_mode(True)
        ciphers.append(block)
    return ciphers, now


def _get_block_cipher_list(password: bytes, stateless: bool) -> list[AESGCMBlockCipher]:
    key = bytes(password)
    if stateless:
        with _cache_lock:
            entry = _cache.get(key)
        if entry is not None and entry.create_time + CACHE_VALID_INTERVAL >= time.time():
            return entry.ciphers

    ciphers, created = _new_block_cipher_list(key, stateless)
    if stateless:
        with _cache_lock:
            _cache[key] = _CachedCiphers(ciphers, created)
    return ciphers


def block_cipher_list_from_password(
    password: bytes, stateless: bool
) -> list[AESGCMBlockCipher]:
    """Return three cipher blocks built with the previous, current and next salt.

    Stateless cipher blocks are cached for a minute; stateful ones are
    always created anew and use implicit nonce mode.
    """
    return _get_block_cipher_list(password, stateless)


def block_cipher_from_password(password: bytes, stateless: bool) -> AESGCMBlockCipher:
    """Return the cipher block built with the salt of the current minute."""
    return _get_block_cipher_list(password, stateless)[1]


def select_decrypt(
    data: bytes, blocks: Sequence[AESGCMBlockCipher]
) -> tuple[AESGCMBlockCipher, bytes]:
    """Return the first block that decrypts the data, and the plaintext."""
    for block in blocks:
        try:
            return block, block.decrypt(data)
        except CipherError:
            continue
    raise CipherError(f"unable to decrypt from supplied {len(blocks)} cipher blocks")


def try_decrypt(
    data: bytes, password: bytes, stateless: bool
) -> tuple[AESGCMBlockCipher, bytes]:
    """Try every cipher block derived from the password on the data."""
    blocks = block_cipher_list_from_password(password, stateless)
    return select_decrypt(data, blocks)


def clone_block_ciphers(blocks: Iterable[AESGCMBlockCipher]) -> list[AESGCMBlockCipher]:
    """Return independent copies of the cipher blocks."""
    return [block.clone() for block in blocks]