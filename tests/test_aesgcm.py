import os
import random
from collections import Counter

import pytest

from mieru.cipher.aesgcm import (
    DEFAULT_NONCE_SIZE,
    DEFAULT_OVERHEAD,
    NONCE_PRINTABLE_PREFIX_LEN,
    PRINTABLE_CHAR_MAX,
    PRINTABLE_CHAR_MIN,
    AESGCMBlockCipher,
    BlockContext,
    CipherError,
    increment_nonce,
    validate_key_size,
)


def test_default_nonce_size():
    c = AESGCMBlockCipher(os.urandom(32))
    assert c.nonce_size == DEFAULT_NONCE_SIZE == 12


def test_default_overhead():
    c = AESGCMBlockCipher(os.urandom(32))
    assert c.overhead == DEFAULT_OVERHEAD == 16


def test_encrypt_decrypt_roundtrip():
    rng = random.Random(7)
    for _ in range(100):
        key = os.urandom(rng.choice((16, 24, 32)))
        c = AESGCMBlockCipher(key)
        assert c.is_stateless() is True
        data = os.urandom(rng.randrange(4096))

        ciphertext = c.encrypt(data)
        assert len(ciphertext) == len(data) + DEFAULT_NONCE_SIZE + DEFAULT_OVERHEAD
        assert c.decrypt(ciphertext) == data

        nonce = os.urandom(DEFAULT_NONCE_SIZE)
        ciphertext = c.encrypt_with_nonce(data, nonce)
        assert c.decrypt_with_nonce(ciphertext, nonce) == data


def test_encrypt_decrypt_implicit_mode():
    send = AESGCMBlockCipher(os.urandom(32))
    send.set_implicit_nonce_mode(True)
    recv = send.clone()
    assert send.is_stateless() is False
    assert recv.is_stateless() is False

    for i in range(200):
        data = os.urandom(4096)
        ciphertext = send.encrypt(data)
        expected_len = len(data) + DEFAULT_OVERHEAD + (DEFAULT_NONCE_SIZE if i == 0 else 0)
        assert len(ciphertext) == expected_len
        assert recv.decrypt(ciphertext) == data


def test_clone():
    cipher1 = AESGCMBlockCipher(os.urandom(32))
    cipher1.set_implicit_nonce_mode(True)
    nonce = os.urandom(cipher1.nonce_size)
    cipher1.implicit_nonce = nonce
    cipher1.block_context = BlockContext(user_name="alice")
    cipher2 = cipher1.clone()
    assert cipher2.block_context == BlockContext(user_name="alice")

    data = os.urandom(4096)
    ciphertext1 = cipher1.encrypt(data)
    ciphertext2 = cipher2.encrypt(data)
    assert ciphertext1 == ciphertext2

    cipher1.implicit_nonce = nonce
    cipher2.implicit_nonce = nonce
    plaintext1 = cipher1.decrypt(ciphertext1)
    plaintext2 = cipher2.decrypt(ciphertext2)
    assert plaintext1 == plaintext2 == data


@pytest.mark.parametrize(
    "given, expected",
    [
        (bytes([0x89, 0x64]), bytes([0x89, 0x65])),
        (bytes([0xFE, 0xFF, 0xFF, 0xFF]), bytes([0xFF, 0x00, 0x00, 0x00])),
        (bytes([0xFF, 0xFF, 0xFF, 0xFF]), bytes([0x00, 0x00, 0x00, 0x00])),
    ],
)
def test_increment_nonce(given, expected):
    assert increment_nonce(given) == expected


def test_new_nonce_printable_and_uniform():
    c = AESGCMBlockCipher(os.urandom(32))
    distribution = Counter()
    for _ in range(50000):
        nonce = c.encrypt(b"")[:DEFAULT_NONCE_SIZE]
        prefix = nonce[:NONCE_PRINTABLE_PREFIX_LEN]
        for b in prefix:
            assert PRINTABLE_CHAR_MIN <= b <= PRINTABLE_CHAR_MAX
        distribution.update(prefix)
    ratio = min(distribution.values()) / max(distribution.values())
    assert ratio >= 0.8


@pytest.mark.parametrize(
    "key, ok",
    [
        (None, False),
        (b"", False),
        (bytes(16), True),
        (bytes(24), True),
        (bytes(32), True),
        (bytes(48), False),
    ],
)
def test_validate_key_size(key, ok):
    if ok:
        assert validate_key_size(key) is None
    else:
        with pytest.raises(CipherError):
            validate_key_size(key)


def test_constructor_rejects_bad_key():
    with pytest.raises(CipherError):
        AESGCMBlockCipher(bytes(20))


def test_decrypt_tampered_data_fails():
    c = AESGCMBlockCipher(os.urandom(32))
    ciphertext = bytearray(c.encrypt(b"hello world"))
    ciphertext[-1] ^= 0x01
    with pytest.raises(CipherError):
        c.decrypt(bytes(ciphertext))


def test_decrypt_with_other_key_fails():
    a = AESGCMBlockCipher(os.urandom(32))
    b = AESGCMBlockCipher(os.urandom(32))
    with pytest.raises(CipherError):
        b.decrypt(a.encrypt(b"hello"))


def test_decrypt_too_short():
    c = AESGCMBlockCipher(os.urandom(32))
    with pytest.raises(CipherError):
        c.decrypt(b"short")


def test_with_nonce_rejected_in_implicit_mode():
    c = AESGCMBlockCipher(os.urandom(32))
    c.set_implicit_nonce_mode(True)
    nonce = os.urandom(DEFAULT_NONCE_SIZE)
    with pytest.raises(CipherError):
        c.encrypt_with_nonce(b"data", nonce)
    with pytest.raises(CipherError):
        c.decrypt_with_nonce(b"data", nonce)


def test_with_nonce_wrong_size():
    c = AESGCMBlockCipher(os.urandom(32))
    with pytest.raises(CipherError):
        c.encrypt_with_nonce(b"data", bytes(8))
    with pytest.raises(CipherError):
        c.decrypt_with_nonce(b"data", bytes(8))


def test_disabling_implicit_mode_drops_nonce():
    c = AESGCMBlockCipher(os.urandom(32))
    c.set_implicit_nonce_mode(True)
    c.encrypt(b"data")
    assert c.implicit_nonce is not None and len(c.implicit_nonce) == DEFAULT_NONCE_SIZE
    c.set_implicit_nonce_mode(False)
    assert c.implicit_nonce is None
    assert c.is_stateless() is True