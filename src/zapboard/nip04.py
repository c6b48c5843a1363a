"""NIP-04 direct-message encryption (used by Nostr Wallet Connect).

Shared key: x-coordinate of ECDH(private, public) on secp256k1.
Cipher: AES-256-CBC with PKCS7 padding, ``base64(ct) + "?iv=" + base64(iv)``.
"""

from __future__ import annotations

import base64
import binascii
import os

import coincurve
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from zapboard.errors import ValidationError


class DecryptionError(ValidationError):
    """Ciphertext is malformed or was not encrypted for this key pair."""


def shared_secret(private_key: str, public_key: str) -> bytes:
    """Raw 32-byte ECDH x-coordinate (not hashed, per NIP-04)."""
    point = coincurve.PublicKey(b"\x02" + bytes.fromhex(public_key))
    return point.multiply(bytes.fromhex(private_key)).format(compressed=True)[1:]


def encrypt(private_key: str, public_key: str, plaintext: str) -> str:
    key = shared_secret(private_key, public_key)
    iv = os.urandom(16)
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return (
        base64.b64encode(ciphertext).decode("ascii")
        + "?iv="
        + base64.b64encode(iv).decode("ascii")
    )


def decrypt(private_key: str, public_key: str, payload: str) -> str:
    """Reverse of ``encrypt``. Raises DecryptionError."""
    body, sep, iv_b64 = payload.partition("?iv=")
    if not sep:
        raise DecryptionError("Payload has no ?iv= part.")
    try:
        ciphertext = base64.b64decode(body, validate=True)
        iv = base64.b64decode(iv_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError(f"Payload is not base64: {e}") from e
    if len(iv) != 16 or not ciphertext or len(ciphertext) % 16:
        raise DecryptionError("Payload has a bad IV or block length.")

    try:
        key = shared_secret(private_key, public_key)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        raise DecryptionError(f"Payload could not be decrypted: {e}") from e
