"""Key helpers: secp256k1 keypairs, npub/nsec bech32 and board ids."""

from __future__ import annotations

import secrets

import coincurve
from bech32 import bech32_decode, bech32_encode, convertbits


class InvalidKeyError(ValueError):
    """Raised when a key string cannot be decoded."""


def generate_private_key() -> str:
    """Return a fresh random private key as 64 hex chars."""
    return coincurve.PrivateKey().secret.hex()


def public_key_hex(private_key: str) -> str:
    """Derive the 32-byte x-only public key (hex) for ``private_key``."""
    try:
        key = coincurve.PrivateKey(bytes.fromhex(private_key))
    except ValueError as e:
        raise InvalidKeyError(f"Invalid private key: {e}") from e
    return key.public_key_xonly.format().hex()


def generate_keypair() -> tuple[str, str]:
    """Return ``(private_key_hex, public_key_hex)`` for an ephemeral identity."""
    private_key = generate_private_key()
    return private_key, public_key_hex(private_key)


def generate_board_id() -> str:
    """Random, opaque board identifier (128 bits, hex)."""
    return secrets.token_hex(16)


def is_hex_key(value: object, length: int = 64) -> bool:
    if not isinstance(value, str) or len(value) != length:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return value == value.lower()


# ---------------------------------------------------------------------------
# NIP-19 bech32
# ---------------------------------------------------------------------------


def _encode(hrp: str, hex_key: str) -> str:
    data = convertbits(bytes.fromhex(hex_key), 8, 5)
    return bech32_encode(hrp, data)


def _decode(expected_hrp: str, value: str) -> str:
    hrp, data = bech32_decode(value.strip().lower())
    if hrp != expected_hrp or data is None:
        raise InvalidKeyError(f"Not a valid {expected_hrp}: {value!r}")
    raw = convertbits(data, 5, 8, False)
    if raw is None or len(raw) != 32:
        raise InvalidKeyError(f"Not a valid {expected_hrp}: {value!r}")
    return bytes(raw).hex()


def npub_encode(public_key: str) -> str:
    return _encode("npub", public_key)


def npub_decode(npub: str) -> str:
    """Decode an ``npub1...`` string to a hex public key."""
    return _decode("npub", npub)


def nsec_encode(private_key: str) -> str:
    return _encode("nsec", private_key)


def nsec_decode(nsec: str) -> str:
    return _decode("nsec", nsec)
