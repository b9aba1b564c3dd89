"""
Base58 codecs and ed25519 signature checks for Solana keys.
"""

from __future__ import annotations

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey


_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_INDEX = {char: index for index, char in enumerate(_BASE58_ALPHABET)}


def verify_solana_signature(message: bytes, signature: bytes, address: str) -> None:
    """
    Verify an ed25519 signature made by ``address`` over ``message``.
    Raises ValueError if verification fails.
    """
    public_key = base58_decode(address)
    if len(public_key) != 32:
        raise ValueError("Invalid Solana public key length")
    if len(signature) != 64:
        raise ValueError("Invalid Solana signature length")

    verify_key = VerifyKey(public_key)
    try:
        verify_key.verify(message, signature)
    except BadSignatureError as exc:
        raise ValueError("Invalid Solana signature") from exc


def base58_decode(value: str) -> bytes:
    if not value:
        return b""
    num = 0
    for char in value:
        if char not in _BASE58_INDEX:
            raise ValueError("Invalid base58 character")
        num = num * 58 + _BASE58_INDEX[char]
    combined = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    pad = len(value) - len(value.lstrip("1"))
    return b"\x00" * pad + combined


def looks_base58(value: str) -> bool:
    return bool(value) and all(char in _BASE58_INDEX for char in value)


__all__ = [
    "verify_solana_signature",
    "base58_decode",
    "looks_base58",
]
