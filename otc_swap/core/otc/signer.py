"""
Treasury signer.

Holds the custodial keypair that authorizes outbound token transfers. The
key is parsed once at startup, checked against the configured treasury
address, and only ever used inside ``sign``. It is never logged, returned
or serialized.
"""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ...services.signatures import base58_decode, looks_base58
from .errors import TreasuryConfigError

logger = logging.getLogger(__name__)

SECRET_KEY_LENGTH = 64


def _parse_secret(raw: str) -> bytes:
    """Decode a secret key from a solana-keygen JSON array or a base58 export."""
    trimmed = raw.strip()
    if not trimmed:
        raise TreasuryConfigError("Treasury key not configured", details={"setup_needed": True})

    if trimmed.startswith("["):
        try:
            values: List[int] = json.loads(trimmed)
            secret = bytes(values)
        except (ValueError, TypeError) as exc:
            raise TreasuryConfigError("Treasury key is not a valid JSON byte array") from exc
    elif looks_base58(trimmed):
        try:
            secret = base58_decode(trimmed)
        except ValueError as exc:
            raise TreasuryConfigError("Treasury key is not valid base58") from exc
    else:
        raise TreasuryConfigError("Treasury key has an unsupported encoding")

    if len(secret) != SECRET_KEY_LENGTH:
        raise TreasuryConfigError(
            f"Treasury key must be {SECRET_KEY_LENGTH} bytes, got {len(secret)}"
        )
    return secret


class TreasurySigner:
    """Single owned handle on the treasury keypair."""

    __slots__ = ("_keypair", "_expected")

    def __init__(self, keypair: Keypair, expected_address: Pubkey):
        self._keypair = keypair
        self._expected = expected_address
        self._assert_identity()

    @classmethod
    def load(cls, secret: str, expected_address: str) -> "TreasurySigner":
        """Parse ``secret`` and bind it to ``expected_address``.

        Raises ``TreasuryConfigError`` when the key is absent, malformed, or
        belongs to a different wallet than the configured treasury.
        """
        if not expected_address:
            raise TreasuryConfigError("Treasury wallet address not configured", details={"setup_needed": True})
        try:
            expected = Pubkey.from_string(expected_address.strip())
        except ValueError as exc:
            raise TreasuryConfigError("Configured treasury wallet is not a valid address") from exc

        secret = _parse_secret(secret)
        try:
            keypair = Keypair.from_bytes(secret)
        except ValueError as exc:
            raise TreasuryConfigError("Treasury key bytes do not form a valid keypair") from exc

        signer = cls(keypair, expected)
        logger.info(f"Treasury signer loaded for {expected}")
        return signer

    @classmethod
    def from_settings(cls, settings) -> "TreasurySigner":
        return cls.load(settings.treasury_private_key.get_secret_value(), settings.treasury_wallet)

    def _assert_identity(self) -> None:
        actual = self._keypair.pubkey()
        if actual != self._expected:
            logger.error(f"Treasury keypair mismatch! Expected {self._expected}, got {actual}")
            raise TreasuryConfigError("Treasury configuration error: keypair does not match treasury wallet")

    def public_identity(self) -> Pubkey:
        return self._expected

    @property
    def address(self) -> str:
        return str(self._expected)

    def sign(self, transaction: Transaction, recent_blockhash: Optional[Hash] = None) -> Transaction:
        """Apply the treasury's partial signature in place and return the transaction."""
        self._assert_identity()
        blockhash = recent_blockhash or transaction.message.recent_blockhash
        transaction.partial_sign([self._keypair], blockhash)
        return transaction

    def __repr__(self) -> str:
        return f"TreasurySigner(address={self._expected})"

    def __reduce__(self):
        raise TypeError("TreasurySigner cannot be serialized")


__all__ = ["TreasurySigner", "SECRET_KEY_LENGTH"]
