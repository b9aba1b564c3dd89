"""
Tests for wallet address parsing and ed25519 signature checks.
"""

import pytest
from solders.keypair import Keypair

from otc_swap.core.otc.errors import ValidationError
from otc_swap.services.address import is_valid_solana_address, parse_wallet
from otc_swap.services.signatures import base58_decode, looks_base58, verify_solana_signature


def test_valid_address_parses():
    keypair = Keypair()
    assert parse_wallet(f"  {keypair.pubkey()} ") == keypair.pubkey()
    assert is_valid_solana_address(str(keypair.pubkey()))


@pytest.mark.parametrize("address", [None, "", "0x1234567890abcdef1234567890abcdef12345678", "short", "O" * 44])
def test_invalid_address_rejected(address):
    with pytest.raises(ValidationError):
        parse_wallet(address)


def test_base58_matches_solders_encoding():
    keypair = Keypair()
    assert looks_base58(str(keypair.pubkey()))
    assert base58_decode(str(keypair.pubkey())) == bytes(keypair.pubkey())
    assert base58_decode("11") == b"\x00\x00"


def test_signature_verification():
    keypair = Keypair()
    message = b"otc swap message"
    signature = bytes(keypair.sign_message(message))

    verify_solana_signature(message, signature, str(keypair.pubkey()))
    with pytest.raises(ValueError):
        verify_solana_signature(b"other message", signature, str(keypair.pubkey()))
    with pytest.raises(ValueError):
        verify_solana_signature(message, signature, str(Keypair().pubkey()))
    with pytest.raises(ValueError):
        verify_solana_signature(message, signature[:10], str(keypair.pubkey()))
