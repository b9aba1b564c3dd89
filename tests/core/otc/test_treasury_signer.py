"""
Tests for treasury key loading and partial signing.
"""

import json
import pickle

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.signature import Signature
from solders.transaction import Transaction

from otc_swap.core.otc.errors import TreasuryConfigError
from otc_swap.core.otc.instructions import sol_transfer_ix
from otc_swap.core.otc.signer import TreasurySigner
from otc_swap.services.signatures import verify_solana_signature


def test_loads_json_byte_array(treasury_keypair):
    secret = json.dumps(list(bytes(treasury_keypair)))
    signer = TreasurySigner.load(secret, str(treasury_keypair.pubkey()))

    assert signer.public_identity() == treasury_keypair.pubkey()
    assert signer.address == str(treasury_keypair.pubkey())


def test_loads_base58_secret(treasury_keypair):
    signer = TreasurySigner.load(str(treasury_keypair), str(treasury_keypair.pubkey()))
    assert signer.public_identity() == treasury_keypair.pubkey()


def test_mismatched_key_is_a_config_error(treasury_keypair):
    other = Keypair()
    with pytest.raises(TreasuryConfigError) as exc_info:
        TreasurySigner.load(json.dumps(list(bytes(other))), str(treasury_keypair.pubkey()))
    assert "does not match" in exc_info.value.message


@pytest.mark.parametrize("secret", ["", "   ", "[1, 2, 3]", "[not json", "0OIl-not-base58"])
def test_malformed_key_is_a_config_error(treasury_keypair, secret):
    with pytest.raises(TreasuryConfigError):
        TreasurySigner.load(secret, str(treasury_keypair.pubkey()))


def test_missing_key_asks_for_setup(treasury_keypair):
    with pytest.raises(TreasuryConfigError) as exc_info:
        TreasurySigner.load("", str(treasury_keypair.pubkey()))
    assert exc_info.value.details["setup_needed"] is True


def test_missing_treasury_address_is_a_config_error(treasury_keypair):
    with pytest.raises(TreasuryConfigError):
        TreasurySigner.load(json.dumps(list(bytes(treasury_keypair))), "")


def test_partial_sign_leaves_fee_payer_slot_empty(treasury_keypair, buyer_keypair):
    signer = TreasurySigner(treasury_keypair, treasury_keypair.pubkey())
    blockhash = Hash.new_unique()
    # Buyer pays the fee; treasury is the second required signer
    ix = sol_transfer_ix(treasury_keypair.pubkey(), buyer_keypair.pubkey(), 1)
    message = Message.new_with_blockhash([ix], buyer_keypair.pubkey(), blockhash)

    tx = signer.sign(Transaction.new_unsigned(message), blockhash)

    assert tx.signatures[0] == Signature.default()
    keys = list(tx.message.account_keys)
    treasury_sig = tx.signatures[keys.index(treasury_keypair.pubkey())]
    verify_solana_signature(bytes(tx.message), bytes(treasury_sig), str(treasury_keypair.pubkey()))


def test_secret_is_never_exposed(treasury_keypair):
    signer = TreasurySigner(treasury_keypair, treasury_keypair.pubkey())

    assert str(bytes(treasury_keypair)) not in repr(signer)
    assert str(treasury_keypair.pubkey()) in repr(signer)
    with pytest.raises(TypeError):
        pickle.dumps(signer)
