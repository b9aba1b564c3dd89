"""Raw instruction builders for the three steps of a swap transaction."""

from __future__ import annotations

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from .constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    ATA_IX_CREATE_IDEMPOTENT,
    SYSTEM_PROGRAM_ID,
    TOKEN_IX_TRANSFER_CHECKED,
    TokenProgram,
)


def _le_u64(n: int) -> bytes:
    return int(n).to_bytes(8, "little", signed=False)


def derive_associated_token_address(owner: Pubkey, mint: Pubkey, program: TokenProgram) -> Pubkey:
    """ATA address = PDA of [owner, token program, mint] under the associated token program.

    Only a candidate: nothing guarantees an account exists there.
    """
    return Pubkey.find_program_address(
        [bytes(owner), bytes(program.program_id), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )[0]


def create_associated_token_account_ix(
    payer: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    program: TokenProgram,
) -> Instruction:
    # CreateIdempotent: payer(ws), ata(w), owner(r), mint(r), system(r), token program(r)
    ata = derive_associated_token_address(owner, mint, program)
    metas = [
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(ata, is_signer=False, is_writable=True),
        AccountMeta(owner, is_signer=False, is_writable=False),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(program.program_id, is_signer=False, is_writable=False),
    ]
    return Instruction(ASSOCIATED_TOKEN_PROGRAM_ID, bytes([ATA_IX_CREATE_IDEMPOTENT]), metas)


def sol_transfer_ix(source: Pubkey, destination: Pubkey, lamports: int) -> Instruction:
    return transfer(TransferParams(from_pubkey=source, to_pubkey=destination, lamports=lamports))


def token_transfer_checked_ix(
    source: Pubkey,
    mint: Pubkey,
    destination: Pubkey,
    authority: Pubkey,
    amount_raw: int,
    decimals: int,
    program: TokenProgram,
) -> Instruction:
    # TransferChecked: source(w), mint(r), destination(w), authority(s)
    metas = [
        AccountMeta(source, is_signer=False, is_writable=True),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(destination, is_signer=False, is_writable=True),
        AccountMeta(authority, is_signer=True, is_writable=False),
    ]
    data = bytes([TOKEN_IX_TRANSFER_CHECKED]) + _le_u64(amount_raw) + bytes([decimals])
    return Instruction(program.program_id, data, metas)


__all__ = [
    "derive_associated_token_address",
    "create_associated_token_account_ix",
    "sol_transfer_ix",
    "token_transfer_checked_ix",
]
