"""
Tests for submitting buyer-signed swaps and applying the network's verdict.
"""

import base64
import json

import httpx
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.transaction import Transaction
from sqlalchemy import select

from otc_swap.core.execution.solana_rpc import SolanaRpcClient, SolanaRpcConfig, SolanaTransactionStatus
from otc_swap.core.otc.confirmer import SubmissionConfirmer
from otc_swap.core.otc.constants import TokenProgram
from otc_swap.core.otc.errors import (
    RpcError,
    SubmissionRejectedError,
    SwapNotFoundError,
    SwapStateError,
)
from otc_swap.core.otc.models import SwapStatus
from otc_swap.db.models import TradeHistoryModel


@pytest.fixture
def confirmer(fake_rpc, ledger, treasury_signer):
    return SubmissionConfirmer(rpc=fake_rpc, ledger=ledger, signer=treasury_signer)


@pytest.fixture
async def quote(make_builder, fake_rpc, treasury_keypair, buyer_keypair, mint):
    fake_rpc.add_holding(treasury_keypair.pubkey(), mint, TokenProgram.LEGACY, 1_000_000)
    return await make_builder().build(str(buyer_keypair.pubkey()), 100)


async def _trade_rows(database):
    async with database.session_factory() as session:
        return (await session.execute(select(TradeHistoryModel))).scalars().all()


@pytest.mark.asyncio
async def test_confirmed_swap_completes_and_records_trade(
    confirmer, quote, buyer_keypair, sign_as_buyer, ledger, database
):
    signed = sign_as_buyer(quote.transaction_b64, buyer_keypair)

    result = await confirmer.submit(quote.swap.id, signed)

    assert result.confirmed is True
    assert result.status == SwapStatus.COMPLETED
    stored = await ledger.get(quote.swap.id)
    assert stored.status == SwapStatus.COMPLETED
    assert stored.tx_signature == result.tx_signature
    assert await ledger.cumulative_completed_volume() == 100
    rows = await _trade_rows(database)
    assert [row.source_swap_id for row in rows] == [quote.swap.id]


@pytest.mark.asyncio
async def test_onchain_failure_marks_failed_without_volume(
    confirmer, quote, buyer_keypair, sign_as_buyer, fake_rpc, ledger, database
):
    fake_rpc.confirmation_status = SolanaTransactionStatus.FAILED
    fake_rpc.confirmation_error = "{'InstructionError': [2, 'InsufficientFunds']}"

    result = await confirmer.submit(quote.swap.id, sign_as_buyer(quote.transaction_b64, buyer_keypair))

    assert result.confirmed is False
    assert result.status == SwapStatus.FAILED
    assert "InsufficientFunds" in result.error
    assert (await ledger.get(quote.swap.id)).status == SwapStatus.FAILED
    assert await ledger.cumulative_completed_volume() == 0
    assert await _trade_rows(database) == []


@pytest.mark.asyncio
async def test_confirmation_timeout_leaves_swap_submitted(
    confirmer, quote, buyer_keypair, sign_as_buyer, fake_rpc, ledger
):
    fake_rpc.confirmation_status = SolanaTransactionStatus.TIMEOUT

    result = await confirmer.submit(quote.swap.id, sign_as_buyer(quote.transaction_b64, buyer_keypair))

    assert result.confirmed is False
    assert result.status == SwapStatus.SUBMITTED
    assert "Poll" in result.to_dict()["message"]
    assert (await ledger.get(quote.swap.id)).status == SwapStatus.SUBMITTED


@pytest.mark.asyncio
async def test_network_rejection_keeps_swap_pending(
    confirmer, quote, buyer_keypair, sign_as_buyer, fake_rpc, ledger
):
    fake_rpc.send_error = RpcError("Blockhash not found", code=-32002)

    with pytest.raises(SubmissionRejectedError) as exc_info:
        await confirmer.submit(quote.swap.id, sign_as_buyer(quote.transaction_b64, buyer_keypair))

    assert exc_info.value.details["rpc_code"] == -32002
    assert (await ledger.get(quote.swap.id)).status == SwapStatus.PENDING


@pytest.mark.asyncio
async def test_send_without_node_verdict_is_tracked_as_submitted(
    confirmer, quote, buyer_keypair, sign_as_buyer, fake_rpc, ledger
):
    signed = sign_as_buyer(quote.transaction_b64, buyer_keypair)
    fake_rpc.send_error = RpcError("RPC transport error: timed out")
    fake_rpc.confirmation_status = SolanaTransactionStatus.TIMEOUT

    result = await confirmer.submit(quote.swap.id, signed)

    expected = str(Transaction.from_bytes(base64.b64decode(signed)).signatures[0])
    assert result.status == SwapStatus.SUBMITTED
    assert result.tx_signature == expected
    stored = await ledger.get(quote.swap.id)
    assert stored.status == SwapStatus.SUBMITTED
    assert stored.tx_signature == expected


@pytest.mark.asyncio
async def test_send_timeout_on_real_client_still_settles_landed_swap(
    quote, buyer_keypair, sign_as_buyer, ledger, treasury_signer
):
    methods = []

    def handler(request: httpx.Request) -> httpx.Response:
        method = json.loads(request.content)["method"]
        methods.append(method)
        if method == "sendTransaction":
            # The node received it, the response never arrived
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, json={
            "jsonrpc": "2.0",
            "id": 1,
            "result": {"context": {"slot": 7}, "value": [
                {"slot": 7, "err": None, "confirmationStatus": "finalized"},
            ]},
        })

    rpc = SolanaRpcClient(
        SolanaRpcConfig(rpc_url="https://rpc.test", max_retries=1),
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    confirmer = SubmissionConfirmer(rpc=rpc, ledger=ledger, signer=treasury_signer, poll_interval_s=0.01)

    result = await confirmer.submit(quote.swap.id, sign_as_buyer(quote.transaction_b64, buyer_keypair))

    assert methods[0] == "sendTransaction"
    assert result.confirmed is True
    assert (await ledger.get(quote.swap.id)).status == SwapStatus.COMPLETED
    assert await ledger.cumulative_completed_volume() == 100
    await rpc.close()


@pytest.mark.asyncio
async def test_resubmitting_completed_swap_is_idempotent(
    confirmer, quote, buyer_keypair, sign_as_buyer, fake_rpc, database
):
    signed = sign_as_buyer(quote.transaction_b64, buyer_keypair)
    first = await confirmer.submit(quote.swap.id, signed)
    second = await confirmer.submit(quote.swap.id, signed)

    assert second.confirmed is True
    assert second.tx_signature == first.tx_signature
    assert len(fake_rpc.sent) == 1
    assert len(await _trade_rows(database)) == 1


@pytest.mark.asyncio
async def test_resubmitting_submitted_swap_polls_instead_of_resending(
    confirmer, quote, buyer_keypair, sign_as_buyer, fake_rpc, ledger
):
    signed = sign_as_buyer(quote.transaction_b64, buyer_keypair)
    fake_rpc.confirmation_status = SolanaTransactionStatus.TIMEOUT
    first = await confirmer.submit(quote.swap.id, signed)

    fake_rpc.confirmation_status = SolanaTransactionStatus.CONFIRMED
    second = await confirmer.submit(quote.swap.id, signed)

    assert len(fake_rpc.sent) == 1
    assert fake_rpc.status_lookups == [first.tx_signature]
    assert second.status == SwapStatus.COMPLETED


@pytest.mark.asyncio
async def test_failed_swap_cannot_be_resubmitted(
    confirmer, quote, buyer_keypair, sign_as_buyer, fake_rpc
):
    signed = sign_as_buyer(quote.transaction_b64, buyer_keypair)
    fake_rpc.confirmation_status = SolanaTransactionStatus.FAILED
    await confirmer.submit(quote.swap.id, signed)

    with pytest.raises(SwapStateError):
        await confirmer.submit(quote.swap.id, signed)


@pytest.mark.asyncio
async def test_unknown_swap(confirmer):
    with pytest.raises(SwapNotFoundError):
        await confirmer.submit("missing", "AAAA")


@pytest.mark.asyncio
async def test_unsigned_transaction_rejected(confirmer, quote, fake_rpc, ledger):
    with pytest.raises(SubmissionRejectedError, match="buyer signature"):
        await confirmer.submit(quote.swap.id, quote.transaction_b64)

    assert fake_rpc.sent == []
    assert (await ledger.get(quote.swap.id)).status == SwapStatus.PENDING


@pytest.mark.asyncio
async def test_undecodable_transaction_rejected(confirmer, quote, fake_rpc):
    with pytest.raises(SubmissionRejectedError):
        await confirmer.submit(quote.swap.id, "definitely not a transaction")
    assert fake_rpc.sent == []


@pytest.mark.asyncio
async def test_tampered_transaction_rejected(confirmer, quote, buyer_keypair, fake_rpc):
    tx = Transaction.from_bytes(base64.b64decode(quote.transaction_b64))
    raw = bytearray(bytes(tx))
    # Flip the last byte: part of the TransferChecked data (the decimals)
    raw[-1] ^= 0x01
    tampered = Transaction.from_bytes(bytes(raw))
    tampered.partial_sign([buyer_keypair], tampered.message.recent_blockhash)

    with pytest.raises(SubmissionRejectedError, match="Treasury signature"):
        await confirmer.submit(quote.swap.id, base64.b64encode(bytes(tampered)).decode())
    assert fake_rpc.sent == []


@pytest.mark.asyncio
async def test_transaction_for_another_swap_rejected(
    confirmer, make_builder, quote, buyer_keypair, sign_as_buyer, fake_rpc
):
    fake_rpc.blockhash = str(Hash.new_unique())
    other = await make_builder().build(str(buyer_keypair.pubkey()), 200)

    with pytest.raises(SubmissionRejectedError, match="does not belong"):
        await confirmer.submit(quote.swap.id, sign_as_buyer(other.transaction_b64, buyer_keypair))


@pytest.mark.asyncio
async def test_wrong_signer_rejected(confirmer, quote):
    stranger = Keypair()
    tx = Transaction.from_bytes(base64.b64decode(quote.transaction_b64))
    signatures = list(tx.signatures)
    signatures[0] = stranger.sign_message(bytes(tx.message))
    tx = Transaction.populate(tx.message, signatures)

    with pytest.raises(SubmissionRejectedError, match="Buyer signature"):
        await confirmer.submit(quote.swap.id, base64.b64encode(bytes(tx)).decode())


@pytest.mark.asyncio
async def test_reconcile_settles_timed_out_swap(
    confirmer, quote, buyer_keypair, sign_as_buyer, fake_rpc, ledger
):
    fake_rpc.confirmation_status = SolanaTransactionStatus.TIMEOUT
    await confirmer.submit(quote.swap.id, sign_as_buyer(quote.transaction_b64, buyer_keypair))

    fake_rpc.confirmation_status = SolanaTransactionStatus.CONFIRMED
    swap = await ledger.get(quote.swap.id)
    result = await confirmer.reconcile(swap)

    assert result.status == SwapStatus.COMPLETED
    assert (await ledger.get(quote.swap.id)).status == SwapStatus.COMPLETED


@pytest.mark.asyncio
async def test_reconcile_requires_submitted_swap(confirmer, quote, ledger):
    with pytest.raises(SwapStateError):
        await confirmer.reconcile(await ledger.get(quote.swap.id))
