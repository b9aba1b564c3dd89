"""
Tests for the Solana JSON-RPC client.
"""

import json

import httpx
import pytest

from otc_swap.core.execution.solana_rpc import (
    SolanaRpcClient,
    SolanaRpcConfig,
    SolanaTransactionStatus,
)
from otc_swap.core.otc.errors import RpcError


def make_client(handler, **config) -> SolanaRpcClient:
    transport = httpx.MockTransport(handler)
    return SolanaRpcClient(
        SolanaRpcConfig(rpc_url="https://rpc.test", **config),
        client=httpx.AsyncClient(transport=transport),
    )


def rpc_result(result):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})
    return handler


@pytest.mark.asyncio
async def test_latest_blockhash():
    client = make_client(rpc_result({"context": {"slot": 1}, "value": {"blockhash": "abc", "lastValidBlockHeight": 9}}))

    assert await client.get_latest_blockhash() == {"blockhash": "abc", "last_valid_block_height": 9}


@pytest.mark.asyncio
async def test_missing_account_is_none():
    client = make_client(rpc_result({"context": {"slot": 1}, "value": None}))
    assert await client.get_account_info("addr") is None


@pytest.mark.asyncio
async def test_send_transaction_passes_options():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "sig123"})

    client = make_client(handler)

    assert await client.send_transaction("AAAA") == "sig123"
    assert seen["method"] == "sendTransaction"
    assert seen["params"][0] == "AAAA"
    assert seen["params"][1]["encoding"] == "base64"
    assert seen["params"][1]["skipPreflight"] is False


@pytest.mark.asyncio
async def test_json_rpc_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32002, "message": "Blockhash not found"}},
        )

    client = make_client(handler, max_retries=3)

    with pytest.raises(RpcError) as exc_info:
        await client.send_transaction("AAAA")
    assert exc_info.value.code == -32002
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_http_errors_are_retried_then_raised():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    client = make_client(handler, max_retries=2)

    with pytest.raises(RpcError):
        await client.get_latest_blockhash()
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_throttling_is_retried():
    responses = [httpx.Response(429), httpx.Response(200, json={
        "jsonrpc": "2.0", "id": 1, "result": {"value": {"blockhash": "abc", "lastValidBlockHeight": 9}},
    })]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    client = make_client(handler, max_retries=2)

    assert (await client.get_latest_blockhash())["blockhash"] == "abc"
    assert responses == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [400, 401, 404])
async def test_client_errors_are_not_retried(status_code):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(status_code)

    client = make_client(handler, max_retries=3)

    with pytest.raises(RpcError, match=str(status_code)):
        await client.get_latest_blockhash()
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_token_accounts_by_owner_flattens_parsed_data():
    client = make_client(rpc_result({
        "context": {"slot": 1},
        "value": [{
            "pubkey": "acct1",
            "account": {
                "owner": "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb",
                "data": {"parsed": {"info": {
                    "mint": "mint1",
                    "owner": "owner1",
                    "tokenAmount": {"amount": "1500", "decimals": 2},
                }}},
            },
        }],
    }))

    accounts = await client.get_token_accounts_by_owner("owner1", mint="mint1")

    assert accounts == [{
        "address": "acct1",
        "program_id": "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb",
        "mint": "mint1",
        "owner": "owner1",
        "amount": 1500,
        "decimals": 2,
    }]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,expected",
    [
        (None, SolanaTransactionStatus.NOT_FOUND),
        ({"slot": 5, "err": None, "confirmationStatus": "processed"}, SolanaTransactionStatus.NOT_FOUND),
        ({"slot": 5, "err": None, "confirmationStatus": "confirmed"}, SolanaTransactionStatus.CONFIRMED),
        ({"slot": 5, "err": None, "confirmationStatus": "finalized"}, SolanaTransactionStatus.CONFIRMED),
        ({"slot": 5, "err": {"InstructionError": [1, "Custom"]}, "confirmationStatus": "confirmed"},
         SolanaTransactionStatus.FAILED),
    ],
)
async def test_signature_status_interpretation(status, expected):
    client = make_client(rpc_result({"context": {"slot": 5}, "value": [status]}))

    result = await client.get_signature_status("sig")

    assert result.status == expected


@pytest.mark.asyncio
async def test_wait_for_confirmation_times_out_as_unknown():
    client = make_client(rpc_result({"context": {"slot": 5}, "value": [None]}))

    result = await client.wait_for_confirmation("sig", timeout_s=0.05, poll_interval_s=0.01)

    assert result.status == SolanaTransactionStatus.TIMEOUT
