"""
Solana JSON-RPC client.

Thin async wrapper over the node's JSON-RPC API used by the OTC engine for
account lookups, blockhashes, submission and confirmation polling. Every
call has an explicit timeout; transport failures are retried, JSON-RPC
error objects are not (they carry the node's verdict).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..otc.errors import RpcError

logger = logging.getLogger(__name__)

# Throttling; 5xx are retried as well
_RETRYABLE_STATUS = frozenset({429})


class SolanaTransactionStatus(str, Enum):
    """Network verdict on a submitted transaction."""
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"


@dataclass
class ConfirmationResult:
    signature: str
    status: SolanaTransactionStatus
    slot: Optional[int] = None
    error: Optional[str] = None


@dataclass
class SolanaRpcConfig:
    """Configuration for Solana RPC connection."""
    rpc_url: str
    commitment: str = "confirmed"
    max_retries: int = 3
    timeout_s: float = 15.0


class SolanaRpcClient:
    """
    Async JSON-RPC client for a Solana node.

    Usage:
        rpc = SolanaRpcClient(SolanaRpcConfig(rpc_url="https://api.devnet.solana.com"))
        blockhash = await rpc.get_latest_blockhash()
        signature = await rpc.send_transaction(signed_tx_base64)
        result = await rpc.wait_for_confirmation(signature, timeout_s=30)
    """

    def __init__(self, config: SolanaRpcConfig, client: Optional[httpx.AsyncClient] = None):
        self._config = config
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "SolanaRpcClient":
        return cls(
            SolanaRpcConfig(
                rpc_url=settings.solana_rpc_url,
                commitment=settings.solana_commitment,
                max_retries=settings.rpc_max_retries,
                timeout_s=settings.rpc_timeout_seconds,
            )
        )

    @property
    def commitment(self) -> str:
        return self._config.commitment

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call and return its ``result`` member."""
        client = await self._get_client()

        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params,
        }

        for attempt in range(self._config.max_retries):
            try:
                response = await client.post(
                    self._config.rpc_url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code not in _RETRYABLE_STATUS and status_code < 500:
                    raise RpcError(f"HTTP error from RPC: {status_code}") from e
                if attempt == self._config.max_retries - 1:
                    raise RpcError(f"HTTP error from RPC: {status_code}") from e
                await asyncio.sleep(0.5 * (attempt + 1))
                continue
            except (httpx.TransportError, ValueError) as e:
                if attempt == self._config.max_retries - 1:
                    raise RpcError(f"RPC transport error: {e}") from e
                await asyncio.sleep(0.5 * (attempt + 1))
                continue

            if "error" in data:
                error = data["error"] or {}
                raise RpcError(
                    error.get("message", str(error)),
                    code=error.get("code"),
                    data=error.get("data"),
                )
            return data.get("result")

        raise RpcError("Max retries exceeded")

    async def get_account_info(self, address: str) -> Optional[Dict[str, Any]]:
        """Return the parsed account or None if it does not exist."""
        result = await self._rpc_call(
            "getAccountInfo",
            [address, {"encoding": "jsonParsed", "commitment": self._config.commitment}],
        )
        return (result or {}).get("value")

    async def get_token_accounts_by_owner(
        self,
        owner: str,
        *,
        mint: Optional[str] = None,
        program_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """List token accounts held by ``owner`` filtered by mint or program."""
        if mint:
            filter_option = {"mint": mint}
        elif program_id:
            filter_option = {"programId": program_id}
        else:
            raise ValueError("mint or program_id is required")

        result = await self._rpc_call(
            "getTokenAccountsByOwner",
            [owner, filter_option, {"encoding": "jsonParsed", "commitment": self._config.commitment}],
        )

        accounts = []
        for item in (result or {}).get("value", []):
            account = item.get("account", {})
            parsed = account.get("data", {}).get("parsed", {}) if isinstance(account.get("data"), dict) else {}
            info = parsed.get("info", {})
            token_amount = info.get("tokenAmount", {})
            accounts.append({
                "address": item.get("pubkey"),
                "program_id": account.get("owner"),
                "mint": info.get("mint"),
                "owner": info.get("owner"),
                "amount": int(token_amount.get("amount", 0)),
                "decimals": int(token_amount.get("decimals", 0)),
            })
        return accounts

    async def get_latest_blockhash(self) -> Dict[str, Any]:
        result = await self._rpc_call(
            "getLatestBlockhash",
            [{"commitment": self._config.commitment}],
        )
        value = (result or {}).get("value") or {}
        if not value.get("blockhash"):
            raise RpcError("Node returned no blockhash")
        return {
            "blockhash": value["blockhash"],
            "last_valid_block_height": value.get("lastValidBlockHeight"),
        }

    async def send_transaction(self, signed_transaction_b64: str, skip_preflight: bool = False) -> str:
        """Submit a fully signed transaction and return its signature.

        Raises ``RpcError`` if the node rejects it (preflight failure, bad
        signature, expired blockhash); nothing has executed in that case.
        """
        options = {
            "encoding": "base64",
            "skipPreflight": skip_preflight,
            "preflightCommitment": self._config.commitment,
            "maxRetries": self._config.max_retries,
        }
        signature = await self._rpc_call("sendTransaction", [signed_transaction_b64, options])
        if not signature:
            raise RpcError("No signature returned from sendTransaction")
        return signature

    async def get_signature_statuses(
        self,
        signatures: Sequence[str],
        search_history: bool = False,
    ) -> List[Optional[Dict[str, Any]]]:
        result = await self._rpc_call(
            "getSignatureStatuses",
            [list(signatures), {"searchTransactionHistory": search_history}],
        )
        return list((result or {}).get("value") or [None] * len(signatures))

    async def get_signature_status(self, signature: str, search_history: bool = False) -> ConfirmationResult:
        """Single status lookup; NOT_FOUND while the node has not seen it land."""
        statuses = await self.get_signature_statuses([signature], search_history=search_history)
        status = statuses[0] if statuses else None
        return _interpret_status(signature, status, self._config.commitment)

    async def wait_for_confirmation(
        self,
        signature: str,
        timeout_s: float = 30.0,
        poll_interval_s: float = 1.0,
    ) -> ConfirmationResult:
        """
        Poll until the transaction is confirmed or failed, or ``timeout_s`` passes.

        A timeout means "unknown": the transaction may still land.
        """
        start_time = time.monotonic()
        interval = poll_interval_s

        while (time.monotonic() - start_time) < timeout_s:
            try:
                result = await self.get_signature_status(signature)
            except RpcError as e:
                logger.warning(f"Status poll failed for {signature}: {e}")
                result = None

            if result is not None and result.status in (
                SolanaTransactionStatus.CONFIRMED,
                SolanaTransactionStatus.FAILED,
            ):
                return result

            await asyncio.sleep(interval)
            # Exponential backoff, max 5 seconds
            interval = min(interval * 1.5, 5.0)

        return ConfirmationResult(
            signature=signature,
            status=SolanaTransactionStatus.TIMEOUT,
            error="Transaction confirmation timed out",
        )


_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


def _interpret_status(
    signature: str,
    status: Optional[Dict[str, Any]],
    commitment: str,
) -> ConfirmationResult:
    if not status:
        return ConfirmationResult(signature=signature, status=SolanaTransactionStatus.NOT_FOUND)

    if status.get("err") is not None:
        return ConfirmationResult(
            signature=signature,
            status=SolanaTransactionStatus.FAILED,
            slot=status.get("slot"),
            error=str(status.get("err")),
        )

    reached = _COMMITMENT_RANK.get(status.get("confirmationStatus") or "processed", 0)
    required = _COMMITMENT_RANK.get(commitment, 1)
    if reached >= required:
        return ConfirmationResult(
            signature=signature,
            status=SolanaTransactionStatus.CONFIRMED,
            slot=status.get("slot"),
        )
    return ConfirmationResult(signature=signature, status=SolanaTransactionStatus.NOT_FOUND, slot=status.get("slot"))


__all__ = [
    "SolanaRpcClient",
    "SolanaRpcConfig",
    "SolanaTransactionStatus",
    "ConfirmationResult",
]
