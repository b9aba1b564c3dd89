"""
Submission and confirmation of buyer-signed swap transactions.

    pending --submit--> submitted --ok--> completed
                                  --err--> failed
                                  --timeout--> submitted (unknown, reconciled later)

A transaction the network refuses before executing it (a JSON-RPC error
object) leaves the swap pending so the buyer can retry with a fresh quote.
A send that gets no answer, like a confirmation timeout, is never reported
as a failure: the transaction may still land, so the swap is tracked as
submitted under its own signature.
"""

from __future__ import annotations

import logging
from typing import Optional

from solders.signature import Signature
from solders.transaction import Transaction

from ...db.ledger import SwapLedger
from ...services.signatures import verify_solana_signature
from ..execution.solana_rpc import ConfirmationResult, SolanaRpcClient, SolanaTransactionStatus
from .builder import decode_transaction
from .constants import SETTLEMENT_SYMBOL
from .errors import (
    RpcError,
    SubmissionRejectedError,
    SwapNotFoundError,
    SwapStateError,
    TreasuryConfigError,
)
from .models import SubmissionResult, Swap, SwapStatus
from .signer import TreasurySigner

logger = logging.getLogger(__name__)


class SubmissionConfirmer:
    def __init__(
        self,
        *,
        rpc: SolanaRpcClient,
        ledger: SwapLedger,
        signer: Optional[TreasurySigner],
        token_symbol: str = "GLITCH",
        confirmation_timeout_s: float = 30.0,
        poll_interval_s: float = 1.0,
    ):
        self._rpc = rpc
        self._ledger = ledger
        self._signer = signer
        self._symbol = token_symbol
        self._timeout_s = confirmation_timeout_s
        self._poll_interval_s = poll_interval_s

    async def submit(self, swap_id: str, signed_transaction_b64: str) -> SubmissionResult:
        swap = await self._ledger.get(swap_id)
        if swap is None:
            raise SwapNotFoundError(swap_id)

        if swap.status == SwapStatus.COMPLETED:
            return SubmissionResult(swap.id, swap.tx_signature or "", True, SwapStatus.COMPLETED)
        if swap.status == SwapStatus.FAILED:
            raise SwapStateError(
                "Swap already failed. Request a new quote.",
                details={"swap_id": swap.id, "status": swap.status.value},
            )
        if swap.status == SwapStatus.SUBMITTED:
            # Retried submit: report the network's view instead of sending twice
            logger.info(f"Swap {swap.id} already submitted, re-checking {swap.tx_signature}")
            result = await self._rpc.get_signature_status(swap.tx_signature, search_history=True)
            return await self._apply_outcome(swap, swap.tx_signature, result)

        if self._signer is None:
            raise TreasuryConfigError("Treasury key not configured", details={"setup_needed": True})
        transaction = self.verify_integrity(swap, signed_transaction_b64)
        # The fee payer's signature is the transaction id, known before sending
        signature = str(transaction.signatures[0])

        try:
            await self._rpc.send_transaction(signed_transaction_b64)
        except RpcError as e:
            if e.code is not None:
                logger.warning(f"Swap {swap.id} rejected by the network before execution: {e}")
                raise SubmissionRejectedError(
                    f"Transaction rejected: {e.message}",
                    details={"swap_id": swap.id, **e.details},
                ) from e
            # No verdict from the node: the transaction may have been accepted
            logger.warning(f"Swap {swap.id} send outcome unknown ({e.message}); tracking {signature}")

        moved = await self._ledger.transition(
            swap.id, SwapStatus.PENDING, SwapStatus.SUBMITTED, tx_signature=signature
        )
        if not moved:
            # A concurrent submit won the race; its signature is the one on record
            current = await self._ledger.get(swap.id)
            logger.warning(f"Swap {swap.id} was submitted concurrently, now {current.status.value}")
            return SubmissionResult(
                swap.id,
                current.tx_signature or signature,
                current.status == SwapStatus.COMPLETED,
                current.status,
            )

        logger.info(f"Swap {swap.id} submitted: {signature}")
        result = await self._rpc.wait_for_confirmation(
            signature,
            timeout_s=self._timeout_s,
            poll_interval_s=self._poll_interval_s,
        )
        return await self._apply_outcome(swap, signature, result)

    async def reconcile(self, swap: Swap) -> SubmissionResult:
        """Re-query the network for a submitted swap and settle it if the outcome is known."""
        if swap.status != SwapStatus.SUBMITTED or not swap.tx_signature:
            raise SwapStateError(
                f"Only submitted swaps can be reconciled, {swap.id} is {swap.status.value}",
                details={"swap_id": swap.id, "status": swap.status.value},
            )
        result = await self._rpc.get_signature_status(swap.tx_signature, search_history=True)
        return await self._apply_outcome(swap, swap.tx_signature, result)

    def verify_integrity(self, swap: Swap, signed_transaction_b64: str) -> Transaction:
        """Check that the returned transaction is the one quoted for ``swap``.

        The treasury signature covers the whole message, so if it verifies
        the instructions, amounts and blockhash are exactly what was quoted.
        """
        transaction = decode_transaction(signed_transaction_b64)
        if transaction is None:
            raise _rejected(swap, "Signed transaction could not be decoded")

        message = transaction.message
        if str(message.recent_blockhash) != swap.blockhash:
            raise _rejected(swap, "Transaction does not belong to this swap")

        keys = list(message.account_keys)
        signer_count = message.header.num_required_signatures
        if not keys or str(keys[0]) != swap.buyer_address:
            raise _rejected(swap, "Fee payer must be the buyer wallet")

        signatures = list(transaction.signatures)
        message_bytes = bytes(message)

        treasury = self._signer.public_identity()
        try:
            treasury_index = keys.index(treasury)
        except ValueError:
            treasury_index = -1
        if treasury_index < 0 or treasury_index >= signer_count:
            raise _rejected(swap, "Treasury is not a signer of this transaction")
        try:
            verify_solana_signature(message_bytes, bytes(signatures[treasury_index]), str(treasury))
        except ValueError:
            raise _rejected(swap, "Treasury signature is invalid; the transaction was modified")

        if signatures[0] == Signature.default():
            raise _rejected(swap, "Transaction is missing the buyer signature")
        try:
            verify_solana_signature(message_bytes, bytes(signatures[0]), swap.buyer_address)
        except ValueError:
            raise _rejected(swap, "Buyer signature is invalid")

        return transaction

    async def _apply_outcome(
        self,
        swap: Swap,
        signature: str,
        result: ConfirmationResult,
    ) -> SubmissionResult:
        if result.status == SolanaTransactionStatus.CONFIRMED:
            applied = await self._ledger.complete(
                swap.id,
                signature,
                base_token=self._symbol,
                quote_token=SETTLEMENT_SYMBOL,
            )
            if applied:
                logger.info(
                    f"Swap {swap.id} completed: {swap.token_amount} {self._symbol} to {swap.buyer_address}"
                )
            return await self._current_result(swap.id, signature)

        if result.status == SolanaTransactionStatus.FAILED:
            applied = await self._ledger.transition(swap.id, SwapStatus.SUBMITTED, SwapStatus.FAILED)
            if applied:
                logger.warning(f"Swap {swap.id} failed on-chain: {result.error}")
            return await self._current_result(swap.id, signature, error=result.error)

        # TIMEOUT / NOT_FOUND: outcome unknown, keep it submitted
        logger.warning(f"Swap {swap.id} unconfirmed ({result.status.value}); left submitted for reconciliation")
        return SubmissionResult(swap.id, signature, False, SwapStatus.SUBMITTED)

    async def _current_result(
        self,
        swap_id: str,
        signature: str,
        error: Optional[str] = None,
    ) -> SubmissionResult:
        current = await self._ledger.get(swap_id)
        status = current.status if current else SwapStatus.SUBMITTED
        return SubmissionResult(
            swap_id,
            signature,
            status == SwapStatus.COMPLETED,
            status,
            error=error if status == SwapStatus.FAILED else None,
        )


def _rejected(swap: Swap, message: str) -> SubmissionRejectedError:
    logger.warning(f"Swap {swap.id} submission rejected: {message}")
    return SubmissionRejectedError(message, details={"swap_id": swap.id})


__all__ = ["SubmissionConfirmer"]
