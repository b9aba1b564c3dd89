"""
Solana Execution Layer

Async JSON-RPC access to a Solana node: account lookups, blockhashes,
submission and confirmation polling.

Usage:
    from otc_swap.core.execution import SolanaRpcClient, SolanaRpcConfig

    rpc = SolanaRpcClient(SolanaRpcConfig(rpc_url="https://api.devnet.solana.com"))
    signature = await rpc.send_transaction(signed_tx_base64)
    result = await rpc.wait_for_confirmation(signature)
"""

from .solana_rpc import (
    ConfirmationResult,
    SolanaRpcClient,
    SolanaRpcConfig,
    SolanaTransactionStatus,
)

__all__ = [
    "ConfirmationResult",
    "SolanaRpcClient",
    "SolanaRpcConfig",
    "SolanaTransactionStatus",
]
