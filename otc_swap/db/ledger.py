"""
Swap Ledger Repository
Durable record of every swap's lifecycle and the source of truth for curve volume
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.otc.constants import TokenProgram
from ..core.otc.errors import InvalidTransitionError
from ..core.otc.models import ALLOWED_TRANSITIONS, Swap, SwapStats, SwapStatus, utcnow
from .models import OtcSwapModel, PlatformSettingModel, TradeHistoryModel

logger = logging.getLogger(__name__)

_LAMPORTS = Decimal(1_000_000_000)

# Columns a transition may set besides status
_TRANSITION_FIELDS = {"tx_signature", "completed_at"}


def _to_swap(model: OtcSwapModel) -> Swap:
    return Swap(
        id=model.id,
        buyer_address=model.buyer_wallet,
        token_amount=int(model.token_amount),
        settlement_amount=model.sol_cost,
        settlement_lamports=int(model.sol_cost_lamports),
        unit_price=model.price_per_token,
        unit_price_usd=model.price_per_token_usd,
        tier=int(model.tier),
        blockhash=model.blockhash,
        status=SwapStatus(model.status),
        token_program=TokenProgram(model.token_program) if model.token_program else None,
        tx_signature=model.tx_signature,
        created_at=model.created_at,
        completed_at=model.completed_at,
    )


class SwapLedger:
    """Repository for OTC swaps.

    Status changes are conditional updates on the stored status, so a
    retried or duplicated confirmation finds nothing to update and becomes
    a no-op instead of applying twice.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, swap: Swap) -> Swap:
        model = OtcSwapModel(
            id=swap.id,
            buyer_wallet=swap.buyer_address,
            token_amount=swap.token_amount,
            sol_cost=swap.settlement_amount,
            sol_cost_lamports=swap.settlement_lamports,
            price_per_token=swap.unit_price,
            price_per_token_usd=swap.unit_price_usd,
            tier=swap.tier,
            blockhash=swap.blockhash,
            token_program=swap.token_program.value if swap.token_program else None,
            status=swap.status.value,
            tx_signature=swap.tx_signature,
            created_at=swap.created_at,
            completed_at=swap.completed_at,
        )
        async with self._session_factory() as session:
            async with session.begin():
                session.add(model)
        logger.info(
            f"Recorded {swap.status.value} swap {swap.id}: {swap.token_amount} tokens "
            f"for {swap.settlement_amount} SOL ({swap.buyer_address})"
        )
        return swap

    async def get(self, swap_id: str) -> Optional[Swap]:
        async with self._session_factory() as session:
            model = await session.get(OtcSwapModel, swap_id)
            return _to_swap(model) if model else None

    async def transition(
        self,
        swap_id: str,
        from_status: SwapStatus,
        to_status: SwapStatus,
        **fields: Any,
    ) -> bool:
        """Move ``swap_id`` from ``from_status`` to ``to_status``.

        Returns False, changing nothing, when the stored status is no longer
        ``from_status``. Raises ``InvalidTransitionError`` for transitions the
        lifecycle never allows.
        """
        async with self._session_factory() as session:
            async with session.begin():
                return await self._apply_transition(session, swap_id, from_status, to_status, fields)

    async def complete(
        self,
        swap_id: str,
        tx_signature: str,
        *,
        base_token: str,
        quote_token: str,
    ) -> bool:
        """submitted -> completed plus a trade-history entry, in one database transaction."""
        async with self._session_factory() as session:
            async with session.begin():
                applied = await self._apply_transition(
                    session,
                    swap_id,
                    SwapStatus.SUBMITTED,
                    SwapStatus.COMPLETED,
                    {"tx_signature": tx_signature, "completed_at": utcnow()},
                )
                if not applied:
                    return False

                model = await session.get(OtcSwapModel, swap_id)
                session.add(
                    TradeHistoryModel(
                        id=str(uuid.uuid4()),
                        source_swap_id=swap_id,
                        wallet_address=model.buyer_wallet,
                        order_type="buy",
                        amount=model.token_amount,
                        price_per_coin=model.price_per_token,
                        total_sol=model.sol_cost,
                        trading_pair=f"{base_token}_{quote_token}",
                        base_token=base_token,
                        quote_token=quote_token,
                        status="filled",
                        tx_signature=tx_signature,
                    )
                )
        return True

    async def _apply_transition(
        self,
        session: AsyncSession,
        swap_id: str,
        from_status: SwapStatus,
        to_status: SwapStatus,
        fields: Dict[str, Any],
    ) -> bool:
        from_status = SwapStatus(from_status)
        to_status = SwapStatus(to_status)
        if to_status not in ALLOWED_TRANSITIONS[from_status]:
            raise InvalidTransitionError(from_status.value, to_status.value)

        unknown = set(fields) - _TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Transition cannot set {sorted(unknown)}")

        result = await session.execute(
            update(OtcSwapModel)
            .where(OtcSwapModel.id == swap_id, OtcSwapModel.status == from_status.value)
            .values(status=to_status.value, **fields)
        )
        applied = result.rowcount == 1
        if applied:
            logger.info(f"Swap {swap_id}: {from_status.value} -> {to_status.value}")
        else:
            logger.info(f"Swap {swap_id}: skipped {from_status.value} -> {to_status.value}, status already moved")
        return applied

    async def cumulative_completed_volume(self) -> int:
        """Tokens delivered by completed swaps. Recomputed on every call, never cached."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.coalesce(func.sum(OtcSwapModel.token_amount), 0))
                .where(OtcSwapModel.status == SwapStatus.COMPLETED.value)
            )
            return int(result.scalar() or 0)

    async def stats(self) -> SwapStats:
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    func.count(OtcSwapModel.id),
                    func.coalesce(func.sum(OtcSwapModel.token_amount), 0),
                    func.coalesce(func.sum(OtcSwapModel.sol_cost_lamports), 0),
                ).where(OtcSwapModel.status == SwapStatus.COMPLETED.value)
            )
            count, tokens, lamports = result.one()
        return SwapStats(
            total_swaps=int(count or 0),
            total_tokens_sold=int(tokens or 0),
            total_sol_received=Decimal(int(lamports or 0)) / _LAMPORTS,
        )

    async def history_for(
        self,
        buyer_address: str,
        statuses: Iterable[SwapStatus] = (SwapStatus.COMPLETED, SwapStatus.SUBMITTED),
        limit: int = 50,
    ) -> List[Swap]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OtcSwapModel)
                .where(
                    OtcSwapModel.buyer_wallet == buyer_address,
                    OtcSwapModel.status.in_([SwapStatus(s).value for s in statuses]),
                )
                .order_by(OtcSwapModel.created_at.desc())
                .limit(limit)
            )
            return [_to_swap(model) for model in result.scalars().all()]

    async def list_by_status(
        self,
        status: SwapStatus,
        *,
        created_before: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Swap]:
        query = select(OtcSwapModel).where(OtcSwapModel.status == SwapStatus(status).value)
        if created_before is not None:
            query = query.where(OtcSwapModel.created_at < created_before)
        query = query.order_by(OtcSwapModel.created_at.asc()).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_to_swap(model) for model in result.scalars().all()]

    async def delete_stale_pending(self, created_before: datetime) -> int:
        """Delete pending swaps whose blockhash can no longer be valid."""
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(OtcSwapModel).where(
                        OtcSwapModel.status == SwapStatus.PENDING.value,
                        OtcSwapModel.created_at < created_before,
                    )
                )
        removed = int(result.rowcount or 0)
        if removed:
            logger.info(f"Deleted {removed} stale pending swaps created before {created_before.isoformat()}")
        return removed


class PlatformSettingsRepository:
    """Key/value platform settings."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, key: str) -> Optional[str]:
        async with self._session_factory() as session:
            model = await session.get(PlatformSettingModel, key)
            return model.value if model else None

    async def set(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                model = await session.get(PlatformSettingModel, key)
                if model is None:
                    session.add(PlatformSettingModel(key=key, value=value))
                else:
                    model.value = value
                    model.updated_at = utcnow()


__all__ = ["SwapLedger", "PlatformSettingsRepository"]
