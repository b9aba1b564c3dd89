"""
Database Models (SQLAlchemy ORM)
Swap ledger, unified trade history and platform settings
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.types import TypeDecorator

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DecimalString(TypeDecorator):
    """Exact decimals stored as text so SQLite does not round through float."""

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return format(Decimal(value), "f")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class OtcSwapModel(Base):
    """One OTC swap. Amounts and price are written once at quote time."""
    __tablename__ = "otc_swaps"

    id = Column(String(36), primary_key=True)
    buyer_wallet = Column(String(64), nullable=False, index=True)
    token_amount = Column(BigInteger, nullable=False)
    sol_cost = Column(DecimalString, nullable=False)
    sol_cost_lamports = Column(BigInteger, nullable=False)
    price_per_token = Column(DecimalString, nullable=False)
    price_per_token_usd = Column(DecimalString, nullable=False)
    tier = Column(Integer, nullable=False)
    blockhash = Column(String(64), nullable=False)
    token_program = Column(String(32), nullable=True)
    status = Column(String(16), nullable=False, default="pending")
    tx_signature = Column(String(128), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)
    completed_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("ix_otc_swaps_status_created", "status", "created_at"),
    )


class TradeHistoryModel(Base):
    """Unified trade history used by reporting; one row per completed swap."""
    __tablename__ = "trade_history"

    id = Column(String(36), primary_key=True)
    source_swap_id = Column(String(36), nullable=False, unique=True)
    wallet_address = Column(String(64), nullable=False, index=True)
    order_type = Column(String(8), nullable=False)
    amount = Column(BigInteger, nullable=False)
    price_per_coin = Column(DecimalString, nullable=False)
    total_sol = Column(DecimalString, nullable=False)
    trading_pair = Column(String(32), nullable=False)
    base_token = Column(String(16), nullable=False)
    quote_token = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False)
    tx_signature = Column(String(128), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)


class PlatformSettingModel(Base):
    """Key/value platform settings (e.g. stored SOL/USD fallback rate)."""
    __tablename__ = "platform_settings"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow)
