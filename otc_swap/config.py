from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Normalize values that are commonly pasted with stray whitespace."""

        super().model_post_init(__context)

        object.__setattr__(self, "treasury_wallet", self.treasury_wallet.strip())
        object.__setattr__(self, "token_mint", self.token_mint.strip())

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Solana RPC
    solana_rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com",
        description="JSON-RPC endpoint used for account lookups and submission",
        validation_alias=AliasChoices("solana_rpc_url", "SOLANA_RPC_URL", "NEXT_PUBLIC_SOLANA_RPC_URL"),
    )
    solana_commitment: str = Field(default="confirmed", description="Commitment level for reads and confirmation")
    rpc_timeout_seconds: float = Field(default=15.0, gt=0, description="Timeout for a single RPC call")
    rpc_max_retries: int = Field(default=3, ge=1, description="Transport-level retries per RPC call")
    confirmation_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How long submit waits for confirmation before reporting the swap as submitted",
    )
    confirmation_poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Initial poll interval while waiting for confirmation",
    )

    # Platform token
    token_mint: str = Field(
        default="",
        description="Mint address of the platform token sold over the counter",
        validation_alias=AliasChoices("token_mint", "TOKEN_MINT", "NEXT_PUBLIC_GLITCH_TOKEN_MINT"),
    )
    token_symbol: str = Field(default="GLITCH", description="Display symbol of the platform token")

    # Treasury
    treasury_wallet: str = Field(
        default="",
        description="Expected public address of the treasury signer",
        validation_alias=AliasChoices("treasury_wallet", "TREASURY_WALLET", "NEXT_PUBLIC_TREASURY_WALLET"),
    )
    treasury_private_key: SecretStr = Field(
        default=SecretStr(""),
        description="Treasury secret key as a JSON byte array or base58 string",
    )

    # Bonding curve
    curve_tier_size: int = Field(default=10_000, gt=0, description="Units sold per price tier")
    curve_base_price_usd: Decimal = Field(default=Decimal("0.01"), gt=0, description="Unit price of tier 0 in USD")
    curve_increment_usd: Decimal = Field(default=Decimal("0.01"), ge=0, description="Price step per tier in USD")
    settlement_decimals: int = Field(default=9, ge=0, description="Decimals of the settlement currency (SOL lamports)")

    # Swap limits
    min_purchase: int = Field(default=100, gt=0, description="Minimum tokens per swap")
    max_purchase: int = Field(default=1_000_000, gt=0, description="Maximum tokens per swap")
    min_settlement_lamports: int = Field(default=1_000, ge=0, description="Smallest payment accepted for a swap")
    swap_rate_limit: int = Field(default=5, ge=1, description="Swap quotes allowed per wallet per window")
    swap_rate_window_seconds: int = Field(default=60, ge=1, description="Rate limit window length")
    quote_ttl_seconds: int = Field(default=120, ge=10, description="Validity window of a quoted transaction")

    # Price feed
    coingecko_api_key: str = Field(default="", description="Coingecko API key")
    enable_coingecko: bool = Field(default=True, description="Enable live SOL/USD price lookups")
    price_feed_timeout_seconds: float = Field(default=5.0, gt=0, description="Timeout for the price feed")
    sol_price_fallback_usd: Decimal = Field(
        default=Decimal("164"),
        description="SOL/USD rate used when neither the feed nor a stored rate is available",
    )

    # Storage
    database_url: str = Field(
        default="sqlite+aiosqlite:///./otc_swap.db",
        description="SQLAlchemy async database URL",
    )
    auto_create_tables: bool = Field(default=True, description="Create tables on startup")

    # Admin
    admin_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Shared secret for operator endpoints (empty disables them)",
    )

    @property
    def admin_enabled(self) -> bool:
        return bool(self.admin_api_key.get_secret_value())


# Global settings instance
settings = Settings()
