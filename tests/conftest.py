"""Shared fixtures: in-memory ledger, real keypairs and a fake Solana node."""

import base64
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from otc_swap.config import Settings
from otc_swap.core.execution.solana_rpc import ConfirmationResult, SolanaTransactionStatus
from otc_swap.core.otc.builder import SwapTransactionBuilder
from otc_swap.core.otc.constants import TokenProgram
from otc_swap.core.otc.instructions import derive_associated_token_address
from otc_swap.core.otc.pricing import BondingCurvePricer
from otc_swap.core.otc.rates import ExchangeRateSource
from otc_swap.core.otc.resolver import TokenAccountResolver
from otc_swap.core.otc.signer import TreasurySigner
from otc_swap.db.database import Database
from otc_swap.db.ledger import PlatformSettingsRepository, SwapLedger
from otc_swap.core.otc.rate_limiter import RateLimiter


def token_account(owner: str, mint: str, program: TokenProgram, amount_raw: int, decimals: int = 9) -> Dict[str, Any]:
    """Account value as returned by getAccountInfo with jsonParsed encoding."""
    return {
        "owner": str(program.program_id),
        "lamports": 2_039_280,
        "executable": False,
        "data": {
            "program": program.value,
            "parsed": {
                "type": "account",
                "info": {
                    "mint": mint,
                    "owner": owner,
                    "state": "initialized",
                    "tokenAmount": {
                        "amount": str(amount_raw),
                        "decimals": decimals,
                        "uiAmountString": str(amount_raw / 10 ** decimals),
                    },
                },
            },
        },
    }


class FakeSolanaRpc:
    """Stands in for SolanaRpcClient with accounts held in a dict."""

    commitment = "confirmed"

    def __init__(self):
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.extra_token_accounts: List[Dict[str, Any]] = []
        self.blockhash = str(Hash.new_unique())
        self.sent: List[str] = []
        self.send_error: Optional[Exception] = None
        self.confirmation_status = SolanaTransactionStatus.CONFIRMED
        self.confirmation_error: Optional[str] = None
        self.status_lookups: List[str] = []
        self.account_lookups: List[str] = []
        self.closed = False

    def add_holding(
        self,
        owner: Pubkey,
        mint: Pubkey,
        program: TokenProgram,
        amount: int,
        decimals: int = 9,
    ) -> Pubkey:
        address = derive_associated_token_address(owner, mint, program)
        self.accounts[str(address)] = token_account(str(owner), str(mint), program, amount * 10 ** decimals, decimals)
        return address

    async def get_account_info(self, address: str) -> Optional[Dict[str, Any]]:
        self.account_lookups.append(address)
        return self.accounts.get(address)

    async def get_token_accounts_by_owner(self, owner: str, *, mint=None, program_id=None) -> List[Dict[str, Any]]:
        return [a for a in self.extra_token_accounts if a["owner"] == owner and a["mint"] == mint]

    async def get_latest_blockhash(self) -> Dict[str, Any]:
        return {"blockhash": self.blockhash, "last_valid_block_height": 100}

    async def send_transaction(self, signed_transaction_b64: str, skip_preflight: bool = False) -> str:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(signed_transaction_b64)
        tx = Transaction.from_bytes(base64.b64decode(signed_transaction_b64))
        return str(tx.signatures[0])

    def _result(self, signature: str) -> ConfirmationResult:
        return ConfirmationResult(
            signature=signature,
            status=self.confirmation_status,
            slot=1,
            error=self.confirmation_error,
        )

    async def wait_for_confirmation(self, signature: str, timeout_s: float = 30.0, poll_interval_s: float = 1.0):
        return self._result(signature)

    async def get_signature_status(self, signature: str, search_history: bool = False):
        self.status_lookups.append(signature)
        return self._result(signature)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
async def database():
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def ledger(database) -> SwapLedger:
    return SwapLedger(database.session_factory)


@pytest.fixture
def settings_repo(database) -> PlatformSettingsRepository:
    return PlatformSettingsRepository(database.session_factory)


@pytest.fixture
def treasury_keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def buyer_keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def mint() -> Pubkey:
    return Pubkey.new_unique()


@pytest.fixture
def fake_rpc() -> FakeSolanaRpc:
    return FakeSolanaRpc()


@pytest.fixture
def otc_settings(treasury_keypair, mint) -> Settings:
    return Settings(
        token_mint=str(mint),
        token_symbol="GLITCH",
        treasury_wallet=str(treasury_keypair.pubkey()),
        treasury_private_key=str(list(bytes(treasury_keypair))),
        enable_coingecko=False,
        sol_price_fallback_usd="164",
        database_url="sqlite+aiosqlite:///:memory:",
        admin_api_key="",
    )


def _sign_as_buyer(transaction_b64: str, buyer: Keypair) -> str:
    tx = Transaction.from_bytes(base64.b64decode(transaction_b64))
    tx.partial_sign([buyer], tx.message.recent_blockhash)
    return base64.b64encode(bytes(tx)).decode("ascii")


@pytest.fixture
def sign_as_buyer():
    """Adds the buyer's signature to a treasury-signed quote, like a wallet would."""
    return _sign_as_buyer


@pytest.fixture
def treasury_signer(treasury_keypair) -> TreasurySigner:
    return TreasurySigner(treasury_keypair, treasury_keypair.pubkey())


@pytest.fixture
def make_builder(fake_rpc, ledger, settings_repo, treasury_signer, mint):
    """Builder wired to the fake node and in-memory ledger; keyword overrides replace parts."""

    def _make(**overrides) -> SwapTransactionBuilder:
        kwargs = dict(
            rpc=fake_rpc,
            resolver=TokenAccountResolver(fake_rpc, cached_owner=treasury_signer.address),
            signer=treasury_signer,
            pricer=BondingCurvePricer(10_000, Decimal("0.01"), Decimal("0.01")),
            rates=ExchangeRateSource(settings_repo, default_rate=Decimal("164")),
            ledger=ledger,
            rate_limiter=RateLimiter(limit=5, window_seconds=60),
            token_mint=str(mint),
        )
        kwargs.update(overrides)
        return SwapTransactionBuilder(**kwargs)

    return _make
