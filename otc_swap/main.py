import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import health, otc
from .config import settings
from .core.otc.errors import OtcSwapError
from .core.otc.service import OtcSwapService
from .db.database import get_database
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware
from .providers.coingecko import CoingeckoProvider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Open the database and build the swap service once per process."""
    setup_logging()

    database = get_database()
    if settings.auto_create_tables:
        await database.create_all()

    price_provider = CoingeckoProvider() if settings.enable_coingecko else None
    service = OtcSwapService.from_settings(settings, database, price_provider=price_provider)
    app.state.database = database
    app.state.otc_service = service
    logger.info(
        f"OTC swap service started (enabled={service.enabled}, rpc={settings.solana_rpc_url}, "
        f"mint={settings.token_mint or 'unset'})"
    )

    try:
        yield
    finally:
        await service.close()
        await database.dispose()
        logger.info("OTC swap service stopped")


# Create FastAPI app
app = FastAPI(
    title="OTC Swap API",
    description="Over-the-counter SOL -> platform token swaps priced on a bonding curve",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(OtcSwapError, otc.otc_error_handler)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(otc.router, tags=["OTC"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "OTC Swap API",
        "version": __version__,
        "docs": "/docs",
        "health": "/healthz",
        "config": "/otc/config",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "otc_swap.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )
