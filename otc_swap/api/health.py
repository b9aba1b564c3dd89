import logging
from typing import Any, Dict

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..core.otc.errors import RpcError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/healthz")
async def health_check(request: Request) -> Dict[str, Any]:
    """Health check endpoint that verifies RPC, database and signer status"""

    service = getattr(request.app.state, "otc_service", None)
    database = getattr(request.app.state, "database", None)
    components: Dict[str, Dict[str, Any]] = {}

    if service is None:
        components["rpc"] = {"status": "unavailable", "reason": "Service not initialized"}
        components["signer"] = {"status": "unavailable", "reason": "Service not initialized"}
    else:
        try:
            await service.rpc.get_latest_blockhash()
            components["rpc"] = {"status": "healthy"}
        except RpcError as e:
            components["rpc"] = {"status": "error", "reason": e.message}

        if service.enabled:
            components["signer"] = {"status": "healthy", "treasury_wallet": service.signer.address}
        else:
            components["signer"] = {"status": "unavailable", "reason": service.disabled_reason}

    if database is None:
        components["database"] = {"status": "unavailable", "reason": "Database not initialized"}
    else:
        try:
            async with database.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            components["database"] = {"status": "healthy"}
        except SQLAlchemyError as e:
            logger.warning(f"Database health check failed: {e}")
            components["database"] = {"status": "error", "reason": str(e)}

    all_healthy = all(component["status"] == "healthy" for component in components.values())
    return {
        "status": "healthy" if all_healthy else "degraded",
        "components": components,
    }
