"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from wallet_accounts import __version__
from wallet_accounts.core.scheduler import get_scheduler_status
from wallet_accounts.schemas.common import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Check health of storage and the derivation service."""
    now = datetime.now(timezone.utc)
    manager = request.app.state.account_manager

    # Check storage backend
    try:
        if await request.app.state.storage.ping():
            storage_status = "healthy"
        else:
            storage_status = "unhealthy"
    except Exception as e:
        storage_status = f"unhealthy: {str(e)[:50]}"

    # Check derivation service
    try:
        if await manager.derivation_client.health_check():
            api_status = "healthy"
        else:
            api_status = "unhealthy"
    except Exception as e:
        api_status = f"unhealthy: {str(e)[:50]}"

    all_healthy = storage_status == "healthy" and api_status == "healthy"
    accounts = manager.list_accounts()

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        timestamp=now,
        version=__version__,
        storage=storage_status,
        derivation_api=api_status,
        accounts=len(accounts),
        incomplete_accounts=sum(1 for a in accounts if not a.is_complete),
        last_saved=manager.gateway.last_saved,
        scheduler=get_scheduler_status(),
    )
