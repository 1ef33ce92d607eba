"""API v1 router."""

from fastapi import APIRouter

from wallet_accounts.api.v1 import accounts, health

router = APIRouter(prefix="/api/v1")

router.include_router(health.router, tags=["Health"])
router.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
