"""Pydantic schemas for API request/response models."""

from wallet_accounts.schemas.common import (
    HealthResponse,
    SchedulerLastRepair,
    SchedulerStatus,
)
from wallet_accounts.schemas.account import (
    AccountCreate,
    AccountImport,
    AccountListResponse,
    AccountResponse,
    AccountUpdate,
    DetectionResponse,
    DetectRequest,
    RepairResponse,
    TaprootVariantSchema,
)

__all__ = [
    "HealthResponse",
    "SchedulerLastRepair",
    "SchedulerStatus",
    "AccountCreate",
    "AccountImport",
    "AccountListResponse",
    "AccountResponse",
    "AccountUpdate",
    "DetectionResponse",
    "DetectRequest",
    "RepairResponse",
    "TaprootVariantSchema",
]
