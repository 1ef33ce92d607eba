"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wallet_accounts import __version__
from wallet_accounts.api.v1 import router as api_router
from wallet_accounts.core.config import Settings, get_settings
from wallet_accounts.core.file_store import JsonFileStore
from wallet_accounts.core.logging import configure_logging
from wallet_accounts.core.redis import RedisStore, close_redis
from wallet_accounts.core.scheduler import schedule_repair, start_scheduler, stop_scheduler
from wallet_accounts.services.accounts import (
    AccountLifecycleManager,
    AccountStore,
    EncryptedSeedVault,
    PersistenceGateway,
    SeedVault,
    SessionSeedVault,
)
from wallet_accounts.services.derivation import AddressDerivationClient, WalletTypeDetector

logger = structlog.get_logger()


def build_storage(settings: Settings):
    """Key-value backend selected by ``storage_backend``."""
    if settings.storage_backend == "file":
        return JsonFileStore(settings.data_dir, prefix=settings.storage_prefix)
    return RedisStore(prefix=settings.storage_prefix)


def build_seed_vault(settings: Settings, storage) -> SeedVault:
    """Encrypted store-backed vault when a key is configured, else in-memory."""
    if settings.seed_vault_key:
        return EncryptedSeedVault(storage, settings.seed_vault_key, storage_key=settings.seed_vault_storage_key)
    return SessionSeedVault()


def build_account_manager(
    settings: Settings,
    storage,
    seed_vault: Optional[SeedVault] = None,
) -> AccountLifecycleManager:
    """Wire the lifecycle manager and its collaborators."""
    derivation_client = AddressDerivationClient(settings)
    manager: AccountLifecycleManager

    def request_repair() -> None:
        schedule_repair(
            manager.repair_missing_addresses,
            delay_seconds=settings.repair_after_create_delay_seconds,
        )

    manager = AccountLifecycleManager(
        store=AccountStore(),
        gateway=PersistenceGateway(
            storage,
            snapshot_key=settings.snapshot_key,
            legacy_key=settings.legacy_wallet_key,
        ),
        derivation_client=derivation_client,
        detector=WalletTypeDetector(derivation_client, settings),
        seed_vault=seed_vault or build_seed_vault(settings, storage),
        settings=settings,
        repair_scheduler=request_repair,
    )
    return manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(debug=settings.debug, json_logs=settings.log_json)

    # Startup
    logger.info("Starting Wallet Accounts API", version=__version__, storage=settings.storage_backend)

    storage = build_storage(settings)
    seed_vault = build_seed_vault(settings, storage)
    manager = build_account_manager(settings, storage, seed_vault)
    app.state.storage = storage
    app.state.account_manager = manager

    count = await manager.load()
    logger.info("Accounts loaded", count=count, incomplete=manager.has_incomplete_accounts)

    start_scheduler()
    if settings.repair_on_startup and manager.has_incomplete_accounts:
        if seed_vault.persistent:
            schedule_repair(manager.repair_missing_addresses, delay_seconds=settings.repair_startup_delay_seconds)
        else:
            # Session seeds do not survive a restart; repair runs after the next create or import
            logger.warning("Startup repair skipped: no seed vault key configured")

    yield

    # Shutdown
    logger.info("Shutting down...")
    stop_scheduler()
    if settings.storage_backend == "redis":
        await close_redis()
    logger.info("Cleanup complete")


# Create FastAPI app
app = FastAPI(
    title="Wallet Accounts API",
    description="Account lifecycle management for multi-address wallets",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3333",
        "http://127.0.0.1:3333",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Wallet Accounts API",
        "version": __version__,
        "docs": "/api/docs",
        "health": "/api/v1/health",
    }
