"""Application configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(default="development")
    debug: bool = Field(default=True)
    log_json: bool = Field(default=False, description="Render log lines as JSON")

    # Server
    backend_port: int = Field(default=8060)

    # Address derivation service
    derivation_base_url: str = Field(
        default="http://localhost:3001",
        description="Base URL of the address derivation service"
    )
    derivation_api_key: Optional[str] = Field(default=None)
    derivation_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound for each derivation request during create/import"
    )
    derivation_connect_timeout_seconds: float = Field(default=10.0)
    derivation_max_retries: int = Field(
        default=0,
        description="Transport-level retries; create/import never retry on their own"
    )
    api_initial_backoff_seconds: float = Field(default=1.0)
    api_backoff_multiplier: float = Field(default=2.0)
    api_max_backoff_seconds: float = Field(default=10.0)
    bitcoin_network: str = Field(default="MAINNET")

    # Wallet type detection
    explorer_base_url: str = Field(
        default="https://mempool.space",
        description="Block explorer used to check address activity"
    )
    explorer_timeout_seconds: float = Field(default=5.0)
    detection_timeout_seconds: float = Field(default=60.0)
    detection_address_count: int = Field(default=5, ge=1, le=20)

    # Persistence
    storage_backend: Literal["redis", "file"] = Field(default="redis")
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )
    data_dir: Path = Field(default=Path("./data"))
    storage_prefix: str = Field(default="wallet_accounts")
    snapshot_key: str = Field(default="accounts")
    legacy_wallet_key: str = Field(
        default="wallet",
        description="Key of the pre-multi-account single wallet record"
    )

    # Seed vault
    seed_vault_key: Optional[str] = Field(
        default=None,
        description="Fernet key. When set, seeds are stored encrypted so repair works after a restart"
    )
    seed_vault_storage_key: str = Field(default="seeds")

    # Repair scheduling
    repair_on_startup: bool = Field(default=True)
    repair_startup_delay_seconds: float = Field(default=5.0)
    repair_after_create_delay_seconds: float = Field(default=2.0)

    # Import policy
    allow_duplicate_imports: bool = Field(
        default=True,
        description="Accept a mnemonic whose fingerprint matches an existing account"
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
