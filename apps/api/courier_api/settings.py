"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database (orphan tracking table)
    database_url: Optional[str] = None
    postgres_user: str = "courier"
    postgres_password: str = "courier_dev_password"
    postgres_db: str = "courier"
    postgres_port: int = 5432

    # Redis (Celery broker, sweep lock)
    redis_url: str = "redis://localhost:6379/0"

    # Object storage
    storage_provider: str = "minio"  # minio, memory
    minio_endpoint: str = "localhost:9000"
    minio_access_key: Optional[str] = None  # Required in non-dev
    minio_secret_key: Optional[str] = None  # Required in non-dev
    minio_bucket: str = "courier-threads"
    minio_use_ssl: bool = False

    # Ledger
    ledger_provider: str = "contract"  # contract, static
    rpc_url: Optional[str] = None
    message_contract_address: Optional[str] = None
    ledger_timeout_seconds: int = 10

    # Append validation
    verify_signatures: bool = True
    verify_entry_hash: bool = True

    # Cleanup sweeper
    cleanup_enabled: bool = True
    cleanup_interval_minutes: int = 5
    cleanup_grace_window_minutes: int = 15
    cleanup_dry_run: bool = False
    cleanup_startup_delay_seconds: int = 10
    # Redis lock shared by the API scheduler and Celery beat
    cleanup_shared_lock: bool = True
    # Lock expiry bounds a crashed worker's hold on the sweep
    cleanup_lock_timeout_seconds: int = 25 * 60
    # Allowed clock skew for signed manual unpin requests
    unpin_max_skew_seconds: int = 5 * 60

    environment: str = "development"

    # Logging
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = False
    cors_allow_methods: list[str] = ["GET", "POST", "OPTIONS"]
    cors_allow_headers: list[str] = ["Content-Type"]

    @field_validator(
        "cleanup_interval_minutes",
        "cleanup_grace_window_minutes",
        "ledger_timeout_seconds",
        "unpin_max_skew_seconds",
    )
    @classmethod
    def _must_be_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive number")
        return value

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@localhost:{self.postgres_port}/{self.postgres_db}"
        )

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if self.storage_provider == "memory":
                raise ValueError(
                    "STORAGE_PROVIDER=memory is not allowed in production. "
                    "Use STORAGE_PROVIDER=minio."
                )
            if not self.minio_access_key or not self.minio_secret_key:
                raise ValueError(
                    "MINIO_ACCESS_KEY and MINIO_SECRET_KEY are required in production. "
                    "Do not use default credentials."
                )
            if self.ledger_provider == "static":
                raise ValueError(
                    "LEDGER_PROVIDER=static is not allowed in production. "
                    "Use LEDGER_PROVIDER=contract."
                )
        if self.ledger_provider == "contract":
            if not self.rpc_url:
                raise ValueError("RPC_URL required for LEDGER_PROVIDER=contract")
            if not self.message_contract_address:
                raise ValueError(
                    "MESSAGE_CONTRACT_ADDRESS required for LEDGER_PROVIDER=contract"
                )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
