"""
Clawtar Configuration Management
Uses pydantic-settings for type-safe environment variable loading
"""

from pathlib import Path
from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceConfig(BaseSettings):
    """Configuration for the Clawtar payment-gated task service"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Configuration
    host: str = Field(default="127.0.0.1", description="Host to bind the server to")
    port: int = Field(default=3000, description="Port to bind the server to")

    # Pricing Configuration
    default_job_price_sats: int = Field(default=100, description="Quoted price for a queued task")
    fortune_price_sats: int = Field(default=42, description="Price of one pay-per-call fortune")

    # Timers
    worker_poll_seconds: float = Field(default=3.0, description="Interval of the poller and dispatcher timers")
    background_tasks_enabled: bool = Field(default=True)

    # Settlement Poller
    quote_refresh_min_age_seconds: float = Field(default=15.0, description="Staleness floor for quote checks")
    quote_refresh_batch_size: int = Field(default=2, description="Max quotes checked per tick")

    # Persistence
    data_dir: Path = Field(default=Path("data"))
    data_file: Optional[Path] = Field(default=None, description="Snapshot path, defaults to <data_dir>/state.json")

    # External Verifier
    payment_verifier_url: str = Field(default="")
    payment_verifier_token: str = Field(default="")
    verifier_timeout_seconds: float = Field(default=10.0)

    # Settlement Authority (Cashu mint)
    mint_base_url: str = Field(default="https://mint.minibits.cash/Bitcoin")
    mint_unit: str = Field(default="sat")
    mint_timeout_seconds: float = Field(default=10.0)

    # Wallet Redemption Process
    bun_bin: str = Field(default="bun")
    cocod_bin: str = Field(default="cocod")
    wallet_receive_timeout_seconds: float = Field(default=20.0)
    wallet_balance_timeout_seconds: float = Field(default=10.0)

    # Activity Notifications
    telegram_bot_token: str = Field(default="")
    telegram_chat_id: str = Field(default="")
    activity_notify_enabled: bool = Field(default=True)

    # Recent feed / receipts
    recent_max: int = Field(default=500, description="Cap of the recent-content ring")
    wallet_ledger_max: int = Field(default=500, description="Cap of retained wallet receipts")

    # Metrics
    metrics_token: str = Field(default="")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    # Development
    debug: bool = Field(default=False)
    reload: bool = Field(default=False)

    @field_validator("mint_base_url", "payment_verifier_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    @field_validator(
        "default_job_price_sats",
        "fortune_price_sats",
        "quote_refresh_batch_size",
        "recent_max",
        "wallet_ledger_max",
    )
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @property
    def snapshot_path(self) -> Path:
        return self.data_file or self.data_dir / "state.json"


# Singleton instance
_service_config: ServiceConfig | None = None


def get_service_config() -> ServiceConfig:
    """Get or create service configuration singleton"""
    global _service_config
    if _service_config is None:
        _service_config = ServiceConfig()
    return _service_config
