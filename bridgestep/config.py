import os

from pathlib import Path
from typing import Any, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Ensure we pick up legacy environment variable aliases."""

        super().model_post_init(__context)

        if not self.transfer_api_key:
            fallback = os.getenv("LIFI_API_KEY")
            if fallback:
                object.__setattr__(self, "transfer_api_key", fallback)

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="auto", description="Log output: json, console or auto")

    # Transfer API
    transfer_api_base_url: str = Field(
        default="https://li.quest/v1",
        description="Base URL of the transfer quoting/status API",
    )
    transfer_api_key: str = Field(
        default="",
        description="Optional API key sent with transfer API requests",
        validation_alias=AliasChoices("transfer_api_key", "TRANSFER_API_KEY"),
    )
    request_timeout_seconds: int = Field(default=30, description="Request timeout")

    # Settlement polling
    status_poll_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Delay between settlement status probes",
    )
    status_poll_max_duration_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Give up waiting for settlement after this many seconds (unbounded when unset)",
    )

    # Chain directory
    chain_cache_ttl_seconds: int = Field(
        default=3600,
        description="TTL for chain metadata fetched from the transfer API",
    )

    # Execution defaults
    infinite_approval: bool = Field(
        default=False,
        description="Request unlimited token approvals instead of exact amounts",
    )

    @property
    def has_transfer_api_key(self) -> bool:
        return bool(self.transfer_api_key)


# Global settings instance
settings = Settings()
