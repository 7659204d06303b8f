from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ErrorPolicy(str, Enum):
    """How the tracker reacts when one of several clips reports an error."""

    ABORT_ON_FIRST_ERROR = "abort_on_first_error"
    WAIT_FOR_ALL = "wait_for_all"


class Settings(BaseSettings):
    """Runtime configuration for the Sur Sangam composition worker."""

    model_config = SettingsConfigDict(
        env_prefix="SURSANGAM_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    provider_base_url: str = Field(
        default="https://apibox.erweima.ai",
        description="Base URL of the Suno-compatible generation API.",
    )
    provider_api_key_env: str = Field(
        default="SUNO_API_KEY",
        min_length=1,
        description="Environment variable holding the provider credential.",
    )
    provider_model: str = Field(default="v3", max_length=32)
    provider_instrumental: bool = False
    provider_callback_url: str = Field(
        default="https://example.com/suno-webhook",
        description="Callback URL the provider requires; results are polled, not pushed.",
    )
    request_timeout_seconds: float = Field(default=30.0, gt=0.0, le=300.0)
    download_timeout_seconds: float = Field(default=120.0, gt=0.0, le=900.0)
    poll_interval_ms: int = Field(
        default=5_000,
        ge=0,
        le=120_000,
        description="Delay before each status poll tick.",
    )
    poll_max_attempts: int = Field(
        default=30,
        ge=1,
        le=1_000,
        description="Number of poll ticks before the session times out.",
    )
    poll_error_policy: ErrorPolicy = Field(default=ErrorPolicy.WAIT_FOR_ALL)
    poll_parallel_status_checks: bool = Field(
        default=False,
        description="Fetch every clip status of a tick concurrently.",
    )
    audio_mime_type: str = Field(default="audio/mpeg", max_length=64)
    fallback_description: str = Field(
        default="Music composed with the Suno API.",
        min_length=1,
        max_length=256,
    )

    @model_validator(mode="after")
    def _normalise_base_url(self) -> "Settings":
        self.provider_base_url = self.provider_base_url.strip().rstrip("/")
        if not self.provider_base_url.startswith(("http://", "https://")):
            raise ValueError("provider_base_url must include http/https scheme")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
