"""
Configuration for the push service.

Settings are read from the environment (and .env). The signing core never
reads them directly; callers hand it an immutable VapidConfig instead.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SUBJECT = "mailto:support@example.com"


@dataclass(frozen=True)
class VapidConfig:
    """Application server identity used to sign push requests."""

    public_key: str
    private_key: str
    subject: str = DEFAULT_SUBJECT

    @property
    def configured(self) -> bool:
        return bool(self.public_key.strip() and self.private_key.strip())


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # VAPID key pair (generate with scripts/generate_vapid_keys.py)
    vapid_public_key: str = Field(
        default="",
        validation_alias=AliasChoices("vapid_public_key", "next_public_vapid_public_key"),
    )
    vapid_private_key: str = ""
    vapid_subject: str = DEFAULT_SUBJECT

    # Outbound push request
    push_ttl_seconds: int = 60
    push_urgency: str = "normal"
    push_timeout_seconds: float | None = None  # None = no deadline
    push_max_retries: int = 0  # Only transport errors are retried
    push_retry_backoff_seconds: float = 0.5
    push_verify_key_pair: bool = False

    # HTTP API
    api_tokens: dict[str, str] = {}  # bearer token -> user id

    def vapid_config(self) -> VapidConfig:
        return VapidConfig(
            public_key=self.vapid_public_key,
            private_key=self.vapid_private_key,
            subject=self.vapid_subject or DEFAULT_SUBJECT,
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
