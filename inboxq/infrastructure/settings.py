"""
Application-wide settings and environment configuration
"""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from inboxq.infrastructure.env import get_int_env, get_optional_env, get_required_env

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# Google Cloud / Gemini
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash-001")
GEMINI_LOCATION = os.getenv("GEMINI_LOCATION", "us-central1")
GEMINI_MAX_TOKENS = int(os.getenv("GEMINI_MAX_TOKENS", "1024"))
GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.2"))

# JMAP
DEFAULT_JMAP_SESSION_URL = "https://api.fastmail.com/jmap/session"
DEFAULT_MESSAGE_LINK_TEMPLATE = "https://app.fastmail.com/mail/search:msgid:{email_id}"

OperatingMode = Literal["label-only", "triage"]


class AppSettings(BaseModel):
    """Per-process settings resolved from the environment at startup."""

    model_config = ConfigDict(frozen=True)

    jmap_token: str = Field(..., description="Bearer token for the JMAP session")
    jmap_session_url: str = Field(default=DEFAULT_JMAP_SESSION_URL)
    user_email: str = Field(..., description="The triage account's own address")
    mode: OperatingMode = Field(default="label-only")
    poll_interval_seconds: int = Field(default=60, ge=1)
    digest_times: list[str] = Field(default_factory=lambda: ["09:00", "18:00"])
    cleanup_base_url: str | None = Field(
        default=None, description="Base URL for cleanup links embedded in digests"
    )
    message_link_template: str = Field(default=DEFAULT_MESSAGE_LINK_TEMPLATE)
    cron_secret: str | None = Field(default=None)

    @field_validator("cleanup_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        if not value:
            return None
        return value.rstrip("/")

    @classmethod
    def from_env(cls) -> AppSettings:
        """
        Build settings from environment variables.

        Raises:
            ConfigurationError: If JMAP_TOKEN or USER_EMAIL is missing
        """
        digest_times = [
            t.strip()
            for t in get_optional_env("DIGEST_TIMES", "09:00,18:00").split(",")
            if t.strip()
        ]
        return cls(
            jmap_token=get_required_env("JMAP_TOKEN"),
            jmap_session_url=get_optional_env("JMAP_SESSION_URL", DEFAULT_JMAP_SESSION_URL),
            user_email=get_required_env("USER_EMAIL"),
            mode=get_optional_env("MODE", "label-only"),
            poll_interval_seconds=get_int_env("POLL_INTERVAL", 60),
            digest_times=digest_times,
            cleanup_base_url=get_optional_env("CLEANUP_BASE_URL") or None,
            message_link_template=get_optional_env(
                "MESSAGE_LINK_TEMPLATE", DEFAULT_MESSAGE_LINK_TEMPLATE
            ),
            cron_secret=get_optional_env("CRON_SECRET") or None,
        )
