from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, Field

DEFAULT_MAIL_SUBJECT = "LINE問い合わせ【AGAクリニック比較サイト】aga_line"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    # --- LINE Messaging API ---
    line_channel_secret: str | None = Field(
        default_factory=lambda: os.getenv("LINE_CHANNEL_SECRET")
    )
    line_access_token: str | None = Field(default_factory=lambda: os.getenv("LINE_ACCESS_TOKEN"))
    # Log outbound pushes instead of calling the API
    line_dry_run: bool = Field(default_factory=lambda: _env_flag("LINE_DRY_RUN"))

    # --- Transcript mail (Gmail over SMTP/SSL) ---
    gmail_user: str | None = Field(default_factory=lambda: os.getenv("GMAIL_USER"))
    gmail_app_password: str | None = Field(default_factory=lambda: os.getenv("GMAIL_APP_PASSWORD"))
    # Comma-separated recipient list
    mail_to: str = Field(default_factory=lambda: os.getenv("MAIL_TO", ""))
    mail_subject: str = Field(
        default_factory=lambda: os.getenv("MAIL_SUBJECT", DEFAULT_MAIL_SUBJECT)
    )
    smtp_host: str = Field(default_factory=lambda: os.getenv("SMTP_HOST", "smtp.gmail.com"))
    smtp_port: int = Field(default_factory=lambda: int(os.getenv("SMTP_PORT", "465")))

    # --- Conversation flow ---
    # Seconds between a decline and the confirmation card being shown again
    reprompt_delay_seconds: float = Field(
        default_factory=lambda: float(os.getenv("REPROMPT_DELAY_SECONDS", "1.0"))
    )

    # --- Process ---
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "8080")))


@lru_cache
def get_settings() -> Settings:
    return Settings()
