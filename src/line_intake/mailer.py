from __future__ import annotations

import asyncio
import logging
import smtplib
from collections.abc import Sequence
from email.message import EmailMessage
from typing import Final

from .config import Settings, get_settings
from .errors import TranscriptExportError
from .store import ConversationEntry

logger = logging.getLogger(__name__)

HISTORY_HEADING: Final[str] = "=== メッセージ履歴 ==="
SMTP_TIMEOUT_SECONDS: Final[float] = 30.0


def format_mail_body(user_id: str, history: Sequence[ConversationEntry]) -> str:
    """
    Render a user's conversation as the plain-text mail body:

      [ID] : <user id>

      === メッセージ履歴 ===
      [<timestamp>]
      <text>

      [<timestamp>]
      <text>

    An empty history renders as an empty string.
    """
    if not history:
        return ""

    blocks = "\n".join(f"[{entry.timestamp}]\n{entry.text}\n" for entry in history)
    return f"[ID] : {user_id}\n\n{HISTORY_HEADING}\n{blocks}"


def parse_recipients(raw: str) -> list[str]:
    """Split a comma-separated address list, dropping blanks."""
    return [address.strip() for address in raw.split(",") if address.strip()]


def build_message(settings: Settings, body: str) -> EmailMessage:
    recipients = parse_recipients(settings.mail_to)
    if not recipients:
        raise TranscriptExportError("MAIL_TO is not configured")

    message = EmailMessage()
    message["From"] = settings.gmail_user or ""
    message["To"] = ",".join(recipients)
    message["Subject"] = settings.mail_subject
    message.set_content(body)
    return message


def send_mail(settings: Settings, message: EmailMessage) -> None:
    """Blocking SMTP-over-SSL delivery using the Gmail app password."""
    if not settings.gmail_user or not settings.gmail_app_password:
        raise TranscriptExportError(
            "Gmail credentials are not configured (GMAIL_USER / GMAIL_APP_PASSWORD)"
        )

    try:
        with smtplib.SMTP_SSL(
            settings.smtp_host, settings.smtp_port, timeout=SMTP_TIMEOUT_SECONDS
        ) as smtp:
            smtp.login(settings.gmail_user, settings.gmail_app_password)
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as e:
        raise TranscriptExportError(f"SMTP delivery failed: {e}") from e


class MailTranscriptExporter:
    """Mails a formatted conversation transcript to the configured staff addresses."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    async def export(self, user_id: str, body: str) -> None:
        message = build_message(self.settings, body)
        logger.info(
            f"Sending transcript mail for user {user_id} "
            f"from={self.settings.gmail_user} to={message['To']}"
        )
        # smtplib blocks; keep the event loop free for other users
        await asyncio.to_thread(send_mail, self.settings, message)
        logger.info(f"Transcript mail sent for user {user_id}")
