from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Any, Final

import httpx

from .config import Settings, get_settings
from .errors import MessageDispatchError

logger = logging.getLogger(__name__)

LINE_PUSH_URL: Final[str] = "https://api.line.me/v2/bot/message/push"
SIGNATURE_HEADER: Final[str] = "X-Line-Signature"


def get_httpx_timeout() -> httpx.Timeout:
    return httpx.Timeout(10.0, connect=5.0, read=10.0, write=5.0, pool=5.0)


def create_httpx_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=get_httpx_timeout())


def compute_signature(channel_secret: str, body: bytes) -> str:
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_line_signature(
    body: bytes, signature_header: str | None, settings: Settings | None = None
) -> bool:
    """
    Verify a LINE webhook request.

    LINE signs the raw request body with HMAC-SHA256 keyed by the channel
    secret and sends the base64 digest in the X-Line-Signature header.

    If no channel secret is configured, verification is skipped (dev mode).
    """
    settings = settings or get_settings()

    if not settings.line_channel_secret:
        logger.warning(
            "LINE channel secret not configured - skipping signature verification. "
            "Set LINE_CHANNEL_SECRET in production."
        )
        return True

    if not signature_header:
        logger.warning(f"Missing {SIGNATURE_HEADER} header in LINE webhook")
        return False

    expected = compute_signature(settings.line_channel_secret, body)
    is_valid = hmac.compare_digest(signature_header, expected)

    if not is_valid:
        logger.warning("Invalid LINE webhook signature - request rejected")

    return is_valid


async def push_message(
    to: str, message: dict[str, Any], settings: Settings | None = None
) -> dict[str, Any]:
    """
    Push a single message object to a LINE user.

    Without an access token (or with LINE_DRY_RUN set) the message is only
    logged. Transport and HTTP errors are raised as MessageDispatchError.
    """
    settings = settings or get_settings()

    if settings.line_dry_run or not settings.line_access_token:
        logger.info(f"[DRY-RUN] Would push LINE message to {to}: {message.get('type')}")
        return {"status": "dry_run", "to": to, "message": message}

    headers = {
        "Authorization": f"Bearer {settings.line_access_token}",
        "Content-Type": "application/json",
    }
    payload = {"to": to, "messages": [message]}

    try:
        async with create_httpx_client() as client:
            response = await client.post(LINE_PUSH_URL, headers=headers, json=payload)
            response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise MessageDispatchError(
            f"LINE push to {to} failed with status {e.response.status_code}: {e.response.text}"
        ) from e
    except httpx.HTTPError as e:
        raise MessageDispatchError(f"LINE push to {to} failed: {e}") from e

    logger.info(f"Pushed LINE message to {to}: {message.get('type')}")
    return {"status": "sent", "to": to}


class LineMessageDispatcher:
    """Sends intake payloads to users through the LINE push API."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    async def send(self, user_id: str, message: dict[str, Any]) -> None:
        await push_message(user_id, message, settings=self.settings)
