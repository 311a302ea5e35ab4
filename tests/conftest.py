from __future__ import annotations

import os
from collections.abc import Iterator
from typing import Any

import pytest

# Keep tests offline: no LINE token, no mail credentials, no signature secret
os.environ["LINE_DRY_RUN"] = "true"
os.environ.pop("LINE_CHANNEL_SECRET", None)
os.environ.pop("LINE_ACCESS_TOKEN", None)
os.environ.pop("GMAIL_USER", None)
os.environ.pop("GMAIL_APP_PASSWORD", None)
os.environ["REPROMPT_DELAY_SECONDS"] = "0"

from line_intake.config import get_settings  # noqa: E402
from line_intake.errors import TranscriptExportError  # noqa: E402


class RecordingDispatcher:
    """Records (user_id, message) pairs instead of pushing to LINE."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []

    async def send(self, user_id: str, message: dict[str, Any]) -> None:
        self.sent.append((user_id, message))


class RecordingExporter:
    """Records exported transcripts; can be switched to fail."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.exports: list[tuple[str, str]] = []

    async def export(self, user_id: str, body: str) -> None:
        self.exports.append((user_id, body))
        if self.fail:
            raise TranscriptExportError("smtp down")


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def exporter() -> RecordingExporter:
    return RecordingExporter()


@pytest.fixture
def failing_exporter() -> RecordingExporter:
    return RecordingExporter(fail=True)
