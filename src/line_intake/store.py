from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Final

PENDING_MARKER: Final[str] = "電話確認待ち"
EPOCH: Final = datetime(1970, 1, 1, tzinfo=UTC)


def iso_timestamp(moment: datetime) -> str:
    """Format like JavaScript's toISOString(): UTC, millisecond precision, 'Z' suffix."""
    moment = moment.astimezone(UTC)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def iso_from_millis(timestamp_ms: int) -> str:
    return iso_timestamp(EPOCH + timedelta(milliseconds=timestamp_ms))


def utcnow_iso() -> str:
    return iso_timestamp(datetime.now(UTC))


@dataclass(frozen=True)
class ConversationEntry:
    text: str
    timestamp: str


@dataclass(frozen=True)
class PendingApproval:
    timestamp: str
    marker: str = PENDING_MARKER


class ConversationStore:
    """Per-user, append-only message history kept in process memory."""

    def __init__(self) -> None:
        self._history: dict[str, list[ConversationEntry]] = {}

    def append(self, user_id: str, text: str, timestamp: str) -> ConversationEntry:
        entry = ConversationEntry(text=text, timestamp=timestamp)
        self._history.setdefault(user_id, []).append(entry)
        return entry

    def get_all(self, user_id: str) -> list[ConversationEntry]:
        # copy so callers can't reorder the stored sequence
        return list(self._history.get(user_id, []))

    def clear(self, user_id: str) -> None:
        self._history.pop(user_id, None)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._history


class ApprovalTracker:
    """Users who were shown the confirmation card and have not answered yet."""

    def __init__(self) -> None:
        self._pending: dict[str, PendingApproval] = {}

    def mark_pending(self, user_id: str, timestamp: str) -> PendingApproval:
        pending = PendingApproval(timestamp=timestamp)
        self._pending[user_id] = pending
        return pending

    def is_pending(self, user_id: str) -> bool:
        return user_id in self._pending

    def get(self, user_id: str) -> PendingApproval | None:
        return self._pending.get(user_id)

    def clear_pending(self, user_id: str) -> None:
        self._pending.pop(user_id, None)


@dataclass
class IntakeState:
    """
    Everything the intake flow remembers about its users.

    Built once per process and handed to the state machine, which is the only
    code that mutates it. Nothing here survives a restart.
    """

    conversations: ConversationStore = field(default_factory=ConversationStore)
    approvals: ApprovalTracker = field(default_factory=ApprovalTracker)
