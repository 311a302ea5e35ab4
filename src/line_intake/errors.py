from __future__ import annotations


class IntakeError(Exception):
    """Base class for failures scoped to a single user's intake step."""


class TranscriptExportError(IntakeError):
    """The conversation transcript could not be handed off (mail not sent)."""


class MessageDispatchError(IntakeError):
    """A push message to the user could not be delivered."""
