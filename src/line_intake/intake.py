from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from enum import Enum
from typing import Any, Protocol

from . import messages
from .errors import MessageDispatchError, TranscriptExportError
from .mailer import format_mail_body
from .phone import PhoneVerdict, evaluate
from .store import IntakeState, utcnow_iso

logger = logging.getLogger(__name__)


class MessageDispatcher(Protocol):
    async def send(self, user_id: str, message: dict[str, Any]) -> None: ...


class TranscriptExporter(Protocol):
    async def export(self, user_id: str, body: str) -> None: ...


class ConversationState(str, Enum):
    IDLE = "idle"
    AWAITING_APPROVAL = "awaiting_approval"


class IntakeAction(str, Enum):
    """What handling one inbound text ended up doing."""

    LOGGED = "logged"
    CONFIRMATION_SENT = "confirmation_sent"
    INVALID_FORMAT = "invalid_format"
    APPROVED = "approved"
    APPROVAL_FAILED = "approval_failed"
    DECLINED = "declined"


class IntakeStateMachine:
    """
    Drives the phone-number intake conversation for every user.

    A user is AWAITING_APPROVAL while the approval tracker holds an entry for
    them and IDLE otherwise. Each inbound text is logged to the conversation
    history before anything else happens.
    """

    def __init__(
        self,
        state: IntakeState,
        dispatcher: MessageDispatcher,
        exporter: TranscriptExporter,
        *,
        reprompt_delay: float = 1.0,
    ) -> None:
        self.state = state
        self.dispatcher = dispatcher
        self.exporter = exporter
        self.reprompt_delay = reprompt_delay
        self._scheduled: set[asyncio.Task[None]] = set()

    def state_of(self, user_id: str) -> ConversationState:
        if self.state.approvals.is_pending(user_id):
            return ConversationState.AWAITING_APPROVAL
        return ConversationState.IDLE

    async def handle_text(self, user_id: str, text: str, timestamp: str) -> IntakeAction:
        """
        Apply one inbound text message from a user.

        - logs the message to the user's history (always, first)
        - while a confirmation card is pending: approve / decline / ignore
        - otherwise: look for a phone number and react to the verdict
        """
        logger.info(f"Message received: user={user_id} text={text!r} at={timestamp}")

        # 1. Log to history unconditionally
        self.state.conversations.append(user_id, text, timestamp)

        # 2. Answers to a pending confirmation card
        if self.state_of(user_id) is ConversationState.AWAITING_APPROVAL:
            if text == messages.APPROVE_PHRASE:
                logger.info(f"Approval received: user={user_id}")
                return await self.on_approve(user_id)
            if text == messages.DECLINE_PHRASE:
                logger.info(f"Decline received: user={user_id}")
                return await self.on_decline(user_id)
            # Unrelated chatter leaves the card pending
            logger.info(f"Message while awaiting approval, no action: user={user_id}")
            return IntakeAction.LOGGED

        # 3. Idle: look for a phone number
        result = evaluate(text)
        if result.verdict is PhoneVerdict.VALID:
            logger.info(f"Valid phone number detected: user={user_id} number={result.number}")
            await self.on_phone_detected(user_id)
            return IntakeAction.CONFIRMATION_SENT

        if result.verdict is PhoneVerdict.INVALID_CHARACTERS:
            logger.info(f"Invalid phone number format detected: user={user_id} text={text!r}")
            await self.dispatcher.send(user_id, messages.invalid_phone_notice())
            return IntakeAction.INVALID_FORMAT

        logger.info(f"Regular message: user={user_id} verdict={result.verdict.value}")
        return IntakeAction.LOGGED

    async def on_phone_detected(self, user_id: str) -> None:
        """
        Mark the user as awaiting approval and show the confirmation card.

        If the card cannot be pushed the mark is dropped again, so the user is
        not left waiting on a card they never saw.
        """
        self.state.approvals.mark_pending(user_id, utcnow_iso())
        try:
            await self.dispatcher.send(user_id, messages.confirmation_card())
        except Exception:
            self.state.approvals.clear_pending(user_id)
            raise

    async def on_approve(self, user_id: str) -> IntakeAction:
        """
        Mail the transcript, thank the user, then forget the conversation.

        Nothing is cleared unless both the export and the acknowledgment went
        through, so the user can send the approval phrase again after a failure.
        """
        history = self.state.conversations.get_all(user_id)
        body = format_mail_body(user_id, history)

        try:
            await self.exporter.export(user_id, body)
            await self.dispatcher.send(user_id, messages.approval_ack())
        except TranscriptExportError:
            logger.exception(f"Transcript export failed, state kept: user={user_id}")
            return IntakeAction.APPROVAL_FAILED
        except MessageDispatchError:
            logger.exception(f"Approval acknowledgment failed, state kept: user={user_id}")
            return IntakeAction.APPROVAL_FAILED

        self.state.conversations.clear(user_id)
        self.state.approvals.clear_pending(user_id)
        logger.info(f"Approval completed, conversation cleared: user={user_id}")
        return IntakeAction.APPROVED

    async def on_decline(self, user_id: str) -> IntakeAction:
        """Acknowledge the decline and show the card again after a short pause."""
        await self.dispatcher.send(user_id, messages.decline_ack())
        self.state.approvals.clear_pending(user_id)
        self._schedule(self._reprompt_later(user_id))
        return IntakeAction.DECLINED

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._scheduled.add(task)
        task.add_done_callback(self._scheduled.discard)

    async def _reprompt_later(self, user_id: str) -> None:
        await asyncio.sleep(self.reprompt_delay)
        try:
            await self.on_phone_detected(user_id)
        except Exception:
            # Nobody awaits this task; log here or the error is lost
            logger.exception(f"Re-sending confirmation card failed: user={user_id}")
        else:
            logger.info(f"Confirmation card shown again: user={user_id}")

    async def wait_scheduled(self) -> None:
        """Wait until every deferred re-prompt has run."""
        while self._scheduled:
            await asyncio.gather(*list(self._scheduled))

    async def aclose(self) -> None:
        """Cancel deferred re-prompts (they are lost on shutdown)."""
        tasks = list(self._scheduled)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._scheduled.clear()
