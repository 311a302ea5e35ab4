from __future__ import annotations

import pytest
from conftest import RecordingDispatcher, RecordingExporter

from line_intake import messages
from line_intake.errors import MessageDispatchError
from line_intake.intake import ConversationState, IntakeAction, IntakeStateMachine
from line_intake.store import IntakeState

USER = "U1234567890abcdef"


def make_machine(
    dispatcher: RecordingDispatcher, exporter: RecordingExporter
) -> IntakeStateMachine:
    return IntakeStateMachine(
        state=IntakeState(), dispatcher=dispatcher, exporter=exporter, reprompt_delay=0
    )


def texts(machine: IntakeStateMachine, user_id: str = USER) -> list[str]:
    return [e.text for e in machine.state.conversations.get_all(user_id)]


@pytest.mark.asyncio
async def test_plain_message_is_only_logged(
    dispatcher: RecordingDispatcher, exporter: RecordingExporter
) -> None:
    machine = make_machine(dispatcher, exporter)

    action = await machine.handle_text(USER, "hello", "2025-01-01T00:00:00.000Z")

    assert action is IntakeAction.LOGGED
    assert texts(machine) == ["hello"]
    assert machine.state_of(USER) is ConversationState.IDLE
    assert dispatcher.sent == []


@pytest.mark.asyncio
async def test_valid_phone_shows_confirmation_card(
    dispatcher: RecordingDispatcher, exporter: RecordingExporter
) -> None:
    machine = make_machine(dispatcher, exporter)

    action = await machine.handle_text(USER, "090-1234-5678", "t1")

    assert action is IntakeAction.CONFIRMATION_SENT
    assert machine.state_of(USER) is ConversationState.AWAITING_APPROVAL
    assert dispatcher.sent == [(USER, messages.confirmation_card())]


@pytest.mark.asyncio
async def test_invalid_characters_send_format_notice(
    dispatcher: RecordingDispatcher, exporter: RecordingExporter
) -> None:
    machine = make_machine(dispatcher, exporter)

    action = await machine.handle_text(USER, "090123asa45", "t1")

    assert action is IntakeAction.INVALID_FORMAT
    assert machine.state_of(USER) is ConversationState.IDLE
    assert dispatcher.sent == [(USER, messages.invalid_phone_notice())]
    assert texts(machine) == ["090123asa45"]


@pytest.mark.asyncio
async def test_invalid_length_is_silent(
    dispatcher: RecordingDispatcher, exporter: RecordingExporter
) -> None:
    machine = make_machine(dispatcher, exporter)

    assert await machine.handle_text(USER, "090-1234-567", "t1") is IntakeAction.LOGGED
    assert await machine.handle_text(USER, "090123412345", "t2") is IntakeAction.LOGGED

    assert dispatcher.sent == []
    assert machine.state_of(USER) is ConversationState.IDLE


@pytest.mark.asyncio
async def test_canonical_phrases_while_idle_are_plain_messages(
    dispatcher: RecordingDispatcher, exporter: RecordingExporter
) -> None:
    machine = make_machine(dispatcher, exporter)

    assert await machine.handle_text(USER, messages.APPROVE_PHRASE, "t1") is IntakeAction.LOGGED
    assert await machine.handle_text(USER, messages.DECLINE_PHRASE, "t2") is IntakeAction.LOGGED

    assert exporter.exports == []
    assert dispatcher.sent == []
    await machine.wait_scheduled()
    assert machine.state_of(USER) is ConversationState.IDLE


@pytest.mark.asyncio
async def test_full_scenario_decline_then_approve(
    dispatcher: RecordingDispatcher, exporter: RecordingExporter
) -> None:
    machine = make_machine(dispatcher, exporter)

    await machine.handle_text(USER, "hello", "2025-01-01T00:00:00.000Z")
    await machine.handle_text(USER, "090-1234-5678", "2025-01-01T00:00:01.000Z")
    assert machine.state_of(USER) is ConversationState.AWAITING_APPROVAL

    # Decline: ack now, pending cleared, card again after the delay
    action = await machine.handle_text(USER, messages.DECLINE_PHRASE, "2025-01-01T00:00:02.000Z")
    assert action is IntakeAction.DECLINED
    assert dispatcher.sent[-1] == (USER, messages.decline_ack())
    assert machine.state_of(USER) is ConversationState.IDLE

    await machine.wait_scheduled()
    assert machine.state_of(USER) is ConversationState.AWAITING_APPROVAL
    assert dispatcher.sent[-1] == (USER, messages.confirmation_card())
    assert texts(machine) == ["hello", "090-1234-5678", messages.DECLINE_PHRASE]

    # Approve: transcript holds everything logged before the approval
    action = await machine.handle_text(USER, messages.APPROVE_PHRASE, "2025-01-01T00:00:03.000Z")
    assert action is IntakeAction.APPROVED
    assert len(exporter.exports) == 1
    exported_user, body = exporter.exports[0]
    assert exported_user == USER
    assert body.startswith(f"[ID] : {USER}\n")
    for text in ("hello", "090-1234-5678", messages.DECLINE_PHRASE, messages.APPROVE_PHRASE):
        assert text in body

    assert dispatcher.sent[-1] == (USER, messages.approval_ack())
    assert texts(machine) == []
    assert machine.state_of(USER) is ConversationState.IDLE


@pytest.mark.asyncio
async def test_export_failure_keeps_state_and_allows_retry(
    dispatcher: RecordingDispatcher, failing_exporter: RecordingExporter
) -> None:
    machine = make_machine(dispatcher, failing_exporter)
    await machine.handle_text(USER, "09012345678", "t1")
    sent_before = list(dispatcher.sent)

    action = await machine.handle_text(USER, messages.APPROVE_PHRASE, "t2")

    assert action is IntakeAction.APPROVAL_FAILED
    assert machine.state_of(USER) is ConversationState.AWAITING_APPROVAL
    assert texts(machine) == ["09012345678", messages.APPROVE_PHRASE]
    assert dispatcher.sent == sent_before  # no acknowledgment

    # Second attempt goes through once the mail server is back
    failing_exporter.fail = False
    action = await machine.handle_text(USER, messages.APPROVE_PHRASE, "t3")

    assert action is IntakeAction.APPROVED
    assert len(failing_exporter.exports) == 2
    assert dispatcher.sent[-1] == (USER, messages.approval_ack())
    assert texts(machine) == []


@pytest.mark.asyncio
async def test_ack_failure_keeps_state(exporter: RecordingExporter) -> None:
    class FailingDispatcher(RecordingDispatcher):
        async def send(self, user_id: str, message: dict) -> None:
            if message == messages.approval_ack():
                raise MessageDispatchError("LINE down")
            await super().send(user_id, message)

    machine = make_machine(FailingDispatcher(), exporter)
    await machine.handle_text(USER, "09012345678", "t1")

    action = await machine.handle_text(USER, messages.APPROVE_PHRASE, "t2")

    assert action is IntakeAction.APPROVAL_FAILED
    assert machine.state_of(USER) is ConversationState.AWAITING_APPROVAL
    assert len(texts(machine)) == 2


@pytest.mark.asyncio
async def test_unrelated_text_while_awaiting_approval(
    dispatcher: RecordingDispatcher, exporter: RecordingExporter
) -> None:
    machine = make_machine(dispatcher, exporter)
    await machine.handle_text(USER, "09012345678", "t1")
    sent_before = list(dispatcher.sent)

    action = await machine.handle_text(USER, "what about pricing?", "t2")

    assert action is IntakeAction.LOGGED
    assert dispatcher.sent == sent_before
    assert machine.state_of(USER) is ConversationState.AWAITING_APPROVAL
    assert texts(machine)[-1] == "what about pricing?"


@pytest.mark.asyncio
async def test_another_phone_number_while_awaiting_is_ignored(
    dispatcher: RecordingDispatcher, exporter: RecordingExporter
) -> None:
    machine = make_machine(dispatcher, exporter)
    await machine.handle_text(USER, "09012345678", "t1")

    action = await machine.handle_text(USER, "03-1234-5678", "t2")

    assert action is IntakeAction.LOGGED
    assert len(dispatcher.sent) == 1


@pytest.mark.asyncio
async def test_users_do_not_share_state(
    dispatcher: RecordingDispatcher, exporter: RecordingExporter
) -> None:
    machine = make_machine(dispatcher, exporter)
    await machine.handle_text("UA", "09012345678", "t1")
    await machine.handle_text("UB", "hello", "t2")

    # B's approval phrase is not an answer to A's card
    action = await machine.handle_text("UB", messages.APPROVE_PHRASE, "t3")

    assert action is IntakeAction.LOGGED
    assert exporter.exports == []
    assert machine.state_of("UA") is ConversationState.AWAITING_APPROVAL
    assert machine.state_of("UB") is ConversationState.IDLE
    assert texts(machine, "UA") == ["09012345678"]


@pytest.mark.asyncio
async def test_aclose_drops_pending_reprompt(
    dispatcher: RecordingDispatcher, exporter: RecordingExporter
) -> None:
    machine = IntakeStateMachine(
        state=IntakeState(), dispatcher=dispatcher, exporter=exporter, reprompt_delay=60
    )
    await machine.handle_text(USER, "09012345678", "t1")
    await machine.handle_text(USER, messages.DECLINE_PHRASE, "t2")

    await machine.aclose()

    assert machine.state_of(USER) is ConversationState.IDLE
    assert dispatcher.sent[-1] == (USER, messages.decline_ack())


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["ミノキシジル300mgの料金は？", "2000yen", "the 2020s"])
async def test_text_with_units_sends_nothing(
    text: str, dispatcher: RecordingDispatcher, exporter: RecordingExporter
) -> None:
    machine = make_machine(dispatcher, exporter)

    action = await machine.handle_text(USER, text, "t1")

    assert action is IntakeAction.LOGGED
    assert dispatcher.sent == []
    assert machine.state_of(USER) is ConversationState.IDLE


@pytest.mark.asyncio
async def test_unexpected_error_in_reprompt_is_logged(
    exporter: RecordingExporter, caplog: pytest.LogCaptureFixture
) -> None:
    class CardFailsLater(RecordingDispatcher):
        async def send(self, user_id: str, message: dict) -> None:
            if message == messages.confirmation_card() and self.sent:
                raise RuntimeError("unexpected")
            await super().send(user_id, message)

    machine = make_machine(CardFailsLater(), exporter)
    await machine.handle_text(USER, "09012345678", "t1")
    await machine.handle_text(USER, messages.DECLINE_PHRASE, "t2")

    await machine.wait_scheduled()

    assert "Re-sending confirmation card failed" in caplog.text
    assert machine.state_of(USER) is ConversationState.IDLE


@pytest.mark.asyncio
async def test_failed_card_push_does_not_leave_user_pending(
    exporter: RecordingExporter,
) -> None:
    class FlakyDispatcher(RecordingDispatcher):
        fail = True

        async def send(self, user_id: str, message: dict) -> None:
            if self.fail:
                raise MessageDispatchError("LINE down")
            await super().send(user_id, message)

    dispatcher = FlakyDispatcher()
    machine = make_machine(dispatcher, exporter)

    with pytest.raises(MessageDispatchError):
        await machine.handle_text(USER, "09012345678", "t1")
    assert machine.state_of(USER) is ConversationState.IDLE

    # A later number shows the card once LINE is reachable again
    dispatcher.fail = False
    action = await machine.handle_text(USER, "09012345678", "t2")

    assert action is IntakeAction.CONFIRMATION_SENT
    assert dispatcher.sent == [(USER, messages.confirmation_card())]
