from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from .config import get_settings
from .events import LineEvent, LineWebhook
from .intake import IntakeStateMachine
from .line_client import SIGNATURE_HEADER, LineMessageDispatcher, verify_line_signature
from .mailer import MailTranscriptExporter
from .store import IntakeState, iso_from_millis

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def build_intake() -> IntakeStateMachine:
    settings = get_settings()
    return IntakeStateMachine(
        state=IntakeState(),
        dispatcher=LineMessageDispatcher(settings),
        exporter=MailTranscriptExporter(settings),
        reprompt_delay=settings.reprompt_delay_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: one state owner for the whole process
    app.state.intake = build_intake()
    yield
    # Shutdown: pending re-prompts are dropped, like the rest of the in-memory state
    await app.state.intake.aclose()


app = FastAPI(title="line-intake", version="0.1.0", lifespan=lifespan)


def get_intake(request: Request) -> IntakeStateMachine:
    return request.app.state.intake


async def handle_event(intake: IntakeStateMachine, event: LineEvent) -> None:
    """Feed one webhook event to the intake flow; anything but text is skipped."""
    if not event.is_text_message or event.message is None or event.message.text is None:
        logger.debug(f"Skipping non-text event: type={event.type}")
        return

    user_id = (event.source.user_id if event.source else None) or ""
    await intake.handle_text(user_id, event.message.text, iso_from_millis(event.timestamp))


# --- Routes ---


@app.get("/")
def index() -> PlainTextResponse:
    return PlainTextResponse("LINE PoC (receive-only) running")


@app.post("/webhook")
async def line_webhook(
    request: Request,
    intake: IntakeStateMachine = Depends(get_intake),
) -> Response:
    """
    LINE Messaging API webhook.

    Behaviour:
      - reject requests whose X-Line-Signature does not match the body
      - process events one at a time, in the order LINE sent them
      - a failure in one event is logged and does not stop the others
    """
    raw_body = await request.body()
    if not verify_line_signature(raw_body, request.headers.get(SIGNATURE_HEADER)):
        return JSONResponse(status_code=403, content={"error": "Invalid webhook signature"})

    try:
        webhook = LineWebhook.model_validate_json(raw_body)
    except ValidationError as e:
        logger.warning(f"Malformed LINE webhook body: {e.error_count()} error(s)")
        return JSONResponse(status_code=400, content={"error": "Malformed webhook body"})

    logger.info(f"Webhook received with {len(webhook.events)} event(s)")

    for event in webhook.events:
        try:
            await handle_event(intake, event)
        except Exception:
            logger.exception(f"Event handling failed: type={event.type}")

    return Response(status_code=200)


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)


if __name__ == "__main__":
    run()
