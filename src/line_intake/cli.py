from __future__ import annotations

import asyncio
import json
from typing import Any

from .intake import IntakeStateMachine
from .store import IntakeState, utcnow_iso

CLI_USER_ID = "Ucli000000000000000000000000local"


class ConsoleDispatcher:
    """Prints outbound LINE payloads instead of pushing them."""

    async def send(self, user_id: str, message: dict[str, Any]) -> None:
        if message.get("type") == "text":
            print(f"bot> {message['text']}\n")
        else:
            print(f"bot> [{message.get('type')}] {message.get('altText', '')}")
            print(json.dumps(message, ensure_ascii=False, indent=2))
            print()


class ConsoleExporter:
    """Prints the transcript mail body instead of sending it."""

    async def export(self, user_id: str, body: str) -> None:
        print("----- transcript mail -----")
        print(body)
        print("---------------------------\n")


async def chat() -> None:
    """
    Interactive local session against the real intake flow.

    Outbound messages and the transcript mail are printed to the terminal.
    Input is read in a worker thread so a delayed confirmation card can
    appear while waiting for the next line.
    """
    intake = IntakeStateMachine(
        state=IntakeState(),
        dispatcher=ConsoleDispatcher(),
        exporter=ConsoleExporter(),
    )
    print("LINE intake CLI. Type /quit to exit.\n")
    try:
        while True:
            try:
                user_input = (await asyncio.to_thread(input, "you> ")).strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not user_input:
                continue
            if user_input.lower() in {"/q", "/quit", "/exit"}:
                break
            action = await intake.handle_text(CLI_USER_ID, user_input, utcnow_iso())
            print(f"[{action.value} | state={intake.state_of(CLI_USER_ID).value}]\n")
    finally:
        await intake.aclose()


def main() -> None:
    asyncio.run(chat())


if __name__ == "__main__":
    main()
