from __future__ import annotations

from pydantic import BaseModel, Field


class LineSource(BaseModel):
    type: str
    user_id: str | None = Field(default=None, alias="userId")


class LineMessage(BaseModel):
    type: str
    id: str | None = None
    text: str | None = None


class LineEvent(BaseModel):
    type: str
    timestamp: int
    source: LineSource | None = None
    message: LineMessage | None = None

    @property
    def is_text_message(self) -> bool:
        return (
            self.type == "message"
            and self.message is not None
            and self.message.type == "text"
            and self.message.text is not None
        )


class LineWebhook(BaseModel):
    destination: str | None = None
    events: list[LineEvent] = Field(default_factory=list)
