"""Pydantic schemas for the chat endpoint."""

from pydantic import BaseModel, Field

from flowops.db.enums import Mode


class ChatRequestBody(BaseModel):
    customer_id: str = ""
    message: str = Field(..., max_length=10000)
    mode: Mode = Mode.SHADOW
    request_id: str | None = Field(default=None, max_length=255)


class ChatResponse(BaseModel):
    reply: str
    mode: Mode
    ticket_id: str | None
    escalated: bool
    confidence: float
    actions: list[str]
