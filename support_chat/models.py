"""
Pydantic models for sessions, messages and the chat API.

Wire names are camelCase (``sessionId``, ``nextCursor``, ``createdAt``);
Python attributes stay snake_case.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["user", "ai"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(CamelModel):
    id: str
    session_id: str
    role: Role
    content: str
    created_at: datetime


class HistoryPage(CamelModel):
    messages: List[Message]
    next_cursor: Optional[str] = None


class ChatRequest(CamelModel):
    # Length and id format are checked by the coordinator
    message: str
    session_id: Optional[str] = None

    @field_validator("session_id", mode="before")
    @classmethod
    def reject_null_session_id(cls, value):
        # Only runs when the field is sent; omit it to start a new session
        if value is None:
            raise ValueError("sessionId must be a UUID string when provided")
        return value


class ChatResponse(CamelModel):
    reply: str
    session_id: str


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Any] = None


@dataclass(frozen=True)
class ContextTurn:
    """One prior message as the completion provider sees it."""

    role: Literal["user", "model"]
    text: str
