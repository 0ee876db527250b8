from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MessageContent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    id: str | None = None
    text: str | None = None


class EventSource(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    user_id: str | None = Field(default=None, alias="userId")
    group_id: str | None = Field(default=None, alias="groupId")
    room_id: str | None = Field(default=None, alias="roomId")


class WebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    reply_token: str | None = Field(default=None, alias="replyToken")
    source: EventSource | None = None
    message: MessageContent | None = None


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    destination: str | None = None
    events: list[Any] = Field(default_factory=list)
