from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class WorkItem:
    user_id: str
    content: str
    reply_token: str

    def to_body(self) -> dict[str, str]:
        return {
            "userId": self.user_id,
            "content": self.content,
            "replyToken": self.reply_token,
        }

    @classmethod
    def from_body(cls, body: object) -> WorkItem | None:
        if not isinstance(body, dict):
            return None
        user_id = body.get("userId")
        content = body.get("content")
        reply_token = body.get("replyToken")
        if not all(
            isinstance(value, str) for value in (user_id, content, reply_token)
        ):
            return None
        return cls(user_id=user_id, content=content, reply_token=reply_token)


@dataclass(frozen=True)
class QueueMessage:
    id: str
    timestamp: str
    body: dict[str, str]
    attempts: int = 1
    resume_from: str | None = None
    pending_reply: str | None = None
