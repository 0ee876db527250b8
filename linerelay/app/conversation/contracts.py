from __future__ import annotations

from dataclasses import dataclass

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"

VALID_ROLES = {ROLE_USER, ROLE_ASSISTANT, ROLE_SYSTEM}


@dataclass(frozen=True)
class ConversationTurn:
    role: str
    content: str

    def as_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class StoredTurn:
    user_id: str
    role: str
    content: str
    sequence: int

    def as_conversation_turn(self) -> ConversationTurn:
        return ConversationTurn(role=self.role, content=self.content)
