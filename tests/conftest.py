from __future__ import annotations

from typing import Sequence

import pytest

from linerelay.app.conversation.contracts import ConversationTurn
from linerelay.core.config import AppConfig
from linerelay.core.errors import DeliveryError, ProviderError


class FakeCompletionClient:
    def __init__(
        self,
        replies: Sequence[str] = ("hello!",),
        fail_on_calls: Sequence[int] = (),
    ) -> None:
        self._replies = list(replies)
        self._fail_on_calls = set(fail_on_calls)
        self.calls: list[tuple[ConversationTurn, ...]] = []

    async def complete(self, turns: Sequence[ConversationTurn]) -> ConversationTurn:
        self.calls.append(tuple(turns))
        call_number = len(self.calls)
        if call_number in self._fail_on_calls:
            raise ProviderError("provider unavailable")
        reply = self._replies[min(call_number, len(self._replies)) - 1]
        return ConversationTurn(role="assistant", content=reply)


class RecordingReplyDispatcher:
    def __init__(self, should_raise: bool = False) -> None:
        self._should_raise = should_raise
        self.replies: list[tuple[str, str]] = []

    async def reply(self, reply_token: str, text: str) -> None:
        if self._should_raise:
            raise DeliveryError("reply token expired")
        self.replies.append((reply_token, text))


def build_test_config(**overrides: object) -> AppConfig:
    values: dict[str, object] = {
        "app_name": "LINE Completion Relay",
        "app_version": "0.1.0",
        "environment": "test",
        "line_channel_access_token": "line-token",
        "line_api_base_url": "https://api.line.me",
        "openai_api_key": "openai-key",
        "openai_model": "gpt-3.5-turbo",
        "openai_base_url": "https://api.openai.com/v1",
        "storage_backend": "memory",
        "sqlite_path": ":memory:",
        "supabase_url": None,
        "supabase_key": None,
        "supabase_messages_table": "messages",
        "queue_max_batch_size": 10,
        "queue_max_attempts": 3,
        "failure_policy": "drop-and-log",
        "context_strategy": "full",
        "context_max_turns": 20,
        "system_prompt": None,
        "log_level": "INFO",
    }
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture
def base_config() -> AppConfig:
    return build_test_config()


@pytest.fixture
def completion_client() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def reply_dispatcher() -> RecordingReplyDispatcher:
    return RecordingReplyDispatcher()
