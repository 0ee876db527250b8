from __future__ import annotations

from typing import Protocol, Sequence

from linerelay.app.conversation.contracts import ROLE_SYSTEM, ConversationTurn
from linerelay.core.config import AppConfig


class ContextStrategy(Protocol):
    def select(
        self, turns: Sequence[ConversationTurn]
    ) -> tuple[ConversationTurn, ...]: ...


class FullHistoryStrategy:
    """Send every stored turn, oldest first. Context grows with the conversation."""

    def __init__(self, system_prompt: str | None = None) -> None:
        self._system_prompt = system_prompt

    def select(self, turns: Sequence[ConversationTurn]) -> tuple[ConversationTurn, ...]:
        return _with_system_prompt(self._system_prompt, tuple(turns))


class RecentTurnsStrategy:
    def __init__(self, max_turns: int, system_prompt: str | None = None) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be positive")
        self._max_turns = max_turns
        self._system_prompt = system_prompt

    def select(self, turns: Sequence[ConversationTurn]) -> tuple[ConversationTurn, ...]:
        return _with_system_prompt(
            self._system_prompt, tuple(turns[-self._max_turns :])
        )


def _with_system_prompt(
    system_prompt: str | None,
    turns: tuple[ConversationTurn, ...],
) -> tuple[ConversationTurn, ...]:
    if not system_prompt:
        return turns
    return (ConversationTurn(role=ROLE_SYSTEM, content=system_prompt), *turns)


def build_context_strategy(config: AppConfig) -> ContextStrategy:
    if config.context_strategy == "recent":
        return RecentTurnsStrategy(
            config.context_max_turns, system_prompt=config.system_prompt
        )
    return FullHistoryStrategy(system_prompt=config.system_prompt)
