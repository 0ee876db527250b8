from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from linerelay.app.observability.contracts import StepTrace
from linerelay.app.queue.contracts import QueueMessage

RELAY_STATUS_REPLIED = "replied"
RELAY_STATUS_FAILED = "failed"

STEP_DECODE = "decode"
STEP_APPEND_USER_TURN = "append_user_turn"
STEP_LOAD_CONTEXT = "load_context"
STEP_COMPLETE = "complete"
STEP_APPEND_ASSISTANT_TURN = "append_assistant_turn"
STEP_REPLY = "reply"


class FailurePolicy(str, Enum):
    DROP_AND_LOG = "drop-and-log"
    RETRY_THEN_DEAD_LETTER = "retry-then-dead-letter"


@dataclass(frozen=True)
class RelayOutcome:
    message_id: str
    user_id: str | None
    status: str
    failed_stage: str | None = None
    error_class: str | None = None
    error_message: str | None = None
    reply_text: str | None = None
    steps: tuple[StepTrace, ...] = field(default_factory=tuple)


class RelayBatchError(Exception):
    """Raised to the queue transport when items should be redelivered."""

    def __init__(
        self,
        failed_messages: tuple[QueueMessage, ...],
        outcomes: tuple[RelayOutcome, ...],
    ) -> None:
        super().__init__(f"{len(failed_messages)} relay item(s) failed")
        self.failed_messages = failed_messages
        self.outcomes = outcomes
