from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Sequence

from linerelay.app.context.service import ContextStrategy, FullHistoryStrategy
from linerelay.app.conversation.contracts import ROLE_ASSISTANT, ROLE_USER
from linerelay.app.conversation.store import ConversationStore
from linerelay.app.llm.providers import CompletionClient
from linerelay.app.messaging.reply import ReplyDispatcher
from linerelay.app.observability.contracts import StepTrace
from linerelay.app.observability.service import emit_relay_event, step_trace
from linerelay.app.queue.contracts import QueueMessage, WorkItem
from linerelay.app.relay.contracts import (
    RELAY_STATUS_FAILED,
    RELAY_STATUS_REPLIED,
    STEP_APPEND_ASSISTANT_TURN,
    STEP_APPEND_USER_TURN,
    STEP_COMPLETE,
    STEP_DECODE,
    STEP_LOAD_CONTEXT,
    STEP_REPLY,
    FailurePolicy,
    RelayBatchError,
    RelayOutcome,
)

LOGGER = logging.getLogger(__name__)


class RelayOrchestrator:
    """Consumes queued work items and relays each one through the provider.

    Items in a batch run one after another in delivery order. Each item stores
    the user turn, sends the user's whole selected history to the completion
    client, stores the generated turn and replies with it. How a failed item
    is treated is decided by ``failure_policy``:

    * ``DROP_AND_LOG`` logs the failure and moves on; the transport always
      sees the batch as consumed. A user turn stored before the failure stays
      in the history without an answer.
    * ``RETRY_THEN_DEAD_LETTER`` finishes the batch, then raises
      :class:`RelayBatchError` with the failed messages so the transport can
      redeliver them. A redelivered message resumes at the step it failed
      at, so turns written by an earlier attempt are not stored again.
    """

    def __init__(
        self,
        *,
        store: ConversationStore,
        completion_client: CompletionClient,
        reply_dispatcher: ReplyDispatcher,
        context_strategy: ContextStrategy | None = None,
        failure_policy: FailurePolicy = FailurePolicy.DROP_AND_LOG,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._completion_client = completion_client
        self._reply_dispatcher = reply_dispatcher
        self._context_strategy = context_strategy or FullHistoryStrategy()
        self._failure_policy = failure_policy
        self._logger = logger or LOGGER

    @property
    def failure_policy(self) -> FailurePolicy:
        return self._failure_policy

    async def process_batch(
        self, messages: Sequence[QueueMessage]
    ) -> list[RelayOutcome]:
        outcomes: list[RelayOutcome] = []
        retryable: list[QueueMessage] = []
        for message in messages:
            outcome = await self.process_message(message)
            outcomes.append(outcome)
            if (
                outcome.status == RELAY_STATUS_FAILED
                and outcome.failed_stage != STEP_DECODE
            ):
                retryable.append(_resume_point(message, outcome))

        if retryable and self._failure_policy is FailurePolicy.RETRY_THEN_DEAD_LETTER:
            raise RelayBatchError(tuple(retryable), tuple(outcomes))
        return outcomes

    async def process_message(self, message: QueueMessage) -> RelayOutcome:
        item = WorkItem.from_body(message.body)
        if item is None:
            outcome = RelayOutcome(
                message_id=message.id,
                user_id=None,
                status=RELAY_STATUS_FAILED,
                failed_stage=STEP_DECODE,
                error_class="ValueError",
                error_message="queue message body is not a work item",
            )
            self._emit(outcome, attempts=message.attempts, level=logging.ERROR)
            return outcome
        return await self.process_item(
            item,
            message_id=message.id,
            attempts=message.attempts,
            resume_from=message.resume_from,
            pending_reply=message.pending_reply,
        )

    async def process_item(
        self,
        item: WorkItem,
        *,
        message_id: str = "direct",
        attempts: int = 1,
        resume_from: str | None = None,
        pending_reply: str | None = None,
    ) -> RelayOutcome:
        """Run the relay steps for one item.

        ``resume_from`` names the step a previous attempt failed at. Steps whose
        writes already happened are skipped so a redelivered item never stores
        the same turn twice. ``pending_reply`` is the generated text from that
        attempt and is reused instead of asking the provider again.
        """
        steps: list[StepTrace] = []
        reply_text = pending_reply
        step = STEP_APPEND_USER_TURN
        started = time.perf_counter()
        try:
            if resume_from in (None, STEP_APPEND_USER_TURN):
                await self._store.append_turn(item.user_id, ROLE_USER, item.content)
                steps.append(step_trace(step, started))

            if reply_text is None or resume_from not in _AFTER_COMPLETION:
                step, started = STEP_LOAD_CONTEXT, time.perf_counter()
                history = await self._store.list_turns(item.user_id)
                context = self._context_strategy.select(history)
                steps.append(step_trace(step, started))

                step, started = STEP_COMPLETE, time.perf_counter()
                generated = await self._completion_client.complete(context)
                reply_text = generated.content
                steps.append(step_trace(step, started))
                resume_from = None

            if resume_from != STEP_REPLY:
                step, started = STEP_APPEND_ASSISTANT_TURN, time.perf_counter()
                await self._store.append_turn(item.user_id, ROLE_ASSISTANT, reply_text)
                steps.append(step_trace(step, started))

            step, started = STEP_REPLY, time.perf_counter()
            await self._reply_dispatcher.reply(item.reply_token, reply_text)
            steps.append(step_trace(step, started))
        except Exception as exc:
            steps.append(
                step_trace(step, started, status="error", error_message=str(exc))
            )
            self._logger.debug("relay step %s failed", step, exc_info=exc)
            outcome = RelayOutcome(
                message_id=message_id,
                user_id=item.user_id,
                status=RELAY_STATUS_FAILED,
                failed_stage=step,
                error_class=type(exc).__name__,
                error_message=str(exc),
                reply_text=reply_text,
                steps=tuple(steps),
            )
            self._emit(outcome, attempts=attempts, level=logging.ERROR)
            return outcome

        outcome = RelayOutcome(
            message_id=message_id,
            user_id=item.user_id,
            status=RELAY_STATUS_REPLIED,
            steps=tuple(steps),
        )
        self._emit(outcome, attempts=attempts)
        return outcome

    def _emit(
        self,
        outcome: RelayOutcome,
        *,
        attempts: int,
        level: int = logging.INFO,
    ) -> None:
        emit_relay_event(
            {
                "event": "relay_item_completed",
                "message_id": outcome.message_id,
                "user_id": outcome.user_id,
                "status": outcome.status,
                "failed_stage": outcome.failed_stage,
                "error_class": outcome.error_class,
                "error_message": outcome.error_message,
                "failure_policy": self._failure_policy.value,
                "attempts": attempts,
                "latency_ms": sum(trace.latency_ms for trace in outcome.steps),
            },
            logger=self._logger,
            level=level,
        )


_AFTER_COMPLETION = (STEP_APPEND_ASSISTANT_TURN, STEP_REPLY)


def _resume_point(message: QueueMessage, outcome: RelayOutcome) -> QueueMessage:
    if outcome.failed_stage == STEP_APPEND_USER_TURN:
        return message
    pending_reply = None
    if outcome.failed_stage in _AFTER_COMPLETION:
        pending_reply = outcome.reply_text
    return replace(
        message, resume_from=outcome.failed_stage, pending_reply=pending_reply
    )
