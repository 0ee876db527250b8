from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from linerelay.app.queue.contracts import WorkItem
from linerelay.app.webhook.contracts import WebhookEvent, WebhookPayload
from linerelay.core.errors import ValidationError

LOGGER = logging.getLogger(__name__)

BODY_ERROR = "body error"


def extract_work_item(payload: object) -> WorkItem:
    """Validate a webhook delivery and build the work item for its first event.

    A delivery may batch several events; only ``events[0]`` is relayed and the
    rest are dropped. The event must be a text message sent by an individual
    user, otherwise :class:`ValidationError` is raised and nothing is queued.
    """
    try:
        parsed = WebhookPayload.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(BODY_ERROR) from exc
    if not parsed.events:
        raise ValidationError(BODY_ERROR)
    if len(parsed.events) > 1:
        LOGGER.debug(
            "webhook delivery carried %d events; ignoring all but the first",
            len(parsed.events),
        )

    try:
        event = WebhookEvent.model_validate(parsed.events[0])
    except PydanticValidationError as exc:
        raise ValidationError(BODY_ERROR) from exc

    message = event.message
    if event.type != "message" or message is None or message.type != "text":
        raise ValidationError(BODY_ERROR)
    source = event.source
    if source is None or source.type != "user":
        raise ValidationError(BODY_ERROR)
    if not source.user_id or message.text is None or not event.reply_token:
        raise ValidationError(BODY_ERROR)

    return WorkItem(
        user_id=source.user_id,
        content=message.text,
        reply_token=event.reply_token,
    )
