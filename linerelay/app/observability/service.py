from __future__ import annotations

import json
import logging
import time
from typing import Any

from linerelay.app.observability.contracts import StepTrace


def step_trace(
    step: str,
    started_at: float,
    *,
    status: str = "ok",
    error_message: str | None = None,
) -> StepTrace:
    elapsed_ms = int((time.perf_counter() - started_at) * 1000)
    return StepTrace(
        step=step,
        latency_ms=max(elapsed_ms, 0),
        status=status,
        error_message=error_message,
    )


def emit_relay_event(
    event: dict[str, Any],
    logger: logging.Logger | None = None,
    *,
    level: int = logging.INFO,
) -> None:
    active_logger = logger or logging.getLogger(__name__)
    active_logger.log(level, "relay_event %s", json.dumps(event, sort_keys=True))
