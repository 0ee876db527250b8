from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StepTrace:
    step: str
    latency_ms: int
    status: str
    error_message: str | None = None
