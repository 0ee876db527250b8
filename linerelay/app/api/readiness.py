from __future__ import annotations

from typing import Any

from linerelay.core.config import AppConfig, missing_required_settings


def build_readiness_report(config: AppConfig) -> dict[str, Any]:
    missing = missing_required_settings(config)
    return {
        "ready": not missing,
        "missing_settings": missing,
        "storage": {
            "backend": config.storage_backend,
            "configured": not (
                config.storage_backend == "supabase"
                and not (config.supabase_url and config.supabase_key)
            ),
        },
        "completion": {
            "model": config.openai_model,
            "configured": bool(config.openai_api_key),
        },
        "messaging": {"configured": bool(config.line_channel_access_token)},
        "relay": {
            "failure_policy": config.failure_policy,
            "context_strategy": config.context_strategy,
            "queue_max_batch_size": config.queue_max_batch_size,
        },
    }
