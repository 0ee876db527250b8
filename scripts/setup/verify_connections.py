from __future__ import annotations

import asyncio

import httpx

from linerelay.app.conversation.service import build_conversation_store
from linerelay.core.config import (
    AppConfig,
    load_app_config,
    load_dotenv_file,
    missing_required_settings,
)
from linerelay.core.errors import ConfigurationError, StorageError

PROBE_USER_ID = "__verify_connections__"


def _print_result(name: str, ok: bool, detail: str) -> bool:
    status = "OK" if ok else "FAIL"
    print(f"[{status}] {name}: {detail}")
    return ok


def _verify_settings(config: AppConfig) -> bool:
    missing = missing_required_settings(config)
    if missing:
        return _print_result("settings", False, "missing " + ", ".join(missing))
    return _print_result("settings", True, "all required settings present")


async def _verify_storage(config: AppConfig) -> bool:
    try:
        store = build_conversation_store(config)
    except ConfigurationError as exc:
        return _print_result("storage", False, str(exc))
    try:
        turns = await store.list_turns(PROBE_USER_ID)
    except StorageError as exc:
        return _print_result("storage", False, str(exc))
    finally:
        close = getattr(store, "close", None)
        if callable(close):
            close()
    return _print_result(
        "storage",
        True,
        f"{config.storage_backend} backend readable ({len(turns)} stored turns)",
    )


async def _verify_completion_provider(config: AppConfig) -> bool:
    if not config.openai_api_key:
        return _print_result("completion provider", False, "OPENAI_API_KEY not set")
    endpoint = f"{config.openai_base_url.rstrip('/')}/models"
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(
                endpoint,
                headers={"Authorization": f"Bearer {config.openai_api_key}"},
            )
    except httpx.HTTPError as exc:
        return _print_result("completion provider", False, f"connection failed: {exc}")
    return _print_result(
        "completion provider",
        response.status_code == 200,
        f"{endpoint} (http {response.status_code})",
    )


async def _verify_messaging(config: AppConfig) -> bool:
    if not config.line_channel_access_token:
        return _print_result(
            "messaging", False, "LINE_CHANNEL_ACCESS_TOKEN not set"
        )
    endpoint = f"{config.line_api_base_url.rstrip('/')}/v2/bot/info"
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(
                endpoint,
                headers={"Authorization": f"Bearer {config.line_channel_access_token}"},
            )
    except httpx.HTTPError as exc:
        return _print_result("messaging", False, f"connection failed: {exc}")
    return _print_result(
        "messaging",
        response.status_code == 200,
        f"{endpoint} (http {response.status_code})",
    )


async def _main_async() -> int:
    config = load_app_config()
    print("Relay connectivity verification")
    print("-" * 31)

    checks = [
        _verify_settings(config),
        await _verify_storage(config),
        await _verify_completion_provider(config),
        await _verify_messaging(config),
    ]

    if all(checks):
        print("All checks passed.")
        return 0

    print("One or more checks failed. Update .env and rerun.")
    return 1


def main() -> int:
    load_dotenv_file()
    return asyncio.run(_main_async())


if __name__ == "__main__":
    raise SystemExit(main())
