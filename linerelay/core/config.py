from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

STORAGE_BACKENDS = {"memory", "sqlite", "supabase"}
FAILURE_POLICIES = {"drop-and-log", "retry-then-dead-letter"}
CONTEXT_STRATEGIES = {"full", "recent"}


@dataclass(frozen=True)
class AppConfig:
    app_name: str
    app_version: str
    environment: str
    line_channel_access_token: str | None
    line_api_base_url: str
    openai_api_key: str | None
    openai_model: str
    openai_base_url: str
    storage_backend: str
    sqlite_path: str
    supabase_url: str | None
    supabase_key: str | None
    supabase_messages_table: str
    queue_max_batch_size: int
    queue_max_attempts: int
    failure_policy: str
    context_strategy: str
    context_max_turns: int
    system_prompt: str | None
    log_level: str


def _read_optional_env(name: str) -> str | None:
    value = os.getenv(name)
    if not value:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _read_int_env(name: str, default: int) -> int:
    value = _read_optional_env(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_choice_env(name: str, default: str, choices: set[str]) -> str:
    value = _read_optional_env(name)
    if value is None:
        return default
    normalized = value.lower()
    return normalized if normalized in choices else default


def load_app_config() -> AppConfig:
    return AppConfig(
        app_name=os.getenv("APP_NAME", "LINE Completion Relay"),
        app_version=os.getenv("APP_VERSION", "0.1.0"),
        environment=os.getenv("APP_ENV", "development"),
        line_channel_access_token=_read_optional_env("LINE_CHANNEL_ACCESS_TOKEN"),
        line_api_base_url=os.getenv("LINE_API_BASE_URL", "https://api.line.me").strip()
        or "https://api.line.me",
        openai_api_key=_read_optional_env("OPENAI_API_KEY"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-3.5-turbo").strip()
        or "gpt-3.5-turbo",
        openai_base_url=os.getenv(
            "OPENAI_BASE_URL", "https://api.openai.com/v1"
        ).strip()
        or "https://api.openai.com/v1",
        storage_backend=_read_choice_env(
            "STORAGE_BACKEND", default="sqlite", choices=STORAGE_BACKENDS
        ),
        sqlite_path=os.getenv("SQLITE_PATH", ".tmp/messages.db"),
        supabase_url=_read_optional_env("SUPABASE_URL"),
        supabase_key=_read_optional_env("SUPABASE_KEY"),
        supabase_messages_table=os.getenv("SUPABASE_MESSAGES_TABLE", "messages"),
        queue_max_batch_size=_read_int_env("QUEUE_MAX_BATCH_SIZE", default=10),
        queue_max_attempts=_read_int_env("QUEUE_MAX_ATTEMPTS", default=3),
        failure_policy=_read_choice_env(
            "RELAY_FAILURE_POLICY", default="drop-and-log", choices=FAILURE_POLICIES
        ),
        context_strategy=_read_choice_env(
            "CONTEXT_STRATEGY", default="full", choices=CONTEXT_STRATEGIES
        ),
        context_max_turns=_read_int_env("CONTEXT_MAX_TURNS", default=20),
        system_prompt=_read_optional_env("SYSTEM_PROMPT"),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )


def missing_required_settings(config: AppConfig) -> list[str]:
    missing: list[str] = []
    if not config.line_channel_access_token:
        missing.append("LINE_CHANNEL_ACCESS_TOKEN")
    if not config.openai_api_key:
        missing.append("OPENAI_API_KEY")
    if config.storage_backend == "supabase":
        if not config.supabase_url:
            missing.append("SUPABASE_URL")
        if not config.supabase_key:
            missing.append("SUPABASE_KEY")
    return missing


def load_dotenv_file(path: str = ".env") -> bool:
    env_path = Path(path)
    if not env_path.exists() or not env_path.is_file():
        return False

    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line.removeprefix("export ").strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        os.environ.setdefault(key, _strip_quotes(value.strip()))

    return True


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value
