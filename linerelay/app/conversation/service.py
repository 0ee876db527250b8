from __future__ import annotations

from linerelay.app.conversation.store import (
    ConversationStore,
    InMemoryConversationStore,
    SqliteConversationStore,
)
from linerelay.app.conversation.supabase_store import SupabaseConversationStore
from linerelay.core.config import AppConfig
from linerelay.core.errors import ConfigurationError


def build_conversation_store(config: AppConfig) -> ConversationStore:
    if config.storage_backend == "memory":
        return InMemoryConversationStore()
    if config.storage_backend == "supabase":
        if not config.supabase_url or not config.supabase_key:
            raise ConfigurationError(
                "SUPABASE_URL and SUPABASE_KEY are required for the supabase backend"
            )
        return SupabaseConversationStore(
            url=config.supabase_url,
            api_key=config.supabase_key,
            table=config.supabase_messages_table,
        )
    return SqliteConversationStore(config.sqlite_path)
