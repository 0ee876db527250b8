from __future__ import annotations

import asyncio
import itertools
import sqlite3
import threading
from pathlib import Path
from typing import Protocol

from linerelay.app.conversation.contracts import (
    VALID_ROLES,
    ConversationTurn,
    StoredTurn,
)
from linerelay.core.errors import StorageError

MESSAGES_SCHEMA = """
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('user', 'system', 'assistant')),
    content TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_messages_user_id ON messages (user_id, id);
"""


class ConversationStore(Protocol):
    async def append_turn(self, user_id: str, role: str, content: str) -> None: ...

    async def list_turns(self, user_id: str) -> tuple[ConversationTurn, ...]: ...


def _check_role(role: str) -> None:
    if role not in VALID_ROLES:
        raise StorageError(f"Unsupported role: {role}")


class InMemoryConversationStore:
    def __init__(self) -> None:
        self._turns_by_user: dict[str, list[StoredTurn]] = {}
        self._sequence = itertools.count(1)

    async def append_turn(self, user_id: str, role: str, content: str) -> None:
        _check_role(role)
        turns = self._turns_by_user.setdefault(user_id, [])
        turns.append(
            StoredTurn(
                user_id=user_id,
                role=role,
                content=content,
                sequence=next(self._sequence),
            )
        )

    async def list_turns(self, user_id: str) -> tuple[ConversationTurn, ...]:
        turns = self._turns_by_user.get(user_id, [])
        return tuple(
            turn.as_conversation_turn()
            for turn in sorted(turns, key=lambda turn: turn.sequence)
        )

    def stored_turns(self, user_id: str) -> tuple[StoredTurn, ...]:
        return tuple(self._turns_by_user.get(user_id, []))

    def clear(self) -> None:
        self._turns_by_user.clear()


class SqliteConversationStore:
    """Append-only ``messages`` table; the autoincrement id is the sequence."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._connection: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self._connection is not None:
            return self._connection
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(self._path, check_same_thread=False)
        connection.execute("PRAGMA journal_mode=WAL")
        connection.executescript(MESSAGES_SCHEMA)
        connection.commit()
        self._connection = connection
        return connection

    def _insert(self, user_id: str, role: str, content: str) -> None:
        with self._lock:
            connection = self._connect()
            with connection:
                connection.execute(
                    "INSERT INTO messages (user_id, role, content) VALUES (?, ?, ?)",
                    (user_id, role, content),
                )

    def _select(self, user_id: str) -> list[tuple[str, str]]:
        with self._lock:
            cursor = self._connect().execute(
                "SELECT role, content FROM messages WHERE user_id = ? ORDER BY id",
                (user_id,),
            )
            return cursor.fetchall()

    async def append_turn(self, user_id: str, role: str, content: str) -> None:
        _check_role(role)
        try:
            await asyncio.to_thread(self._insert, user_id, role, content)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to append turn: {exc}") from exc

    async def list_turns(self, user_id: str) -> tuple[ConversationTurn, ...]:
        try:
            rows = await asyncio.to_thread(self._select, user_id)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to list turns: {exc}") from exc
        return tuple(
            ConversationTurn(role=role, content=content) for role, content in rows
        )

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
