from __future__ import annotations

from dataclasses import dataclass

import httpx

from linerelay.app.conversation.contracts import VALID_ROLES, ConversationTurn
from linerelay.core.errors import StorageError


@dataclass(frozen=True)
class SupabaseConversationStore:
    url: str
    api_key: str
    table: str = "messages"
    transport: httpx.AsyncBaseTransport | None = None

    @property
    def _table_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1/{self.table}"

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def append_turn(self, user_id: str, role: str, content: str) -> None:
        if role not in VALID_ROLES:
            raise StorageError(f"Unsupported role: {role}")
        payload = {"user_id": user_id, "role": role, "content": content}
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    self._table_url,
                    headers={**self._headers(), "Prefer": "return=minimal"},
                    json=payload,
                )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError(f"Failed to append turn: {exc}") from exc

    async def list_turns(self, user_id: str) -> tuple[ConversationTurn, ...]:
        params = {
            "select": "role,content",
            "user_id": f"eq.{user_id}",
            "order": "id.asc",
        }
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.get(
                    self._table_url,
                    headers=self._headers(),
                    params=params,
                )
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise StorageError(f"Failed to list turns: {exc}") from exc

        if not isinstance(rows, list):
            raise StorageError("Unexpected response shape from messages table")

        turns: list[ConversationTurn] = []
        for row in rows:
            if not isinstance(row, dict):
                raise StorageError(f"Unexpected row shape from messages table: {row!r}")
            role = row.get("role")
            content = row.get("content")
            if not isinstance(role, str) or not isinstance(content, str):
                raise StorageError(f"Unexpected row shape from messages table: {row!r}")
            turns.append(ConversationTurn(role=role, content=content))
        return tuple(turns)
