from __future__ import annotations

from typing import Sequence

import httpx

from linerelay.app.conversation.contracts import ROLE_ASSISTANT, ConversationTurn
from linerelay.core.config import AppConfig
from linerelay.core.errors import ConfigurationError, ProviderError


class CompletionClient:
    async def complete(self, turns: Sequence[ConversationTurn]) -> ConversationTurn:
        raise NotImplementedError


class OpenAIChatCompletionClient(CompletionClient):
    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._endpoint = f"{base_url.rstrip('/')}/chat/completions"
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def complete(self, turns: Sequence[ConversationTurn]) -> ConversationTurn:
        payload = {
            "model": self._model,
            "messages": [turn.as_message() for turn in turns],
        }
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    self._endpoint,
                    headers=self._headers(),
                    json=payload,
                )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"Completion provider returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Completion request failed: {exc}") from exc
        except ValueError as exc:
            raise ProviderError("Completion provider returned invalid JSON") from exc

        return ConversationTurn(role=ROLE_ASSISTANT, content=_first_choice_text(body))


def _first_choice_text(body: object) -> str:
    if not isinstance(body, dict):
        raise ProviderError("Completion response is not an object")
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ProviderError("Completion response has no choices")
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str):
        raise ProviderError("Completion response has no message content")
    return content


def build_completion_client(config: AppConfig) -> CompletionClient:
    if not config.openai_api_key:
        raise ConfigurationError("OPENAI_API_KEY is required")
    return OpenAIChatCompletionClient(
        api_key=config.openai_api_key,
        model=config.openai_model,
        base_url=config.openai_base_url,
    )
