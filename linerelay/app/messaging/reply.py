from __future__ import annotations

import httpx

from linerelay.core.config import AppConfig
from linerelay.core.errors import ConfigurationError, DeliveryError


class ReplyDispatcher:
    async def reply(self, reply_token: str, text: str) -> None:
        raise NotImplementedError


class LineReplyDispatcher(ReplyDispatcher):
    """Delivers one text reply per reply token through the LINE Messaging API.

    Reply tokens are single use and expire shortly after the webhook event is
    sent, so a failed delivery is reported and never retried.
    """

    def __init__(
        self,
        *,
        channel_access_token: str,
        base_url: str = "https://api.line.me",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._channel_access_token = channel_access_token
        self._endpoint = f"{base_url.rstrip('/')}/v2/bot/message/reply"
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._channel_access_token}",
            "Content-Type": "application/json",
        }

    async def reply(self, reply_token: str, text: str) -> None:
        if not reply_token.strip():
            raise DeliveryError("Missing reply token")
        payload = {
            "replyToken": reply_token,
            "messages": [{"type": "text", "text": text}],
        }
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    self._endpoint,
                    headers=self._headers(),
                    json=payload,
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(
                f"Reply API returned {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Reply request failed: {exc}") from exc


def build_reply_dispatcher(config: AppConfig) -> ReplyDispatcher:
    if not config.line_channel_access_token:
        raise ConfigurationError("LINE_CHANNEL_ACCESS_TOKEN is required")
    return LineReplyDispatcher(
        channel_access_token=config.line_channel_access_token,
        base_url=config.line_api_base_url,
    )
