"""
Avito Messenger API adapter.
"""

from typing import Any, Dict, Optional
import logging
import time

import httpx

from ..errors import ChannelSendError, RateLimitError
from ..models.settings import AvitoSettings
from .channel import ChannelAdapter, WebhookEvent

logger = logging.getLogger(__name__)

AVITO_API_URL = "https://api.avito.ru"


def _largest_image_url(content: Dict[str, Any]) -> Optional[str]:
    sizes = ((content or {}).get("image") or {}).get("sizes") or {}
    best_url, best_area = None, -1
    for size, url in sizes.items():
        try:
            width, height = (int(part) for part in size.split("x"))
        except ValueError:
            continue
        if width * height > best_area:
            best_url, best_area = url, width * height
    return best_url


class AvitoAdapter(ChannelAdapter):
    """Avito marketplace chats."""

    channel_type = "avito"

    def __init__(self, settings: AvitoSettings, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 10.0):
        self.settings = settings
        self.transport = transport
        self.timeout = timeout
        self._authorization: Optional[str] = None
        self._token_expires_at = 0.0

    def parse_webhook(self, payload: Dict[str, Any]) -> WebhookEvent:
        body = payload.get("payload") or {}
        if body.get("type") != "message":
            return WebhookEvent.ignored(f"payload_{body.get('type')}", payload)

        value = body.get("value") or {}
        # messages written from the account itself come back through the webhook
        if value.get("author_id") is not None and str(value.get("author_id")) == str(value.get("user_id")):
            return WebhookEvent.ignored("own_message", payload)

        if value.get("type") == "system":
            return WebhookEvent.ignored("system_message", payload)

        if not value.get("chat_id") or not value.get("id"):
            return WebhookEvent.ignored("incomplete_message", payload)

        content = value.get("content") or {}
        text = content.get("text") or ""
        attachment = _largest_image_url(content)
        if not text.strip() and not attachment:
            return WebhookEvent.ignored("empty_message", payload)

        return WebhookEvent(
            kind="message",
            dialog_id=str(value["chat_id"]),
            user_id=str(value.get("author_id")),
            message_id=str(value["id"]),
            text=text,
            attachment=attachment,
            raw=payload
        )

    def acknowledgment(self, event: Optional[WebhookEvent] = None) -> Dict[str, Any]:
        return {"ok": True}

    async def _get_authorization(self, client: httpx.AsyncClient) -> str:
        if self._authorization and time.monotonic() < self._token_expires_at:
            return self._authorization

        response = await client.post(
            f"{AVITO_API_URL}/token",
            data={
                "grant_type": "client_credentials",
                "client_id": self.settings.client_id,
                "client_secret": self.settings.client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"}
        )
        if response.status_code == 429:
            raise RateLimitError("Avito token request rate limited")
        if response.status_code >= 400:
            raise ChannelSendError(f"Avito token request returned HTTP {response.status_code}", status_code=response.status_code)

        token = response.json()
        if not token.get("access_token"):
            raise ChannelSendError("Avito token response has no access_token", response=token)

        self._authorization = f"{token.get('token_type') or 'Bearer'} {token['access_token']}"
        # refresh a minute early
        self._token_expires_at = time.monotonic() + max(int(token.get("expires_in") or 0) - 60, 0)
        logger.debug(f"Obtained Avito access token for client {self.settings.client_id}")
        return self._authorization

    async def _post(self, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                authorization = await self._get_authorization(client)
                response = await client.post(
                    f"{AVITO_API_URL}{path}",
                    json=json,
                    headers={"Authorization": authorization}
                )
            except httpx.HTTPError as e:
                raise ChannelSendError(f"Avito request to {path} failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitError(f"Avito request to {path} rate limited")
        if response.status_code == 401:
            self._authorization = None
        if response.status_code >= 400:
            raise ChannelSendError(f"Avito request to {path} returned HTTP {response.status_code}", status_code=response.status_code)
        return response.json() if response.content else {}

    def _chat_path(self, chat_id: str) -> str:
        return f"/messenger/v1/accounts/{self.settings.clean_profile_id}/chats/{chat_id}"

    async def send(self, target: str, text: str, attachment: Optional[str] = None) -> Optional[str]:
        result = await self._post(
            f"{self._chat_path(target)}/messages",
            json={"message": {"text": text}, "type": "text"}
        )
        message_id = result.get("message_id") or result.get("id")
        logger.info(f"Sent Avito message {message_id} to chat {target}")
        return str(message_id) if message_id is not None else None

    async def mark_read(self, target: str) -> None:
        try:
            await self._post(f"{self._chat_path(target)}/read")
        except Exception as e:
            logger.warning(f"Could not mark Avito chat {target} as read: {e}")
