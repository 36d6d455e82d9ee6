"""
VK community Callback API adapter.
"""

from typing import Any, Dict, Optional
import logging
import random

import httpx

from ..errors import ChannelSendError, RateLimitError
from ..models.settings import VkSettings
from .channel import ChannelAdapter, WebhookEvent

logger = logging.getLogger(__name__)

VK_API_URL = "https://api.vk.com/method"
VK_API_VERSION = "5.131"
VK_TOO_MANY_REQUESTS = 6


def _largest_photo_url(attachments) -> Optional[str]:
    for attachment in attachments or []:
        if attachment.get("type") != "photo":
            continue
        sizes = (attachment.get("photo") or {}).get("sizes") or []
        if not sizes:
            continue
        largest = max(sizes, key=lambda s: (s.get("width") or 0) * (s.get("height") or 0))
        if largest.get("url"):
            return largest["url"]
    return None


class VkAdapter(ChannelAdapter):
    """VK community messages."""

    channel_type = "vk"

    def __init__(self, settings: VkSettings, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 10.0):
        self.settings = settings
        self.transport = transport
        self.timeout = timeout

    def parse_webhook(self, payload: Dict[str, Any]) -> WebhookEvent:
        event_type = payload.get("type")

        if event_type == "confirmation":
            return WebhookEvent(kind="confirmation", raw=payload)

        if self.settings.secret_key and payload.get("secret") != self.settings.secret_key:
            logger.warning(f"VK webhook for group {payload.get('group_id')} has a wrong secret key")
            return WebhookEvent.ignored("bad_secret", payload)

        if event_type != "message_new":
            return WebhookEvent.ignored(f"event_{event_type}", payload)

        message = (payload.get("object") or {}).get("message") or {}
        peer_id = message.get("peer_id")
        from_id = message.get("from_id")

        # outgoing community messages are echoed with a negative from_id
        if from_id is not None and int(from_id) < 0:
            return WebhookEvent.ignored("own_message", payload)

        if peer_id is None or message.get("id") is None:
            return WebhookEvent.ignored("incomplete_message", payload)

        text = message.get("text") or ""
        attachment = _largest_photo_url(message.get("attachments"))
        # stickers, voice messages and the like carry nothing the assistant can read
        if not text.strip() and not attachment:
            return WebhookEvent.ignored("empty_message", payload)

        return WebhookEvent(
            kind="message",
            dialog_id=str(peer_id),
            user_id=str(from_id) if from_id is not None else str(peer_id),
            message_id=str(message.get("id")),
            text=text,
            attachment=attachment,
            raw=payload
        )

    def acknowledgment(self, event: Optional[WebhookEvent] = None) -> str:
        if event is not None and event.kind == "confirmation":
            return self.settings.confirmation_code
        return "ok"

    async def _call(self, method: str, params: Dict[str, Any]) -> Any:
        params = {**params, "access_token": self.settings.token, "v": VK_API_VERSION}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(f"{VK_API_URL}/{method}", data=params)
            except httpx.HTTPError as e:
                raise ChannelSendError(f"VK {method} request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitError(f"VK {method} rate limited")
        if response.status_code >= 400:
            raise ChannelSendError(f"VK {method} returned HTTP {response.status_code}", status_code=response.status_code)

        result = response.json()
        error = result.get("error")
        if error:
            if error.get("error_code") == VK_TOO_MANY_REQUESTS:
                raise RateLimitError(f"VK {method}: {error.get('error_msg')}")
            raise ChannelSendError(f"VK {method} error {error.get('error_code')}: {error.get('error_msg')}", response=result)
        return result.get("response")

    async def send(self, target: str, text: str, attachment: Optional[str] = None) -> Optional[str]:
        params = {
            "peer_id": target,
            "message": text,
            "random_id": random.randint(1, 2 ** 31 - 1),
        }
        if attachment:
            params["attachment"] = attachment

        message_id = await self._call("messages.send", params)
        logger.info(f"Sent VK message {message_id} to peer {target}")
        return str(message_id) if message_id is not None else None

    async def mark_read(self, target: str) -> None:
        try:
            await self._call("messages.markAsRead", {"peer_id": target, "mark_conversation_as_read": 1})
        except Exception as e:
            logger.warning(f"Could not mark VK dialog {target} as read: {e}")
