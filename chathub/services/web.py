"""
Embeddable web widget adapter.
"""

from typing import Any, Dict, Optional
import logging
import uuid

from ..models.settings import WebSettings
from .channel import ChannelAdapter, WebhookEvent

logger = logging.getLogger(__name__)


class WebAdapter(ChannelAdapter):
    """Web chat widget. Replies travel back in the HTTP response, so ``send`` does nothing."""

    channel_type = "web"

    def __init__(self, settings: WebSettings):
        self.settings = settings

    def parse_webhook(self, payload: Dict[str, Any]) -> WebhookEvent:
        visitor_id = payload.get("visitorId")
        content = (payload.get("content") or "").strip()
        if not visitor_id or not content:
            return WebhookEvent.ignored("empty_message", payload)

        dialog_id = str(payload.get("dialogId") or visitor_id)
        return WebhookEvent(
            kind="message",
            dialog_id=dialog_id,
            user_id=str(visitor_id),
            message_id=str(payload.get("messageId") or uuid.uuid4()),
            text=content,
            raw=payload
        )

    def acknowledgment(self, event: Optional[WebhookEvent] = None) -> Dict[str, Any]:
        return {"success": True}

    async def send(self, target: str, text: str, attachment: Optional[str] = None) -> Optional[str]:
        return None

    async def mark_read(self, target: str) -> None:
        return None
