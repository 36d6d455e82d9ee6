"""
Persisting and sending assistant replies.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
import asyncio
import logging

from ..errors import RateLimitError
from ..models import Channel, Conversation, Message
from .channel import ChannelAdapter
from .storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    success: bool
    message: Optional[Message] = None
    external_message_id: Optional[str] = None
    error: Optional[str] = None


class DeliveryService:
    """Stores an assistant reply, then sends it through the channel adapter.

    The reply is stored before sending and carries ``repliesTo`` so that a
    redelivered inbound message is recognized as answered even if sending
    fails. Rate-limited sends are retried once after a fixed backoff.
    """

    def __init__(self, storage: Storage, rate_limit_backoff: float = 2.0, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.storage = storage
        self.rate_limit_backoff = rate_limit_backoff
        self.sleep = sleep

    async def deliver(
        self,
        conversation: Conversation,
        channel: Channel,
        adapter: ChannelAdapter,
        target: str,
        reply_text: str,
        inbound_message_id: str
    ) -> DeliveryResult:
        message = self.storage.create_message(
            conversation_id=conversation.id,
            sender_type="assistant",
            content=reply_text,
            metadata={"repliesTo": inbound_message_id}
        )

        try:
            external_id = await self._send_with_retry(adapter, target, reply_text)
        except Exception as e:
            logger.error(f"Failed to deliver reply {message.id} to {channel.type} dialog {target}: {e}", exc_info=True)
            return DeliveryResult(success=False, message=message, error=str(e))

        try:
            self.storage.increment_usage(channel.created_by)
        except Exception as e:
            logger.error(f"Failed to record usage for owner {channel.created_by}: {e}")
            self.storage.rollback()

        logger.info(f"Delivered reply {message.id} to {channel.type} dialog {target}")
        return DeliveryResult(success=True, message=message, external_message_id=external_id)

    async def _send_with_retry(self, adapter: ChannelAdapter, target: str, text: str) -> Optional[str]:
        try:
            return await adapter.send(target, text)
        except RateLimitError as e:
            logger.warning(f"Rate limited sending to {target}, retrying in {self.rate_limit_backoff}s: {e}")
            await self.sleep(self.rate_limit_backoff)
        return await adapter.send(target, text)
