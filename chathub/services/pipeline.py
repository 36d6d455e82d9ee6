"""
Inbound message pipeline shared by all channels.

dedup check -> conversation -> store user message -> route ->
already-answered check -> generate -> deliver
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple
import asyncio
import json
import logging

from sqlalchemy.orm import Session

from ..config import Config
from ..models import Channel, Conversation, Message
from .channel import ChannelAdapter, ChannelAdapterFactory, WebhookEvent
from .conversations import ConversationResolver
from .dedup import DeduplicationCache
from .delivery import DeliveryResult, DeliveryService
from .functions import FunctionProcessor
from .generation import GenerationProvider
from .orchestrator import Failure, GenerationOrchestrator, ReplyText, Suppressed
from .router import AssistantRouter, RoutingDecision
from .storage import SQLStorage
from .training import CuratedResponseService

logger = logging.getLogger(__name__)


@dataclass
class ChatHubServices:
    """Long-lived collaborators owned by the application."""
    config: Config
    dedup_cache: DeduplicationCache
    provider: GenerationProvider
    function_processor: Optional[FunctionProcessor] = None
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    background_tasks: Set[asyncio.Task] = field(default_factory=set)
    adapters: Dict[int, Tuple[str, ChannelAdapter]] = field(default_factory=dict)

    def adapter_for(self, channel: Channel) -> ChannelAdapter:
        """Adapter shared by all events of a channel, rebuilt when its settings change.

        Sharing keeps per-channel state such as the Avito access token alive
        between webhooks.
        """
        fingerprint = json.dumps({"type": channel.type, "settings": channel.settings or {}}, sort_keys=True, default=str)
        cached = self.adapters.get(channel.id)
        if cached is not None and cached[0] == fingerprint:
            return cached[1]

        adapter = ChannelAdapterFactory.create(channel)
        self.adapters[channel.id] = (fingerprint, adapter)
        return adapter


@dataclass
class PipelineResult:
    """What happened to one inbound event."""
    status: str  # ignored, duplicate, suppressed, already_answered, failed, replied, delivery_failed
    reason: Optional[str] = None
    conversation: Optional[Conversation] = None
    user_message: Optional[Message] = None
    decision: Optional[RoutingDecision] = None
    delivery: Optional[DeliveryResult] = None

    @property
    def reply(self) -> Optional[Message]:
        return self.delivery.message if self.delivery else None


def build_orchestrator(services: ChatHubServices, storage: SQLStorage) -> GenerationOrchestrator:
    openai_config = services.config.openai
    return GenerationOrchestrator(
        provider=services.provider,
        storage=storage,
        function_processor=services.function_processor,
        curated_responses=CuratedResponseService(storage, services.provider),
        poll_interval=openai_config.poll_interval,
        max_attempts=openai_config.max_poll_attempts,
        max_tool_rounds=openai_config.max_tool_rounds,
        sleep=services.sleep
    )


async def handle_inbound_message(
    event: WebhookEvent,
    channel: Channel,
    adapter: ChannelAdapter,
    services: ChatHubServices,
    db: Session,
    cancel_event: Optional[asyncio.Event] = None
) -> PipelineResult:
    """Process one inbound event end to end."""
    if not event.is_message:
        return PipelineResult("ignored", reason=event.reason)

    if not channel.is_active:
        logger.info(f"Channel {channel.id} is {channel.status}, dropping message {event.message_id}")
        return PipelineResult("ignored", reason="channel_inactive")

    dedup_key = services.dedup_cache.make_key(channel.id, event.dialog_id, event.message_id)
    if services.dedup_cache.seen(dedup_key):
        logger.info(f"Duplicate delivery ignored: {dedup_key}")
        return PipelineResult("duplicate")
    services.dedup_cache.mark_seen(dedup_key)

    storage = SQLStorage(db)
    conversation = ConversationResolver(storage).resolve(channel.id, event.dialog_id, owner_id=channel.created_by)

    user_message = storage.find_inbound_message(conversation.id, event.message_id)
    if user_message is None:
        metadata = {"externalMessageId": event.message_id, "userId": event.user_id}
        if event.attachment:
            metadata["attachment"] = event.attachment
        user_message = storage.create_message(conversation.id, "user", event.text, metadata)

    await adapter.mark_read(event.dialog_id)

    decision = AssistantRouter(storage).route(conversation, channel)
    if not decision.should_reply:
        logger.info(f"No automatic reply for conversation {conversation.id}: {decision.reason}")
        return PipelineResult("suppressed", reason=decision.reason, conversation=conversation, user_message=user_message, decision=decision)

    if storage.find_reply_to(conversation.id, event.message_id):
        logger.info(f"Message {event.message_id} in conversation {conversation.id} is already answered")
        return PipelineResult("already_answered", conversation=conversation, user_message=user_message, decision=decision)

    assistant = storage.get_assistant(decision.assistant_id)
    if assistant is None:
        logger.error(f"Routed to assistant {decision.assistant_id} which does not exist")
        return PipelineResult("failed", reason="assistant_not_found", conversation=conversation, user_message=user_message, decision=decision)

    result = await build_orchestrator(services, storage).generate(
        conversation,
        assistant,
        event.text,
        attachment=event.attachment,
        cancel_event=cancel_event,
        decision=decision
    )

    if isinstance(result, Suppressed):
        return PipelineResult("suppressed", reason=result.reason, conversation=conversation, user_message=user_message, decision=decision)
    if isinstance(result, Failure):
        logger.error(f"Generation failed for conversation {conversation.id}: {result.reason} {result.detail or ''}")
        return PipelineResult("failed", reason=result.reason, conversation=conversation, user_message=user_message, decision=decision)

    # a concurrent delivery of the same message may have answered while generating
    if storage.find_reply_to(conversation.id, event.message_id):
        logger.info(f"Message {event.message_id} answered during generation, dropping duplicate reply")
        return PipelineResult("already_answered", conversation=conversation, user_message=user_message, decision=decision)

    delivery = await DeliveryService(
        storage,
        rate_limit_backoff=services.config.delivery.rate_limit_backoff_seconds,
        sleep=services.sleep
    ).deliver(conversation, channel, adapter, event.dialog_id, result.text, event.message_id)

    return PipelineResult(
        "replied" if delivery.success else "delivery_failed",
        reason=None if delivery.success else delivery.error,
        conversation=conversation,
        user_message=user_message,
        decision=decision,
        delivery=delivery
    )
