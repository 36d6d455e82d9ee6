"""
Common webhook functionality shared by the channel endpoints.
"""

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session
from typing import Optional
import asyncio
import logging

from ..database import session_scope
from ..models import Channel
from ..services.channel import ChannelAdapter, WebhookEvent
from ..services.pipeline import ChatHubServices, PipelineResult, handle_inbound_message
from ..services.storage import SQLStorage

logger = logging.getLogger(__name__)


def get_services(request: Request) -> ChatHubServices:
    """FastAPI dependency returning the application's shared services."""
    return request.app.state.services


def load_channel(db: Session, channel_id: int, channel_type: str) -> Optional[Channel]:
    """Load a channel of the given type, or None."""
    channel = SQLStorage(db).get_channel(channel_id)
    if channel is None or channel.type != channel_type:
        logger.warning(f"No {channel_type} channel with id {channel_id}")
        return None
    return channel


def require_channel(db: Session, channel_id: int, channel_type: str) -> Channel:
    channel = load_channel(db, channel_id, channel_type)
    if channel is None:
        raise HTTPException(status_code=404, detail="Channel not found")
    return channel


async def process_event_background(services: ChatHubServices, channel_id: int, adapter: ChannelAdapter, event: WebhookEvent) -> Optional[PipelineResult]:
    """Background task running the pipeline with its own database session."""
    try:
        with session_scope() as db:
            channel = SQLStorage(db).get_channel(channel_id)
            if channel is None:
                logger.error(f"Channel {channel_id} disappeared before message {event.message_id} was processed")
                return None
            result = await handle_inbound_message(event, channel, adapter, services, db)
            logger.info(f"Message {event.message_id} on channel {channel_id} processed: {result.status} {result.reason or ''}")
            return result
    except Exception as e:
        logger.error(f"Background processing of message {event.message_id} on channel {channel_id} failed: {e}", exc_info=True)
        return None


def schedule_event(services: ChatHubServices, channel_id: int, adapter: ChannelAdapter, event: WebhookEvent) -> asyncio.Task:
    """Run the pipeline detached from the webhook request, keeping a reference until it finishes."""
    task = asyncio.create_task(process_event_background(services, channel_id, adapter, event))
    services.background_tasks.add(task)
    task.add_done_callback(services.background_tasks.discard)
    return task
