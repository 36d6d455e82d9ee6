"""
VK Callback API endpoints.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
import logging

from ..database import get_session
from ..services.pipeline import ChatHubServices
from .im import get_services, load_channel, schedule_event

logger = logging.getLogger(__name__)

vk_router = APIRouter()


@vk_router.post("/webhook/{channel_id}", response_class=PlainTextResponse)
async def handle_vk_webhook(
    channel_id: int,
    request: Request,
    db: Session = Depends(get_session),
    services: ChatHubServices = Depends(get_services)
):
    """Handle VK Callback API events.

    VK retries any callback that does not get ``ok`` back, so every event
    except the confirmation handshake is answered with ``ok``, including
    events that fail.
    """
    try:
        payload = await request.json()
        logger.info(f"Received VK callback {payload.get('type')} for channel {channel_id}")

        channel = load_channel(db, channel_id, "vk")
        if channel is None:
            return "ok"

        adapter = services.adapter_for(channel)
        event = adapter.parse_webhook(payload)

        if event.kind == "confirmation":
            logger.info(f"Answering VK confirmation for group {payload.get('group_id')}")
            return adapter.acknowledgment(event)

        if event.is_message:
            schedule_event(services, channel.id, adapter, event)
        else:
            logger.debug(f"Ignoring VK event for channel {channel_id}: {event.reason}")

        return adapter.acknowledgment(event)

    except Exception as e:
        logger.error(f"VK webhook error for channel {channel_id}: {e}", exc_info=True)
        return "ok"
