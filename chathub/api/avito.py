"""
Avito Messenger webhook endpoints.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import logging

from ..database import get_session
from ..services.pipeline import ChatHubServices
from .im import get_services, load_channel, schedule_event

logger = logging.getLogger(__name__)

avito_router = APIRouter()


@avito_router.post("/webhook/{channel_id}")
async def handle_avito_webhook(
    channel_id: int,
    request: Request,
    db: Session = Depends(get_session),
    services: ChatHubServices = Depends(get_services)
):
    """Handle Avito Messenger v3 webhooks. Always acknowledged with ``{"ok": true}``."""
    try:
        payload = await request.json()
        logger.info(f"Received Avito webhook for channel {channel_id}")

        channel = load_channel(db, channel_id, "avito")
        if channel is None:
            return {"ok": True}

        adapter = services.adapter_for(channel)
        event = adapter.parse_webhook(payload)

        if event.is_message:
            schedule_event(services, channel.id, adapter, event)
        else:
            logger.debug(f"Ignoring Avito event for channel {channel_id}: {event.reason}")

        return adapter.acknowledgment(event)

    except Exception as e:
        logger.error(f"Avito webhook error for channel {channel_id}: {e}", exc_info=True)
        return {"ok": True}
