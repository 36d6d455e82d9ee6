"""
Web chat widget endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional
import logging

from ..database import get_session
from ..models import Message
from ..services.pipeline import ChatHubServices, handle_inbound_message
from ..services.storage import SQLStorage
from .im import get_services, require_channel

logger = logging.getLogger(__name__)

web_router = APIRouter()


class WebMessageRequest(BaseModel):
    channel_id: int = Field(alias="channelId")
    content: str
    visitor_id: str = Field(alias="visitorId")
    dialog_id: Optional[str] = Field(default=None, alias="dialogId")
    message_id: Optional[str] = Field(default=None, alias="messageId")

    model_config = {"populate_by_name": True}


def serialize_message(message: Optional[Message]) -> Optional[Dict[str, Any]]:
    if message is None:
        return None
    return {
        "id": message.id,
        "content": message.content,
        "senderType": message.sender_type,
        "createdAt": message.created_at.isoformat() if message.created_at else None,
    }


@web_router.post("/messages")
async def post_web_message(
    body: WebMessageRequest,
    db: Session = Depends(get_session),
    services: ChatHubServices = Depends(get_services)
):
    """Accept a widget message and answer it in the same response."""
    channel = require_channel(db, body.channel_id, "web")
    if not channel.is_active:
        raise HTTPException(status_code=403, detail="Channel is not active")

    adapter = services.adapter_for(channel)
    event = adapter.parse_webhook(body.model_dump(by_alias=True))
    if not event.is_message:
        raise HTTPException(status_code=400, detail="Message content is required")

    try:
        result = await handle_inbound_message(event, channel, adapter, services, db)
    except Exception as e:
        logger.error(f"Web widget message on channel {channel.id} failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process message")

    response = {
        "success": result.status not in ("failed", "delivery_failed"),
        "message": serialize_message(result.user_message),
    }
    if result.reply is not None:
        response["assistantMessage"] = serialize_message(result.reply)
    if result.reason:
        response["reason"] = result.reason
    return response


@web_router.get("/messages")
async def get_web_messages(
    channel_id: int = Query(..., alias="channelId"),
    visitor_id: str = Query(..., alias="visitorId"),
    dialog_id: Optional[str] = Query(None, alias="dialogId"),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_session)
):
    """Widget history for one visitor."""
    require_channel(db, channel_id, "web")
    storage = SQLStorage(db)

    conversation = storage.find_conversation(channel_id, dialog_id or visitor_id)
    if conversation is None:
        return {"messages": []}

    messages = storage.list_messages_by_conversation(conversation.id)[-limit:]
    return {"messages": [serialize_message(m) for m in messages]}
