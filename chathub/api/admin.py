"""
Admin API endpoints for assistant assignment and training.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing import Optional
import logging

from ..database import get_session
from ..config import get_config
from ..errors import NotFoundError
from ..services.pipeline import ChatHubServices
from ..services.storage import SQLStorage
from ..services.training import CuratedResponseService
from .im import get_services

logger = logging.getLogger(__name__)

admin_router = APIRouter()
security = HTTPBasic()


class DefaultAssistantRequest(BaseModel):
    assistant_id: int = Field(alias="assistantId")

    model_config = {"populate_by_name": True}


class DialogAssistantRequest(BaseModel):
    assistant_id: int = Field(alias="assistantId")
    enabled: bool = True
    auto_reply: bool = Field(default=True, alias="autoReply")

    model_config = {"populate_by_name": True}


class CorrectionRequest(BaseModel):
    user_query: str = Field(alias="userQuery", min_length=1)
    corrected_response: str = Field(alias="correctedResponse", min_length=1)
    original_response: Optional[str] = Field(default=None, alias="originalResponse")
    channel_id: Optional[int] = Field(default=None, alias="channelId")
    conversation_id: Optional[int] = Field(default=None, alias="conversationId")
    dialog_id: Optional[str] = Field(default=None, alias="dialogId")

    model_config = {"populate_by_name": True}


def require_admin(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    if not verify_admin_credentials(credentials):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return credentials.username


@admin_router.get("/channels/{channel_id}/bindings")
async def list_channel_bindings(
    channel_id: int,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_session)
):
    """List assistant bindings of a channel."""
    storage = SQLStorage(db)
    if storage.get_channel(channel_id) is None:
        raise HTTPException(status_code=404, detail="Channel not found")

    return {
        "bindings": [
            {
                "assistantId": b.assistant_id,
                "enabled": b.enabled,
                "autoReply": b.auto_reply,
                "isDefault": b.is_default,
                "settings": b.settings or {},
            }
            for b in storage.list_bindings_by_channel(channel_id)
        ]
    }


@admin_router.put("/channels/{channel_id}/default-assistant")
async def set_default_assistant(
    channel_id: int,
    body: DefaultAssistantRequest,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_session)
):
    """Make one bound assistant the channel default."""
    storage = SQLStorage(db)
    if storage.get_channel(channel_id) is None:
        raise HTTPException(status_code=404, detail="Channel not found")

    try:
        binding = storage.set_default_binding(channel_id, body.assistant_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    logger.info(f"Admin {admin} set assistant {body.assistant_id} as default for channel {channel_id}")
    return {"success": True, "assistantId": binding.assistant_id, "isDefault": binding.is_default}


@admin_router.put("/channels/{channel_id}/dialogs/{dialog_id}/assistant")
async def set_dialog_assistant(
    channel_id: int,
    dialog_id: str,
    body: DialogAssistantRequest,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_session)
):
    """Assign, reassign or disable the assistant of one dialog."""
    storage = SQLStorage(db)
    if storage.get_channel(channel_id) is None:
        raise HTTPException(status_code=404, detail="Channel not found")
    if storage.get_assistant(body.assistant_id) is None:
        raise HTTPException(status_code=404, detail="Assistant not found")

    override = storage.upsert_dialog_override(
        channel_id,
        dialog_id,
        body.assistant_id,
        enabled=body.enabled,
        auto_reply=body.auto_reply
    )

    logger.info(f"Admin {admin} set dialog {dialog_id} on channel {channel_id} to assistant {body.assistant_id} (enabled={body.enabled}, auto_reply={body.auto_reply})")
    return {
        "success": True,
        "dialogId": override.dialog_id,
        "assistantId": override.assistant_id,
        "enabled": override.enabled,
        "autoReply": override.auto_reply,
    }


@admin_router.get("/assistants/{assistant_id}/corrections")
async def list_corrections(
    assistant_id: int,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_session)
):
    """List curated responses of an assistant."""
    storage = SQLStorage(db)
    if storage.get_assistant(assistant_id) is None:
        raise HTTPException(status_code=404, detail="Assistant not found")

    return {
        "corrections": [
            {
                "id": example.id,
                "userQuery": example.user_query,
                "correctedResponse": example.corrected_response,
                "originalResponse": example.original_response,
            }
            for example in storage.list_curated_responses(assistant_id)
        ]
    }


@admin_router.post("/assistants/{assistant_id}/corrections")
async def create_correction(
    assistant_id: int,
    body: CorrectionRequest,
    admin: str = Depends(require_admin),
    db: Session = Depends(get_session),
    services: ChatHubServices = Depends(get_services)
):
    """Store an operator correction and refresh the assistant's instructions."""
    training = CuratedResponseService(SQLStorage(db), services.provider)

    try:
        example = await training.save_correction(
            assistant_id=assistant_id,
            user_query=body.user_query,
            corrected_response=body.corrected_response,
            original_response=body.original_response,
            channel_id=body.channel_id,
            conversation_id=body.conversation_id,
            dialog_id=body.dialog_id
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to refresh instructions of assistant {assistant_id}: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Correction saved but assistant instructions were not updated")

    logger.info(f"Admin {admin} added correction {example.id} to assistant {assistant_id}")
    return {"success": True, "id": example.id}


def verify_admin_credentials(credentials: HTTPBasicCredentials) -> bool:
    """Verify admin credentials."""
    config = get_config()

    if not config.admin.enabled:
        return False

    if not config.admin.username or not config.admin.password:
        return False

    return (
        credentials.username == config.admin.username and
        credentials.password == config.admin.password
    )
