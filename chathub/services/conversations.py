"""
Resolution of inbound events onto durable conversations.
"""

from typing import Optional
import logging

from ..models import Conversation
from .storage import Storage

logger = logging.getLogger(__name__)


class ConversationResolver:
    """Find or create the single conversation for a (channel, end-user) pair."""

    def __init__(self, storage: Storage):
        self.storage = storage

    def resolve(self, channel_id: int, external_user_id: str, assistant_hint: Optional[int] = None, owner_id: int = 0) -> Conversation:
        external_user_id = str(external_user_id)

        conversation = self.storage.find_conversation(channel_id, external_user_id)
        if conversation:
            return conversation

        try:
            conversation = self.storage.create_conversation(
                channel_id=channel_id,
                external_user_id=external_user_id,
                assistant_id=assistant_hint,
                created_by=owner_id
            )
            logger.info(f"Created conversation {conversation.id} for channel {channel_id}, user {external_user_id}")
            return conversation
        except Exception as e:
            # Another handler may have created the same conversation first
            logger.warning(f"Conversation create failed for channel {channel_id}, user {external_user_id}: {e}")
            self.storage.rollback()
            conversation = self.storage.find_conversation(channel_id, external_user_id)
            if conversation:
                return conversation
            raise
