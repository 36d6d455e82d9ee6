"""
Storage collaborator used by the message pipeline.

Every operation is mandatory: a backend that leaves one unimplemented cannot
be instantiated, so a partial backend fails at construction rather than at
the first message that needs the missing operation.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models import (
    Assistant,
    AssistantBinding,
    Channel,
    Conversation,
    CuratedResponse,
    DialogOverride,
    Message,
    UsageCounter,
)

logger = logging.getLogger(__name__)


def normalize_query(text: str) -> str:
    """Normalize user text for curated response lookup."""
    return (text or "").strip().lower()


class Storage(ABC):
    """Abstract storage collaborator."""

    @abstractmethod
    def get_channel(self, channel_id: int) -> Optional[Channel]:
        pass

    @abstractmethod
    def get_assistant(self, assistant_id: int) -> Optional[Assistant]:
        pass

    @abstractmethod
    def find_conversation(self, channel_id: int, external_user_id: str) -> Optional[Conversation]:
        pass

    @abstractmethod
    def list_conversations_by_channel(self, channel_id: int) -> List[Conversation]:
        pass

    @abstractmethod
    def create_conversation(self, channel_id: int, external_user_id: str, assistant_id: Optional[int] = None, created_by: int = 0) -> Conversation:
        """Create a conversation; raises on a (channel, user) uniqueness conflict."""
        pass

    @abstractmethod
    def update_conversation(self, conversation_id: int, **fields: Any) -> Conversation:
        pass

    @abstractmethod
    def bind_thread(self, conversation: Conversation, thread_id: str) -> str:
        """Store the provider thread handle once; returns the handle in effect."""
        pass

    @abstractmethod
    def create_message(self, conversation_id: int, sender_type: str, content: str, metadata: Optional[Dict[str, Any]] = None) -> Message:
        pass

    @abstractmethod
    def list_messages_by_conversation(self, conversation_id: int) -> List[Message]:
        pass

    @abstractmethod
    def find_inbound_message(self, conversation_id: int, external_message_id: str) -> Optional[Message]:
        pass

    @abstractmethod
    def find_reply_to(self, conversation_id: int, inbound_message_id: str) -> List[Message]:
        """Assistant messages whose repliesTo equals the inbound message id."""
        pass

    @abstractmethod
    def list_bindings_by_channel(self, channel_id: int) -> List[AssistantBinding]:
        pass

    @abstractmethod
    def create_binding(self, assistant_id: int, channel_id: int, enabled: bool = True, auto_reply: bool = True, is_default: bool = False, settings: Optional[Dict[str, Any]] = None) -> AssistantBinding:
        pass

    @abstractmethod
    def set_default_binding(self, channel_id: int, assistant_id: int) -> AssistantBinding:
        """Mark one binding as the channel default and clear the flag on the rest."""
        pass

    @abstractmethod
    def get_dialog_override(self, channel_id: int, dialog_id: str) -> Optional[DialogOverride]:
        pass

    @abstractmethod
    def upsert_dialog_override(self, channel_id: int, dialog_id: str, assistant_id: int, enabled: bool = True, auto_reply: bool = True) -> DialogOverride:
        pass

    @abstractmethod
    def find_curated_response(self, assistant_id: int, normalized_query: str) -> Optional[CuratedResponse]:
        pass

    @abstractmethod
    def create_curated_response(self, assistant_id: int, user_query: str, corrected_response: str, original_response: Optional[str] = None, channel_id: Optional[int] = None, conversation_id: Optional[int] = None, dialog_id: Optional[str] = None) -> CuratedResponse:
        pass

    @abstractmethod
    def list_curated_responses(self, assistant_id: int) -> List[CuratedResponse]:
        pass

    @abstractmethod
    def increment_usage(self, owner_id: int) -> int:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass


class SQLStorage(Storage):
    """Storage backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def get_channel(self, channel_id: int) -> Optional[Channel]:
        return self.db.query(Channel).filter(Channel.id == channel_id).first()

    def get_assistant(self, assistant_id: int) -> Optional[Assistant]:
        return self.db.query(Assistant).filter(Assistant.id == assistant_id).first()

    def find_conversation(self, channel_id: int, external_user_id: str) -> Optional[Conversation]:
        return self.db.query(Conversation).filter(
            Conversation.channel_id == channel_id,
            Conversation.external_user_id == external_user_id
        ).first()

    def list_conversations_by_channel(self, channel_id: int) -> List[Conversation]:
        return self.db.query(Conversation).filter(
            Conversation.channel_id == channel_id
        ).order_by(Conversation.last_message_at.desc()).all()

    def create_conversation(self, channel_id: int, external_user_id: str, assistant_id: Optional[int] = None, created_by: int = 0) -> Conversation:
        conversation = Conversation(
            channel_id=channel_id,
            external_user_id=external_user_id,
            assistant_id=assistant_id,
            created_by=created_by,
            status="active"
        )
        self.db.add(conversation)
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def update_conversation(self, conversation_id: int, **fields: Any) -> Conversation:
        conversation = self.db.query(Conversation).filter(Conversation.id == conversation_id).first()
        if not conversation:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        for key, value in fields.items():
            setattr(conversation, key, value)
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def bind_thread(self, conversation: Conversation, thread_id: str) -> str:
        self.db.refresh(conversation)
        if conversation.thread_id:
            logger.info(f"Conversation {conversation.id} already bound to thread {conversation.thread_id}")
            return conversation.thread_id
        conversation.thread_id = thread_id
        self.db.commit()
        return thread_id

    def create_message(self, conversation_id: int, sender_type: str, content: str, metadata: Optional[Dict[str, Any]] = None) -> Message:
        message = Message(
            conversation_id=conversation_id,
            sender_type=sender_type,
            content=content,
            message_metadata=metadata
        )
        self.db.add(message)
        conversation = self.db.query(Conversation).filter(Conversation.id == conversation_id).first()
        if conversation:
            conversation.last_message_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(message)
        return message

    def list_messages_by_conversation(self, conversation_id: int) -> List[Message]:
        return self.db.query(Message).filter(
            Message.conversation_id == conversation_id
        ).order_by(Message.created_at.asc(), Message.id.asc()).all()

    def find_inbound_message(self, conversation_id: int, external_message_id: str) -> Optional[Message]:
        for message in self._messages_by_sender(conversation_id, "user"):
            if message.external_message_id == external_message_id:
                return message
        return None

    def find_reply_to(self, conversation_id: int, inbound_message_id: str) -> List[Message]:
        # JSON path operators differ between SQLite and PostgreSQL, so match in Python
        return [
            message for message in self._messages_by_sender(conversation_id, "assistant")
            if message.replies_to == inbound_message_id
        ]

    def _messages_by_sender(self, conversation_id: int, sender_type: str) -> List[Message]:
        return self.db.query(Message).filter(
            Message.conversation_id == conversation_id,
            Message.sender_type == sender_type
        ).order_by(Message.id.asc()).all()

    def list_bindings_by_channel(self, channel_id: int) -> List[AssistantBinding]:
        return self.db.query(AssistantBinding).filter(
            AssistantBinding.channel_id == channel_id
        ).order_by(AssistantBinding.id.asc()).all()

    def create_binding(self, assistant_id: int, channel_id: int, enabled: bool = True, auto_reply: bool = True, is_default: bool = False, settings: Optional[Dict[str, Any]] = None) -> AssistantBinding:
        binding = AssistantBinding(
            assistant_id=assistant_id,
            channel_id=channel_id,
            enabled=enabled,
            auto_reply=auto_reply,
            is_default=False,
            settings=settings or {}
        )
        self.db.add(binding)
        self.db.commit()
        self.db.refresh(binding)
        if is_default:
            binding = self.set_default_binding(channel_id, assistant_id)
        return binding

    def set_default_binding(self, channel_id: int, assistant_id: int) -> AssistantBinding:
        bindings = self.db.query(AssistantBinding).filter(
            AssistantBinding.channel_id == channel_id
        ).with_for_update().all()

        target = next((b for b in bindings if b.assistant_id == assistant_id), None)
        if target is None:
            raise NotFoundError(f"Assistant {assistant_id} is not bound to channel {channel_id}")

        try:
            for binding in bindings:
                binding.is_default = binding.id == target.id
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(target)
        return target

    def get_dialog_override(self, channel_id: int, dialog_id: str) -> Optional[DialogOverride]:
        return self.db.query(DialogOverride).filter(
            DialogOverride.channel_id == channel_id,
            DialogOverride.dialog_id == str(dialog_id)
        ).first()

    def upsert_dialog_override(self, channel_id: int, dialog_id: str, assistant_id: int, enabled: bool = True, auto_reply: bool = True) -> DialogOverride:
        override = self.get_dialog_override(channel_id, dialog_id)
        if override is None:
            override = DialogOverride(channel_id=channel_id, dialog_id=str(dialog_id))
            self.db.add(override)
        override.assistant_id = assistant_id
        override.enabled = enabled
        override.auto_reply = auto_reply
        self.db.commit()
        self.db.refresh(override)
        return override

    def find_curated_response(self, assistant_id: int, normalized_query: str) -> Optional[CuratedResponse]:
        return self.db.query(CuratedResponse).filter(
            CuratedResponse.assistant_id == assistant_id,
            CuratedResponse.normalized_query == normalized_query
        ).order_by(CuratedResponse.updated_at.desc(), CuratedResponse.id.desc()).first()

    def create_curated_response(self, assistant_id: int, user_query: str, corrected_response: str, original_response: Optional[str] = None, channel_id: Optional[int] = None, conversation_id: Optional[int] = None, dialog_id: Optional[str] = None) -> CuratedResponse:
        example = CuratedResponse(
            assistant_id=assistant_id,
            user_query=user_query,
            normalized_query=normalize_query(user_query),
            original_response=original_response,
            corrected_response=corrected_response,
            channel_id=channel_id,
            conversation_id=conversation_id,
            dialog_id=dialog_id
        )
        self.db.add(example)
        self.db.commit()
        self.db.refresh(example)
        return example

    def list_curated_responses(self, assistant_id: int) -> List[CuratedResponse]:
        return self.db.query(CuratedResponse).filter(
            CuratedResponse.assistant_id == assistant_id
        ).order_by(CuratedResponse.id.asc()).all()

    def increment_usage(self, owner_id: int) -> int:
        counter = self.db.query(UsageCounter).filter(UsageCounter.owner_id == owner_id).first()
        if counter is None:
            counter = UsageCounter(owner_id=owner_id, assistant_messages=0)
            self.db.add(counter)
        counter.assistant_messages = (counter.assistant_messages or 0) + 1
        self.db.commit()
        return counter.assistant_messages

    def rollback(self) -> None:
        self.db.rollback()
