"""
Channel and assistant assignment models.
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON, UniqueConstraint
from datetime import datetime

from .base import Base


class Channel(Base):
    """A configured messaging surface (VK community, Avito account, web widget)."""

    __tablename__ = "channels"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # 'vk', 'avito' or 'web'
    status = Column(String, nullable=False, default="active")
    settings = Column(JSON, nullable=False, default=dict)  # Parsed by chathub.models.settings
    created_by = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self):
        return f"<Channel(id={self.id}, type='{self.type}', status='{self.status}')>"


class Assistant(Base):
    """Assistant hosted by the generation provider."""

    __tablename__ = "assistants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    openai_assistant_id = Column(String, nullable=True, index=True)  # External assistant handle
    instructions = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Assistant(id={self.id}, name='{self.name}')>"


class AssistantBinding(Base):
    """Assistant attached to a channel."""

    __tablename__ = "assistant_channels"

    id = Column(Integer, primary_key=True, index=True)
    assistant_id = Column(Integer, nullable=False, index=True)
    channel_id = Column(Integer, nullable=False, index=True)
    enabled = Column(Boolean, nullable=False, default=True)
    auto_reply = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    settings = Column(JSON, nullable=True, default=dict)  # {"schedule": {...}}
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return (
            f"<AssistantBinding(id={self.id}, assistant_id={self.assistant_id}, "
            f"channel_id={self.channel_id}, is_default={self.is_default})>"
        )


class DialogOverride(Base):
    """Per-dialog assistant assignment that takes precedence over channel bindings."""

    __tablename__ = "dialog_assistants"

    id = Column(Integer, primary_key=True, index=True)
    channel_id = Column(Integer, nullable=False, index=True)
    dialog_id = Column(String, nullable=False)  # VK peer id, Avito chat id or web visitor id
    assistant_id = Column(Integer, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    auto_reply = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('channel_id', 'dialog_id', name='uq_dialog_assistants_channel_dialog'),
    )

    def __repr__(self):
        return f"<DialogOverride(channel_id={self.channel_id}, dialog_id='{self.dialog_id}', enabled={self.enabled})>"


class CuratedResponse(Base):
    """Operator-approved answer to a specific user query."""

    __tablename__ = "assistant_examples"

    id = Column(Integer, primary_key=True, index=True)
    assistant_id = Column(Integer, nullable=False, index=True)
    user_query = Column(Text, nullable=False)
    normalized_query = Column(Text, nullable=False, index=True)
    original_response = Column(Text, nullable=True)
    corrected_response = Column(Text, nullable=False)
    channel_id = Column(Integer, nullable=True)
    conversation_id = Column(Integer, nullable=True)
    dialog_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<CuratedResponse(id={self.id}, assistant_id={self.assistant_id})>"


class UsageCounter(Base):
    """Number of assistant replies delivered on behalf of a channel owner."""

    __tablename__ = "usage_counters"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, nullable=False, unique=True, index=True)
    assistant_messages = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
