"""
Conversation and message models for chat history.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from .base import Base


class Conversation(Base):
    """Durable thread between one external end-user and one channel."""

    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    channel_id = Column(Integer, nullable=False, index=True)
    external_user_id = Column(String, nullable=False)  # VK peer id, Avito chat id, web visitor id
    assistant_id = Column(Integer, nullable=True)
    status = Column(String, nullable=False, default="active")
    thread_id = Column(String, nullable=True)  # Provider thread handle, written once
    created_by = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime, default=datetime.utcnow)
    last_message_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('channel_id', 'external_user_id', name='uq_conversations_channel_user'),
    )

    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Conversation(id={self.id}, channel_id={self.channel_id}, external_user_id='{self.external_user_id}')>"


class Message(Base):
    """Individual message in a conversation."""

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False, index=True)
    sender_type = Column(String, nullable=False)  # 'user', 'assistant', 'operator', 'system'
    content = Column(Text, nullable=False)
    # externalMessageId for inbound messages, repliesTo for assistant replies
    message_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    conversation = relationship("Conversation", back_populates="messages")

    @property
    def external_message_id(self):
        return (self.message_metadata or {}).get("externalMessageId")

    @property
    def replies_to(self):
        return (self.message_metadata or {}).get("repliesTo")

    def __repr__(self):
        return f"<Message(id={self.id}, sender_type='{self.sender_type}', conversation_id={self.conversation_id})>"
