"""
Database models for ChatHub.
"""

from .channel import Channel, Assistant, AssistantBinding, DialogOverride, CuratedResponse, UsageCounter
from .conversation import Conversation, Message

__all__ = ["Channel", "Assistant", "AssistantBinding", "DialogOverride", "CuratedResponse", "UsageCounter", "Conversation", "Message"]
