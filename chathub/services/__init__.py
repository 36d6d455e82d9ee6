"""
Services for ChatHub.
"""

from .dedup import DeduplicationCache
from .storage import Storage, SQLStorage
from .conversations import ConversationResolver
from .router import AssistantRouter, RoutingDecision
from .generation import GenerationProvider, OpenAIAssistantsProvider
from .orchestrator import GenerationOrchestrator, RunState
from .functions import FunctionProcessor, NotificationFunctionProcessor
from .training import CuratedResponseService
from .channel import ChannelAdapter, ChannelAdapterFactory, WebhookEvent
from .delivery import DeliveryService, DeliveryResult
from .pipeline import ChatHubServices, PipelineResult, handle_inbound_message

__all__ = [
    "DeduplicationCache",
    "Storage",
    "SQLStorage",
    "ConversationResolver",
    "AssistantRouter",
    "RoutingDecision",
    "GenerationProvider",
    "OpenAIAssistantsProvider",
    "GenerationOrchestrator",
    "RunState",
    "FunctionProcessor",
    "NotificationFunctionProcessor",
    "CuratedResponseService",
    "ChannelAdapter",
    "ChannelAdapterFactory",
    "WebhookEvent",
    "DeliveryService",
    "DeliveryResult",
    "ChatHubServices",
    "PipelineResult",
    "handle_inbound_message",
]
