"""
Abstract base class for channel adapters.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging

from ..errors import ConfigurationError
from ..models import Channel
from ..models.settings import AvitoSettings, VkSettings, WebSettings, parse_channel_settings

logger = logging.getLogger(__name__)


@dataclass
class WebhookEvent:
    """Normalized inbound webhook.

    ``kind`` is ``message`` for end-user messages, ``confirmation`` for
    platform handshakes and ``ignored`` for everything the pipeline skips.
    ``dialog_id`` identifies the end-user dialog and is where replies go.
    """
    kind: str
    dialog_id: Optional[str] = None
    user_id: Optional[str] = None
    message_id: Optional[str] = None
    text: str = ""
    attachment: Optional[str] = None
    reason: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_message(self) -> bool:
        return self.kind == "message"

    @classmethod
    def ignored(cls, reason: str, raw: Optional[Dict[str, Any]] = None) -> "WebhookEvent":
        return cls(kind="ignored", reason=reason, raw=raw or {})


class ChannelAdapter(ABC):
    """Abstract base class for channel adapters."""

    channel_type: str = ""

    @abstractmethod
    def parse_webhook(self, payload: Dict[str, Any]) -> WebhookEvent:
        """Parse a webhook body from the channel platform."""
        pass

    @abstractmethod
    def acknowledgment(self, event: Optional[WebhookEvent] = None) -> Any:
        """Body the platform expects in the webhook response."""
        pass

    @abstractmethod
    async def send(self, target: str, text: str, attachment: Optional[str] = None) -> Optional[str]:
        """Send a message to a dialog and return the platform message id."""
        pass

    @abstractmethod
    async def mark_read(self, target: str) -> None:
        """Mark a dialog as read. Failures are logged, never raised."""
        pass


class ChannelAdapterFactory:
    """Factory for creating channel adapters."""

    @staticmethod
    def create(channel: Channel, **kwargs) -> ChannelAdapter:
        """Create the adapter for a channel from its parsed settings."""
        settings = parse_channel_settings(channel.type, channel.settings)

        if isinstance(settings, VkSettings):
            from .vk import VkAdapter
            return VkAdapter(settings, **kwargs)
        elif isinstance(settings, AvitoSettings):
            from .avito import AvitoAdapter
            return AvitoAdapter(settings, **kwargs)
        elif isinstance(settings, WebSettings):
            from .web import WebAdapter
            return WebAdapter(settings)
        else:
            raise ConfigurationError(f"Unsupported channel type: {channel.type}")
