"""
Selection of the assistant that answers a conversation.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional
import logging

from ..errors import ConfigurationError
from ..models import AssistantBinding, Channel, Conversation
from ..models.settings import ScheduleSettings, parse_schedule
from .schedule import is_available_by_schedule
from .storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class RoutingDecision:
    """Outcome of routing: which assistant (if any) and whether it replies automatically."""
    assistant_id: Optional[int]
    auto_reply: bool
    reason: str

    @property
    def should_reply(self) -> bool:
        return self.assistant_id is not None and self.auto_reply


class AssistantRouter:
    """Resolve the assistant for a conversation.

    Order: enabled dialog override, disabled dialog override (nobody answers),
    enabled auto-reply binding, enabled default binding, first enabled binding.
    A chosen auto-replying assistant outside its operating hours stays assigned
    but is suppressed.
    """

    def __init__(self, storage: Storage, schedule_checker: Callable[[Optional[ScheduleSettings], Optional[datetime]], bool] = is_available_by_schedule):
        self.storage = storage
        self.schedule_checker = schedule_checker

    def route(self, conversation: Conversation, channel: Channel, now: Optional[datetime] = None) -> RoutingDecision:
        bindings = self.storage.list_bindings_by_channel(channel.id)
        override = self.storage.get_dialog_override(channel.id, conversation.external_user_id)

        if override is not None:
            if not override.enabled:
                logger.info(f"Dialog {conversation.external_user_id} on channel {channel.id} has assistant disabled")
                return RoutingDecision(None, False, "dialog_disabled")
            decision = RoutingDecision(override.assistant_id, bool(override.auto_reply), "dialog_override")
            schedule_binding = next((b for b in bindings if b.assistant_id == override.assistant_id), None)
        else:
            schedule_binding = self._select_binding(bindings)
            if schedule_binding is None:
                return RoutingDecision(None, False, "no_assistant")
            decision = RoutingDecision(schedule_binding.assistant_id, bool(schedule_binding.auto_reply), self._binding_reason(schedule_binding))

        if decision.auto_reply and schedule_binding is not None:
            if not self._in_schedule(schedule_binding, now):
                logger.info(f"Assistant {decision.assistant_id} is outside its schedule on channel {channel.id}")
                return RoutingDecision(decision.assistant_id, False, "out_of_schedule")

        return decision

    @staticmethod
    def _select_binding(bindings: List[AssistantBinding]) -> Optional[AssistantBinding]:
        enabled = [b for b in bindings if b.enabled]
        for predicate in (lambda b: b.auto_reply, lambda b: b.is_default):
            match = next((b for b in enabled if predicate(b)), None)
            if match is not None:
                return match
        return enabled[0] if enabled else None

    @staticmethod
    def _binding_reason(binding: AssistantBinding) -> str:
        if binding.auto_reply:
            return "auto_reply_binding"
        if binding.is_default:
            return "default_binding"
        return "first_enabled_binding"

    def _in_schedule(self, binding: AssistantBinding, now: Optional[datetime]) -> bool:
        try:
            schedule = parse_schedule(binding.settings)
        except ConfigurationError as e:
            logger.warning(f"Ignoring schedule of binding {binding.id}: {e}")
            return True
        return self.schedule_checker(schedule, now)
