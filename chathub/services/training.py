"""
Curated responses: operator corrections that override generated answers.
"""

from typing import Iterable, Optional
import logging

from ..errors import NotFoundError
from ..models import CuratedResponse
from .generation import GenerationProvider
from .storage import Storage, normalize_query

logger = logging.getLogger(__name__)


def build_instructions(instructions: Optional[str], examples: Iterable[CuratedResponse]) -> str:
    """Append the curated examples block to the assistant's base instructions."""
    formatted = "".join(
        f"Когда пользователь спрашивает: \"{example.user_query}\"\n"
        f"Отвечай в стиле: \"{example.corrected_response}\"\n\n"
        for example in examples
    )
    return f"{instructions or ''}\n\nПРИМЕРЫ ОТВЕТОВ:\n{formatted}"


class CuratedResponseService:
    """Stores operator corrections and looks them up for incoming queries."""

    def __init__(self, storage: Storage, provider: Optional[GenerationProvider] = None):
        self.storage = storage
        self.provider = provider

    def find_corrected_response(self, assistant_id: int, user_query: str) -> Optional[str]:
        normalized = normalize_query(user_query)
        if not normalized:
            return None
        example = self.storage.find_curated_response(assistant_id, normalized)
        if example is None:
            return None
        logger.info(f"Found curated response {example.id} for assistant {assistant_id}")
        return example.corrected_response

    async def save_correction(
        self,
        assistant_id: int,
        user_query: str,
        corrected_response: str,
        original_response: Optional[str] = None,
        channel_id: Optional[int] = None,
        conversation_id: Optional[int] = None,
        dialog_id: Optional[str] = None
    ) -> CuratedResponse:
        """Store a correction and push refreshed instructions to the provider.

        The example is committed before the provider is called, so a provider
        failure leaves the correction in effect for exact-match lookups.
        """
        assistant = self.storage.get_assistant(assistant_id)
        if assistant is None:
            raise NotFoundError(f"Assistant {assistant_id} not found")

        example = self.storage.create_curated_response(
            assistant_id=assistant_id,
            user_query=user_query,
            corrected_response=corrected_response,
            original_response=original_response,
            channel_id=channel_id,
            conversation_id=conversation_id,
            dialog_id=dialog_id
        )
        logger.info(f"Saved curated response {example.id} for assistant {assistant_id}")

        if self.provider is not None and assistant.openai_assistant_id:
            instructions = build_instructions(assistant.instructions, self.storage.list_curated_responses(assistant_id))
            await self.provider.update_assistant_instructions(assistant.openai_assistant_id, instructions)
        else:
            logger.warning(f"Assistant {assistant_id} has no provider handle, instructions not refreshed")

        return example
