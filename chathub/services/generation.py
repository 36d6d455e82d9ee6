"""
Generation provider: the hosted assistant runtime (threads, runs, tool calls).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

import openai

from ..config import OpenAIConfig
from ..errors import NotFoundError, RateLimitError, TransientProviderError

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    """A function call requested by a run."""
    id: str
    name: str
    arguments: str = "{}"


@dataclass
class RunStatus:
    """Provider status of a run plus any tool calls it is waiting on."""
    status: str
    required_tool_calls: List[ToolCall] = field(default_factory=list)
    last_error: Optional[str] = None


@dataclass
class ProviderMessage:
    """A thread message reduced to its role and text segments."""
    id: str
    role: str
    texts: List[str] = field(default_factory=list)
    run_id: Optional[str] = None


class GenerationProvider(ABC):
    """Abstract hosted-assistant runtime."""

    @abstractmethod
    async def create_thread(self) -> str:
        pass

    @abstractmethod
    async def append_message(self, thread_id: str, text: str, attachment: Optional[str] = None) -> str:
        """Append a user message; ``attachment`` is an image URL."""
        pass

    @abstractmethod
    async def start_run(self, thread_id: str, assistant_handle: str) -> str:
        pass

    @abstractmethod
    async def get_run_status(self, thread_id: str, run_id: str) -> RunStatus:
        pass

    @abstractmethod
    async def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: List[Dict[str, str]]) -> None:
        pass

    @abstractmethod
    async def get_latest_messages(self, thread_id: str) -> List[ProviderMessage]:
        """Thread messages, newest first."""
        pass

    @abstractmethod
    async def update_assistant_instructions(self, assistant_handle: str, instructions: str) -> None:
        pass


def _translate_error(e: Exception, action: str) -> Exception:
    if isinstance(e, openai.RateLimitError):
        return RateLimitError(f"OpenAI rate limit while trying to {action}: {e}")
    if isinstance(e, openai.NotFoundError):
        return NotFoundError(f"OpenAI resource not found while trying to {action}: {e}")
    if isinstance(e, (openai.APIConnectionError, openai.InternalServerError)):
        return TransientProviderError(f"OpenAI unavailable while trying to {action}: {e}")
    return e


class OpenAIAssistantsProvider(GenerationProvider):
    """Generation provider backed by the OpenAI Assistants API."""

    def __init__(self, config: OpenAIConfig, client: Optional[openai.AsyncOpenAI] = None):
        self.config = config
        self.client = client or openai.AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url
        )

    async def create_thread(self) -> str:
        try:
            thread = await self.client.beta.threads.create()
        except openai.OpenAIError as e:
            raise _translate_error(e, "create a thread") from e
        logger.debug(f"Created OpenAI thread {thread.id}")
        return thread.id

    async def append_message(self, thread_id: str, text: str, attachment: Optional[str] = None) -> str:
        content: Any = text
        if attachment:
            content = [
                {"type": "text", "text": text or "Изображение"},
                {"type": "image_url", "image_url": {"url": attachment}},
            ]
        try:
            message = await self.client.beta.threads.messages.create(
                thread_id=thread_id,
                role="user",
                content=content
            )
        except openai.OpenAIError as e:
            raise _translate_error(e, "append a message") from e
        return message.id

    async def start_run(self, thread_id: str, assistant_handle: str) -> str:
        try:
            run = await self.client.beta.threads.runs.create(
                thread_id=thread_id,
                assistant_id=assistant_handle
            )
        except openai.OpenAIError as e:
            raise _translate_error(e, "start a run") from e
        logger.info(f"Started run {run.id} on thread {thread_id} for assistant {assistant_handle}")
        return run.id

    async def get_run_status(self, thread_id: str, run_id: str) -> RunStatus:
        try:
            run = await self.client.beta.threads.runs.retrieve(run_id, thread_id=thread_id)
        except openai.OpenAIError as e:
            raise _translate_error(e, "poll a run") from e

        tool_calls = []
        required_action = getattr(run, "required_action", None)
        if required_action is not None and required_action.submit_tool_outputs is not None:
            for call in required_action.submit_tool_outputs.tool_calls:
                tool_calls.append(ToolCall(
                    id=call.id,
                    name=call.function.name,
                    arguments=call.function.arguments or "{}"
                ))

        last_error = None
        if getattr(run, "last_error", None) is not None:
            last_error = f"{run.last_error.code}: {run.last_error.message}"

        return RunStatus(status=run.status, required_tool_calls=tool_calls, last_error=last_error)

    async def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: List[Dict[str, str]]) -> None:
        try:
            await self.client.beta.threads.runs.submit_tool_outputs(
                run_id,
                thread_id=thread_id,
                tool_outputs=outputs
            )
        except openai.OpenAIError as e:
            raise _translate_error(e, "submit tool outputs") from e
        logger.info(f"Submitted {len(outputs)} tool outputs to run {run_id}")

    async def get_latest_messages(self, thread_id: str) -> List[ProviderMessage]:
        try:
            page = await self.client.beta.threads.messages.list(thread_id=thread_id, order="desc", limit=10)
        except openai.OpenAIError as e:
            raise _translate_error(e, "read thread messages") from e

        messages = []
        for message in page.data:
            texts = [part.text.value for part in message.content if part.type == "text" and part.text.value]
            messages.append(ProviderMessage(
                id=message.id,
                role=message.role,
                texts=texts,
                run_id=getattr(message, "run_id", None)
            ))
        return messages

    async def update_assistant_instructions(self, assistant_handle: str, instructions: str) -> None:
        try:
            await self.client.beta.assistants.update(assistant_handle, instructions=instructions)
        except openai.OpenAIError as e:
            raise _translate_error(e, "update assistant instructions") from e
        logger.info(f"Updated instructions of OpenAI assistant {assistant_handle}")
