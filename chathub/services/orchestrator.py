"""
Drives one assistant run from user input to reply text.

A run moves through the states of ``RunState``. The orchestrator polls the
provider at a fixed interval while the run is queued or in progress, answers
``requires_action`` by executing every requested tool call and submitting all
outputs together, and reads the newest assistant message once the run
completes. Every outcome is returned as a value; nothing is raised to the
caller.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
import asyncio
import json
import logging

from ..errors import GenerationTimeout
from ..models import Assistant, Conversation
from .functions import FunctionProcessor
from .generation import GenerationProvider, ToolCall
from .router import RoutingDecision
from .storage import Storage
from .training import CuratedResponseService

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    CREATED = "created"
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @classmethod
    def from_provider(cls, status: str) -> "RunState":
        # cancelled, cancelling, expired and incomplete all end the run without a reply
        mapping = {
            "queued": cls.QUEUED,
            "in_progress": cls.IN_PROGRESS,
            "requires_action": cls.REQUIRES_ACTION,
            "completed": cls.COMPLETED,
            "failed": cls.FAILED,
        }
        return mapping.get(status, cls.FAILED)


@dataclass
class RunContext:
    assistant_handle: str
    thread_id: Optional[str] = None
    run_id: Optional[str] = None
    state: RunState = RunState.CREATED
    tool_outputs: List[Dict[str, str]] = field(default_factory=list)
    attempts: int = 0
    tool_rounds: int = 0


@dataclass
class ReplyText:
    text: str
    curated: bool = False
    run_id: Optional[str] = None


@dataclass
class Suppressed:
    reason: str


@dataclass
class Failure:
    reason: str  # timeout, run_failed, malformed_reply, provider_error, cancelled, assistant_not_configured
    detail: Optional[str] = None


GenerationResult = Union[ReplyText, Suppressed, Failure]


class _Cancelled(Exception):
    pass


class GenerationOrchestrator:
    """Runs assistants through the provider's thread/run protocol."""

    def __init__(
        self,
        provider: GenerationProvider,
        storage: Storage,
        function_processor: Optional[FunctionProcessor],
        curated_responses: Optional[CuratedResponseService],
        poll_interval: float = 1.0,
        max_attempts: int = 30,
        max_tool_rounds: int = 5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.provider = provider
        self.storage = storage
        self.function_processor = function_processor
        self.curated_responses = curated_responses
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.max_tool_rounds = max_tool_rounds
        self.sleep = sleep

    async def generate(
        self,
        conversation: Conversation,
        assistant: Assistant,
        user_text: str,
        attachment: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        decision: Optional[RoutingDecision] = None
    ) -> GenerationResult:
        if decision is not None and not decision.should_reply:
            return Suppressed(decision.reason)

        if self.curated_responses is not None and user_text:
            curated = self.curated_responses.find_corrected_response(assistant.id, user_text)
            if curated:
                return ReplyText(curated, curated=True)

        if not assistant.openai_assistant_id:
            logger.error(f"Assistant {assistant.id} has no provider handle")
            return Failure("assistant_not_configured", f"Assistant {assistant.id} has no provider handle")

        context = RunContext(assistant_handle=assistant.openai_assistant_id)
        try:
            self._check_cancelled(cancel_event)
            context.thread_id = await self._ensure_thread(conversation)

            self._check_cancelled(cancel_event)
            await self.provider.append_message(context.thread_id, user_text, attachment)

            self._check_cancelled(cancel_event)
            context.run_id = await self.provider.start_run(context.thread_id, context.assistant_handle)
            context.state = RunState.QUEUED

            return await self._drive(context, cancel_event)
        except _Cancelled:
            logger.info(f"Generation for conversation {conversation.id} cancelled in state {context.state.value}")
            return Failure("cancelled")
        except GenerationTimeout as e:
            logger.error(f"Generation timed out for conversation {conversation.id}: {e}")
            return Failure("timeout", str(e))
        except Exception as e:
            logger.error(f"Provider error for conversation {conversation.id}: {e}", exc_info=True)
            return Failure("provider_error", str(e))

    async def _ensure_thread(self, conversation: Conversation) -> str:
        if conversation.thread_id:
            return conversation.thread_id
        thread_id = await self.provider.create_thread()
        return self.storage.bind_thread(conversation, thread_id)

    async def _drive(self, context: RunContext, cancel_event: Optional[asyncio.Event]) -> GenerationResult:
        while True:
            self._check_cancelled(cancel_event)
            status = await self.provider.get_run_status(context.thread_id, context.run_id)
            context.state = RunState.from_provider(status.status)
            logger.debug(f"Run {context.run_id} status {status.status} (attempt {context.attempts})")

            if context.state == RunState.COMPLETED:
                return await self._read_reply(context)

            if context.state == RunState.FAILED:
                logger.error(f"Run {context.run_id} ended with status {status.status}: {status.last_error}")
                return Failure("run_failed", status.last_error or status.status)

            if context.state == RunState.REQUIRES_ACTION:
                if context.tool_rounds >= self.max_tool_rounds:
                    logger.error(f"Run {context.run_id} exceeded {self.max_tool_rounds} tool rounds")
                    return Failure("run_failed", "tool round limit reached")
                context.tool_outputs = await self._execute_tool_calls(status.required_tool_calls)
                self._check_cancelled(cancel_event)
                await self.provider.submit_tool_outputs(context.thread_id, context.run_id, context.tool_outputs)
                context.tool_rounds += 1
                context.attempts = 0
            else:
                context.attempts += 1
                if context.attempts >= self.max_attempts:
                    context.state = RunState.TIMED_OUT
                    raise GenerationTimeout(f"Run {context.run_id} not finished after {self.max_attempts} polls")

            await self.sleep(self.poll_interval)

    async def _execute_tool_calls(self, tool_calls: List[ToolCall]) -> List[Dict[str, str]]:
        outputs = []
        for tool_call in tool_calls:
            result = await self._execute_tool_call(tool_call)
            outputs.append({
                "tool_call_id": tool_call.id,
                "output": json.dumps(result, ensure_ascii=False)
            })
        return outputs

    async def _execute_tool_call(self, tool_call: ToolCall) -> Dict[str, Any]:
        if self.function_processor is None:
            return {"success": False, "error": "No function processor configured", "message": f"Function {tool_call.name} is unavailable"}
        try:
            return await asyncio.to_thread(self.function_processor.execute, tool_call)
        except Exception as e:
            logger.error(f"Function {tool_call.name} failed: {e}", exc_info=True)
            return {"success": False, "error": str(e), "message": f"Function {tool_call.name} failed"}

    async def _read_reply(self, context: RunContext) -> GenerationResult:
        messages = await self.provider.get_latest_messages(context.thread_id)
        reply = next((m for m in messages if m.role == "assistant"), None)
        if reply is None or not reply.texts:
            logger.error(f"Run {context.run_id} completed without an assistant text reply")
            return Failure("malformed_reply", "no assistant text in thread")
        return ReplyText(reply.texts[0], run_id=context.run_id)

    @staticmethod
    def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise _Cancelled()
