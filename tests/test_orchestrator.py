"""
Tests for the generation orchestrator run loop.
"""

import asyncio
import json
import pytest
from unittest.mock import AsyncMock, Mock

from chathub.errors import ToolCallError
from chathub.services.generation import RunStatus, ToolCall
from chathub.services.orchestrator import Failure, GenerationOrchestrator, ReplyText, RunState, Suppressed
from chathub.services.router import RoutingDecision
from chathub.services.training import CuratedResponseService

VK = {"token": "t", "group_id": "1"}


@pytest.fixture
def conversation_and_assistant(storage, seed, test_session):
    seeded = seed(test_session, "vk", VK)
    conversation = storage.create_conversation(seeded.channel.id, "100")
    return conversation, seeded.assistant


def make_orchestrator(provider, storage, function_processor=None, max_attempts=30, max_tool_rounds=5):
    return GenerationOrchestrator(
        provider=provider,
        storage=storage,
        function_processor=function_processor or Mock(execute=Mock(return_value={"success": True, "notification_sent": True})),
        curated_responses=CuratedResponseService(storage, provider),
        poll_interval=1.0,
        max_attempts=max_attempts,
        max_tool_rounds=max_tool_rounds,
        sleep=AsyncMock()
    )


def test_provider_statuses_map_to_run_states():
    assert RunState.from_provider("queued") == RunState.QUEUED
    assert RunState.from_provider("in_progress") == RunState.IN_PROGRESS
    assert RunState.from_provider("requires_action") == RunState.REQUIRES_ACTION
    assert RunState.from_provider("completed") == RunState.COMPLETED
    assert RunState.from_provider("failed") == RunState.FAILED
    for unknown in ("cancelled", "expired", "incomplete", "something_new"):
        assert RunState.from_provider(unknown) == RunState.FAILED


class TestGenerationOrchestrator:
    """Test runs driven through the provider protocol."""

    @pytest.mark.asyncio
    async def test_single_tool_call_is_submitted_once(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        provider = make_provider(statuses=["queued", "requires_action", "in_progress", "completed"], reply="Заявка принята")
        processor = Mock(execute=Mock(return_value={"success": True, "notification_sent": True}))
        orchestrator = make_orchestrator(provider, storage, processor)

        result = await orchestrator.generate(conversation, assistant, "Хочу заказать")

        assert isinstance(result, ReplyText)
        assert result.text == "Заявка принята"
        processor.execute.assert_called_once()
        provider.submit_tool_outputs.assert_awaited_once()
        thread_id, run_id, outputs = provider.submit_tool_outputs.await_args.args
        assert (thread_id, run_id) == ("thread_1", "run_1")
        assert outputs[0]["tool_call_id"] == "call_1"
        assert json.loads(outputs[0]["output"]) == {"success": True, "notification_sent": True}

    @pytest.mark.asyncio
    async def test_thread_created_and_bound_once(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        provider = make_provider(statuses=["completed", "completed"])
        orchestrator = make_orchestrator(provider, storage)

        await orchestrator.generate(conversation, assistant, "Привет")
        await orchestrator.generate(conversation, assistant, "Ещё вопрос")

        provider.create_thread.assert_awaited_once()
        assert conversation.thread_id == "thread_1"
        assert provider.start_run.await_count == 2
        provider.start_run.assert_awaited_with("thread_1", assistant.openai_assistant_id)

    @pytest.mark.asyncio
    async def test_attachment_is_forwarded(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        provider = make_provider()

        await make_orchestrator(provider, storage).generate(conversation, assistant, "Смотрите", attachment="https://img.example/1.jpg")

        provider.append_message.assert_awaited_once_with("thread_1", "Смотрите", "https://img.example/1.jpg")

    @pytest.mark.asyncio
    async def test_curated_response_skips_provider(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        storage.create_curated_response(assistant.id, "цена?", "150 000 ₽")
        provider = make_provider()

        result = await make_orchestrator(provider, storage).generate(conversation, assistant, "  Цена? ")

        assert isinstance(result, ReplyText)
        assert result.text == "150 000 ₽"
        assert result.curated is True
        provider.create_thread.assert_not_awaited()
        provider.append_message.assert_not_awaited()
        provider.start_run.assert_not_awaited()
        provider.get_run_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_timeout_after_poll_budget(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        provider = make_provider(statuses=["in_progress"] * 10)
        orchestrator = make_orchestrator(provider, storage, max_attempts=3)

        result = await orchestrator.generate(conversation, assistant, "Привет")

        assert result == Failure("timeout", result.detail)
        assert provider.get_run_status.await_count == 3
        assert orchestrator.sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_attempt_counter_resets_after_tool_outputs(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        statuses = ["in_progress", "in_progress", "requires_action", "in_progress", "in_progress", "completed"]
        provider = make_provider(statuses=statuses)
        orchestrator = make_orchestrator(provider, storage, max_attempts=3)

        result = await orchestrator.generate(conversation, assistant, "Привет")

        assert isinstance(result, ReplyText)

    @pytest.mark.asyncio
    async def test_failed_run(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        provider = make_provider(statuses=["queued", "failed"])

        result = await make_orchestrator(provider, storage).generate(conversation, assistant, "Привет")

        assert isinstance(result, Failure)
        assert result.reason == "run_failed"

    @pytest.mark.asyncio
    async def test_expired_run_is_failure(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        provider = make_provider(statuses=["expired"])

        result = await make_orchestrator(provider, storage).generate(conversation, assistant, "Привет")

        assert result.reason == "run_failed"

    @pytest.mark.asyncio
    async def test_completed_without_text_is_malformed(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        provider = make_provider(reply=None)

        result = await make_orchestrator(provider, storage).generate(conversation, assistant, "Привет")

        assert isinstance(result, Failure)
        assert result.reason == "malformed_reply"

    @pytest.mark.asyncio
    async def test_tool_error_becomes_structured_output(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        provider = make_provider(statuses=["requires_action", "completed"])
        processor = Mock(execute=Mock(side_effect=ToolCallError("bad arguments", tool_name="send_lead")))

        result = await make_orchestrator(provider, storage, processor).generate(conversation, assistant, "Привет")

        assert isinstance(result, ReplyText)
        outputs = provider.submit_tool_outputs.await_args.args[2]
        output = json.loads(outputs[0]["output"])
        assert output["success"] is False
        assert output["error"] == "bad arguments"

    @pytest.mark.asyncio
    async def test_all_tool_calls_submitted_together(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        calls = [ToolCall(id="call_1", name="a", arguments="{}"), ToolCall(id="call_2", name="b", arguments="{}")]
        provider = make_provider(statuses=["requires_action", "completed"], tool_calls=calls)

        await make_orchestrator(provider, storage).generate(conversation, assistant, "Привет")

        provider.submit_tool_outputs.assert_awaited_once()
        outputs = provider.submit_tool_outputs.await_args.args[2]
        assert [o["tool_call_id"] for o in outputs] == ["call_1", "call_2"]

    @pytest.mark.asyncio
    async def test_tool_rounds_are_capped(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        provider = make_provider(statuses=["requires_action"] * 5)

        result = await make_orchestrator(provider, storage, max_tool_rounds=2).generate(conversation, assistant, "Привет")

        assert result.reason == "run_failed"
        assert provider.submit_tool_outputs.await_count == 2

    @pytest.mark.asyncio
    async def test_assistant_without_handle(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        assistant.openai_assistant_id = None
        provider = make_provider()

        result = await make_orchestrator(provider, storage).generate(conversation, assistant, "Привет")

        assert result.reason == "assistant_not_configured"
        provider.start_run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_exception(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        provider = make_provider()
        provider.start_run.side_effect = RuntimeError("boom")

        result = await make_orchestrator(provider, storage).generate(conversation, assistant, "Привет")

        assert result.reason == "provider_error"
        assert "boom" in result.detail

    @pytest.mark.asyncio
    async def test_cancel_event_stops_run(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        provider = make_provider()
        cancel_event = asyncio.Event()
        cancel_event.set()

        result = await make_orchestrator(provider, storage).generate(conversation, assistant, "Привет", cancel_event=cancel_event)

        assert result.reason == "cancelled"
        provider.create_thread.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_suppressed_decision(self, make_provider, storage, conversation_and_assistant):
        conversation, assistant = conversation_and_assistant
        provider = make_provider()
        decision = RoutingDecision(assistant.id, False, "out_of_schedule")

        result = await make_orchestrator(provider, storage).generate(conversation, assistant, "Привет", decision=decision)

        assert result == Suppressed("out_of_schedule")
        provider.create_thread.assert_not_awaited()
