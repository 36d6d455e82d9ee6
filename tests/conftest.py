"""
Pytest configuration and fixtures.
"""

import pytest
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from chathub.models.base import Base
from chathub.models import Assistant, AssistantBinding, Channel
from chathub.config import Config, DatabaseConfig, OpenAIConfig, AdminConfig, DeliveryConfig
from chathub.database import get_session
from chathub.services.dedup import DeduplicationCache
from chathub.services.generation import ProviderMessage, RunStatus, ToolCall
from chathub.services.pipeline import ChatHubServices
from chathub.services.storage import SQLStorage
from chathub.api.main import create_app

# Set fast test timeouts for all tests
os.environ.setdefault("DATABASE_INIT_MAX_ATTEMPTS", "1")
os.environ.setdefault("DATABASE_INIT_RETRY_DELAY", "1")
os.environ.setdefault("DATABASE_CONNECTION_TIMEOUT", "5")
os.environ.setdefault("DATABASE_POOL_TIMEOUT", "5")


@pytest.fixture
def test_engine():
    """Test database engine."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def test_session(test_engine):
    """Test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(test_session):
    return SQLStorage(test_session)


@pytest.fixture
def test_config():
    """Test configuration."""
    return Config(
        database=DatabaseConfig(url="sqlite:///:memory:"),
        openai=OpenAIConfig(api_key="test-api-key", poll_interval=0.0),
        delivery=DeliveryConfig(rate_limit_backoff_seconds=0.0),
        admin=AdminConfig(enabled=True, username="admin", password="admin123")
    )


def _seed(session, channel_type: str, settings: dict, owner_id: int = 7, bindings=None, status: str = "active"):
    channel = Channel(name=f"{channel_type} channel", type=channel_type, settings=settings, created_by=owner_id, status=status)
    session.add(channel)
    session.commit()

    assistants = []
    for index, binding in enumerate(bindings if bindings is not None else [{"auto_reply": True, "is_default": True}]):
        assistant = Assistant(
            name=f"Assistant {index + 1}",
            openai_assistant_id=binding.get("handle", f"asst_{channel_type}_{index + 1}"),
            instructions="Ты вежливый консультант магазина.",
            created_by=owner_id
        )
        session.add(assistant)
        session.commit()
        session.add(AssistantBinding(
            assistant_id=assistant.id,
            channel_id=channel.id,
            enabled=binding.get("enabled", True),
            auto_reply=binding.get("auto_reply", True),
            is_default=binding.get("is_default", False),
            settings=binding.get("settings", {})
        ))
        session.commit()
        assistants.append(assistant)

    return SimpleNamespace(channel=channel, assistants=assistants, assistant=assistants[0] if assistants else None)


@pytest.fixture
def seed():
    """Factory creating a channel with bound assistants."""
    return _seed


@pytest.fixture
def make_provider():
    """Factory for a mocked generation provider driven by a list of run statuses."""
    def factory(statuses=("completed",), reply="Здравствуйте! Чем могу помочь?", tool_calls=None):
        tool_calls = tool_calls or [ToolCall(id="call_1", name="send_lead", arguments='{"name": "Иван", "phone": "+79990000000"}')]
        provider = Mock()
        provider.create_thread = AsyncMock(return_value="thread_1")
        provider.append_message = AsyncMock(return_value="msg_1")
        provider.start_run = AsyncMock(return_value="run_1")
        provider.get_run_status = AsyncMock(side_effect=[
            RunStatus(status, tool_calls if status == "requires_action" else []) for status in statuses
        ])
        provider.submit_tool_outputs = AsyncMock()
        provider.get_latest_messages = AsyncMock(return_value=[
            ProviderMessage(id="msg_2", role="assistant", texts=[reply] if reply else [], run_id="run_1"),
            ProviderMessage(id="msg_1", role="user", texts=["Привет"]),
        ])
        provider.update_assistant_instructions = AsyncMock()
        return provider
    return factory


@pytest.fixture
def make_adapter():
    """Factory for a mocked channel adapter."""
    def factory(send_result="out_1"):
        adapter = Mock()
        adapter.send = AsyncMock(return_value=send_result)
        adapter.mark_read = AsyncMock()
        return adapter
    return factory


@pytest.fixture
def make_services(test_config):
    def factory(provider, function_processor=None):
        return ChatHubServices(
            config=test_config,
            dedup_cache=DeduplicationCache(),
            provider=provider,
            function_processor=function_processor or Mock(execute=Mock(return_value={"success": True})),
            sleep=AsyncMock()
        )
    return factory


@pytest.fixture
def mock_provider(make_provider):
    return make_provider()


@pytest.fixture
def test_app(test_config, mock_provider):
    """Test FastAPI application."""
    return create_app(test_config, provider=mock_provider, function_processor=Mock())


@pytest.fixture
def app_session(test_app):
    """Session on the application's database."""
    sessions = get_session()
    session = next(sessions)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def test_client(test_app):
    """Test client."""
    with TestClient(test_app) as client:
        yield client


@pytest.fixture
def admin_auth():
    return ("admin", "admin123")
