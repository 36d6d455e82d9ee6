"""
Main FastAPI application for ChatHub.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional
import asyncio
import logging

from ..database import init_database, create_engine
from ..config import Config, set_config
from ..services.dedup import DeduplicationCache
from ..services.functions import FunctionProcessor, NotificationFunctionProcessor
from ..services.generation import GenerationProvider, OpenAIAssistantsProvider
from ..services.pipeline import ChatHubServices
from .vk import vk_router
from .avito import avito_router
from .web import web_router
from .admin import admin_router

logger = logging.getLogger(__name__)


def build_services(
    config: Config,
    provider: Optional[GenerationProvider] = None,
    function_processor: Optional[FunctionProcessor] = None
) -> ChatHubServices:
    """Create the long-lived collaborators shared by all requests."""
    if function_processor is None:
        function_processor = NotificationFunctionProcessor(
            bot_token=config.notifications.telegram_bot_token,
            chat_id=config.notifications.telegram_chat_id
        )
    return ChatHubServices(
        config=config,
        dedup_cache=DeduplicationCache(ttl_seconds=config.dedup.ttl_hours * 3600),
        provider=provider or OpenAIAssistantsProvider(config.openai),
        function_processor=function_processor
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    services: ChatHubServices = app.state.services
    stop_event = asyncio.Event()
    sweeper = asyncio.create_task(
        services.dedup_cache.run_sweeper(services.config.dedup.sweep_interval_seconds, stop_event)
    )
    try:
        yield
    finally:
        stop_event.set()
        await sweeper
        pending = list(services.background_tasks)
        if pending:
            logger.info(f"Waiting for {len(pending)} background message tasks")
            await asyncio.gather(*pending, return_exceptions=True)


def create_app(
    app_config: Config,
    provider: Optional[GenerationProvider] = None,
    function_processor: Optional[FunctionProcessor] = None
) -> FastAPI:
    """Create FastAPI application."""
    set_config(app_config)

    app = FastAPI(
        title="ChatHub",
        description="Routes channel messages to OpenAI assistants and delivers their replies",
        version="0.1.0",
        lifespan=lifespan
    )

    app.state.services = build_services(app_config, provider, function_processor)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Initialize database
    engine, database_url = create_engine(app_config.database)
    init_database(engine, database_url)

    # Include routers
    app.include_router(vk_router, prefix="/api/vk", tags=["vk"])
    app.include_router(avito_router, prefix="/api/avito", tags=["avito"])
    app.include_router(web_router, prefix="/api/web", tags=["web"])

    if app_config.admin.enabled:
        app.include_router(admin_router, prefix="/admin", tags=["admin"])

    @app.get("/api/ping")
    async def ping():
        return {"message": "ChatHub is running"}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app
