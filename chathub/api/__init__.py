"""
API endpoints for ChatHub.
"""

from .main import create_app
from .vk import vk_router
from .avito import avito_router
from .web import web_router
from .admin import admin_router

__all__ = ["create_app", "vk_router", "avito_router", "web_router", "admin_router"]
