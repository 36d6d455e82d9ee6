"""
Database connection and session management for ChatHub.
"""

from .connection import get_database_url, create_engine, get_session, session_scope, init_database

__all__ = ["get_database_url", "create_engine", "get_session", "session_scope", "init_database"]
