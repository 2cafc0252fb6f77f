"""Persistence layer for Summadoc.

This module provides:
- Async PostgreSQL engine and session factory
- The user aggregate table with its embedded JSON document list
- UserRepository with versioned whole-list replace
"""

from summadoc.persistence.db import (
    build_engine,
    build_session_factory,
    get_engine,
    init_db,
    session_context,
)
from summadoc.persistence.repositories import UserRepository, translate_store_errors
from summadoc.persistence.tables import UserTable

__all__ = [
    # DB
    "build_engine",
    "build_session_factory",
    "get_engine",
    "init_db",
    "session_context",
    # Tables
    "UserTable",
    # Repositories
    "UserRepository",
    "translate_store_errors",
]
