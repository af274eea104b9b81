"""
Database module for contentfactory.

Provides async SQLAlchemy engine with SQLite WAL mode,
session management, schema initialization and the stores.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from contentfactory.db.engine import (
    async_session,
    build_engine,
    build_session_factory,
    engine,
    get_session,
    shutdown,
)
from contentfactory.db.models import Agent, Base, Job, Post, Video
from contentfactory.db.store import AgentStore, EntityStore, JobStore

logger = logging.getLogger(__name__)


async def init_database(bind: Optional[AsyncEngine] = None) -> None:
    """Initialize database schema and seed the agent table (idempotent)."""
    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await AgentStore(build_session_factory(bind)).seed_agents()
    logger.info("Database initialized")


__all__ = [
    "Agent",
    "AgentStore",
    "Base",
    "EntityStore",
    "Job",
    "JobStore",
    "Post",
    "Video",
    "async_session",
    "build_engine",
    "build_session_factory",
    "engine",
    "get_session",
    "init_database",
    "shutdown",
]
