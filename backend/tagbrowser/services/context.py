"""Shared handles for code that touches both disk and database."""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tagbrowser.core.job_queue import JobQueue
from tagbrowser.core.path_mapper import PathMapper


@dataclass
class StorageContext:
    """One per running server.

    Background jobs open their own sessions from ``session_factory``;
    they never reuse the session of the request that scheduled them.
    """

    mapper: PathMapper
    queue: JobQueue
    session_factory: async_sessionmaker[AsyncSession]
