"""API dependencies: DB sessions and the shared storage context."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tagbrowser.db.database import get_session
from tagbrowser.services.context import StorageContext

# ---------------------------------------------------------------------------
# Database dependency
# ---------------------------------------------------------------------------

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async for session in get_session():
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db)]

# ---------------------------------------------------------------------------
# Storage context (set up by the application lifespan)
# ---------------------------------------------------------------------------

def get_storage(request: Request) -> StorageContext:
    """The app-wide path mapper, job queue and session factory."""
    return request.app.state.storage


Storage = Annotated[StorageContext, Depends(get_storage)]
