"""
FastAPI dependencies for configuration snapshots and database sessions.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.config import ListenerConfig, ResolvedConfig


def get_config(request: Request) -> ResolvedConfig:
    """
    The current configuration snapshot.

    Taken once per request; a reload during the request does not affect it.
    """
    return request.app.state.config_holder.current


def get_listener(config: Annotated[ResolvedConfig, Depends(get_config)], request: Request) -> ListenerConfig:
    return config.listener(request.app.state.listener_name)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields a session committed at the end of the request."""
    async with request.app.state.database.session() as session:
        yield session


Config = Annotated[ResolvedConfig, Depends(get_config)]
Listener = Annotated[ListenerConfig, Depends(get_listener)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
