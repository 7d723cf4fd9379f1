"""Request dependencies backed by resources created at startup."""

from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from bikeshop_sync.api.client import BlingAPIClient
from bikeshop_sync.core.token_manager import TokenManager


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """One session per request."""
    async with request.app.state.session_factory() as session:
        yield session


def get_token_manager(request: Request) -> TokenManager:
    return request.app.state.token_manager


def get_api_client(request: Request) -> BlingAPIClient:
    return request.app.state.api_client
