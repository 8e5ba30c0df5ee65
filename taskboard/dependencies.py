"""
Request-scoped access to the resources built in the application lifespan.
"""
from typing import AsyncIterator

import httpx
from fastapi import Depends, Request
from sqlmodel.ext.asyncio.session import AsyncSession
from typing_extensions import Annotated

from taskboard.cache.layer import CacheLayer
from taskboard.core.config import Settings
from taskboard.storage import ObjectStorage


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    async for session in request.app.state.database.session():
        yield session


def get_cache(request: Request) -> CacheLayer:
    return request.app.state.cache


def get_storage(request: Request) -> ObjectStorage | None:
    return request.app.state.storage


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
SessionDep = Annotated[AsyncSession, Depends(get_db)]
CacheDep = Annotated[CacheLayer, Depends(get_cache)]
StorageDep = Annotated[ObjectStorage | None, Depends(get_storage)]
HttpClientDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]
