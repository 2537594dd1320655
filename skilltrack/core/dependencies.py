"""Shared dependencies for Skill Track Service."""

from typing import AsyncGenerator, Optional
import httpx
from aiocache import Cache
import structlog
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from skilltrack.core.config import settings
from skilltrack.core.database import get_db
from skilltrack.gateway.base import PersistenceGateway
from skilltrack.gateway.http import HttpGateway
from skilltrack.gateway.sql import SqlGateway
from skilltrack.progression.cascade import CompletionCascade

logger = structlog.get_logger()

# Global instances
_cache: Optional[Cache] = None
_http_client: Optional[httpx.AsyncClient] = None


async def get_cache() -> Cache:
    """Get the track cache, falling back to memory when the backend is unreachable."""
    global _cache

    if _cache is None:
        try:
            _cache = Cache.from_url(settings.CACHE_URL)
            await _cache.exists("healthcheck")
            logger.info("Track cache ready", url=settings.CACHE_URL)
        except Exception as e:
            logger.warning("Track cache not available, using memory", error=str(e))
            _cache = Cache(Cache.MEMORY)

    return _cache


async def get_http_client() -> httpx.AsyncClient:
    """Get HTTP client for backend communication."""
    global _http_client

    if _http_client is None:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.BACKEND_TIMEOUT),
            headers={
                "Content-Type": "application/json",
                "User-Agent": f"{settings.SERVICE_NAME}/{settings.APP_VERSION}"
            }
        )

    return _http_client


async def close_http_client() -> None:
    global _http_client

    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


async def get_gateway(db: AsyncSession = Depends(get_db)) -> AsyncGenerator[PersistenceGateway, None]:
    """Persistence gateway selected by ``GATEWAY_BACKEND``."""
    if settings.GATEWAY_BACKEND == "http":
        yield HttpGateway(await get_http_client(), settings.BACKEND_URL)
    else:
        yield SqlGateway(db)


async def get_cascade(gateway: PersistenceGateway = Depends(get_gateway)) -> CompletionCascade:
    return CompletionCascade(gateway)
