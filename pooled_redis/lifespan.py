"""
FastAPI lifespan that owns a PoolManager.

Usage:
    manager = PoolManager()
    cache = manager.from_url(settings.redis_url)
    app = FastAPI(lifespan=redis_lifespan(manager))

On startup every managed facade warms its pool; on shutdown they are all
drained, so no connection outlives the app.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import structlog
from fastapi import FastAPI

from pooled_redis.manager import PoolManager, default_manager

log = structlog.get_logger()


def redis_lifespan(
    manager: PoolManager | None = None,
    *,
    warm_up: bool = True,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    if manager is None:
        manager = default_manager()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.redis_manager = manager
        if warm_up:
            await asyncio.gather(*(client.connect() for client in manager))
        log.info("lifespan.startup", clients=len(manager))
        try:
            yield
        finally:
            await manager.disconnect_all()
            log.info("lifespan.shutdown")

    return lifespan
