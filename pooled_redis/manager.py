"""
Explicit registry of facades, owned by the composing application.

Usage:
    manager = PoolManager()
    redis = manager.from_url("redis://secret@cache:6379/0")
    ...
    await manager.disconnect_all()

Facades built without an explicit manager register with default_manager().
"""

import asyncio
from collections.abc import Iterator
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from pooled_redis.client import PooledRedis

log = structlog.get_logger()


class PoolManager:
    def __init__(self) -> None:
        self._clients: list["PooledRedis"] = []

    def __len__(self) -> int:
        return len(self._clients)

    def __iter__(self) -> Iterator["PooledRedis"]:
        return iter(list(self._clients))

    def __contains__(self, client: object) -> bool:
        return client in self._clients

    def register(self, client: "PooledRedis") -> None:
        if client not in self._clients:
            self._clients.append(client)

    def discard(self, client: "PooledRedis") -> None:
        if client in self._clients:
            self._clients.remove(client)

    def client(
        self,
        host: str | None = None,
        port: int | None = None,
        db: int | None = None,
        **options: Any,
    ) -> "PooledRedis":
        from pooled_redis.client import PooledRedis

        return PooledRedis(host, port, db, manager=self, **options)

    def from_url(self, url: str, **options: Any) -> "PooledRedis":
        from pooled_redis.client import PooledRedis

        return PooledRedis.from_url(url, manager=self, **options)

    async def disconnect_all(self) -> None:
        """Drain every registered facade concurrently, then forget them all."""
        clients = list(self._clients)
        try:
            await asyncio.gather(*(client.disconnect() for client in clients))
        finally:
            self._clients.clear()
        log.info("manager.disconnected_all", count=len(clients))


@lru_cache
def default_manager() -> PoolManager:
    return PoolManager()
