"""
Pooled Redis facade.

Every named operation funnels through execute(), which checks a dedicated
single-connection client out of the pool, runs one command on it and always
hands it back.

Usage:
    redis = PooledRedis.from_url("redis://secret@cache:6379/0", pool_max_size=20)
    await redis.set("session:42", payload, expire_seconds=300)
    value = await redis.get("session:42")      # NotFoundError if absent
    await redis.disconnect()

Semantic outcomes are raised as their own exceptions so callers can tell them
apart from transport failures:
  - NotFoundError           : get() on a missing key
  - LogicalConditionFailure : setnx() / renamenx() did not apply
  - redis.exceptions.*      : anything the server or connection reported
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from types import TracebackType
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from pooled_redis.commands import Command
from pooled_redis.config import ConnectionConfig, url_options
from pooled_redis.errors import AcquisitionError, LogicalConditionFailure, NotFoundError
from pooled_redis.manager import PoolManager, default_manager
from pooled_redis.pool import Pool

log = structlog.get_logger()


class PooledRedis:
    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        db: int | None = None,
        *,
        manager: PoolManager | None = None,
        client_factory: Callable[..., Redis] = Redis,
        **options: Any,
    ) -> None:
        self.config = ConnectionConfig.from_options(host, port, db, **options)
        self.manager = manager if manager is not None else default_manager()
        self._client_factory = client_factory
        self.pool: Pool[Redis] = Pool(
            self._create_client,
            self._close_client,
            self.config.pool,
            name=self.config.target,
            fatal_errors=(RedisConnectionError, RedisTimeoutError),
        )
        self.manager.register(self)

    @classmethod
    def from_url(cls, url: str, **options: Any) -> "PooledRedis":
        return cls(**{**url_options(url), **options})

    def __repr__(self) -> str:
        return f"<PooledRedis {self.config.target} max={self.config.pool.max_size}>"

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def port(self) -> int:
        return self.config.port

    @property
    def db(self) -> int:
        return self.config.db

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def _create_client(self) -> Redis:
        client = self._client_factory(
            host=self.config.host,
            port=self.config.port,
            db=self.config.db,
            username=self.config.username,
            password=self.config.password,
            single_connection_client=True,
            **self.config.client_options,
        )
        try:
            await client.initialize()
        except BaseException:
            await client.aclose()
            raise
        return client

    async def _close_client(self, client: Redis) -> None:
        await client.aclose()

    async def connect(self) -> "PooledRedis":
        """Warm the pool up to its minimum size."""
        await self.pool.start()
        return self

    async def disconnect(self) -> None:
        """Drain the pool and unregister from the manager."""
        await self.pool.drain()
        self.manager.discard(self)
        log.info("client.disconnected", target=self.config.target)

    async def __aenter__(self) -> "PooledRedis":
        return await self.connect()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # ── Dispatch ──────────────────────────────────────────────────────────────

    async def execute(self, command: Command, *args: Any, **options: Any) -> Any:
        """
        Run one command on a pooled connection.

        options are redis-py response-parsing options (e.g. withscores=True).
        Remote errors propagate unchanged; the connection is released either way.
        """
        try:
            async with self.pool.acquire() as handle:
                return await handle.resource.execute_command(command.value, *args, **options)
        except AcquisitionError as exc:
            log.warning(
                "client.acquire_failed",
                target=self.config.target,
                command=command.value,
                error=str(exc),
            )
            raise

    async def ping(self) -> bool:
        try:
            return bool(await self.execute(Command.PING))
        except Exception as exc:
            log.warning("client.ping_failed", target=self.config.target, error=str(exc))
            return False

    async def health_check(self) -> dict[str, Any]:
        return {"ok": await self.ping(), "target": self.config.target, **self.pool.stats()}

    # ── Strings / keys ────────────────────────────────────────────────────────

    async def get(self, key: str) -> Any:
        value = await self.execute(Command.GET, key)
        if value is None:
            raise NotFoundError(key)
        return value

    async def set(self, key: str, value: Any, expire_seconds: int | None = None) -> bool:
        args: list[Any] = [key, value]
        if expire_seconds is not None:
            args += ["EX", expire_seconds]
        return await self.execute(Command.SET, *args)

    async def setnx(self, key: str, value: Any, expire_seconds: int | None = None) -> bool:
        """Set key only if it does not exist yet."""
        args: list[Any] = [key, value, "NX"]
        if expire_seconds is not None:
            args += ["EX", expire_seconds]
        if not await self.execute(Command.SET, *args):
            raise LogicalConditionFailure(f"NX failed: {key!r} already exists")
        return True

    async def delete(self, *keys: str) -> int:
        return await self.execute(Command.DEL, *keys)

    async def mget(self, *keys: str) -> list[Any]:
        return await self.execute(Command.MGET, *keys)

    async def incr(self, key: str, amount: int = 1) -> int:
        return await self.execute(Command.INCRBY, key, amount)

    async def expire(self, key: str, seconds: int) -> bool:
        return await self.execute(Command.EXPIRE, key, seconds)

    async def renamenx(self, src: str, dst: str) -> None:
        """Rename src to dst, refusing to overwrite an existing dst."""
        if not await self.execute(Command.RENAMENX, src, dst):
            raise LogicalConditionFailure(f"refusing to overwrite {dst!r} with {src!r}")

    # ── Hashes ────────────────────────────────────────────────────────────────

    async def hget(self, key: str, field: str) -> Any:
        return await self.execute(Command.HGET, key, field)

    async def hgetall(self, key: str) -> dict[Any, Any]:
        return await self.execute(Command.HGETALL, key)

    async def hmget(self, key: str, *fields: str) -> list[Any]:
        return await self.execute(Command.HMGET, key, *fields)

    async def hmset(self, key: str, mapping: Mapping[str, Any]) -> bool:
        args: list[Any] = []
        for pair in mapping.items():
            args.extend(pair)
        return await self.execute(Command.HMSET, key, *args)

    async def hsetnx(self, key: str, field: str, value: Any) -> int:
        return await self.execute(Command.HSETNX, key, field, value)

    async def hdel(self, key: str, *fields: str) -> int:
        return await self.execute(Command.HDEL, key, *fields)

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        return await self.execute(Command.HINCRBY, key, field, amount)

    # ── Sets ──────────────────────────────────────────────────────────────────

    async def sadd(self, key: str, *members: Any) -> int:
        return await self.execute(Command.SADD, key, *members)

    async def srem(self, key: str, *members: Any) -> int:
        return await self.execute(Command.SREM, key, *members)

    async def smembers(self, key: str) -> set[Any]:
        return await self.execute(Command.SMEMBERS, key)

    async def srandmember(self, key: str, count: int | None = None) -> Any:
        args = [key] if count is None else [key, count]
        return await self.execute(Command.SRANDMEMBER, *args)

    async def spop(self, key: str, count: int | None = None) -> Any:
        args = [key] if count is None else [key, count]
        return await self.execute(Command.SPOP, *args)

    # ── Sorted sets ───────────────────────────────────────────────────────────

    async def zadd(self, key: str, mapping: Mapping[Any, float]) -> int:
        args: list[Any] = []
        for member, score in mapping.items():
            args += [score, member]
        return await self.execute(Command.ZADD, key, *args)

    async def zcard(self, key: str) -> int:
        return await self.execute(Command.ZCARD, key)

    async def zrange(
        self, key: str, start: int = 0, stop: int = -1, withscores: bool = False
    ) -> list[Any]:
        args: list[Any] = [key, start, stop]
        if withscores:
            args.append("WITHSCORES")
        return await self.execute(Command.ZRANGE, *args, withscores=withscores)

    async def zrangebyscore(
        self, key: str, min: float | str, max: float | str, withscores: bool = False
    ) -> list[Any]:
        args: list[Any] = [key, min, max]
        if withscores:
            args.append("WITHSCORES")
        return await self.execute(Command.ZRANGEBYSCORE, *args, withscores=withscores)

    # ── Lists ─────────────────────────────────────────────────────────────────

    async def lpush(self, key: str, *values: Any) -> int:
        return await self.execute(Command.LPUSH, key, *values)

    async def rpush(self, key: str, *values: Any) -> int:
        return await self.execute(Command.RPUSH, key, *values)

    async def lpop(self, key: str) -> Any:
        return await self.execute(Command.LPOP, key)

    async def rpop(self, key: str) -> Any:
        return await self.execute(Command.RPOP, key)

    async def llen(self, key: str) -> int:
        return await self.execute(Command.LLEN, key)

    async def lrange(self, key: str, start: int = 0, stop: int = -1) -> list[Any]:
        return await self.execute(Command.LRANGE, key, start, stop)

    async def lrem(self, key: str, count: int, value: Any) -> int:
        return await self.execute(Command.LREM, key, count, value)

    async def rpoplpush(self, src: str, dst: str) -> Any:
        return await self.execute(Command.RPOPLPUSH, src, dst)

    async def brpoplpush(self, src: str, dst: str, timeout: int = 0) -> Any:
        """Blocking rotate; holds a pooled connection for up to `timeout` seconds."""
        return await self.execute(Command.BRPOPLPUSH, src, dst, timeout)
