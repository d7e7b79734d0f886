"""
Bounded async resource pool.

Usage:
    pool = Pool(factory, destructor, PoolConfig(min_size=2, max_size=10))
    await pool.start()
    async with pool.acquire() as handle:
        await handle.resource.ping()
    await pool.drain()

Flow:
  1. acquire() takes a free handle, or creates one while below max_size,
     or queues the caller (FIFO) until a handle is released
  2. release() hands the handle straight to the oldest queued caller;
     only when nobody is waiting does it go back to the free set
  3. free handles carry an idle timer; on expiry they are destroyed
     unless that would take the pool below min_size
  4. drain() rejects queued and new callers, waits for in-use handles
     to come back, destroys everything

All state is mutated synchronously between awaits on one event loop, so
acquire/release observe a linear history without a lock.
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable, Generator
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Generic, TypeVar

import structlog

from pooled_redis.errors import AcquisitionError, ConfigurationError, PoolDrainedError

log = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class PoolConfig:
    min_size: int = 2
    max_size: int = 10
    idle_timeout: float = 60.0  # seconds
    warmup_strict: bool = False

    def __post_init__(self) -> None:
        if self.max_size < 1:
            raise ConfigurationError(f"pool max_size must be >= 1, got {self.max_size}")
        if not 0 <= self.min_size <= self.max_size:
            raise ConfigurationError(
                f"pool min_size must be between 0 and max_size ({self.max_size}), "
                f"got {self.min_size}"
            )
        if self.idle_timeout <= 0:
            raise ConfigurationError(f"pool idle_timeout must be > 0, got {self.idle_timeout}")


@dataclass(eq=False)
class Handle(Generic[T]):
    """One pooled resource plus the bookkeeping the pool needs for it."""

    resource: T
    created_at: float = field(default_factory=time.monotonic)
    last_used: float = field(default_factory=time.monotonic)
    in_use: bool = False
    _timer: asyncio.TimerHandle | None = field(default=None, repr=False)


class PoolAcquireContext(Generic[T]):
    """Returned by Pool.acquire(); await it, or use it with `async with`."""

    def __init__(self, pool: "Pool[T]") -> None:
        self._pool = pool
        self._handle: Handle[T] | None = None

    def __await__(self) -> Generator[Any, None, Handle[T]]:
        return self._pool._acquire().__await__()

    async def __aenter__(self) -> Handle[T]:
        self._handle = await self._pool._acquire()
        return self._handle

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        # A cancelled or broken command may leave unread replies on the wire.
        discard = isinstance(exc, (asyncio.CancelledError, *self._pool.fatal_errors))
        self._pool.release(handle, discard=discard)


class Pool(Generic[T]):
    def __init__(
        self,
        factory: Callable[[], Awaitable[T]],
        destructor: Callable[[T], Awaitable[None]],
        config: PoolConfig | None = None,
        *,
        name: str = "pool",
        fatal_errors: tuple[type[BaseException], ...] = (),
    ) -> None:
        self.config = config or PoolConfig()
        self.name = name
        self.fatal_errors = fatal_errors
        self._factory = factory
        self._destructor = destructor

        self._free: deque[Handle[T]] = deque()
        self._in_use: set[Handle[T]] = set()
        self._creating = 0
        self._waiters: deque[asyncio.Future[Handle[T]]] = deque()
        self._tasks: set[asyncio.Task[None]] = set()

        self._draining = False
        self._drain_task: asyncio.Task[None] | None = None
        self._released: asyncio.Future[None] | None = None

    # ── Introspection ─────────────────────────────────────────────────────────

    @property
    def size(self) -> int:
        """Live handles plus creations in flight."""
        return len(self._free) + len(self._in_use) + self._creating

    @property
    def draining(self) -> bool:
        return self._draining

    @property
    def closed(self) -> bool:
        return self._drain_task is not None and self._drain_task.done()

    def stats(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "free": len(self._free),
            "in_use": len(self._in_use),
            "creating": self._creating,
            "waiting": sum(1 for w in self._waiters if not w.done()),
            "draining": self._draining,
        }

    # ── Acquire / release ─────────────────────────────────────────────────────

    def acquire(self) -> PoolAcquireContext[T]:
        return PoolAcquireContext(self)

    async def _acquire(self) -> Handle[T]:
        if self._draining:
            raise PoolDrainedError(f"{self.name} is draining")

        if self._free:
            return self._checkout(self._free.pop())

        if self.size < self.config.max_size and not self._waiters:
            self._creating += 1
            return self._checkout(await self._create())

        waiter: asyncio.Future[Handle[T]] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        log.debug("pool.acquire_queued", pool=self.name, waiting=len(self._waiters))
        try:
            return await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # Handed over just before the caller went away.
                self.release(waiter.result())
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def release(self, handle: Handle[T], *, discard: bool = False) -> None:
        """
        Return a checked-out handle.

        With discard=True (or while draining) the handle is destroyed instead
        of being reused.
        """
        if handle not in self._in_use:
            raise ValueError(f"{self.name}: handle is not checked out from this pool")

        self._in_use.remove(handle)
        handle.in_use = False
        handle.last_used = time.monotonic()

        if discard or self._draining:
            if discard:
                log.info("pool.handle_discarded", pool=self.name)
            self._destroy_later(handle)
            self._on_capacity_freed()
            return

        self._make_available(handle)

    def _checkout(self, handle: Handle[T]) -> Handle[T]:
        if handle._timer is not None:
            handle._timer.cancel()
            handle._timer = None
        handle.in_use = True
        handle.last_used = time.monotonic()
        self._in_use.add(handle)
        return handle

    def _make_available(self, handle: Handle[T]) -> None:
        if self._draining:
            self._destroy_later(handle)
            self._check_released()
            return

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(self._checkout(handle))
                return

        self._free.append(handle)
        self._arm_idle_timer(handle)

    # ── Creation ──────────────────────────────────────────────────────────────

    async def _create(self) -> Handle[T]:
        # Callers reserve the slot by bumping _creating before awaiting us.
        try:
            resource = await self._factory()
        except asyncio.CancelledError:
            self._creating -= 1
            self._on_capacity_freed()
            raise
        except Exception as exc:
            self._creating -= 1
            self._on_capacity_freed()
            log.warning("pool.create_failed", pool=self.name, error=str(exc))
            raise AcquisitionError(f"{self.name}: could not create handle: {exc}") from exc

        self._creating -= 1
        log.debug("pool.handle_created", pool=self.name, size=self.size + 1)
        return Handle(resource)

    async def _create_for(self, waiter: asyncio.Future[Handle[T]]) -> None:
        try:
            handle = await self._create()
        except AcquisitionError as exc:
            if not waiter.done():
                waiter.set_exception(exc)
            return

        if waiter.done():
            self._make_available(handle)
        else:
            waiter.set_result(self._checkout(handle))

    def _on_capacity_freed(self) -> None:
        if self._draining:
            self._check_released()
            return
        while self._waiters and self.size < self.config.max_size:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            self._creating += 1
            self._spawn(self._create_for(waiter))

    async def start(self) -> None:
        """Create handles eagerly until the pool holds min_size."""
        missing = self.config.min_size - self.size
        if missing <= 0 or self._draining:
            return

        self._creating += missing
        results = await asyncio.gather(
            *(self._create() for _ in range(missing)), return_exceptions=True
        )

        errors: list[AcquisitionError] = []
        for result in results:
            if isinstance(result, Handle):
                self._make_available(result)
            elif isinstance(result, AcquisitionError):
                errors.append(result)
            else:
                raise result

        if errors:
            if self.config.warmup_strict:
                raise errors[0]
            log.warning(
                "pool.warmup_failed",
                pool=self.name,
                failed=len(errors),
                error=str(errors[0]),
            )
        log.info("pool.started", pool=self.name, size=self.size)

    # ── Idle eviction ─────────────────────────────────────────────────────────

    def _arm_idle_timer(self, handle: Handle[T]) -> None:
        loop = asyncio.get_running_loop()
        handle._timer = loop.call_later(self.config.idle_timeout, self._evict_idle, handle)

    def _evict_idle(self, handle: Handle[T]) -> None:
        handle._timer = None
        if self._draining or handle not in self._free:
            return
        if self.size <= self.config.min_size:
            self._arm_idle_timer(handle)
            return

        self._free.remove(handle)
        log.debug(
            "pool.idle_evicted",
            pool=self.name,
            idle_s=round(time.monotonic() - handle.last_used, 3),
        )
        self._destroy_later(handle)

    # ── Destruction / drain ───────────────────────────────────────────────────

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _destroy_later(self, handle: Handle[T]) -> None:
        if handle._timer is not None:
            handle._timer.cancel()
            handle._timer = None
        self._spawn(self._destroy(handle))

    async def _destroy(self, handle: Handle[T]) -> None:
        try:
            await self._destructor(handle.resource)
        except Exception as exc:
            log.warning("pool.destroy_failed", pool=self.name, error=str(exc))
            return
        log.debug(
            "pool.handle_destroyed",
            pool=self.name,
            age_s=round(time.monotonic() - handle.created_at, 3),
        )

    def _check_released(self) -> None:
        if self._released is None or self._released.done():
            return
        if not self._in_use and not self._creating:
            self._released.set_result(None)

    async def drain(self) -> None:
        """
        Stop handing out handles and destroy all of them.

        Acquires issued once this is called are rejected immediately, while
        checked-out handles are destroyed as they come back. Safe to call
        repeatedly or concurrently; every caller waits for the same drain.
        """
        if self._drain_task is None:
            self._begin_drain()
            self._drain_task = asyncio.ensure_future(self._drain())
        await asyncio.shield(self._drain_task)

    def _begin_drain(self) -> None:
        self._draining = True
        log.info(
            "pool.draining",
            pool=self.name,
            in_use=len(self._in_use),
            waiting=len(self._waiters),
        )

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(PoolDrainedError(f"{self.name} is draining"))

        while self._free:
            self._destroy_later(self._free.pop())

        if self._in_use or self._creating:
            self._released = asyncio.get_running_loop().create_future()

    async def _drain(self) -> None:
        if self._released is not None:
            await self._released

        while self._tasks:
            await asyncio.gather(*list(self._tasks))

        log.info("pool.drained", pool=self.name)
