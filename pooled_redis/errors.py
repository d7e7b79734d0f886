"""
Exception taxonomy.

Remote failures are not wrapped: whatever redis-py raises for a command
reaches the caller unchanged, so RemoteOperationError is simply redis-py's
base error class.
"""

from redis.exceptions import RedisError

RemoteOperationError = RedisError


class PooledRedisError(Exception):
    """Base exception for pooled_redis."""


class ConfigurationError(PooledRedisError, ValueError):
    """Invalid connection string, scheme or pool sizing."""


class AcquisitionError(PooledRedisError):
    """A handle could not be acquired from the pool."""


class PoolDrainedError(AcquisitionError):
    """Acquire attempted after the pool started draining."""


class NotFoundError(PooledRedisError, KeyError):
    """The requested key does not exist."""

    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"key not found: {self.key!r}"


class LogicalConditionFailure(PooledRedisError):
    """The command ran, but its conditional effect did not apply."""
