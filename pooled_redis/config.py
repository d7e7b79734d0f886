"""
Settings and connection configuration.

Default host, port and pool sizing are named settings, not constants:
override them through the environment or a .env file.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Any
from urllib.parse import quote, unquote, urlsplit

from pydantic_settings import BaseSettings, SettingsConfigDict

from pooled_redis.errors import ConfigurationError
from pooled_redis.pool import PoolConfig

REDIS_SCHEME = "redis"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Redis
    redis_host:     str = "127.0.0.1"
    redis_port:     int = 6379
    redis_db:       int = 0
    redis_password: str | None = None

    # Pool
    pool_max_size:        int = 10
    pool_min_size:        int = 2
    pool_idle_timeout_ms: int = 60_000
    pool_warmup_strict:   bool = False

    # Application
    log_level: str = "INFO"

    @property
    def redis_url(self) -> str:
        auth = f"{quote(self.redis_password, safe='')}@" if self.redis_password else ""
        return f"{REDIS_SCHEME}://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def parse_redis_url(url: str) -> dict[str, Any]:
    """
    Split redis://[[user:]password@]host[:port][/db] into constructor kwargs.

    A lone userinfo token (redis://secret@host) is the password. Keys absent
    from the URL are absent from the result so that defaults still apply.
    """
    parts = urlsplit(url)
    if parts.scheme != REDIS_SCHEME:
        raise ConfigurationError(
            f"unsupported scheme {parts.scheme!r}, expected {REDIS_SCHEME!r}"
        )
    if not parts.hostname:
        raise ConfigurationError("connection URL has no host")

    try:
        port = parts.port
    except ValueError as exc:
        raise ConfigurationError(f"invalid port in connection URL: {exc}") from exc

    result: dict[str, Any] = {"host": parts.hostname}
    if port is not None:
        result["port"] = port

    path = parts.path.strip("/")
    if path:
        if not path.isdigit():
            raise ConfigurationError(f"invalid database index {path!r} in connection URL")
        result["db"] = int(path)

    if parts.password is not None:
        result["password"] = unquote(parts.password)
        if parts.username:
            result["username"] = unquote(parts.username)
    elif parts.username:
        result["password"] = unquote(parts.username)

    return result


def url_options(url: str) -> dict[str, Any]:
    """Constructor kwargs for a URL; a URL without credentials means no password."""
    return {"password": None, **parse_redis_url(url)}


@dataclass(frozen=True)
class ConnectionConfig:
    host: str
    port: int
    db: int = 0
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    pool: PoolConfig = field(default_factory=PoolConfig)
    client_options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"port out of range: {self.port}")
        if self.db < 0:
            raise ConfigurationError(f"database index must be >= 0, got {self.db}")

    @classmethod
    def from_options(
        cls,
        host: str | None = None,
        port: int | None = None,
        db: int | None = None,
        *,
        settings: Settings | None = None,
        **options: Any,
    ) -> "ConnectionConfig":
        """
        Build a config from explicit arguments, falling back to settings.

        pool_* options size the pool; username/password authenticate; every
        other option is handed verbatim to the redis client.
        """
        settings = settings or get_settings()

        max_size = options.pop("pool_max_size", settings.pool_max_size)
        pool = PoolConfig(
            max_size=max_size,
            # An explicit max below the default min shrinks the min with it.
            min_size=options.pop("pool_min_size", min(settings.pool_min_size, max_size)),
            idle_timeout=options.pop("pool_idle_timeout_ms", settings.pool_idle_timeout_ms) / 1000,
            warmup_strict=options.pop("pool_warmup_strict", settings.pool_warmup_strict),
        )

        username = options.pop("username", None)
        password = options.pop("password", settings.redis_password)
        options.setdefault("decode_responses", True)

        try:
            port = int(port if port is not None else settings.redis_port)
            db = int(db if db is not None else settings.redis_db)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"invalid port or database index: {exc}") from exc

        return cls(
            host=host or settings.redis_host,
            port=port,
            db=db,
            username=username,
            password=password,
            pool=pool,
            client_options=MappingProxyType(options),
        )

    @classmethod
    def from_url(cls, url: str, **options: Any) -> "ConnectionConfig":
        return cls.from_options(**{**url_options(url), **options})

    @property
    def target(self) -> str:
        """Credential-free label for logs."""
        return f"{REDIS_SCHEME}://{self.host}:{self.port}/{self.db}"
