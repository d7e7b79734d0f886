"""FastAPI lifespan warms pools on startup and drains them on shutdown."""

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from pooled_redis.errors import NotFoundError
from pooled_redis.lifespan import redis_lifespan


def build_app(manager, fake_factory):
    cache = manager.client(client_factory=fake_factory, pool_min_size=2)
    app = FastAPI(lifespan=redis_lifespan(manager))

    @app.put("/items/{key}")
    async def put_item(key: str, value: str) -> dict[str, bool]:
        return {"stored": await cache.set(key, value)}

    @app.get("/items/{key}")
    async def get_item(key: str) -> dict[str, str]:
        try:
            return {"value": await cache.get(key)}
        except NotFoundError:
            raise HTTPException(status_code=404, detail=f"{key} not found")

    @app.get("/health")
    async def health() -> dict:  # type: ignore[type-arg]
        return await cache.health_check()

    return app, cache


def test_lifespan_warms_up_and_drains(manager, fake_factory):
    app, cache = build_app(manager, fake_factory)

    with TestClient(app) as http:
        assert app.state.redis_manager is manager
        assert cache.pool.stats()["free"] == 2

        assert http.get("/items/missing").status_code == 404
        assert http.put("/items/colour", params={"value": "teal"}).json() == {"stored": True}
        assert http.get("/items/colour").json() == {"value": "teal"}
        assert http.get("/health").json()["ok"] is True

    assert cache.pool.closed
    assert len(manager) == 0


def test_lifespan_without_warm_up(manager, fake_factory):
    cache = manager.client(client_factory=fake_factory, pool_min_size=2)
    app = FastAPI(lifespan=redis_lifespan(manager, warm_up=False))

    with TestClient(app):
        assert cache.pool.size == 0

    assert cache.pool.closed
