"""Registry behaviour: registration, disconnect_all, default manager."""

from collections import Counter

from pooled_redis.client import PooledRedis
from pooled_redis.manager import PoolManager, default_manager


async def test_disconnect_all_on_empty_manager():
    manager = PoolManager()

    await manager.disconnect_all()
    await manager.disconnect_all()

    assert len(manager) == 0


async def test_disconnect_all_drains_every_client_once(monkeypatch, manager, fake_factory):
    drained: Counter[int] = Counter()
    original = PooledRedis.disconnect

    async def counting_disconnect(self):
        drained[id(self)] += 1
        await original(self)

    monkeypatch.setattr(PooledRedis, "disconnect", counting_disconnect)
    clients = [manager.client(client_factory=fake_factory, db=n) for n in range(3)]
    for client in clients:
        await client.connect()

    await manager.disconnect_all()

    assert len(manager) == 0
    assert all(client.pool.closed for client in clients)
    assert drained == Counter({id(client): 1 for client in clients})

    await manager.disconnect_all()
    assert sum(drained.values()) == 3


async def test_single_client_disconnect_unregisters(manager, fake_factory):
    first = manager.client(client_factory=fake_factory)
    second = manager.from_url("redis://localhost/1", client_factory=fake_factory)
    assert list(manager) == [first, second]

    await first.disconnect()

    assert list(manager) == [second]
    await manager.disconnect_all()


async def test_clients_without_manager_use_default(fake_factory):
    client = PooledRedis(client_factory=fake_factory)
    try:
        assert client.manager is default_manager()
        assert client in default_manager()
    finally:
        await default_manager().disconnect_all()

    assert client not in default_manager()
    assert client.pool.closed


def test_registration_is_not_duplicated(manager):
    client = manager.client()
    manager.register(client)

    assert len(manager) == 1
    manager.discard(client)
    manager.discard(client)
    assert len(manager) == 0


async def test_injected_empty_manager_is_kept(fake_factory):
    manager = PoolManager()
    client = PooledRedis(manager=manager, client_factory=fake_factory)

    assert client.manager is manager
    assert client in manager
    assert client not in default_manager()

    await manager.disconnect_all()
    assert client.pool.closed
