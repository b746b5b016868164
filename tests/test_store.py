"""
存储层测试（基于 fakeredis，执行真实的 Redis 命令与 Lua 脚本）

覆盖范围：
  - SET NX EX 的抢占语义
  - Lua 比较并删除：值匹配才删除
  - 列表 / 集合原语与 TTL
  - PoolStore.add_all_unique 在真实命令下的幂等性
"""

import asyncio

import fakeredis
from fakeredis import aioredis

from dashboard_service.layers.pool import PoolStore
from dashboard_service.layers.store import RedisStore

V = "20261019"


def _run(scenario):
    """每个用例使用独立的 FakeServer，客户端在同一事件循环内创建与关闭"""
    server = fakeredis.FakeServer()

    async def run():
        client = aioredis.FakeRedis(server=server, decode_responses=True)
        try:
            return await scenario(RedisStore(client), client)
        finally:
            await client.aclose()

    return asyncio.run(run())


class TestRedisStore:
    def test_set_and_get(self):
        async def scenario(store, client):
            await store.set("quote:fresh:AAPL", "{}", 10)
            assert await store.get("quote:fresh:AAPL") == "{}"
            assert 0 < await client.ttl("quote:fresh:AAPL") <= 10
            assert await store.get("quote:fresh:MSFT") is None

        _run(scenario)

    def test_set_if_absent(self):
        async def scenario(store, client):
            assert await store.set_if_absent("quote:lock:AAPL", "a", 10) is True
            assert await store.set_if_absent("quote:lock:AAPL", "b", 10) is False
            assert await store.get("quote:lock:AAPL") == "a"
            assert 0 < await client.ttl("quote:lock:AAPL") <= 10

        _run(scenario)

    def test_delete_if_value_matches(self):
        async def scenario(store, client):
            await store.set_if_absent("quote:lock:AAPL", "a", 10)

            assert await store.delete_if_value_matches("quote:lock:AAPL", "b") is False
            assert await store.get("quote:lock:AAPL") == "a"

            assert await store.delete_if_value_matches("quote:lock:AAPL", "a") is True
            assert await store.get("quote:lock:AAPL") is None

            assert await store.delete_if_value_matches("quote:lock:AAPL", "a") is False

        _run(scenario)

    def test_released_lock_can_be_reacquired(self):
        async def scenario(store, client):
            await store.set_if_absent("quote:lock:AAPL", "a", 10)
            await store.delete_if_value_matches("quote:lock:AAPL", "a")
            assert await store.set_if_absent("quote:lock:AAPL", "b", 10) is True

        _run(scenario)

    def test_list_and_set_primitives(self):
        async def scenario(store, client):
            assert await store.set_add("pool:s", "AAPL") is True
            assert await store.set_add("pool:s", "AAPL") is False

            await store.list_push("pool:l", "AAPL")
            await store.list_push("pool:l", "MSFT")
            await store.list_push("pool:l", "NVDA")
            assert await store.list_length("pool:l") == 3
            assert await store.list_range("pool:l", 1, 2) == ["MSFT", "NVDA"]
            assert await store.list_range("pool:missing", 0, 9) == []
            assert await store.list_length("pool:missing") == 0

            await store.expire("pool:l", 60)
            assert 0 < await client.ttl("pool:l") <= 60

        _run(scenario)


class TestPoolStoreOnRedis:
    def _pool(self, store):
        return PoolStore(store, tz="Asia/Seoul", ttl_hours=48, lock_ttl=60, cooldown_seconds=600)

    def test_add_all_unique_is_idempotent(self):
        async def scenario(store, client):
            pool = self._pool(store)
            assert await pool.add_all_unique(V, ["AAPL", "MSFT", "AAPL"]) == 2
            assert await pool.add_all_unique(V, ["MSFT", "NVDA"]) == 1

            assert await client.lrange(PoolStore.list_key(V), 0, -1) == ["AAPL", "MSFT", "NVDA"]
            assert await client.smembers(PoolStore.set_key(V)) == {"AAPL", "MSFT", "NVDA"}
            assert 0 < await client.ttl(PoolStore.list_key(V)) <= 48 * 3600

        _run(scenario)

    def test_lock_and_cooldown(self):
        async def scenario(store, client):
            pool = self._pool(store)
            assert await pool.try_lock(V) is True
            assert await pool.try_lock(V) is False
            await pool.unlock(V)
            assert await pool.try_lock(V) is True

            await pool.update_last_run_at(V, 1_000)
            assert await pool.is_cooldown_passed(V, 1_599) is False
            assert await pool.is_cooldown_passed(V, 1_600) is True

        _run(scenario)
