"""
推荐池仓库与补充服务测试

覆盖范围：
  - 键布局、日版本（时区）
  - add_all_unique 去重与幂等、TTL 刷新
  - 补充锁、冷却判断
  - 补充流程：批量上限、冷却门控、锁占用、目录失败仍释放锁
  - 启动预热：忽略冷却直到达到目标、迭代次数上限
  - 后台补充与定时补充：通过轮询存储状态观察结果
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from dashboard_service.layers.pool import PoolStore
from dashboard_service.models.providers import TwelveDataStockItem
from dashboard_service.services.refill_service import PoolRefillService

V = "20261019"

SYMBOLS = [
    "AAPL", "MSFT", "NVDA", "AMZN", "TSLA", "GOOGL", "META", "NFLX", "AMD", "INTC",
    "CSCO", "ADBE", "PEP", "COST", "AVGO", "QCOM", "TXN", "SBUX", "MDLZ", "AMGN",
    "ISRG", "BKNG", "GILD", "ADP", "REGN", "VRTX", "MU", "LRCX", "PYPL", "ABNB",
]


def _items(symbols):
    return [TwelveDataStockItem(symbol=s, type="Common Stock") for s in symbols]


def _catalog(symbols=SYMBOLS):
    catalog = AsyncMock()
    catalog.list_candidates.return_value = _items(symbols)
    return catalog


def _batched_catalog(size=5):
    """每次调用返回一组互不重叠的候选，保证每轮补充都能新增 size 个"""
    batches = iter(SYMBOLS[i:i + size] for i in range(0, len(SYMBOLS), size))

    async def list_candidates(pool_size):
        return _items(next(batches, []))

    catalog = AsyncMock()
    catalog.list_candidates.side_effect = list_candidates
    return catalog


def _refill(pool, catalog, clock, **kwargs):
    kwargs.setdefault("target", 20)
    kwargs.setdefault("batch", 5)
    kwargs.setdefault("warmup_interval_ms", 0)
    return PoolRefillService(pool, catalog, clock=clock, **kwargs)


@pytest.fixture
def pool(store):
    return PoolStore(store, tz="Asia/Seoul", ttl_hours=48, lock_ttl=60, cooldown_seconds=600)


async def _seed(pool, n):
    return await pool.add_all_unique(V, SYMBOLS[:n])


# ─────────────────────────────────────────────────────────
# 1. PoolStore
# ─────────────────────────────────────────────────────────

class TestPoolStore:
    def test_key_layout(self):
        assert PoolStore.list_key(V) == "pool:20261019:list"
        assert PoolStore.set_key(V) == "pool:20261019:set"
        assert PoolStore.lock_key(V) == "pool:refill:20261019:lock"
        assert PoolStore.last_run_key(V) == "pool:refill:20261019:lastRunAt"

    def test_versions_use_pool_timezone(self, pool):
        # UTC 16:00 = 首尔次日 01:00
        now = datetime(2026, 10, 18, 16, 0, tzinfo=timezone.utc)
        assert pool.today_version(now) == "20261019"
        assert pool.yesterday_version(now) == "20261018"

    def test_add_all_unique_is_idempotent(self, pool, store):
        first = asyncio.run(pool.add_all_unique(V, ["AAPL", "AAPL", "MSFT"]))
        second = asyncio.run(pool.add_all_unique(V, ["AAPL", "AAPL", "MSFT"]))

        assert first == 2
        assert second == 0
        assert asyncio.run(pool.size(V)) == 2
        assert store.raw(PoolStore.list_key(V)) == ["AAPL", "MSFT"]
        assert store.raw(PoolStore.set_key(V)) == {"AAPL", "MSFT"}

    def test_add_refreshes_ttl(self, pool, store):
        asyncio.run(pool.add_all_unique(V, ["AAPL"]))
        assert store.ttl(PoolStore.list_key(V)) == 48 * 3600
        assert store.ttl(PoolStore.set_key(V)) == 48 * 3600

    def test_add_empty_is_noop(self, pool, store):
        assert asyncio.run(pool.add_all_unique(V, [])) == 0
        assert store.keys() == []

    def test_range(self, pool):
        asyncio.run(_seed(pool, 10))
        assert asyncio.run(pool.range(V, 2, 3)) == ["NVDA", "AMZN", "TSLA"]
        assert asyncio.run(pool.range(V, 8, 5)) == ["AMD", "INTC"]
        assert asyncio.run(pool.range(V, 0, 0)) == []

    def test_lock(self, pool, store):
        assert asyncio.run(pool.try_lock(V)) is True
        assert asyncio.run(pool.try_lock(V)) is False
        assert store.ttl(PoolStore.lock_key(V)) == 60
        asyncio.run(pool.unlock(V))
        assert asyncio.run(pool.try_lock(V)) is True

    def test_cooldown(self, pool, store):
        now = 1_760_000_000
        assert asyncio.run(pool.is_cooldown_passed(V, now)) is True

        asyncio.run(pool.update_last_run_at(V, now))
        assert store.raw(PoolStore.last_run_key(V)) == str(now)
        assert asyncio.run(pool.is_cooldown_passed(V, now + 599)) is False
        assert asyncio.run(pool.is_cooldown_passed(V, now + 600)) is True

    def test_unparsable_marker_counts_as_passed(self, pool, store):
        asyncio.run(store.set(PoolStore.last_run_key(V), "garbage", 60))
        assert asyncio.run(pool.is_cooldown_passed(V, 0)) is True


# ─────────────────────────────────────────────────────────
# 2. 补充服务
# ─────────────────────────────────────────────────────────

class TestRefill:
    def test_refill_adds_one_batch(self, pool, store, clock):
        asyncio.run(_seed(pool, 5))
        refill = _refill(pool, _catalog(SYMBOLS[5:10]), clock)

        added = asyncio.run(refill.refill(V))

        assert added == 5
        assert asyncio.run(pool.size(V)) == 10
        assert store.raw(PoolStore.last_run_key(V)) == str(int(clock()))
        assert store.raw(PoolStore.lock_key(V)) is None
        members = store.raw(PoolStore.list_key(V))
        assert len(members) == len(set(members))

    def test_cooldown_blocks_second_pass(self, pool, clock):
        refill = _refill(pool, _batched_catalog(), clock)

        assert asyncio.run(refill.refill(V)) == 5
        assert asyncio.run(refill.refill(V)) == 0
        assert asyncio.run(pool.size(V)) == 5

        clock.advance(600)
        assert asyncio.run(refill.refill(V)) == 5

    def test_lock_held_elsewhere(self, pool, store, clock):
        catalog = _catalog()
        asyncio.run(pool.try_lock(V))

        assert asyncio.run(_refill(pool, catalog, clock).refill(V)) == 0
        catalog.list_candidates.assert_not_called()
        assert store.raw(PoolStore.lock_key(V)) == "1"

    def test_full_pool_skips_sampling(self, pool, store, clock):
        asyncio.run(_seed(pool, 20))
        catalog = _catalog()

        assert asyncio.run(_refill(pool, catalog, clock).refill(V)) == 0
        catalog.list_candidates.assert_not_called()
        assert store.raw(PoolStore.lock_key(V)) is None

    def test_need_is_capped_by_target(self, pool, clock):
        asyncio.run(_seed(pool, 18))
        assert asyncio.run(_refill(pool, _catalog(SYMBOLS[18:]), clock).refill(V)) == 2
        assert asyncio.run(pool.size(V)) == 20

    def test_catalog_failure_releases_lock(self, pool, store, clock):
        catalog = AsyncMock()
        catalog.list_candidates.side_effect = RuntimeError("catalog down")

        assert asyncio.run(_refill(pool, catalog, clock).refill(V)) == 0
        assert store.raw(PoolStore.lock_key(V)) is None
        assert store.raw(PoolStore.last_run_key(V)) is None

    def test_unsafe_symbols_filtered(self, pool, store, clock):
        catalog = _catalog(["BRK.A", "abc1", "TOOLONGX", "msft", "MSFT", " nvda ", "", "SPY"])

        added = asyncio.run(_refill(pool, catalog, clock).refill(V))

        assert added == 3
        assert set(store.raw(PoolStore.list_key(V))) == {"MSFT", "NVDA", "SPY"}

    def test_refill_async_is_observed_through_store(self, pool, clock):
        refill = _refill(pool, _catalog(), clock)

        async def run():
            refill.refill_async(V)
            for _ in range(100):
                if await pool.size(V) > 0:
                    break
                await asyncio.sleep(0)
            return await pool.size(V)

        assert asyncio.run(run()) == 5


# ─────────────────────────────────────────────────────────
# 3. 启动预热
# ─────────────────────────────────────────────────────────

class TestWarmUp:
    def test_fills_to_target_ignoring_cooldown(self, pool, clock):
        refill = _refill(pool, _batched_catalog(), clock)

        assert asyncio.run(refill.warm_up_fill_to_target(V)) is True
        assert asyncio.run(pool.size(V)) == 20

    def test_bounded_iterations(self, pool, clock):
        catalog = _catalog([])
        refill = _refill(pool, catalog, clock, warmup_iterations=4)

        assert asyncio.run(refill.warm_up_fill_to_target(V)) is False
        assert catalog.list_candidates.await_count == 4

    def test_skip_when_full(self, pool, clock):
        today = pool.today_version()
        asyncio.run(pool.add_all_unique(today, SYMBOLS[:20]))
        refill = _refill(pool, _catalog(), clock)

        assert asyncio.run(refill.warm_up_if_needed()) is None

    def test_spawns_when_short(self, pool, clock):
        refill = _refill(pool, _batched_catalog(), clock)

        async def run():
            task = await refill.warm_up_if_needed()
            assert task is not None
            return await task

        assert asyncio.run(run()) is True
        assert asyncio.run(pool.size(pool.today_version())) == 20


# ─────────────────────────────────────────────────────────
# 4. 定时补充
# ─────────────────────────────────────────────────────────

class TestSchedule:
    def test_schedule_refills_today_until_cancelled(self, pool, store, clock):
        refill = _refill(pool, _batched_catalog(), clock)
        today = pool.today_version()

        async def run():
            task = asyncio.get_running_loop().create_task(refill.run_schedule(0.001))
            for _ in range(500):
                if store.raw(PoolStore.last_run_key(today)) is not None:
                    break
                await asyncio.sleep(0.001)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            return task

        task = asyncio.run(run())

        assert task.cancelled()
        assert store.raw(PoolStore.last_run_key(today)) == str(int(clock()))
        assert asyncio.run(pool.size(today)) == 5
