"""
推荐池补充服务
在 Redis 锁 + 冷却时间的双重门控下，从候选目录抽样并追加到当日推荐池。
多进程同时触发时只有抢到锁的一方执行；失败只记录日志，不向读路径传播。

触发方式：
  - refill_async         读路径发现池子不足时触发（不等待）
  - run_schedule         定时补充
  - warm_up_if_needed    进程启动时池子不足则预热（忽略冷却，有限次数）
"""

import asyncio
import logging
import random
import time
from typing import Callable, List, Optional

from dashboard_service.config import settings
from dashboard_service.layers.pool import PoolStore, get_pool_store
from dashboard_service.layers.processing import is_safe_symbol, normalize_symbol
from dashboard_service.services.catalog_service import CatalogService, get_catalog_service
from dashboard_service.tasks import spawn

logger = logging.getLogger(__name__)


class PoolRefillService:

    def __init__(
        self,
        pool: PoolStore,
        catalog: CatalogService,
        *,
        target: Optional[int] = None,
        batch: Optional[int] = None,
        candidate_pool: Optional[int] = None,
        max_attempts: Optional[int] = None,
        warmup_iterations: Optional[int] = None,
        warmup_interval_ms: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        self._pool = pool
        self._catalog = catalog
        self._target = target or settings.POOL_TARGET
        self._batch = batch or settings.POOL_REFILL_BATCH
        self._candidate_pool = candidate_pool or settings.POOL_CANDIDATE_SIZE
        self._max_attempts = max_attempts or settings.POOL_MAX_ATTEMPTS
        self._warmup_iterations = warmup_iterations or settings.POOL_WARMUP_MAX_ITERATIONS
        interval_ms = (
            warmup_interval_ms if warmup_interval_ms is not None else settings.POOL_WARMUP_INTERVAL_MS
        )
        self._warmup_interval = interval_ms / 1000
        self._clock = clock
        self._rng = rng or random.Random()

    @property
    def target(self) -> int:
        return self._target

    # ── 冷却门控的常规补充 ────────────────────────────────

    async def refill(self, version: str) -> int:
        """执行一次补充，返回实际新增数量（锁被占用 / 冷却中 / 已满时为 0）"""
        return await self._refill_guarded(version, ignore_cooldown=False)

    def refill_async(self, version: str) -> asyncio.Task:
        """后台执行 refill，调用方不等待"""
        return spawn(self.refill(version), name=f"pool-refill-{version}")

    async def run_schedule(self, interval_seconds: Optional[int] = None) -> None:
        """定时补充当日推荐池，直到任务被取消"""
        interval = interval_seconds or settings.POOL_REFILL_INTERVAL_SECONDS
        logger.info(f"[POOL] 定时补充已启动 interval={interval}s")
        while True:
            await asyncio.sleep(interval)
            await self.refill(self._pool.today_version())

    # ── 启动预热 ──────────────────────────────────────────

    async def warm_up_fill_to_target(self, version: str) -> bool:
        """忽略冷却反复补充，直到达到目标或用完迭代次数；返回是否达到目标"""
        for _ in range(self._warmup_iterations):
            size = await self._pool.size(version)
            if size >= self._target:
                logger.info(f"[POOL] warm-up done. size={size}")
                return True

            await self._refill_guarded(version, ignore_cooldown=True)
            await asyncio.sleep(self._warmup_interval)

        size = await self._pool.size(version)
        if size >= self._target:
            return True
        logger.warning(f"[POOL] warm-up 结束但未达到目标 size={size} target={self._target}")
        return False

    async def warm_up_if_needed(self) -> Optional[asyncio.Task]:
        version = self._pool.today_version()
        size = await self._pool.size(version)
        if size >= self._target:
            logger.info(f"[POOL] warm-up skip. size={size}")
            return None

        logger.info(f"[POOL] warm-up start. version={version} size={size}")
        return spawn(self.warm_up_fill_to_target(version), name=f"pool-warmup-{version}")

    # ── 临界区 ────────────────────────────────────────────

    async def _refill_guarded(self, version: str, ignore_cooldown: bool) -> int:
        try:
            return await self._refill_once(version, ignore_cooldown)
        except Exception as exc:
            logger.warning(f"[POOL] refill 失败 version={version}: {exc!r}", exc_info=True)
            return 0

    async def _refill_once(self, version: str, ignore_cooldown: bool) -> int:
        now = int(self._clock())
        if not await self._pool.try_lock(version):
            return 0

        try:
            if not ignore_cooldown and not await self._pool.is_cooldown_passed(version, now):
                return 0

            size = await self._pool.size(version)
            need = min(self._batch, max(0, self._target - size))
            if need == 0:
                return 0

            symbols = await self._pick_symbols(need)
            added = await self._pool.add_all_unique(version, symbols)
            await self._pool.update_last_run_at(version, now)

            logger.info(
                f"[POOL] refill done. version={version} need={need} "
                f"added={added} size={size + added}"
            )
            return added
        finally:
            await self._pool.unlock(version)

    async def _pick_symbols(self, need: int) -> List[str]:
        if need <= 0:
            return []

        candidates = await self._catalog.list_candidates(self._candidate_pool)
        if not candidates:
            return []

        shuffled = list(candidates)
        self._rng.shuffle(shuffled)

        out: List[str] = []
        used = set()
        for attempts, item in enumerate(shuffled):
            if len(out) >= need or attempts >= self._max_attempts:
                break
            symbol = item.symbol if item is not None else None
            if not is_safe_symbol(symbol):
                continue
            upper = normalize_symbol(symbol)
            if upper not in used:
                used.add(upper)
                out.append(upper)
        return out


# ── 模块级别单例 ──────────────────────────────────────────
_refill_service: Optional[PoolRefillService] = None


def get_refill_service() -> PoolRefillService:
    global _refill_service
    pool = get_pool_store()
    if _refill_service is None or _refill_service._pool is not pool:
        _refill_service = PoolRefillService(pool, get_catalog_service())
    return _refill_service
