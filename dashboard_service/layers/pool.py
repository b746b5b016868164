"""
Layer 4 – 推荐池层
按日版本化的推荐股票池，全部状态存放在共享 Redis 中：

  pool:{v}:list               有序列表（追加顺序 = 补充顺序）
  pool:{v}:set                去重集合，与列表一一对应
  pool:refill:{v}:lock        补充锁（短 TTL，只比较存在性）
  pool:refill:{v}:lastRunAt   上次成功补充时间（epoch 秒），用于冷却判断

以上键共享 48 小时 TTL，每次写入时刷新，过期后自动清理。
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from dashboard_service.config import settings
from dashboard_service.layers.store import RedisStore, get_store, make_key

logger = logging.getLogger(__name__)

_VERSION_FMT = "%Y%m%d"


class PoolStore:
    """推荐池仓库"""

    def __init__(
        self,
        store: RedisStore,
        *,
        tz: Optional[str] = None,
        ttl_hours: Optional[int] = None,
        lock_ttl: Optional[int] = None,
        cooldown_seconds: Optional[int] = None,
    ):
        self._store = store
        self._tz = ZoneInfo(tz or settings.POOL_TIMEZONE)
        self._ttl = (ttl_hours or settings.POOL_TTL_HOURS) * 3600
        self._lock_ttl = lock_ttl or settings.POOL_LOCK_TTL
        self._cooldown = (
            cooldown_seconds if cooldown_seconds is not None else settings.POOL_COOLDOWN_SECONDS
        )

    # ── 键 ────────────────────────────────────────────────

    @staticmethod
    def list_key(v: str) -> str:
        return make_key("pool", v, "list")

    @staticmethod
    def set_key(v: str) -> str:
        return make_key("pool", v, "set")

    @staticmethod
    def lock_key(v: str) -> str:
        return make_key("pool", "refill", v, "lock")

    @staticmethod
    def last_run_key(v: str) -> str:
        return make_key("pool", "refill", v, "lastRunAt")

    # ── 版本 ──────────────────────────────────────────────

    def today_version(self, now: Optional[datetime] = None) -> str:
        return self._local_date(now).strftime(_VERSION_FMT)

    def yesterday_version(self, now: Optional[datetime] = None) -> str:
        return (self._local_date(now) - timedelta(days=1)).strftime(_VERSION_FMT)

    def _local_date(self, now: Optional[datetime]):
        if now is None:
            return datetime.now(self._tz).date()
        if now.tzinfo is None:
            raise ValueError("now 必须带时区")
        return now.astimezone(self._tz).date()

    # ── 读 ────────────────────────────────────────────────

    async def size(self, v: str) -> int:
        return await self._store.list_length(self.list_key(v))

    async def range(self, v: str, offset: int, limit: int) -> List[str]:
        if limit <= 0:
            return []
        start = max(0, offset)
        return await self._store.list_range(self.list_key(v), start, start + limit - 1)

    # ── 写 ────────────────────────────────────────────────

    async def add_all_unique(self, v: str, symbols: Iterable[str]) -> int:
        """
        逐个 SADD，只有集合报告“新加入”的代码才会追加到列表，
        因此并发补充也不会产生重复。返回实际新增数量
        """
        symbols = [s for s in (symbols or []) if s]
        if not symbols:
            return 0

        added = 0
        for symbol in symbols:
            if await self._store.set_add(self.set_key(v), symbol):
                await self._store.list_push(self.list_key(v), symbol)
                added += 1

        await self._touch_ttl(v)
        return added

    async def try_lock(self, v: str) -> bool:
        return await self._store.set_if_absent(self.lock_key(v), "1", self._lock_ttl)

    async def unlock(self, v: str) -> None:
        await self._store.delete(self.lock_key(v))

    async def is_cooldown_passed(self, v: str, now: int) -> bool:
        raw = await self._store.get(self.last_run_key(v))
        if raw is None:
            return True
        try:
            last = int(raw)
        except (TypeError, ValueError):
            logger.warning(f"[POOL] lastRunAt 无法解析，视为已过冷却 version={v} value={raw!r}")
            return True
        return (now - last) >= self._cooldown

    async def update_last_run_at(self, v: str, now: int) -> None:
        await self._store.set(self.last_run_key(v), str(int(now)), self._ttl)

    async def _touch_ttl(self, v: str) -> None:
        for key in (self.list_key(v), self.set_key(v), self.last_run_key(v)):
            await self._store.expire(key, self._ttl)


# ── 模块级别单例 ──────────────────────────────────────────
_pool: Optional[PoolStore] = None


def get_pool_store() -> PoolStore:
    global _pool
    store = get_store()
    if _pool is None or _pool._store is not store:
        _pool = PoolStore(store)
    return _pool
