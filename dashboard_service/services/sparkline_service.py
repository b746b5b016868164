"""
迷你走势图服务
最近 N 个交易日收盘价，带 Redis 缓存与单飞锁。
限流异常向上抛出（分页扫描据此停止），其他失败一律返回空列表。
"""

import asyncio
import logging
import uuid
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from dashboard_service.config import settings
from dashboard_service.exceptions import RateLimitedError
from dashboard_service.layers.acquisition import TwelveDataClient, get_twelvedata_client
from dashboard_service.layers.processing import (
    ProcessingLayer,
    get_processing_layer,
    normalize_symbol,
)
from dashboard_service.layers.store import RedisStore, get_store, make_key
from dashboard_service.models.market import SparklinePoint

logger = logging.getLogger(__name__)

_POINTS = TypeAdapter(List[SparklinePoint])


class SparklineService:

    def __init__(
        self,
        store: RedisStore,
        client: TwelveDataClient,
        processing: Optional[ProcessingLayer] = None,
        *,
        days: Optional[int] = None,
        cache_ttl: Optional[int] = None,
        empty_ttl: Optional[int] = None,
        lock_ttl: Optional[int] = None,
        lock_wait_ms: Optional[int] = None,
    ):
        self._store = store
        self._client = client
        self._proc = processing or get_processing_layer()
        self._days = days or settings.SPARKLINE_DAYS
        self._cache_ttl = cache_ttl or settings.SPARKLINE_CACHE_TTL
        self._empty_ttl = empty_ttl or settings.SPARKLINE_EMPTY_TTL
        self._lock_ttl = lock_ttl or settings.SPARKLINE_LOCK_TTL
        wait_ms = lock_wait_ms if lock_wait_ms is not None else settings.QUOTE_LOCK_WAIT_MS
        self._lock_wait = wait_ms / 1000

    def cache_key(self, symbol: str) -> str:
        return make_key("sparkline", symbol, str(self._days))

    async def get_sparkline(self, symbol: str) -> List[SparklinePoint]:
        s = normalize_symbol(symbol)
        if not s:
            return []

        key = self.cache_key(s)
        cached = await self._read_cache(key)
        if cached is not None:
            return cached

        lock_key = key + ":lock"
        token = uuid.uuid4().hex
        if not await self._store.set_if_absent(lock_key, token, self._lock_ttl):
            await asyncio.sleep(self._lock_wait)
            cached = await self._read_cache(key)
            if cached is not None:
                return cached
            logger.warning(f"sparkline 缓存未命中且正被其他请求刷新 symbol={s}")
            return []

        try:
            response = await self._client.fetch_time_series(s, self._days)
            points = self._proc.to_sparkline(response)
            if not points:
                await self._store.set(key, "[]", self._empty_ttl)
                return []
            await self._store.set(key, _POINTS.dump_json(points).decode(), self._cache_ttl)
            return points
        except RateLimitedError:
            raise
        except Exception as exc:
            logger.warning(f"sparkline 获取失败 symbol={s}: {exc!r}")
            return []
        finally:
            await self._store.delete_if_value_matches(lock_key, token)

    async def _read_cache(self, key: str) -> Optional[List[SparklinePoint]]:
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            return _POINTS.validate_json(raw)
        except ValidationError:
            logger.warning(f"sparkline 缓存解析失败，已删除 key={key}")
            await self._store.delete(key)
            return None


# ── 模块级别单例 ──────────────────────────────────────────
_sparkline_service: Optional[SparklineService] = None


def get_sparkline_service() -> SparklineService:
    global _sparkline_service
    store = get_store()
    if _sparkline_service is None or _sparkline_service._store is not store:
        _sparkline_service = SparklineService(store, get_twelvedata_client())
    return _sparkline_service
