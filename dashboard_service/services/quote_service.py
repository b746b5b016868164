"""
实时报价服务
两级缓存（fresh 短 TTL / stale 长 TTL）+ 基于 Redis 的单飞锁，防止缓存击穿：

  1. fresh 命中 → 直接返回，不加锁、不访问外部接口
  2. 未命中 → 以随机令牌 SET NX 抢锁
       抢到：调用 Finnhub，成功则写 fresh + stale；失败回退 stale；
             退出时仅当锁值仍等于自己的令牌才删除
       没抢到：有 stale 立即返回；否则短暂等待一次后重读 fresh
"""

import asyncio
import logging
import uuid
from typing import Optional

from pydantic import ValidationError

from dashboard_service.config import settings
from dashboard_service.exceptions import (
    CorruptedCacheEntryError,
    InvalidArgumentError,
    RateLimitedError,
    UnavailableError,
)
from dashboard_service.layers.acquisition import FinnhubClient, get_finnhub_client
from dashboard_service.layers.processing import (
    ProcessingLayer,
    get_processing_layer,
    normalize_symbol,
)
from dashboard_service.layers.store import RedisStore, get_store, make_key
from dashboard_service.models.market import CachedQuote

logger = logging.getLogger(__name__)


class QuoteService:
    """实时报价缓存协调"""

    def __init__(
        self,
        store: RedisStore,
        client: FinnhubClient,
        processing: Optional[ProcessingLayer] = None,
        *,
        fresh_ttl: Optional[int] = None,
        stale_ttl: Optional[int] = None,
        lock_ttl: Optional[int] = None,
        lock_wait_ms: Optional[int] = None,
    ):
        self._store = store
        self._client = client
        self._proc = processing or get_processing_layer()
        self._fresh_ttl = fresh_ttl or settings.QUOTE_FRESH_TTL
        self._stale_ttl = stale_ttl or settings.QUOTE_STALE_TTL
        self._lock_ttl = lock_ttl or settings.QUOTE_LOCK_TTL
        wait_ms = lock_wait_ms if lock_wait_ms is not None else settings.QUOTE_LOCK_WAIT_MS
        self._lock_wait = wait_ms / 1000

    @staticmethod
    def fresh_key(symbol: str) -> str:
        return make_key("quote", "fresh", symbol)

    @staticmethod
    def stale_key(symbol: str) -> str:
        return make_key("quote", "stale", symbol)

    @staticmethod
    def lock_key(symbol: str) -> str:
        return make_key("quote", "lock", symbol)

    async def get_realtime_price(self, symbol: str) -> CachedQuote:
        """
        获取实时报价

        Raises:
            InvalidArgumentError: 代码标准化后为空
            RateLimitedError: 外部接口限流且没有 stale 兜底
            UnavailableError: 任何路径都拿不到报价
        """
        s = normalize_symbol(symbol)
        if not s:
            raise InvalidArgumentError("symbol 不能为空")

        fresh_key = self.fresh_key(s)
        stale_key = self.stale_key(s)
        lock_key = self.lock_key(s)

        fresh = await self._get_cached(fresh_key)
        if fresh is not None:
            return fresh

        token = uuid.uuid4().hex
        if await self._store.set_if_absent(lock_key, token, self._lock_ttl):
            try:
                return await self._fetch_as_holder(s, fresh_key, stale_key)
            finally:
                # 锁可能已过期并被他人重新获取，此时删除是安全的空操作
                if not await self._store.delete_if_value_matches(lock_key, token):
                    logger.debug(f"报价锁已不属于当前请求，跳过释放 symbol={s}")

        # 其他请求正在刷新
        stale = await self._get_cached(stale_key)
        if stale is not None:
            return stale

        await asyncio.sleep(self._lock_wait)
        fresh = await self._get_cached(fresh_key)
        if fresh is not None:
            return fresh

        raise UnavailableError(f"报价缓存未命中且正在刷新，无 stale 可用 symbol={s}")

    async def _fetch_as_holder(self, s: str, fresh_key: str, stale_key: str) -> CachedQuote:
        try:
            raw = await self._client.fetch_quote(s)
            quote = self._proc.parse_quote(s, raw)
        except Exception as exc:
            stale = await self._get_cached(stale_key)
            if stale is not None:
                logger.warning(f"Finnhub 报价失败，回退 stale symbol={s}: {exc}")
                return stale
            if isinstance(exc, RateLimitedError):
                raise
            raise UnavailableError(f"Finnhub 报价失败且无 stale symbol={s}: {exc}") from exc

        if quote is not None:
            await self._set_cached(fresh_key, quote, self._fresh_ttl)
            await self._set_cached(stale_key, quote, self._stale_ttl)
            return quote

        stale = await self._get_cached(stale_key)
        if stale is not None:
            logger.warning(f"Finnhub 报价为空，回退 stale symbol={s}")
            return stale

        raise UnavailableError(f"Finnhub 报价响应为空 symbol={s}")

    async def _get_cached(self, key: str) -> Optional[CachedQuote]:
        raw = await self._store.get(key)
        if not raw or not raw.strip():
            return None
        try:
            return self._decode(key, raw)
        except CorruptedCacheEntryError as exc:
            logger.warning(f"{exc}，已删除")
            await self._store.delete(key)
            return None

    @staticmethod
    def _decode(key: str, raw: str) -> CachedQuote:
        try:
            return CachedQuote.model_validate_json(raw)
        except ValidationError as exc:
            raise CorruptedCacheEntryError(key, f"({exc.error_count()} 个字段错误)") from exc

    async def _set_cached(self, key: str, quote: CachedQuote, ttl: int) -> None:
        await self._store.set(key, quote.model_dump_json(), ttl)


# ── 模块级别单例 ──────────────────────────────────────────
_quote_service: Optional[QuoteService] = None


def get_quote_service() -> QuoteService:
    global _quote_service
    store = get_store()
    if _quote_service is None or _quote_service._store is not store:
        _quote_service = QuoteService(store, get_finnhub_client())
    return _quote_service
