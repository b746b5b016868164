"""
推荐池读取服务
按版本分页读取推荐池，并用实时报价 + 迷你走势图补全每个代码。

  - 单个代码补全失败（报价失败 / 走势图为空）直接跳过，为此最多多扫描 3 倍页长
  - 遇到限流立即停止，next_offset 停在限流的代码上，客户端稍后重试可无缝继续
  - 读取当日池子且数量低于阈值时，顺带在后台触发一次补充（不等待）
"""

import logging
from typing import List, Optional

from dashboard_service.config import settings
from dashboard_service.exceptions import RateLimitedError
from dashboard_service.layers.pool import PoolStore, get_pool_store
from dashboard_service.layers.processing import normalize_symbol
from dashboard_service.models.market import RecommendationsPage, RecommendedItem
from dashboard_service.services.quote_service import QuoteService, get_quote_service
from dashboard_service.services.refill_service import PoolRefillService, get_refill_service
from dashboard_service.services.sparkline_service import (
    SparklineService,
    get_sparkline_service,
)

logger = logging.getLogger(__name__)


class RecommendationService:
    """推荐池分页读取"""

    def __init__(
        self,
        pool: PoolStore,
        quotes: QuoteService,
        sparklines: SparklineService,
        refill: PoolRefillService,
        *,
        page_size: Optional[int] = None,
        scan_multiplier: Optional[int] = None,
        refill_threshold: Optional[int] = None,
        home_size: Optional[int] = None,
    ):
        self._pool = pool
        self._quotes = quotes
        self._sparklines = sparklines
        self._refill = refill
        self._page_size = page_size or settings.POOL_PAGE_SIZE
        self._scan_multiplier = scan_multiplier or settings.POOL_SCAN_MULTIPLIER
        self._refill_threshold = (
            refill_threshold if refill_threshold is not None else settings.POOL_REFILL_TRIGGER_THRESHOLD
        )
        self._home_size = home_size or settings.HOME_RECOMMEND_SIZE

    async def current_version(self) -> str:
        """
        首页与“加载更多”共用的版本：当日池子非空用当日，否则回退到前一天，
        保证同一次浏览看到的是同一组股票
        """
        today = self._pool.today_version()
        if await self._pool.size(today) > 0:
            return today
        return self._pool.yesterday_version()

    async def get_page(
        self, version: Optional[str], offset: int, limit: Optional[int] = None
    ) -> RecommendationsPage:
        """limit 缺省为页长；next_offset 总是指向最后一个已读代码之后"""
        page_size = limit or self._page_size
        start = max(0, offset)
        v = version.strip() if version and version.strip() else await self.current_version()

        total = await self._pool.size(v)
        today = self._pool.today_version()
        today_size = total if v == today else await self._pool.size(today)
        logger.debug(f"[POOL] read version={v} total={total} offset={start}")

        if total <= 0 or start >= total:
            if today_size < self._refill.target:
                self._trigger_refill_if_needed(today, today_size)
            return RecommendationsPage(items=[], next_offset=None, version=v)

        if v == today:
            self._trigger_refill_if_needed(today, today_size)

        items: List[RecommendedItem] = []
        cursor = start
        max_scan = min(total, start + page_size * self._scan_multiplier)
        rate_limited = False

        while cursor < max_scan and len(items) < page_size and not rate_limited:
            chunk = await self._pool.range(v, cursor, min(page_size, max_scan - cursor))
            if not chunk:
                break

            for symbol in chunk:
                if len(items) >= page_size:
                    break
                try:
                    item = await self._build_item(symbol)
                except RateLimitedError as exc:
                    rate_limited = True
                    logger.warning(f"[POOL] read stop due to rate limit. symbol={symbol} msg={exc}")
                    break
                except Exception as exc:
                    logger.debug(f"[POOL] read skip symbol={symbol} ex={type(exc).__name__} msg={exc}")
                    item = None

                cursor += 1
                if item is not None:
                    items.append(item)

        next_offset = cursor if cursor < total else None
        return RecommendationsPage(items=items, next_offset=next_offset, version=v)

    async def get_home_recommendations(self, version: Optional[str] = None) -> RecommendationsPage:
        """首页推荐：以首页条数为页长读取第一页，“加载更多”从其 next_offset 继续"""
        return await self.get_page(version, 0, limit=self._home_size)

    def _trigger_refill_if_needed(self, today: str, today_size: int) -> None:
        # 只做阈值判断，锁与冷却由补充服务最终把关
        if today_size < self._refill_threshold:
            logger.info(f"[POOL] trigger refill async. todaySize={today_size}")
            self._refill.refill_async(today)

    async def _build_item(self, symbol: str) -> Optional[RecommendedItem]:
        s = normalize_symbol(symbol)
        if not s:
            return None

        quote = await self._quotes.get_realtime_price(s)
        sparkline = await self._sparklines.get_sparkline(s)
        if not sparkline:
            return None

        return RecommendedItem(
            symbol=s,
            price=quote.price,
            change_percent=quote.change_percent,
            sparkline=sparkline,
        )


# ── 模块级别单例 ──────────────────────────────────────────
_recommendation_service: Optional[RecommendationService] = None


def get_recommendation_service() -> RecommendationService:
    global _recommendation_service
    pool = get_pool_store()
    if _recommendation_service is None or _recommendation_service._pool is not pool:
        _recommendation_service = RecommendationService(
            pool,
            get_quote_service(),
            get_sparkline_service(),
            get_refill_service(),
        )
    return _recommendation_service
