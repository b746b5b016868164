"""
候选股票目录服务
从 Twelve Data 拉取交易所股票列表，过滤为普通股 + 安全代码后随机抽样，
只供推荐池补充使用。
"""

import logging
import random
from typing import List, Optional

from dashboard_service.layers.acquisition import TwelveDataClient, get_twelvedata_client
from dashboard_service.layers.processing import ProcessingLayer, get_processing_layer
from dashboard_service.models.providers import TwelveDataStockItem

logger = logging.getLogger(__name__)


class CatalogService:

    def __init__(
        self,
        client: TwelveDataClient,
        processing: Optional[ProcessingLayer] = None,
        rng: Optional[random.Random] = None,
    ):
        self._client = client
        self._proc = processing or get_processing_layer()
        self._rng = rng or random.Random()

    async def list_candidates(self, pool_size: int) -> List[TwelveDataStockItem]:
        """返回至多 pool_size 个随机候选；目录为空时返回空列表"""
        response = await self._client.fetch_stocks()
        if not response.data:
            return []

        safe = self._proc.filter_catalog(response.data)
        logger.info(f"候选目录: total={len(response.data)} safe_common={len(safe)}")

        self._rng.shuffle(safe)
        return safe[: max(0, pool_size)]


# ── 模块级别单例 ──────────────────────────────────────────
_catalog_service: Optional[CatalogService] = None


def get_catalog_service() -> CatalogService:
    global _catalog_service
    if _catalog_service is None:
        _catalog_service = CatalogService(get_twelvedata_client())
    return _catalog_service
