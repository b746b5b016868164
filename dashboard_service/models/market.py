"""行情与推荐数据模型"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CachedQuote(BaseModel):
    """实时报价。写入缓存后不再修改，有效期由缓存键的 TTL 决定"""
    model_config = ConfigDict(frozen=True)

    symbol: str
    price: float
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    previous_close: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    volume: int = 0


class SparklinePoint(BaseModel):
    index: int
    close: float


class RecommendedItem(BaseModel):
    symbol: str
    price: float
    change_percent: float
    sparkline: List[SparklinePoint] = Field(default_factory=list)


class RecommendationsPage(BaseModel):
    """推荐池分页结果；next_offset 为 None 表示池子已读完"""
    items: List[RecommendedItem] = Field(default_factory=list)
    next_offset: Optional[int] = None
    version: Optional[str] = None
