"""外部数据提供商响应结构（Finnhub / Twelve Data）"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FinnhubQuote(BaseModel):
    """Finnhub /quote 响应"""
    model_config = ConfigDict(extra="ignore")

    c: float                      # 现价
    d: Optional[float] = None     # 涨跌额
    dp: Optional[float] = None    # 涨跌幅 %
    h: Optional[float] = None
    l: Optional[float] = None
    o: Optional[float] = None
    pc: Optional[float] = None    # 昨收


class TwelveDataStockItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    symbol: Optional[str] = None
    name: Optional[str] = None
    exchange: Optional[str] = None
    type: Optional[str] = None


class TwelveDataStocksResponse(BaseModel):
    """Twelve Data /stocks 响应"""
    model_config = ConfigDict(extra="ignore")

    data: List[TwelveDataStockItem] = Field(default_factory=list)
    status: Optional[str] = None


class TwelveDataTimeSeriesValue(BaseModel):
    model_config = ConfigDict(extra="ignore")

    datetime: Optional[str] = None
    close: Optional[str] = None


class TwelveDataTimeSeriesResponse(BaseModel):
    """Twelve Data /time_series 响应，values 按时间倒序"""
    model_config = ConfigDict(extra="ignore")

    values: List[TwelveDataTimeSeriesValue] = Field(default_factory=list)
    status: Optional[str] = None
