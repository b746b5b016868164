"""
Layer 3 – 数据处理层
对外部原始数据进行校验、清洗、标准化，生成上层可直接使用的数据。
"""

import logging
import re
from typing import Any, Dict, List, Optional

import pandas as pd
from pydantic import ValidationError

from dashboard_service.models.market import CachedQuote, SparklinePoint
from dashboard_service.models.providers import (
    FinnhubQuote,
    TwelveDataStockItem,
    TwelveDataTimeSeriesResponse,
)

logger = logging.getLogger(__name__)


def normalize_symbol(symbol: Optional[str]) -> str:
    """去空白并转大写"""
    return (symbol or "").strip().upper()


def is_safe_symbol(symbol: Optional[str], max_length: int = 6) -> bool:
    """仅接受 1~max_length 位大写字母，过滤目录里的异常代码（如 BRK.A、含数字的权证）"""
    if symbol is None:
        return False
    return re.fullmatch(rf"[A-Z]{{1,{max_length}}}", normalize_symbol(symbol)) is not None


class ProcessingLayer:
    """数据处理层：解析 + 清洗 + 标准化"""

    def parse_quote(self, symbol: str, raw: Optional[Dict[str, Any]]) -> Optional[CachedQuote]:
        """
        Finnhub 原始报价 → CachedQuote

        空响应、字段缺失或全零（Finnhub 对未知代码的返回）均视为无数据，返回 None
        """
        if not raw:
            return None
        try:
            q = FinnhubQuote.model_validate(raw)
        except ValidationError as exc:
            logger.warning(f"Finnhub 报价格式异常 symbol={symbol}: {exc.error_count()} 个字段错误")
            return None

        if q.c == 0 and not q.pc:
            return None

        return CachedQuote(
            symbol=symbol,
            price=q.c,
            open=q.o or 0.0,
            high=q.h or 0.0,
            low=q.l or 0.0,
            previous_close=q.pc or 0.0,
            change=q.d or 0.0,
            change_percent=q.dp or 0.0,
            volume=0,
        )

    def to_sparkline(
        self, response: Optional[TwelveDataTimeSeriesResponse]
    ) -> List[SparklinePoint]:
        """
        K 线收盘价 → 迷你走势图

        Twelve Data 按时间倒序返回，这里翻转为正序；
        无法解析的收盘价被丢弃，不足 2 个点时返回空列表
        """
        if response is None or not response.values:
            return []

        df = pd.DataFrame([v.model_dump() for v in response.values])
        closes = pd.to_numeric(df["close"], errors="coerce").dropna()
        if len(closes) < 2:
            return []

        ordered = closes.iloc[::-1].reset_index(drop=True)
        return [
            SparklinePoint(index=int(i), close=float(c))
            for i, c in ordered.items()
        ]

    def filter_catalog(
        self, items: List[TwelveDataStockItem], max_symbol_length: int = 5
    ) -> List[TwelveDataStockItem]:
        """只保留普通股（Common Stock）且代码安全的目录条目"""
        if not items:
            return []

        df = pd.DataFrame([it.model_dump() for it in items])
        df = df.dropna(subset=["symbol", "type"])
        if df.empty:
            return []

        df["symbol"] = df["symbol"].str.strip().str.upper()
        common = df["type"].str.strip().str.lower() == "common stock"
        safe = df["symbol"].str.fullmatch(rf"[A-Z]{{1,{max_symbol_length}}}")
        df = df[common & safe.fillna(False)]

        logger.debug(f"目录过滤: total={len(items)} common_safe={len(df)}")
        return [
            TwelveDataStockItem(**row)
            for row in df.astype(object).where(df.notna(), None).to_dict(orient="records")
        ]


# ── 模块级别单例 ──────────────────────────────────────────
_processing: Optional[ProcessingLayer] = None


def get_processing_layer() -> ProcessingLayer:
    global _processing
    if _processing is None:
        _processing = ProcessingLayer()
    return _processing
