"""
Layer 2 – 数据获取层
从外部数据提供商（Finnhub / Twelve Data）拉取原始数据，
统一错误语义后向上层提供标准接口：
  - 限流（HTTP 429 或限流响应体） → RateLimitedError
  - 其他 HTTP / 网络 / 解析失败    → ProviderError
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from dashboard_service.config import settings
from dashboard_service.exceptions import ProviderError, RateLimitedError
from dashboard_service.models.providers import (
    TwelveDataStocksResponse,
    TwelveDataTimeSeriesResponse,
)

logger = logging.getLogger(__name__)

_RATE_LIMIT_MARKERS = (
    '"code":429',
    '"code": 429',
    '"code": "429"',
    "run out of api credits",
    "api credits",
    "rate limit",
)


def is_rate_limit_body(body: Optional[str]) -> bool:
    """根据响应体判断是否为限流响应（Twelve Data 限流时可能仍返回 200）"""
    if not body or not body.strip():
        return False
    lowered = body.lower()
    return any(marker in lowered for marker in _RATE_LIMIT_MARKERS)


def _prefix(text: Optional[str], limit: int = 300) -> str:
    if not text or not text.strip():
        return "null"
    text = text.strip()
    return text if len(text) <= limit else text[:limit] + "..."


class FinnhubClient:
    """Finnhub 实时报价客户端"""

    provider = "finnhub"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key if api_key is not None else settings.FINNHUB_API_KEY
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.FINNHUB_BASE_URL).rstrip("/"),
            timeout=timeout or settings.HTTP_TIMEOUT,
            transport=transport,
        )

    async def fetch_quote(self, symbol: str) -> Optional[Dict[str, Any]]:
        """拉取原始报价字段 {c, d, dp, h, l, o, pc}；空响应返回 None"""
        try:
            resp = await self._client.get(
                "/quote", params={"symbol": symbol, "token": self._api_key}
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"Finnhub 请求失败 symbol={symbol}: {exc}") from exc

        if resp.status_code == 429 or is_rate_limit_body(resp.text):
            raise RateLimitedError(
                f"FINNHUB_RATE_LIMIT symbol={symbol} body={_prefix(resp.text)}",
                provider=self.provider,
            )
        if resp.status_code >= 400:
            raise ProviderError(
                f"Finnhub HTTP {resp.status_code} symbol={symbol} body={_prefix(resp.text)}"
            )
        if not resp.text.strip():
            return None
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderError(f"Finnhub 响应无法解析 symbol={symbol}") from exc
        return data if isinstance(data, dict) and data else None

    async def aclose(self) -> None:
        await self._client.aclose()


class TwelveDataClient:
    """Twelve Data 客户端：股票目录（/stocks）与日 K 线（/time_series）"""

    provider = "twelvedata"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key if api_key is not None else settings.TWELVEDATA_API_KEY
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.TWELVEDATA_BASE_URL).rstrip("/"),
            timeout=timeout or settings.HTTP_TIMEOUT,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def fetch_stocks(self, exchange: Optional[str] = None) -> TwelveDataStocksResponse:
        exchange = exchange or settings.TWELVEDATA_EXCHANGE
        body = await self._get_text("fetch_stocks", exchange, "/stocks", {"exchange": exchange})
        if body is None:
            return TwelveDataStocksResponse()
        try:
            return TwelveDataStocksResponse.model_validate_json(body)
        except ValidationError as exc:
            raise ProviderError(f"Twelve Data /stocks 响应无法解析: {_prefix(body)}") from exc

    async def fetch_time_series(
        self, symbol: str, outputsize: int, interval: str = "1day"
    ) -> Optional[TwelveDataTimeSeriesResponse]:
        """拉取日 K 线；普通失败返回 None，限流抛出 RateLimitedError"""
        params = {
            "symbol": symbol,
            "interval": interval,
            "outputsize": outputsize,
            "format": "JSON",
        }
        try:
            body = await self._get_text("fetch_time_series", symbol, "/time_series", params)
        except ProviderError as exc:
            logger.warning(f"twelvedata time_series 失败 symbol={symbol}: {exc}")
            return None
        if body is None:
            return None
        try:
            return TwelveDataTimeSeriesResponse.model_validate_json(body)
        except ValidationError:
            logger.warning(f"twelvedata time_series 解析失败 symbol={symbol} body={_prefix(body)}")
            return None

    async def _get_text(
        self, call: str, subject: str, path: str, params: Dict[str, Any]
    ) -> Optional[str]:
        try:
            resp = await self._client.get(path, params={**params, "apikey": self._api_key})
        except httpx.HTTPError as exc:
            raise ProviderError(f"twelvedata {call} 请求失败 {subject}: {exc}") from exc

        body = resp.text
        if resp.status_code == 429 or is_rate_limit_body(body):
            raise RateLimitedError(
                f"TWELVEDATA_RATE_LIMIT code=429 msg={_prefix(body)}",
                provider=self.provider,
            )
        if resp.status_code >= 400:
            raise ProviderError(
                f"twelvedata {call} HTTP {resp.status_code} {subject} body={_prefix(body)}"
            )
        if not body.strip():
            return None
        return body

    async def aclose(self) -> None:
        await self._client.aclose()


# ── 模块级别单例 ──────────────────────────────────────────
_finnhub: Optional[FinnhubClient] = None
_twelvedata: Optional[TwelveDataClient] = None


def get_finnhub_client() -> FinnhubClient:
    global _finnhub
    if _finnhub is None:
        _finnhub = FinnhubClient()
    return _finnhub


def get_twelvedata_client() -> TwelveDataClient:
    global _twelvedata
    if _twelvedata is None:
        _twelvedata = TwelveDataClient()
    return _twelvedata


async def close_clients() -> None:
    """关闭所有外部 HTTP 客户端"""
    global _finnhub, _twelvedata
    if _finnhub is not None:
        await _finnhub.aclose()
        _finnhub = None
    if _twelvedata is not None:
        await _twelvedata.aclose()
        _twelvedata = None
