"""
实时报价路由
GET /api/market/quote/{symbol}   - 获取实时报价（两级缓存）
"""

from fastapi import APIRouter, Depends

from dashboard_service.models.response import ApiResponse
from dashboard_service.services.quote_service import QuoteService, get_quote_service

router = APIRouter(prefix="/api/market", tags=["实时报价"])


@router.get("/quote/{symbol}", response_model=ApiResponse)
async def get_quote(symbol: str, service: QuoteService = Depends(get_quote_service)):
    """获取实时报价；异常由全局处理器映射为 400 / 429 / 503"""
    quote = await service.get_realtime_price(symbol)
    return ApiResponse.ok(data=quote.model_dump())
