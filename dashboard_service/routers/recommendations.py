"""
首页推荐路由
GET /api/home/version                  - 当前推荐池版本（当日为空时回退前一天）
GET /api/home/recommendations          - 推荐池分页（更多）
GET /api/home/recommendations/home     - 首页推荐（前 N 个）
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from dashboard_service.models.response import ApiResponse
from dashboard_service.services.recommendation_service import (
    RecommendationService,
    get_recommendation_service,
)

router = APIRouter(prefix="/api/home", tags=["首页推荐"])


@router.get("/version", response_model=ApiResponse)
async def current_version(
    service: RecommendationService = Depends(get_recommendation_service),
):
    return ApiResponse.ok(data={"version": await service.current_version()})


@router.get("/recommendations", response_model=ApiResponse)
async def recommendations(
    offset: int = Query(0, ge=0, description="上一页返回的 next_offset"),
    v: Optional[str] = Query(None, description="推荐池版本 YYYYMMDD，缺省为当前版本"),
    service: RecommendationService = Depends(get_recommendation_service),
):
    page = await service.get_page(v, offset)
    return ApiResponse.ok(data=page.model_dump())


@router.get("/recommendations/home", response_model=ApiResponse)
async def home_recommendations(
    v: Optional[str] = Query(None, description="推荐池版本 YYYYMMDD"),
    service: RecommendationService = Depends(get_recommendation_service),
):
    page = await service.get_home_recommendations(v)
    return ApiResponse.ok(data=page.model_dump())
