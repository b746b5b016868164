"""
推荐池管理路由
GET  /api/pool/status     - 当日 / 前一天推荐池大小
POST /api/pool/refill     - 手动触发一次后台补充（仍受锁与冷却约束）
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from dashboard_service.layers.pool import PoolStore, get_pool_store
from dashboard_service.models.response import ApiResponse
from dashboard_service.services.refill_service import PoolRefillService, get_refill_service

router = APIRouter(prefix="/api/pool", tags=["推荐池管理"])


class RefillRequest(BaseModel):
    version: Optional[str] = None


@router.get("/status", response_model=ApiResponse)
async def pool_status(pool: PoolStore = Depends(get_pool_store)):
    today = pool.today_version()
    yesterday = pool.yesterday_version()
    return ApiResponse.ok(
        data={
            "today": {"version": today, "size": await pool.size(today)},
            "yesterday": {"version": yesterday, "size": await pool.size(yesterday)},
        }
    )


@router.post("/refill", response_model=ApiResponse)
async def trigger_refill(
    body: RefillRequest,
    pool: PoolStore = Depends(get_pool_store),
    refill: PoolRefillService = Depends(get_refill_service),
):
    version = body.version or pool.today_version()
    refill.refill_async(version)
    return ApiResponse.ok(data={"version": version}, message=f"已触发推荐池补充: {version}")
