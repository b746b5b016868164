"""健康检查路由"""

import time
from pathlib import Path

from fastapi import APIRouter

from dashboard_service import __version__
from dashboard_service.db import check_health
from dashboard_service.tasks import pending_count

router = APIRouter(tags=["健康检查"])


def _read_version() -> str:
    vf = Path(__file__).parent.parent.parent / "VERSION"
    if vf.exists():
        return vf.read_text(encoding="utf-8").strip()
    return __version__


@router.get("/health")
async def health():
    """服务健康检查"""
    db_health = await check_health()
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": _read_version(),
            "timestamp": int(time.time()),
            "service": "Stock Dashboard QuoteService",
            "databases": db_health,
            "background_tasks": pending_count(),
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz():
    """Kubernetes readiness probe：Redis 未连接时不接收流量"""
    db_health = await check_health()
    return {"ready": db_health["redis"]["status"] in ("healthy", "disabled")}
