"""
Stock Dashboard 行情缓存服务
独立 FastAPI 应用程序入口

启动方式:
    uvicorn dashboard_service.main:app --host 0.0.0.0 --port 8080
    python -m dashboard_service.main
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from dashboard_service import __version__
from dashboard_service.config import settings
from dashboard_service.db import init_redis, close_connections
from dashboard_service.exceptions import (
    InvalidArgumentError,
    RateLimitedError,
    UnavailableError,
)
from dashboard_service.layers.acquisition import close_clients
from dashboard_service.models import response as codes
from dashboard_service.models.response import ApiResponse
from dashboard_service.routers import health, pool, quotes, recommendations
from dashboard_service.services.refill_service import get_refill_service
from dashboard_service.tasks import cancel_all, spawn

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子"""
    logger.info("=" * 60)
    logger.info(f"🚀 Stock Dashboard QuoteService v{__version__} 启动中")
    logger.info(f"   Redis     : {settings.REDIS_HOST}:{settings.REDIS_PORT}")
    logger.info(f"   Pool      : target={settings.POOL_TARGET} tz={settings.POOL_TIMEZONE}")
    logger.info("=" * 60)

    redis_ok = await init_redis()

    if redis_ok:
        logger.info("✅ Redis 连接就绪")
        refill = get_refill_service()
        # 冷启动时池子为空会导致首页长时间没有推荐，这里先预热
        try:
            await refill.warm_up_if_needed()
        except Exception as exc:
            logger.warning(f"⚠️ 推荐池预热失败，跳过: {exc!r}", exc_info=True)
        if settings.POOL_REFILL_INTERVAL_SECONDS > 0:
            spawn(refill.run_schedule(), name="pool-refill-schedule")
    else:
        logger.warning("⚠️ Redis 不可用，行情与推荐接口将返回 503")

    yield

    logger.info("🔄 行情缓存服务正在关闭...")
    await cancel_all()
    await close_clients()
    await close_connections()
    logger.info("✅ 行情缓存服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="Stock Dashboard 行情缓存服务",
    description=(
        "股票看板后端的缓存一致性与推荐池补充服务：\n"
        "- ⚡ 实时报价两级缓存（fresh / stale）与防击穿单飞锁\n"
        "- 🗂️ 按日版本化的推荐池（锁 + 冷却门控补充、启动预热）\n"
        "- 📈 推荐分页读取（报价 + 迷你走势图补全，限流时保留游标）\n\n"
        "**分层架构**\n"
        "```\n"
        "Store Layer        ← Redis 共享 KV（锁 / 缓存 / 推荐池）\n"
        "Acquisition Layer  ← Finnhub / Twelve Data\n"
        "Processing Layer   ← 响应解析、清洗、标准化\n"
        "Pool Layer         ← 推荐池仓库\n"
        "```"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 异常处理 ──────────────────────────────────────────────
def _fail(status_code: int, error: str, message: str) -> JSONResponse:
    body = ApiResponse.fail(error=error, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(InvalidArgumentError)
async def invalid_argument_handler(request: Request, exc: InvalidArgumentError):
    return _fail(400, codes.INVALID_ARGUMENT, str(exc))


@app.exception_handler(RateLimitedError)
async def rate_limited_handler(request: Request, exc: RateLimitedError):
    logger.warning(f"外部接口限流: {request.url.path} {exc}")
    return _fail(429, codes.RATE_LIMITED, "数据提供商限流，请稍后重试")


@app.exception_handler(UnavailableError)
async def unavailable_handler(request: Request, exc: UnavailableError):
    logger.warning(f"数据暂不可用: {request.url.path} {exc}")
    return _fail(503, codes.UNAVAILABLE, str(exc))


@app.exception_handler(RedisError)
async def redis_error_handler(request: Request, exc: RedisError):
    logger.error(f"Redis 访问失败: {exc}")
    return _fail(503, codes.STORE_UNAVAILABLE, "共享存储不可用")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    return _fail(500, codes.INTERNAL_ERROR, f"内部服务错误: {exc}")


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(quotes.router)
app.include_router(recommendations.router)
app.include_router(pool.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Stock Dashboard QuoteService",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "dashboard_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
