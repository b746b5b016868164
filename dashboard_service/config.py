"""
行情缓存服务配置模块
支持从环境变量读取配置，自动检测 Docker 容器环境并启用服务发现
"""

import os
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _is_docker() -> bool:
    """检测当前是否运行在 Docker 容器内"""
    return (
        os.path.exists("/.dockerenv")
        or os.environ.get("DOCKER_CONTAINER", "").lower() in ("1", "true", "yes")
    )


def _default_redis_host() -> str:
    """Docker 环境使用服务名 'redis'，本地使用 'localhost'"""
    return "redis" if _is_docker() else "localhost"


class DashboardSettings(BaseSettings):
    """行情缓存服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8080)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── Redis 配置（支持服务发现） ─────────────────────────
    REDIS_HOST: str = Field(default_factory=_default_redis_host)
    REDIS_PORT: int = Field(default=6379)
    REDIS_PASSWORD: str = Field(default="")
    REDIS_DB: int = Field(default=0)
    REDIS_ENABLED: bool = Field(default=True)
    REDIS_MAX_CONNECTIONS: int = Field(default=20)

    @property
    def REDIS_URL(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── 数据源配置 ─────────────────────────────────────────
    FINNHUB_BASE_URL: str = Field(default="https://finnhub.io/api/v1")
    FINNHUB_API_KEY: str = Field(default="")
    TWELVEDATA_BASE_URL: str = Field(default="https://api.twelvedata.com")
    TWELVEDATA_API_KEY: str = Field(default="")
    TWELVEDATA_EXCHANGE: str = Field(default="NASDAQ")
    HTTP_TIMEOUT: float = Field(default=5.0)         # 外部接口超时（秒）

    # ── 实时报价缓存 ──────────────────────────────────────
    QUOTE_FRESH_TTL: int = Field(default=10)         # 实时画面用
    QUOTE_STALE_TTL: int = Field(default=600)        # 故障 / 限流时的兜底
    QUOTE_LOCK_TTL: int = Field(default=10)
    QUOTE_LOCK_WAIT_MS: int = Field(default=80)      # 未抢到锁时的单次等待

    # ── 迷你走势图（Sparkline） ───────────────────────────
    SPARKLINE_DAYS: int = Field(default=30)
    SPARKLINE_CACHE_TTL: int = Field(default=21600)  # 6h
    SPARKLINE_EMPTY_TTL: int = Field(default=60)
    SPARKLINE_LOCK_TTL: int = Field(default=10)

    # ── 推荐池 ────────────────────────────────────────────
    POOL_TIMEZONE: str = Field(default="Asia/Seoul")
    POOL_TTL_HOURS: int = Field(default=48)          # 前一天的池子可临时复用
    POOL_LOCK_TTL: int = Field(default=60)
    POOL_COOLDOWN_SECONDS: int = Field(default=600)
    POOL_TARGET: int = Field(default=20)
    POOL_REFILL_BATCH: int = Field(default=5)
    POOL_CANDIDATE_SIZE: int = Field(default=120)
    POOL_MAX_ATTEMPTS: int = Field(default=200)
    POOL_PAGE_SIZE: int = Field(default=10)
    POOL_SCAN_MULTIPLIER: int = Field(default=3)
    POOL_REFILL_TRIGGER_THRESHOLD: int = Field(default=10)
    POOL_WARMUP_MAX_ITERATIONS: int = Field(default=10)
    POOL_WARMUP_INTERVAL_MS: int = Field(default=300)
    POOL_REFILL_INTERVAL_SECONDS: int = Field(default=600)  # 定时补充间隔，0 表示关闭
    HOME_RECOMMEND_SIZE: int = Field(default=5)

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")
    TZ: str = Field(default="Asia/Seoul")


@lru_cache
def get_settings() -> DashboardSettings:
    """获取全局配置（单例）"""
    return DashboardSettings()


settings = get_settings()
