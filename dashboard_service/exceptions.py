"""
统一异常定义

  InvalidArgumentError     – 参数非法（如标准化后为空的股票代码），不会触达存储
  UnavailableError         – 新鲜 / 过期缓存与外部接口均无法给出数据
  RateLimitedError         – 外部接口限流信号，分页扫描遇到后立即停止
  CorruptedCacheEntryError – 缓存值无法解析，按未命中处理并删除该键
  ProviderError            – 外部接口的普通失败（HTTP 错误、响应体异常）
"""

from typing import Optional


class DashboardError(Exception):
    """服务内所有业务异常的基类"""


class InvalidArgumentError(DashboardError, ValueError):
    pass


class UnavailableError(DashboardError):
    pass


class RateLimitedError(UnavailableError):
    """外部接口限流"""

    def __init__(self, message: str = "rate limited", provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class CorruptedCacheEntryError(DashboardError):
    def __init__(self, key: str, reason: str = ""):
        super().__init__(f"缓存值解析失败: {key} {reason}".strip())
        self.key = key


class ProviderError(DashboardError):
    pass
