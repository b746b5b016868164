"""统一 API 响应模型"""

from typing import Any, Optional
from pydantic import BaseModel

# ── 错误码（ApiResponse.error） ────────────────────────────
INVALID_ARGUMENT = "invalid_argument"
RATE_LIMITED = "rate_limited"
UNAVAILABLE = "unavailable"
STORE_UNAVAILABLE = "store_unavailable"
INTERNAL_ERROR = "internal_error"


class ApiResponse(BaseModel):
    """
    标准 API 响应封装

    失败时 error 取上面的错误码之一，message 为面向用户的说明
    """
    success: bool = True
    data: Optional[Any] = None
    message: str = ""
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "success") -> "ApiResponse":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str, message: str = "failed") -> "ApiResponse":
        return cls(success=False, error=error, message=message)
