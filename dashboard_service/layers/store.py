"""
Layer 1 – 存储层
所有进程共享的 Redis KV。跨进程的锁、缓存与推荐池状态都只存放在这里，
进程内不保留任何权威状态。
"""

import hashlib
import logging
from typing import List, Optional

from redis.asyncio import Redis

from dashboard_service.db import get_redis
from dashboard_service.exceptions import UnavailableError

logger = logging.getLogger(__name__)

# 仅当值等于调用方持有的令牌时才删除（服务端原子执行）
_DELETE_IF_MATCHES_LUA = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


def make_key(namespace: str, *parts: str) -> str:
    """生成规范化缓存键，例如 make_key("quote", "fresh", "AAPL") -> quote:fresh:AAPL"""
    raw = ":".join([namespace] + list(parts))
    if len(raw) > 200:
        raw = namespace + ":" + hashlib.md5(raw.encode()).hexdigest()
    return raw


class RedisStore:
    """共享 KV 存储，只暴露协调所需的原子操作"""

    def __init__(self, client: Redis):
        self._client = client
        self._delete_if_matches = client.register_script(_DELETE_IF_MATCHES_LUA)

    # ── 字符串 ────────────────────────────────────────────

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self._client.set(key, value, ex=ttl)

    async def set_if_absent(self, key: str, value: str, ttl: int) -> bool:
        """SET NX EX：仅当键不存在时写入"""
        return bool(await self._client.set(key, value, ex=ttl, nx=True))

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def delete_if_value_matches(self, key: str, expected: str) -> bool:
        """原子比较并删除，用于基于令牌的锁释放"""
        deleted = await self._delete_if_matches(keys=[key], args=[expected])
        return bool(deleted)

    # ── 列表 / 集合（推荐池） ─────────────────────────────

    async def list_length(self, key: str) -> int:
        return int(await self._client.llen(key) or 0)

    async def list_range(self, key: str, start: int, stop: int) -> List[str]:
        """闭区间 [start, stop]，与 LRANGE 语义一致"""
        return list(await self._client.lrange(key, start, stop) or [])

    async def list_push(self, key: str, value: str) -> int:
        return int(await self._client.rpush(key, value))

    async def set_add(self, key: str, member: str) -> bool:
        """SADD：仅当成员为新加入时返回 True"""
        return int(await self._client.sadd(key, member)) > 0

    async def expire(self, key: str, ttl: int) -> None:
        await self._client.expire(key, ttl)


# ── 模块级别单例 ──────────────────────────────────────────
_store: Optional[RedisStore] = None


def get_store() -> RedisStore:
    global _store
    client = get_redis()
    if client is None:
        raise UnavailableError("Redis 未连接")
    if _store is None or _store._client is not client:
        _store = RedisStore(client)
    return _store
