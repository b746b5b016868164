"""
测试公共夹具

FakeStore 在内存中实现 RedisStore 的同一组原子操作，TTL 由可控时钟驱动，
便于模拟锁过期、缓存过期等跨进程场景，无需真实 Redis。
"""

import os
import sys
from typing import Dict, Optional

import pytest

# 确保仓库根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


class FakeClock:
    def __init__(self, start: float = 1_760_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStore:
    """内存版 RedisStore"""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self._data: Dict[str, object] = {}
        self._expiry: Dict[str, float] = {}

    def _alive(self, key: str) -> bool:
        exp = self._expiry.get(key)
        if exp is not None and self.clock() >= exp:
            self._data.pop(key, None)
            self._expiry.pop(key, None)
        return key in self._data

    # ── 测试辅助 ──────────────────────────────────────────

    def raw(self, key: str):
        return self._data.get(key) if self._alive(key) else None

    def ttl(self, key: str) -> Optional[float]:
        if not self._alive(key) or key not in self._expiry:
            return None
        return self._expiry[key] - self.clock()

    def keys(self):
        return [k for k in list(self._data) if self._alive(k)]

    # ── RedisStore 接口 ───────────────────────────────────

    async def get(self, key):
        return self._data[key] if self._alive(key) else None

    async def set(self, key, value, ttl):
        self._data[key] = value
        self._expiry[key] = self.clock() + ttl

    async def set_if_absent(self, key, value, ttl):
        if self._alive(key):
            return False
        await self.set(key, value, ttl)
        return True

    async def delete(self, key):
        self._data.pop(key, None)
        self._expiry.pop(key, None)

    async def delete_if_value_matches(self, key, expected):
        if self._alive(key) and self._data[key] == expected:
            await self.delete(key)
            return True
        return False

    async def list_length(self, key):
        return len(self._data[key]) if self._alive(key) else 0

    async def list_range(self, key, start, stop):
        if not self._alive(key):
            return []
        return list(self._data[key][start:stop + 1])

    async def list_push(self, key, value):
        if not self._alive(key):
            self._data[key] = []
        self._data[key].append(value)
        return len(self._data[key])

    async def set_add(self, key, member):
        if not self._alive(key):
            self._data[key] = set()
        if member in self._data[key]:
            return False
        self._data[key].add(member)
        return True

    async def expire(self, key, ttl):
        if self._alive(key):
            self._expiry[key] = self.clock() + ttl


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return FakeStore(clock)
