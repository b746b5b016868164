"""
后台任务（fire-and-forget）
触发方不等待结果，任务的唯一可观察效果是对共享存储的写入。
这里只负责持有任务引用（防止被 GC 回收）并记录未处理的异常。
"""

import asyncio
import logging
from typing import Coroutine, Optional, Set

logger = logging.getLogger(__name__)

_background_tasks: Set[asyncio.Task] = set()


def _on_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(f"后台任务异常退出 task={task.get_name()}: {exc!r}")


def spawn(coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
    """在当前事件循环中启动后台任务并立即返回"""
    task = asyncio.get_running_loop().create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_done)
    return task


def pending_count() -> int:
    return len(_background_tasks)


async def cancel_all() -> None:
    """关闭时取消所有仍在运行的后台任务"""
    tasks = list(_background_tasks)
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"已取消 {len(tasks)} 个后台任务")
