"""提交后副作用的重试封装

通知、会话绑定等副作用不在状态流转的原子边界内，
但必须至少执行一次：瞬时失败按指数退避重试。
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from .exceptions import StoreUnavailableError

log = structlog.get_logger()

T = TypeVar("T")


async def retry_async(
    op: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    base_delay_s: float,
    op_name: str,
    retry_on: tuple[type[BaseException], ...] = (StoreUnavailableError,),
) -> T:
    """执行 op，遇到 retry_on 中的异常时退避重试

    Args:
        op: 无参异步操作
        attempts: 最大尝试次数（>= 1）
        base_delay_s: 首次重试等待时间，之后每次翻倍
        op_name: 日志中的操作名
        retry_on: 视为瞬时失败的异常类型

    Raises:
        最后一次尝试的异常
    """
    delay = base_delay_s
    for attempt in range(1, attempts + 1):
        try:
            return await op()
        except retry_on as e:
            if attempt >= attempts:
                raise
            log.warning(
                "side_effect_retry",
                op=op_name,
                attempt=attempt,
                error=str(e),
            )
            await asyncio.sleep(delay)
            delay *= 2

    raise RuntimeError(f"{op_name} failed after {attempts} attempts")
