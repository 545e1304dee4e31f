"""SSE 进度流路由

GET /api/stream/task/{task_id}: 订阅任务进度记录。
每次 progress_entries 提交变更推送该任务的完整进度列表；
任务到达终态后携带 final: true 并结束流。15 秒心跳保活。
"""

import asyncio
import json

import structlog
from campusgig.core.config import SSE_HEARTBEAT_INTERVAL
from campusgig.core.exceptions import MarketplaceError
from campusgig.core.marketplace import Marketplace
from campusgig.core.models import TERMINAL_STATES, ProgressEntry
from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from ..deps import get_marketplace
from ..errors import error_response

log = structlog.get_logger()

router = APIRouter()

# 单个订阅者的缓冲上限，写满即视为慢消费者并断开
QUEUE_MAXSIZE = 100


def _progress_to_sse_data(
    task_id: str,
    entries: list[ProgressEntry],
    is_final: bool,
) -> dict:
    return {
        "task_id": task_id,
        "progress": [e.model_dump(mode="json") for e in entries],
        "final": is_final,
    }


@router.get("/api/stream/task/{task_id}")
async def stream_task_progress(
    task_id: str,
    market: Marketplace = Depends(get_marketplace),
):
    """SSE 进度流端点

    1. 订阅时立即推送当前完整进度
    2. 每次提交变更推送完整进度
    3. 终态时携带 final: true 并结束
    """
    try:
        await market.tasks.get(task_id)
    except MarketplaceError as e:
        return error_response(e)

    queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_MAXSIZE)
    overflowed = asyncio.Event()

    def on_change(entries: list[ProgressEntry]) -> None:
        try:
            queue.put_nowait(entries)
        except asyncio.QueueFull:
            overflowed.set()

    async def event_generator():
        subscription = await market.tasks.subscribe_progress(task_id, on_change)
        try:
            while not overflowed.is_set():
                try:
                    entries = await asyncio.wait_for(
                        queue.get(), timeout=SSE_HEARTBEAT_INTERVAL
                    )
                except TimeoutError:
                    yield {"comment": "heartbeat"}
                    continue

                is_final = bool(entries) and entries[-1].status in TERMINAL_STATES
                data = _progress_to_sse_data(task_id, entries, is_final)
                yield {
                    "id": entries[-1].entry_id if entries else task_id,
                    "event": "progress",
                    "data": json.dumps(data, ensure_ascii=False),
                }
                if is_final:
                    return
            log.warning("sse_subscriber_dropped", task_id=task_id)
        finally:
            await subscription.aclose()

    return EventSourceResponse(event_generator())
