"""状态流转 + 进度记录的组合写入

在同一 SQLite 事务内写入 Task 条件更新与 ProgressEntry，
二者要么同时提交，要么同时回滚。调用方负责开启事务（StoreGroup.transaction）。
"""

from datetime import datetime

from ulid import ULID

from ..models.enums import TaskStatus
from ..models.progress import ProgressEntry
from .progress_store import SqliteProgressStore
from .task_store import SqliteTaskStore


async def transition_with_progress(
    task_store: SqliteTaskStore,
    progress_store: SqliteProgressStore,
    task_id: str,
    from_status: TaskStatus,
    to_status: TaskStatus,
    actor_id: str,
    notes: str | None,
    now: datetime,
    **transition_fields,
) -> ProgressEntry | None:
    """条件更新任务状态，成功后追加进度记录

    Args:
        task_store: TaskStore 实例
        progress_store: ProgressStore 实例
        task_id: 任务 ID
        from_status: 期望的当前状态（条件更新前置条件）
        to_status: 目标状态
        actor_id: 操作者
        notes: 进度备注
        now: 本次写入的时间戳
        **transition_fields: 透传给 SqliteTaskStore.transition 的附加字段

    Returns:
        写入的 ProgressEntry；前置条件不成立时返回 None 且不做任何写入
    """
    updated = await task_store.transition(
        task_id,
        from_status,
        to_status,
        now,
        **transition_fields,
    )
    if not updated:
        return None

    entry = ProgressEntry(
        entry_id=str(ULID()),
        task_id=task_id,
        task_seq=await progress_store.get_next_task_seq(task_id),
        status=to_status,
        notes=notes,
        actor_id=actor_id,
        created_at=now,
    )
    await progress_store.append(entry)
    return entry
