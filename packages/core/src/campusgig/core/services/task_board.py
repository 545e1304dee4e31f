"""TaskBoard -- 任务发布、查询与推送订阅

状态变更不在这里：所有流转都经由 TaskLifecycle。
"""

from datetime import UTC, datetime

import structlog
from ulid import ULID

from ..exceptions import NotFoundError
from ..models.money import quantize
from ..models.progress import ProgressEntry
from ..models.task import Task, TaskDraft, TaskFilter
from ..store import StoreGroup, Subscription

log = structlog.get_logger()


class TaskBoard:
    """任务读写服务（不含状态流转）"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def create(self, draft: TaskDraft, created_by: str) -> str:
        """发布任务

        无论输入如何，status 固定为 open、accepted_by 为空、时间戳取当前时间。

        Returns:
            task_id
        """
        now = datetime.now(UTC)
        task = Task(
            task_id=str(ULID()),
            title=draft.title,
            description=draft.description,
            category=draft.category,
            location=draft.location,
            price=quantize(draft.price),
            estimated_time=draft.estimated_time,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        async with self._stores.transaction("tasks") as stores:
            await stores.task_store.create_task(task)

        log.info(
            "task_created",
            task_id=task.task_id,
            created_by=created_by,
            price=str(task.price),
        )
        return task.task_id

    async def get(self, task_id: str) -> Task:
        """查询任务

        Raises:
            NotFoundError: 任务不存在
        """
        async with self._stores.snapshot() as stores:
            task = await stores.task_store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    async def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        async with self._stores.snapshot() as stores:
            return await stores.task_store.list_tasks(task_filter)

    async def list_progress(self, task_id: str) -> list[ProgressEntry]:
        """任务进度记录，按写入顺序"""
        async with self._stores.snapshot() as stores:
            return await stores.progress_store.list_for(task_id)

    async def subscribe(self, task_filter: TaskFilter | None, callback) -> Subscription:
        """订阅匹配过滤条件的任务集合，每次 tasks 变更推送完整结果"""
        return await self._stores.live.subscribe(
            "tasks",
            lambda: self.list_tasks(task_filter),
            callback,
        )

    async def subscribe_progress(self, task_id: str, callback) -> Subscription:
        """订阅单个任务的进度记录"""
        return await self._stores.live.subscribe(
            "progress_entries",
            lambda: self.list_progress(task_id),
            callback,
        )
