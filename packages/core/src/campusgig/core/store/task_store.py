"""TaskStore SQLite 实现

tasks 表保存任务的规范状态。
status 只能经由 transition() 的条件更新修改（compare-and-set），
update_fields() 只负责非状态字段的补丁。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import TaskStatus
from ..models.money import from_cents, to_cents
from ..models.task import Task, TaskFilter

# 可以通过 update_fields 修改的字段（status / accepted_by 只能经由 transition）
_PATCHABLE_FIELDS = {
    "title",
    "description",
    "category",
    "location",
    "estimated_time",
    "completed_at",
}

# TaskFilter 字段 -> 列名
_FILTER_COLUMNS = ("status", "created_by", "accepted_by", "category")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def build_filter_clause(task_filter: TaskFilter | None) -> tuple[str, list]:
    """把 TaskFilter 转换为 WHERE 子句与参数

    单值 -> `col = ?`，列表 -> `col IN (...)`；空列表匹配不到任何任务。
    """
    if task_filter is None:
        return "", []

    clauses: list[str] = []
    params: list = []
    for column in _FILTER_COLUMNS:
        value = getattr(task_filter, column)
        if value is None:
            continue
        if isinstance(value, list):
            if not value:
                clauses.append("0")
                continue
            placeholders = ", ".join("?" for _ in value)
            clauses.append(f"{column} IN ({placeholders})")
            params.extend(str(v) for v in value)
        else:
            clauses.append(f"{column} = ?")
            params.append(str(value))

    if not clauses:
        return "", []
    return " WHERE " + " AND ".join(clauses), params


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> None:
        """创建任务记录

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO tasks (task_id, title, description, category, location,
                               price_cents, estimated_time, created_by, accepted_by,
                               status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?, ?)
            """,
            (
                task.task_id,
                task.title,
                task.description,
                task.category,
                task.location,
                to_cents(task.price),
                task.estimated_time,
                task.created_by,
                TaskStatus.OPEN.value,
                task.created_at.isoformat(),
                task.updated_at.isoformat(),
            ),
        )

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            "SELECT * FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        """按过滤条件查询任务，按 created_at 倒序"""
        where, params = build_filter_clause(task_filter)
        cursor = await self._conn.execute(
            f"SELECT * FROM tasks{where} ORDER BY created_at DESC, task_id DESC",
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def list_completed_paid(self) -> list[Task]:
        """所有已完成且有报酬、有执行者的任务（用于结算补偿）"""
        cursor = await self._conn.execute(
            """
            SELECT * FROM tasks
            WHERE status = ? AND price_cents > 0 AND accepted_by IS NOT NULL
            ORDER BY created_at ASC
            """,
            (TaskStatus.COMPLETED.value,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def transition(
        self,
        task_id: str,
        from_status: TaskStatus,
        to_status: TaskStatus,
        updated_at: datetime,
        *,
        expected_performer: str | None = None,
        assign_performer: str | None = None,
        cancelled_at: datetime | None = None,
        cancelled_by: str | None = None,
        cancellation_reason: str | None = None,
    ) -> bool:
        """条件更新任务状态

        仅当任务当前仍处于 from_status（以及 expected_performer 匹配）时写入，
        assign_performer 额外要求 accepted_by 仍为空。

        Returns:
            True 如果恰好一行被更新，False 表示前置条件已不成立
        """
        sql = """
            UPDATE tasks
            SET status = ?, updated_at = ?,
                accepted_by = COALESCE(?, accepted_by),
                cancelled_at = COALESCE(?, cancelled_at),
                cancelled_by = COALESCE(?, cancelled_by),
                cancellation_reason = COALESCE(?, cancellation_reason)
            WHERE task_id = ? AND status = ?
        """
        params: list = [
            to_status.value,
            updated_at.isoformat(),
            assign_performer,
            _iso(cancelled_at),
            cancelled_by,
            cancellation_reason,
            task_id,
            from_status.value,
        ]
        if expected_performer is not None:
            sql += " AND accepted_by = ?"
            params.append(expected_performer)
        if assign_performer is not None:
            sql += " AND accepted_by IS NULL AND created_by <> ?"
            params.append(assign_performer)

        cursor = await self._conn.execute(sql, params)
        return cursor.rowcount == 1

    async def update_fields(self, task_id: str, updated_at: datetime, **fields) -> bool:
        """非状态字段补丁（仅供编排层内部使用，如完成时写入 completed_at）

        Raises:
            ValueError: 试图直接修改 status / accepted_by 等受保护字段
        """
        illegal = set(fields) - _PATCHABLE_FIELDS
        if illegal:
            raise ValueError(f"fields {sorted(illegal)} cannot be patched directly")
        if not fields:
            return False

        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = [
            _iso(v) if isinstance(v, datetime) else v for v in fields.values()
        ]
        cursor = await self._conn.execute(
            f"UPDATE tasks SET {assignments}, updated_at = ? WHERE task_id = ?",
            [*values, updated_at.isoformat(), task_id],
        )
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            task_id=row["task_id"],
            title=row["title"],
            description=row["description"],
            category=row["category"],
            location=row["location"],
            price=from_cents(row["price_cents"]),
            estimated_time=row["estimated_time"],
            created_by=row["created_by"],
            accepted_by=row["accepted_by"],
            status=TaskStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            completed_at=_parse(row["completed_at"]),
            cancelled_at=_parse(row["cancelled_at"]),
            cancelled_by=row["cancelled_by"],
            cancellation_reason=row["cancellation_reason"],
        )
