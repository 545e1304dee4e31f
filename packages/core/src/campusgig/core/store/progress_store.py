"""ProgressStore SQLite 实现

进度表 append-only：只允许插入，不允许更新或删除。
不校验状态是否合法，那是编排层的职责。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import TaskStatus
from ..models.progress import ProgressEntry


class SqliteProgressStore:
    """ProgressLog 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_next_task_seq(self, task_id: str) -> int:
        """获取指定任务的下一个 task_seq（MAX+1），在事务内调用"""
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(task_seq), 0) FROM progress_entries WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        return (row[0] if row else 0) + 1

    async def append(self, entry: ProgressEntry) -> None:
        """追加进度记录（append-only）

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO progress_entries (entry_id, task_id, task_seq, status,
                                          notes, actor_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.entry_id,
                entry.task_id,
                entry.task_seq,
                entry.status.value,
                entry.notes,
                entry.actor_id,
                entry.created_at.isoformat(),
            ),
        )

    async def list_for(self, task_id: str) -> list[ProgressEntry]:
        """查询指定任务的进度记录，按 task_seq 正序"""
        cursor = await self._conn.execute(
            "SELECT * FROM progress_entries WHERE task_id = ? ORDER BY task_seq ASC",
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> ProgressEntry:
        return ProgressEntry(
            entry_id=row["entry_id"],
            task_id=row["task_id"],
            task_seq=row["task_seq"],
            status=TaskStatus(row["status"]),
            notes=row["notes"],
            actor_id=row["actor_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
