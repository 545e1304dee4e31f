"""NotificationStore SQLite 实现"""

from datetime import datetime

import aiosqlite

from ..models.enums import NotificationType
from ..models.notification import Notification


class SqliteNotificationStore:
    """NotificationStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def insert(self, notification: Notification) -> None:
        await self._conn.execute(
            """
            INSERT INTO notifications (notification_id, user_id, type, title,
                                       content, task_id, read, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                notification.notification_id,
                notification.user_id,
                notification.type.value,
                notification.title,
                notification.content,
                notification.task_id,
                int(notification.read),
                notification.created_at.isoformat(),
            ),
        )

    async def list_for(self, user_id: str) -> list[Notification]:
        """用户通知，最新在前"""
        cursor = await self._conn.execute(
            "SELECT * FROM notifications WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_notification(row) for row in rows]

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        """只有接收者能标记已读；返回是否命中"""
        cursor = await self._conn.execute(
            "UPDATE notifications SET read = 1 WHERE notification_id = ? AND user_id = ?",
            (notification_id, user_id),
        )
        return cursor.rowcount == 1

    async def unread_count(self, user_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND read = 0",
            (user_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_notification(row: aiosqlite.Row) -> Notification:
        return Notification(
            notification_id=row["notification_id"],
            user_id=row["user_id"],
            type=NotificationType(row["type"]),
            title=row["title"],
            content=row["content"],
            task_id=row["task_id"],
            read=bool(row["read"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
