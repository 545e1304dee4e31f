"""ChatStore SQLite 实现

chat_threads 以 participant_key（排序后的用户对）唯一索引去重，
首次会话的并发创建通过 upsert 收敛到同一行。
chat_messages 是规范写入，task_messages 是按任务读取的兼容投影。
"""

from datetime import datetime

import aiosqlite

from ..exceptions import NotFoundError
from ..models.chat import ChatMessage, ChatThread, participant_key


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SqliteChatStore:
    """ChatStore 的 SQLite 实现

    注意：写方法不自动提交事务，需由调用方管理事务。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def upsert_thread(
        self,
        thread_id: str,
        user_a: str,
        user_b: str,
        task_id: str | None,
        now: datetime,
    ) -> ChatThread:
        """按用户对 find-or-create，并在给定 task_id 时刷新 last_task_id

        已存在时 thread_id 参数被忽略，返回既有会话。
        """
        first, second = sorted((user_a, user_b))
        await self._conn.execute(
            """
            INSERT INTO chat_threads (thread_id, participant_key, participant_a,
                                      participant_b, last_task_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(participant_key) DO UPDATE SET
                last_task_id = excluded.last_task_id,
                updated_at = excluded.updated_at
            WHERE excluded.last_task_id IS NOT NULL
            """,
            (
                thread_id,
                participant_key(first, second),
                first,
                second,
                task_id,
                now.isoformat(),
                now.isoformat(),
            ),
        )
        thread = await self.get_thread_by_participants(first, second)
        if thread is None:
            raise NotFoundError("chat_thread", participant_key(first, second))
        return thread

    async def get_thread(self, thread_id: str) -> ChatThread | None:
        cursor = await self._conn.execute(
            "SELECT * FROM chat_threads WHERE thread_id = ?",
            (thread_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_thread(row) if row else None

    async def get_thread_by_participants(self, user_a: str, user_b: str) -> ChatThread | None:
        cursor = await self._conn.execute(
            "SELECT * FROM chat_threads WHERE participant_key = ?",
            (participant_key(user_a, user_b),),
        )
        row = await cursor.fetchone()
        return self._row_to_thread(row) if row else None

    async def list_threads_for(self, user_id: str) -> list[ChatThread]:
        """用户参与的会话，最近活跃在前"""
        cursor = await self._conn.execute(
            """
            SELECT * FROM chat_threads
            WHERE participant_a = ? OR participant_b = ?
            ORDER BY COALESCE(last_message_time, updated_at) DESC
            """,
            (user_id, user_id),
        )
        rows = await cursor.fetchall()
        return [self._row_to_thread(row) for row in rows]

    async def count_threads(self, user_a: str, user_b: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM chat_threads WHERE participant_key = ?",
            (participant_key(user_a, user_b),),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def insert_message(self, message: ChatMessage) -> None:
        """写入规范消息；带 task_id 时同步写入任务维度投影"""
        await self._conn.execute(
            """
            INSERT INTO chat_messages (message_id, thread_id, sender_id, recipient_id,
                                       content, attachment_ref, task_id, is_read, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?)
            """,
            (
                message.message_id,
                message.thread_id,
                message.sender_id,
                message.recipient_id,
                message.content,
                message.attachment_ref,
                message.task_id,
                message.created_at.isoformat(),
            ),
        )
        if message.task_id is not None:
            await self._conn.execute(
                """
                INSERT INTO task_messages (message_id, task_id, thread_id, sender_id,
                                           recipient_id, content, attachment_ref,
                                           is_read, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    message.message_id,
                    message.task_id,
                    message.thread_id,
                    message.sender_id,
                    message.recipient_id,
                    message.content,
                    message.attachment_ref,
                    message.created_at.isoformat(),
                ),
            )

    async def update_thread_summary(
        self,
        thread_id: str,
        preview: str,
        sender_id: str,
        sent_at: datetime,
    ) -> None:
        await self._conn.execute(
            """
            UPDATE chat_threads
            SET last_message = ?, last_message_time = ?, last_sender = ?, updated_at = ?
            WHERE thread_id = ?
            """,
            (preview, sent_at.isoformat(), sender_id, sent_at.isoformat(), thread_id),
        )

    async def get_message(self, thread_id: str, message_id: str) -> ChatMessage | None:
        cursor = await self._conn.execute(
            "SELECT * FROM chat_messages WHERE thread_id = ? AND message_id = ?",
            (thread_id, message_id),
        )
        row = await cursor.fetchone()
        return self._row_to_message(row) if row else None

    async def mark_read(self, message_id: str) -> None:
        """两份副本同时标记已读"""
        await self._conn.execute(
            "UPDATE chat_messages SET is_read = 1 WHERE message_id = ?",
            (message_id,),
        )
        await self._conn.execute(
            "UPDATE task_messages SET is_read = 1 WHERE message_id = ?",
            (message_id,),
        )

    async def list_messages(self, thread_id: str) -> list[ChatMessage]:
        cursor = await self._conn.execute(
            "SELECT * FROM chat_messages WHERE thread_id = ? ORDER BY created_at, rowid",
            (thread_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    async def list_task_messages(self, task_id: str) -> list[ChatMessage]:
        cursor = await self._conn.execute(
            "SELECT * FROM task_messages WHERE task_id = ? ORDER BY created_at, rowid",
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    @staticmethod
    def _row_to_thread(row: aiosqlite.Row) -> ChatThread:
        return ChatThread(
            thread_id=row["thread_id"],
            participants=[row["participant_a"], row["participant_b"]],
            last_task_id=row["last_task_id"],
            last_message=row["last_message"],
            last_message_time=_parse(row["last_message_time"]),
            last_sender=row["last_sender"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_message(row: aiosqlite.Row) -> ChatMessage:
        return ChatMessage(
            message_id=row["message_id"],
            thread_id=row["thread_id"],
            sender_id=row["sender_id"],
            recipient_id=row["recipient_id"],
            content=row["content"],
            attachment_ref=row["attachment_ref"],
            task_id=row["task_id"],
            is_read=bool(row["is_read"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
