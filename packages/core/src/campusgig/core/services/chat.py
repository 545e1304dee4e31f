"""ChatThreadResolver -- 用户对到唯一会话的映射 + 消息收发

resolve() 基于 participant_key 唯一索引做幂等 upsert，
双方同时发起首次会话也只会得到同一个 thread。
"""

from datetime import UTC, datetime

import structlog
from ulid import ULID

from ..config import MESSAGE_PREVIEW_LENGTH
from ..exceptions import NotFoundError
from ..models.chat import ChatMessage, ChatThread
from ..store import StoreGroup, Subscription

log = structlog.get_logger()

MESSAGE_COLLECTIONS = ("chat_threads", "chat_messages")


class ChatThreadResolver:
    """会话解析与消息服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def resolve(self, user_a: str, user_b: str, task_id: str | None = None) -> str:
        """返回 (user_a, user_b) 的唯一会话 id，必要时创建

        已存在且给定 task_id 时只刷新 last_task_id。

        Raises:
            ValueError: 两个用户相同
        """
        if user_a == user_b:
            raise ValueError("a chat thread needs two distinct participants")

        now = datetime.now(UTC)
        async with self._stores.transaction("chat_threads") as stores:
            thread = await stores.chat_store.upsert_thread(
                str(ULID()), user_a, user_b, task_id, now
            )
        log.debug(
            "chat_thread_resolved",
            thread_id=thread.thread_id,
            task_id=task_id,
        )
        return thread.thread_id

    async def get_thread(self, thread_id: str) -> ChatThread:
        async with self._stores.snapshot() as stores:
            thread = await stores.chat_store.get_thread(thread_id)
        if thread is None:
            raise NotFoundError("chat_thread", thread_id)
        return thread

    async def post_message(
        self,
        thread_id: str,
        sender_id: str,
        recipient_id: str,
        content: str,
        attachment_ref: str | None = None,
        task_id: str | None = None,
    ) -> str:
        """发送消息

        规范写入会话消息并刷新会话摘要；带 task_id 时同一事务内写入任务维度投影。

        Raises:
            NotFoundError: 会话不存在，或收发双方不是该会话的参与者
        """
        now = datetime.now(UTC)
        message = ChatMessage(
            message_id=str(ULID()),
            thread_id=thread_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=content,
            attachment_ref=attachment_ref,
            task_id=task_id,
            created_at=now,
        )
        async with self._stores.transaction(*MESSAGE_COLLECTIONS) as stores:
            thread = await stores.chat_store.get_thread(thread_id)
            # 非参与者视同会话不存在
            if thread is None or sorted((sender_id, recipient_id)) != thread.participants:
                raise NotFoundError("chat_thread", thread_id)

            await stores.chat_store.insert_message(message)
            await stores.chat_store.update_thread_summary(
                thread_id,
                content[:MESSAGE_PREVIEW_LENGTH],
                sender_id,
                now,
            )

        log.info(
            "chat_message_posted",
            thread_id=thread_id,
            message_id=message.message_id,
            task_id=task_id,
        )
        return message.message_id

    async def list_messages(self, thread_id: str) -> list[ChatMessage]:
        async with self._stores.snapshot() as stores:
            return await stores.chat_store.list_messages(thread_id)

    async def list_task_messages(self, task_id: str) -> list[ChatMessage]:
        """按任务读取消息（兼容投影）"""
        async with self._stores.snapshot() as stores:
            return await stores.chat_store.list_task_messages(task_id)

    async def list_threads_for(self, user_id: str) -> list[ChatThread]:
        async with self._stores.snapshot() as stores:
            return await stores.chat_store.list_threads_for(user_id)

    async def mark_message_read(self, thread_id: str, message_id: str, reader_id: str) -> None:
        """接收者标记消息已读，两份副本同时更新

        Raises:
            NotFoundError: 消息不存在，或 reader 不是该消息的接收者
        """
        async with self._stores.transaction("chat_messages") as stores:
            message = await stores.chat_store.get_message(thread_id, message_id)
            if message is None or message.recipient_id != reader_id:
                raise NotFoundError("chat_message", message_id)
            await stores.chat_store.mark_read(message_id)

    async def subscribe_messages(self, thread_id: str, callback) -> Subscription:
        """订阅会话消息（每次变更推送完整列表）"""
        return await self._stores.live.subscribe(
            "chat_messages",
            lambda: self.list_messages(thread_id),
            callback,
        )
