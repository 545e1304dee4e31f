"""NotificationFanout -- 站内通知的 best-effort 扇出

notify() 先持久化 Notification，再交给 NotificationDelivery 投递。
任何失败都只记录日志，绝不抛给调用方，也不回滚触发它的业务写入。
"""

from datetime import UTC, datetime
from typing import Any, Protocol

import structlog
from ulid import ULID

from ..config import LifecyclePolicy
from ..exceptions import NotFoundError
from ..models.enums import NotificationType
from ..models.notification import Notification
from ..retry import retry_async
from ..store import StoreGroup, Subscription

log = structlog.get_logger()


class NotificationDelivery(Protocol):
    """通知投递协作方（推送 / 站内信通道），对核心而言是 fire-and-forget"""

    async def deliver(
        self,
        user_id: str,
        title: str,
        content: str,
        metadata: dict[str, Any],
    ) -> None: ...


class LogDelivery:
    """默认投递实现：仅记录日志"""

    async def deliver(
        self,
        user_id: str,
        title: str,
        content: str,
        metadata: dict[str, Any],
    ) -> None:
        await log.ainfo(
            "notification_delivered",
            user_id=user_id,
            title=title,
            **metadata,
        )


class NotificationFanout:
    """通知扇出服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        policy: LifecyclePolicy | None = None,
        delivery: NotificationDelivery | None = None,
    ) -> None:
        self._stores = store_group
        self._policy = policy or LifecyclePolicy()
        self._delivery = delivery or LogDelivery()

    async def notify(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        content: str,
        task_id: str | None = None,
    ) -> str | None:
        """创建并投递一条通知

        Returns:
            notification_id；重试耗尽仍失败时返回 None（已记录日志）
        """
        notification = Notification(
            notification_id=str(ULID()),
            user_id=user_id,
            type=notification_type,
            title=title,
            content=content,
            task_id=task_id,
            created_at=datetime.now(UTC),
        )
        metadata: dict[str, Any] = {
            "notification_id": notification.notification_id,
            "type": notification_type.value,
            "task_id": task_id,
        }

        try:
            await retry_async(
                lambda: self._persist(notification),
                attempts=self._policy.notify_max_attempts,
                base_delay_s=self._policy.notify_retry_base_delay_s,
                op_name="notification_persist",
            )
        except Exception as e:
            log.error(
                "notification_failed",
                user_id=user_id,
                title=title,
                task_id=task_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None

        try:
            await retry_async(
                lambda: self._delivery.deliver(user_id, title, content, metadata),
                attempts=self._policy.notify_max_attempts,
                base_delay_s=self._policy.notify_retry_base_delay_s,
                op_name="notification_deliver",
                retry_on=(Exception,),
            )
        except Exception as e:
            # 记录已落库，用户仍可在通知列表中看到
            log.warning(
                "notification_delivery_failed",
                user_id=user_id,
                notification_id=notification.notification_id,
                error=str(e),
            )
        return notification.notification_id

    async def _persist(self, notification: Notification) -> None:
        async with self._stores.transaction("notifications") as stores:
            await stores.notification_store.insert(notification)

    async def list_for(self, user_id: str) -> list[Notification]:
        """用户通知，最新在前"""
        async with self._stores.snapshot() as stores:
            return await stores.notification_store.list_for(user_id)

    async def mark_read(self, notification_id: str, user_id: str) -> None:
        """接收者标记已读

        Raises:
            NotFoundError: 通知不存在或不属于该用户
        """
        async with self._stores.transaction("notifications") as stores:
            hit = await stores.notification_store.mark_read(notification_id, user_id)
            if not hit:
                raise NotFoundError("notification", notification_id)

    async def unread_count(self, user_id: str) -> int:
        async with self._stores.snapshot() as stores:
            return await stores.notification_store.unread_count(user_id)

    async def subscribe(self, user_id: str, callback) -> Subscription:
        """订阅用户通知列表（每次变更推送完整列表）"""
        return await self._stores.live.subscribe(
            "notifications",
            lambda: self.list_for(user_id),
            callback,
        )
