"""Marketplace -- 共享同一 StoreGroup 的服务组装"""

from .config import LifecyclePolicy, load_lifecycle_policy
from .services import (
    ChatThreadResolver,
    NotificationDelivery,
    NotificationFanout,
    ReviewService,
    TaskBoard,
    TaskLifecycle,
    WalletService,
)
from .store import StoreGroup


class Marketplace:
    """服务实例组"""

    def __init__(
        self,
        store_group: StoreGroup,
        policy: LifecyclePolicy | None = None,
        delivery: NotificationDelivery | None = None,
    ) -> None:
        self.stores = store_group
        self.policy = policy or load_lifecycle_policy()
        self.wallets = WalletService(store_group)
        self.tasks = TaskBoard(store_group)
        self.chats = ChatThreadResolver(store_group)
        self.notifications = NotificationFanout(store_group, self.policy, delivery)
        self.lifecycle = TaskLifecycle(
            store_group,
            self.notifications,
            self.chats,
            self.policy,
        )
        self.reviews = ReviewService(store_group, self.notifications)
