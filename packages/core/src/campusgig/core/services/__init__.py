"""CampusGig Core Services -- 业务服务导出"""

from .chat import ChatThreadResolver
from .lifecycle import CancellationOutcome, TaskLifecycle
from .notifications import LogDelivery, NotificationDelivery, NotificationFanout
from .reviews import ReviewService
from .task_board import TaskBoard
from .wallet import WalletService

__all__ = [
    "CancellationOutcome",
    "ChatThreadResolver",
    "LogDelivery",
    "NotificationDelivery",
    "NotificationFanout",
    "ReviewService",
    "TaskBoard",
    "TaskLifecycle",
    "WalletService",
]
