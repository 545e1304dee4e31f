"""CampusGig Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .chat import ChatMessage, ChatThread, participant_key
from .enums import (
    IN_FLIGHT_STATES,
    STATUS_FLOW,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    NotificationType,
    TaskStatus,
    TransactionType,
    next_status,
    status_label,
    validate_transition,
)
from .money import from_cents, quantize, require_positive, to_cents
from .notification import Notification
from .progress import ProgressEntry
from .stats import Review, UserStats
from .task import Task, TaskDraft, TaskFilter
from .wallet import LedgerEntry, TransferReceipt, Wallet

__all__ = [
    # 枚举
    "TaskStatus",
    "TransactionType",
    "NotificationType",
    # 状态机
    "STATUS_FLOW",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "IN_FLIGHT_STATES",
    "validate_transition",
    "next_status",
    "status_label",
    # 金额
    "quantize",
    "require_positive",
    "to_cents",
    "from_cents",
    # 模型
    "Task",
    "TaskDraft",
    "TaskFilter",
    "ProgressEntry",
    "Wallet",
    "LedgerEntry",
    "TransferReceipt",
    "ChatThread",
    "ChatMessage",
    "participant_key",
    "Notification",
    "UserStats",
    "Review",
]
