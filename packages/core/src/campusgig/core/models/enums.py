"""枚举定义

包含 TaskStatus 状态机、交易类型、通知类型，
以及 VALID_TRANSITIONS 合法流转映射和 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态机"""

    OPEN = "open"

    # 执行中状态（固定顺序）
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    IN_PROGRESS = "in_progress"
    ON_WAY = "on_way"
    DELIVERED = "delivered"

    # 终态
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# 执行者推进顺序，completed 为最后一步
STATUS_FLOW: list[TaskStatus] = [
    TaskStatus.ACCEPTED,
    TaskStatus.PICKED_UP,
    TaskStatus.IN_PROGRESS,
    TaskStatus.ON_WAY,
    TaskStatus.DELIVERED,
    TaskStatus.COMPLETED,
]

TERMINAL_STATES: set[TaskStatus] = {
    TaskStatus.COMPLETED,
    TaskStatus.CANCELLED,
}

IN_FLIGHT_STATES: set[TaskStatus] = {
    TaskStatus.ACCEPTED,
    TaskStatus.PICKED_UP,
    TaskStatus.IN_PROGRESS,
    TaskStatus.ON_WAY,
    TaskStatus.DELIVERED,
}

# 合法状态流转
# 任一执行中状态都可以直接跳到 completed（“完成任务”按钮始终可用）
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.OPEN: {TaskStatus.ACCEPTED, TaskStatus.CANCELLED},
    TaskStatus.ACCEPTED: {
        TaskStatus.PICKED_UP,
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.PICKED_UP: {
        TaskStatus.IN_PROGRESS,
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.IN_PROGRESS: {
        TaskStatus.ON_WAY,
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.ON_WAY: {
        TaskStatus.DELIVERED,
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.DELIVERED: {TaskStatus.COMPLETED, TaskStatus.CANCELLED},
    # 终态不可再流转
    TaskStatus.COMPLETED: set(),
    TaskStatus.CANCELLED: set(),
}


class TransactionType(StrEnum):
    """账本记录类型"""

    CREDIT = "credit"
    DEBIT = "debit"


class NotificationType(StrEnum):
    """通知类型"""

    TASK = "task"
    STATUS = "status"
    PAYMENT = "payment"
    ACHIEVEMENT = "achievement"
    REVIEW = "review"


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed


def next_status(current: TaskStatus) -> TaskStatus | None:
    """固定顺序中的下一步；open 与终态没有“下一步”"""
    if current not in IN_FLIGHT_STATES:
        return None
    return STATUS_FLOW[STATUS_FLOW.index(current) + 1]


def status_label(status: TaskStatus) -> str:
    """面向用户的状态文案，如 on_way -> 'On the Way'"""
    if status == TaskStatus.ON_WAY:
        return "On the Way"
    return status.value.replace("_", " ").title()
