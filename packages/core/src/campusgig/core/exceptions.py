"""Marketplace 异常体系

每类失败对应唯一的 code，UI 层据此区分“可重试”与“终止”提示。
守卫类错误（自接单、重复接单、非执行者、非法流转、缺少原因）
在任何写入发生之前抛出。
"""

from decimal import Decimal


class MarketplaceError(Exception):
    """Marketplace 基础异常"""

    code: str = "MARKETPLACE_ERROR"

    def __init__(self, message: str, recoverable: bool = False) -> None:
        """
        Args:
            message: 面向调用方的错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class NotFoundError(MarketplaceError):
    """任务 / 会话 / 通知不存在"""

    code = "NOT_FOUND"

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} with id {entity_id} does not exist")
        self.kind = kind
        self.entity_id = entity_id


class InvalidAmountError(MarketplaceError):
    """金额必须为正数"""

    code = "INVALID_AMOUNT"

    def __init__(self, amount: object) -> None:
        super().__init__(f"Amount must be a positive currency value, got {amount}")
        self.amount = amount


class InsufficientFundsError(MarketplaceError):
    """钱包余额不足，未发生任何变更"""

    code = "INSUFFICIENT_FUNDS"

    def __init__(self, user_id: str, required: Decimal, available: Decimal) -> None:
        super().__init__(
            f"Wallet of user {user_id} has {available} available, {required} required"
        )
        self.user_id = user_id
        self.required = required
        self.available = available


class SelfAcceptanceError(MarketplaceError):
    """发布者不能接自己的任务"""

    code = "SELF_ACCEPTANCE"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"You cannot accept your own task {task_id}")
        self.task_id = task_id


class AlreadyAcceptedError(MarketplaceError):
    """任务已不处于 open 状态（含并发接单失败方）"""

    code = "ALREADY_ACCEPTED"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} is no longer open for acceptance")
        self.task_id = task_id


class NotPerformerError(MarketplaceError):
    """只有接单者可以推进任务状态"""

    code = "NOT_PERFORMER"

    def __init__(self, task_id: str, actor_id: str) -> None:
        super().__init__(f"User {actor_id} is not the performer of task {task_id}")
        self.task_id = task_id
        self.actor_id = actor_id


class NotTaskParticipantError(MarketplaceError):
    """只有发布者或接单者可以操作（取消 / 评价）"""

    code = "NOT_TASK_PARTICIPANT"

    def __init__(self, task_id: str, actor_id: str) -> None:
        super().__init__(f"User {actor_id} is neither creator nor performer of task {task_id}")
        self.task_id = task_id
        self.actor_id = actor_id


class InvalidTransitionError(MarketplaceError):
    """状态流转不合法（含终态任务的任何流转）"""

    code = "INVALID_TRANSITION"

    def __init__(self, task_id: str, from_status: str, to_status: str) -> None:
        super().__init__(f"Task {task_id} cannot move from {from_status} to {to_status}")
        self.task_id = task_id
        self.from_status = from_status
        self.to_status = to_status


class MissingReasonError(MarketplaceError):
    """取消任务必须填写原因"""

    code = "MISSING_REASON"

    def __init__(self) -> None:
        super().__init__("A reason is required to cancel the task")


class InvalidReviewError(MarketplaceError):
    """评价不合法（评分越界、任务未完成、重复评价）"""

    code = "INVALID_REVIEW"


class TransferPartialFailureError(MarketplaceError):
    """转账只写入了一条腿（内部错误）

    转账在单个 SQLite 事务内完成，抛出即整体回滚，调用方不会观察到半笔转账。
    """

    code = "TRANSFER_PARTIAL_FAILURE"

    def __init__(self, task_id: str | None, leg: str) -> None:
        super().__init__(f"Transfer for task {task_id} lost its {leg} leg")
        self.task_id = task_id
        self.leg = leg


class StoreUnavailableError(MarketplaceError):
    """存储暂时不可用，调用方应退避重试"""

    code = "STORE_UNAVAILABLE"

    def __init__(self, message: str) -> None:
        super().__init__(f"Store unavailable: {message}", recoverable=True)
