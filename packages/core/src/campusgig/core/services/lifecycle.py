"""TaskLifecycle -- 任务状态机编排

accept / advance / cancel 的守卫检查与状态写入在同一个原子单元内完成：
- 状态写入是条件更新（WHERE status = 当前状态），前置条件失效时整体失败
- 守卫失败发生在任何写入之前，不留下部分写入
- 完成结算（转账）先于 completed 状态写入，二者同事务提交
通知与会话绑定在提交之后执行，best-effort 且带重试。
"""

from datetime import UTC, datetime
from decimal import Decimal

import structlog
from pydantic import BaseModel, Field

from ..config import LifecyclePolicy
from ..exceptions import (
    AlreadyAcceptedError,
    InsufficientFundsError,
    InvalidTransitionError,
    MissingReasonError,
    NotFoundError,
    NotPerformerError,
    NotTaskParticipantError,
    SelfAcceptanceError,
    TransferPartialFailureError,
)
from ..models.enums import (
    IN_FLIGHT_STATES,
    NotificationType,
    TaskStatus,
    next_status,
    status_label,
)
from ..models.money import quantize
from ..models.task import Task
from ..models.wallet import TransferReceipt
from ..retry import retry_async
from ..store import StoreGroup, settlement_keys, transition_with_progress
from .chat import ChatThreadResolver
from .notifications import NotificationFanout

log = structlog.get_logger()

STATUS_COLLECTIONS = ("tasks", "progress_entries")
SETTLEMENT_COLLECTIONS = ("wallets", "transactions", "user_stats")


class CancellationOutcome(BaseModel):
    """取消结果"""

    task: Task
    fee_charged: Decimal = Field(default=Decimal("0.00"), description="按策略应收的取消费")
    fee_collected: bool = Field(default=False, description="取消费是否已成功扣除")
    cancellation_count: int = Field(default=0, description="操作者累计取消次数（含本次）")


class TaskLifecycle:
    """任务状态机编排服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        notifier: NotificationFanout,
        chats: ChatThreadResolver,
        policy: LifecyclePolicy | None = None,
    ) -> None:
        self._stores = store_group
        self._notifier = notifier
        self._chats = chats
        self._policy = policy or LifecyclePolicy()

    # ------------------------------------------------------------------
    # accept
    # ------------------------------------------------------------------

    async def accept(self, task_id: str, actor_id: str) -> Task:
        """接单：open -> accepted

        Raises:
            NotFoundError: 任务不存在
            SelfAcceptanceError: 发布者接自己的任务
            AlreadyAcceptedError: 任务已不是 open（含并发接单的失败方）
        """
        now = datetime.now(UTC)
        async with self._stores.transaction(*STATUS_COLLECTIONS) as stores:
            task = await self._load(stores, task_id)
            if actor_id == task.created_by:
                raise SelfAcceptanceError(task_id)
            if task.status != TaskStatus.OPEN:
                raise AlreadyAcceptedError(task_id)

            entry = await transition_with_progress(
                stores.task_store,
                stores.progress_store,
                task_id,
                TaskStatus.OPEN,
                TaskStatus.ACCEPTED,
                actor_id,
                "Task accepted",
                now,
                assign_performer=actor_id,
            )
            if entry is None:
                raise AlreadyAcceptedError(task_id)
            accepted = await self._load(stores, task_id)

        log.info("task_accepted", task_id=task_id, actor_id=actor_id)

        await self._notifier.notify(
            accepted.created_by,
            NotificationType.TASK,
            "Task Accepted",
            f'Your task "{accepted.title}" has been accepted',
            task_id=task_id,
        )
        await self._bind_chat(accepted)
        return accepted

    # ------------------------------------------------------------------
    # advance
    # ------------------------------------------------------------------

    async def advance(
        self,
        task_id: str,
        actor_id: str,
        new_status: TaskStatus | str,
        notes: str | None = None,
    ) -> Task:
        """执行者推进任务状态

        只能推进到固定顺序的下一步，或从任一执行中状态直接到 completed。
        到 completed 时在同一事务内先完成结算转账。

        Raises:
            NotFoundError: 任务不存在
            NotPerformerError: 操作者不是接单者
            InvalidTransitionError: 目标状态不可达（含终态任务）
            InsufficientFundsError: 结算时发布者余额不足，任务保持原状态
        """
        now = datetime.now(UTC)
        settled_completions: int | None = None

        async with self._stores.transaction(
            *STATUS_COLLECTIONS, *SETTLEMENT_COLLECTIONS
        ) as stores:
            task = await self._load(stores, task_id)
            if task.accepted_by is None or actor_id != task.accepted_by:
                raise NotPerformerError(task_id, actor_id)

            target = self._coerce_target(task, new_status)
            if not self._is_advance_allowed(task.status, target):
                raise InvalidTransitionError(task_id, task.status, target)

            completing = target == TaskStatus.COMPLETED
            if completing and task.price > 0:
                # 结算先于状态写入；余额不足直接抛出，整个单元回滚
                await stores.wallet_store.post_transfer(
                    task.created_by, task.accepted_by, task.price, task_id
                )
                settled_completions = await stores.stats_store.record_completion(
                    task.accepted_by, task.price
                )

            entry = await transition_with_progress(
                stores.task_store,
                stores.progress_store,
                task_id,
                task.status,
                target,
                actor_id,
                notes or f"Task status updated to {status_label(target)}",
                now,
                expected_performer=actor_id,
            )
            if entry is None:
                raise InvalidTransitionError(task_id, task.status, target)
            if completing:
                await stores.task_store.update_fields(task_id, now, completed_at=now)
            updated = await self._load(stores, task_id)

        log.info(
            "task_advanced",
            task_id=task_id,
            actor_id=actor_id,
            from_status=task.status,
            to_status=target,
        )

        if target == TaskStatus.COMPLETED:
            await self._notify_completion(updated, settled_completions)
        else:
            await self._notifier.notify(
                updated.created_by,
                NotificationType.STATUS,
                "Task Status Updated",
                f'Your task "{updated.title}" is now {target.value.replace("_", " ")}',
                task_id=task_id,
            )
        return updated

    @staticmethod
    def _coerce_target(task: Task, new_status: TaskStatus | str) -> TaskStatus:
        try:
            return TaskStatus(new_status)
        except ValueError as e:
            raise InvalidTransitionError(task.task_id, task.status, str(new_status)) from e

    @staticmethod
    def _is_advance_allowed(current: TaskStatus, target: TaskStatus) -> bool:
        """固定顺序的下一步，或任一执行中状态直接完成"""
        if current not in IN_FLIGHT_STATES:
            return False
        if target == TaskStatus.COMPLETED:
            return True
        return target == next_status(current)

    async def _notify_completion(self, task: Task, settled_completions: int | None) -> None:
        await self._notifier.notify(
            task.created_by,
            NotificationType.TASK,
            "Task Completed",
            f'Your task "{task.title}" has been completed successfully!',
            task_id=task.task_id,
        )
        if settled_completions is None:
            return

        await self._notifier.notify(
            task.accepted_by,
            NotificationType.PAYMENT,
            "Payment Received",
            f'You received ${task.price} for completing "{task.title}"',
            task_id=task.task_id,
        )
        if settled_completions == 1:
            await self._notifier.notify(
                task.accepted_by,
                NotificationType.ACHIEVEMENT,
                "🏆 First Task Achievement!",
                "Congratulations! You've completed your first task and earned "
                'the "First Task" badge!',
                task_id=task.task_id,
            )

    # ------------------------------------------------------------------
    # cancel
    # ------------------------------------------------------------------

    async def cancel(self, task_id: str, actor_id: str, reason: str) -> CancellationOutcome:
        """发布者或接单者取消任务

        累计取消次数达到阈值后，取消付费任务需缴纳 max(下限, 比例 x 价格) 的取消费。
        取消费为 best-effort：余额不足时记录日志，取消照常进行。

        Raises:
            MissingReasonError: 原因为空
            NotFoundError: 任务不存在
            NotTaskParticipantError: 操作者既不是发布者也不是接单者
            InvalidTransitionError: 任务已处于终态
        """
        reason = (reason or "").strip()
        if not reason:
            raise MissingReasonError()

        now = datetime.now(UTC)
        fee = Decimal("0.00")
        fee_collected = False

        async with self._stores.transaction(
            *STATUS_COLLECTIONS, *SETTLEMENT_COLLECTIONS
        ) as stores:
            task = await self._load(stores, task_id)
            if actor_id not in (task.created_by, task.accepted_by):
                raise NotTaskParticipantError(task_id, actor_id)
            if task.is_terminal:
                raise InvalidTransitionError(task_id, task.status, TaskStatus.CANCELLED)

            prior = (await stores.stats_store.get(actor_id)).cancellation_count
            fee = self.cancellation_fee(prior, task.price)
            if fee > 0:
                try:
                    await stores.wallet_store.post_debit(
                        actor_id,
                        fee,
                        f"Cancellation fee for task {task_id}",
                        task_id=task_id,
                        idempotency_key=f"cancel-fee:{task_id}",
                    )
                    fee_collected = True
                except InsufficientFundsError as e:
                    log.warning(
                        "cancellation_fee_uncollected",
                        task_id=task_id,
                        actor_id=actor_id,
                        fee=str(fee),
                        available=str(e.available),
                    )

            entry = await transition_with_progress(
                stores.task_store,
                stores.progress_store,
                task_id,
                task.status,
                TaskStatus.CANCELLED,
                actor_id,
                reason,
                now,
                cancelled_at=now,
                cancelled_by=actor_id,
                cancellation_reason=reason,
            )
            if entry is None:
                raise InvalidTransitionError(task_id, task.status, TaskStatus.CANCELLED)
            count = await stores.stats_store.increment_cancellations(actor_id)
            cancelled = await self._load(stores, task_id)

        log.info(
            "task_cancelled",
            task_id=task_id,
            actor_id=actor_id,
            fee=str(fee),
            fee_collected=fee_collected,
            cancellation_count=count,
        )

        other = task.other_party(actor_id)
        if other is not None:
            await self._notifier.notify(
                other,
                NotificationType.STATUS,
                "Task Cancelled",
                f'The task "{task.title}" has been cancelled. Reason: {reason}',
                task_id=task_id,
            )

        return CancellationOutcome(
            task=cancelled,
            fee_charged=fee,
            fee_collected=fee_collected,
            cancellation_count=count,
        )

    def cancellation_fee(self, prior_cancellations: int, price: Decimal) -> Decimal:
        """按策略计算取消费；未达阈值或免费任务为 0"""
        if price <= 0 or prior_cancellations < self._policy.cancellation_fee_threshold:
            return Decimal("0.00")
        proportional = quantize(price * self._policy.cancellation_fee_rate)
        return max(quantize(self._policy.cancellation_fee_minimum), proportional)

    # ------------------------------------------------------------------
    # settlement recovery
    # ------------------------------------------------------------------

    async def retry_settlement(self, task_id: str) -> TransferReceipt | None:
        """为已完成的付费任务补齐结算（幂等）

        已有结算记录时直接返回既有两条腿；非 completed / 免费任务返回 None。
        补齐转账后与正常完成一样通知双方（含首单成就）。

        Raises:
            NotFoundError: 任务不存在
            InsufficientFundsError: 发布者余额不足
        """
        async with self._stores.transaction(*SETTLEMENT_COLLECTIONS) as stores:
            task = await self._load(stores, task_id)
            if (
                task.status != TaskStatus.COMPLETED
                or task.price <= 0
                or task.accepted_by is None
            ):
                return None

            debit_key, credit_key = settlement_keys(task_id)
            debit = await stores.wallet_store.find_by_idempotency_key(debit_key)
            credit = await stores.wallet_store.find_by_idempotency_key(credit_key)
            if debit is not None and credit is not None:
                return TransferReceipt(
                    debit_transaction_id=debit.transaction_id,
                    credit_transaction_id=credit.transaction_id,
                )
            if debit is not None or credit is not None:
                raise TransferPartialFailureError(
                    task_id, "credit" if credit is None else "debit"
                )

            receipt = await stores.wallet_store.post_transfer(
                task.created_by, task.accepted_by, task.price, task_id
            )
            completions = await stores.stats_store.record_completion(
                task.accepted_by, task.price
            )

        log.info(
            "settlement_recovered",
            task_id=task_id,
            amount=str(task.price),
            debit_transaction_id=receipt.debit_transaction_id,
        )
        await self._notify_completion(task, completions)
        return receipt

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _load(stores: StoreGroup, task_id: str) -> Task:
        task = await stores.task_store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    async def _bind_chat(self, task: Task) -> None:
        """接单后绑定发布者与接单者的会话，失败只记录日志"""
        try:
            thread_id = await retry_async(
                lambda: self._chats.resolve(task.created_by, task.accepted_by, task.task_id),
                attempts=self._policy.notify_max_attempts,
                base_delay_s=self._policy.notify_retry_base_delay_s,
                op_name="chat_thread_bind",
            )
        except Exception as e:
            log.error(
                "chat_thread_bind_failed",
                task_id=task.task_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return
        log.debug("chat_thread_bound", task_id=task.task_id, thread_id=thread_id)
