"""任务生命周期编排测试

测试内容：
1. accept：自接单、重复接单、并发接单只有一方成功
2. advance：仅执行者、仅下一步或直接完成、终态不可再动
3. 完成结算：转账、账本归零、余额不足时任务保持原状态
4. cancel：原因必填、仅参与方、取消费策略与计数
5. 结算补偿幂等
"""

import asyncio
from decimal import Decimal

import pytest
from campusgig.core.exceptions import (
    AlreadyAcceptedError,
    InsufficientFundsError,
    InvalidTransitionError,
    MissingReasonError,
    NotFoundError,
    NotPerformerError,
    NotTaskParticipantError,
    SelfAcceptanceError,
)
from campusgig.core.models import NotificationType, TaskStatus


class TestAccept:
    async def test_accept_sets_performer(self, market, create_task):
        task_id = await create_task("u1")
        task = await market.lifecycle.accept(task_id, "u2")

        assert task.status == TaskStatus.ACCEPTED
        assert task.accepted_by == "u2"
        entries = await market.tasks.list_progress(task_id)
        assert [(e.status, e.notes) for e in entries] == [
            (TaskStatus.ACCEPTED, "Task accepted")
        ]

    async def test_accept_notifies_creator_and_binds_chat(self, market, create_task):
        task_id = await create_task("u1", title="Return books")
        await market.lifecycle.accept(task_id, "u2")

        notes = await market.notifications.list_for("u1")
        assert len(notes) == 1
        assert notes[0].type == NotificationType.TASK
        assert notes[0].title == "Task Accepted"
        assert notes[0].content == 'Your task "Return books" has been accepted'

        threads = await market.chats.list_threads_for("u2")
        assert len(threads) == 1
        assert threads[0].participants == ["u1", "u2"]
        assert threads[0].last_task_id == task_id

    async def test_self_acceptance(self, market, create_task):
        task_id = await create_task("u1")
        with pytest.raises(SelfAcceptanceError):
            await market.lifecycle.accept(task_id, "u1")
        task = await market.tasks.get(task_id)
        assert task.status == TaskStatus.OPEN
        assert await market.tasks.list_progress(task_id) == []

    async def test_already_accepted(self, market, accepted_task):
        with pytest.raises(AlreadyAcceptedError):
            await market.lifecycle.accept(accepted_task, "u3")
        assert (await market.tasks.get(accepted_task)).accepted_by == "u2"

    async def test_missing_task(self, market):
        with pytest.raises(NotFoundError):
            await market.lifecycle.accept("missing", "u2")

    async def test_concurrent_accept_exactly_one_wins(self, market, create_task):
        task_id = await create_task("u1")

        results = await asyncio.gather(
            market.lifecycle.accept(task_id, "u2"),
            market.lifecycle.accept(task_id, "u3"),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], AlreadyAcceptedError)

        task = await market.tasks.get(task_id)
        assert task.accepted_by == winners[0].accepted_by
        assert len(await market.tasks.list_progress(task_id)) == 1


class TestAdvance:
    async def test_step_by_step(self, market, accepted_task):
        for status in ("picked_up", "in_progress", "on_way", "delivered"):
            task = await market.lifecycle.advance(accepted_task, "u2", status)
            assert task.status == status

    async def test_not_performer(self, market, accepted_task):
        with pytest.raises(NotPerformerError):
            await market.lifecycle.advance(accepted_task, "u1", TaskStatus.PICKED_UP)
        with pytest.raises(NotPerformerError):
            await market.lifecycle.advance(accepted_task, "u3", TaskStatus.PICKED_UP)
        assert (await market.tasks.get(accepted_task)).status == TaskStatus.ACCEPTED

    async def test_open_task_has_no_performer(self, market, create_task):
        task_id = await create_task("u1")
        with pytest.raises(NotPerformerError):
            await market.lifecycle.advance(task_id, "u2", TaskStatus.ACCEPTED)

    @pytest.mark.parametrize(
        "target",
        [TaskStatus.IN_PROGRESS, TaskStatus.ON_WAY, TaskStatus.CANCELLED, TaskStatus.OPEN, "flying"],
    )
    async def test_invalid_targets(self, market, accepted_task, target):
        with pytest.raises(InvalidTransitionError):
            await market.lifecycle.advance(accepted_task, "u2", target)
        assert (await market.tasks.get(accepted_task)).status == TaskStatus.ACCEPTED
        assert len(await market.tasks.list_progress(accepted_task)) == 1

    async def test_skip_to_completed_is_allowed(self, market, accepted_task):
        """允许从任一执行中状态直接完成"""
        task = await market.lifecycle.advance(accepted_task, "u2", TaskStatus.COMPLETED)
        assert task.status == TaskStatus.COMPLETED
        assert task.completed_at is not None

    async def test_completed_at_matches_completion_entry(self, market, accepted_task):
        await market.lifecycle.advance(accepted_task, "u2", TaskStatus.PICKED_UP)
        picked = await market.tasks.get(accepted_task)
        assert picked.completed_at is None

        task = await market.lifecycle.advance(accepted_task, "u2", TaskStatus.COMPLETED)
        entries = await market.tasks.list_progress(accepted_task)
        assert entries[-1].status == TaskStatus.COMPLETED
        assert task.completed_at == entries[-1].created_at
        assert task.updated_at == task.completed_at

    async def test_status_notification(self, market, accepted_task):
        await market.lifecycle.advance(accepted_task, "u2", TaskStatus.PICKED_UP)
        notes = await market.notifications.list_for("u1")
        assert notes[0].type == NotificationType.STATUS
        assert notes[0].title == "Task Status Updated"
        assert notes[0].content == 'Your task "Pick up a parcel" is now picked up'

    async def test_terminal_is_final(self, market, accepted_task):
        await market.lifecycle.advance(accepted_task, "u2", TaskStatus.COMPLETED)

        with pytest.raises(InvalidTransitionError):
            await market.lifecycle.advance(accepted_task, "u2", TaskStatus.COMPLETED)
        with pytest.raises(AlreadyAcceptedError):
            await market.lifecycle.accept(accepted_task, "u3")
        with pytest.raises(InvalidTransitionError):
            await market.lifecycle.cancel(accepted_task, "u1", "changed my mind")
        assert (await market.tasks.get(accepted_task)).status == TaskStatus.COMPLETED


class TestCompletionSettlement:
    async def test_reference_scenario(self, market, store_group, create_task):
        """$20 任务：accept -> picked_up -> in_progress -> completed"""
        await market.wallets.deposit("u1", "50.00")
        assert await market.wallets.get_balance("u2") == Decimal("0.00")
        task_id = await create_task("u1", price="20.00")

        await market.lifecycle.accept(task_id, "u2")
        await market.lifecycle.advance(task_id, "u2", TaskStatus.PICKED_UP)
        await market.lifecycle.advance(task_id, "u2", TaskStatus.IN_PROGRESS)
        task = await market.lifecycle.advance(task_id, "u2", TaskStatus.COMPLETED)

        assert task.status == TaskStatus.COMPLETED
        assert await market.wallets.get_balance("u1") == Decimal("30.00")
        assert await market.wallets.get_balance("u2") == Decimal("20.00")

        legs = await store_group.wallet_store.list_for_task(task_id)
        assert len(legs) == 2
        assert sum(leg.amount for leg in legs) == Decimal("0.00")
        assert len(await market.tasks.list_progress(task_id)) == 4

        performer_notes = await market.notifications.list_for("u2")
        achievements = [n for n in performer_notes if n.type == NotificationType.ACHIEVEMENT]
        payments = [n for n in performer_notes if n.type == NotificationType.PAYMENT]
        assert len(achievements) == 1
        assert achievements[0].title == "🏆 First Task Achievement!"
        assert payments[0].content == 'You received $20.00 for completing "Pick up a parcel"'

        creator_titles = [n.title for n in await market.notifications.list_for("u1")]
        assert "Task Completed" in creator_titles

        stats = await market.reviews.get_user_stats("u2")
        assert stats.tasks_completed == 1
        assert stats.total_earnings == Decimal("20.00")

    async def test_achievement_only_once(self, market, create_task):
        await market.wallets.deposit("u1", "100.00")
        for _ in range(2):
            task_id = await create_task("u1", price="5.00")
            await market.lifecycle.accept(task_id, "u2")
            await market.lifecycle.advance(task_id, "u2", TaskStatus.COMPLETED)

        notes = await market.notifications.list_for("u2")
        assert len([n for n in notes if n.type == NotificationType.ACHIEVEMENT]) == 1

    async def test_insufficient_funds_keeps_previous_status(
        self, market, store_group, create_task
    ):
        await market.wallets.deposit("u1", "5.00")
        task_id = await create_task("u1", price="20.00")
        await market.lifecycle.accept(task_id, "u2")
        await market.lifecycle.advance(task_id, "u2", TaskStatus.PICKED_UP)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await market.lifecycle.advance(task_id, "u2", TaskStatus.COMPLETED)

        assert exc_info.value.user_id == "u1"
        task = await market.tasks.get(task_id)
        assert task.status == TaskStatus.PICKED_UP
        assert task.completed_at is None
        assert await market.wallets.get_balance("u1") == Decimal("5.00")
        assert await market.wallets.get_balance("u2") == Decimal("0.00")
        assert await store_group.wallet_store.list_for_task(task_id) == []
        assert len(await market.tasks.list_progress(task_id)) == 2

        # 补足余额后可以正常完成
        await market.wallets.deposit("u1", "15.00")
        task = await market.lifecycle.advance(task_id, "u2", TaskStatus.COMPLETED)
        assert task.status == TaskStatus.COMPLETED
        assert await market.wallets.get_balance("u1") == Decimal("0.00")

    async def test_free_task_completes_without_transfer(self, market, store_group, create_task):
        task_id = await create_task("u1", price="0")
        await market.lifecycle.accept(task_id, "u2")
        task = await market.lifecycle.advance(task_id, "u2", TaskStatus.COMPLETED)

        assert task.completed_at is not None
        assert await store_group.wallet_store.list_for_task(task_id) == []
        notes = await market.notifications.list_for("u2")
        assert not [n for n in notes if n.type == NotificationType.PAYMENT]


class TestCancel:
    async def test_reason_required(self, market, create_task):
        task_id = await create_task("u1")
        for reason in ("", "   "):
            with pytest.raises(MissingReasonError):
                await market.lifecycle.cancel(task_id, "u1", reason)
        assert (await market.tasks.get(task_id)).status == TaskStatus.OPEN

    async def test_outsider_cannot_cancel(self, market, accepted_task):
        with pytest.raises(NotTaskParticipantError):
            await market.lifecycle.cancel(accepted_task, "u3", "not mine")

    async def test_cancel_open_task(self, market, create_task):
        task_id = await create_task("u1")
        outcome = await market.lifecycle.cancel(task_id, "u1", "No longer needed")

        task = outcome.task
        assert task.status == TaskStatus.CANCELLED
        assert task.accepted_by is None
        assert task.cancellation_reason == "No longer needed"
        assert task.cancelled_by == "u1"
        assert task.cancelled_at is not None
        assert outcome.fee_charged == Decimal("0.00")
        assert outcome.cancellation_count == 1

        entries = await market.tasks.list_progress(task_id)
        assert [(e.status, e.notes) for e in entries] == [
            (TaskStatus.CANCELLED, "No longer needed")
        ]

    async def test_performer_cancel_notifies_creator(self, market, accepted_task):
        await market.lifecycle.cancel(accepted_task, "u2", "Got sick")
        notes = await market.notifications.list_for("u1")
        assert notes[0].title == "Task Cancelled"
        assert notes[0].content == (
            'The task "Pick up a parcel" has been cancelled. Reason: Got sick'
        )

    async def test_fourth_cancellation_charges_minimum_fee(self, market, create_task):
        """累计 3 次取消后，取消 $5 任务收取 max($1, $0.50) = $1"""
        await market.wallets.deposit("u1", "10.00")
        for _ in range(3):
            task_id = await create_task("u1", price="5.00")
            outcome = await market.lifecycle.cancel(task_id, "u1", "oops")
            assert outcome.fee_charged == Decimal("0.00")

        task_id = await create_task("u1", price="5.00")
        outcome = await market.lifecycle.cancel(task_id, "u1", "oops again")

        assert outcome.task.status == TaskStatus.CANCELLED
        assert outcome.fee_charged == Decimal("1.00")
        assert outcome.fee_collected is True
        assert outcome.cancellation_count == 4
        assert await market.wallets.get_balance("u1") == Decimal("9.00")
        stats = await market.reviews.get_user_stats("u1")
        assert stats.cancellation_count == 4

    async def test_proportional_fee_above_minimum(self, market):
        assert market.lifecycle.cancellation_fee(3, Decimal("40.00")) == Decimal("4.00")
        assert market.lifecycle.cancellation_fee(2, Decimal("40.00")) == Decimal("0.00")
        assert market.lifecycle.cancellation_fee(5, Decimal("0.00")) == Decimal("0.00")

    async def test_uncollectable_fee_does_not_block(self, market, create_task):
        for _ in range(3):
            task_id = await create_task("u1", price="5.00")
            await market.lifecycle.cancel(task_id, "u1", "oops")

        task_id = await create_task("u1", price="5.00")
        outcome = await market.lifecycle.cancel(task_id, "u1", "broke")

        assert outcome.task.status == TaskStatus.CANCELLED
        assert outcome.fee_charged == Decimal("1.00")
        assert outcome.fee_collected is False
        assert outcome.cancellation_count == 4
        assert await market.wallets.get_balance("u1") == Decimal("0.00")
        assert await market.wallets.list_transactions("u1") == []

    async def test_free_task_never_charged(self, market, create_task):
        for _ in range(4):
            task_id = await create_task("u1", price="0")
            outcome = await market.lifecycle.cancel(task_id, "u1", "oops")
        assert outcome.fee_charged == Decimal("0.00")


class TestRetrySettlement:
    async def test_idempotent_for_settled_task(self, market, store_group, accepted_task):
        await market.lifecycle.advance(accepted_task, "u2", TaskStatus.COMPLETED)
        first = await market.lifecycle.retry_settlement(accepted_task)
        second = await market.lifecycle.retry_settlement(accepted_task)

        assert first == second
        assert len(await store_group.wallet_store.list_for_task(accepted_task)) == 2
        assert await market.wallets.get_balance("u2") == Decimal("20.00")

    async def test_noop_for_unfinished_task(self, market, accepted_task):
        assert await market.lifecycle.retry_settlement(accepted_task) is None

    async def test_settles_completed_task_missing_ledger(
        self, market, store_group, accepted_task
    ):
        """外部写入的 completed 任务缺少结算记录时补齐转账"""
        from datetime import UTC, datetime

        async with store_group.transaction("tasks") as stores:
            await stores.task_store.transition(
                accepted_task,
                TaskStatus.ACCEPTED,
                TaskStatus.COMPLETED,
                datetime.now(UTC),
                expected_performer="u2",
            )

        receipt = await market.lifecycle.retry_settlement(accepted_task)
        assert receipt is not None
        assert await market.wallets.get_balance("u1") == Decimal("30.00")
        assert await market.wallets.get_balance("u2") == Decimal("20.00")

    async def test_recovered_settlement_notifies_performer(
        self, market, store_group, accepted_task
    ):
        """补齐结算后执行者收到到账通知与首单成就，重复补偿不再通知"""
        from datetime import UTC, datetime

        async with store_group.transaction("tasks") as stores:
            await stores.task_store.transition(
                accepted_task,
                TaskStatus.ACCEPTED,
                TaskStatus.COMPLETED,
                datetime.now(UTC),
                expected_performer="u2",
            )

        await market.lifecycle.retry_settlement(accepted_task)
        await market.lifecycle.retry_settlement(accepted_task)

        notes = await market.notifications.list_for("u2")
        titles = [n.title for n in notes]
        assert titles.count("Payment Received") == 1
        assert [n.type for n in notes].count(NotificationType.ACHIEVEMENT) == 1

        stats = await market.reviews.get_user_stats("u2")
        assert stats.tasks_completed == 1
