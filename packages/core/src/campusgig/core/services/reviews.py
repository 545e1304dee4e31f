"""ReviewService -- 完成后的互评与用户统计"""

from datetime import UTC, datetime

import structlog
from ulid import ULID

from ..exceptions import InvalidReviewError, NotFoundError, NotTaskParticipantError
from ..models.enums import NotificationType, TaskStatus
from ..models.stats import Review, UserStats
from ..store import StoreGroup
from .notifications import NotificationFanout

log = structlog.get_logger()


class ReviewService:
    """评价与用户统计"""

    def __init__(self, store_group: StoreGroup, notifier: NotificationFanout) -> None:
        self._stores = store_group
        self._notifier = notifier

    async def add_review(
        self,
        task_id: str,
        reviewer_id: str,
        rating: int,
        comment: str = "",
    ) -> Review:
        """对已完成任务的另一方做出评价，并更新被评价者的平均分

        Raises:
            InvalidReviewError: 评分越界 / 任务未完成 / 重复评价
            NotFoundError: 任务不存在
            NotTaskParticipantError: 评价者不是任务参与方
        """
        if not isinstance(rating, int) or not 1 <= rating <= 5:
            raise InvalidReviewError(f"Rating must be an integer from 1 to 5, got {rating}")

        async with self._stores.transaction("reviews", "user_stats") as stores:
            task = await stores.task_store.get_task(task_id)
            if task is None:
                raise NotFoundError("task", task_id)
            reviewee_id = task.other_party(reviewer_id)
            if reviewee_id is None:
                raise NotTaskParticipantError(task_id, reviewer_id)
            if task.status != TaskStatus.COMPLETED:
                raise InvalidReviewError(f"Task {task_id} is not completed yet")
            if await stores.review_store.exists(task_id, reviewer_id):
                raise InvalidReviewError(f"Task {task_id} was already reviewed by {reviewer_id}")

            review = Review(
                review_id=str(ULID()),
                task_id=task_id,
                reviewer_id=reviewer_id,
                reviewee_id=reviewee_id,
                rating=rating,
                comment=comment,
                created_at=datetime.now(UTC),
            )
            await stores.review_store.insert(review)
            await stores.stats_store.record_rating(reviewee_id, rating)

        log.info(
            "review_added",
            task_id=task_id,
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
            rating=rating,
        )
        await self._notifier.notify(
            reviewee_id,
            NotificationType.REVIEW,
            "New Review Received",
            f"You've received a {rating}-star review for a recent task.",
            task_id=task_id,
        )
        return review

    async def list_reviews_for(self, user_id: str) -> list[Review]:
        async with self._stores.snapshot() as stores:
            return await stores.review_store.list_for_reviewee(user_id)

    async def get_user_stats(self, user_id: str) -> UserStats:
        async with self._stores.snapshot() as stores:
            return await stores.stats_store.get(user_id)
