"""UserStats / Review SQLite 实现

计数字段只通过增量 UPDATE 维护，与触发它的业务写入处于同一事务。
"""

from datetime import UTC, datetime
from decimal import Decimal

import aiosqlite

from ..models.money import from_cents, to_cents
from ..models.stats import Review, UserStats


class SqliteUserStatsStore:
    """UserStats 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def _ensure(self, user_id: str) -> None:
        await self._conn.execute(
            "INSERT OR IGNORE INTO user_stats (user_id, updated_at) VALUES (?, ?)",
            (user_id, datetime.now(UTC).isoformat()),
        )

    async def get(self, user_id: str) -> UserStats:
        """读取统计；不存在时返回全零"""
        cursor = await self._conn.execute(
            "SELECT * FROM user_stats WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return UserStats(user_id=user_id)
        review_count = row["review_count"]
        return UserStats(
            user_id=row["user_id"],
            tasks_completed=row["tasks_completed"],
            total_earnings=from_cents(row["total_earnings_cents"]),
            cancellation_count=row["cancellation_count"],
            average_rating=(
                round(row["rating_sum"] / review_count, 2) if review_count else 0.0
            ),
            review_count=review_count,
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    async def increment_cancellations(self, user_id: str) -> int:
        """取消次数 +1，返回新值"""
        await self._ensure(user_id)
        await self._conn.execute(
            """
            UPDATE user_stats
            SET cancellation_count = cancellation_count + 1, updated_at = ?
            WHERE user_id = ?
            """,
            (datetime.now(UTC).isoformat(), user_id),
        )
        return (await self.get(user_id)).cancellation_count

    async def record_completion(self, user_id: str, earnings: Decimal) -> int:
        """完成次数 +1、累计收入增加，返回新的完成次数"""
        await self._ensure(user_id)
        await self._conn.execute(
            """
            UPDATE user_stats
            SET tasks_completed = tasks_completed + 1,
                total_earnings_cents = total_earnings_cents + ?,
                updated_at = ?
            WHERE user_id = ?
            """,
            (to_cents(earnings), datetime.now(UTC).isoformat(), user_id),
        )
        return (await self.get(user_id)).tasks_completed

    async def record_rating(self, user_id: str, rating: int) -> None:
        await self._ensure(user_id)
        await self._conn.execute(
            """
            UPDATE user_stats
            SET rating_sum = rating_sum + ?, review_count = review_count + 1, updated_at = ?
            WHERE user_id = ?
            """,
            (rating, datetime.now(UTC).isoformat(), user_id),
        )


class SqliteReviewStore:
    """Review 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def exists(self, task_id: str, reviewer_id: str) -> bool:
        cursor = await self._conn.execute(
            "SELECT 1 FROM reviews WHERE task_id = ? AND reviewer_id = ?",
            (task_id, reviewer_id),
        )
        return await cursor.fetchone() is not None

    async def insert(self, review: Review) -> None:
        await self._conn.execute(
            """
            INSERT INTO reviews (review_id, task_id, reviewer_id, reviewee_id,
                                 rating, comment, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                review.review_id,
                review.task_id,
                review.reviewer_id,
                review.reviewee_id,
                review.rating,
                review.comment,
                review.created_at.isoformat(),
            ),
        )

    async def list_for_reviewee(self, user_id: str) -> list[Review]:
        cursor = await self._conn.execute(
            "SELECT * FROM reviews WHERE reviewee_id = ? ORDER BY created_at DESC",
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [
            Review(
                review_id=row["review_id"],
                task_id=row["task_id"],
                reviewer_id=row["reviewer_id"],
                reviewee_id=row["reviewee_id"],
                rating=row["rating"],
                comment=row["comment"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]
