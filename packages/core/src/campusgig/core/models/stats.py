"""用户统计与评价 Domain Model

user_stats 中的取消次数与完成次数在对应操作的同一事务内维护。
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class UserStats(BaseModel):
    """用户累计数据"""

    user_id: str
    tasks_completed: int = Field(default=0, description="已完成的付费任务数（作为执行者）")
    total_earnings: Decimal = Field(default=Decimal("0.00"), description="累计收入")
    cancellation_count: int = Field(default=0, description="累计取消次数")
    average_rating: float = Field(default=0.0, description="平均评分")
    review_count: int = Field(default=0, description="收到的评价数")
    updated_at: datetime | None = Field(default=None, description="更新时间")


class Review(BaseModel):
    """任务完成后一方对另一方的评价"""

    review_id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="关联任务")
    reviewer_id: str = Field(description="评价者")
    reviewee_id: str = Field(description="被评价者")
    rating: int = Field(ge=1, le=5, description="评分 1-5")
    comment: str = Field(default="", description="评价内容")
    created_at: datetime = Field(description="评价时间")
