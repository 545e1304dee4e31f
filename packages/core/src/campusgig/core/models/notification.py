"""Notification Domain Model"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import NotificationType


class Notification(BaseModel):
    """站内通知，只有接收者可以标记已读"""

    notification_id: str = Field(description="唯一标识，ULID 格式")
    user_id: str = Field(description="接收者")
    type: NotificationType = Field(description="通知类型")
    title: str = Field(description="标题")
    content: str = Field(description="正文")
    task_id: str | None = Field(default=None, description="关联任务")
    read: bool = Field(default=False, description="是否已读")
    created_at: datetime = Field(description="创建时间")
