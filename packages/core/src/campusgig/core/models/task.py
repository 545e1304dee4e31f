"""Task Domain Model

tasks 表保存任务的规范状态。
status 只能经由 TaskLifecycle 的流转操作修改。
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from .enums import TERMINAL_STATES, TaskStatus


class Task(BaseModel):
    """Task 数据模型

    不变量：
    - open 状态下 accepted_by 为空；执行中与 completed 状态下 accepted_by 必填
      （open 状态直接取消的任务保留 accepted_by 为空）
    - created_by 不等于 accepted_by
    - price >= 0
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    title: str = Field(description="任务标题")
    description: str = Field(default="", description="任务描述")
    category: str = Field(default="", description="任务分类")
    location: str = Field(default="", description="任务地点")
    price: Decimal = Field(default=Decimal("0.00"), ge=0, description="任务报酬")
    estimated_time: str = Field(default="", description="预计耗时")
    created_by: str = Field(description="发布者 user id")
    accepted_by: str | None = Field(default=None, description="接单者 user id")
    status: TaskStatus = Field(default=TaskStatus.OPEN, description="当前状态")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    completed_at: datetime | None = Field(default=None, description="完成时间")
    cancelled_at: datetime | None = Field(default=None, description="取消时间")
    cancelled_by: str | None = Field(default=None, description="取消操作者")
    cancellation_reason: str | None = Field(default=None, description="取消原因")

    @model_validator(mode="after")
    def _check_parties(self) -> "Task":
        if self.accepted_by is not None and self.accepted_by == self.created_by:
            raise ValueError("created_by and accepted_by must differ")
        if self.status == TaskStatus.OPEN and self.accepted_by is not None:
            raise ValueError("an open task cannot have a performer")
        if (
            self.status not in TERMINAL_STATES | {TaskStatus.OPEN}
            or self.status == TaskStatus.COMPLETED
        ) and self.accepted_by is None:
            raise ValueError(f"a {self.status} task requires a performer")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def other_party(self, user_id: str) -> str | None:
        """返回任务另一方的 user id（发布者 <-> 接单者）"""
        if user_id == self.created_by:
            return self.accepted_by
        if user_id == self.accepted_by:
            return self.created_by
        return None


class TaskDraft(BaseModel):
    """发布任务的输入"""

    title: str = Field(min_length=1, description="任务标题")
    description: str = Field(default="", description="任务描述")
    category: str = Field(default="", description="任务分类")
    location: str = Field(default="", description="任务地点")
    price: Decimal = Field(default=Decimal("0.00"), ge=0, description="任务报酬")
    estimated_time: str = Field(default="", description="预计耗时")


class TaskFilter(BaseModel):
    """任务查询 / 订阅过滤条件

    单值为等值匹配，列表为成员匹配（IN）。
    """

    status: TaskStatus | list[TaskStatus] | None = None
    created_by: str | list[str] | None = None
    accepted_by: str | list[str] | None = None
    category: str | list[str] | None = None
