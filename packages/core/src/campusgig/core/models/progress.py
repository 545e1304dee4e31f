"""Progress Entry Domain Model

任务进度表 append-only，不允许更新或删除。
task_seq 同一 task 内严格单调递增。
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .enums import TaskStatus


class ProgressEntry(BaseModel):
    """一次状态流转的不可变记录"""

    entry_id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="关联的 Task ID")
    task_seq: int = Field(description="任务内序号，严格单调递增")
    status: TaskStatus = Field(description="流转后的状态（不含 open）")
    notes: str | None = Field(default=None, description="备注")
    actor_id: str = Field(description="操作者 user id")
    created_at: datetime = Field(description="记录时间")

    @field_validator("status")
    @classmethod
    def _not_open(cls, value: TaskStatus) -> TaskStatus:
        if value == TaskStatus.OPEN:
            raise ValueError("progress entries never record the open status")
        return value
