"""Chat Domain Model

同一对用户之间至多一个会话，participant_key 为排序后的用户对。
"""

from datetime import datetime

from pydantic import BaseModel, Field


def participant_key(user_a: str, user_b: str) -> str:
    """无序用户对的规范键"""
    first, second = sorted((user_a, user_b))
    return f"{first}|{second}"


class ChatThread(BaseModel):
    """两名用户之间唯一的会话"""

    thread_id: str = Field(description="唯一标识，ULID 格式")
    participants: list[str] = Field(description="排序后的两名参与者")
    last_task_id: str | None = Field(default=None, description="最近关联的任务")
    last_message: str | None = Field(default=None, description="最近一条消息摘要")
    last_message_time: datetime | None = Field(default=None, description="最近消息时间")
    last_sender: str | None = Field(default=None, description="最近发送者")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")


class ChatMessage(BaseModel):
    """会话消息

    带 task_id 的消息同时投影到任务维度的消息表（兼容旧的按任务读取方式）。
    """

    message_id: str = Field(description="唯一标识，ULID 格式")
    thread_id: str = Field(description="所属会话")
    sender_id: str = Field(description="发送者")
    recipient_id: str = Field(description="接收者")
    content: str = Field(description="消息内容")
    attachment_ref: str | None = Field(default=None, description="附件引用")
    task_id: str | None = Field(default=None, description="关联任务")
    is_read: bool = Field(default=False, description="是否已读")
    created_at: datetime = Field(description="发送时间")
