"""会话路由

POST /api/chats: 解析（必要时创建）与另一用户的唯一会话
GET  /api/chats: 当前用户的会话列表
POST /api/chats/{thread_id}/messages: 发送消息
GET  /api/chats/{thread_id}/messages: 会话消息
POST /api/chats/{thread_id}/messages/{message_id}/read: 接收者标记已读
"""

from campusgig.core.exceptions import MarketplaceError
from campusgig.core.marketplace import Marketplace
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_actor_id, get_marketplace
from ..errors import error_body, error_response

router = APIRouter()


class ResolveRequest(BaseModel):
    other_user_id: str = Field(min_length=1, description="对方 user id")
    task_id: str | None = Field(default=None, description="关联任务")


class PostMessageRequest(BaseModel):
    recipient_id: str = Field(min_length=1, description="接收者")
    content: str = Field(min_length=1, description="消息内容")
    attachment_ref: str | None = Field(default=None, description="附件引用")
    task_id: str | None = Field(default=None, description="关联任务")


@router.post("/api/chats")
async def resolve_thread(
    body: ResolveRequest,
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    if body.other_user_id == actor_id:
        return error_body(400, "INVALID_PARTICIPANTS", "Cannot open a chat with yourself")
    try:
        thread_id = await market.chats.resolve(actor_id, body.other_user_id, body.task_id)
        thread = await market.chats.get_thread(thread_id)
    except MarketplaceError as e:
        return error_response(e)
    return thread.model_dump(mode="json")


@router.get("/api/chats")
async def list_threads(
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    threads = await market.chats.list_threads_for(actor_id)
    return {"threads": [t.model_dump(mode="json") for t in threads]}


@router.post("/api/chats/{thread_id}/messages", status_code=201)
async def post_message(
    thread_id: str,
    body: PostMessageRequest,
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        message_id = await market.chats.post_message(
            thread_id,
            actor_id,
            body.recipient_id,
            body.content,
            attachment_ref=body.attachment_ref,
            task_id=body.task_id,
        )
    except MarketplaceError as e:
        return error_response(e)
    return {"message_id": message_id, "thread_id": thread_id}


@router.get("/api/chats/{thread_id}/messages")
async def list_messages(
    thread_id: str,
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        thread = await market.chats.get_thread(thread_id)
    except MarketplaceError as e:
        return error_response(e)
    if actor_id not in thread.participants:
        return error_body(404, "NOT_FOUND", f"chat_thread with id {thread_id} does not exist")
    messages = await market.chats.list_messages(thread_id)
    return {"messages": [m.model_dump(mode="json") for m in messages]}


@router.post("/api/chats/{thread_id}/messages/{message_id}/read")
async def mark_message_read(
    thread_id: str,
    message_id: str,
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        await market.chats.mark_message_read(thread_id, message_id, actor_id)
    except MarketplaceError as e:
        return error_response(e)
    return {"message_id": message_id, "is_read": True}
