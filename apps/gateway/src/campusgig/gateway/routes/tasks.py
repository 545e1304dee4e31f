"""任务路由

POST /api/tasks: 发布任务
GET  /api/tasks: 任务列表，支持 status / created_by / accepted_by / category 筛选
     （同名参数重复出现即为成员匹配）
GET  /api/tasks/{task_id}: 任务详情 + 进度记录
POST /api/tasks/{task_id}/accept | /advance | /cancel | /settlement/retry | /reviews
GET  /api/tasks/{task_id}/messages: 按任务读取消息
"""

from decimal import Decimal

from campusgig.core.exceptions import MarketplaceError
from campusgig.core.marketplace import Marketplace
from campusgig.core.models import TaskDraft, TaskFilter, TaskStatus
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_actor_id, get_marketplace
from ..errors import error_response

router = APIRouter()


class CreateTaskRequest(BaseModel):
    """发布任务请求体"""

    title: str = Field(min_length=1, description="任务标题")
    description: str = Field(default="", description="任务描述")
    category: str = Field(default="", description="任务分类")
    location: str = Field(default="", description="任务地点")
    price: Decimal = Field(default=Decimal("0.00"), ge=0, description="任务报酬")
    estimated_time: str = Field(default="", description="预计耗时")


class AdvanceRequest(BaseModel):
    """推进状态请求体"""

    status: str = Field(description="目标状态")
    notes: str | None = Field(default=None, description="进度备注")


class CancelRequest(BaseModel):
    """取消请求体"""

    reason: str = Field(default="", description="取消原因（必填）")


class ReviewRequest(BaseModel):
    """评价请求体"""

    rating: int = Field(description="评分 1-5")
    comment: str = Field(default="", description="评价内容")


def _single_or_list(values: list[str] | None):
    if not values:
        return None
    return values[0] if len(values) == 1 else values


@router.post("/api/tasks", status_code=201)
async def create_task(
    body: CreateTaskRequest,
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    """发布任务，status 固定为 open"""
    try:
        task_id = await market.tasks.create(
            TaskDraft(**body.model_dump()),
            created_by=actor_id,
        )
        task = await market.tasks.get(task_id)
    except MarketplaceError as e:
        return error_response(e)
    return task.model_dump(mode="json")


@router.get("/api/tasks")
async def list_tasks(
    status: list[TaskStatus] | None = Query(default=None, description="按状态筛选"),
    created_by: list[str] | None = Query(default=None, description="按发布者筛选"),
    accepted_by: list[str] | None = Query(default=None, description="按接单者筛选"),
    category: list[str] | None = Query(default=None, description="按分类筛选"),
    market: Marketplace = Depends(get_marketplace),
):
    """查询任务列表，按 created_at 倒序"""
    task_filter = TaskFilter(
        status=_single_or_list(status),
        created_by=_single_or_list(created_by),
        accepted_by=_single_or_list(accepted_by),
        category=_single_or_list(category),
    )
    try:
        tasks = await market.tasks.list_tasks(task_filter)
    except MarketplaceError as e:
        return error_response(e)
    return {"tasks": [t.model_dump(mode="json") for t in tasks]}


@router.get("/api/tasks/{task_id}")
async def get_task_detail(
    task_id: str,
    market: Marketplace = Depends(get_marketplace),
):
    """任务详情，附带按写入顺序的进度记录"""
    try:
        task = await market.tasks.get(task_id)
        progress = await market.tasks.list_progress(task_id)
    except MarketplaceError as e:
        return error_response(e)
    return {
        "task": task.model_dump(mode="json"),
        "progress": [p.model_dump(mode="json") for p in progress],
    }


@router.post("/api/tasks/{task_id}/accept")
async def accept_task(
    task_id: str,
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    """接单"""
    try:
        task = await market.lifecycle.accept(task_id, actor_id)
    except MarketplaceError as e:
        return error_response(e)
    return task.model_dump(mode="json")


@router.post("/api/tasks/{task_id}/advance")
async def advance_task(
    task_id: str,
    body: AdvanceRequest,
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    """执行者推进任务状态；到 completed 时同步完成结算"""
    try:
        task = await market.lifecycle.advance(task_id, actor_id, body.status, body.notes)
    except MarketplaceError as e:
        return error_response(e)
    return task.model_dump(mode="json")


@router.post("/api/tasks/{task_id}/cancel")
async def cancel_task(
    task_id: str,
    body: CancelRequest,
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    """取消非终态任务

    - 200: 取消成功（附取消费信息）
    - 400: 缺少原因
    - 403: 非任务参与方
    - 404: 任务不存在
    - 409: 任务已在终态
    """
    try:
        outcome = await market.lifecycle.cancel(task_id, actor_id, body.reason)
    except MarketplaceError as e:
        return error_response(e)
    return outcome.model_dump(mode="json")


@router.post("/api/tasks/{task_id}/settlement/retry")
async def retry_settlement(
    task_id: str,
    market: Marketplace = Depends(get_marketplace),
):
    """幂等结算补偿"""
    try:
        receipt = await market.lifecycle.retry_settlement(task_id)
    except MarketplaceError as e:
        return error_response(e)
    return {
        "task_id": task_id,
        "settled": receipt is not None,
        "receipt": receipt.model_dump() if receipt else None,
    }


@router.post("/api/tasks/{task_id}/reviews", status_code=201)
async def add_review(
    task_id: str,
    body: ReviewRequest,
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    """对已完成任务的另一方做出评价"""
    try:
        review = await market.reviews.add_review(task_id, actor_id, body.rating, body.comment)
    except MarketplaceError as e:
        return error_response(e)
    return review.model_dump(mode="json")


@router.get("/api/tasks/{task_id}/messages")
async def list_task_messages(
    task_id: str,
    market: Marketplace = Depends(get_marketplace),
):
    """按任务读取消息（兼容投影）"""
    messages = await market.chats.list_task_messages(task_id)
    return JSONResponse(
        content={"messages": [m.model_dump(mode="json") for m in messages]},
    )
