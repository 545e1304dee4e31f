"""通知路由

GET  /api/notifications: 当前用户通知（最新在前）+ 未读数
POST /api/notifications/{notification_id}/read: 接收者标记已读
"""

from campusgig.core.exceptions import MarketplaceError
from campusgig.core.marketplace import Marketplace
from fastapi import APIRouter, Depends

from ..deps import get_actor_id, get_marketplace
from ..errors import error_response

router = APIRouter()


@router.get("/api/notifications")
async def list_notifications(
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    notifications = await market.notifications.list_for(actor_id)
    unread = await market.notifications.unread_count(actor_id)
    return {
        "notifications": [n.model_dump(mode="json") for n in notifications],
        "unread_count": unread,
    }


@router.post("/api/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    try:
        await market.notifications.mark_read(notification_id, actor_id)
    except MarketplaceError as e:
        return error_response(e)
    return {"notification_id": notification_id, "read": True}
