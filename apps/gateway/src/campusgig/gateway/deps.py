"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例

Marketplace 通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from campusgig.core.marketplace import Marketplace
from campusgig.core.store import StoreGroup
from fastapi import Header, Request


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_marketplace(request: Request) -> Marketplace:
    """从 app.state 获取 Marketplace 服务组"""
    return request.app.state.marketplace


def get_actor_id(x_actor_id: str = Header(..., min_length=1)) -> str:
    """身份协作方：信任上游网关注入的 X-Actor-Id 请求头"""
    return x_actor_id
