"""apps/gateway 测试配置 -- FastAPI app + httpx AsyncClient"""

from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest_asyncio
from campusgig.core.marketplace import Marketplace
from campusgig.core.store import StoreGroup
from campusgig.gateway.main import create_app
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def test_app(store_group: StoreGroup, market: Marketplace) -> FastAPI:
    """创建测试用 FastAPI app（手动初始化，绕过 lifespan）"""
    app = create_app()
    app.state.store_group = store_group
    app.state.marketplace = market
    return app


@pytest_asyncio.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def post_task(client: AsyncClient) -> Callable[..., Awaitable[str]]:
    """通过 API 发布任务，返回 task_id"""

    async def _post(creator: str, price: str = "20.00", **fields) -> str:
        body = {"title": fields.pop("title", "Return library books"), "price": price, **fields}
        resp = await client.post("/api/tasks", json=body, headers={"X-Actor-Id": creator})
        assert resp.status_code == 201, resp.text
        return resp.json()["task_id"]

    return _post
