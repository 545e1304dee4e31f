"""集成测试共享 fixture"""

from collections.abc import AsyncGenerator

import pytest_asyncio
from campusgig.core.config import LifecyclePolicy
from campusgig.core.marketplace import Marketplace
from campusgig.core.store import StoreGroup
from campusgig.gateway.main import create_app
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def integration_app(store_group: StoreGroup, policy: LifecyclePolicy) -> FastAPI:
    """集成测试用 FastAPI app"""
    app = create_app()
    app.state.store_group = store_group
    app.state.marketplace = Marketplace(store_group, policy)
    return app


@pytest_asyncio.fixture
async def client(integration_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac
