"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import Awaitable, Callable
from decimal import Decimal

import pytest_asyncio
from campusgig.core.marketplace import Marketplace
from campusgig.core.models import TaskDraft

CreateTask = Callable[..., Awaitable[str]]


@pytest_asyncio.fixture
async def create_task(market: Marketplace) -> CreateTask:
    """发布任务的工厂：create_task(creator, price=..., **fields) -> task_id"""

    async def _create(creator: str, price: str | Decimal = "20.00", **fields) -> str:
        draft = TaskDraft(
            title=fields.pop("title", "Pick up a parcel"),
            price=Decimal(str(price)),
            **fields,
        )
        return await market.tasks.create(draft, created_by=creator)

    return _create


@pytest_asyncio.fixture
async def accepted_task(market: Marketplace, create_task: CreateTask) -> str:
    """u1 发布、u2 接单的 $20 任务，u1 钱包余额 $50"""
    await market.wallets.deposit("u1", "50.00")
    task_id = await create_task("u1", price="20.00")
    await market.lifecycle.accept(task_id, "u2")
    return task_id
