"""全局 pytest 配置 -- 临时 SQLite 数据库 + Store/服务 fixture"""

from collections.abc import AsyncGenerator
from decimal import Decimal
from pathlib import Path

import pytest_asyncio
from campusgig.core.config import LifecyclePolicy
from campusgig.core.marketplace import Marketplace
from campusgig.core.store import StoreGroup, create_store_group


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供已初始化的临时 StoreGroup"""
    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.close()


@pytest_asyncio.fixture
async def policy() -> LifecyclePolicy:
    """默认取消费策略，副作用重试不等待"""
    return LifecyclePolicy(
        cancellation_fee_threshold=3,
        cancellation_fee_rate=Decimal("0.10"),
        cancellation_fee_minimum=Decimal("1.00"),
        notify_max_attempts=3,
        notify_retry_base_delay_s=0,
    )


@pytest_asyncio.fixture
async def market(store_group: StoreGroup, policy: LifecyclePolicy) -> Marketplace:
    """共享临时数据库的服务组"""
    return Marketplace(store_group, policy)
