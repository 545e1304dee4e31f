"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 服务组装 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from campusgig.core.config import get_db_path, load_lifecycle_policy
from campusgig.core.marketplace import Marketplace
from campusgig.core.store import create_store_group
from fastapi import FastAPI

from .middleware.logging_config import setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import chats, health, notifications, stream, tasks, wallet

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 与服务，关闭时清理连接"""
    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    app.state.store_group = store_group

    policy = load_lifecycle_policy()
    app.state.marketplace = Marketplace(store_group, policy)
    log.info(
        "marketplace_initialized",
        db_path=db_path,
        cancellation_fee_threshold=policy.cancellation_fee_threshold,
    )

    yield

    if hasattr(app.state, "store_group") and app.state.store_group:
        await app.state.store_group.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="CampusGig Gateway",
        version="0.1.0",
        description="校园任务市场：任务生命周期与钱包结算 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()

    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(wallet.router, tags=["wallet"])
    app.include_router(chats.router, tags=["chats"])
    app.include_router(notifications.router, tags=["notifications"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
