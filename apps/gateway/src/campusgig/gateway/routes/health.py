"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性、WAL 模式与磁盘空间。
"""

import shutil

import structlog
from campusgig.core.store import verify_wal_mode
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查 -- 验证核心依赖可用性"""
    checks: dict = {}
    all_ok = True

    # 1. SQLite 连通性 + WAL
    try:
        store_group = request.app.state.store_group
        async with store_group.snapshot() as stores:
            cursor = await stores.conn.execute("SELECT 1")
            await cursor.fetchone()
            checks["sqlite"] = "ok"
            checks["wal"] = "ok" if await verify_wal_mode(stores.conn) else "disabled"
    except Exception as e:
        log.warning("readiness_sqlite_failed", error=str(e))
        checks["sqlite"] = "unavailable"
        all_ok = False

    # 2. 磁盘空间
    try:
        disk_usage = shutil.disk_usage("/")
        checks["disk_space_mb"] = disk_usage.free // (1024 * 1024)
    except OSError:
        checks["disk_space_mb"] = 0
        all_ok = False

    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={
            "status": "ready" if all_ok else "not_ready",
            "checks": checks,
        },
    )
