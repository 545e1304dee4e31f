"""CampusGig Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
StoreGroup.transaction() 是唯一的原子写入单元。
"""

import asyncio
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite
import structlog

from ..exceptions import StoreUnavailableError
from .chat_store import SqliteChatStore
from .live import LiveQueryHub, Subscription
from .notification_store import SqliteNotificationStore
from .progress_store import SqliteProgressStore
from .sqlite_init import init_db, verify_wal_mode
from .stats_store import SqliteReviewStore, SqliteUserStatsStore
from .task_store import SqliteTaskStore
from .transaction import transition_with_progress
from .wallet_store import SqliteWalletStore, settlement_keys

log = structlog.get_logger()


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接

    单连接上的写入单元由 _lock 串行化（存储层自身的隔离原语），
    业务层不持有任何锁，并发正确性由条件更新与唯一索引保证。
    transaction() 与 snapshot() 不可嵌套使用。
    """

    def __init__(self, conn: aiosqlite.Connection, live: LiveQueryHub | None = None) -> None:
        self.conn = conn
        self.live = live or LiveQueryHub()
        self._lock = asyncio.Lock()
        self.task_store = SqliteTaskStore(conn)
        self.progress_store = SqliteProgressStore(conn)
        self.wallet_store = SqliteWalletStore(conn)
        self.chat_store = SqliteChatStore(conn)
        self.notification_store = SqliteNotificationStore(conn)
        self.stats_store = SqliteUserStatsStore(conn)
        self.review_store = SqliteReviewStore(conn)

    @asynccontextmanager
    async def transaction(self, *collections: str) -> AsyncIterator["StoreGroup"]:
        """原子写入单元

        成功则提交并通知 collections 的订阅者；任何异常都回滚并原样抛出，
        sqlite3.OperationalError（锁超时、磁盘错误等）转换为 StoreUnavailableError。

        Args:
            *collections: 本单元会写入的集合名，用于提交后的推送通知
        """
        async with self._lock:
            try:
                yield self
                await self.conn.commit()
            except BaseException as e:
                await self.conn.rollback()
                if isinstance(e, sqlite3.OperationalError):
                    log.warning("store_transaction_failed", error=str(e))
                    raise StoreUnavailableError(str(e)) from e
                raise
        if collections:
            await self.live.publish(*collections)

    @asynccontextmanager
    async def snapshot(self) -> AsyncIterator["StoreGroup"]:
        """一致性读：期间不会有写入单元交错"""
        async with self._lock:
            try:
                yield self
            except sqlite3.OperationalError as e:
                raise StoreUnavailableError(str(e)) from e

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    try:
        conn = await aiosqlite.connect(db_path)
    except sqlite3.OperationalError as e:
        raise StoreUnavailableError(str(e)) from e
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "LiveQueryHub",
    "Subscription",
    "SqliteTaskStore",
    "SqliteProgressStore",
    "SqliteWalletStore",
    "SqliteChatStore",
    "SqliteNotificationStore",
    "SqliteUserStatsStore",
    "SqliteReviewStore",
    "init_db",
    "verify_wal_mode",
    "settlement_keys",
    "transition_with_progress",
]
