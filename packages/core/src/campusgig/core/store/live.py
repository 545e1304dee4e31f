"""LiveQueryHub -- 基于提交通知的推送式查询订阅

订阅者注册 (collection, query, callback)：
- 订阅时立即推送一次当前结果集
- 之后 collection 每次提交变更，都重新执行 query 并推送完整结果集
- 单个订阅内的推送串行执行，顺序与提交顺序一致
- cancel() 返回后不会再开始任何回调
"""

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

log = structlog.get_logger()

Query = Callable[[], Awaitable[list[Any]]]
Callback = Callable[[list[Any]], Any]


class Subscription:
    """单个推送订阅"""

    def __init__(
        self,
        hub: "LiveQueryHub",
        collection: str,
        query: Query,
        callback: Callback,
    ) -> None:
        self.collection = collection
        self._hub = hub
        self._query = query
        self._callback = callback
        self._lock = asyncio.Lock()
        self._active = True
        self.deliveries = 0

    @property
    def active(self) -> bool:
        return self._active

    async def refresh(self) -> None:
        """重新执行查询并推送；查询或回调失败只记录日志，订阅保留"""
        async with self._lock:
            if not self._active:
                return
            try:
                results = await self._query()
            except Exception as e:
                log.warning(
                    "live_query_failed",
                    collection=self.collection,
                    error=str(e),
                )
                return

            # 查询期间可能已被取消
            if not self._active:
                return
            try:
                outcome = self._callback(results)
                if inspect.isawaitable(outcome):
                    await outcome
                self.deliveries += 1
            except Exception as e:
                log.error(
                    "live_query_callback_failed",
                    collection=self.collection,
                    error=str(e),
                )

    def cancel(self) -> None:
        """停止推送并释放注册；可重复调用"""
        if not self._active:
            return
        self._active = False
        self._hub._discard(self)

    async def aclose(self) -> None:
        """取消并等待进行中的推送结束"""
        self.cancel()
        async with self._lock:
            pass


class LiveQueryHub:
    """按 collection 分组的订阅注册表"""

    def __init__(self) -> None:
        # collection -> set of Subscription
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)

    async def subscribe(
        self,
        collection: str,
        query: Query,
        callback: Callback,
    ) -> Subscription:
        """注册订阅并立即推送当前结果集

        Args:
            collection: 监听的集合名（如 "tasks"、"progress_entries"）
            query: 无参异步查询，返回完整结果集
            callback: 结果集回调，同步或异步函数均可

        Returns:
            Subscription 实例，调用 cancel() 停止推送
        """
        subscription = Subscription(self, collection, query, callback)
        self._subscribers[collection].add(subscription)
        await subscription.refresh()
        return subscription

    async def publish(self, *collections: str) -> None:
        """通知若干集合已提交变更，依次刷新相关订阅"""
        targets: list[Subscription] = []
        for collection in dict.fromkeys(collections):
            targets.extend(self._subscribers.get(collection, ()))
        for subscription in targets:
            await subscription.refresh()

    def subscriber_count(self, collection: str | None = None) -> int:
        if collection is not None:
            return len(self._subscribers.get(collection, ()))
        return sum(len(subs) for subs in self._subscribers.values())

    def _discard(self, subscription: Subscription) -> None:
        subs = self._subscribers.get(subscription.collection)
        if subs is None:
            return
        subs.discard(subscription)
        if not subs:
            del self._subscribers[subscription.collection]
