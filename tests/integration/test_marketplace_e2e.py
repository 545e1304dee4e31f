"""端到端集成测试

全链路：发布 -> 接单 -> 逐步推进 -> 完成结算 -> 评价，以及取消费与越权推进。
"""

import asyncio

from campusgig.core.audit import audit_wallets
from httpx import AsyncClient


def as_user(user_id: str) -> dict[str, str]:
    return {"X-Actor-Id": user_id}


async def _balance(client: AsyncClient, user_id: str) -> str:
    resp = await client.get(f"/api/wallets/{user_id}")
    return resp.json()["balance"]


class TestFullLifecycle:
    async def test_paid_task_end_to_end(self, client: AsyncClient, store_group):
        await client.post("/api/wallets/u1/deposit", json={"amount": "50"}, headers=as_user("u1"))
        resp = await client.post(
            "/api/tasks",
            json={"title": "Grab coffee", "price": "20.00", "location": "Library"},
            headers=as_user("u1"),
        )
        task_id = resp.json()["task_id"]

        resp = await client.post(f"/api/tasks/{task_id}/accept", headers=as_user("u2"))
        assert resp.status_code == 200
        for status in ("picked_up", "in_progress", "completed"):
            resp = await client.post(
                f"/api/tasks/{task_id}/advance",
                json={"status": status},
                headers=as_user("u2"),
            )
            assert resp.status_code == 200, resp.text

        assert await _balance(client, "u1") == "30.00"
        assert await _balance(client, "u2") == "20.00"

        detail = (await client.get(f"/api/tasks/{task_id}")).json()
        assert detail["task"]["status"] == "completed"
        assert len(detail["progress"]) == 4
        assert [p["task_seq"] for p in detail["progress"]] == [1, 2, 3, 4]

        ledger = await store_group.wallet_store.list_for_task(task_id)
        assert len(ledger) == 2

        notes = (await client.get("/api/notifications", headers=as_user("u2"))).json()
        assert [n["type"] for n in notes["notifications"]].count("achievement") == 1

        # 接单时绑定的会话对双方可见，且记录了最近任务
        threads = (await client.get("/api/chats", headers=as_user("u1"))).json()["threads"]
        assert len(threads) == 1
        assert threads[0]["last_task_id"] == task_id

        resp = await client.post(
            f"/api/tasks/{task_id}/reviews", json={"rating": 4}, headers=as_user("u1")
        )
        assert resp.status_code == 201

        assert await audit_wallets(store_group) == []

    async def test_cancellation_fee_after_three_cancellations(self, client: AsyncClient):
        await client.post("/api/wallets/u1/deposit", json={"amount": "10"}, headers=as_user("u1"))
        for i in range(4):
            resp = await client.post(
                "/api/tasks",
                json={"title": f"Errand {i}", "price": "5.00"},
                headers=as_user("u1"),
            )
            task_id = resp.json()["task_id"]
            outcome = await client.post(
                f"/api/tasks/{task_id}/cancel",
                json={"reason": "Changed my mind"},
                headers=as_user("u1"),
            )
            assert outcome.status_code == 200

        last = outcome.json()
        assert last["task"]["status"] == "cancelled"
        assert last["task"]["accepted_by"] is None
        assert last["fee_charged"] == "1.00"
        assert last["fee_collected"] is True
        assert last["cancellation_count"] == 4
        assert await _balance(client, "u1") == "9.00"

    async def test_outsider_advance_leaves_task_unchanged(self, client: AsyncClient):
        resp = await client.post(
            "/api/tasks", json={"title": "Walk the dog", "price": "0"}, headers=as_user("u1")
        )
        task_id = resp.json()["task_id"]
        await client.post(f"/api/tasks/{task_id}/accept", headers=as_user("u2"))

        resp = await client.post(
            f"/api/tasks/{task_id}/advance",
            json={"status": "picked_up"},
            headers=as_user("u3"),
        )
        assert resp.status_code == 403
        detail = (await client.get(f"/api/tasks/{task_id}")).json()
        assert detail["task"]["status"] == "accepted"
        assert len(detail["progress"]) == 1


class TestConcurrency:
    async def test_racing_accepts_have_one_winner(self, client: AsyncClient):
        resp = await client.post(
            "/api/tasks", json={"title": "Move a couch", "price": "0"}, headers=as_user("u1")
        )
        task_id = resp.json()["task_id"]

        results = await asyncio.gather(
            *(
                client.post(f"/api/tasks/{task_id}/accept", headers=as_user(f"p{i}"))
                for i in range(5)
            )
        )
        codes = sorted(r.status_code for r in results)
        assert codes == [200, 409, 409, 409, 409]

    async def test_racing_completion_settles_once(self, client: AsyncClient):
        await client.post("/api/wallets/u1/deposit", json={"amount": "20"}, headers=as_user("u1"))
        resp = await client.post(
            "/api/tasks", json={"title": "Print notes", "price": "20"}, headers=as_user("u1")
        )
        task_id = resp.json()["task_id"]
        await client.post(f"/api/tasks/{task_id}/accept", headers=as_user("u2"))

        results = await asyncio.gather(
            *(
                client.post(
                    f"/api/tasks/{task_id}/advance",
                    json={"status": "completed"},
                    headers=as_user("u2"),
                )
                for _ in range(3)
            )
        )
        assert sorted(r.status_code for r in results) == [200, 409, 409]
        assert await _balance(client, "u1") == "0.00"
        assert await _balance(client, "u2") == "20.00"
