"""SSE 进度流测试

测试内容：
1. 任务不存在时返回 404
2. 终态任务：连接后收到完整进度并以 final 结束
"""

import json

from httpx import AsyncClient


def as_user(user_id: str) -> dict[str, str]:
    return {"X-Actor-Id": user_id}


class TestProgressStream:
    async def test_404_for_unknown_task(self, client: AsyncClient):
        resp = await client.get("/api/stream/task/01JNONEXISTENT0000000000AA")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    async def test_terminal_task_stream_closes(self, client: AsyncClient, post_task):
        task_id = await post_task("u1", price="0")
        await client.post(f"/api/tasks/{task_id}/accept", headers=as_user("u2"))
        await client.post(
            f"/api/tasks/{task_id}/advance",
            json={"status": "picked_up"},
            headers=as_user("u2"),
        )
        await client.post(
            f"/api/tasks/{task_id}/advance",
            json={"status": "completed"},
            headers=as_user("u2"),
        )

        payloads = []
        async with client.stream("GET", f"/api/stream/task/{task_id}") as response:
            assert response.status_code == 200
            async for line in response.aiter_lines():
                if line.startswith("data:"):
                    payloads.append(json.loads(line[len("data:"):].strip()))

        assert len(payloads) == 1
        assert payloads[0]["final"] is True
        assert [p["status"] for p in payloads[0]["progress"]] == [
            "accepted",
            "picked_up",
            "completed",
        ]

    async def test_live_subscription_released(self, client: AsyncClient, post_task, test_app):
        task_id = await post_task("u1", price="0")
        await client.post(f"/api/tasks/{task_id}/accept", headers=as_user("u2"))
        await client.post(
            f"/api/tasks/{task_id}/cancel", json={"reason": "done"}, headers=as_user("u1")
        )

        async with client.stream("GET", f"/api/stream/task/{task_id}") as response:
            async for _ in response.aiter_lines():
                pass

        live = test_app.state.store_group.live
        assert live.subscriber_count("progress_entries") == 0
