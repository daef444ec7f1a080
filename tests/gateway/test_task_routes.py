"""任务 HTTP 接口测试

测试内容：
1. 发布任务 201 / 幂等命中 200
2. 列表筛选：开放任务排除自己的、我接的、我发的
3. 接单、流转、取消的错误码与 HTTP 状态码
4. 时间线 since_sequence
"""

import asyncio

from httpx import AsyncClient

TASK_BODY = {
    "title": "帮忙买两个包子",
    "category": "food",
    "store": "一食堂",
    "dropoff_address": "教学楼 A 座 201",
    "urgency": "high",
    "reward_cents": 300,
    "estimated_minutes": 15,
}


async def _create(client: AsyncClient, created_by: str = "alice", **extra) -> dict:
    resp = await client.post("/api/tasks", json={**TASK_BODY, "created_by": created_by, **extra})
    assert resp.status_code == 201
    return resp.json()["task"]


async def _transition(client: AsyncClient, task_id: str, actor_id: str, status: str):
    return await client.post(
        f"/api/tasks/{task_id}/transition",
        json={"actor_id": actor_id, "status": status},
    )


class TestCreateAndQuery:
    async def test_create_task(self, client: AsyncClient):
        task = await _create(client)
        assert task["status"] == "open"
        assert task["created_by"] == "alice"
        assert task["accepted_by"] is None
        assert task["version"] == 0
        assert task["urgency"] == "high"
        assert len(task["task_id"]) == 26

    async def test_idempotent_create(self, client: AsyncClient):
        first = await _create(client, idempotency_key="idem-001")
        resp = await client.post(
            "/api/tasks",
            json={**TASK_BODY, "created_by": "alice", "idempotency_key": "idem-001"},
        )
        assert resp.status_code == 200
        assert resp.json()["created"] is False
        assert resp.json()["task"]["task_id"] == first["task_id"]

    async def test_invalid_draft_rejected(self, client: AsyncClient):
        resp = await client.post(
            "/api/tasks", json={**TASK_BODY, "created_by": "alice", "reward_cents": 0}
        )
        assert resp.status_code == 422

    async def test_get_task(self, client: AsyncClient):
        task = await _create(client)
        resp = await client.get(f"/api/tasks/{task['task_id']}")
        assert resp.status_code == 200
        assert resp.json()["task"]["title"] == TASK_BODY["title"]

    async def test_get_unknown_task(self, client: AsyncClient):
        resp = await client.get("/api/tasks/01JNONEXISTENT000000000000")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "TASK_NOT_FOUND"

    async def test_list_feeds(self, client: AsyncClient):
        mine = await _create(client, "alice")
        others = await _create(client, "carol")
        await client.post(f"/api/tasks/{others['task_id']}/accept", json={"helper_id": "bob"})
        open_other = await _create(client, "dave")

        resp = await client.get(
            "/api/tasks", params={"status": "open", "exclude_created_by": "alice"}
        )
        open_ids = [t["task_id"] for t in resp.json()["tasks"]]
        assert open_ids == [open_other["task_id"]]

        resp = await client.get("/api/tasks", params={"accepted_by": "bob"})
        assert [t["task_id"] for t in resp.json()["tasks"]] == [others["task_id"]]

        resp = await client.get("/api/tasks", params={"created_by": "alice"})
        assert [t["task_id"] for t in resp.json()["tasks"]] == [mine["task_id"]]

    async def test_list_pagination(self, client: AsyncClient):
        for _ in range(3):
            await _create(client)
        resp = await client.get("/api/tasks", params={"limit": 2})
        assert len(resp.json()["tasks"]) == 2
        resp = await client.get("/api/tasks", params={"limit": 2, "offset": 2})
        assert len(resp.json()["tasks"]) == 1


class TestAcceptRoute:
    async def test_accept(self, client: AsyncClient):
        task = await _create(client)
        resp = await client.post(
            f"/api/tasks/{task['task_id']}/accept", json={"helper_id": "bob"}
        )
        assert resp.status_code == 200
        body = resp.json()["task"]
        assert body["status"] == "accepted"
        assert body["accepted_by"] == "bob"

    async def test_concurrent_accept_over_http(self, client: AsyncClient):
        task = await _create(client)
        responses = await asyncio.gather(
            *(
                client.post(
                    f"/api/tasks/{task['task_id']}/accept",
                    json={"helper_id": f"helper-{i}"},
                )
                for i in range(5)
            )
        )
        codes = sorted(r.status_code for r in responses)
        assert codes == [200, 409, 409, 409, 409]
        for r in responses:
            if r.status_code == 409:
                assert r.json()["error"]["code"] == "NO_LONGER_AVAILABLE"

    async def test_accept_own_task(self, client: AsyncClient):
        task = await _create(client)
        resp = await client.post(
            f"/api/tasks/{task['task_id']}/accept", json={"helper_id": "alice"}
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "NOT_AUTHORIZED"

    async def test_accept_unknown_task(self, client: AsyncClient):
        resp = await client.post(
            "/api/tasks/01JNONEXISTENT000000000000/accept", json={"helper_id": "bob"}
        )
        assert resp.status_code == 404


class TestTransitionRoute:
    async def test_role_gating_and_illegal_edges(self, client: AsyncClient):
        task = await _create(client)
        task_id = task["task_id"]
        await client.post(f"/api/tasks/{task_id}/accept", json={"helper_id": "bob"})

        resp = await _transition(client, task_id, "alice", "started")
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "NOT_AUTHORIZED"

        resp = await _transition(client, task_id, "bob", "delivered")
        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "ILLEGAL_TRANSITION"
        assert error["current_status"] == "accepted"
        assert error["requested_status"] == "delivered"

        resp = await _transition(client, task_id, "bob", "started")
        assert resp.status_code == 200
        assert resp.json()["task"]["version"] == 2

    async def test_unknown_status_value(self, client: AsyncClient):
        task = await _create(client)
        resp = await _transition(client, task["task_id"], "alice", "teleported")
        assert resp.status_code == 422

    async def test_cancel_then_immutable(self, client: AsyncClient):
        task = await _create(client)
        task_id = task["task_id"]

        resp = await client.post(f"/api/tasks/{task_id}/cancel", json={"actor_id": "alice"})
        assert resp.status_code == 200
        assert resp.json()["task"]["status"] == "cancelled"

        resp = await client.post(f"/api/tasks/{task_id}/cancel", json={"actor_id": "alice"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "ILLEGAL_TRANSITION"

        resp = await client.post(f"/api/tasks/{task_id}/accept", json={"helper_id": "bob"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "NO_LONGER_AVAILABLE"


class TestTimelineRoute:
    async def test_timeline_since_sequence(self, client: AsyncClient):
        task = await _create(client)
        task_id = task["task_id"]
        await client.post(f"/api/tasks/{task_id}/accept", json={"helper_id": "bob"})
        await _transition(client, task_id, "bob", "started")
        await _transition(client, task_id, "bob", "on_the_way")

        resp = await client.get(f"/api/tasks/{task_id}/timeline")
        events = resp.json()["events"]
        assert [e["sequence"] for e in events] == [1, 2, 3]
        assert events[0]["actor_role"] == "helper"

        resp = await client.get(
            f"/api/tasks/{task_id}/timeline", params={"since_sequence": 2}
        )
        assert [e["to_status"] for e in resp.json()["events"]] == ["on_the_way"]

    async def test_timeline_unknown_task(self, client: AsyncClient):
        resp = await client.get("/api/tasks/01JNONEXISTENT000000000000/timeline")
        assert resp.status_code == 404
