"""端到端：一个任务从发布到完成的完整生命周期

alice 发布任务，bob 与 carol 同时抢单，恰好一人成功；
requester 不能推进执行子状态；helper 走完 started -> on_the_way -> delivered；
requester 确认完成后任务不可再变；客户端 Reconciler 收敛到 completed。
"""

import asyncio

from campusrun.client import ClientReconciler, GatewayClient
from campusrun.core.models import TaskStatus
from campusrun.core.projection import verify_all
from httpx import AsyncClient

TASK_BODY = {
    "title": "代买一箱矿泉水",
    "category": "grocery",
    "store": "校园超市",
    "dropoff_address": "东区 7 号楼 502",
    "reward_cents": 400,
    "estimated_minutes": 25,
}


class TestTaskLifecycleE2E:
    async def test_full_lifecycle(self, client: AsyncClient, store_group, propagator):
        resp = await client.post("/api/tasks", json={**TASK_BODY, "created_by": "alice"})
        assert resp.status_code == 201
        task_id = resp.json()["task"]["task_id"]

        # 客户端在第一条事件之前订阅，只通过推送与补拉获知进展
        gateway = GatewayClient(http_client=client)
        manager = ClientReconciler(gateway)
        reconciler = manager.subscribe(task_id)
        user_queue = await propagator.subscribe_user("alice")

        bob, carol = await asyncio.gather(
            client.post(f"/api/tasks/{task_id}/accept", json={"helper_id": "bob"}),
            client.post(f"/api/tasks/{task_id}/accept", json={"helper_id": "carol"}),
        )
        results = {"bob": bob, "carol": carol}
        winners = [name for name, r in results.items() if r.status_code == 200]
        losers = [name for name, r in results.items() if r.status_code == 409]
        assert len(winners) == 1
        assert len(losers) == 1
        assert results[losers[0]].json()["error"]["code"] == "NO_LONGER_AVAILABLE"
        helper = winners[0]

        resp = await client.post(
            f"/api/tasks/{task_id}/transition",
            json={"actor_id": "alice", "status": "started"},
        )
        assert resp.status_code == 403

        for status in ("started", "on_the_way", "delivered"):
            resp = await client.post(
                f"/api/tasks/{task_id}/transition",
                json={"actor_id": helper, "status": status},
            )
            assert resp.status_code == 200, resp.text

        resp = await client.post(
            f"/api/tasks/{task_id}/transition",
            json={"actor_id": "alice", "status": "completed"},
        )
        assert resp.status_code == 200
        assert resp.json()["task"]["version"] == 5

        resp = await client.get(f"/api/tasks/{task_id}/timeline")
        events = resp.json()["events"]
        assert [e["sequence"] for e in events] == [1, 2, 3, 4, 5]
        assert [e["to_status"] for e in events] == [
            "accepted",
            "started",
            "on_the_way",
            "delivered",
            "completed",
        ]
        assert events[0]["actor_id"] == helper

        resp = await client.post(f"/api/tasks/{task_id}/cancel", json={"actor_id": "alice"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "ILLEGAL_TRANSITION"

        # requester 的用户频道收到全部 5 条，顺序投递
        pushed = []
        while not user_queue.empty():
            pushed.append(user_queue.get_nowait())
        assert [p.sequence for p in pushed] == [1, 2, 3, 4, 5]

        # 只收到最后一条推送也能补齐中间的断档
        await manager.dispatch(pushed[-1])
        assert reconciler.view.status == TaskStatus.COMPLETED
        assert reconciler.view.accepted_by == helper
        assert reconciler.cursor == 5
        assert manager.acknowledge_terminal(task_id) is True

        assert await verify_all(store_group.event_store) == {}
