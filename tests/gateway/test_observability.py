"""可观测性与健康检查测试

测试内容：
1. X-Request-ID：自动生成 ULID、每请求唯一、沿用调用方传入值
2. TraceMiddleware 的 task_id 提取
3. /health 与 /ready（含数据库断开时 503）
4. 日志配置与 lifespan 装配
"""

import pytest
from campusrun.gateway.middleware.logging_config import setup_logfire, setup_logging
from campusrun.gateway.middleware.trace_mw import extract_task_id
from httpx import AsyncClient

TASK_ID = "01JTASKTRACE00000000000000"


class TestRequestId:
    async def test_response_has_request_id(self, client: AsyncClient):
        resp = await client.get("/health")
        request_id = resp.headers.get("x-request-id")
        assert request_id is not None
        assert len(request_id) == 26

    async def test_request_ids_unique(self, client: AsyncClient):
        ids = set()
        for _ in range(5):
            resp = await client.get("/health")
            ids.add(resp.headers["x-request-id"])
        assert len(ids) == 5

    async def test_incoming_request_id_echoed(self, client: AsyncClient):
        resp = await client.get("/health", headers={"X-Request-ID": "req-from-mobile-42"})
        assert resp.headers["x-request-id"] == "req-from-mobile-42"

    async def test_error_responses_carry_request_id(self, client: AsyncClient):
        resp = await client.get(f"/api/tasks/{TASK_ID}")
        assert resp.status_code == 404
        assert "x-request-id" in resp.headers


class TestTaskIdExtraction:
    @pytest.mark.parametrize(
        "path",
        [
            f"/api/tasks/{TASK_ID}",
            f"/api/tasks/{TASK_ID}/accept",
            f"/api/tasks/{TASK_ID}/timeline",
            f"/api/stream/task/{TASK_ID}",
        ],
    )
    def test_task_paths(self, path: str):
        assert extract_task_id(path) == TASK_ID

    @pytest.mark.parametrize(
        "path",
        ["/api/tasks", "/health", "/api/stream/user/alice", "/api/tasks/short-id"],
    )
    def test_paths_without_task(self, path: str):
        assert extract_task_id(path) is None


class TestHealth:
    async def test_liveness(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    async def test_readiness(self, client: AsyncClient):
        resp = await client.get("/ready")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ready"
        assert body["checks"]["sqlite"] == "ok"
        assert body["checks"]["wal_mode"] == "ok"
        assert body["checks"]["schema"] == "ok"
        assert isinstance(body["checks"]["disk_space_mb"], int)

    async def test_readiness_db_closed(self, client: AsyncClient, store_group):
        """数据库连接关闭后 /ready 返回 503，且不泄露内部错误信息"""
        await store_group.conn.close()

        resp = await client.get("/ready")
        assert resp.status_code == 503
        body = resp.json()
        assert body["status"] == "not_ready"
        assert body["checks"]["sqlite"] == "unavailable"
        assert body["checks"]["wal_mode"] == "unavailable"
        assert body["checks"]["schema"] == "unavailable"


class TestLoggingSetup:
    @pytest.mark.parametrize("log_format", ["dev", "json"])
    def test_setup_logging_formats(self, monkeypatch, log_format: str):
        monkeypatch.setenv("CAMPUSRUN_LOG_FORMAT", log_format)
        monkeypatch.setenv("CAMPUSRUN_LOG_LEVEL", "not-a-level")
        setup_logging()

    def test_logfire_disabled_by_default(self, monkeypatch):
        monkeypatch.delenv("LOGFIRE_SEND_TO_LOGFIRE", raising=False)
        assert setup_logfire() is False


class TestLifespan:
    async def test_lifespan_wires_state(self, tmp_path, monkeypatch):
        """lifespan 启动时装配 store_group / 策略 / propagator，关闭时释放连接"""
        monkeypatch.setenv("CAMPUSRUN_DB_PATH", str(tmp_path / "lifespan.db"))
        monkeypatch.setenv("CAMPUSRUN_HELPER_CAN_CANCEL", "true")
        monkeypatch.setenv("CAMPUSRUN_SUBSCRIBER_QUEUE_SIZE", "7")
        monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")

        from campusrun.gateway.main import create_app, lifespan

        app = create_app()
        async with lifespan(app):
            assert app.state.store_group is not None
            assert app.state.lifecycle_policy.helper_can_cancel is True
            assert app.state.transition_table.helper_can_cancel is True
            queue = await app.state.propagator.subscribe_user("alice")
            assert queue.maxsize == 7

            cursor = await app.state.store_group.conn.execute("SELECT 1")
            row = await cursor.fetchone()
            assert row[0] == 1

        assert (tmp_path / "lifespan.db").exists()
