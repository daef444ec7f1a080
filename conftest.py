"""全局 pytest 配置 -- 临时 SQLite 数据库与 Store fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio
from campusrun.core.models import TaskDraft
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "test.db"


@pytest_asyncio.fixture
async def db_conn(tmp_db_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """提供已初始化的临时 SQLite 数据库连接"""
    from campusrun.core.store.sqlite_init import init_db

    conn = await aiosqlite.connect(str(tmp_db_path))
    await init_db(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path):
    """提供基于临时数据库的 StoreGroup"""
    from campusrun.core.store import create_store_group

    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.conn.close()


@pytest.fixture
def make_draft():
    """构造合法任务草稿的工厂"""

    def _make(**overrides) -> TaskDraft:
        values = {
            "title": "帮带一杯冰美式",
            "description": "图书馆三楼靠窗",
            "category": "coffee",
            "store": "瑞幸 二食堂店",
            "dropoff_address": "图书馆 3F",
            "reward_cents": 500,
            "estimated_minutes": 20,
        }
        values.update(overrides)
        return TaskDraft(**values)

    return _make


@pytest.fixture
def propagator():
    """提供 ChangePropagator 实例"""
    from campusrun.gateway.services.propagator import ChangePropagator

    return ChangePropagator()


@pytest_asyncio.fixture
async def gateway_app(tmp_db_path: Path, store_group, propagator, monkeypatch):
    """创建测试用 FastAPI app

    ASGITransport 不触发 lifespan，app.state 在此手动装配。
    """
    monkeypatch.setenv("CAMPUSRUN_DB_PATH", str(tmp_db_path))
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")

    from campusrun.core.config import LifecyclePolicy
    from campusrun.core.models import TransitionTable
    from campusrun.gateway.main import create_app

    app = create_app()
    policy = LifecyclePolicy()
    app.state.store_group = store_group
    app.state.propagator = propagator
    app.state.lifecycle_policy = policy
    app.state.transition_table = TransitionTable(helper_can_cancel=policy.helper_can_cancel)
    yield app


@pytest_asyncio.fixture
async def client(gateway_app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=gateway_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette 的退出事件绑定在首次使用的事件循环上，每个测试重置"""
    from sse_starlette.sse import AppStatus

    AppStatus.should_exit_event = None
    yield
