"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭、生命周期策略加载、
ChangePropagator 初始化、中间件与路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from campusrun.core.config import get_db_path, load_lifecycle_policy
from campusrun.core.models import TransitionTable
from campusrun.core.store import create_store_group
from fastapi import FastAPI

from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import health, lifecycle, stream, tasks
from .services.propagator import ChangePropagator

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 与策略，关闭时清理连接"""
    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    app.state.store_group = store_group

    policy = load_lifecycle_policy()
    app.state.lifecycle_policy = policy
    app.state.transition_table = TransitionTable(
        helper_can_cancel=policy.helper_can_cancel
    )
    app.state.propagator = ChangePropagator(queue_maxsize=policy.subscriber_queue_size)

    log.info(
        "gateway_started",
        db_path=db_path,
        helper_can_cancel=policy.helper_can_cancel,
        max_transition_attempts=policy.max_transition_attempts,
    )

    yield

    # 关闭：清理数据库连接
    if getattr(app.state, "store_group", None):
        await app.state.store_group.conn.close()
    log.info("gateway_stopped")


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="campusrun Gateway",
        version="0.1.0",
        description="校园跑腿任务生命周期协调 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging，Logging 在外层）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()
    setup_logfire(app)

    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(lifecycle.router, tags=["lifecycle"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
