"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性、WAL 模式、表结构、磁盘空间。
"""

import shutil
from pathlib import Path

import structlog
from campusrun.core.store.sqlite_init import verify_wal_mode
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()

_REQUIRED_TABLES = ("tasks", "task_status_events")


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查 -- 验证核心依赖可用性

    检查项：
    1. sqlite: 数据库连通性
    2. wal_mode: 读连接是否处于 WAL 模式
    3. schema: tasks / task_status_events 表存在
    4. disk_space_mb: 数据库所在磁盘剩余空间
    """
    checks = {}
    all_ok = True
    store_group = request.app.state.store_group

    # 1. SQLite 连通性检查
    try:
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
    except Exception as e:
        log.warning("readiness_sqlite_failed", error_type=type(e).__name__, error=str(e))
        checks["sqlite"] = "unavailable"
        all_ok = False

    # 2. WAL 模式检查
    try:
        if await verify_wal_mode(store_group.conn):
            checks["wal_mode"] = "ok"
        else:
            checks["wal_mode"] = "error: journal_mode is not wal"
            all_ok = False
    except Exception as e:
        log.warning("readiness_wal_check_failed", error_type=type(e).__name__)
        checks["wal_mode"] = "unavailable"
        all_ok = False

    # 3. 任务表与时间线表已初始化
    try:
        cursor = await store_group.conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name IN (?, ?)",
            _REQUIRED_TABLES,
        )
        found = {row[0] for row in await cursor.fetchall()}
        missing = sorted(set(_REQUIRED_TABLES) - found)
        if missing:
            checks["schema"] = f"error: missing {', '.join(missing)}"
            all_ok = False
        else:
            checks["schema"] = "ok"
    except Exception as e:
        log.warning("readiness_schema_check_failed", error_type=type(e).__name__)
        checks["schema"] = "unavailable"
        all_ok = False

    # 4. 磁盘空间检查
    try:
        db_dir = Path(store_group.db_path).resolve().parent
        disk_usage = shutil.disk_usage(db_dir)
        checks["disk_space_mb"] = disk_usage.free // (1024 * 1024)
    except OSError:
        checks["disk_space_mb"] = 0
        all_ok = False

    status_code = 200 if all_ok else 503
    status_text = "ready" if all_ok else "not_ready"

    return JSONResponse(
        status_code=status_code,
        content={
            "status": status_text,
            "checks": checks,
        },
    )
