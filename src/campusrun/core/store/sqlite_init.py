"""SQLite 数据库初始化

PRAGMA 配置 + 两张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# 写事务等待存储锁的上限（毫秒）
BUSY_TIMEOUT_MS = 5000

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id              TEXT PRIMARY KEY,
    created_at           TEXT NOT NULL,
    updated_at           TEXT NOT NULL,
    status               TEXT NOT NULL DEFAULT 'open',
    created_by           TEXT NOT NULL,
    accepted_by          TEXT,
    accepted_at          TEXT,
    accept_code          TEXT,
    version              INTEGER NOT NULL DEFAULT 0,
    title                TEXT NOT NULL DEFAULT '',
    description          TEXT NOT NULL DEFAULT '',
    category             TEXT NOT NULL DEFAULT 'food',
    store                TEXT NOT NULL DEFAULT '',
    dropoff_address      TEXT NOT NULL DEFAULT '',
    dropoff_instructions TEXT NOT NULL DEFAULT '',
    urgency              TEXT NOT NULL DEFAULT 'medium',
    reward_cents         INTEGER NOT NULL DEFAULT 1 CHECK (reward_cents > 0),
    estimated_minutes    INTEGER NOT NULL DEFAULT 1 CHECK (estimated_minutes > 0),
    idempotency_key      TEXT
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_by ON tasks(created_by);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_accepted_by ON tasks(accepted_by);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON tasks(created_at DESC);",
    # 幂等键唯一约束（仅对非 NULL 值生效）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_idempotency_key "
        "ON tasks(idempotency_key) WHERE idempotency_key IS NOT NULL;"
    ),
]

# task_status_events 表 DDL（时间线，append-only）
_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS task_status_events (
    event_id     TEXT PRIMARY KEY,
    task_id      TEXT NOT NULL,
    sequence     INTEGER NOT NULL CHECK (sequence >= 1),
    from_status  TEXT NOT NULL,
    to_status    TEXT NOT NULL,
    actor_id     TEXT NOT NULL,
    actor_role   TEXT NOT NULL,
    created_at   TEXT NOT NULL,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_EVENTS_INDEXES = [
    # 任务内序号唯一约束（确保 sequence 不重复）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_task_status_events_seq "
        "ON task_status_events(task_id, sequence);"
    ),
    (
        "CREATE INDEX IF NOT EXISTS idx_task_status_events_created_at "
        "ON task_status_events(task_id, created_at);"
    ),
]

# 禁止更新/删除时间线
_EVENTS_TRIGGERS = [
    """
    CREATE TRIGGER IF NOT EXISTS trg_task_status_events_no_update
    BEFORE UPDATE ON task_status_events
    BEGIN
        SELECT RAISE(ABORT, 'task_status_events is append-only');
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_task_status_events_no_delete
    BEFORE DELETE ON task_status_events
    BEGIN
        SELECT RAISE(ABORT, 'task_status_events is append-only');
    END;
    """,
]


async def configure_connection(conn: aiosqlite.Connection) -> None:
    """每个连接都需要的 PRAGMA（外键、busy_timeout）"""
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS};")


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await configure_connection(conn)

    # 创建表
    await conn.execute(_TASKS_DDL)
    await conn.execute(_EVENTS_DDL)

    # 创建索引与触发器
    for sql in _TASKS_INDEXES + _EVENTS_INDEXES + _EVENTS_TRIGGERS:
        await conn.execute(sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
