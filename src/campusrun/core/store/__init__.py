"""campusrun Core Store -- SQLite 持久化实现

提供工厂函数创建 Store 实例组：共享读连接 + 按需打开的写事务。
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from .event_store import SqliteEventStore
from .sqlite_init import init_db
from .task_store import SqliteTaskStore
from .transaction import (
    WriteScope,
    accept_and_append_event,
    transition_and_append_event,
    write_transaction,
)


class StoreGroup:
    """Store 实例组

    conn 为共享读连接（WAL 下读写互不阻塞）；
    所有写操作通过 transaction() 打开独立连接。
    """

    def __init__(self, conn: aiosqlite.Connection, db_path: str) -> None:
        self.conn = conn
        self.db_path = db_path
        self.task_store = SqliteTaskStore(conn)
        self.event_store = SqliteEventStore(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[WriteScope]:
        """打开一次写事务"""
        async with write_transaction(self.db_path) as scope:
            yield scope


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn, db_path=db_path)


__all__ = [
    "StoreGroup",
    "WriteScope",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteEventStore",
    "init_db",
    "write_transaction",
    "accept_and_append_event",
    "transition_and_append_event",
]
