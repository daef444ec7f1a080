"""条件写入 + 时间线追加的原子事务封装

每个写操作使用独立连接并以 BEGIN IMMEDIATE 开启事务：
SQLite 写锁与 UPDATE ... WHERE 条件共同构成 compare-and-swap，
进程内不需要任何锁或队列。事务体抛出任何异常都会回滚。
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

import aiosqlite
from ulid import ULID

from ..models.enums import ActorRole, TaskStatus
from ..models.event import TaskStatusEvent
from .event_store import SqliteEventStore
from .sqlite_init import configure_connection
from .task_store import SqliteTaskStore


class WriteScope:
    """一次写事务内可用的 Store 实例（共享同一连接）"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.task_store = SqliteTaskStore(conn)
        self.event_store = SqliteEventStore(conn)


@asynccontextmanager
async def write_transaction(db_path: str) -> AsyncIterator[WriteScope]:
    """打开独立连接并开启 IMMEDIATE 写事务

    正常退出时提交，异常时回滚并继续抛出。

    Args:
        db_path: SQLite 数据库文件路径
    """
    conn = await aiosqlite.connect(db_path, isolation_level=None)
    try:
        await configure_connection(conn)
        await conn.execute("BEGIN IMMEDIATE")
        try:
            yield WriteScope(conn)
        except BaseException:
            await conn.rollback()
            raise
        await conn.commit()
    finally:
        await conn.close()


def _build_event(
    task_id: str,
    sequence: int,
    from_status: TaskStatus,
    to_status: TaskStatus,
    actor_id: str,
    actor_role: ActorRole,
    created_at: datetime,
) -> TaskStatusEvent:
    return TaskStatusEvent(
        event_id=str(ULID()),
        task_id=task_id,
        sequence=sequence,
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        actor_role=actor_role,
        created_at=created_at,
    )


async def accept_and_append_event(
    scope: WriteScope,
    task_id: str,
    helper_id: str,
    accept_code: str,
    now: datetime,
) -> TaskStatusEvent | None:
    """open -> accepted 条件写入，并在同一事务内追加 accepted 事件

    Returns:
        已写入的事件；条件不满足（0 行受影响）时返回 None
    """
    affected = await scope.task_store.accept_if_open(
        task_id=task_id,
        helper_id=helper_id,
        accepted_at=now.isoformat(),
        accept_code=accept_code,
    )
    if affected == 0:
        return None

    sequence = await scope.event_store.get_next_sequence(task_id)
    event = _build_event(
        task_id,
        sequence,
        TaskStatus.OPEN,
        TaskStatus.ACCEPTED,
        helper_id,
        ActorRole.HELPER,
        now,
    )
    await scope.event_store.append_event(event)
    return event


async def transition_and_append_event(
    scope: WriteScope,
    task_id: str,
    expected_version: int,
    from_status: TaskStatus,
    to_status: TaskStatus,
    actor_id: str,
    actor_role: ActorRole,
    now: datetime,
) -> TaskStatusEvent | None:
    """按 version 条件推进状态，并在同一事务内追加流转事件

    Returns:
        已写入的事件；version 不匹配时返回 None
    """
    affected = await scope.task_store.update_status_if_version(
        task_id=task_id,
        expected_version=expected_version,
        new_status=to_status,
        updated_at=now.isoformat(),
    )
    if affected == 0:
        return None

    sequence = await scope.event_store.get_next_sequence(task_id)
    event = _build_event(
        task_id,
        sequence,
        from_status,
        to_status,
        actor_id,
        actor_role,
        now,
    )
    await scope.event_store.append_event(event)
    return event
