"""TimelineStore SQLite 实现

时间线表 append-only：只允许插入，不允许更新或删除。
sequence 同一 task 内从 1 开始连续递增，(task_id, sequence) 唯一。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import ActorRole, TaskStatus
from ..models.event import TaskStatusEvent

_EVENT_COLUMNS = (
    "event_id, task_id, sequence, from_status, to_status, actor_id, actor_role, created_at"
)
_PREFIXED_COLUMNS = ", ".join(f"e.{c.strip()}" for c in _EVENT_COLUMNS.split(","))


class SqliteEventStore:
    """TimelineStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_event(self, event: TaskStatusEvent) -> None:
        """追加事件（append-only）

        注意：此方法不自动提交事务，需由调用方在状态更新的同一事务内调用。
        """
        await self._conn.execute(
            f"""
            INSERT INTO task_status_events ({_EVENT_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.event_id,
                event.task_id,
                event.sequence,
                event.from_status.value,
                event.to_status.value,
                event.actor_id,
                event.actor_role.value,
                event.created_at.isoformat(),
            ),
        )

    async def read_from(
        self,
        task_id: str,
        since_sequence: int = 0,
    ) -> list[TaskStatusEvent]:
        """查询 sequence > since_sequence 的事件，按 sequence 正序

        用于时间线展示和客户端断档重放。
        """
        cursor = await self._conn.execute(
            f"""
            SELECT {_EVENT_COLUMNS} FROM task_status_events
            WHERE task_id = ? AND sequence > ?
            ORDER BY sequence ASC
            """,
            (task_id, since_sequence),
        )
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    async def read_for_participant(
        self,
        user_id: str,
        after_task_id: str,
        after_sequence: int,
    ) -> list[TaskStatusEvent]:
        """查询 user_id 作为发布者或接单者的任务中，
        提交顺序位于游标事件 (after_task_id, after_sequence) 之后的事件

        写事务串行化，rowid 顺序即提交顺序。游标事件不存在时返回空列表。
        """
        cursor = await self._conn.execute(
            f"""
            SELECT {_PREFIXED_COLUMNS}
            FROM task_status_events e
            JOIN tasks t ON t.task_id = e.task_id
            WHERE (t.created_by = ? OR t.accepted_by = ?)
              AND e.rowid > (
                  SELECT rowid FROM task_status_events
                  WHERE task_id = ? AND sequence = ?
              )
            ORDER BY e.rowid ASC
            """,
            (user_id, user_id, after_task_id, after_sequence),
        )
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    async def get_next_sequence(self, task_id: str) -> int:
        """获取指定任务的下一个 sequence（MAX+1）

        在写事务内调用以确保原子性。
        """
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(sequence), 0) FROM task_status_events WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        return (row[0] if row else 0) + 1

    async def get_all_events(self) -> list[TaskStatusEvent]:
        """查询所有事件，按 task_id 和 sequence 排序（用于 Projection 重建）"""
        cursor = await self._conn.execute(
            f"SELECT {_EVENT_COLUMNS} FROM task_status_events ORDER BY task_id, sequence ASC"
        )
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> TaskStatusEvent:
        """将数据库行转换为 TaskStatusEvent 模型"""
        return TaskStatusEvent(
            event_id=row[0],
            task_id=row[1],
            sequence=row[2],
            from_status=TaskStatus(row[3]),
            to_status=TaskStatus(row[4]),
            actor_id=row[5],
            actor_role=ActorRole(row[6]),
            created_at=datetime.fromisoformat(row[7]),
        )
