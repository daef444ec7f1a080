"""TaskStore SQLite 实现

状态相关的写入只有两个条件更新（accept_if_open / update_status_if_version），
返回受影响行数，由调用方在同一事务内据此决定是否追加时间线事件。
"""

from datetime import datetime

import aiosqlite

from ..models.enums import TaskStatus
from ..models.task import Task

_TASK_COLUMNS = (
    "task_id, created_at, updated_at, status, created_by, accepted_by, "
    "accepted_at, accept_code, version, title, description, category, store, "
    "dropoff_address, dropoff_instructions, urgency, reward_cents, estimated_minutes"
)


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task, idempotency_key: str | None = None) -> None:
        """创建任务记录（不自动提交）"""
        await self._conn.execute(
            f"""
            INSERT INTO tasks ({_TASK_COLUMNS}, idempotency_key)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.task_id,
                task.created_at.isoformat(),
                task.updated_at.isoformat(),
                task.status.value,
                task.created_by,
                task.accepted_by,
                task.accepted_at.isoformat() if task.accepted_at else None,
                task.accept_code,
                task.version,
                task.title,
                task.description,
                task.category.value,
                task.store,
                task.dropoff_address,
                task.dropoff_instructions,
                task.urgency.value,
                task.reward_cents,
                task.estimated_minutes,
                idempotency_key,
            ),
        )

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def find_by_idempotency_key(self, key: str) -> Task | None:
        """根据幂等键查询已创建的任务"""
        cursor = await self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE idempotency_key = ? LIMIT 1",
            (key,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        created_by: str | None = None,
        accepted_by: str | None = None,
        exclude_created_by: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Task]:
        """查询任务列表，按 created_at 倒序

        过滤条件全部可选，组合使用时为 AND 关系。
        """
        clauses: list[str] = []
        params: list = []
        if status is not None:
            clauses.append("status = ?")
            params.append(TaskStatus(status).value)
        if created_by is not None:
            clauses.append("created_by = ?")
            params.append(created_by)
        if accepted_by is not None:
            clauses.append("accepted_by = ?")
            params.append(accepted_by)
        if exclude_created_by is not None:
            clauses.append("created_by != ?")
            params.append(exclude_created_by)

        sql = f"SELECT {_TASK_COLUMNS} FROM tasks"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, task_id DESC"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def list_task_ids(self) -> list[str]:
        """全部任务 ID（用于 Projection 重建）"""
        cursor = await self._conn.execute("SELECT task_id FROM tasks ORDER BY task_id")
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def accept_if_open(
        self,
        task_id: str,
        helper_id: str,
        accepted_at: str,
        accept_code: str,
    ) -> int:
        """条件写入：仅当任务仍为 open 且 helper 不是发布者时接单

        Returns:
            受影响行数（0 或 1）
        """
        cursor = await self._conn.execute(
            """
            UPDATE tasks
            SET status = ?, accepted_by = ?, accepted_at = ?, accept_code = ?,
                version = version + 1, updated_at = ?
            WHERE task_id = ? AND status = ? AND created_by != ?
            """,
            (
                TaskStatus.ACCEPTED.value,
                helper_id,
                accepted_at,
                accept_code,
                accepted_at,
                task_id,
                TaskStatus.OPEN.value,
                helper_id,
            ),
        )
        return cursor.rowcount

    async def update_status_if_version(
        self,
        task_id: str,
        expected_version: int,
        new_status: TaskStatus,
        updated_at: str,
    ) -> int:
        """条件写入：仅当 version 未变化时推进状态

        Returns:
            受影响行数（0 表示并发流转已抢先提交）
        """
        cursor = await self._conn.execute(
            """
            UPDATE tasks
            SET status = ?, version = version + 1, updated_at = ?
            WHERE task_id = ? AND version = ?
            """,
            (TaskStatus(new_status).value, updated_at, task_id, expected_version),
        )
        return cursor.rowcount

    async def overwrite_projection(
        self,
        task_id: str,
        status: TaskStatus,
        accepted_by: str | None,
        version: int,
    ) -> None:
        """覆盖状态投影（仅 Projection 重建使用）"""
        await self._conn.execute(
            """
            UPDATE tasks SET status = ?, accepted_by = ?, version = ?
            WHERE task_id = ?
            """,
            (TaskStatus(status).value, accepted_by, version, task_id),
        )

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            task_id=row[0],
            created_at=datetime.fromisoformat(row[1]),
            updated_at=datetime.fromisoformat(row[2]),
            status=row[3],
            created_by=row[4],
            accepted_by=row[5],
            accepted_at=datetime.fromisoformat(row[6]) if row[6] else None,
            accept_code=row[7],
            version=row[8],
            title=row[9],
            description=row[10],
            category=row[11],
            store=row[12],
            dropoff_address=row[13],
            dropoff_instructions=row[14],
            urgency=row[15],
            reward_cents=row[16],
            estimated_minutes=row[17],
        )
