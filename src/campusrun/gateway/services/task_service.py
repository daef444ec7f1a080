"""TaskService -- 任务发布与查询

发布流程：
1. 检查 idempotency_key 去重
2. 构建 open 状态的 Task（version = 0，时间线为空）
3. 单事务写入
查询包括任务列表（开放任务 / 我接的 / 我发的）、详情与时间线。
"""

from datetime import UTC, datetime

import aiosqlite
import structlog
from campusrun.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from campusrun.core.exceptions import TaskNotFoundError
from campusrun.core.models import Task, TaskDraft, TaskStatus, TaskStatusEvent
from campusrun.core.store import StoreGroup
from ulid import ULID

log = structlog.get_logger()


class TaskService:
    """任务业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def create_task(
        self,
        created_by: str,
        draft: TaskDraft,
        idempotency_key: str | None = None,
    ) -> tuple[Task, bool]:
        """发布任务

        Args:
            created_by: 发布者 ID
            draft: 任务内容
            idempotency_key: 客户端生成的幂等键（可选）

        Returns:
            (task, created) -- created=False 表示幂等键命中
        """
        if idempotency_key:
            existing = await self._stores.task_store.find_by_idempotency_key(
                idempotency_key
            )
            if existing is not None:
                return existing, False

        now = datetime.now(UTC)
        task = Task(
            task_id=str(ULID()),
            created_at=now,
            updated_at=now,
            status=TaskStatus.OPEN,
            created_by=created_by,
            version=0,
            **draft.model_dump(),
        )

        try:
            async with self._stores.transaction() as scope:
                await scope.task_store.create_task(task, idempotency_key)
        except aiosqlite.IntegrityError as e:
            if idempotency_key and self._is_idempotency_conflict(e):
                # 并发重复请求：回查幂等键并返回已存在的任务
                existing = await self._stores.task_store.find_by_idempotency_key(
                    idempotency_key
                )
                if existing is not None:
                    return existing, False
            raise

        log.info(
            "task_created",
            task_id=task.task_id,
            created_by=created_by,
            category=task.category.value,
            reward_cents=task.reward_cents,
        )
        return task, True

    async def get_task(self, task_id: str) -> Task:
        """查询任务详情

        Raises:
            TaskNotFoundError: 任务不存在
        """
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        created_by: str | None = None,
        accepted_by: str | None = None,
        exclude_created_by: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[Task]:
        """查询任务列表

        常用组合：
        - 开放任务：status=open, exclude_created_by=自己
        - 我接的：accepted_by=自己
        - 我发的：created_by=自己
        """
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        return await self._stores.task_store.list_tasks(
            status=status,
            created_by=created_by,
            accepted_by=accepted_by,
            exclude_created_by=exclude_created_by,
            limit=limit,
            offset=max(0, offset),
        )

    async def timeline(self, task_id: str, since_sequence: int = 0) -> list[TaskStatusEvent]:
        """读取任务时间线中 sequence > since_sequence 的事件"""
        await self.get_task(task_id)
        return await self._stores.event_store.read_from(task_id, since_sequence)

    @staticmethod
    def _is_idempotency_conflict(error: aiosqlite.IntegrityError) -> bool:
        """判断 IntegrityError 是否由 idempotency_key 唯一索引冲突触发"""
        return "idempotency_key" in str(error)
