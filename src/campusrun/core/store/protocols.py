"""Store Protocol 接口定义

定义 TaskStore、TimelineStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from typing import Protocol

from ..models.enums import TaskStatus
from ..models.event import TaskStatusEvent
from ..models.task import Task


class TaskStore(Protocol):
    """Task 存储接口"""

    async def create_task(self, task: Task, idempotency_key: str | None = None) -> None:
        """创建任务记录"""
        ...

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        ...

    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        created_by: str | None = None,
        accepted_by: str | None = None,
        exclude_created_by: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Task]:
        """查询任务列表"""
        ...

    async def accept_if_open(
        self,
        task_id: str,
        helper_id: str,
        accepted_at: str,
        accept_code: str,
    ) -> int:
        """open -> accepted 条件写入，返回受影响行数"""
        ...

    async def update_status_if_version(
        self,
        task_id: str,
        expected_version: int,
        new_status: TaskStatus,
        updated_at: str,
    ) -> int:
        """按 version 条件推进状态，返回受影响行数"""
        ...


class TimelineStore(Protocol):
    """时间线存储接口

    append-only：只允许插入，不允许更新或删除。
    """

    async def append_event(self, event: TaskStatusEvent) -> None:
        """追加事件（仅在状态写入的事务内调用）"""
        ...

    async def read_from(
        self,
        task_id: str,
        since_sequence: int = 0,
    ) -> list[TaskStatusEvent]:
        """查询 sequence > since_sequence 的事件"""
        ...

    async def read_for_participant(
        self,
        user_id: str,
        after_task_id: str,
        after_sequence: int,
    ) -> list[TaskStatusEvent]:
        """查询参与者相关任务中位于游标事件之后提交的事件"""
        ...

    async def get_next_sequence(self, task_id: str) -> int:
        """获取指定任务的下一个 sequence（MAX+1）"""
        ...
