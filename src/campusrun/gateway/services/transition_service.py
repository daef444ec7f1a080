"""StatusTransitionService -- 接单之后的状态流转

每次尝试都是一轮 read -> validate -> conditional write：
1. 读取 Task（status / version / 参与者）
2. 由 Task 记录推导操作者角色，并用流转表校验
3. UPDATE ... WHERE version = ?，同一事务内追加时间线事件
0 行受影响说明并发流转已抢先提交，重新读取后再试，
超过 max_attempts 次返回 CONFLICT。提交后才广播。
"""

from datetime import UTC, datetime

import structlog
from campusrun.core.exceptions import (
    IllegalTransitionError,
    TaskNotFoundError,
    TransitionConflictError,
    TransitionNotAuthorizedError,
)
from campusrun.core.models import (
    TERMINAL_STATES,
    ActorRole,
    Task,
    TaskStatus,
    TransitionTable,
)
from campusrun.core.store import StoreGroup, transition_and_append_event

from .publishing import publish_committed

log = structlog.get_logger()


def derive_role(task: Task, actor_id: str) -> ActorRole | None:
    """根据 Task 记录推导操作者角色，非参与者返回 None"""
    if not task.is_participant(actor_id):
        return None
    if actor_id == task.created_by:
        return ActorRole.REQUESTER
    return ActorRole.HELPER


class StatusTransitionService:
    """状态流转服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        propagator=None,
        table: TransitionTable | None = None,
        max_attempts: int = 3,
    ) -> None:
        self._stores = store_group
        self._propagator = propagator
        self._table = table or TransitionTable()
        self._max_attempts = max_attempts

    async def transition(
        self,
        task_id: str,
        actor_id: str,
        requested_status: TaskStatus,
        actor_role: ActorRole | None = None,
    ) -> Task:
        """推进任务状态

        Args:
            task_id: 任务 ID
            actor_id: 操作者 ID
            requested_status: 目标状态
            actor_role: 调用方声明的角色；仅用于核对，与记录不符时拒绝

        Returns:
            流转后的 Task

        Raises:
            TaskNotFoundError: 任务不存在
            IllegalTransitionError: 当前状态不存在到目标状态的边（含终态）
            TransitionNotAuthorizedError: 操作者不是参与者或角色不允许
            TransitionConflictError: 乐观重试耗尽
        """
        requested = TaskStatus(requested_status)
        claimed_role = ActorRole(actor_role) if actor_role is not None else None

        for attempt in range(1, self._max_attempts + 1):
            task = await self._stores.task_store.get_task(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)

            role = self._authorize(task, actor_id, requested, claimed_role)

            now = datetime.now(UTC)
            async with self._stores.transaction() as scope:
                event = await transition_and_append_event(
                    scope,
                    task_id=task_id,
                    expected_version=task.version,
                    from_status=task.status,
                    to_status=requested,
                    actor_id=actor_id,
                    actor_role=role,
                    now=now,
                )
                updated = await scope.task_store.get_task(task_id) if event else None

            if event is not None:
                log.info(
                    "task_status_transitioned",
                    task_id=task_id,
                    from_status=task.status.value,
                    to_status=requested.value,
                    actor_id=actor_id,
                    actor_role=role.value,
                    sequence=event.sequence,
                )
                await publish_committed(self._propagator, event, updated)
                return updated

            log.warning(
                "transition_version_conflict",
                task_id=task_id,
                expected_version=task.version,
                attempt=attempt,
                max_attempts=self._max_attempts,
            )

        log.error(
            "transition_attempts_exhausted",
            task_id=task_id,
            requested_status=requested.value,
            attempts=self._max_attempts,
        )
        raise TransitionConflictError(task_id, self._max_attempts)

    async def cancel(self, task_id: str, actor_id: str) -> Task:
        """取消任务（transition 到 cancelled 的便捷入口）"""
        return await self.transition(task_id, actor_id, TaskStatus.CANCELLED)

    def _authorize(
        self,
        task: Task,
        actor_id: str,
        requested: TaskStatus,
        claimed_role: ActorRole | None,
    ) -> ActorRole:
        """校验并返回操作者角色

        顺序：参与者身份 -> 边是否存在 -> 声明角色核对 -> 角色是否允许该边
        """
        role = derive_role(task, actor_id)
        if role is None:
            raise TransitionNotAuthorizedError(
                actor_id, f"User {actor_id} is not a participant of task {task.task_id}"
            )

        # 接单只能走 AcceptanceCoordinator 的条件写入
        if (
            task.status in TERMINAL_STATES
            or requested == TaskStatus.ACCEPTED
            or not self._table.edge_exists(task.status, requested)
        ):
            raise IllegalTransitionError(task.status, requested)

        if claimed_role is not None and claimed_role != role:
            raise TransitionNotAuthorizedError(
                actor_id,
                f"User {actor_id} is the {role.value} of task {task.task_id}, "
                f"not the {claimed_role.value}",
            )

        if not self._table.is_legal(task.status, requested, role):
            raise TransitionNotAuthorizedError(
                actor_id,
                f"{role.value} may not move task from {task.status.value} "
                f"to {requested.value}",
            )
        return role
