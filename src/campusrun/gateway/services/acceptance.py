"""AcceptanceCoordinator -- 抢单仲裁

一次条件写入即为仲裁点：
    UPDATE tasks SET status='accepted', accepted_by=? ...
    WHERE task_id=? AND status='open' AND created_by != ?
并发调用中恰好一个看到 1 行受影响，其余看到 0 行并立即失败，
不加锁、不排队、不重试。accepted 事件与状态在同一事务内提交，
提交后才广播。
"""

import secrets
from datetime import UTC, datetime

import structlog
from campusrun.core.config import ACCEPT_CODE_MAX, ACCEPT_CODE_MIN
from campusrun.core.exceptions import (
    AcceptanceNotAuthorizedError,
    NoLongerAvailableError,
    TaskNotFoundError,
)
from campusrun.core.models import Task
from campusrun.core.store import StoreGroup, accept_and_append_event

from .publishing import publish_committed

log = structlog.get_logger()


def generate_accept_code() -> str:
    """生成 5 位数字交接码"""
    return str(secrets.randbelow(ACCEPT_CODE_MAX - ACCEPT_CODE_MIN + 1) + ACCEPT_CODE_MIN)


class AcceptanceCoordinator:
    """抢单协调器"""

    def __init__(self, store_group: StoreGroup, propagator=None) -> None:
        self._stores = store_group
        self._propagator = propagator

    async def accept(self, task_id: str, helper_id: str) -> Task:
        """helper 接单

        超时后的重试是安全的：要么此前已成功（重试得到 NoLongerAvailable），
        要么此前未成功（重试恰好成功一次）。

        Returns:
            接单后的 Task

        Raises:
            TaskNotFoundError: 任务不存在
            AcceptanceNotAuthorizedError: 发布者接自己的任务
            NoLongerAvailableError: 任务已不是 open
        """
        now = datetime.now(UTC)
        async with self._stores.transaction() as scope:
            event = await accept_and_append_event(
                scope,
                task_id=task_id,
                helper_id=helper_id,
                accept_code=generate_accept_code(),
                now=now,
            )
            task = await scope.task_store.get_task(task_id)

        if event is None:
            # 0 行受影响：区分失败原因（事务内读取，无副作用）
            if task is None:
                raise TaskNotFoundError(task_id)
            if task.created_by == helper_id:
                raise AcceptanceNotAuthorizedError(task_id, helper_id)
            log.info(
                "acceptance_lost",
                task_id=task_id,
                helper_id=helper_id,
                current_status=task.status.value,
            )
            raise NoLongerAvailableError(task_id)

        log.info(
            "task_accepted",
            task_id=task_id,
            helper_id=helper_id,
            sequence=event.sequence,
        )
        await publish_committed(self._propagator, event, task)
        return task
