"""生命周期异常体系

所有返回给调用方的错误都带有可区分的 code，调用方据此分支：
- NO_LONGER_AVAILABLE: 抢单失败，刷新任务列表
- CONFLICT: 乐观重试耗尽，可自动重试一次
- ILLEGAL_TRANSITION: 调用方逻辑缺陷，不要重试
"""

from .models.enums import TaskStatus


class LifecycleError(Exception):
    """生命周期基础异常"""

    code: str = "LIFECYCLE_ERROR"

    def __init__(self, message: str, retryable: bool = False) -> None:
        """
        Args:
            message: 错误描述
            retryable: 调用方是否可以重试
        """
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class TaskNotFoundError(LifecycleError):
    """任务不存在"""

    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id {task_id} does not exist")
        self.task_id = task_id


class AcceptanceError(LifecycleError):
    """接单失败"""


class NoLongerAvailableError(AcceptanceError):
    """任务已被他人接走或不再是 open -- 并发下的预期结果，不是 bug"""

    code = "NO_LONGER_AVAILABLE"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} is no longer available")
        self.task_id = task_id


class AcceptanceNotAuthorizedError(AcceptanceError):
    """发布者试图接自己的任务"""

    code = "NOT_AUTHORIZED"

    def __init__(self, task_id: str, helper_id: str) -> None:
        super().__init__(f"User {helper_id} cannot accept own task {task_id}")
        self.task_id = task_id
        self.helper_id = helper_id


class TransitionError(LifecycleError):
    """状态流转失败"""


class IllegalTransitionError(TransitionError):
    """流转表中不存在该边，绝不会被就近改写成其他合法状态"""

    code = "ILLEGAL_TRANSITION"

    def __init__(self, current_status: TaskStatus, requested_status: TaskStatus) -> None:
        super().__init__(
            f"Cannot transition from {current_status} to {requested_status}"
        )
        self.current_status = current_status
        self.requested_status = requested_status


class TransitionNotAuthorizedError(TransitionError):
    """操作者角色不允许执行该边"""

    code = "NOT_AUTHORIZED"

    def __init__(self, actor_id: str, message: str) -> None:
        super().__init__(message)
        self.actor_id = actor_id


class TransitionConflictError(TransitionError):
    """version 冲突重试耗尽"""

    code = "CONFLICT"

    def __init__(self, task_id: str, attempts: int) -> None:
        super().__init__(
            f"Task {task_id} is being updated concurrently, gave up after {attempts} attempts",
            retryable=True,
        )
        self.task_id = task_id
        self.attempts = attempts


class TimelineIntegrityError(LifecycleError):
    """时间线出现断档或非法边"""

    code = "TIMELINE_INTEGRITY"

    def __init__(self, task_id: str, message: str) -> None:
        super().__init__(f"Timeline of task {task_id} is inconsistent: {message}")
        self.task_id = task_id
