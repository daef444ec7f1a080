"""campusrun Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    TERMINAL_STATES,
    ActorRole,
    Category,
    TaskStatus,
    Urgency,
)
from .event import TaskStatusEvent
from .payloads import StatusChangePayload
from .task import Task, TaskDraft
from .transitions import VALID_TRANSITIONS, TransitionTable, is_legal

__all__ = [
    # 枚举
    "TaskStatus",
    "ActorRole",
    "Category",
    "Urgency",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "TransitionTable",
    "is_legal",
    # Task
    "Task",
    "TaskDraft",
    # 时间线
    "TaskStatusEvent",
    "StatusChangePayload",
]
