"""枚举定义

包含 TaskStatus 状态机、ActorRole、任务分类 Category 与紧急度 Urgency，
以及 TERMINAL_STATES 终态集合。合法流转见 transitions 模块。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态机"""

    OPEN = "open"
    ACCEPTED = "accepted"

    # 执行子状态（helper 推进）
    STARTED = "started"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"

    # 终态
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATES: frozenset[TaskStatus] = frozenset(
    {
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    }
)


class ActorRole(StrEnum):
    """操作者角色 -- 由 Task 记录推导，不信任调用方声明"""

    REQUESTER = "requester"
    HELPER = "helper"


class Category(StrEnum):
    """任务分类"""

    FOOD = "food"
    GROCERY = "grocery"
    COFFEE = "coffee"


class Urgency(StrEnum):
    """紧急程度"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
