"""Task Domain Model

tasks 表保存每个任务的当前状态；状态变更只能通过
AcceptanceCoordinator / StatusTransitionService 的条件写入完成，
并与时间线事件在同一事务内提交。
"""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from .enums import Category, TaskStatus, Urgency

# 必须有 helper 的状态；cancelled 可能来自 open，因此不在其中
_HELPER_REQUIRED = frozenset(
    {
        TaskStatus.ACCEPTED,
        TaskStatus.STARTED,
        TaskStatus.ON_THE_WAY,
        TaskStatus.DELIVERED,
        TaskStatus.COMPLETED,
    }
)


class TaskDraft(BaseModel):
    """发布任务时的输入"""

    title: str = Field(min_length=1, max_length=200, description="任务标题")
    description: str = Field(default="", description="任务描述")
    category: Category = Field(description="任务分类")
    store: str = Field(default="", description="取货商家")
    dropoff_address: str = Field(description="送达地址")
    dropoff_instructions: str = Field(default="", description="送达说明")
    urgency: Urgency = Field(default=Urgency.MEDIUM, description="紧急程度")
    reward_cents: int = Field(gt=0, description="酬劳（分）")
    estimated_minutes: int = Field(gt=0, description="预计耗时（分钟）")


class Task(BaseModel):
    """Task 数据模型

    - accepted_by 一旦写入不可变（任务不会被改派）
    - version 每次提交流转 +1，等于时间线最大 sequence
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    status: TaskStatus = Field(default=TaskStatus.OPEN, description="当前状态")
    created_by: str = Field(description="发布者 ID")
    accepted_by: str | None = Field(default=None, description="接单者 ID")
    accepted_at: datetime | None = Field(default=None, description="接单时间")
    accept_code: str | None = Field(default=None, description="5 位交接码")
    version: int = Field(default=0, ge=0, description="乐观并发版本号")

    title: str = Field(description="任务标题")
    description: str = Field(default="")
    category: Category = Field(default=Category.FOOD)
    store: str = Field(default="")
    dropoff_address: str = Field(default="")
    dropoff_instructions: str = Field(default="")
    urgency: Urgency = Field(default=Urgency.MEDIUM)
    reward_cents: int = Field(default=1, gt=0)
    estimated_minutes: int = Field(default=1, gt=0)

    @model_validator(mode="after")
    def _check_helper_invariant(self) -> "Task":
        if self.status == TaskStatus.OPEN and self.accepted_by is not None:
            raise ValueError("open task must not have accepted_by")
        if self.status in _HELPER_REQUIRED and self.accepted_by is None:
            raise ValueError(f"task in status {self.status} requires accepted_by")
        return self

    def is_participant(self, user_id: str) -> bool:
        """user_id 是否为发布者或接单者"""
        return user_id == self.created_by or (
            self.accepted_by is not None and user_id == self.accepted_by
        )

    def participants(self) -> list[str]:
        """发布者 + 接单者（如有）"""
        if self.accepted_by is None:
            return [self.created_by]
        return [self.created_by, self.accepted_by]
