"""TaskStatusEvent Domain Model

时间线表 append-only，不允许更新或删除。
event_id 使用 ULID 格式，时间有序。
sequence 同一 task 内从 1 开始严格连续递增。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import ActorRole, TaskStatus
from .payloads import StatusChangePayload


class TaskStatusEvent(BaseModel):
    """时间线事件 -- 每次提交的状态流转对应一条"""

    event_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    task_id: str = Field(description="关联的 Task ID")
    sequence: int = Field(ge=1, description="任务内序号，从 1 开始连续递增")
    from_status: TaskStatus
    to_status: TaskStatus
    actor_id: str = Field(description="操作者 ID")
    actor_role: ActorRole = Field(description="操作者角色")
    created_at: datetime = Field(description="事件时间戳")

    def to_payload(self) -> StatusChangePayload:
        """转换为推送给订阅者的 wire payload"""
        return StatusChangePayload(
            task_id=self.task_id,
            from_status=self.from_status,
            to_status=self.to_status,
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            sequence=self.sequence,
            created_at=self.created_at,
        )
