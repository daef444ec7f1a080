"""Wire payload 定义

ChangePropagator 推送、timeline 接口返回、客户端 Reconciler 消费的统一格式。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import TERMINAL_STATES, ActorRole, TaskStatus


class StatusChangePayload(BaseModel):
    """状态变更推送 payload"""

    task_id: str
    from_status: TaskStatus
    to_status: TaskStatus
    actor_id: str
    actor_role: ActorRole
    sequence: int = Field(ge=1, description="任务内序号")
    created_at: datetime

    @property
    def is_terminal(self) -> bool:
        """事件是否使任务到达终态"""
        return self.to_status in TERMINAL_STATES
