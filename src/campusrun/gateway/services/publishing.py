"""已提交事件的发布封装

写入已经持久化之后才调用；发布失败只记录日志，绝不向调用方抛出。
"""

import structlog
from campusrun.core.models.event import TaskStatusEvent
from campusrun.core.models.task import Task

log = structlog.get_logger()


async def publish_committed(propagator, event: TaskStatusEvent, task: Task | None) -> None:
    """把已提交事件交给 ChangePropagator"""
    if propagator is None:
        return
    participants = task.participants() if task is not None else []
    try:
        await propagator.publish(event, participants)
    except Exception as e:
        log.error(
            "propagator_publish_failed",
            task_id=event.task_id,
            sequence=event.sequence,
            error_type=type(e).__name__,
        )
