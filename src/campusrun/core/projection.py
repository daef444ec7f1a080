"""时间线重放与 Projection 重建

把时间线按 sequence 依次折叠进 TaskView，每一步都经过流转表校验：
已提交的历史必须是状态图上的合法路径，且 sequence 从 1 起连续。
支持单事件应用、单任务重放与全量重建三种模式。
"""

import time

import aiosqlite
import structlog
from pydantic import BaseModel

from .exceptions import TimelineIntegrityError
from .models.enums import TaskStatus
from .models.event import TaskStatusEvent
from .models.transitions import TransitionTable
from .store.event_store import SqliteEventStore
from .store.task_store import SqliteTaskStore

log = structlog.get_logger()


class TaskView(BaseModel):
    """由时间线推导出的任务状态"""

    task_id: str
    status: TaskStatus = TaskStatus.OPEN
    accepted_by: str | None = None
    sequence: int = 0


def apply_event(
    views: dict[str, TaskView],
    event: TaskStatusEvent,
    table: TransitionTable | None = None,
) -> TaskView:
    """将单个事件应用到 TaskView（内存中操作）

    Args:
        views: task_id -> TaskView 的映射表（会被就地修改）
        event: 要应用的事件
        table: 流转表；为 None 时使用开启 helper 取消的宽松表，
            以便校验在任何策略下提交的历史

    Raises:
        TimelineIntegrityError: sequence 断档、from_status 不一致或非法边
    """
    table = table or TransitionTable(helper_can_cancel=True)
    view = views.get(event.task_id) or TaskView(task_id=event.task_id)

    if event.sequence != view.sequence + 1:
        raise TimelineIntegrityError(
            event.task_id,
            f"expected sequence {view.sequence + 1}, got {event.sequence}",
        )
    if event.from_status != view.status:
        raise TimelineIntegrityError(
            event.task_id,
            f"event {event.sequence} starts from {event.from_status}, "
            f"but task is {view.status}",
        )
    if not table.is_legal(view.status, event.to_status, event.actor_role):
        raise TimelineIntegrityError(
            event.task_id,
            f"illegal edge {view.status} -> {event.to_status} by {event.actor_role}",
        )

    accepted_by = view.accepted_by
    if event.to_status == TaskStatus.ACCEPTED:
        accepted_by = event.actor_id

    updated = view.model_copy(
        update={
            "status": event.to_status,
            "accepted_by": accepted_by,
            "sequence": event.sequence,
        }
    )
    views[event.task_id] = updated
    return updated


def replay_timeline(
    task_id: str,
    events: list[TaskStatusEvent],
    table: TransitionTable | None = None,
) -> TaskView:
    """从 sequence 0 开始重放单个任务的完整时间线"""
    views: dict[str, TaskView] = {task_id: TaskView(task_id=task_id)}
    for event in events:
        if event.task_id != task_id:
            raise TimelineIntegrityError(task_id, f"foreign event {event.event_id}")
        apply_event(views, event, table)
    return views[task_id]


async def rebuild_all(
    conn: aiosqlite.Connection,
    event_store: SqliteEventStore,
    task_store: SqliteTaskStore,
    table: TransitionTable | None = None,
) -> int:
    """从时间线重建所有任务的 status / accepted_by / version

    流程：
    1. 读取所有事件（按 task_id, sequence 排序）
    2. 在内存中逐个重放并校验
    3. 覆盖写回 tasks 表（没有事件的任务回到 open）

    Args:
        conn: 数据库连接
        event_store: TimelineStore 实例
        task_store: TaskStore 实例
        table: 校验用流转表

    Returns:
        处理的事件总数
    """
    start_time = time.monotonic()

    events = await event_store.get_all_events()
    event_count = len(events)

    await log.ainfo("projection_rebuild_started", event_count=event_count)

    views: dict[str, TaskView] = {}
    for event in events:
        apply_event(views, event, table)

    task_ids = await task_store.list_task_ids()
    try:
        for task_id in task_ids:
            view = views.get(task_id) or TaskView(task_id=task_id)
            await task_store.overwrite_projection(
                task_id,
                status=view.status,
                accepted_by=view.accepted_by,
                version=view.sequence,
            )
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise

    elapsed_ms = int((time.monotonic() - start_time) * 1000)
    await log.ainfo(
        "projection_rebuild_completed",
        event_count=event_count,
        task_count=len(task_ids),
        elapsed_ms=elapsed_ms,
    )

    return event_count


async def verify_all(
    event_store: SqliteEventStore,
    table: TransitionTable | None = None,
) -> dict[str, str]:
    """校验所有时间线，返回 task_id -> 错误信息（全部合法时为空）"""
    events = await event_store.get_all_events()
    by_task: dict[str, list[TaskStatusEvent]] = {}
    for event in events:
        by_task.setdefault(event.task_id, []).append(event)

    problems: dict[str, str] = {}
    for task_id, task_events in by_task.items():
        try:
            replay_timeline(task_id, task_events, table)
        except TimelineIntegrityError as e:
            problems[task_id] = e.message
            log.warning("timeline_integrity_violation", task_id=task_id, error=e.message)
    return problems
