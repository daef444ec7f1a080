"""Client Reconciler -- 把不可靠的实时推送收敛为时间线的有序前缀

每个 (客户端, 任务) 维护一个游标 cursor = 最后一次应用的 sequence：
  sequence == cursor + 1   直接应用并推进游标
  sequence >  cursor + 1   出现断档：暂不展示，从时间线补拉 (cursor, ∞) 后按序应用
  sequence <= cursor       重复或乱序的旧事件，丢弃
同一任务的事件处理串行化（asyncio.Lock）；监听器在锁外回调，只会按 sequence 顺序收到通知。
推送完全缺失时由 resync() 轮询兜底。
"""

import asyncio
import inspect
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol

import structlog
from campusrun.core.exceptions import LifecycleError
from campusrun.core.models import TERMINAL_STATES, TaskStatus, TaskStatusEvent
from campusrun.core.models.payloads import StatusChangePayload
from campusrun.core.projection import TaskView

log = structlog.get_logger()

Listener = Callable[[TaskView, StatusChangePayload], Awaitable[None] | None]


class TimelineSource(Protocol):
    """时间线补拉来源（GatewayClient 或服务端 SqliteEventStore）"""

    async def read_from(
        self, task_id: str, since_sequence: int = 0
    ) -> Sequence[StatusChangePayload | TaskStatusEvent]: ...


def _as_payload(item: StatusChangePayload | TaskStatusEvent) -> StatusChangePayload:
    if isinstance(item, TaskStatusEvent):
        return item.to_payload()
    return item


class TaskReconciler:
    """单任务的游标与本地视图"""

    def __init__(self, task_id: str, source: TimelineSource) -> None:
        self.task_id = task_id
        self.cursor = 0
        self.view = TaskView(task_id=task_id)
        # 补拉失败后置位，下一次 resync 成功后清除
        self.needs_resync = False
        self._source = source
        self._lock = asyncio.Lock()
        self._listeners: list[Listener] = []
        # 已应用、尚未通知监听器的 (view, payload)
        self._pending: deque[tuple[TaskView, StatusChangePayload]] = deque()
        self._notifying = False

    @property
    def is_terminal(self) -> bool:
        return self.view.status in TERMINAL_STATES

    def add_listener(self, listener: Listener) -> None:
        """注册监听器，每次按序应用一个事件后回调 (view, payload)"""
        self._listeners.append(listener)

    async def on_event(self, payload: StatusChangePayload) -> bool:
        """处理一条推送

        Returns:
            本次调用是否推进了游标
        """
        if payload.task_id != self.task_id:
            raise ValueError(
                f"payload for task {payload.task_id} routed to reconciler of {self.task_id}"
            )

        async with self._lock:
            advanced = await self._reconcile(payload)
        await self._notify()
        return advanced

    async def resync(self) -> int:
        """轮询兜底：从时间线补拉游标之后的全部事件

        Returns:
            新应用的事件数
        """
        async with self._lock:
            before = self.cursor
            await self._catch_up()
            applied = self.cursor - before
        await self._notify()
        return applied

    async def _reconcile(self, payload: StatusChangePayload) -> bool:
        if payload.sequence <= self.cursor:
            log.debug(
                "reconciler_duplicate_discarded",
                task_id=self.task_id,
                cursor=self.cursor,
                received=payload.sequence,
            )
            return False

        if payload.sequence == self.cursor + 1:
            self._apply(payload)
            return True

        log.info(
            "reconciler_gap_detected",
            task_id=self.task_id,
            cursor=self.cursor,
            received=payload.sequence,
        )
        before = self.cursor
        await self._catch_up()
        # 补拉结果可能落后于推送本身
        if payload.sequence == self.cursor + 1:
            self._apply(payload)
        return self.cursor > before

    async def _catch_up(self) -> None:
        try:
            items = await self._source.read_from(self.task_id, self.cursor)
        except LifecycleError as e:
            self.needs_resync = True
            log.warning(
                "reconciler_replay_failed",
                task_id=self.task_id,
                cursor=self.cursor,
                error_type=type(e).__name__,
            )
            return

        self.needs_resync = False
        for payload in sorted((_as_payload(i) for i in items), key=lambda p: p.sequence):
            if payload.sequence <= self.cursor:
                continue
            if payload.sequence != self.cursor + 1:
                # 时间线本身不连续时停在断档前，等待下一次补拉
                self.needs_resync = True
                log.warning(
                    "reconciler_timeline_gap",
                    task_id=self.task_id,
                    cursor=self.cursor,
                    received=payload.sequence,
                )
                break
            self._apply(payload)

    def _apply(self, payload: StatusChangePayload) -> None:
        accepted_by = self.view.accepted_by
        if payload.to_status == TaskStatus.ACCEPTED:
            accepted_by = payload.actor_id
        self.view = self.view.model_copy(
            update={
                "status": payload.to_status,
                "accepted_by": accepted_by,
                "sequence": payload.sequence,
            }
        )
        self.cursor = payload.sequence
        self._pending.append((self.view, payload))

    async def _notify(self) -> None:
        """在锁外按 sequence 顺序回调监听器

        监听器可以再次调用 on_event / resync；嵌套调用产生的通知
        追加到队列，由最外层的这次调用继续按序投递。
        """
        if self._notifying:
            return
        self._notifying = True
        try:
            while self._pending:
                view, payload = self._pending.popleft()
                for listener in list(self._listeners):
                    result = listener(view, payload)
                    if inspect.isawaitable(result):
                        await result
        finally:
            self._notifying = False


class ClientReconciler:
    """多任务游标管理

    订阅时创建游标，取消订阅或确认终态后丢弃。
    """

    def __init__(self, source: TimelineSource) -> None:
        self._source = source
        self._tasks: dict[str, TaskReconciler] = {}

    def subscribe(self, task_id: str) -> TaskReconciler:
        """订阅任务；已订阅时返回现有游标"""
        reconciler = self._tasks.get(task_id)
        if reconciler is None:
            reconciler = TaskReconciler(task_id, self._source)
            self._tasks[task_id] = reconciler
        return reconciler

    def unsubscribe(self, task_id: str) -> None:
        """取消订阅并丢弃游标"""
        self._tasks.pop(task_id, None)

    def get(self, task_id: str) -> TaskReconciler | None:
        return self._tasks.get(task_id)

    @property
    def task_ids(self) -> list[str]:
        return list(self._tasks)

    async def dispatch(self, payload: StatusChangePayload) -> bool:
        """把推送路由到对应任务；未订阅的任务直接忽略"""
        reconciler = self._tasks.get(payload.task_id)
        if reconciler is None:
            log.debug("reconciler_unsubscribed_event", task_id=payload.task_id)
            return False
        return await reconciler.on_event(payload)

    def acknowledge_terminal(self, task_id: str) -> bool:
        """确认任务已到终态并丢弃游标

        Returns:
            游标是否已丢弃（未到终态时保留）
        """
        reconciler = self._tasks.get(task_id)
        if reconciler is None or not reconciler.is_terminal:
            return False
        del self._tasks[task_id]
        return True

    async def resync_all(self) -> dict[str, int]:
        """对所有已订阅任务执行一次轮询兜底

        Returns:
            task_id -> 新应用的事件数
        """
        results: dict[str, int] = {}
        for task_id, reconciler in list(self._tasks.items()):
            results[task_id] = await reconciler.resync()
        return results
