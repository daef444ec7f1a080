"""ChangePropagator -- 内存中状态变更广播器

每个订阅者持有一个 asyncio.Queue。频道按 task 和参与者两种维度寻址：
  task:{task_id}   任务详情页、时间线
  user:{user_id}   聊天头部、通知角标等跨页面订阅

投递语义为 at-least-once、尽力有序；与写路径不耦合，
任何投递失败只记录日志，由客户端 Reconciler 的断档检测修复。
队列已满的订阅者被移除：积压清空并放入 SUBSCRIPTION_CLOSED，
SSE 端点据此结束响应，客户端带游标重连后从时间线补齐。
"""

import asyncio
from collections import defaultdict
from collections.abc import Iterable

import structlog
from campusrun.core.models.event import TaskStatusEvent
from campusrun.core.models.payloads import StatusChangePayload

log = structlog.get_logger()

# 订阅被移除的标记，消费者收到后应结束本次订阅
SUBSCRIPTION_CLOSED = object()


def task_channel(task_id: str) -> str:
    """任务维度频道名"""
    return f"task:{task_id}"


def user_channel(user_id: str) -> str:
    """参与者维度频道名"""
    return f"user:{user_id}"


class ChangePropagator:
    """状态变更广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(self, queue_maxsize: int = 100) -> None:
        # channel -> set of asyncio.Queue
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    async def subscribe(self, channel: str) -> asyncio.Queue:
        """订阅指定频道

        Args:
            channel: task_channel() 或 user_channel() 生成的频道名

        Returns:
            asyncio.Queue 实例，StatusChangePayload 会被推送到此队列
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[channel].add(queue)
        return queue

    async def subscribe_task(self, task_id: str) -> asyncio.Queue:
        """订阅单个任务的状态变更"""
        return await self.subscribe(task_channel(task_id))

    async def subscribe_user(self, user_id: str) -> asyncio.Queue:
        """订阅某个参与者相关的所有任务状态变更"""
        return await self.subscribe(user_channel(user_id))

    async def unsubscribe(self, channel: str, queue: asyncio.Queue) -> None:
        """取消订阅

        Args:
            channel: 频道名
            queue: 之前订阅时返回的队列
        """
        subscribers = self._subscribers.get(channel)
        if subscribers is None:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._subscribers[channel]

    def subscriber_count(self, channel: str) -> int:
        """频道当前订阅者数量"""
        return len(self._subscribers.get(channel, ()))

    async def publish(
        self,
        event: TaskStatusEvent,
        participants: Iterable[str] = (),
    ) -> int:
        """广播已提交的事件到任务频道和参与者频道

        只能在事件所在事务提交之后调用。

        Args:
            event: 已提交的时间线事件
            participants: 发布者 / 接单者 ID

        Returns:
            成功投递的队列数
        """
        payload = event.to_payload()
        channels = [task_channel(event.task_id)]
        channels.extend(user_channel(p) for p in dict.fromkeys(participants) if p)

        delivered = 0
        for channel in channels:
            delivered += self._deliver(channel, payload)
        return delivered

    def _deliver(self, channel: str, payload: StatusChangePayload) -> int:
        """向单个频道投递，已满的队列视为掉线订阅者并清理"""
        delivered = 0
        dead_queues = []
        for queue in list(self._subscribers.get(channel, ())):
            try:
                queue.put_nowait(payload)
                delivered += 1
            except asyncio.QueueFull:
                dead_queues.append(queue)

        if dead_queues:
            log.warning(
                "propagator_subscriber_dropped",
                channel=channel,
                task_id=payload.task_id,
                sequence=payload.sequence,
                dropped=len(dead_queues),
            )
        for q in dead_queues:
            self._subscribers[channel].discard(q)
            _close(q)
        if channel in self._subscribers and not self._subscribers[channel]:
            del self._subscribers[channel]
        return delivered


def _close(queue: asyncio.Queue) -> None:
    """丢弃积压并放入关闭标记，积压部分由重连后的时间线回放补齐"""
    while not queue.empty():
        queue.get_nowait()
    queue.put_nowait(SUBSCRIPTION_CLOSED)
