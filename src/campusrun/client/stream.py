"""TaskEventStream -- SSE 消费者

把 /api/stream/task/{task_id} 的推送喂给 TaskReconciler。
连接断开后等待 reconnect_delay_s，先 resync() 轮询补齐，
再以 since_sequence = cursor 重新订阅，直到任务到达终态。
"""

import asyncio

import structlog
from campusrun.core.projection import TaskView

from .api import GatewayClient
from .config import load_client_config
from .exceptions import GatewayError
from .reconciler import TaskReconciler

log = structlog.get_logger()


class TaskEventStream:
    """单任务实时流消费者"""

    def __init__(
        self,
        client: GatewayClient,
        reconciler: TaskReconciler,
        reconnect_delay_s: float | None = None,
        max_reconnects: int | None = None,
    ) -> None:
        """
        Args:
            client: GatewayClient 实例
            reconciler: 接收事件的 TaskReconciler
            reconnect_delay_s: 断线重连间隔，默认读取 CAMPUSRUN_RECONNECT_DELAY_S
            max_reconnects: 最大重连次数，None 表示不限
        """
        self._client = client
        self._reconciler = reconciler
        self._reconnect_delay_s = (
            reconnect_delay_s
            if reconnect_delay_s is not None
            else load_client_config().reconnect_delay_s
        )
        self._max_reconnects = max_reconnects
        self.reconnects = 0

    async def run(self) -> TaskView:
        """消费直到终态或重连次数耗尽

        Returns:
            结束时的本地视图
        """
        task_id = self._reconciler.task_id
        while not self._reconciler.is_terminal:
            try:
                await self._consume_once()
            except GatewayError as e:
                log.warning(
                    "task_stream_disconnected",
                    task_id=task_id,
                    cursor=self._reconciler.cursor,
                    error_type=type(e).__name__,
                )
            if self._reconciler.is_terminal:
                break

            if self._max_reconnects is not None and self.reconnects >= self._max_reconnects:
                log.warning(
                    "task_stream_gave_up",
                    task_id=task_id,
                    cursor=self._reconciler.cursor,
                    reconnects=self.reconnects,
                )
                break

            self.reconnects += 1
            await asyncio.sleep(self._reconnect_delay_s)
            await self._reconciler.resync()

        return self._reconciler.view

    async def _consume_once(self) -> None:
        async for payload in self._client.iter_task_events(
            self._reconciler.task_id, since_sequence=self._reconciler.cursor
        ):
            await self._reconciler.on_event(payload)
            if self._reconciler.is_terminal:
                return
