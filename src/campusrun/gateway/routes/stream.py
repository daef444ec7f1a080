"""SSE 状态变更流路由

GET /api/stream/task/{task_id}: 单任务状态变更流
    先订阅，再从 since_sequence（或 Last-Event-ID）之后回放时间线，
    之后推送实时事件；按 sequence 去重，终态事件携带 final: true 并结束。
GET /api/stream/user/{user_id}: 参与者维度流
    带 {task_id}:{sequence} 游标重连时按提交顺序回放游标之后的事件。
两者都有心跳保活；订阅因过慢被移除时结束响应，由客户端带游标重连。
"""

import asyncio
import json

import structlog
from campusrun.core.config import SSE_HEARTBEAT_INTERVAL
from campusrun.core.exceptions import TaskNotFoundError
from campusrun.core.models import TERMINAL_STATES
from campusrun.core.models.payloads import StatusChangePayload
from fastapi import APIRouter, Depends, Query, Request
from sse_starlette.sse import EventSourceResponse

from ..deps import get_propagator, get_store_group
from ..services.propagator import SUBSCRIPTION_CLOSED, task_channel, user_channel
from .errors import error_response

log = structlog.get_logger()

router = APIRouter()

SSE_EVENT_TYPE = "TASK_STATUS_CHANGED"


def _payload_to_sse(payload: StatusChangePayload, event_id: str) -> dict:
    """将 StatusChangePayload 转换为 sse-starlette 的事件字典"""
    data = payload.model_dump(mode="json")
    data["final"] = payload.is_terminal
    return {
        "id": event_id,
        "event": SSE_EVENT_TYPE,
        "data": json.dumps(data, ensure_ascii=False),
    }


def _parse_cursor(since_sequence: int | None, last_event_id: str | None) -> int:
    """since_sequence 优先，其次 Last-Event-ID，非法值视为 0"""
    if since_sequence is not None:
        return since_sequence
    if last_event_id:
        try:
            return max(0, int(last_event_id))
        except ValueError:
            return 0
    return 0


@router.get("/api/stream/task/{task_id}")
async def stream_task_events(
    task_id: str,
    request: Request,
    since_sequence: int | None = Query(default=None, ge=0),
    store_group=Depends(get_store_group),
    propagator=Depends(get_propagator),
):
    """单任务 SSE 端点"""
    task = await store_group.task_store.get_task(task_id)
    if task is None:
        return error_response(TaskNotFoundError(task_id))

    cursor = _parse_cursor(since_sequence, request.headers.get("last-event-id"))

    async def event_generator():
        # 先订阅再回放，保证回放与实时之间没有缝隙
        queue = await propagator.subscribe_task(task_id)
        try:
            sent = cursor
            history = await store_group.event_store.read_from(task_id, cursor)
            for event in history:
                payload = event.to_payload()
                yield _payload_to_sse(payload, str(payload.sequence))
                sent = payload.sequence
                if payload.is_terminal:
                    return

            # 调用方游标已经越过终态事件
            if task.status in TERMINAL_STATES and sent >= task.version:
                return

            while True:
                try:
                    payload = await asyncio.wait_for(
                        queue.get(), timeout=SSE_HEARTBEAT_INTERVAL
                    )
                except TimeoutError:
                    yield {"comment": "heartbeat"}
                    continue

                if payload is SUBSCRIPTION_CLOSED:
                    # 订阅者过慢被移除，结束响应让客户端带游标重连
                    log.info("task_stream_subscription_dropped", task_id=task_id, sent=sent)
                    return
                # 回放已覆盖的事件
                if payload.sequence <= sent:
                    continue
                yield _payload_to_sse(payload, str(payload.sequence))
                sent = payload.sequence
                if payload.is_terminal:
                    return
        finally:
            await propagator.unsubscribe(task_channel(task_id), queue)

    return EventSourceResponse(event_generator())


def _parse_feed_cursor(since: str | None, last_event_id: str | None) -> tuple[str, int] | None:
    """解析参与者流游标 {task_id}:{sequence}，since 优先，非法值视为无游标"""
    raw = since or last_event_id
    if not raw:
        return None
    task_id, _, sequence = raw.rpartition(":")
    if not task_id:
        return None
    try:
        return task_id, int(sequence)
    except ValueError:
        return None


@router.get("/api/stream/user/{user_id}")
async def stream_user_events(
    user_id: str,
    request: Request,
    since: str | None = Query(default=None, description="上次收到的事件 id，{task_id}:{sequence}"),
    store_group=Depends(get_store_group),
    propagator=Depends(get_propagator),
):
    """参与者维度 SSE 端点，推送该用户作为发布者或接单者的所有任务变更

    带游标（since 或 Last-Event-ID）重连时，先按提交顺序回放游标之后的事件；
    无游标时只推送实时事件。
    """
    feed_cursor = _parse_feed_cursor(since, request.headers.get("last-event-id"))

    async def event_generator():
        queue = await propagator.subscribe_user(user_id)
        try:
            # task_id -> 已发送的最大 sequence
            sent: dict[str, int] = {}
            if feed_cursor is not None:
                history = await store_group.event_store.read_for_participant(
                    user_id, *feed_cursor
                )
                for event in history:
                    payload = event.to_payload()
                    yield _payload_to_sse(payload, f"{payload.task_id}:{payload.sequence}")
                    sent[payload.task_id] = payload.sequence

            while True:
                try:
                    payload = await asyncio.wait_for(
                        queue.get(), timeout=SSE_HEARTBEAT_INTERVAL
                    )
                except TimeoutError:
                    yield {"comment": "heartbeat"}
                    continue

                if payload is SUBSCRIPTION_CLOSED:
                    log.info("user_stream_subscription_dropped", user_id=user_id)
                    return
                if payload.sequence <= sent.get(payload.task_id, 0):
                    continue
                yield _payload_to_sse(payload, f"{payload.task_id}:{payload.sequence}")
                sent[payload.task_id] = payload.sequence
        finally:
            await propagator.unsubscribe(user_channel(user_id), queue)

    return EventSourceResponse(event_generator())
