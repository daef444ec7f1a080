"""任务生命周期路由

POST /api/tasks/{task_id}/accept: helper 接单
    - 200: 接单成功
    - 403: 接自己发布的任务
    - 404: 任务不存在
    - 409: NO_LONGER_AVAILABLE
POST /api/tasks/{task_id}/transition: 推进状态
    - 403: 非参与者或角色不允许
    - 409: ILLEGAL_TRANSITION / CONFLICT
POST /api/tasks/{task_id}/cancel: transition 到 cancelled 的便捷入口
"""

from campusrun.core.exceptions import LifecycleError
from campusrun.core.models import ActorRole, TaskStatus
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_acceptance_coordinator, get_transition_service
from .errors import error_response

router = APIRouter()


class AcceptRequest(BaseModel):
    """接单请求体"""

    helper_id: str = Field(min_length=1)


class TransitionRequest(BaseModel):
    """状态流转请求体"""

    actor_id: str = Field(min_length=1)
    status: TaskStatus
    actor_role: ActorRole | None = None


class CancelRequest(BaseModel):
    """取消请求体"""

    actor_id: str = Field(min_length=1)


@router.post("/api/tasks/{task_id}/accept")
async def accept_task(
    task_id: str,
    body: AcceptRequest,
    coordinator=Depends(get_acceptance_coordinator),
):
    """helper 接单，并发调用中恰好一个成功"""
    try:
        task = await coordinator.accept(task_id, body.helper_id)
    except LifecycleError as e:
        return error_response(e)
    return {"task": task.model_dump(mode="json")}


@router.post("/api/tasks/{task_id}/transition")
async def transition_task(
    task_id: str,
    body: TransitionRequest,
    service=Depends(get_transition_service),
):
    """按流转表推进状态"""
    try:
        task = await service.transition(
            task_id, body.actor_id, body.status, actor_role=body.actor_role
        )
    except LifecycleError as e:
        return error_response(e)
    return {"task": task.model_dump(mode="json")}


@router.post("/api/tasks/{task_id}/cancel")
async def cancel_task(
    task_id: str,
    body: CancelRequest,
    service=Depends(get_transition_service),
):
    """取消任务"""
    try:
        task = await service.cancel(task_id, body.actor_id)
    except LifecycleError as e:
        return error_response(e)
    return {"task": task.model_dump(mode="json")}
