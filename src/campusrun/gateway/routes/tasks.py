"""任务发布与查询路由

POST /api/tasks: 发布任务（支持 idempotency_key 去重）
GET /api/tasks: 任务列表，支持 status / created_by / accepted_by /
    exclude_created_by 筛选与分页
GET /api/tasks/{task_id}: 任务详情
GET /api/tasks/{task_id}/timeline: 时间线（sequence > since_sequence）
"""

from campusrun.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from campusrun.core.exceptions import TaskNotFoundError
from campusrun.core.models import TaskDraft, TaskStatus
from fastapi import APIRouter, Depends, Query
from pydantic import Field
from starlette.responses import JSONResponse

from ..deps import get_task_service
from .errors import error_response

router = APIRouter()


class CreateTaskRequest(TaskDraft):
    """发布任务请求体"""

    created_by: str = Field(min_length=1, description="发布者 ID")
    idempotency_key: str | None = Field(default=None, description="客户端幂等键")


@router.post("/api/tasks")
async def create_task(
    body: CreateTaskRequest,
    service=Depends(get_task_service),
):
    """发布任务

    - 新建返回 201
    - 幂等键命中返回 200 + 已存在的任务
    """
    draft = TaskDraft.model_validate(
        body.model_dump(exclude={"created_by", "idempotency_key"})
    )
    task, created = await service.create_task(
        body.created_by, draft, idempotency_key=body.idempotency_key
    )
    return JSONResponse(
        status_code=201 if created else 200,
        content={"task": task.model_dump(mode="json"), "created": created},
    )


@router.get("/api/tasks")
async def list_tasks(
    status: TaskStatus | None = Query(default=None, description="按状态筛选"),
    created_by: str | None = Query(default=None, description="我发布的"),
    accepted_by: str | None = Query(default=None, description="我接的"),
    exclude_created_by: str | None = Query(
        default=None, description="浏览开放任务时排除自己发布的"
    ),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    service=Depends(get_task_service),
):
    """查询任务列表，按 created_at 倒序"""
    tasks = await service.list_tasks(
        status=status,
        created_by=created_by,
        accepted_by=accepted_by,
        exclude_created_by=exclude_created_by,
        limit=limit,
        offset=offset,
    )
    return {"tasks": [t.model_dump(mode="json") for t in tasks]}


@router.get("/api/tasks/{task_id}")
async def get_task_detail(
    task_id: str,
    service=Depends(get_task_service),
):
    """查询任务详情"""
    try:
        task = await service.get_task(task_id)
    except TaskNotFoundError as e:
        return error_response(e)
    return {"task": task.model_dump(mode="json")}


@router.get("/api/tasks/{task_id}/timeline")
async def get_task_timeline(
    task_id: str,
    since_sequence: int = Query(default=0, ge=0),
    service=Depends(get_task_service),
):
    """按 sequence 升序返回时间线事件"""
    try:
        events = await service.timeline(task_id, since_sequence)
    except TaskNotFoundError as e:
        return error_response(e)
    return {
        "task_id": task_id,
        "events": [e.to_payload().model_dump(mode="json") for e in events],
    }
