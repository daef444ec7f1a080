"""GatewayClient -- campusrun Gateway HTTP 调用封装

基于 httpx.AsyncClient；服务端错误体 {"error": {"code", "message"}}
还原为 campusrun.core.exceptions 中的类型化异常，
连接失败、超时包装为 GatewayUnreachableError。
"""

from collections.abc import AsyncIterator

import httpx
import structlog
from campusrun.core.exceptions import (
    AcceptanceNotAuthorizedError,
    IllegalTransitionError,
    NoLongerAvailableError,
    TaskNotFoundError,
    TransitionConflictError,
    TransitionNotAuthorizedError,
)
from campusrun.core.models import ActorRole, Task, TaskDraft, TaskStatus
from campusrun.core.models.payloads import StatusChangePayload

from .config import load_client_config
from .exceptions import GatewayError, GatewayUnreachableError

log = structlog.get_logger()


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """从 SSE 文本行中逐条提取 data 字段（多行 data 以换行拼接）

    注释行（心跳）与 id / event 字段被忽略，空行表示一条消息结束。
    """
    buffer: list[str] = []
    async for line in lines:
        if not line:
            if buffer:
                yield "\n".join(buffer)
                buffer = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            buffer.append(value)
    if buffer:
        yield "\n".join(buffer)


class GatewayClient:
    """campusrun Gateway 客户端"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout_s: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            base_url: Gateway 基础 URL，默认读取 CAMPUSRUN_GATEWAY_URL
            timeout_s: 请求超时（秒），默认读取 CAMPUSRUN_CLIENT_TIMEOUT_S
            http_client: 外部注入的 httpx.AsyncClient（测试时注入 ASGITransport）
        """
        config = load_client_config()
        self._timeout_s = timeout_s if timeout_s is not None else config.timeout_s
        if http_client is not None:
            self._http = http_client
            self._owns_http = False
            self._base_url = str(http_client.base_url).rstrip("/")
        else:
            self._base_url = (base_url or config.gateway_url).rstrip("/")
            self._http = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout_s)
            self._owns_http = True

    async def aclose(self) -> None:
        """关闭自己创建的 HTTP 连接池"""
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def create_task(
        self,
        created_by: str,
        draft: TaskDraft,
        idempotency_key: str | None = None,
    ) -> Task:
        """发布任务；幂等键命中时返回已存在的任务"""
        body = {
            **draft.model_dump(mode="json"),
            "created_by": created_by,
            "idempotency_key": idempotency_key,
        }
        response = await self._request("POST", "/api/tasks", json=body)
        self._raise_for_error(response)
        return Task.model_validate(response.json()["task"])

    async def get_task(self, task_id: str) -> Task:
        """查询任务详情"""
        response = await self._request("GET", f"/api/tasks/{task_id}")
        self._raise_for_error(response, task_id=task_id)
        return Task.model_validate(response.json()["task"])

    async def list_tasks(self, **filters) -> list[Task]:
        """查询任务列表，filters 与 GET /api/tasks 的查询参数一致"""
        params = {k: str(v) for k, v in filters.items() if v is not None}
        response = await self._request("GET", "/api/tasks", params=params)
        self._raise_for_error(response)
        return [Task.model_validate(t) for t in response.json()["tasks"]]

    async def accept(self, task_id: str, helper_id: str) -> Task:
        """接单

        Raises:
            NoLongerAvailableError: 已被他人接走
            AcceptanceNotAuthorizedError: 接自己的任务
            TaskNotFoundError: 任务不存在
        """
        response = await self._request(
            "POST", f"/api/tasks/{task_id}/accept", json={"helper_id": helper_id}
        )
        self._raise_for_error(response, task_id=task_id, actor_id=helper_id, accepting=True)
        return Task.model_validate(response.json()["task"])

    async def transition(
        self,
        task_id: str,
        actor_id: str,
        status: TaskStatus,
        actor_role: ActorRole | None = None,
    ) -> Task:
        """推进任务状态"""
        body = {"actor_id": actor_id, "status": TaskStatus(status).value}
        if actor_role is not None:
            body["actor_role"] = ActorRole(actor_role).value
        response = await self._request(
            "POST", f"/api/tasks/{task_id}/transition", json=body
        )
        self._raise_for_error(response, task_id=task_id, actor_id=actor_id)
        return Task.model_validate(response.json()["task"])

    async def cancel(self, task_id: str, actor_id: str) -> Task:
        """取消任务"""
        response = await self._request(
            "POST", f"/api/tasks/{task_id}/cancel", json={"actor_id": actor_id}
        )
        self._raise_for_error(response, task_id=task_id, actor_id=actor_id)
        return Task.model_validate(response.json()["task"])

    async def read_from(
        self, task_id: str, since_sequence: int = 0
    ) -> list[StatusChangePayload]:
        """读取时间线中 sequence > since_sequence 的事件（Reconciler 的补拉来源）"""
        response = await self._request(
            "GET",
            f"/api/tasks/{task_id}/timeline",
            params={"since_sequence": since_sequence},
        )
        self._raise_for_error(response, task_id=task_id)
        return [
            StatusChangePayload.model_validate(e) for e in response.json()["events"]
        ]

    async def iter_task_events(
        self, task_id: str, since_sequence: int = 0
    ) -> AsyncIterator[StatusChangePayload]:
        """订阅 /api/stream/task/{task_id}，逐条产出状态变更

        服务端推送终态事件后关闭连接，迭代随之结束。
        """
        timeout = httpx.Timeout(self._timeout_s, read=None)
        try:
            async with self._http.stream(
                "GET",
                f"/api/stream/task/{task_id}",
                params={"since_sequence": since_sequence},
                headers={"Accept": "text/event-stream"},
                timeout=timeout,
            ) as response:
                if response.status_code != 200:
                    await response.aread()
                    self._raise_for_error(response, task_id=task_id)
                async for data in iter_sse_data(response.aiter_lines()):
                    yield StatusChangePayload.model_validate_json(data)
        except httpx.TransportError as e:
            log.warning(
                "gateway_stream_failed",
                task_id=task_id,
                error_type=type(e).__name__,
            )
            raise GatewayUnreachableError(self._base_url, e) from e

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(method, path, **kwargs)
        except httpx.TransportError as e:
            log.warning(
                "gateway_request_failed",
                method=method,
                path=path,
                error_type=type(e).__name__,
            )
            raise GatewayUnreachableError(self._base_url, e) from e

    @staticmethod
    def _raise_for_error(
        response: httpx.Response,
        task_id: str = "",
        actor_id: str = "",
        accepting: bool = False,
    ) -> None:
        """把错误响应还原为类型化异常"""
        if response.is_success:
            return
        try:
            error = response.json().get("error") or {}
        except ValueError:
            error = {}
        code = error.get("code")
        message = error.get("message") or response.text

        if code == "TASK_NOT_FOUND":
            raise TaskNotFoundError(task_id)
        if code == "NO_LONGER_AVAILABLE":
            raise NoLongerAvailableError(task_id)
        if code == "ILLEGAL_TRANSITION":
            raise IllegalTransitionError(
                TaskStatus(error["current_status"]),
                TaskStatus(error["requested_status"]),
            )
        if code == "CONFLICT":
            raise TransitionConflictError(task_id, int(error.get("attempts", 0)))
        if code == "NOT_AUTHORIZED":
            if accepting:
                raise AcceptanceNotAuthorizedError(task_id, actor_id)
            raise TransitionNotAuthorizedError(actor_id, message)
        raise GatewayError(message, status_code=response.status_code)
