"""LifecycleError -> HTTP 错误响应

错误体统一为 {"error": {"code": ..., "message": ...}}，
ILLEGAL_TRANSITION 额外携带 current_status / requested_status，
CONFLICT 额外携带 retryable。
"""

from campusrun.core.exceptions import (
    AcceptanceNotAuthorizedError,
    IllegalTransitionError,
    LifecycleError,
    NoLongerAvailableError,
    TaskNotFoundError,
    TransitionConflictError,
    TransitionNotAuthorizedError,
)
from starlette.responses import JSONResponse

_STATUS_CODES: dict[type[LifecycleError], int] = {
    TaskNotFoundError: 404,
    AcceptanceNotAuthorizedError: 403,
    TransitionNotAuthorizedError: 403,
    NoLongerAvailableError: 409,
    IllegalTransitionError: 409,
    TransitionConflictError: 409,
}


def status_code_for(error: LifecycleError) -> int:
    """按异常类型查找 HTTP 状态码，未登记的生命周期错误按 400 处理"""
    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 400


def error_response(error: LifecycleError) -> JSONResponse:
    """构造错误响应"""
    body: dict = {"code": error.code, "message": error.message}
    if isinstance(error, IllegalTransitionError):
        body["current_status"] = error.current_status.value
        body["requested_status"] = error.requested_status.value
    if isinstance(error, TransitionConflictError):
        body["attempts"] = error.attempts
    if error.retryable:
        body["retryable"] = True
    return JSONResponse(status_code=status_code_for(error), content={"error": body})
