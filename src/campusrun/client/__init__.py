"""campusrun Client -- 可嵌入客户端的 Reconciler 与 Gateway 访问层

公开接口导出。
"""

from .api import GatewayClient, iter_sse_data
from .config import ClientConfig, load_client_config
from .exceptions import GatewayError, GatewayUnreachableError
from .reconciler import ClientReconciler, TaskReconciler, TimelineSource
from .stream import TaskEventStream

__all__ = [
    "GatewayClient",
    "iter_sse_data",
    "ClientConfig",
    "load_client_config",
    "GatewayError",
    "GatewayUnreachableError",
    "ClientReconciler",
    "TaskReconciler",
    "TimelineSource",
    "TaskEventStream",
]
