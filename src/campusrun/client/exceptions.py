"""客户端传输层异常

服务端返回的业务错误还原为 campusrun.core.exceptions 中的类型化异常；
这里只定义 HTTP 传输本身的失败。
"""

from campusrun.core.exceptions import LifecycleError


class GatewayError(LifecycleError):
    """Gateway 返回了无法识别的错误响应"""

    code = "GATEWAY_ERROR"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """
        Args:
            message: 错误描述
            status_code: HTTP 状态码（如有）
        """
        super().__init__(message, retryable=status_code is None or status_code >= 500)
        self.status_code = status_code


class GatewayUnreachableError(GatewayError):
    """Gateway 不可达（连接失败、超时等）

    写操作结果未知，接单与状态流转都可以安全重试。
    """

    code = "GATEWAY_UNREACHABLE"

    def __init__(self, base_url: str, original_error: Exception) -> None:
        super().__init__(f"Gateway 不可达: {base_url} -- {original_error}")
        self.base_url = base_url
        self.original_error = original_error
