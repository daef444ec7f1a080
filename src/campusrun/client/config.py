"""ClientConfig -- 客户端配置加载

环境变量:
    CAMPUSRUN_GATEWAY_URL: Gateway 地址（默认 http://localhost:8000）
    CAMPUSRUN_CLIENT_TIMEOUT_S: 请求超时（秒，默认 10）
    CAMPUSRUN_RECONNECT_DELAY_S: SSE 断线重连间隔（秒，默认 1.0）
"""

import os

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


class ClientConfig(BaseModel):
    """客户端配置"""

    gateway_url: str = Field(default="http://localhost:8000")
    timeout_s: float = Field(default=10.0, gt=0)
    reconnect_delay_s: float = Field(default=1.0, ge=0)


def _read_float(
    env_var: str, kwargs: dict, field: str, fallback: float, minimum: float
) -> None:
    val = os.environ.get(env_var)
    if not val:
        return
    try:
        parsed = float(val)
    except ValueError:
        parsed = None
    if parsed is None or parsed < minimum:
        log.warning("invalid_float_config", env_var=env_var, value=val, fallback=fallback)
        return
    kwargs[field] = parsed


def load_client_config() -> ClientConfig:
    """从环境变量加载客户端配置，非法值回退默认"""
    kwargs: dict = {}

    if val := os.environ.get("CAMPUSRUN_GATEWAY_URL"):
        kwargs["gateway_url"] = val

    _read_float("CAMPUSRUN_CLIENT_TIMEOUT_S", kwargs, "timeout_s", 10.0, 0.001)
    _read_float("CAMPUSRUN_RECONNECT_DELAY_S", kwargs, "reconnect_delay_s", 1.0, 0.0)

    return ClientConfig(**kwargs)
