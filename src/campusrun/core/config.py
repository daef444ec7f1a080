"""配置模块 -- 可通过环境变量覆盖

包含数据库路径、SSE 心跳间隔等常量，以及生命周期策略 LifecyclePolicy
（helper 取消权限、乐观重试次数、订阅队列大小）。
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("CAMPUSRUN_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "CAMPUSRUN_DB_PATH",
        str(_get_base_dir() / "sqlite" / "campusrun.db"),
    )


# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("CAMPUSRUN_SSE_HEARTBEAT_INTERVAL", "15")
)

# 接单码范围（5 位数字）
ACCEPT_CODE_MIN: int = 10000
ACCEPT_CODE_MAX: int = 99999

# 列表查询默认分页大小
DEFAULT_PAGE_SIZE: int = 20
MAX_PAGE_SIZE: int = 100


class LifecyclePolicy(BaseModel):
    """任务生命周期策略 -- 从环境变量加载

    环境变量:
        CAMPUSRUN_HELPER_CAN_CANCEL: helper 是否可在 accepted/started 时取消
        CAMPUSRUN_MAX_TRANSITION_ATTEMPTS: 状态流转乐观重试上限
        CAMPUSRUN_SUBSCRIBER_QUEUE_SIZE: 每个订阅者的队列容量
    """

    helper_can_cancel: bool = Field(
        default=False,
        description="helper 是否可以放弃已接的任务（accepted/started -> cancelled）",
    )
    max_transition_attempts: int = Field(
        default=3,
        ge=1,
        description="version 冲突时 read-validate-write 的最大尝试次数",
    )
    subscriber_queue_size: int = Field(
        default=100,
        ge=1,
        description="ChangePropagator 每个订阅队列的容量",
    )


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _read_int(env_var: str, kwargs: dict, field: str, fallback: int) -> None:
    val = os.environ.get(env_var)
    if not val:
        return
    try:
        parsed = int(val)
    except ValueError:
        log.warning("invalid_int_config", env_var=env_var, value=val, fallback=fallback)
        return
    if parsed < 1:
        log.warning("invalid_int_config", env_var=env_var, value=val, fallback=fallback)
        return
    kwargs[field] = parsed


def load_lifecycle_policy() -> LifecyclePolicy:
    """从环境变量加载生命周期策略

    非法取值记录 warning 并回退默认值，不阻塞启动。

    Returns:
        LifecyclePolicy 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("CAMPUSRUN_HELPER_CAN_CANCEL"):
        normalized = val.strip().lower()
        if normalized in _TRUE_VALUES:
            kwargs["helper_can_cancel"] = True
        elif normalized in _FALSE_VALUES:
            kwargs["helper_can_cancel"] = False
        else:
            log.warning(
                "invalid_bool_config",
                env_var="CAMPUSRUN_HELPER_CAN_CANCEL",
                value=val,
                fallback=False,
            )

    _read_int("CAMPUSRUN_MAX_TRANSITION_ATTEMPTS", kwargs, "max_transition_attempts", 3)
    _read_int("CAMPUSRUN_SUBSCRIBER_QUEUE_SIZE", kwargs, "subscriber_queue_size", 100)

    return LifecyclePolicy(**kwargs)
