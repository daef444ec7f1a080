"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store 与服务实例

共享实例通过 app.state 管理，在 lifespan 中初始化/清理；
服务对象本身无状态，按请求构造。
"""

from campusrun.core.config import LifecyclePolicy
from campusrun.core.models import TransitionTable
from campusrun.core.store import StoreGroup
from fastapi import Depends, Request

from .services.acceptance import AcceptanceCoordinator
from .services.propagator import ChangePropagator
from .services.task_service import TaskService
from .services.transition_service import StatusTransitionService


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_propagator(request: Request) -> ChangePropagator:
    """从 app.state 获取 ChangePropagator 实例"""
    return request.app.state.propagator


def get_lifecycle_policy(request: Request) -> LifecyclePolicy:
    """从 app.state 获取 LifecyclePolicy"""
    return request.app.state.lifecycle_policy


def get_transition_table(request: Request) -> TransitionTable:
    """从 app.state 获取流转表"""
    return request.app.state.transition_table


def get_task_service(store_group=Depends(get_store_group)) -> TaskService:
    return TaskService(store_group)


def get_acceptance_coordinator(
    store_group=Depends(get_store_group),
    propagator=Depends(get_propagator),
) -> AcceptanceCoordinator:
    return AcceptanceCoordinator(store_group, propagator)


def get_transition_service(
    store_group=Depends(get_store_group),
    propagator=Depends(get_propagator),
    table=Depends(get_transition_table),
    policy=Depends(get_lifecycle_policy),
) -> StatusTransitionService:
    return StatusTransitionService(
        store_group,
        propagator,
        table=table,
        max_attempts=policy.max_transition_attempts,
    )
