"""状态流转表 -- 纯函数，不访问存储

每条边记录允许执行它的角色集合：
    open -> accepted                      helper
    accepted -> started -> on_the_way
             -> delivered                 helper
    delivered -> completed                requester
    open/accepted/started/on_the_way
             -> cancelled                 requester
    accepted/started -> cancelled         helper（仅 helper_can_cancel 开启时）

终态没有出边，也没有自环。
"""

from .enums import TERMINAL_STATES, ActorRole, TaskStatus

_REQUESTER = frozenset({ActorRole.REQUESTER})
_HELPER = frozenset({ActorRole.HELPER})

VALID_TRANSITIONS: dict[TaskStatus, dict[TaskStatus, frozenset[ActorRole]]] = {
    TaskStatus.OPEN: {
        TaskStatus.ACCEPTED: _HELPER,
        TaskStatus.CANCELLED: _REQUESTER,
    },
    TaskStatus.ACCEPTED: {
        TaskStatus.STARTED: _HELPER,
        TaskStatus.CANCELLED: _REQUESTER,
    },
    TaskStatus.STARTED: {
        TaskStatus.ON_THE_WAY: _HELPER,
        TaskStatus.CANCELLED: _REQUESTER,
    },
    TaskStatus.ON_THE_WAY: {
        TaskStatus.DELIVERED: _HELPER,
        TaskStatus.CANCELLED: _REQUESTER,
    },
    TaskStatus.DELIVERED: {
        TaskStatus.COMPLETED: _REQUESTER,
    },
    # 终态不可再流转
    TaskStatus.COMPLETED: {},
    TaskStatus.CANCELLED: {},
}

# helper 放弃任务的可配置边
HELPER_CANCEL_SOURCES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.ACCEPTED, TaskStatus.STARTED}
)


class TransitionTable:
    """带策略开关的流转表

    helper_can_cancel 控制 helper 能否从 accepted/started 取消任务，
    其余边固定不变。
    """

    def __init__(self, helper_can_cancel: bool = False) -> None:
        self.helper_can_cancel = helper_can_cancel

    def allowed_roles(
        self, current: TaskStatus, requested: TaskStatus
    ) -> frozenset[ActorRole]:
        """返回允许执行 current -> requested 的角色集合，边不存在时为空集"""
        if current in TERMINAL_STATES or current == requested:
            return frozenset()
        roles = VALID_TRANSITIONS.get(current, {}).get(requested, frozenset())
        if (
            self.helper_can_cancel
            and requested == TaskStatus.CANCELLED
            and current in HELPER_CANCEL_SOURCES
        ):
            roles = roles | _HELPER
        return roles

    def edge_exists(self, current: TaskStatus, requested: TaskStatus) -> bool:
        """边对任意角色存在"""
        return bool(self.allowed_roles(current, requested))

    def is_legal(
        self, current: TaskStatus, requested: TaskStatus, role: ActorRole
    ) -> bool:
        """判断 role 能否执行 current -> requested"""
        return role in self.allowed_roles(current, requested)


def is_legal(
    current: TaskStatus,
    requested: TaskStatus,
    role: ActorRole,
    *,
    helper_can_cancel: bool = False,
) -> bool:
    """验证状态流转是否合法

    Args:
        current: 当前状态
        requested: 目标状态
        role: 操作者角色
        helper_can_cancel: 是否开启 helper 取消边

    Returns:
        True 如果流转合法，否则 False
    """
    return TransitionTable(helper_can_cancel).is_legal(current, requested, role)
