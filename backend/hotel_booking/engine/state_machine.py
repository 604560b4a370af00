"""
hotel_booking/engine/state_machine.py

状态机引擎 - 状态转换校验与转换历史
预订状态生命周期与草稿转正流程都基于此定义
"""
import time
from typing import Dict, List, Optional
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)


@dataclass
class StateTransition:
    """
    状态转换定义

    Attributes:
        from_state: 源状态
        to_state: 目标状态
        trigger: 触发动作
    """

    from_state: str
    to_state: str
    trigger: str


@dataclass
class StateMachineConfig:
    """
    状态机配置

    Attributes:
        name: 状态机名称
        states: 所有状态的列表
        transitions: 转换列表
        initial_state: 初始状态
    """

    name: str
    states: List[str]
    transitions: List[StateTransition]
    initial_state: str
    final_states: List[str] = field(default_factory=list)


@dataclass
class StateMachineSnapshot:
    """
    状态机快照 - 用于审计

    Attributes:
        current_state: 转换后的状态
        previous_state: 转换前的状态
        transition: 触发的转换
        timestamp: 快照时间
    """

    current_state: str
    previous_state: str
    transition: Optional[StateTransition]
    timestamp: float


class InvalidTransition(Exception):
    """非法状态转换"""

    def __init__(self, machine: str, from_state: str, trigger: str):
        self.machine = machine
        self.from_state = from_state
        self.trigger = trigger
        super().__init__(f"{machine}: '{trigger}' not allowed from '{from_state}'")


class StateMachine:
    """
    状态机引擎

    特性：
    - 状态转换验证
    - 历史记录（用于审计）

    Example:
        >>> machine = StateMachine(BOOKING_STATUS_MACHINE, state="confirmed")
        >>> machine.fire("check_in")
        'checked_in'
    """

    def __init__(self, config: StateMachineConfig, state: Optional[str] = None):
        self._config = config
        self._current_state = state if state is not None else config.initial_state
        self._history: List[StateMachineSnapshot] = []
        self._transition_map: Dict[str, Dict[str, StateTransition]] = {}

        if self._current_state not in config.states:
            raise ValueError(f"Unknown state '{self._current_state}' for {config.name}")

        # 构建转换映射: (from_state, trigger) -> transition
        for t in config.transitions:
            if t.from_state not in self._transition_map:
                self._transition_map[t.from_state] = {}
            self._transition_map[t.from_state][t.trigger] = t

    @property
    def current_state(self) -> str:
        """获取当前状态"""
        return self._current_state

    @property
    def is_final(self) -> bool:
        return self._current_state in self._config.final_states

    def available_triggers(self) -> List[str]:
        """当前状态下可用的触发动作"""
        return sorted(self._transition_map.get(self._current_state, {}).keys())

    def fire(self, trigger: str) -> str:
        """
        按触发动作推进状态，返回新状态

        Raises:
            InvalidTransition: 当前状态不支持该触发动作
        """
        transition = self._transition_map.get(self._current_state, {}).get(trigger)
        if transition is None:
            logger.warning(
                f"Invalid transition on {self._config.name}: {self._current_state} (trigger: {trigger})"
            )
            raise InvalidTransition(self._config.name, self._current_state, trigger)

        previous_state = self._current_state
        self._current_state = transition.to_state
        self._history.append(StateMachineSnapshot(
            current_state=transition.to_state,
            previous_state=previous_state,
            transition=transition,
            timestamp=time.time(),
        ))
        logger.debug(
            f"{self._config.name}: {previous_state} -> {transition.to_state} (trigger: {transition.trigger})"
        )
        return self._current_state

    def get_history(self) -> List[StateMachineSnapshot]:
        """获取转换历史"""
        return list(self._history)


# ============== 预订领域状态机定义 ==============

BOOKING_STATUS_MACHINE = StateMachineConfig(
    name="Booking",
    states=["reserved", "confirmed", "checked_in", "checked_out", "cancelled"],
    transitions=[
        StateTransition("reserved", "confirmed", "confirm"),
        StateTransition("confirmed", "checked_in", "check_in"),
        StateTransition("checked_in", "checked_out", "check_out"),
        StateTransition("reserved", "cancelled", "cancel"),
        StateTransition("confirmed", "cancelled", "cancel"),
    ],
    initial_state="reserved",
    final_states=["checked_out", "cancelled"],
)

# 草稿转正流程：每一步成功后推进，任一步失败整体回滚
DRAFT_PROMOTION_MACHINE = StateMachineConfig(
    name="DraftPromotion",
    states=[
        "draft", "validated", "priced", "inventory_confirmed",
        "persisted", "inventory_decremented", "draft_retired",
    ],
    transitions=[
        StateTransition("draft", "validated", "validate"),
        StateTransition("validated", "priced", "price"),
        StateTransition("priced", "inventory_confirmed", "confirm_inventory"),
        StateTransition("inventory_confirmed", "persisted", "persist"),
        StateTransition("persisted", "inventory_decremented", "decrement_inventory"),
        StateTransition("inventory_decremented", "draft_retired", "retire_draft"),
    ],
    initial_state="draft",
    final_states=["draft_retired"],
)


__all__ = [
    "StateTransition",
    "StateMachineConfig",
    "StateMachineSnapshot",
    "StateMachine",
    "InvalidTransition",
    "BOOKING_STATUS_MACHINE",
    "DRAFT_PROMOTION_MACHINE",
]
