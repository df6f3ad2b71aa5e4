"""Жизненный цикл выборов: машина состояний по времени и допуск команд по статусу."""

from .gates import ALLOWED_STATUSES, GateResult, Operation, OperationGate
from .state_machine import ElectionLifecycle, LifecycleTransitionResult

__all__ = [
    "ElectionLifecycle",
    "LifecycleTransitionResult",
    "Operation",
    "OperationGate",
    "GateResult",
    "ALLOWED_STATUSES",
]
