"""Operation Gate — допуск команд по статусу выборов

Каждая команда разрешена только в определённых статусах:
- подготовка (регистрация, партии, создание бондов, переводы): scheduled, running
- торговля, кампании, голосование: running
- удаление партии: scheduled, running, ended
- settlement: ended

Интеграция:
- Принимает уже продвинутый статус (ElectionLifecycle.advance)
- Не изменяет состояние: только решение о допуске
"""

from dataclasses import dataclass
from enum import Enum

from electionbot.core.domain.election import ElectionStatus
from electionbot.core.errors import AlreadySettled, ValidationError


class Operation(str, Enum):
    """Команды, подлежащие проверке статуса."""

    REGISTER_VOTER = "register_voter"
    CREATE_PARTY = "create_party"
    JOIN_PARTY = "join_party"
    LEAVE_PARTY = "leave_party"
    EDIT_PARTY = "edit_party"
    CREATE_BONDS = "create_bonds"
    TRANSFER_TO_PARTY = "transfer_to_party"
    BUY_BONDS = "buy_bonds"
    SELL_BONDS = "sell_bonds"
    CAMPAIGN = "campaign"
    VOTE = "vote"
    DELETE_PARTY = "delete_party"
    SETTLE = "settle"


_PREPARATION = frozenset({ElectionStatus.SCHEDULED, ElectionStatus.RUNNING})
_RUNNING = frozenset({ElectionStatus.RUNNING})

ALLOWED_STATUSES: dict[Operation, frozenset[ElectionStatus]] = {
    Operation.REGISTER_VOTER: _PREPARATION,
    Operation.CREATE_PARTY: _PREPARATION,
    Operation.JOIN_PARTY: _PREPARATION,
    Operation.LEAVE_PARTY: _PREPARATION,
    Operation.EDIT_PARTY: _PREPARATION,
    Operation.CREATE_BONDS: _PREPARATION,
    Operation.TRANSFER_TO_PARTY: _PREPARATION,
    Operation.BUY_BONDS: _RUNNING,
    Operation.SELL_BONDS: _RUNNING,
    Operation.CAMPAIGN: _RUNNING,
    Operation.VOTE: _RUNNING,
    Operation.DELETE_PARTY: frozenset(
        {ElectionStatus.SCHEDULED, ElectionStatus.RUNNING, ElectionStatus.ENDED}
    ),
    Operation.SETTLE: frozenset({ElectionStatus.ENDED}),
}

_STATUS_MESSAGES: dict[ElectionStatus, str] = {
    ElectionStatus.SCHEDULED: "Election has not started yet.",
    ElectionStatus.RUNNING: "Election is still running.",
    ElectionStatus.ENDED: "Election has ended.",
    ElectionStatus.FINALIZED: "Election has already been settled.",
}


@dataclass(frozen=True)
class GateResult:
    """Результат проверки допуска команды."""

    allowed: bool
    block_reason: str

    # Входные параметры для диагностики
    operation: Operation
    status: ElectionStatus

    # Детали
    details: str


class OperationGate:
    """Допуск команды по статусу выборов (stateless)."""

    def evaluate(self, operation: Operation, status: ElectionStatus) -> GateResult:
        """Оценка допуска.

        Args:
            operation: команда
            status: эффективный статус выборов

        Returns:
            GateResult с решением о допуске
        """
        allowed_statuses = ALLOWED_STATUSES[operation]

        if status in allowed_statuses:
            return GateResult(
                allowed=True,
                block_reason="",
                operation=operation,
                status=status,
                details=f"PASS: {operation.value} in status={status.value}"
            )

        return GateResult(
            allowed=False,
            block_reason=f"status_{status.value}",
            operation=operation,
            status=status,
            details=_STATUS_MESSAGES[status]
        )

    def require(self, operation: Operation, status: ElectionStatus) -> GateResult:
        """Проверка допуска с исключением при блокировке.

        Raises:
            AlreadySettled: settlement финализированных выборов
            ValidationError: команда недопустима в текущем статусе
        """
        result = self.evaluate(operation, status)
        if result.allowed:
            return result

        if operation == Operation.SETTLE and status == ElectionStatus.FINALIZED:
            raise AlreadySettled(result.details)
        raise ValidationError(result.details)
