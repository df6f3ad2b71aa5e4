"""Election Lifecycle — машина состояний выборов.

Состояния: scheduled → running → ended → finalized (линейно, без обратных переходов).

- scheduled → running: автоматически, когда now >= startAt
- running → ended: автоматически, когда now >= startAt + durationHours
- ended → finalized: только явным settlement

Фонового планировщика нет: статус вычисляется лениво при чтении
сравнением now с сохранёнными временными метками.
"""

from dataclasses import dataclass
from datetime import datetime

from electionbot.core.domain.election import Election, ElectionStatus
from electionbot.core.errors import AlreadySettled, ValidationError


@dataclass(frozen=True)
class LifecycleTransitionResult:
    """Результат оценки перехода статуса выборов."""

    new_status: ElectionStatus
    previous_status: ElectionStatus

    # Диагностика
    transition_occurred: bool
    transition_reason: str

    # Для отладки
    details: str


class ElectionLifecycle:
    """Машина состояний выборов на основе времени.

    Stateless: вся информация берётся из снапшота выборов и now.
    """

    def evaluate(self, election: Election, now: datetime) -> LifecycleTransitionResult:
        """Оценка статуса выборов на момент now.

        Args:
            election: снапшот выборов
            now: текущее время (timezone-aware)

        Returns:
            LifecycleTransitionResult с эффективным статусом
        """
        current = election.status

        # 1. finalized: терминальное состояние
        if current == ElectionStatus.FINALIZED:
            return self._create_result(
                new_status=current,
                previous_status=current,
                transition_occurred=False,
                transition_reason="finalized",
                details="Election is finalized"
            )

        # 2. Целевой статус по времени
        target = self._determine_time_status(election, now)

        # 3. Обратные переходы запрещены (например, startAt перенесён в будущее)
        if target.rank <= current.rank:
            return self._create_result(
                new_status=current,
                previous_status=current,
                transition_occurred=False,
                transition_reason="no_transition",
                details=f"Status={current.value}, now={now.isoformat()}"
            )

        return self._create_result(
            new_status=target,
            previous_status=current,
            transition_occurred=True,
            transition_reason=f"time_based_transition_{current.value}_to_{target.value}",
            details=(
                f"Time-based transition: {current.value} → {target.value}, "
                f"startAt={election.start_at.isoformat()}, endAt={election.end_at.isoformat()}"
            )
        )

    def advance(self, election: Election, now: datetime) -> Election:
        """Снапшот с эффективным статусом (тот же объект, если перехода нет)."""
        result = self.evaluate(election, now)
        if not result.transition_occurred:
            return election
        return election.model_copy(update={"status": result.new_status})

    def finalize(self, election: Election, now: datetime) -> Election:
        """Переход ended → finalized (только для settlement).

        Raises:
            AlreadySettled: выборы уже финализированы
            ValidationError: выборы ещё не закончились
        """
        current = self.advance(election, now)

        if current.status == ElectionStatus.FINALIZED:
            raise AlreadySettled("Election has already been settled.")

        if current.status != ElectionStatus.ENDED:
            raise ValidationError(
                f"Election is still running. It ends at {current.end_at.isoformat()}"
            )

        return current.model_copy(update={"status": ElectionStatus.FINALIZED})

    def initial_status(self, start_at: datetime, now: datetime) -> ElectionStatus:
        """Статус новых выборов: running, если startAt <= now, иначе scheduled."""
        return ElectionStatus.RUNNING if start_at <= now else ElectionStatus.SCHEDULED

    def _determine_time_status(self, election: Election, now: datetime) -> ElectionStatus:
        """Статус, диктуемый только временем."""
        if now >= election.end_at:
            return ElectionStatus.ENDED
        if now >= election.start_at:
            return ElectionStatus.RUNNING
        return ElectionStatus.SCHEDULED

    def _create_result(
        self,
        new_status: ElectionStatus,
        previous_status: ElectionStatus,
        transition_occurred: bool,
        transition_reason: str,
        details: str
    ) -> LifecycleTransitionResult:
        """Создание результата перехода."""
        return LifecycleTransitionResult(
            new_status=new_status,
            previous_status=previous_status,
            transition_occurred=transition_occurred,
            transition_reason=transition_reason,
            details=details
        )
