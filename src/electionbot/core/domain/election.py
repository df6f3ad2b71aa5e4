"""
Election — Модель выборов гильдии

Immutable Pydantic модель, представляющая снапшот выборов:
- Метаданные (electionId, name, guildId, createdAt)
- Окно выборов (startAt, durationHours) и статус
- Партии (parties), эскроу (reserved), зарегистрированные избиратели
- Версия документа (meta) для optimistic concurrency

Ровно одни активные выборы на гильдию.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Final

from pydantic import BaseModel, Field

from .meta import DocumentMeta
from .party import Party


# Максимальная длительность выборов (1 неделя)
MAX_DURATION_HOURS: Final[float] = 168.0


# =============================================================================
# ENUMS
# =============================================================================


class ElectionStatus(str, Enum):
    """
    Статус выборов.

    Линейный порядок: scheduled → running → ended → finalized.
    """

    SCHEDULED = "scheduled"
    RUNNING = "running"
    ENDED = "ended"
    FINALIZED = "finalized"

    @property
    def rank(self) -> int:
        """Порядковый номер в жизненном цикле (для запрета обратных переходов)."""
        return _STATUS_ORDER.index(self)


_STATUS_ORDER: Final[tuple[ElectionStatus, ...]] = (
    ElectionStatus.SCHEDULED,
    ElectionStatus.RUNNING,
    ElectionStatus.ENDED,
    ElectionStatus.FINALIZED,
)


# =============================================================================
# ELECTION MODEL
# =============================================================================


class Election(BaseModel):
    """
    Модель выборов (election snapshot).

    Immutable модель (frozen=True). Все изменения создают новый экземпляр.
    """

    # Метаданные
    election_id: str = Field(..., min_length=1, alias="electionId")
    name: str = Field(..., min_length=1)
    guild_id: str = Field(..., min_length=1, alias="guildId")
    created_at: datetime = Field(..., alias="createdAt")

    # Окно выборов
    start_at: datetime = Field(..., alias="startAt")
    duration_hours: float = Field(..., gt=0, le=MAX_DURATION_HOURS, alias="durationHours")
    status: ElectionStatus = Field(ElectionStatus.SCHEDULED)

    # Состояние
    parties: dict[str, Party] = Field(default_factory=dict)
    reserved: dict[str, int] = Field(
        default_factory=dict, description="Эскроу: userId → зарезервированная сумма (units)"
    )
    registered_voters: dict[str, str] = Field(
        default_factory=dict,
        alias="registeredVoters",
        description="userId → публичный ключ (PEM)",
    )

    meta: DocumentMeta = Field(default_factory=DocumentMeta)

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def end_at(self) -> datetime:
        """Момент окончания голосования."""
        return self.start_at + timedelta(hours=self.duration_hours)

    def party(self, name: str) -> Party | None:
        return self.parties.get(name)

    def party_of(self, user_id: str) -> Party | None:
        """Партия, в которой состоит пользователь (не более одной)."""
        for party in self.parties.values():
            if party.is_member(user_id):
                return party
        return None

    def with_party(self, party: Party) -> "Election":
        """Новый снапшот с добавленной/заменённой партией."""
        return self.model_copy(update={"parties": {**self.parties, party.name: party}})

    def without_party(self, name: str) -> "Election":
        parties = {k: v for k, v in self.parties.items() if k != name}
        return self.model_copy(update={"parties": parties})

    def reserved_for(self, user_id: str) -> int:
        return self.reserved.get(user_id, 0)
