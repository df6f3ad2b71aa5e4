"""
DocumentMeta — метаданные версионируемого документа

Каждый документ, который проходит через VersionedStateStore (Election, CommonData,
VoteBook, GuildIndex), содержит блок meta с монотонной версией.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Текущее время (UTC, timezone-aware)."""
    return datetime.now(timezone.utc)


class DocumentMeta(BaseModel):
    """Версия документа и время последнего обновления."""

    version: int = Field(1, ge=0, description="Монотонная версия документа")
    last_updated: datetime = Field(
        default_factory=utc_now,
        alias="lastUpdated",
        description="Время последней успешной записи (UTC)",
    )

    model_config = {"frozen": True, "populate_by_name": True}

    def bump(self, now: datetime | None = None) -> "DocumentMeta":
        """Новая meta с version + 1."""
        return DocumentMeta(version=self.version + 1, last_updated=now or utc_now())
