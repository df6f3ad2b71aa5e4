"""
GuildIndex — индекс документов по гильдиям

Один документ на инсталляцию. Для каждой гильдии хранит id документов
выборов, приватной книги голосов и персистентного леджера.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .meta import DocumentMeta


class GuildIndexEntry(BaseModel):
    """Запись индекса для одной гильдии."""

    common_document_id: str = Field(..., min_length=1, alias="commonDocumentId")
    election_document_id: str | None = Field(None, alias="electionDocumentId")
    vote_book_document_id: str | None = Field(None, alias="voteBookDocumentId")
    election_id: str | None = Field(None, alias="electionId")
    created_at: datetime | None = Field(None, alias="createdAt")

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def has_election(self) -> bool:
        return self.election_document_id is not None


class GuildIndex(BaseModel):
    """Индекс: guildId → GuildIndexEntry."""

    maintainer: str = Field("ElectionBot")
    entries: dict[str, GuildIndexEntry] = Field(default_factory=dict)
    meta: DocumentMeta = Field(default_factory=DocumentMeta)

    model_config = {"frozen": True, "populate_by_name": True}

    def with_entry(self, guild_id: str, entry: GuildIndexEntry) -> "GuildIndex":
        return self.model_copy(update={"entries": {**self.entries, guild_id: entry}})

    def without_entry(self, guild_id: str) -> "GuildIndex":
        entries = {k: v for k, v in self.entries.items() if k != guild_id}
        return self.model_copy(update={"entries": entries})
