"""
GuildRepository — документы гильдий поверх VersionedStateStore

Документы:
- GuildIndex (один на инсталляцию): guildId → id документов гильдии
- Election (публичный снапшот выборов)
- VoteBook (приватная книга голосов)
- CommonData (леджер; создаётся один раз на гильдию и переживает выборы)

Id индекса: явно переданный > сохранённый в pointer-файле > новый документ.
"""

import json
import os
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, TypeVar

from electionbot.core.contracts.validators import DocumentKind, contract_for
from electionbot.core.domain.common_data import CommonData
from electionbot.core.domain.election import Election
from electionbot.core.domain.guild_index import GuildIndex, GuildIndexEntry
from electionbot.core.domain.vote import VoteBook
from electionbot.core.errors import DocumentNotFound, ValidationError
from electionbot.storage.transport import DocumentTransport
from electionbot.storage.versioned_store import (
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_MAX_RETRIES,
    VersionedStateStore,
)
from electionbot.utils.logger import get_logger

logger = get_logger("storage.repository")

NO_ACTIVE_ELECTION = "No active election found."

R = TypeVar("R")


class GuildRepository:
    """Доступ к документам гильдий через типизированные хранилища."""

    def __init__(
        self,
        transport: DocumentTransport,
        index_document_id: Optional[str] = None,
        pointer_path: Optional[str | Path] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Args:
            transport: Внешнее хранилище документов
            index_document_id: Id существующего индекса
            pointer_path: JSON-файл, в котором запоминается id индекса
            max_retries: Попытки atomic_update для всех документов
            backoff_seconds: Шаг линейной паузы
            sleep: Функция паузы (тесты)
        """
        store_options = {"max_retries": max_retries, "backoff_seconds": backoff_seconds}
        if sleep is not None:
            store_options["sleep"] = sleep

        self.transport = transport
        self.index_store = VersionedStateStore(
            transport, GuildIndex, contract_for(DocumentKind.GUILD_INDEX), **store_options
        )
        self.elections = VersionedStateStore(
            transport, Election, contract_for(DocumentKind.ELECTION), **store_options
        )
        self.vote_books = VersionedStateStore(
            transport, VoteBook, contract_for(DocumentKind.VOTE_BOOK), **store_options
        )
        self.commons = VersionedStateStore(
            transport, CommonData, contract_for(DocumentKind.COMMON_DATA), **store_options
        )

        self._pointer_path = Path(pointer_path) if pointer_path is not None else None
        self._index_document_id = index_document_id

    # =========================================================================
    # ИНДЕКС
    # =========================================================================

    @property
    def index_document_id(self) -> str:
        if self._index_document_id is None:
            self._index_document_id = self._resolve_index()
        return self._index_document_id

    def _resolve_index(self) -> str:
        if self._pointer_path is not None and self._pointer_path.exists():
            with open(self._pointer_path, "r", encoding="utf-8") as f:
                document_id = json.load(f)["indexDocumentId"]
            logger.info("Using guild index %s from %s", document_id, self._pointer_path)
            return document_id

        document_id, _ = self.index_store.create(GuildIndex())
        logger.info("Created guild index %s", document_id)

        if self._pointer_path is not None:
            os.makedirs(self._pointer_path.parent, exist_ok=True)
            with open(self._pointer_path, "w", encoding="utf-8") as f:
                json.dump({"indexDocumentId": document_id}, f)
        return document_id

    def get_index(self) -> GuildIndex:
        index, _ = self.index_store.get(self.index_document_id)
        return index

    def entry(self, guild_id: str) -> Optional[GuildIndexEntry]:
        return self.get_index().entries.get(guild_id)

    def require_election_entry(self, guild_id: str) -> GuildIndexEntry:
        """
        Raises:
            ValidationError: У гильдии нет активных выборов
        """
        entry = self.entry(guild_id)
        if entry is None or not entry.has_election:
            raise ValidationError(NO_ACTIVE_ELECTION)
        return entry

    def list_entries(self) -> Dict[str, GuildIndexEntry]:
        return dict(self.get_index().entries)

    # =========================================================================
    # COMMON DATA
    # =========================================================================

    def ensure_common(self, guild_id: str) -> str:
        """
        Id леджера гильдии; создаётся при первом обращении.

        При гонке двух создателей в индекс попадает один документ,
        второй удаляется.
        """
        entry = self.entry(guild_id)
        if entry is not None:
            return entry.common_document_id

        created_id, _ = self.commons.create(CommonData(guild_id=guild_id))

        def register(index: GuildIndex) -> Tuple[GuildIndex, str]:
            existing = index.entries.get(guild_id)
            if existing is not None:
                return index, existing.common_document_id
            return index.with_entry(guild_id, GuildIndexEntry(common_document_id=created_id)), created_id

        _, common_id = self.index_store.atomic_update_with_result(self.index_document_id, register)
        if common_id != created_id:
            self.commons.delete(created_id)
        else:
            logger.info("Created common ledger %s for guild %s", common_id, guild_id)
        return common_id

    def get_common(self, guild_id: str) -> CommonData:
        """Леджер гильдии (пустой, если гильдия ещё не создавала выборы)."""
        entry = self.entry(guild_id)
        if entry is None:
            return CommonData(guild_id=guild_id)
        common, _ = self.commons.get(entry.common_document_id)
        return common

    def update_common(
        self,
        guild_id: str,
        transform: Callable[[CommonData], Tuple[CommonData, R]],
    ) -> Tuple[CommonData, R]:
        return self.commons.atomic_update_with_result(self.ensure_common(guild_id), transform)

    # =========================================================================
    # ELECTION / VOTE BOOK
    # =========================================================================

    def get_election(self, guild_id: str) -> Election:
        entry = self.require_election_entry(guild_id)
        election, _ = self.elections.get(entry.election_document_id)
        return election

    def update_election(
        self,
        guild_id: str,
        transform: Callable[[Election], Tuple[Election, R]],
    ) -> Tuple[Election, R]:
        entry = self.require_election_entry(guild_id)
        return self.elections.atomic_update_with_result(entry.election_document_id, transform)

    def get_vote_book(self, guild_id: str) -> VoteBook:
        entry = self.require_election_entry(guild_id)
        vote_book, _ = self.vote_books.get(entry.vote_book_document_id)
        return vote_book

    def update_vote_book(
        self,
        guild_id: str,
        transform: Callable[[VoteBook], Tuple[VoteBook, R]],
    ) -> Tuple[VoteBook, R]:
        entry = self.require_election_entry(guild_id)
        return self.vote_books.atomic_update_with_result(entry.vote_book_document_id, transform)

    def create_election_documents(self, election: Election) -> GuildIndexEntry:
        """
        Создание документов выборов и регистрация их в индексе.

        Raises:
            ValidationError: У гильдии уже есть выборы
        """
        guild_id = election.guild_id
        common_id = self.ensure_common(guild_id)

        election_doc_id, _ = self.elections.create(election)
        vote_book_doc_id, _ = self.vote_books.create(VoteBook(election_id=election.election_id))

        def register(index: GuildIndex) -> Tuple[GuildIndex, GuildIndexEntry]:
            existing = index.entries.get(guild_id)
            if existing is not None and existing.has_election:
                raise ValidationError(
                    "An election already exists for this server. Delete it before creating a new one."
                )
            entry = GuildIndexEntry(
                common_document_id=existing.common_document_id if existing else common_id,
                election_document_id=election_doc_id,
                vote_book_document_id=vote_book_doc_id,
                election_id=election.election_id,
                created_at=election.created_at,
            )
            return index.with_entry(guild_id, entry), entry

        try:
            _, entry = self.index_store.atomic_update_with_result(self.index_document_id, register)
        except Exception:
            self.elections.delete(election_doc_id)
            self.vote_books.delete(vote_book_doc_id)
            raise

        logger.info(
            "Created election %s for guild %s (election doc %s, vote book %s)",
            election.election_id,
            guild_id,
            election_doc_id,
            vote_book_doc_id,
        )
        return entry

    def delete_election_documents(self, guild_id: str) -> GuildIndexEntry:
        """
        Удаление выборов и книги голосов; леджер гильдии сохраняется.

        Returns:
            Запись индекса до удаления
        """

        def detach(index: GuildIndex) -> Tuple[GuildIndex, GuildIndexEntry]:
            entry = index.entries.get(guild_id)
            if entry is None or not entry.has_election:
                raise ValidationError(NO_ACTIVE_ELECTION)
            return index.with_entry(guild_id, GuildIndexEntry(common_document_id=entry.common_document_id)), entry

        _, removed = self.index_store.atomic_update_with_result(self.index_document_id, detach)

        for store, document_id in (
            (self.elections, removed.election_document_id),
            (self.vote_books, removed.vote_book_document_id),
        ):
            if document_id is None:
                continue
            try:
                store.delete(document_id)
            except DocumentNotFound:
                logger.warning("Document %s was already gone while deleting election for guild %s", document_id, guild_id)

        logger.info("Deleted election %s for guild %s", removed.election_id, guild_id)
        return removed

    def reset_guild(self, guild_id: str) -> Optional[GuildIndexEntry]:
        """
        Удаление записи гильдии из индекса без удаления документов.

        Returns:
            Удалённая запись или None, если гильдии не было в индексе
        """

        def drop(index: GuildIndex) -> Tuple[GuildIndex, Optional[GuildIndexEntry]]:
            entry = index.entries.get(guild_id)
            if entry is None:
                return index, None
            return index.without_entry(guild_id), entry

        _, removed = self.index_store.atomic_update_with_result(self.index_document_id, drop)
        if removed is not None:
            logger.warning("Guild %s reset: index entry removed, documents left in storage", guild_id)
        return removed
