"""
Тесты GuildRepository

Проверяет:
1. Разрешение id индекса: явный > pointer-файл > новый документ
2. ensure_common: один леджер на гильдию, переживает удаление выборов
3. create_election_documents: одни выборы на гильдию, откат при отказе
4. delete_election_documents / reset_guild
"""

import json
from datetime import datetime, timezone

import pytest

from electionbot.core.domain.election import Election
from electionbot.core.errors import ValidationError
from electionbot.storage import GuildRepository, InMemoryTransport


T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_election(guild_id="g1", election_id="e1") -> Election:
    return Election(
        election_id=election_id,
        name="Spring Election",
        guild_id=guild_id,
        created_at=T0,
        start_at=T0,
        duration_hours=24,
    )


@pytest.fixture
def transport():
    return InMemoryTransport()


@pytest.fixture
def repository(transport):
    return GuildRepository(transport, sleep=lambda _: None)


# =============================================================================
# ИНДЕКС
# =============================================================================


class TestIndexResolution:
    """Тесты выбора документа индекса"""

    def test_creates_index_lazily(self, transport, repository) -> None:
        assert len(transport) == 0

        index_id = repository.index_document_id

        assert index_id in transport
        assert repository.get_index().entries == {}

    def test_explicit_index_id(self, transport, repository) -> None:
        index_id = repository.index_document_id

        other = GuildRepository(transport, index_document_id=index_id)

        assert other.index_document_id == index_id

    def test_pointer_file_written_and_reused(self, transport, tmp_path) -> None:
        pointer = tmp_path / "state" / "index.json"

        first = GuildRepository(transport, pointer_path=pointer)
        index_id = first.index_document_id

        with open(pointer, "r", encoding="utf-8") as f:
            assert json.load(f) == {"indexDocumentId": index_id}

        second = GuildRepository(transport, pointer_path=pointer)
        assert second.index_document_id == index_id
        assert len(transport) == 1

    def test_require_election_entry_without_election(self, repository) -> None:
        with pytest.raises(ValidationError, match="No active election found."):
            repository.require_election_entry("g1")


# =============================================================================
# COMMON DATA
# =============================================================================


class TestCommonData:
    """Тесты леджера гильдии"""

    def test_ensure_common_idempotent(self, repository) -> None:
        first = repository.ensure_common("g1")
        assert repository.ensure_common("g1") == first
        assert repository.ensure_common("g2") != first

    def test_get_common_for_unknown_guild(self, transport, repository) -> None:
        common = repository.get_common("g1")

        assert common.guild_id == "g1"
        assert common.balances == {}
        # Пустой леджер не создаёт документ
        assert repository.entry("g1") is None

    def test_update_common(self, repository) -> None:
        updated, result = repository.update_common(
            "g1", lambda common: (common.with_deltas({"u1": 7}), "ok")
        )

        assert result == "ok"
        assert updated.delta_of("u1") == 7
        assert repository.get_common("g1").delta_of("u1") == 7

    def test_ensure_common_race_keeps_single_ledger(self, transport, repository, monkeypatch) -> None:
        """Параллельный создатель успел зарегистрировать свой леджер."""
        winner_id = repository.ensure_common("g1")
        before = len(transport)

        # Опоздавший создатель не видит запись на момент проверки
        monkeypatch.setattr(repository, "entry", lambda guild_id: None)
        loser_result = repository.ensure_common("g1")
        monkeypatch.undo()

        assert loser_result == winner_id
        assert len(transport) == before


# =============================================================================
# ДОКУМЕНТЫ ВЫБОРОВ
# =============================================================================


class TestElectionDocuments:
    """Тесты создания и удаления выборов"""

    def test_create_registers_entry(self, repository) -> None:
        entry = repository.create_election_documents(make_election())

        assert entry.election_id == "e1"
        assert entry.has_election
        assert repository.get_election("g1").election_id == "e1"
        assert repository.get_vote_book("g1").votes == []

    def test_second_election_rejected_and_rolled_back(self, transport, repository) -> None:
        repository.create_election_documents(make_election())
        before = len(transport)

        with pytest.raises(ValidationError, match="already exists"):
            repository.create_election_documents(make_election(election_id="e2"))

        assert len(transport) == before
        assert repository.get_election("g1").election_id == "e1"

    def test_update_election(self, repository) -> None:
        repository.create_election_documents(make_election())

        updated, _ = repository.update_election(
            "g1", lambda election: (election.model_copy(update={"name": "Renamed"}), None)
        )

        assert updated.meta.version == 2
        assert repository.get_election("g1").name == "Renamed"

    def test_delete_keeps_common(self, transport, repository) -> None:
        repository.create_election_documents(make_election())
        repository.update_common("g1", lambda common: (common.with_deltas({"u1": -5}), None))
        common_id = repository.entry("g1").common_document_id

        removed = repository.delete_election_documents("g1")

        assert removed.election_id == "e1"
        assert removed.election_document_id not in transport
        assert removed.vote_book_document_id not in transport
        assert repository.entry("g1").common_document_id == common_id
        assert repository.get_common("g1").delta_of("u1") == -5

        with pytest.raises(ValidationError):
            repository.get_election("g1")

    def test_new_election_reuses_common(self, repository) -> None:
        repository.create_election_documents(make_election())
        common_id = repository.entry("g1").common_document_id
        repository.delete_election_documents("g1")

        entry = repository.create_election_documents(make_election(election_id="e2"))

        assert entry.common_document_id == common_id

    def test_delete_without_election(self, repository) -> None:
        with pytest.raises(ValidationError):
            repository.delete_election_documents("g1")

    def test_reset_guild(self, repository) -> None:
        repository.create_election_documents(make_election())

        removed = repository.reset_guild("g1")

        assert removed is not None
        assert repository.entry("g1") is None
        assert repository.reset_guild("g1") is None

    def test_list_entries(self, repository) -> None:
        repository.create_election_documents(make_election("g1"))
        repository.create_election_documents(make_election("g2", "e2"))

        assert set(repository.list_entries()) == {"g1", "g2"}
