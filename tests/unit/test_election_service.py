"""
Тесты ElectionService

Проверяет команды поверх in-memory хранилища:
1. Выборы: права администратора, одни выборы на гильдию
2. Партии: создание, заявки на вступление (таймаут), выход, правка, удаление
3. Бонды: создание, покупка/продажа с движением по леджеру, допуск по статусу
4. Казна: перевод и кампании
5. Голосование: регистрация ключа, подпись, повторный голос
6. PartialFailureError при отказе второй записи, возврат списания при бизнес-отказе
"""

from datetime import datetime, timedelta, timezone

import pytest

from electionbot.core.domain.election import ElectionStatus
from electionbot.core.domain.units import BASE_BALANCE, coins_to_units as coins
from electionbot.core.errors import (
    ConcurrencyConflict,
    InsufficientFunds,
    InvalidAmount,
    PartialFailureError,
    PermissionDenied,
    ValidationError,
)
from electionbot.services import campaign_cost


T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
FAKE_PEM = "-----BEGIN PUBLIC KEY-----\nfake\n-----END PUBLIC KEY-----\n"


@pytest.fixture
def green(service, running_election):
    """Партия Green с лидером leader1."""
    return service.create_party("g1", "leader1", "Green", "🟢", "Parks for everyone")


@pytest.fixture
def bonded(service, green):
    """Бонды Green: pool=100 монет, 100 токенов, alpha=1 → k = 100 монет * 100."""
    return service.create_bonds("g1", "leader1", "Green", coins(100), 100, 1.0)


# =============================================================================
# ВЫБОРЫ
# =============================================================================


class TestElections:
    """Создание и удаление выборов"""

    def test_create_running_election(self, service, running_election) -> None:
        assert running_election.status == ElectionStatus.RUNNING
        assert running_election.start_at == T0
        assert running_election.duration_hours == 24.0
        assert set(service.list_elections()) == {"g1"}

    def test_scheduled_election(self, service) -> None:
        election = service.create_election("g1", "Later", is_admin=True, start_at=T0 + timedelta(hours=2))
        assert election.status == ElectionStatus.SCHEDULED

    def test_requires_admin(self, service) -> None:
        with pytest.raises(PermissionDenied, match="electionBotAdmin"):
            service.create_election("g1", "Spring Election", is_admin=False)

    @pytest.mark.parametrize("duration", [0, -1, 169])
    def test_invalid_duration(self, service, duration) -> None:
        with pytest.raises(ValidationError):
            service.create_election("g1", "Spring Election", is_admin=True, duration_hours=duration)

    def test_one_election_per_guild(self, service, running_election) -> None:
        with pytest.raises(ValidationError, match="already exists"):
            service.create_election("g1", "Another", is_admin=True)

    def test_status_advances_with_clock(self, service, clock, running_election) -> None:
        clock.advance(hours=24)
        assert service.get_election("g1").status == ElectionStatus.ENDED

    def test_delete_election_keeps_balances(self, service, bonded) -> None:
        service.delete_election("g1", is_admin=True)

        with pytest.raises(ValidationError, match="No active election found."):
            service.get_election("g1")
        report = service.check_balance("g1", "leader1")
        assert report.available == BASE_BALANCE - coins(100)

    def test_commands_without_election(self, service) -> None:
        with pytest.raises(ValidationError, match="No active election found."):
            service.create_party("g1", "u1", "Green", "🟢")


# =============================================================================
# ПАРТИИ
# =============================================================================


class TestParties:
    """Партии и членство"""

    def test_create_party(self, service, green) -> None:
        assert green.leader_id == "leader1"
        assert green.members == ["leader1"]
        assert service.list_parties("g1")[0].price is None

    @pytest.mark.parametrize("name", ["", "Bad-Name!", "x" * 51])
    def test_invalid_name(self, service, running_election, name) -> None:
        with pytest.raises(ValidationError):
            service.create_party("g1", "u1", name, "🟢")

    def test_duplicate_name(self, service, green) -> None:
        with pytest.raises(ValidationError, match="already exists"):
            service.create_party("g1", "u2", "Green", "🟩")

    def test_one_party_per_user(self, service, green) -> None:
        with pytest.raises(ValidationError, match="already a member"):
            service.create_party("g1", "leader1", "Blue", "🔵")

    def test_join_approved_by_leader(self, service, green) -> None:
        request = service.request_join("g1", "u2", "Green")

        party = service.approve_join("g1", "leader1", request.request_id)

        assert party.members == ["leader1", "u2"]
        assert service.pending_join_requests("g1") == []

    def test_join_approved_by_non_leader(self, service, green) -> None:
        request = service.request_join("g1", "u2", "Green")

        with pytest.raises(PermissionDenied):
            service.approve_join("g1", "u3", request.request_id)
        assert service.pending_join_requests("g1") == [request]

    def test_join_request_times_out(self, service, clock, green) -> None:
        request = service.request_join("g1", "u2", "Green")
        clock.advance(seconds=300)

        with pytest.raises(ValidationError, match="timed out"):
            service.approve_join("g1", "leader1", request.request_id)
        assert service.get_election("g1").party("Green").members == ["leader1"]

    def test_reject_join(self, service, green) -> None:
        request = service.request_join("g1", "u2", "Green")

        service.reject_join("g1", "leader1", request.request_id)

        with pytest.raises(ValidationError, match="not found"):
            service.approve_join("g1", "leader1", request.request_id)

    def test_leave_party(self, service, green) -> None:
        request = service.request_join("g1", "u2", "Green")
        service.approve_join("g1", "leader1", request.request_id)

        party = service.leave_party("g1", "u2")

        assert party.members == ["leader1"]

    def test_leader_cannot_leave(self, service, green) -> None:
        with pytest.raises(ValidationError, match="leaders cannot leave"):
            service.leave_party("g1", "leader1")

    def test_edit_party(self, service, green) -> None:
        party = service.edit_party("g1", "leader1", "Green", agenda="Trees", emoji="🌳")
        assert party.agenda == "Trees"
        assert party.emoji == "🌳"

        with pytest.raises(PermissionDenied):
            service.edit_party("g1", "outsider", "Green", agenda="Concrete")

    def test_delete_party(self, service, green) -> None:
        with pytest.raises(PermissionDenied):
            service.delete_party("g1", "outsider", "Green")

        service.delete_party("g1", "outsider", "Green", is_admin=True)

        assert service.list_parties("g1") == []


# =============================================================================
# БОНДЫ
# =============================================================================


class TestBonds:
    """Создание бондов и торговля"""

    def test_create_bonds_debits_leader(self, service, bonded) -> None:
        assert bonded.k == coins(100) * 100
        assert service.check_balance("g1", "leader1").available == BASE_BALANCE - coins(100)
        assert service.get_election("g1").reserved == {}

    def test_only_leader_creates_bonds(self, service, green) -> None:
        with pytest.raises(PermissionDenied):
            service.create_bonds("g1", "u2", "Green", coins(10), 100, 1.0)
        assert service.check_balance("g1", "u2").available == BASE_BALANCE

    def test_bonds_created_once(self, service, bonded) -> None:
        with pytest.raises(ValidationError, match="already created"):
            service.create_bonds("g1", "leader1", "Green", coins(1), 100, 1.0)

    def test_buy_and_sell_round_trip(self, service, bonded) -> None:
        quote = service.buy_bonds("g1", "u2", "Green", coins(100))

        assert quote.tokens_acquired == 50
        assert quote.new_pool == coins(200)
        assert service.check_balance("g1", "u2").available == BASE_BALANCE - coins(100)
        assert service.check_balance("g1", "u2").token_holdings == {"Green": 50}

        sale = service.sell_bonds("g1", "u2", "Green", 50)

        assert sale.coins_refunded == coins(100)
        party = service.get_election("g1").party("Green")
        assert party.pool == coins(100)
        assert party.sold_tokens == 0
        assert service.check_balance("g1", "u2").available == BASE_BALANCE

    def test_alpha_splits_into_vault(self, service, green) -> None:
        service.create_bonds("g1", "leader1", "Green", coins(10), 1000, 0.25)

        quote = service.buy_bonds("g1", "u2", "Green", coins(4))

        party = service.get_election("g1").party("Green")
        assert quote.pool_contribution == coins(1)
        assert quote.vault_contribution == coins(3)
        assert party.vault == coins(3)

    def test_buy_beyond_balance(self, service, bonded) -> None:
        with pytest.raises(InsufficientFunds):
            service.buy_bonds("g1", "u2", "Green", BASE_BALANCE + 1)

        assert service.get_election("g1").party("Green").sold_tokens == 0
        assert service.check_balance("g1", "u2").available == BASE_BALANCE

    def test_sell_more_than_held(self, service, bonded) -> None:
        service.buy_bonds("g1", "u2", "Green", coins(10))

        with pytest.raises(ValidationError, match="only have"):
            service.sell_bonds("g1", "u2", "Green", 1000)

    def test_trade_gated_until_bonds_and_start(self, service, clock) -> None:
        """Сделка в scheduled без бондов отклоняется; после бондов и startAt проходит."""
        service.create_election("g1", "Later", is_admin=True, start_at=T0 + timedelta(hours=1))
        service.create_party("g1", "leader1", "Green", "🟢")

        with pytest.raises(ValidationError):
            service.buy_bonds("g1", "u2", "Green", coins(1))

        service.create_bonds("g1", "leader1", "Green", coins(100), 100, 1.0)
        with pytest.raises(ValidationError, match="not started"):
            service.buy_bonds("g1", "u2", "Green", coins(1))

        clock.advance(hours=1)
        quote = service.buy_bonds("g1", "u2", "Green", coins(100))

        assert quote.tokens_acquired == 50

    def test_trading_closed_after_end(self, service, clock, bonded) -> None:
        clock.advance(hours=24)

        with pytest.raises(ValidationError, match="has ended"):
            service.buy_bonds("g1", "u2", "Green", coins(1))

    def test_bond_curve_and_history(self, service, bonded) -> None:
        service.buy_bonds("g1", "u2", "Green", coins(100))

        points = service.bond_curve("g1", "Green", steps=5)
        history = service.price_history("g1", "Green")

        assert points[0].sold == 0
        assert points[-1].sold == 99
        assert [p.type for p in history] == ["buy"]
        assert history[0].remaining == 50


# =============================================================================
# КАЗНА
# =============================================================================


class TestVault:
    """Переводы в казну и кампании"""

    def test_transfer_to_party(self, service, green) -> None:
        party = service.transfer_to_party("g1", "leader1", coins(3))

        assert party.vault == coins(3)
        assert service.check_balance("g1", "leader1").available == BASE_BALANCE - coins(3)

    def test_transfer_minimum(self, service, green) -> None:
        with pytest.raises(InvalidAmount, match="Minimum amount"):
            service.transfer_to_party("g1", "leader1", 999)

    def test_transfer_requires_membership(self, service, green) -> None:
        with pytest.raises(ValidationError, match="member of a party"):
            service.transfer_to_party("g1", "outsider", coins(1))

    def test_campaign_paid_from_vault(self, service, green) -> None:
        service.transfer_to_party("g1", "leader1", coins(3))

        receipt = service.campaign("g1", "leader1", "Green", "Vote Green", "Parks and trees")

        assert receipt.cost == coins(1)
        assert receipt.vault_after == coins(2)

    def test_campaign_insufficient_vault(self, service, green) -> None:
        with pytest.raises(InsufficientFunds, match="party vault"):
            service.campaign("g1", "leader1", "Green", "Vote Green", "Parks")

    def test_campaign_cost(self) -> None:
        assert campaign_cost("a", "b") == coins(1)
        assert campaign_cost("h" * 100, "b" * 101) == coins(3)


# =============================================================================
# ГОЛОСОВАНИЕ
# =============================================================================


class TestVoting:
    """Регистрация и голоса"""

    def test_vote_recorded(self, service, green, repository) -> None:
        service.register_voter("g1", "v1", FAKE_PEM)

        vote = service.cast_vote("g1", "v1", "Green", "Green", "valid:Green")

        assert vote.voter_id == "v1"
        assert [v.voter_id for v in repository.get_vote_book("g1").votes] == ["v1"]

    def test_register_twice(self, service, running_election) -> None:
        service.register_voter("g1", "v1", FAKE_PEM)
        with pytest.raises(ValidationError, match="already registered"):
            service.register_voter("g1", "v1", FAKE_PEM)

    def test_invalid_public_key(self, service, running_election) -> None:
        with pytest.raises(ValidationError, match="Invalid public key"):
            service.register_voter("g1", "v1", "garbage")

    def test_unregistered_voter(self, service, green) -> None:
        with pytest.raises(ValidationError, match="register"):
            service.cast_vote("g1", "v1", "Green", "Green", "valid:Green")

    def test_bad_signature(self, service, green) -> None:
        service.register_voter("g1", "v1", FAKE_PEM)
        with pytest.raises(ValidationError, match="Invalid signature"):
            service.cast_vote("g1", "v1", "Green", "Green", "forged")

    def test_message_must_match_party(self, service, green) -> None:
        service.register_voter("g1", "v1", FAKE_PEM)
        with pytest.raises(ValidationError, match="match the party name"):
            service.cast_vote("g1", "v1", "Green", "Blue", "valid:Blue")

    def test_second_vote_rejected(self, service, green) -> None:
        service.register_voter("g1", "v1", FAKE_PEM)
        service.cast_vote("g1", "v1", "Green", "Green", "valid:Green")

        with pytest.raises(ValidationError, match="already voted"):
            service.cast_vote("g1", "v1", "Green", "Green", "valid:Green")

    def test_vote_closed_after_end(self, service, clock, green) -> None:
        service.register_voter("g1", "v1", FAKE_PEM)
        clock.advance(hours=25)

        with pytest.raises(ValidationError, match="has ended"):
            service.cast_vote("g1", "v1", "Green", "Green", "valid:Green")


# =============================================================================
# ЧАСТИЧНЫЕ ОТКАЗЫ
# =============================================================================


class TestPartialFailure:
    """Отказ второй записи после успешной первой"""

    def test_buy_debited_but_election_write_failed(self, service, repository, bonded, monkeypatch) -> None:
        def failing_update(guild_id, transform):
            raise ConcurrencyConflict("Failed to update Election after 3 attempts")

        monkeypatch.setattr(repository, "update_election", failing_update)

        with pytest.raises(PartialFailureError) as exc_info:
            service.buy_bonds("g1", "u2", "Green", coins(10))

        assert "ledger debit" in exc_info.value.completed_step
        assert exc_info.value.failed_step == "token purchase"
        # Списание уже применено
        assert repository.get_common("g1").delta_of("u2") == -coins(10)

    def test_sell_applied_but_credit_failed(self, service, repository, bonded, monkeypatch) -> None:
        service.buy_bonds("g1", "u2", "Green", coins(100))

        def failing_update(guild_id, transform):
            raise ConcurrencyConflict("Failed to update CommonData after 3 attempts")

        monkeypatch.setattr(repository, "update_common", failing_update)

        with pytest.raises(PartialFailureError) as exc_info:
            service.sell_bonds("g1", "u2", "Green", 50)

        assert exc_info.value.context.coins_refunded == coins(100)
        assert service.get_election("g1").party("Green").sold_tokens == 0

    def test_storage_error_after_debit_is_partial(self, service, repository, bonded, monkeypatch) -> None:
        def failing_update(guild_id, transform):
            raise OSError("disk full")

        monkeypatch.setattr(repository, "update_election", failing_update)

        with pytest.raises(PartialFailureError) as exc_info:
            service.buy_bonds("g1", "u2", "Green", coins(1))

        assert isinstance(exc_info.value.__cause__, OSError)
        assert "disk full" in exc_info.value.reason
        assert repository.get_common("g1").delta_of("u2") == -coins(1)

    def test_storage_error_on_sale_credit_is_partial(self, service, repository, bonded, monkeypatch) -> None:
        service.buy_bonds("g1", "u2", "Green", coins(100))

        def failing_update(guild_id, transform):
            raise OSError("disk full")

        monkeypatch.setattr(repository, "update_common", failing_update)

        with pytest.raises(PartialFailureError) as exc_info:
            service.sell_bonds("g1", "u2", "Green", 50)

        assert isinstance(exc_info.value.__cause__, OSError)
        assert exc_info.value.context.coins_refunded == coins(100)

    def test_election_ended_after_debit_refunds(self, service, repository, clock, bonded, monkeypatch) -> None:
        original_debit = service._debit

        def debit_then_end(guild_id, user_id, amount, reserved):
            original_debit(guild_id, user_id, amount, reserved)
            clock.advance(hours=25)

        monkeypatch.setattr(service, "_debit", debit_then_end)

        with pytest.raises(ValidationError, match="Election has ended"):
            service.buy_bonds("g1", "u2", "Green", coins(1))

        # Списание компенсировано, токены не выданы
        assert repository.get_common("g1").delta_of("u2") == 0
        assert service.check_balance("g1", "u2").available == BASE_BALANCE
        green = service.get_election("g1").party("Green")
        assert green.sold_tokens == 0
        assert green.holdings_of("u2") == 0

    def test_concurrent_create_bonds_refunds_loser(self, service, green, monkeypatch) -> None:
        original_debit = service._debit

        def debit_then_race(guild_id, user_id, amount, reserved):
            original_debit(guild_id, user_id, amount, reserved)
            monkeypatch.setattr(service, "_debit", original_debit)
            service.create_bonds("g1", "leader1", "Green", coins(50), 100, 1.0)

        monkeypatch.setattr(service, "_debit", debit_then_race)

        with pytest.raises(ValidationError, match="already created"):
            service.create_bonds("g1", "leader1", "Green", coins(40), 100, 1.0)

        assert service.get_election("g1").party("Green").pool == coins(50)
        assert service.check_balance("g1", "leader1").available == BASE_BALANCE - coins(50)

    def test_failed_refund_is_partial(self, service, repository, bonded, monkeypatch) -> None:
        original_update_common = repository.update_common
        calls = []

        def update_common_once(guild_id, transform):
            calls.append(guild_id)
            if len(calls) > 1:
                raise OSError("disk full")
            return original_update_common(guild_id, transform)

        def rejecting_update(guild_id, transform):
            raise ValidationError("Election has ended.")

        monkeypatch.setattr(repository, "update_common", update_common_once)
        monkeypatch.setattr(repository, "update_election", rejecting_update)

        with pytest.raises(PartialFailureError) as exc_info:
            service.buy_bonds("g1", "u2", "Green", coins(1))

        assert "refund" in exc_info.value.failed_step
        assert isinstance(exc_info.value.__cause__, ValidationError)
        assert len(calls) == 2
        assert repository.get_common("g1").delta_of("u2") == -coins(1)

    def test_business_error_before_debit_is_not_partial(self, service, bonded) -> None:
        with pytest.raises(InvalidAmount):
            service.buy_bonds("g1", "u2", "Green", 0)
        assert service.check_balance("g1", "u2").available == BASE_BALANCE
