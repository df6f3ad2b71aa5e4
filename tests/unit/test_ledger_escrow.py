"""
Тесты леджера и эскроу

Проверяет:
1. available = BASE + delta - reserved
2. Списание с проверкой баланса и зачисление
3. Валидацию сумм (InvalidAmount)
4. reserve/release (clamp к нулю) и escrow в одном вызове
"""

from datetime import datetime, timezone

import pytest

from electionbot.core.domain.common_data import CommonData
from electionbot.core.domain.election import Election
from electionbot.core.domain.units import BASE_BALANCE, MIN_TRANSFER_UNITS
from electionbot.core.errors import InsufficientFunds, InvalidAmount, ValidationError
from electionbot.ledger import (
    apply_deltas,
    available_balance,
    credit,
    escrow,
    release,
    reserve,
    spend,
    total_balance,
    validate_transfer_amount,
)


T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def common():
    return CommonData(guild_id="g1", balances={"rich": 50_000_000, "poor": -99_000_000})


@pytest.fixture
def election():
    return Election(
        election_id="e1",
        name="Test",
        guild_id="g1",
        created_at=T0,
        start_at=T0,
        duration_hours=24,
        reserved={"rich": 10_000_000},
    )


# =============================================================================
# БАЛАНСЫ
# =============================================================================


class TestBalances:
    """Тесты вычисления баланса"""

    def test_new_user_has_base_balance(self, common) -> None:
        assert total_balance(common, "newcomer") == BASE_BALANCE
        assert available_balance(common, "newcomer") == BASE_BALANCE

    def test_adjustment_applied(self, common) -> None:
        assert total_balance(common, "rich") == BASE_BALANCE + 50_000_000
        assert total_balance(common, "poor") == 1_000_000

    def test_reserved_subtracted(self, common, election) -> None:
        assert available_balance(common, "rich", election) == BASE_BALANCE + 40_000_000
        assert available_balance(common, "poor", election) == 1_000_000


# =============================================================================
# ДВИЖЕНИЯ
# =============================================================================


class TestSpendAndCredit:
    """Тесты spend/credit/apply_deltas"""

    def test_spend_debits(self, common) -> None:
        updated = spend(common, "poor", 400_000)
        assert updated.delta_of("poor") == -99_400_000
        # Исходный снапшот не изменён
        assert common.delta_of("poor") == -99_000_000

    def test_spend_exact_available(self, common) -> None:
        updated = spend(common, "poor", 1_000_000)
        assert total_balance(updated, "poor") == 0

    def test_spend_insufficient(self, common) -> None:
        with pytest.raises(InsufficientFunds) as exc_info:
            spend(common, "poor", 1_000_001)
        assert exc_info.value.available == 1_000_000
        assert exc_info.value.required == 1_000_001
        assert "Insufficient funds" in exc_info.value.reason

    def test_spend_respects_reservation(self, common) -> None:
        with pytest.raises(InsufficientFunds):
            spend(common, "poor", 600_000, reserved=500_000)

    @pytest.mark.parametrize("amount", [0, -5, 1.5, True])
    def test_spend_invalid_amount(self, common, amount) -> None:
        with pytest.raises(InvalidAmount):
            spend(common, "rich", amount)

    def test_credit(self, common) -> None:
        assert credit(common, "newcomer", 250).delta_of("newcomer") == 250

    def test_credit_zero_is_noop(self, common) -> None:
        assert credit(common, "rich", 0) is common

    @pytest.mark.parametrize("amount", [-1, 0.5, True])
    def test_credit_invalid_amount_rejected(self, common, amount) -> None:
        with pytest.raises(InvalidAmount, match="Credit amount"):
            credit(common, "rich", amount)

    def test_apply_deltas_in_one_snapshot(self, common) -> None:
        updated = apply_deltas(common, {"rich": -10, "poor": 20, "idle": 0})
        assert updated.delta_of("rich") == 50_000_000 - 10
        assert updated.delta_of("poor") == -99_000_000 + 20
        assert "idle" not in updated.balances


class TestTransferValidation:
    """Минимальный номинал перевода"""

    def test_minimum_accepted(self) -> None:
        validate_transfer_amount(MIN_TRANSFER_UNITS)

    def test_below_minimum(self) -> None:
        with pytest.raises(InvalidAmount, match="Minimum amount is 0.001 coins"):
            validate_transfer_amount(MIN_TRANSFER_UNITS - 1)

    def test_invalid_amount_is_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            validate_transfer_amount(0)


# =============================================================================
# ЭСКРОУ
# =============================================================================


class TestEscrow:
    """Тесты reserve/release/escrow"""

    def test_reserve_and_release(self, election) -> None:
        held = reserve(election, "u1", 300)
        assert held.reserved_for("u1") == 300

        released = release(held, "u1", 300)
        assert released.reserved_for("u1") == 0
        assert "u1" not in released.reserved

    def test_release_clamps_to_zero(self, election) -> None:
        released = release(election, "rich", 99_000_000)
        assert released.reserved_for("rich") == 0

    def test_release_unknown_user(self, election) -> None:
        assert release(election, "ghost", 10).reserved_for("ghost") == 0

    def test_escrow_visible_inside_effect(self, election) -> None:
        seen = {}

        def effect(held):
            seen["reserved"] = held.reserved_for("rich")
            return held, "done"

        updated, result = escrow(election, "rich", 5_000_000, effect)

        assert seen["reserved"] == 15_000_000
        assert result == "done"
        assert updated.reserved_for("rich") == 10_000_000

    def test_escrow_effect_failure_propagates(self, election) -> None:
        def effect(held):
            raise InsufficientFunds("nope")

        with pytest.raises(InsufficientFunds):
            escrow(election, "rich", 1, effect)
        assert election.reserved_for("rich") == 10_000_000
