"""
Ledger / Escrow — учёт балансов и краткосрочные резервирования

Доступный баланс:
    available(user) = BASE_BALANCE + common.balances[user] - election.reserved[user]

Протокол эскроу (внутри ОДНОЙ transform-функции atomic_update):
    1. проверить available >= amount
    2. reserved[user] += amount
    3. выполнить эффект
    4. reserved[user] -= amount (clamp к нулю)

После записи reserved возвращается к исходному значению, а конкурентный
читатель промежуточного снапшота не видит одни и те же деньги дважды.
Резервирование никогда не разбивается на два вызова atomic_update.
"""

from typing import Callable, TypeVar

from electionbot.core.domain.common_data import CommonData
from electionbot.core.domain.election import Election
from electionbot.core.domain.units import BASE_BALANCE, MIN_TRANSFER_UNITS, format_coins
from electionbot.core.errors import InsufficientFunds, InvalidAmount
from electionbot.core.math.numerical_safeguards import (
    clamp,
    validate_non_negative_integer,
    validate_positive_integer,
)

T = TypeVar("T")


# =============================================================================
# БАЛАНСЫ
# =============================================================================


def total_balance(common: CommonData, user_id: str) -> int:
    """Баланс без учёта резервирований: BASE_BALANCE + delta."""
    return BASE_BALANCE + common.delta_of(user_id)


def available_balance(
    common: CommonData,
    user_id: str,
    election: Election | None = None,
) -> int:
    """
    Доступный баланс пользователя.

    Args:
        common: Леджер гильдии
        user_id: Пользователь
        election: Текущие выборы (источник reserved); None — резервов нет

    Returns:
        BASE_BALANCE + balances[user] - reserved[user]
    """
    reserved = election.reserved_for(user_id) if election is not None else 0
    return total_balance(common, user_id) - reserved


def validate_amount(amount: int, minimum: int = 1) -> None:
    """
    Валидация суммы перевода.

    Raises:
        InvalidAmount: Если сумма не целая, неположительная или ниже минимума
    """
    try:
        validate_positive_integer(amount, "Amount")
    except ValueError as e:
        raise InvalidAmount(str(e)) from e

    if amount < minimum:
        raise InvalidAmount(
            f"Minimum amount is {format_coins(minimum, places=3)} coins, "
            f"got {format_coins(amount)} coins"
        )


def validate_transfer_amount(amount: int) -> None:
    """Валидация перевода с минимальным номиналом MIN_TRANSFER_UNITS."""
    validate_amount(amount, minimum=MIN_TRANSFER_UNITS)


# =============================================================================
# ДВИЖЕНИЯ ПО ЛЕДЖЕРУ
# =============================================================================


def spend(
    common: CommonData,
    user_id: str,
    amount: int,
    reserved: int = 0,
) -> CommonData:
    """
    Списание с проверкой доступного баланса.

    Вызывается внутри transform для CommonData: проверка и списание
    выполняются на одном и том же снапшоте, поэтому два конкурентных
    списания сериализуются условной записью хранилища.

    Args:
        common: Текущий снапшот леджера
        user_id: Плательщик
        amount: Сумма (units)
        reserved: Резерв пользователя в текущих выборах

    Raises:
        InvalidAmount: Некорректная сумма
        InsufficientFunds: available < amount
    """
    validate_amount(amount)

    available = total_balance(common, user_id) - reserved
    if available < amount:
        raise InsufficientFunds(
            f"Insufficient funds. Available: {format_coins(available)} coins, "
            f"Required: {format_coins(amount)} coins",
            available=available,
            required=amount,
        )

    return common.with_deltas({user_id: -amount})


def credit(common: CommonData, user_id: str, amount: int) -> CommonData:
    """Зачисление (amount >= 0)."""
    _require_non_negative(amount, "Credit amount")
    if amount == 0:
        return common
    return common.with_deltas({user_id: amount})


def apply_deltas(common: CommonData, deltas: dict[str, int]) -> CommonData:
    """Применение набора корректировок одним снапшотом (settlement)."""
    non_zero = {user_id: delta for user_id, delta in deltas.items() if delta != 0}
    if not non_zero:
        return common
    return common.with_deltas(non_zero)


# =============================================================================
# ЭСКРОУ
# =============================================================================


def reserve(election: Election, user_id: str, amount: int) -> Election:
    """reserved[user] += amount."""
    _require_non_negative(amount, "Reservation")
    reserved = dict(election.reserved)
    reserved[user_id] = reserved.get(user_id, 0) + amount
    return election.model_copy(update={"reserved": reserved})


def release(election: Election, user_id: str, amount: int) -> Election:
    """reserved[user] -= amount, clamp к нулю; нулевая запись удаляется."""
    reserved = dict(election.reserved)
    left = clamp(reserved.get(user_id, 0) - amount, min_value=0)
    if left > 0:
        reserved[user_id] = left
    else:
        reserved.pop(user_id, None)
    return election.model_copy(update={"reserved": reserved})


def escrow(
    election: Election,
    user_id: str,
    amount: int,
    effect: Callable[[Election], tuple[Election, T]],
) -> tuple[Election, T]:
    """
    reserve → effect → release в пределах одного вызова.

    Используется внутри transform-функции atomic_update. Если effect бросает
    исключение, снапшот не записывается, и резерв не остаётся висеть.

    Args:
        election: Снапшот выборов
        user_id: Чьи средства резервируются
        amount: Сумма резерва (units)
        effect: Функция над снапшотом с резервом, возвращает (снапшот, результат)

    Returns:
        (снапшот с исходным reserved[user], результат effect)
    """
    held = reserve(election, user_id, amount)
    updated, result = effect(held)
    return release(updated, user_id, amount), result


def _require_non_negative(amount: int, name: str) -> None:
    try:
        validate_non_negative_integer(amount, name)
    except ValueError as e:
        raise InvalidAmount(str(e)) from e
