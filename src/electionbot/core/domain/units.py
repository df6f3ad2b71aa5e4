"""
Units — Централизованный модуль денежных единиц

Единственный допустимый способ преобразований между:
- units (microcoins, int) — внутреннее представление всех сумм
- coins (Decimal/float) — только для отображения пользователю

ЗАПРЕЩЕНО смешивать единицы без явного конвертера из этого модуля.
Все суммы, пересекающие любые интерфейсы ядра, — int в microcoins.
"""

from decimal import Decimal
from typing import Final

from electionbot.core.math.numerical_safeguards import (
    Number,
    round_to_units,
    safe_divide,
    safe_multiply,
)


# =============================================================================
# КОНСТАНТЫ
# =============================================================================

# Количество минимальных единиц в одной монете
MICROCOINS_PER_COIN: Final[int] = 1_000_000

# Базовый баланс, начисляемый каждому пользователю (монеты)
BASE_BALANCE_COINS: Final[int] = 100

# Базовый баланс в минимальных единицах
BASE_BALANCE: Final[int] = BASE_BALANCE_COINS * MICROCOINS_PER_COIN

# Минимальная сумма перевода (0.001 монеты)
MIN_TRANSFER_UNITS: Final[int] = 1_000


# =============================================================================
# КОНВЕРТЕРЫ
# =============================================================================


def coins_to_units(coins: Number) -> int:
    """
    Конверсия: монеты → минимальные единицы.

    Examples:
        >>> coins_to_units(1.5)
        1500000
        >>> coins_to_units("0.0000005")
        1
    """
    return round_to_units(safe_multiply(coins, MICROCOINS_PER_COIN))


def units_to_coins(units: int) -> Decimal:
    """Конверсия: минимальные единицы → монеты (Decimal, без потерь)."""
    return safe_divide(units, MICROCOINS_PER_COIN)


def format_coins(units: int, places: int = 6) -> str:
    """
    Форматирование суммы для отображения.

    Examples:
        >>> format_coins(1_500_000)
        '1.500000'
        >>> format_coins(1_234_567, places=2)
        '1.23'
    """
    return f"{units_to_coins(units):.{places}f}"
