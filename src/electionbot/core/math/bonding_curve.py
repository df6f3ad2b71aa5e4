"""
Bonding Curve — математика кривой с постоянным инвариантом

Модель constant-product: pool * remaining = k, где remaining = issued - sold.

ФОРМУЛЫ:
    Покупка (coin_spend, alpha):
        pool_contribution  = round(alpha * coin_spend)
        vault_contribution = coin_spend - pool_contribution
        new_pool           = pool + pool_contribution
        new_remaining      = k / new_pool                 (точно, Decimal)
        tokens_acquired    = floor(remaining - new_remaining), но remaining - tokens >= 1

    Продажа (tokens):
        new_remaining  = remaining + tokens
        new_pool       = round(k / new_remaining)
        coins_refunded = pool - new_pool

    Цена для отображения: k / remaining (совпадает с pool — это средняя стоимость
    резерва на непроданный остаток, а НЕ производная). Производная кривой
    k / remaining² доступна отдельно как marginal_price.

Все функции чистые и работают только с int/Decimal.
"""

from decimal import Decimal

from electionbot.core.math.numerical_safeguards import (
    Number,
    floor_to_units,
    round_to_units,
    safe_divide,
    safe_multiply,
    safe_subtract,
    validate_in_range,
)


def split_purchase(coin_spend: int, alpha: Number) -> tuple[int, int]:
    """
    Разделение покупки между пулом и казной.

    Returns:
        (pool_contribution, vault_contribution), сумма равна coin_spend

    Examples:
        >>> split_purchase(100, 1.0)
        (100, 0)
        >>> split_purchase(100, 0.7)
        (70, 30)
        >>> split_purchase(5, 0.5)
        (3, 2)
    """
    validate_in_range(alpha, "alpha", 0, 1)
    pool_contribution = round_to_units(safe_multiply(alpha, coin_spend))
    return pool_contribution, coin_spend - pool_contribution


def remaining_for_pool(k: int, pool: int) -> Decimal:
    """Непроданный остаток, соответствующий пулу по инварианту (k / pool)."""
    return safe_divide(k, pool)


def tokens_for_pool_increase(k: int, remaining: int, new_pool: int) -> int:
    """
    Количество токенов, выдаваемых при росте пула до new_pool.

    Покупатель никогда не получает дробный токен (floor). Минимум один токен
    всегда остаётся непроданным.

    Examples:
        >>> tokens_for_pool_increase(10000, 100, 200)
        50
        >>> tokens_for_pool_increase(10000, 100, 300)
        66
    """
    exact = safe_subtract(remaining, remaining_for_pool(k, new_pool))
    return min(floor_to_units(exact), remaining - 1)


def pool_for_remaining(k: int, remaining: int) -> int:
    """
    Размер пула для заданного остатка по инварианту (round half up).

    Examples:
        >>> pool_for_remaining(10000, 100)
        100
        >>> pool_for_remaining(10000, 3)
        3333
    """
    return round_to_units(safe_divide(k, remaining))


def display_price(k: int, remaining: int) -> Decimal:
    """Цена для отображения: k / remaining (units за токен)."""
    return safe_divide(k, remaining)


def marginal_price(k: int, remaining: int) -> Decimal:
    """Производная кривой |d(pool)/d(remaining)| = k / remaining²."""
    return safe_divide(k, safe_multiply(remaining, remaining))


def invariant_deviation(pool: int, remaining: int, k: int) -> Decimal:
    """
    Отклонение пула от инварианта |pool - k / remaining| в units.

    После продажи отклонение <= 0.5 units (округление). После покупки
    отклонение ограничено стоимостью одного токена (floor при выдаче токенов).
    """
    return abs(safe_subtract(pool, safe_divide(k, remaining)))
