"""
Numerical Safeguards — Decimal-арифметика для денежных величин

Модуль обеспечивает детерминированную арифметику для всех денежных операций:
- Сложение/вычитание/умножение/деление через Decimal (без float-ошибок)
- Округление до минимальной денежной единицы (microcoin)
- Валидация целочисленных сумм и диапазонов

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Деление на ноль никогда не выполняется молча (ValueError)
2. Денежные величины на выходе всегда int (минимальная единица)
3. Float никогда не используется для промежуточных денежных расчётов
4. Все операции детерминированы и воспроизводимы
"""

import math
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Context, Decimal
from typing import Final, Union

Number = Union[int, float, str, Decimal]

# =============================================================================
# DECIMAL-КОНТЕКСТ
# =============================================================================

# Точность 50 знаков достаточна для k = pool * tokens при любых разумных объёмах
MONEY_PRECISION: Final[int] = 50

# Отдельный контекст, глобальный decimal-контекст не модифицируется
MONEY_CONTEXT: Final[Context] = Context(prec=MONEY_PRECISION, rounding=ROUND_HALF_UP)


# =============================================================================
# КОНВЕРСИЯ
# =============================================================================


def to_decimal(value: Number) -> Decimal:
    """
    Конверсия значения в Decimal без потери представления.

    Float конвертируется через str(), чтобы 0.1 оставался 0.1,
    а не 0.1000000000000000055511151231257827.

    Raises:
        ValueError: Если значение NaN/Inf
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"value must be finite, got {value}")
        result = Decimal(str(value))
    else:
        result = Decimal(value)

    if not result.is_finite():
        raise ValueError(f"value must be finite, got {value}")
    return result


# =============================================================================
# БЕЗОПАСНАЯ АРИФМЕТИКА
# =============================================================================


def safe_add(a: Number, b: Number) -> Decimal:
    """Сложение в денежном контексте."""
    return MONEY_CONTEXT.add(to_decimal(a), to_decimal(b))


def safe_subtract(a: Number, b: Number) -> Decimal:
    """Вычитание в денежном контексте."""
    return MONEY_CONTEXT.subtract(to_decimal(a), to_decimal(b))


def safe_multiply(a: Number, b: Number) -> Decimal:
    """Умножение в денежном контексте."""
    return MONEY_CONTEXT.multiply(to_decimal(a), to_decimal(b))


def safe_divide(numerator: Number, denominator: Number) -> Decimal:
    """
    Деление в денежном контексте.

    В отличие от float-деления, деление на ноль не маскируется fallback-значением:
    в денежных расчётах это всегда ошибка вызывающего кода.

    Args:
        numerator: Числитель
        denominator: Знаменатель

    Returns:
        Результат деления (Decimal, 50 значащих знаков)

    Raises:
        ValueError: Если denominator == 0

    Examples:
        >>> safe_divide(10000, 200)
        Decimal('50')
        >>> safe_divide(1, 3)
        Decimal('0.33333333333333333333333333333333333333333333333333')
    """
    denom = to_decimal(denominator)
    if denom == 0:
        raise ValueError("Division by zero")
    return MONEY_CONTEXT.divide(to_decimal(numerator), denom)


# =============================================================================
# ОКРУГЛЕНИЕ ДО МИНИМАЛЬНОЙ ЕДИНИЦЫ
# =============================================================================


def round_to_units(value: Number) -> int:
    """
    Округление до целой минимальной единицы (round half up).

    Examples:
        >>> round_to_units(Decimal("2.5"))
        3
        >>> round_to_units(Decimal("-2.5"))
        -3
        >>> round_to_units(0.4)
        0
    """
    return int(to_decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def floor_to_units(value: Number) -> int:
    """Округление вниз (к -inf) до целой единицы."""
    return int(to_decimal(value).quantize(Decimal(1), rounding=ROUND_FLOOR))


def ceil_to_units(value: Number) -> int:
    """Округление вверх (к +inf) до целой единицы."""
    return int(to_decimal(value).quantize(Decimal(1), rounding=ROUND_CEILING))


def clamp(
    value: int,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    """
    Ограничение значения в заданном диапазоне.

    Examples:
        >>> clamp(5, 0, 10)
        5
        >>> clamp(-1, 0)
        0
        >>> clamp(15, max_value=10)
        10
    """
    result = value

    if min_value is not None:
        result = max(result, min_value)

    if max_value is not None:
        result = min(result, max_value)

    return result


# =============================================================================
# ВАЛИДАЦИЯ
# =============================================================================


def validate_positive_integer(value: Number, name: str) -> None:
    """
    Валидация, что значение — положительное целое.

    Raises:
        ValueError: Если value не целое или <= 0
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be a positive integer, got {value!r}")

    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value}")


def validate_non_negative_integer(value: Number, name: str) -> None:
    """
    Валидация, что значение — неотрицательное целое.

    Raises:
        ValueError: Если value не целое или < 0
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")


def validate_in_range(
    value: Number,
    name: str,
    min_value: Number | None = None,
    max_value: Number | None = None,
) -> None:
    """
    Валидация, что значение в заданном диапазоне (границы включительно).

    Raises:
        ValueError: Если value вне диапазона или NaN/Inf
    """
    dec = to_decimal(value)

    if min_value is not None and dec < to_decimal(min_value):
        raise ValueError(f"{name} must be between {min_value} and {max_value}, got {value}")

    if max_value is not None and dec > to_decimal(max_value):
        raise ValueError(f"{name} must be between {min_value} and {max_value}, got {value}")
