"""
Core math — денежная арифметика и математика кривой бондов.

Все суммы — int в минимальных единицах; промежуточные вычисления в Decimal.
"""

from electionbot.core.math.numerical_safeguards import (
    MONEY_CONTEXT,
    Number,
    ceil_to_units,
    clamp,
    floor_to_units,
    round_to_units,
    safe_add,
    safe_divide,
    safe_multiply,
    safe_subtract,
    to_decimal,
    validate_in_range,
    validate_non_negative_integer,
    validate_positive_integer,
)
from electionbot.core.math.bonding_curve import (
    display_price,
    invariant_deviation,
    marginal_price,
    pool_for_remaining,
    remaining_for_pool,
    split_purchase,
    tokens_for_pool_increase,
)

__all__ = [
    # Numerical Safeguards — Constants
    "MONEY_CONTEXT",
    "Number",
    # Numerical Safeguards — Arithmetic
    "to_decimal",
    "safe_add",
    "safe_subtract",
    "safe_multiply",
    "safe_divide",
    # Numerical Safeguards — Rounding
    "round_to_units",
    "floor_to_units",
    "ceil_to_units",
    "clamp",
    # Numerical Safeguards — Validation
    "validate_positive_integer",
    "validate_non_negative_integer",
    "validate_in_range",
    # Bonding Curve
    "split_purchase",
    "remaining_for_pool",
    "tokens_for_pool_increase",
    "pool_for_remaining",
    "display_price",
    "marginal_price",
    "invariant_deviation",
]
