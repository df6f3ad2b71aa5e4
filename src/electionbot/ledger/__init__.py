"""Леджер балансов и эскроу-резервирования."""

from .escrow import (
    apply_deltas,
    available_balance,
    credit,
    escrow,
    release,
    reserve,
    spend,
    total_balance,
    validate_amount,
    validate_transfer_amount,
)

__all__ = [
    "total_balance",
    "available_balance",
    "validate_amount",
    "validate_transfer_amount",
    "spend",
    "credit",
    "apply_deltas",
    "reserve",
    "release",
    "escrow",
]
