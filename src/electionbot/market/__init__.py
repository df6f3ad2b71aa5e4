"""Рынок бондов партии над инвариантом pool * remaining = k."""

from .bonding_curve_market import (
    MIN_ISSUED_TOKENS,
    BondingCurveMarket,
    BondPurchaseQuote,
    BondSaleQuote,
    CurvePoint,
    PricePoint,
)

__all__ = [
    "BondingCurveMarket",
    "BondPurchaseQuote",
    "BondSaleQuote",
    "CurvePoint",
    "PricePoint",
    "MIN_ISSUED_TOKENS",
]
