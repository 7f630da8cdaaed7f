"""Valuation Layer - NAV and share price."""

from basketfund.valuation.nav_calculator import PRICE_PRECISION, NAVCalculator, NAVSnapshot

__all__ = [
    "NAVCalculator",
    "NAVSnapshot",
    "PRICE_PRECISION",
]
