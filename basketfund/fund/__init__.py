"""Fund Layer - public fund operations and the fund registry."""

from basketfund.fund.fund import Fund, FundStateView
from basketfund.fund.registry import FundRegistry

__all__ = [
    "Fund",
    "FundStateView",
    "FundRegistry",
]
