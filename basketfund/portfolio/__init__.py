"""Portfolio Layer.

This layer holds the fixed allowed-asset set, target weights and balances
of a fund, and the trade instructions used to move between them.

Components:
- PortfolioState: Allowed assets, target weights and balances
- AllowedAsset: Read-only view of one allowed asset
- TradeInstruction: Sell/buy order for the exchange adapter
"""

from basketfund.portfolio.base import (
    AllowedAsset,
    PortfolioCheckpoint,
    PortfolioState,
    TradeInstruction,
    TradeSide,
)

__all__ = [
    "PortfolioState",
    "PortfolioCheckpoint",
    "AllowedAsset",
    "TradeInstruction",
    "TradeSide",
]
