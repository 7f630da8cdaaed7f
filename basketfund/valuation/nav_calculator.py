"""Net asset value and share price calculation.

NAV is the sum of every held asset converted to the accounting asset through
the exchange adapter's quote, plus the raw accounting-asset balance. Each
mutating fund operation takes one NAVSnapshot up front and does all of its
math against it.
"""

from dataclasses import dataclass, field
from typing import Dict

from basketfund.exchange.base import Exchange
from basketfund.ledger.share_ledger import ShareLedger
from basketfund.portfolio.base import PortfolioState
from basketfund.utils.config import BPS_DENOMINATOR
from basketfund.utils.logging import get_logger

logger = get_logger(__name__)

# Fixed-point scale of share prices: 10**18 == one accounting unit per share unit
PRICE_PRECISION = 10**18


@dataclass(frozen=True)
class NAVSnapshot:
    """Consistent valuation of a fund at one instant.

    Attributes:
        total_value: NAV in raw accounting-asset units
        total_supply: Outstanding shares at the same instant
        asset_values: Value of each held asset in accounting units
    """

    total_value: int
    total_supply: int
    asset_values: Dict[str, int] = field(default_factory=dict)

    @property
    def share_price(self) -> int:
        """NAV per share scaled by PRICE_PRECISION; one unit with no shares."""
        if self.total_supply == 0:
            return PRICE_PRECISION
        return self.total_value * PRICE_PRECISION // self.total_supply

    def weight_bps(self, asset_id: str) -> int:
        """Current weight of an asset in basis points of NAV."""
        if self.total_value == 0:
            return 0
        return self.asset_values.get(asset_id, 0) * BPS_DENOMINATOR // self.total_value


class NAVCalculator:
    """Values a fund's holdings in its accounting asset.

    Pure reads only. Quote failures surface as ValuationUnavailableError and
    callers abort the enclosing operation.

    Example:
        >>> nav = NAVCalculator(portfolio, ledger, exchange)
        >>> snapshot = nav.snapshot()
        >>> snapshot.total_value, snapshot.share_price
    """

    def __init__(self, portfolio: PortfolioState, ledger: ShareLedger, exchange: Exchange):
        self.portfolio = portfolio
        self.ledger = ledger
        self.exchange = exchange

    def value_of(self, asset_id: str, amount: int) -> int:
        """Value of ``amount`` of an asset in accounting units."""
        if amount == 0:
            return 0
        if asset_id == self.portfolio.accounting_asset:
            return amount
        return self.exchange.quote(asset_id, self.portfolio.accounting_asset, amount)

    def asset_values(self) -> Dict[str, int]:
        return {
            asset_id: self.value_of(asset_id, self.portfolio.balance_of(asset_id))
            for asset_id in self.portfolio.held_assets()
        }

    def total_nav(self) -> int:
        return sum(self.asset_values().values())

    def share_price(self) -> int:
        return self.snapshot().share_price

    def snapshot(self) -> NAVSnapshot:
        values = self.asset_values()
        snapshot = NAVSnapshot(
            total_value=sum(values.values()),
            total_supply=self.ledger.total_supply(),
            asset_values=values,
        )
        logger.debug(
            "NAV snapshot: nav=%d supply=%d price=%d",
            snapshot.total_value,
            snapshot.total_supply,
            snapshot.share_price,
        )
        return snapshot
