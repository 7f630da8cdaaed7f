"""NAV and share price tracking.

This module records NAV snapshots of a fund over time and derives share
price return, drawdown, rebalancing cost and fee totals from them.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import pandas as pd

from basketfund.engine.fees import FeeCollection
from basketfund.engine.rebalance import RebalanceResult
from basketfund.fund.fund import Fund
from basketfund.valuation.nav_calculator import PRICE_PRECISION


@dataclass(frozen=True)
class NavObservation:
    """One NAV snapshot.

    Attributes:
        timestamp: UNIX time of the observation
        total_nav: NAV in raw accounting units
        total_supply: Outstanding shares
        share_price: NAV per share scaled by PRICE_PRECISION
    """

    timestamp: int
    total_nav: int
    total_supply: int
    share_price: int


@dataclass(frozen=True)
class RebalanceCost:
    """NAV lost in one executed rebalance cycle."""

    timestamp: int
    nav_before: int
    nav_after: int
    trades: int

    @property
    def cost(self) -> int:
        return self.nav_before - self.nav_after


class NavTracker:
    """Tracks a fund's NAV per share over time.

    Example:
        >>> tracker = NavTracker(fund)
        >>> tracker.record()
        >>> result = fund.trigger_rebalance(caller=fund.agent)
        >>> tracker.record_rebalance(result)
        >>> tracker.get_performance_metrics()["total_rebalance_cost"]
    """

    def __init__(self, fund: Fund):
        """Initialize tracker.

        Args:
            fund: Fund to observe
        """
        self.fund = fund
        self.history: List[NavObservation] = []
        self.rebalances: List[RebalanceCost] = []
        self.fees: List[FeeCollection] = []

    def record(self, timestamp: Optional[int] = None) -> NavObservation:
        """Take a NAV snapshot of the fund.

        Args:
            timestamp: Observation time; defaults to the fund clock

        Returns:
            The recorded NavObservation
        """
        snapshot = self.fund.snapshot()
        observation = NavObservation(
            timestamp=timestamp if timestamp is not None else self.fund.now(),
            total_nav=snapshot.total_value,
            total_supply=snapshot.total_supply,
            share_price=snapshot.share_price,
        )
        self.history.append(observation)
        return observation

    def record_rebalance(self, result: RebalanceResult, timestamp: Optional[int] = None) -> None:
        """Record the cost of an executed rebalance; skipped cycles are ignored."""
        if not result.executed:
            return
        self.rebalances.append(
            RebalanceCost(
                timestamp=timestamp if timestamp is not None else self.fund.now(),
                nav_before=result.nav_before,
                nav_after=result.nav_after,
                trades=len(result.trades),
            )
        )

    def record_fee(self, collection: FeeCollection) -> None:
        self.fees.append(collection)

    def get_history(self) -> pd.DataFrame:
        """Observations as a DataFrame indexed by UTC datetime.

        Returns:
            DataFrame with columns: total_nav, total_supply, share_price
            (share_price in accounting units per share)
        """
        columns = ["total_nav", "total_supply", "share_price"]
        if not self.history:
            return pd.DataFrame(columns=columns)

        df = pd.DataFrame(
            {
                "timestamp": [o.timestamp for o in self.history],
                "total_nav": [o.total_nav for o in self.history],
                "total_supply": [o.total_supply for o in self.history],
                "share_price": [o.share_price / PRICE_PRECISION for o in self.history],
            }
        )
        df["timestamp"] = pd.to_datetime(df["timestamp"], unit="s", utc=True)
        df.set_index("timestamp", inplace=True)
        return df

    def get_drawdown_series(self) -> pd.DataFrame:
        """Share price drawdown from its running peak.

        Returns:
            DataFrame with columns: share_price, peak_price, drawdown_pct
        """
        history = self.get_history()
        if history.empty:
            return pd.DataFrame(columns=["share_price", "peak_price", "drawdown_pct"])

        df = history[["share_price"]].copy()
        df["peak_price"] = df["share_price"].cummax()
        df["drawdown_pct"] = (df["share_price"] - df["peak_price"]) / df["peak_price"]
        return df

    def get_performance_metrics(self) -> Dict:
        """Summary metrics over the whole history.

        Returns:
            Dict with share price return, max drawdown, rebalance costs and
            fee totals
        """
        metrics = {
            "share_price_return": 0.0,
            "max_drawdown": 0.0,
            "num_observations": len(self.history),
            "rebalance_count": len(self.rebalances),
            "total_rebalance_cost": sum(r.cost for r in self.rebalances),
            "fee_collections": len(self.fees),
            "total_fee_value": sum(f.fee_value for f in self.fees),
            "total_fee_shares": sum(f.shares_minted for f in self.fees),
        }
        if not self.history:
            return metrics

        drawdowns = self.get_drawdown_series()
        first, last = self.history[0].share_price, self.history[-1].share_price
        metrics["share_price_return"] = (last - first) / first if first > 0 else 0.0
        metrics["max_drawdown"] = float(drawdowns["drawdown_pct"].min())
        metrics["current_nav"] = self.history[-1].total_nav
        return metrics

    def reset(self) -> None:
        self.history = []
        self.rebalances = []
        self.fees = []
