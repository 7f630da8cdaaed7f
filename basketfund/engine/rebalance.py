"""Portfolio deviation checks and rebalance execution.

A rebalance cycle moves through IDLE -> DEVIATION_CHECK -> (NO_ACTION |
TRADING) -> IDLE. Trading sells every overweight asset before buying any
underweight one, largest deviation first, so the buys are always funded by
accounting asset already in the fund. A failing swap aborts the whole cycle
and restores the portfolio to its pre-cycle balances.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from basketfund.exchange.base import Exchange
from basketfund.portfolio.base import PortfolioState, TradeInstruction, TradeSide
from basketfund.utils.config import BPS_DENOMINATOR, FundSettings
from basketfund.utils.exceptions import SwapFailedError
from basketfund.utils.logging import get_logger, log_with_context
from basketfund.valuation.nav_calculator import NAVCalculator, NAVSnapshot

logger = get_logger(__name__)


class RebalancePhase(Enum):
    """Rebalance cycle states."""

    IDLE = "idle"
    DEVIATION_CHECK = "deviation_check"
    NO_ACTION = "no_action"
    TRADING = "trading"


@dataclass(frozen=True)
class AssetDeviation:
    """Current versus target weight of one allowed asset."""

    asset_id: str
    current_bps: int
    target_bps: int

    @property
    def deviation_bps(self) -> int:
        return abs(self.current_bps - self.target_bps)


@dataclass
class DeviationReport:
    """Outcome of a deviation check.

    Attributes:
        needed: Whether a rebalance is warranted
        max_deviation_bps: Largest per-asset deviation
        deviations: Per-asset breakdown, in allowed-asset order
        first_allocation: True when the fund has never been allocated
        reason: Short explanation of the decision
    """

    needed: bool
    max_deviation_bps: int
    deviations: List[AssetDeviation] = field(default_factory=list)
    first_allocation: bool = False
    reason: str = ""


@dataclass
class RebalanceResult:
    """Outcome of one rebalance cycle.

    Attributes:
        executed: False when the deviation check decided on no action
        reason: Why the cycle traded or did not
        trades: Executed trades in execution order
        nav_before: NAV at the start of the cycle
        nav_after: NAV after the last trade
        max_deviation_before: Largest deviation before trading
        max_deviation_after: Largest deviation after trading
        within_tolerance: Post-trade deviation is at or below the threshold
    """

    executed: bool
    reason: str
    trades: List[TradeInstruction] = field(default_factory=list)
    nav_before: int = 0
    nav_after: int = 0
    max_deviation_before: int = 0
    max_deviation_after: int = 0
    within_tolerance: bool = True

    @property
    def cost(self) -> int:
        """NAV lost to fees and slippage during the cycle."""
        return self.nav_before - self.nav_after


class RebalanceEngine:
    """Decides when to rebalance and executes the trades.

    Example:
        >>> engine = RebalanceEngine(portfolio, nav, exchange, FundSettings())
        >>> engine.is_rebalance_needed()
        (True, 1000)
        >>> result = engine.rebalance()
        >>> result.cost
    """

    def __init__(
        self,
        portfolio: PortfolioState,
        nav_calculator: NAVCalculator,
        exchange: Exchange,
        settings: FundSettings,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.portfolio = portfolio
        self.nav = nav_calculator
        self.exchange = exchange
        self.settings = settings
        self._clock = clock or (lambda: int(time.time()))
        self.phase = RebalancePhase.IDLE

    @property
    def threshold_bps(self) -> int:
        return self.settings.rebalance_deviation_threshold_bps

    def current_composition_bps(self, snapshot: Optional[NAVSnapshot] = None) -> Dict[str, int]:
        """Current weight of every allowed asset in basis points of NAV."""
        snapshot = snapshot or self.nav.snapshot()
        return {a: snapshot.weight_bps(a) for a in self.portfolio.asset_ids}

    def check_deviation(self, snapshot: Optional[NAVSnapshot] = None) -> DeviationReport:
        """Compare current composition with target weights.

        A rebalance is needed when the largest deviation exceeds the
        threshold, or when a funded portfolio has never been allocated.
        """
        if not self.portfolio.weights_set:
            return DeviationReport(needed=False, max_deviation_bps=0, reason="no target weights")

        snapshot = snapshot or self.nav.snapshot()
        if snapshot.total_value == 0:
            return DeviationReport(needed=False, max_deviation_bps=0, reason="empty fund")

        deviations = [
            AssetDeviation(
                asset_id=a,
                current_bps=snapshot.weight_bps(a),
                target_bps=self.portfolio.target_weight(a),
            )
            for a in self.portfolio.asset_ids
        ]
        max_deviation = max(d.deviation_bps for d in deviations)
        first_allocation = not self.portfolio.has_allocated

        if first_allocation:
            reason = "first allocation"
        elif max_deviation > self.threshold_bps:
            reason = f"deviation {max_deviation} bps above {self.threshold_bps} bps"
        else:
            reason = f"deviation {max_deviation} bps within {self.threshold_bps} bps"

        return DeviationReport(
            needed=first_allocation or max_deviation > self.threshold_bps,
            max_deviation_bps=max_deviation,
            deviations=deviations,
            first_allocation=first_allocation,
            reason=reason,
        )

    def is_rebalance_needed(self) -> Tuple[bool, int]:
        report = self.check_deviation()
        return report.needed, report.max_deviation_bps

    def plan_trades(self, snapshot: Optional[NAVSnapshot] = None) -> List[TradeInstruction]:
        """Preview the trades a rebalance would send, without executing.

        Buys are sized from the idle accounting balance plus the expected
        proceeds of the sells.
        """
        snapshot = snapshot or self.nav.snapshot()
        now = self._clock()
        target_values = self._target_values(snapshot)

        sells = self._plan_sells(snapshot, target_values, now)
        proceeds = sum(t.expected_amount_out for t in sells)
        available = self._available_accounting(target_values) + proceeds
        buys = self._plan_buys(snapshot, target_values, available, now)
        return sells + buys

    def rebalance(self) -> RebalanceResult:
        """Run one rebalance cycle.

        Returns:
            RebalanceResult; ``executed`` is False when no action was needed

        Raises:
            SwapFailedError: A swap failed; portfolio balances are restored
            ValuationUnavailableError: The fund could not be valued
        """
        self.phase = RebalancePhase.DEVIATION_CHECK
        try:
            snapshot = self.nav.snapshot()
            report = self.check_deviation(snapshot)

            if not report.needed:
                self.phase = RebalancePhase.NO_ACTION
                logger.debug("Rebalance not needed: %s", report.reason)
                return RebalanceResult(
                    executed=False,
                    reason=report.reason,
                    nav_before=snapshot.total_value,
                    nav_after=snapshot.total_value,
                    max_deviation_before=report.max_deviation_bps,
                    max_deviation_after=report.max_deviation_bps,
                    within_tolerance=report.max_deviation_bps <= self.threshold_bps,
                )

            self.phase = RebalancePhase.TRADING
            return self._trade(snapshot, report)
        finally:
            self.phase = RebalancePhase.IDLE

    def check_and_execute(self) -> RebalanceResult:
        """Rebalance only if the deviation check asks for it."""
        return self.rebalance()

    def _trade(self, snapshot: NAVSnapshot, report: DeviationReport) -> RebalanceResult:
        checkpoint = self.portfolio.checkpoint()
        venue_checkpoint = self.exchange.checkpoint()
        trades: List[TradeInstruction] = []
        now = self._clock()
        target_values = self._target_values(snapshot)

        try:
            for trade in self._plan_sells(snapshot, target_values, now):
                self._execute(trade)
                trades.append(trade)

            available = self._available_accounting(target_values)
            for trade in self._plan_buys(snapshot, target_values, available, now):
                self._execute(trade)
                trades.append(trade)

            self.portfolio.has_allocated = True
            after = self.nav.snapshot()
        except Exception as e:
            self.portfolio.restore(checkpoint)
            self.exchange.restore(venue_checkpoint)
            logger.warning("Rebalance aborted after %d trades: %s", len(trades), e)
            raise

        max_after = max(
            (abs(after.weight_bps(a) - self.portfolio.target_weight(a)) for a in self.portfolio.asset_ids),
            default=0,
        )
        result = RebalanceResult(
            executed=True,
            reason=report.reason,
            trades=trades,
            nav_before=snapshot.total_value,
            nav_after=after.total_value,
            max_deviation_before=report.max_deviation_bps,
            max_deviation_after=max_after,
            within_tolerance=max_after <= self.threshold_bps,
        )

        log_with_context(
            logger,
            "info",
            "Rebalance executed",
            trades=len(trades),
            nav_before=result.nav_before,
            nav_after=result.nav_after,
            cost=result.cost,
            deviation_before=result.max_deviation_before,
            deviation_after=result.max_deviation_after,
        )
        if not result.within_tolerance:
            logger.warning(
                "Composition still %d bps off target after rebalance (threshold %d bps)",
                max_after,
                self.threshold_bps,
            )
        return result

    def _target_values(self, snapshot: NAVSnapshot) -> Dict[str, int]:
        return {
            a: snapshot.total_value * self.portfolio.target_weight(a) // BPS_DENOMINATOR
            for a in self.portfolio.asset_ids
        }

    def _deviation_bps(self, snapshot: NAVSnapshot, asset_id: str) -> int:
        return abs(snapshot.weight_bps(asset_id) - self.portfolio.target_weight(asset_id))

    def _available_accounting(self, target_values: Dict[str, int]) -> int:
        """Accounting balance that may be spent on buys."""
        accounting = self.portfolio.accounting_asset
        balance = self.portfolio.balance_of(accounting)
        return max(0, balance - target_values.get(accounting, 0))

    def _plan_sells(
        self,
        snapshot: NAVSnapshot,
        target_values: Dict[str, int],
        now: int,
    ) -> List[TradeInstruction]:
        sells = []
        for asset_id in self._tradeable_assets(snapshot):
            value = snapshot.asset_values.get(asset_id, 0)
            target = target_values[asset_id]
            if value <= target:
                continue

            balance = self.portfolio.balance_of(asset_id)
            amount_in = balance * (value - target) // value
            trade = self._instruction(
                TradeSide.SELL, asset_id, amount_in, self._deviation_bps(snapshot, asset_id), now
            )
            if trade is not None:
                sells.append(trade)

        return sorted(sells, key=lambda t: t.deviation_bps, reverse=True)

    def _plan_buys(
        self,
        snapshot: NAVSnapshot,
        target_values: Dict[str, int],
        available: int,
        now: int,
    ) -> List[TradeInstruction]:
        shortfalls = {}
        for asset_id in self._tradeable_assets(snapshot):
            value = snapshot.asset_values.get(asset_id, 0)
            if value < target_values[asset_id]:
                shortfalls[asset_id] = target_values[asset_id] - value

        total_shortfall = sum(shortfalls.values())
        if available <= 0 or total_shortfall == 0:
            return []

        # Spend the whole available balance, split by shortfall
        ordered = sorted(
            shortfalls, key=lambda a: self._deviation_bps(snapshot, a), reverse=True
        )
        buys = []
        for asset_id in ordered:
            amount_in = available * shortfalls[asset_id] // total_shortfall
            trade = self._instruction(
                TradeSide.BUY, asset_id, amount_in, self._deviation_bps(snapshot, asset_id), now
            )
            if trade is not None:
                buys.append(trade)
        return buys

    def _tradeable_assets(self, snapshot: NAVSnapshot) -> List[str]:
        """Allowed assets other than the accounting asset that are off target."""
        return [
            a
            for a in self.portfolio.asset_ids
            if a != self.portfolio.accounting_asset and self._deviation_bps(snapshot, a) > 0
        ]

    def _instruction(
        self,
        side: TradeSide,
        asset_id: str,
        amount_in: int,
        deviation_bps: int,
        now: int,
    ) -> Optional[TradeInstruction]:
        """Quote and bound a trade; None for dust that would return nothing."""
        if amount_in <= 0:
            return None

        token_in, token_out = self._tokens(side, asset_id)
        expected = self.exchange.quote(token_in, token_out, amount_in)
        if expected == 0:
            logger.debug("Skipping dust %s of %d %s", side.value, amount_in, asset_id)
            return None

        slippage = self.settings.default_slippage_bps
        return TradeInstruction(
            side=side,
            asset_id=asset_id,
            amount_in=amount_in,
            expected_amount_out=expected,
            min_amount_out=expected * (BPS_DENOMINATOR - slippage) // BPS_DENOMINATOR,
            deadline=now + self.settings.swap_deadline_offset_seconds,
            deviation_bps=deviation_bps,
        )

    def _execute(self, trade: TradeInstruction) -> None:
        token_in, token_out = self._tokens(trade.side, trade.asset_id)

        self.portfolio.debit(token_in, trade.amount_in)
        amount_out = self.exchange.swap(
            token_in, token_out, trade.amount_in, trade.min_amount_out, trade.deadline
        )
        if amount_out < trade.min_amount_out:
            raise SwapFailedError(
                f"{trade.side.value} {trade.asset_id}: received {amount_out}, "
                f"min {trade.min_amount_out}"
            )
        self.portfolio.credit(token_out, amount_out)
        trade.amount_out = amount_out

        logger.debug(
            "%s %s: %d %s -> %d %s",
            trade.side.value,
            trade.asset_id,
            trade.amount_in,
            token_in,
            amount_out,
            token_out,
        )

    def _tokens(self, side: TradeSide, asset_id: str) -> Tuple[str, str]:
        accounting = self.portfolio.accounting_asset
        if side == TradeSide.SELL:
            return asset_id, accounting
        return accounting, asset_id
