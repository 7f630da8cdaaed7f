"""Unit tests for NAV tracking."""

import pandas as pd
import pytest

from basketfund.engine.rebalance import RebalanceResult
from basketfund.fund.fund import Fund
from basketfund.monitoring.nav_tracker import NavTracker

UNIT = 10**18
AGENT = "0xagent"


@pytest.fixture
def fund(exchange, settings, clock) -> Fund:
    """Create a funded 60/40 fund."""
    fund = Fund(
        "fund-1",
        "Blue Chip",
        "WETH",
        ["WBTC", "LINK"],
        exchange,
        owner="0xowner",
        agent=AGENT,
        agent_fee_bps=200,
        target_weights={"WBTC": 6000, "LINK": 4000},
        settings=settings,
        clock=clock,
    )
    fund.deposit(10 * UNIT, "0xalice")
    return fund


@pytest.fixture
def tracker(fund) -> NavTracker:
    """Create a tracker for the fund."""
    return NavTracker(fund)


class TestNavTracker:
    """Test cases for NavTracker."""

    def test_empty(self, tracker) -> None:
        """Test an empty tracker reports neutral metrics."""
        metrics = tracker.get_performance_metrics()

        assert tracker.get_history().empty
        assert tracker.get_drawdown_series().empty
        assert metrics["share_price_return"] == 0.0
        assert metrics["num_observations"] == 0
        assert "current_nav" not in metrics

    def test_record(self, tracker, clock) -> None:
        """Test a record captures NAV, supply and price at the fund clock."""
        observation = tracker.record()

        assert observation.timestamp == clock.now
        assert observation.total_nav == 10 * UNIT
        assert observation.total_supply == 10 * UNIT
        assert observation.share_price == UNIT

    def test_history_frame(self, tracker, clock) -> None:
        """Test history is indexed by UTC time with float prices."""
        tracker.record()
        tracker.record(timestamp=clock.now + 3600)

        history = tracker.get_history()

        assert list(history.columns) == ["total_nav", "total_supply", "share_price"]
        assert len(history) == 2
        assert history.index[0] == pd.Timestamp(clock.now, unit="s", tz="UTC")
        assert history["share_price"].iloc[-1] == 1.0

    def test_fee_shows_as_drawdown(self, tracker, fund, clock) -> None:
        """Test fee dilution lowers the share price."""
        tracker.record()
        clock.advance(31_536_000)
        tracker.record_fee(fund.collect_management_fee())
        tracker.record()

        metrics = tracker.get_performance_metrics()

        assert metrics["share_price_return"] == pytest.approx(1 / 1.02 - 1)
        assert metrics["max_drawdown"] == pytest.approx(1 / 1.02 - 1)
        assert metrics["fee_collections"] == 1
        assert metrics["total_fee_value"] == 2 * UNIT // 10
        assert metrics["total_fee_shares"] == 2 * UNIT // 10
        assert metrics["current_nav"] == 10 * UNIT

    def test_drawdown_recovers(self, tracker, exchange) -> None:
        """Test drawdown is measured from the running peak."""
        tracker.record()
        exchange.set_prices({"WBTC": 5})
        tracker.record()
        exchange.set_prices({"WBTC": 10})
        tracker.record()

        drawdowns = tracker.get_drawdown_series()

        assert list(drawdowns["drawdown_pct"]) == pytest.approx([0.0, -0.3, 0.0])
        assert tracker.get_performance_metrics()["max_drawdown"] == pytest.approx(-0.3)

    def test_record_rebalance(self, tracker) -> None:
        """Test only executed rebalances are counted."""
        tracker.record_rebalance(RebalanceResult(executed=False, reason="within threshold"))
        tracker.record_rebalance(
            RebalanceResult(executed=True, reason="drift", nav_before=1000, nav_after=997),
            timestamp=1,
        )

        metrics = tracker.get_performance_metrics()

        assert metrics["rebalance_count"] == 1
        assert metrics["total_rebalance_cost"] == 3
        assert tracker.rebalances[0].timestamp == 1

    def test_reset(self, tracker) -> None:
        """Test reset clears all records."""
        tracker.record()
        tracker.record_rebalance(RebalanceResult(executed=True, reason="x"))

        tracker.reset()

        assert tracker.history == []
        assert tracker.rebalances == []
        assert tracker.fees == []
