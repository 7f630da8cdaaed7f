"""Unit tests for NAV calculation."""

import pytest

from basketfund.ledger.share_ledger import ShareLedger
from basketfund.portfolio.base import PortfolioState
from basketfund.utils.exceptions import ValuationUnavailableError
from basketfund.valuation.nav_calculator import PRICE_PRECISION, NAVCalculator, NAVSnapshot


@pytest.fixture
def portfolio() -> PortfolioState:
    """Create a portfolio holding all three assets."""
    portfolio = PortfolioState("WETH", ["WBTC", "LINK"], {"WBTC": 6000, "LINK": 4000})
    portfolio.credit("WETH", 100)
    portfolio.credit("WBTC", 50)
    portfolio.credit("LINK", 200)
    return portfolio


@pytest.fixture
def ledger() -> ShareLedger:
    """Create a ledger with 1000 shares outstanding."""
    ledger = ShareLedger()
    ledger.mint("0xalice", 1000)
    return ledger


@pytest.fixture
def nav(portfolio, ledger, exchange) -> NAVCalculator:
    """Create a NAVCalculator."""
    return NAVCalculator(portfolio, ledger, exchange)


class TestNAVSnapshot:
    """Test NAVSnapshot arithmetic."""

    def test_share_price_with_no_supply(self) -> None:
        """Test an empty fund prices shares at one unit."""
        assert NAVSnapshot(total_value=0, total_supply=0).share_price == PRICE_PRECISION

    def test_share_price(self) -> None:
        """Test share price is NAV over supply, scaled."""
        snapshot = NAVSnapshot(total_value=3, total_supply=2)

        assert snapshot.share_price == 3 * PRICE_PRECISION // 2

    def test_weight_bps(self) -> None:
        """Test weights floor to whole basis points."""
        snapshot = NAVSnapshot(
            total_value=3, total_supply=1, asset_values={"WBTC": 2, "LINK": 1}
        )

        assert snapshot.weight_bps("WBTC") == 6666
        assert snapshot.weight_bps("LINK") == 3333
        assert snapshot.weight_bps("UNI") == 0

    def test_weight_bps_of_empty_fund(self) -> None:
        """Test weights of an empty fund are zero."""
        assert NAVSnapshot(total_value=0, total_supply=0).weight_bps("WBTC") == 0


class TestNAVCalculator:
    """Test NAVCalculator."""

    def test_asset_values(self, nav) -> None:
        """Test each held asset is valued in the accounting asset."""
        assert nav.asset_values() == {"WETH": 100, "WBTC": 500, "LINK": 400}

    def test_total_nav(self, nav) -> None:
        """Test NAV sums all holdings."""
        assert nav.total_nav() == 1000

    def test_share_price(self, nav) -> None:
        """Test share price from NAV and supply."""
        assert nav.share_price() == PRICE_PRECISION

    def test_snapshot(self, nav) -> None:
        """Test a snapshot is internally consistent."""
        snapshot = nav.snapshot()

        assert snapshot.total_value == sum(snapshot.asset_values.values())
        assert snapshot.total_supply == 1000
        assert snapshot.weight_bps("WBTC") == 5000

    def test_zero_balance_is_not_quoted(self, nav, portfolio, exchange) -> None:
        """Test empty positions are valued without a quote."""
        portfolio.debit("LINK", 200)
        exchange.set_illiquid("LINK")

        assert nav.value_of("LINK", 0) == 0
        assert nav.total_nav() == 600

    def test_dust_quotes_to_zero(self, nav, portfolio, exchange) -> None:
        """Test dust that quotes to zero counts as zero value."""
        exchange.set_prices({"LINK": "0.5"})
        portfolio.debit("LINK", 199)

        assert nav.value_of("LINK", 1) == 0
        assert nav.total_nav() == 600

    def test_unavailable_quote(self, nav, exchange) -> None:
        """Test quote failures propagate."""
        exchange.set_illiquid("WBTC")

        with pytest.raises(ValuationUnavailableError):
            nav.total_nav()
