"""Unit tests for portfolio state and trade instructions."""

import pytest

from basketfund.portfolio.base import PortfolioState, TradeInstruction, TradeSide
from basketfund.utils.exceptions import InsufficientBalanceError, InvalidParametersError


@pytest.fixture
def portfolio() -> PortfolioState:
    """Create a WETH-accounted portfolio of WBTC and LINK."""
    return PortfolioState("WETH", ["WBTC", "LINK"])


class TestPortfolioInit:
    """Test PortfolioState construction."""

    def test_held_assets(self, portfolio) -> None:
        """Test the accounting asset is held first."""
        assert portfolio.held_assets() == ["WETH", "WBTC", "LINK"]
        assert portfolio.balances() == {"WETH": 0, "WBTC": 0, "LINK": 0}
        assert not portfolio.weights_set
        assert not portfolio.has_allocated

    def test_empty_assets(self) -> None:
        """Test at least one allowed asset is required."""
        with pytest.raises(InvalidParametersError):
            PortfolioState("WETH", [])

    def test_duplicate_assets(self) -> None:
        """Test duplicate allowed assets are rejected."""
        with pytest.raises(InvalidParametersError, match="duplicate"):
            PortfolioState("WETH", ["WBTC", "WBTC"])

    def test_zero_address_asset(self) -> None:
        """Test the zero address is not an asset."""
        with pytest.raises(InvalidParametersError):
            PortfolioState("WETH", ["0x0000000000000000000000000000000000000000"])

    def test_accounting_asset_may_be_allowed(self) -> None:
        """Test the accounting asset may carry a target weight."""
        portfolio = PortfolioState("WETH", ["WETH", "WBTC"], {"WETH": 2000, "WBTC": 8000})

        assert portfolio.held_assets() == ["WETH", "WBTC"]
        assert portfolio.accounting_is_allowed()
        assert portfolio.target_weight("WETH") == 2000


class TestTargetWeights:
    """Test weight validation."""

    def test_set_mapping(self, portfolio) -> None:
        """Test setting weights from a mapping."""
        targets = portfolio.set_target_weights({"LINK": 4000, "WBTC": 6000})

        assert targets == {"WBTC": 6000, "LINK": 4000}
        assert portfolio.weights_set

    def test_set_list(self, portfolio) -> None:
        """Test setting weights from a list aligned with asset order."""
        portfolio.set_target_weights([7000, 3000])

        assert portfolio.target_weights() == {"WBTC": 7000, "LINK": 3000}

    @pytest.mark.parametrize(
        "weights",
        [
            {"WBTC": 6000, "LINK": 3999},
            {"WBTC": 6000, "LINK": 4001},
            {"WBTC": 10000, "LINK": 0},
            {"WBTC": 12000, "LINK": -2000},
            {"WBTC": 6000.0, "LINK": 4000},
            {"WBTC": 10000},
            {"WBTC": 5000, "LINK": 3000, "UNI": 2000},
            [10000],
        ],
    )
    def test_invalid_weights_leave_state(self, portfolio, weights) -> None:
        """Test invalid weights raise and keep previous targets."""
        portfolio.set_target_weights({"WBTC": 5000, "LINK": 5000})

        with pytest.raises(InvalidParametersError):
            portfolio.set_target_weights(weights)

        assert portfolio.target_weights() == {"WBTC": 5000, "LINK": 5000}

    def test_target_weight_of_idle_accounting(self, portfolio) -> None:
        """Test the idle accounting asset has a zero target."""
        portfolio.set_target_weights([6000, 4000])

        assert portfolio.target_weight("WETH") == 0


class TestBalances:
    """Test balance bookkeeping."""

    def test_credit_debit(self, portfolio) -> None:
        """Test credit and debit adjust balances."""
        portfolio.credit("WBTC", 100)
        portfolio.debit("WBTC", 40)

        assert portfolio.balance_of("WBTC") == 60

    def test_debit_insufficient(self, portfolio) -> None:
        """Test debiting more than held fails."""
        with pytest.raises(InsufficientBalanceError):
            portfolio.debit("WBTC", 1)

    def test_unknown_asset(self, portfolio) -> None:
        """Test balances of assets outside the fund are rejected."""
        with pytest.raises(InvalidParametersError, match="not held"):
            portfolio.balance_of("UNI")

    def test_idle_accounting_balance(self, portfolio) -> None:
        """Test idle accounting balance excludes an allowed accounting asset."""
        portfolio.credit("WETH", 500)
        assert portfolio.idle_accounting_balance() == 500

        allowed = PortfolioState("WETH", ["WETH", "WBTC"])
        allowed.credit("WETH", 500)
        assert allowed.idle_accounting_balance() == 0

    def test_allowed_assets(self, portfolio) -> None:
        """Test allowed asset views carry weights and balances."""
        portfolio.set_target_weights([6000, 4000])
        portfolio.credit("LINK", 9)

        assets = portfolio.allowed_assets()

        assert [a.asset_id for a in assets] == ["WBTC", "LINK"]
        assert assets[1].target_weight_bps == 4000
        assert assets[1].balance == 9

    def test_checkpoint_restore(self, portfolio) -> None:
        """Test restore rolls back balances, targets and allocation flag."""
        checkpoint = portfolio.checkpoint()

        portfolio.set_target_weights([6000, 4000])
        portfolio.credit("WETH", 10)
        portfolio.has_allocated = True
        portfolio.restore(checkpoint)

        assert portfolio.target_weights() == {}
        assert portfolio.balance_of("WETH") == 0
        assert not portfolio.has_allocated


class TestTradeInstruction:
    """Test TradeInstruction validation."""

    def test_valid(self) -> None:
        """Test a valid instruction."""
        trade = TradeInstruction(TradeSide.SELL, "WBTC", 10, 100, 99, deadline=1000)

        assert not trade.is_executed
        trade.amount_out = 100
        assert trade.is_executed

    def test_non_positive_amount(self) -> None:
        """Test amount_in must be positive."""
        with pytest.raises(ValueError, match="amount_in"):
            TradeInstruction(TradeSide.BUY, "WBTC", 0, 100, 99, deadline=1000)

    def test_min_above_expected(self) -> None:
        """Test min_amount_out cannot exceed expected output."""
        with pytest.raises(ValueError, match="exceeds"):
            TradeInstruction(TradeSide.BUY, "WBTC", 10, 100, 101, deadline=1000)
