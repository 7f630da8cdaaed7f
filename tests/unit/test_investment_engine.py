"""Unit tests for deposits and basket withdrawals."""

import pytest

from basketfund.engine.investment import InvestmentEngine
from basketfund.engine.rebalance import RebalanceEngine
from basketfund.ledger.share_ledger import ZERO_ADDRESS, ShareLedger
from basketfund.portfolio.base import PortfolioState
from basketfund.utils.config import FundSettings
from basketfund.utils.exceptions import (
    InsufficientBalanceError,
    InvalidParametersError,
    InvalidStateError,
)
from basketfund.valuation.nav_calculator import NAVCalculator

UNIT = 10**18
ALICE = "0xalice"
BOB = "0xbob"


def build_engine(portfolio, exchange, settings, clock):
    ledger = ShareLedger()
    nav = NAVCalculator(portfolio, ledger, exchange)
    rebalancer = RebalanceEngine(portfolio, nav, exchange, settings, clock=clock)
    return InvestmentEngine(portfolio, ledger, nav, rebalancer, settings)


@pytest.fixture
def portfolio() -> PortfolioState:
    """Create a portfolio targeting 60/40 WBTC/LINK."""
    return PortfolioState("WETH", ["WBTC", "LINK"], {"WBTC": 6000, "LINK": 4000})


@pytest.fixture
def engine(portfolio, exchange, settings, clock) -> InvestmentEngine:
    """Create an InvestmentEngine."""
    return build_engine(portfolio, exchange, settings, clock)


class TestDeposit:
    """Test deposits."""

    def test_first_deposit_mints_one_to_one(self, engine, portfolio) -> None:
        """Test the first deposit mints shares equal to the amount."""
        result = engine.deposit(ALICE, 10 * UNIT, ALICE)

        assert result.shares_minted == 10 * UNIT
        assert result.nav_before == 0
        assert result.supply_before == 0
        assert engine.ledger.balance_of(ALICE) == 10 * UNIT

    def test_first_deposit_triggers_allocation(self, engine, portfolio) -> None:
        """Test the first deposit is invested at target weights."""
        result = engine.deposit(ALICE, 10 * UNIT, ALICE)

        assert result.rebalance.executed
        assert portfolio.balances() == {"WETH": 0, "WBTC": 6 * UNIT // 10, "LINK": 2 * UNIT}

    def test_first_deposit_floor(self, exchange, clock) -> None:
        """Test the first deposit mints at least minimum_shares_liquidity."""
        settings = FundSettings(accounting_decimals=2, minimum_deposit=1, protocol_fee_recipient="0xdao")
        engine = build_engine(PortfolioState("WETH", ["WBTC"]), exchange, settings, clock)

        result = engine.deposit(ALICE, 1, ALICE)

        assert result.shares_minted == 1000

    def test_subsequent_deposit_priced_at_nav(self, engine) -> None:
        """Test later deposits mint amount * supply / nav."""
        engine.deposit(ALICE, 10 * UNIT, ALICE)

        result = engine.deposit(BOB, UNIT, BOB)

        assert result.nav_before == 10 * UNIT
        assert result.shares_minted == UNIT

    def test_deposit_after_gain_mints_fewer_shares(self, engine, exchange) -> None:
        """Test a higher NAV per share mints fewer shares."""
        engine.deposit(ALICE, 10 * UNIT, ALICE)
        exchange.set_prices({"WBTC": 20})

        result = engine.deposit(BOB, 16 * UNIT, BOB)

        assert result.nav_before == 16 * UNIT
        assert result.shares_minted == 10 * UNIT

    def test_preview_matches_deposit(self, engine) -> None:
        """Test preview_deposit predicts the minted shares."""
        engine.deposit(ALICE, 10 * UNIT, ALICE)
        preview = engine.preview_deposit(3 * UNIT)

        assert engine.deposit(BOB, 3 * UNIT, BOB).shares_minted == preview

    def test_below_minimum(self, engine) -> None:
        """Test deposits below the minimum are rejected."""
        with pytest.raises(InvalidParametersError, match="below the minimum"):
            engine.deposit(ALICE, 10**16 - 1, ALICE)

    def test_zero_receiver(self, engine, portfolio) -> None:
        """Test the zero address cannot receive shares."""
        with pytest.raises(InvalidParametersError, match="receiver"):
            engine.deposit(ALICE, UNIT, ZERO_ADDRESS)

        assert portfolio.balance_of("WETH") == 0

    def test_zero_nav_with_supply(self, engine, portfolio) -> None:
        """Test deposits into a worthless fund with shares are refused."""
        engine.ledger.mint(ALICE, 1000)

        with pytest.raises(InvalidStateError, match="NAV is zero"):
            engine.deposit(BOB, UNIT, BOB)

    def test_deposit_minting_zero_shares(self, engine, exchange, settings) -> None:
        """Test a deposit too small for one share is refused."""
        engine.deposit(ALICE, settings.minimum_deposit, ALICE)
        exchange.set_prices({"WBTC": 10**20, "LINK": 10**20})

        with pytest.raises(InvalidStateError, match="zero shares"):
            engine.deposit(BOB, settings.minimum_deposit, BOB)


class TestWithdraw:
    """Test basket withdrawals."""

    @pytest.fixture
    def funded(self, engine) -> InvestmentEngine:
        """Fund with 10 units at exact 60/40."""
        engine.deposit(ALICE, 10 * UNIT, ALICE)
        return engine

    def test_proportional_basket(self, funded, portfolio) -> None:
        """Test each asset is paid out pro rata."""
        result = funded.withdraw(ALICE, 5 * UNIT, ALICE, ALICE)

        assert result.amounts() == {"WBTC": 3 * UNIT // 10, "LINK": UNIT}
        assert portfolio.balances() == {"WETH": 0, "WBTC": 3 * UNIT // 10, "LINK": UNIT}
        assert funded.ledger.total_supply() == 5 * UNIT
        assert not result.rebalance.executed

    def test_full_withdrawal_drains_fund(self, funded, portfolio) -> None:
        """Test burning all shares pays out every asset."""
        result = funded.withdraw(ALICE, 10 * UNIT, BOB, ALICE)

        assert result.amounts() == {"WBTC": 6 * UNIT // 10, "LINK": 2 * UNIT}
        assert all(t.receiver == BOB for t in result.transfers)
        assert portfolio.balances() == {"WETH": 0, "WBTC": 0, "LINK": 0}
        assert funded.ledger.total_supply() == 0

    def test_rounding_favors_fund(self, funded, portfolio) -> None:
        """Test a single share withdraws nothing."""
        result = funded.withdraw(ALICE, 1, ALICE, ALICE)

        assert result.transfers == []
        assert portfolio.balance_of("WBTC") == 6 * UNIT // 10

    def test_more_than_balance(self, funded) -> None:
        """Test withdrawing more than held fails."""
        with pytest.raises(InsufficientBalanceError):
            funded.withdraw(ALICE, 10 * UNIT + 1, ALICE, ALICE)

    @pytest.mark.parametrize("shares", [0, -1, 1.0])
    def test_invalid_shares(self, funded, shares) -> None:
        """Test share counts must be positive integers."""
        with pytest.raises(InvalidParametersError):
            funded.withdraw(ALICE, shares, ALICE, ALICE)

    def test_withdraw_on_behalf_needs_allowance(self, funded) -> None:
        """Test a third party withdrawal spends allowance."""
        with pytest.raises(InsufficientBalanceError, match="allowance"):
            funded.withdraw(BOB, UNIT, BOB, ALICE)

        funded.ledger.approve(ALICE, BOB, 2 * UNIT)
        funded.withdraw(BOB, UNIT, BOB, ALICE)

        assert funded.ledger.allowance(ALICE, BOB) == UNIT
        assert funded.ledger.balance_of(ALICE) == 9 * UNIT
