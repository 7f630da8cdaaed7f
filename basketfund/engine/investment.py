"""Deposits and basket withdrawals.

Deposits are priced against a NAV snapshot taken before the deposit lands.
Withdrawals never convert: they return the same fraction of every held
asset, accounting asset included. Both finish with a rebalance check.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from basketfund.engine.rebalance import RebalanceEngine, RebalanceResult
from basketfund.ledger.share_ledger import ShareLedger, is_zero_address
from basketfund.portfolio.base import PortfolioState
from basketfund.utils.config import FundSettings
from basketfund.utils.exceptions import (
    InsufficientBalanceError,
    InvalidParametersError,
    InvalidStateError,
)
from basketfund.utils.logging import get_logger, log_with_context
from basketfund.valuation.nav_calculator import NAVCalculator

logger = get_logger(__name__)


@dataclass(frozen=True)
class AssetTransfer:
    """Asset paid out of the fund."""

    asset_id: str
    amount: int
    receiver: str


@dataclass
class DepositResult:
    """Outcome of a deposit.

    Attributes:
        amount: Accounting-asset amount deposited
        shares_minted: Shares credited to the receiver
        receiver: Share receiver
        nav_before: NAV before the deposit
        supply_before: Share supply before the deposit
        rebalance: Result of the follow-up rebalance check
    """

    amount: int
    shares_minted: int
    receiver: str
    nav_before: int
    supply_before: int
    rebalance: Optional[RebalanceResult] = None


@dataclass
class WithdrawalResult:
    """Outcome of a basket withdrawal.

    Attributes:
        shares_burned: Shares removed from the owner
        owner: Share owner
        receiver: Asset receiver
        supply_before: Share supply before the withdrawal
        transfers: One transfer per held asset with a non-zero payout
        rebalance: Result of the follow-up rebalance check
    """

    shares_burned: int
    owner: str
    receiver: str
    supply_before: int
    transfers: List[AssetTransfer] = field(default_factory=list)
    rebalance: Optional[RebalanceResult] = None

    def amounts(self) -> Dict[str, int]:
        return {t.asset_id: t.amount for t in self.transfers}


class InvestmentEngine:
    """Mints shares on deposit and burns them on withdrawal.

    Example:
        >>> engine = InvestmentEngine(portfolio, ledger, nav, rebalancer, settings)
        >>> engine.deposit("0xalice", 10**18, "0xalice").shares_minted
        1000000000000000000
    """

    def __init__(
        self,
        portfolio: PortfolioState,
        ledger: ShareLedger,
        nav_calculator: NAVCalculator,
        rebalance_engine: RebalanceEngine,
        settings: FundSettings,
    ):
        self.portfolio = portfolio
        self.ledger = ledger
        self.nav = nav_calculator
        self.rebalancer = rebalance_engine
        self.settings = settings

    def preview_deposit(self, amount: int) -> int:
        """Shares a deposit of ``amount`` would mint right now."""
        self._validate_amount(amount)
        snapshot = self.nav.snapshot()
        return self._shares_for(amount, snapshot.total_value, snapshot.total_supply)

    def deposit(self, depositor: str, amount: int, receiver: str) -> DepositResult:
        """Deposit accounting asset and mint shares to ``receiver``.

        Args:
            depositor: Account the accounting asset comes from
            amount: Raw accounting-asset amount
            receiver: Account credited with the new shares

        Returns:
            DepositResult with the shares minted

        Raises:
            InvalidParametersError: Amount below minimum or zero address
            InvalidStateError: NAV is zero with shares outstanding, or the
                deposit is too small to mint a single share
            ValuationUnavailableError: The fund could not be valued
            SwapFailedError: The follow-up rebalance failed
        """
        self._validate_amount(amount)
        if is_zero_address(depositor):
            raise InvalidParametersError("depositor must not be the zero address")
        if is_zero_address(receiver):
            raise InvalidParametersError("receiver must not be the zero address")

        snapshot = self.nav.snapshot()
        shares = self._shares_for(amount, snapshot.total_value, snapshot.total_supply)

        self.portfolio.credit(self.portfolio.accounting_asset, amount)
        self.ledger.mint(receiver, shares)

        log_with_context(
            logger,
            "info",
            "Deposit accepted",
            depositor=depositor,
            receiver=receiver,
            amount=amount,
            shares=shares,
            nav_before=snapshot.total_value,
        )

        rebalance = self.rebalancer.check_and_execute()

        return DepositResult(
            amount=amount,
            shares_minted=shares,
            receiver=receiver,
            nav_before=snapshot.total_value,
            supply_before=snapshot.total_supply,
            rebalance=rebalance,
        )

    def withdraw(self, caller: str, shares: int, receiver: str, owner: str) -> WithdrawalResult:
        """Burn ``owner``'s shares and pay out a proportional basket.

        Args:
            caller: Account requesting the withdrawal
            shares: Shares to burn
            receiver: Account receiving the assets
            owner: Account whose shares are burned; needs an allowance for
                ``caller`` when different

        Returns:
            WithdrawalResult listing every asset transferred

        Raises:
            InvalidParametersError: Non-positive shares or zero address
            InsufficientBalanceError: Owner balance or allowance too small
            SwapFailedError: The follow-up rebalance failed
        """
        if not isinstance(shares, int) or isinstance(shares, bool) or shares <= 0:
            raise InvalidParametersError(f"shares must be a positive integer, got {shares!r}")
        if is_zero_address(receiver) or is_zero_address(owner):
            raise InvalidParametersError("receiver and owner must not be the zero address")

        balance = self.ledger.balance_of(owner)
        if balance < shares:
            raise InsufficientBalanceError(f"{owner} holds {balance} shares, needs {shares}")
        if caller != owner:
            self.ledger.spend_allowance(owner, caller, shares)

        supply_before = self.ledger.total_supply()
        payouts = {
            asset_id: self.portfolio.balance_of(asset_id) * shares // supply_before
            for asset_id in self.portfolio.held_assets()
        }

        # Shares go before any asset leaves the fund
        self.ledger.burn(owner, shares)

        transfers = []
        for asset_id, amount in payouts.items():
            if amount == 0:
                continue
            self.portfolio.debit(asset_id, amount)
            transfers.append(AssetTransfer(asset_id=asset_id, amount=amount, receiver=receiver))

        log_with_context(
            logger,
            "info",
            "Withdrawal paid",
            caller=caller,
            owner=owner,
            receiver=receiver,
            shares=shares,
            assets=len(transfers),
        )

        rebalance = self.rebalancer.check_and_execute()

        return WithdrawalResult(
            shares_burned=shares,
            owner=owner,
            receiver=receiver,
            supply_before=supply_before,
            transfers=transfers,
            rebalance=rebalance,
        )

    def _validate_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise InvalidParametersError(f"amount must be an integer, got {amount!r}")
        if amount < self.settings.minimum_deposit:
            raise InvalidParametersError(
                f"deposit {amount} is below the minimum of {self.settings.minimum_deposit}"
            )

    def _shares_for(self, amount: int, nav_before: int, supply_before: int) -> int:
        if supply_before == 0:
            # First supply is never below minimum_shares_liquidity
            return max(amount, self.settings.minimum_shares_liquidity)

        if nav_before == 0:
            raise InvalidStateError(
                f"fund NAV is zero with {supply_before} shares outstanding"
            )

        shares = amount * supply_before // nav_before
        if shares == 0:
            raise InvalidStateError(f"deposit of {amount} would mint zero shares")
        return shares
