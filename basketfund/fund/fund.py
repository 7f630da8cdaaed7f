"""Fund facade: the public surface of one fund instance.

Every public operation runs to completion under the fund's lock, against a
checkpoint of ledger, portfolio, fee clock and roles. If the operation
raises, all of that state is restored before the error reaches the caller,
so no failure leaves a partial mint, burn, transfer or trade behind.
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from basketfund.engine.access import FundRoles, Role, require_role
from basketfund.engine.fees import FeeAccrual, FeeCollection
from basketfund.engine.investment import DepositResult, InvestmentEngine, WithdrawalResult
from basketfund.engine.rebalance import DeviationReport, RebalanceEngine, RebalanceResult
from basketfund.exchange.base import Exchange
from basketfund.ledger.share_ledger import ShareLedger, is_zero_address
from basketfund.portfolio.base import AllowedAsset, PortfolioState, WeightsInput
from basketfund.utils.config import FundSettings
from basketfund.utils.exceptions import ConfigurationError, InvalidParametersError
from basketfund.utils.logging import get_logger
from basketfund.utils.logging_enhanced import FundEventLogger, FundEventType
from basketfund.valuation.nav_calculator import NAVCalculator, NAVSnapshot

logger = get_logger(__name__)


@dataclass(frozen=True)
class FundStateView:
    """Serializable view of a fund's persisted state."""

    fund_id: str
    name: str
    accounting_asset: str
    owner: str
    agent: str
    agent_fee_bps: int
    agent_fee_wallet: str
    protocol_fee_recipient: str
    created_at: int
    last_fee_collection_timestamp: int
    has_allocated: bool
    allowed_assets: List[AllowedAsset] = field(default_factory=list)
    balances: Dict[str, int] = field(default_factory=dict)
    share_balances: Dict[str, int] = field(default_factory=dict)
    total_supply: int = 0


class Fund:
    """A tokenized multi-asset fund.

    Example:
        >>> fund = Fund("f1", "Blue Chip", "WETH", ["WBTC", "LINK"], exchange,
        ...             owner="0xowner", agent="0xagent", agent_fee_bps=200,
        ...             protocol_fee_recipient="0xdao",
        ...             target_weights={"WBTC": 6000, "LINK": 4000})
        >>> fund.deposit(10**18, "0xalice")
        >>> fund.get_current_composition_bps()
        {'WBTC': 5999, 'LINK': 4000}
    """

    def __init__(
        self,
        fund_id: str,
        name: str,
        accounting_asset: str,
        asset_ids: Sequence[str],
        exchange: Exchange,
        owner: str,
        agent: str,
        agent_fee_bps: int,
        protocol_fee_recipient: Optional[str] = None,
        agent_fee_wallet: Optional[str] = None,
        target_weights: Optional[WeightsInput] = None,
        settings: Optional[FundSettings] = None,
        clock: Optional[Callable[[], int]] = None,
        events: Optional[FundEventLogger] = None,
        created_at: Optional[int] = None,
    ):
        """Create a fund.

        Args:
            fund_id: Identifier assigned by the registry
            name: Display name
            accounting_asset: Asset used for deposits and NAV
            asset_ids: Fixed set of allowed assets
            exchange: Exchange adapter for quotes and swaps
            owner: Address allowed to replace the agent
            agent: Address allowed to set weights and trigger rebalances
            agent_fee_bps: Annual management fee, at most max_agent_fee_bps
            protocol_fee_recipient: Receives the protocol part of the fee;
                defaults to settings.protocol_fee_recipient
            agent_fee_wallet: Receives the agent part of the fee; defaults
                to the initial agent
            target_weights: Optional initial target weights
            settings: Protocol constants (defaults to FundSettings())
            clock: Returns the current UNIX time; defaults to time.time
            events: Optional structured event logger
            created_at: Creation timestamp; defaults to now

        Raises:
            InvalidParametersError: Bad asset list, roles or weights
            ConfigurationError: Fee above cap or missing fee recipient
        """
        self.settings = settings or FundSettings()
        self._clock = clock or (lambda: int(time.time()))
        self._lock = threading.RLock()
        self.events = events

        if is_zero_address(owner) or is_zero_address(agent):
            raise InvalidParametersError("owner and agent must not be the zero address")

        protocol_fee_recipient = protocol_fee_recipient or self.settings.protocol_fee_recipient
        if is_zero_address(protocol_fee_recipient):
            raise ConfigurationError("protocol fee recipient is not configured")

        self.fund_id = fund_id
        self.name = name
        self.exchange = exchange
        self.created_at = created_at if created_at is not None else self._clock()
        self.roles = FundRoles(owner=owner, agent=agent)

        self.ledger = ShareLedger()
        self.portfolio = PortfolioState(accounting_asset, asset_ids, target_weights)
        self.nav = NAVCalculator(self.portfolio, self.ledger, exchange)
        self.rebalancer = RebalanceEngine(
            self.portfolio, self.nav, exchange, self.settings, clock=self._clock
        )
        self.investments = InvestmentEngine(
            self.portfolio, self.ledger, self.nav, self.rebalancer, self.settings
        )
        self.fees = FeeAccrual(
            self.ledger,
            self.nav,
            self.settings,
            agent_fee_bps=agent_fee_bps,
            agent_fee_wallet=agent_fee_wallet or agent,
            protocol_fee_recipient=protocol_fee_recipient,
            last_collection_timestamp=self.created_at,
            clock=self._clock,
        )

    def __repr__(self) -> str:
        return (
            f"Fund(id={self.fund_id!r}, name={self.name!r}, "
            f"assets={list(self.portfolio.asset_ids)}, supply={self.ledger.total_supply()})"
        )

    @property
    def owner(self) -> str:
        return self.roles.owner

    @property
    def agent(self) -> str:
        return self.roles.agent

    @property
    def accounting_asset(self) -> str:
        return self.portfolio.accounting_asset

    def now(self) -> int:
        """Current time on the fund clock."""
        return self._clock()

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[None]:
        """Run an operation all-or-nothing under the fund lock."""
        with self._lock:
            ledger_checkpoint = self.ledger.checkpoint()
            portfolio_checkpoint = self.portfolio.checkpoint()
            fee_timestamp = self.fees.last_collection_timestamp
            agent = self.roles.agent
            exchange_checkpoint = self.exchange.checkpoint()
            try:
                yield
            except Exception as e:
                self.exchange.restore(exchange_checkpoint)
                self.ledger.restore(ledger_checkpoint)
                self.portfolio.restore(portfolio_checkpoint)
                self.fees.last_collection_timestamp = fee_timestamp
                self.roles.agent = agent
                logger.warning(
                    "Fund %s: %s failed and was rolled back: %s: %s",
                    self.fund_id,
                    operation,
                    type(e).__name__,
                    e,
                )
                if self.events is not None:
                    self.events.log_error(self.fund_id, operation, e)
                raise

    # ------------------------------------------------------------------
    # Investor operations
    # ------------------------------------------------------------------

    def deposit(self, amount: int, receiver: str, *, caller: Optional[str] = None) -> DepositResult:
        """Deposit accounting asset; shares go to ``receiver``.

        ``caller`` is the depositor and defaults to the receiver.
        """
        depositor = caller or receiver
        with self._atomic("deposit"):
            result = self.investments.deposit(depositor, amount, receiver)

        if self.events is not None:
            self.events.log_ledger_event(
                FundEventType.DEPOSIT,
                self.fund_id,
                account=receiver,
                shares=result.shares_minted,
                amount=amount,
                depositor=depositor,
                nav_before=result.nav_before,
            )
            self._log_rebalance(result.rebalance)
        return result

    def withdraw(
        self,
        shares: int,
        receiver: str,
        owner: str,
        *,
        caller: Optional[str] = None,
    ) -> WithdrawalResult:
        """Burn ``owner``'s shares and send a proportional basket to ``receiver``.

        ``caller`` defaults to the owner; any other caller spends allowance.
        """
        caller = caller or owner
        with self._atomic("withdraw"):
            result = self.investments.withdraw(caller, shares, receiver, owner)

        if self.events is not None:
            self.events.log_ledger_event(
                FundEventType.WITHDRAWAL,
                self.fund_id,
                account=owner,
                shares=shares,
                receiver=receiver,
                amounts=result.amounts(),
            )
            self._log_rebalance(result.rebalance)
        return result

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        with self._atomic("transfer"):
            self.ledger.transfer(sender, recipient, amount)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        with self._atomic("approve"):
            self.ledger.approve(owner, spender, amount)

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        with self._atomic("transfer_from"):
            self.ledger.transfer_from(spender, owner, recipient, amount)

    # ------------------------------------------------------------------
    # Agent operations
    # ------------------------------------------------------------------

    def set_target_weights(self, weights: WeightsInput, *, caller: str) -> Dict[str, int]:
        """Replace target weights. Agent only."""
        require_role(Role.AGENT, caller, self.roles)
        with self._atomic("set_target_weights"):
            targets = self.portfolio.set_target_weights(weights)

        logger.info("Fund %s target weights set to %s", self.fund_id, targets)
        if self.events is not None:
            self.events.log_rebalance_event(
                FundEventType.WEIGHTS_UPDATED, self.fund_id, weights=targets
            )
        return targets

    def set_target_weights_and_rebalance_if_needed(
        self,
        weights: WeightsInput,
        *,
        caller: str,
    ) -> RebalanceResult:
        """Replace target weights and rebalance in one atomic step. Agent only."""
        require_role(Role.AGENT, caller, self.roles)
        with self._atomic("set_target_weights_and_rebalance_if_needed"):
            targets = self.portfolio.set_target_weights(weights)
            result = self.rebalancer.check_and_execute()

        if self.events is not None:
            self.events.log_rebalance_event(
                FundEventType.WEIGHTS_UPDATED, self.fund_id, weights=targets
            )
            self._log_rebalance(result)
        return result

    def trigger_rebalance(self, *, caller: str) -> RebalanceResult:
        """Run a rebalance cycle if the deviation check asks for one. Agent only."""
        require_role(Role.AGENT, caller, self.roles)
        with self._atomic("trigger_rebalance"):
            result = self.rebalancer.rebalance()

        if self.events is not None:
            self._log_rebalance(result)
        return result

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def set_agent(self, new_agent: str, *, caller: str) -> None:
        """Replace the agent. Owner only; fee recipients do not change."""
        require_role(Role.OWNER, caller, self.roles)
        if is_zero_address(new_agent):
            raise InvalidParametersError("agent must not be the zero address")

        with self._atomic("set_agent"):
            previous = self.roles.agent
            self.roles.agent = new_agent

        logger.info("Fund %s agent changed from %s to %s", self.fund_id, previous, new_agent)
        if self.events is not None:
            self.events.log_governance_event(
                FundEventType.AGENT_CHANGED,
                self.fund_id,
                "agent changed",
                previous=previous,
                agent=new_agent,
            )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def collect_management_fee(self, *, caller: Optional[str] = None) -> FeeCollection:
        """Mint the management fee accrued so far. Anyone may call."""
        with self._atomic("collect_management_fee"):
            result = self.fees.collect_management_fee()

        if self.events is not None:
            self.events.log_fee_event(
                self.fund_id,
                fee_value=result.fee_value,
                agent_shares=result.agent_shares,
                protocol_shares=result.protocol_shares,
                time_elapsed=result.time_elapsed,
                caller=caller,
            )
        return result

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def balance_of(self, holder: str) -> int:
        with self._lock:
            return self.ledger.balance_of(holder)

    def total_supply(self) -> int:
        with self._lock:
            return self.ledger.total_supply()

    def allowance(self, owner: str, spender: str) -> int:
        with self._lock:
            return self.ledger.allowance(owner, spender)

    def total_nav(self) -> int:
        with self._lock:
            return self.nav.total_nav()

    def share_price(self) -> int:
        """NAV per share scaled by PRICE_PRECISION."""
        with self._lock:
            return self.nav.share_price()

    def snapshot(self) -> NAVSnapshot:
        with self._lock:
            return self.nav.snapshot()

    def get_current_composition_bps(self) -> Dict[str, int]:
        with self._lock:
            return self.rebalancer.current_composition_bps()

    def get_target_composition_bps(self) -> Dict[str, int]:
        with self._lock:
            return self.portfolio.target_weights()

    def is_rebalance_needed(self) -> tuple[bool, int]:
        with self._lock:
            return self.rebalancer.is_rebalance_needed()

    def deviation_report(self) -> DeviationReport:
        with self._lock:
            return self.rebalancer.check_deviation()

    def preview_deposit(self, amount: int) -> int:
        with self._lock:
            return self.investments.preview_deposit(amount)

    def accrued_management_fee(self) -> int:
        with self._lock:
            return self.fees.accrued_fee_value()

    def state(self) -> FundStateView:
        with self._lock:
            return FundStateView(
                fund_id=self.fund_id,
                name=self.name,
                accounting_asset=self.portfolio.accounting_asset,
                owner=self.roles.owner,
                agent=self.roles.agent,
                agent_fee_bps=self.fees.agent_fee_bps,
                agent_fee_wallet=self.fees.agent_fee_wallet,
                protocol_fee_recipient=self.fees.protocol_fee_recipient,
                created_at=self.created_at,
                last_fee_collection_timestamp=self.fees.last_collection_timestamp,
                has_allocated=self.portfolio.has_allocated,
                allowed_assets=self.portfolio.allowed_assets(),
                balances=self.portfolio.balances(),
                share_balances=self.ledger.holders(),
                total_supply=self.ledger.total_supply(),
            )

    def _log_rebalance(self, result: Optional[RebalanceResult]) -> None:
        if result is None:
            return
        if not result.executed:
            self.events.log_rebalance_event(
                FundEventType.REBALANCE_SKIPPED,
                self.fund_id,
                reason=result.reason,
                max_deviation_bps=result.max_deviation_before,
            )
            return

        for trade in result.trades:
            self.events.log_rebalance_event(
                FundEventType.SWAP_EXECUTED,
                self.fund_id,
                side=trade.side.value,
                asset=trade.asset_id,
                amount_in=trade.amount_in,
                amount_out=trade.amount_out,
                min_amount_out=trade.min_amount_out,
            )
        self.events.log_rebalance_event(
            FundEventType.REBALANCE_EXECUTED,
            self.fund_id,
            nav_before=result.nav_before,
            nav_after=result.nav_after,
            trades=len(result.trades),
            max_deviation_before=result.max_deviation_before,
            max_deviation_after=result.max_deviation_after,
            within_tolerance=result.within_tolerance,
        )
