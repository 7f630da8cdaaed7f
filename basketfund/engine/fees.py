"""Time-based management fee accrual.

The fee is realized by minting new shares rather than moving assets out of
the fund: NAV is untouched and every holder is diluted by exactly the fee.
Collection is permissionless.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from basketfund.ledger.share_ledger import ShareLedger, is_zero_address
from basketfund.utils.config import BPS_DENOMINATOR, FundSettings
from basketfund.utils.exceptions import ConfigurationError, NothingToCollectError
from basketfund.utils.logging import get_logger, log_with_context
from basketfund.valuation.nav_calculator import NAVCalculator

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeeCollection:
    """Outcome of a management fee collection.

    Attributes:
        time_elapsed: Seconds since the previous collection
        fee_value: Fee owed in accounting-asset units
        shares_minted: Total new shares
        agent_shares: Part minted to the agent fee wallet
        protocol_shares: Part minted to the protocol recipient
        timestamp: New last-collection timestamp
    """

    time_elapsed: int
    fee_value: int
    shares_minted: int
    agent_shares: int
    protocol_shares: int
    timestamp: int


class FeeAccrual:
    """Accrues the annual agent fee and mints it as shares.

    Example:
        >>> fees = FeeAccrual(ledger, nav, settings, agent_fee_bps=200,
        ...                   agent_fee_wallet="0xagent", protocol_fee_recipient="0xdao",
        ...                   last_collection_timestamp=start)
        >>> fees.collect_management_fee().shares_minted
    """

    def __init__(
        self,
        ledger: ShareLedger,
        nav_calculator: NAVCalculator,
        settings: FundSettings,
        agent_fee_bps: int,
        agent_fee_wallet: str,
        protocol_fee_recipient: str,
        last_collection_timestamp: int,
        clock: Optional[Callable[[], int]] = None,
    ):
        if not 0 <= agent_fee_bps <= settings.max_agent_fee_bps:
            raise ConfigurationError(
                f"agent_fee_bps must be within [0, {settings.max_agent_fee_bps}], got {agent_fee_bps}"
            )
        if is_zero_address(agent_fee_wallet) or is_zero_address(protocol_fee_recipient):
            raise ConfigurationError("fee recipients must not be the zero address")

        self.ledger = ledger
        self.nav = nav_calculator
        self.settings = settings
        self._agent_fee_bps = agent_fee_bps
        self._agent_fee_wallet = agent_fee_wallet
        self._protocol_fee_recipient = protocol_fee_recipient
        self.last_collection_timestamp = last_collection_timestamp
        self._clock = clock or (lambda: int(time.time()))

    # Fee terms are fixed for the life of the fund
    @property
    def agent_fee_bps(self) -> int:
        return self._agent_fee_bps

    @property
    def agent_fee_wallet(self) -> str:
        return self._agent_fee_wallet

    @property
    def protocol_fee_recipient(self) -> str:
        return self._protocol_fee_recipient

    def fee_value_for(self, nav: int, time_elapsed: int) -> int:
        return (
            nav
            * self._agent_fee_bps
            * time_elapsed
            // (BPS_DENOMINATOR * self.settings.seconds_per_year)
        )

    def accrued_fee_value(self) -> int:
        """Fee value owed if collected now (0 when nothing accrues)."""
        elapsed = self._clock() - self.last_collection_timestamp
        if elapsed <= 0 or self._agent_fee_bps == 0:
            return 0
        return self.fee_value_for(self.nav.total_nav(), elapsed)

    def collect_management_fee(self) -> FeeCollection:
        """Mint the fee accrued since the last collection.

        Returns:
            FeeCollection; all share counts are zero for an empty fund

        Raises:
            NothingToCollectError: No time elapsed or the fee rate is zero
            ValuationUnavailableError: The fund could not be valued
        """
        now = self._clock()
        elapsed = now - self.last_collection_timestamp
        if elapsed <= 0:
            raise NothingToCollectError(f"no time elapsed since {self.last_collection_timestamp}")
        if self._agent_fee_bps == 0:
            raise NothingToCollectError("fund charges no management fee")

        snapshot = self.nav.snapshot()
        nav_before = snapshot.total_value
        supply_before = snapshot.total_supply
        fee_value = self.fee_value_for(nav_before, elapsed)

        if nav_before == 0 or supply_before == 0:
            self.last_collection_timestamp = now
            logger.debug("Empty fund, fee clock advanced to %d", now)
            return FeeCollection(
                time_elapsed=elapsed,
                fee_value=0,
                shares_minted=0,
                agent_shares=0,
                protocol_shares=0,
                timestamp=now,
            )

        shares = fee_value * supply_before // nav_before
        agent_shares = shares * self.settings.agent_share_bps // BPS_DENOMINATOR
        # Subtraction keeps agent + protocol == shares exactly
        protocol_shares = shares - agent_shares

        if agent_shares:
            self.ledger.mint(self._agent_fee_wallet, agent_shares)
        if protocol_shares:
            self.ledger.mint(self._protocol_fee_recipient, protocol_shares)
        self.last_collection_timestamp = now

        log_with_context(
            logger,
            "info",
            "Management fee collected",
            elapsed=elapsed,
            fee_value=fee_value,
            shares=shares,
            agent_shares=agent_shares,
            protocol_shares=protocol_shares,
        )

        return FeeCollection(
            time_elapsed=elapsed,
            fee_value=fee_value,
            shares_minted=shares,
            agent_shares=agent_shares,
            protocol_shares=protocol_shares,
            timestamp=now,
        )
