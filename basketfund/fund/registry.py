"""Fund registry and factory.

The registry is an explicit service object: code that needs to discover
funds receives a registry instance rather than reaching for a global.
"""

import threading
import time
import uuid
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from basketfund.exchange.base import Exchange
from basketfund.fund.fund import Fund
from basketfund.portfolio.base import WeightsInput
from basketfund.utils.config import FundSettings
from basketfund.utils.exceptions import ConfigurationError, InvalidParametersError
from basketfund.utils.logging import get_logger
from basketfund.utils.logging_enhanced import FundEventLogger, FundEventType

logger = get_logger(__name__)


class FundRegistry:
    """Creates funds and tracks every fund it created.

    Example:
        >>> registry = FundRegistry(exchange, settings)
        >>> fund = registry.create_fund(
        ...     name="Blue Chip",
        ...     accounting_asset="WETH",
        ...     asset_ids=["WBTC", "LINK"],
        ...     owner="0xowner",
        ...     agent="0xagent",
        ...     agent_fee_bps=200,
        ... )
        >>> registry.get_fund(fund.fund_id) is fund
        True
    """

    def __init__(
        self,
        exchange: Exchange,
        settings: Optional[FundSettings] = None,
        clock: Optional[Callable[[], int]] = None,
        events: Optional[FundEventLogger] = None,
    ):
        """Initialize the registry.

        Args:
            exchange: Default exchange adapter for new funds
            settings: Protocol constants shared by all funds
            clock: Returns the current UNIX time; defaults to time.time
            events: Optional structured event logger passed to every fund
        """
        self.exchange = exchange
        self.settings = settings or FundSettings()
        self._clock = clock or (lambda: int(time.time()))
        self.events = events
        self._funds: Dict[str, Fund] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._funds)

    def __contains__(self, fund_id: str) -> bool:
        return fund_id in self._funds

    def __iter__(self) -> Iterator[Fund]:
        return iter(self.list_funds())

    def create_fund(
        self,
        name: str,
        accounting_asset: str,
        asset_ids: Sequence[str],
        owner: str,
        agent: str,
        agent_fee_bps: int,
        protocol_fee_recipient: Optional[str] = None,
        agent_fee_wallet: Optional[str] = None,
        target_weights: Optional[WeightsInput] = None,
        exchange: Optional[Exchange] = None,
    ) -> Fund:
        """Create and register a new fund.

        Raises:
            InvalidParametersError: Bad name, assets, roles or weights
            ConfigurationError: Fee above the protocol cap or no fee recipient
        """
        if not name or not name.strip():
            raise InvalidParametersError("fund name must not be empty")
        if not 0 <= agent_fee_bps <= self.settings.max_agent_fee_bps:
            raise ConfigurationError(
                f"agent_fee_bps must be within [0, {self.settings.max_agent_fee_bps}], "
                f"got {agent_fee_bps}"
            )

        fund_id = uuid.uuid4().hex
        fund = Fund(
            fund_id=fund_id,
            name=name,
            accounting_asset=accounting_asset,
            asset_ids=asset_ids,
            exchange=exchange or self.exchange,
            owner=owner,
            agent=agent,
            agent_fee_bps=agent_fee_bps,
            protocol_fee_recipient=protocol_fee_recipient,
            agent_fee_wallet=agent_fee_wallet,
            target_weights=target_weights,
            settings=self.settings,
            clock=self._clock,
            events=self.events,
        )
        self.register(fund)

        logger.info(
            "Created fund %s (%s) with assets %s, agent %s, fee %d bps",
            fund_id,
            name,
            list(asset_ids),
            agent,
            agent_fee_bps,
        )
        if self.events is not None:
            self.events.log_governance_event(
                FundEventType.FUND_CREATED,
                fund_id,
                f"fund {name} created",
                assets=list(asset_ids),
                owner=owner,
                agent=agent,
                agent_fee_bps=agent_fee_bps,
            )
        return fund

    def register(self, fund: Fund) -> None:
        """Track an existing fund, e.g. one loaded from storage."""
        with self._lock:
            if fund.fund_id in self._funds:
                raise InvalidParametersError(f"fund {fund.fund_id} is already registered")
            self._funds[fund.fund_id] = fund

    def get_fund(self, fund_id: str) -> Fund:
        """Look up a fund by id.

        Raises:
            KeyError: If no fund has this id
        """
        try:
            return self._funds[fund_id]
        except KeyError:
            raise KeyError(f"Unknown fund: {fund_id}") from None

    def list_funds(self) -> List[Fund]:
        with self._lock:
            return list(self._funds.values())

    def funds_by_agent(self, agent: str) -> List[Fund]:
        return [f for f in self.list_funds() if f.agent == agent]

    def funds_by_owner(self, owner: str) -> List[Fund]:
        return [f for f in self.list_funds() if f.owner == owner]
