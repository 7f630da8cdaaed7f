"""Oracle-priced exchange simulator.

This module implements the exchange adapter against a table of oracle
prices for simulation and testing. Swaps fill instantly at the oracle price
less a venue fee, with an optional extra slippage model, and can be made to
fail on demand.
"""

import time
from decimal import Decimal
from fractions import Fraction
from typing import Callable, Dict, List, Mapping, Optional, Set, Union

from basketfund.exchange.base import Exchange, SwapRecord
from basketfund.utils.config import BPS_DENOMINATOR
from basketfund.utils.exceptions import SwapFailedError, ValuationUnavailableError
from basketfund.utils.logging import get_logger

logger = get_logger(__name__)

PriceInput = Union[int, str, Decimal, Fraction]


class SimulatedExchange(Exchange):
    """Exchange simulator quoting every asset against an accounting asset.

    Prices are expressed as raw accounting-asset units per raw asset unit,
    so cross pairs convert through the accounting asset.

    Configuration:
        fee_bps: Venue fee charged on every quote and swap (default 30)
        slippage_bps: Extra shortfall of a realized swap versus its quote
            (default 0)

    Example:
        >>> exchange = SimulatedExchange("WETH", {"fee_bps": 0})
        >>> exchange.set_prices({"WBTC": "15", "LINK": "0.006"})
        >>> exchange.quote("WBTC", "WETH", 2)
        30
    """

    def __init__(
        self,
        accounting_asset: str,
        config: Optional[Dict] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """Initialize the simulator.

        Args:
            accounting_asset: Asset all prices are quoted in
            config: Configuration dictionary
            clock: Returns the current UNIX time; defaults to time.time
        """
        config = config or {}

        self.accounting_asset = accounting_asset
        self.fee_bps = int(config.get("fee_bps", 30))
        self.slippage_bps = int(config.get("slippage_bps", 0))
        self._clock = clock or (lambda: int(time.time()))

        self._prices: Dict[str, Fraction] = {accounting_asset: Fraction(1)}
        self._illiquid: Set[str] = set()
        self._failures_pending = 0
        self.history: List[SwapRecord] = []

        self._validate_config()

        logger.debug(
            "SimulatedExchange initialized: accounting=%s, fee=%d bps, slippage=%d bps",
            accounting_asset,
            self.fee_bps,
            self.slippage_bps,
        )

    def _validate_config(self) -> None:
        """Validate configuration parameters."""
        if not 0 <= self.fee_bps < BPS_DENOMINATOR:
            raise ValueError(f"fee_bps must be within [0, {BPS_DENOMINATOR}), got {self.fee_bps}")
        if not 0 <= self.slippage_bps < BPS_DENOMINATOR:
            raise ValueError(
                f"slippage_bps must be within [0, {BPS_DENOMINATOR}), got {self.slippage_bps}"
            )

    def set_prices(self, prices: Mapping[str, PriceInput]) -> None:
        """Set oracle prices in accounting units per asset unit.

        Args:
            prices: Dict mapping asset to price; strings such as "0.006" are
                parsed exactly
        """
        for asset, price in prices.items():
            value = Fraction(str(price)) if isinstance(price, (str, Decimal)) else Fraction(price)
            if value <= 0:
                raise ValueError(f"price for {asset} must be positive, got {price}")
            if asset == self.accounting_asset and value != 1:
                raise ValueError("accounting asset price is fixed at 1")
            self._prices[asset] = value

    def get_price(self, asset: str) -> Fraction:
        return self._prices[asset]

    def set_illiquid(self, asset: str, illiquid: bool = True) -> None:
        """Mark an asset's quote path as broken (or restore it)."""
        if illiquid:
            self._illiquid.add(asset)
        else:
            self._illiquid.discard(asset)

    def fail_next_swaps(self, count: int = 1) -> None:
        """Make the next ``count`` swaps fail regardless of price."""
        self._failures_pending = count

    def quote(self, token_in: str, token_out: str, amount_in: int) -> int:
        if amount_in < 0:
            raise ValueError(f"amount_in must be non-negative, got {amount_in}")
        if token_in == token_out:
            return amount_in

        for asset in (token_in, token_out):
            if asset in self._illiquid:
                raise ValuationUnavailableError(f"no liquid quote path for {asset}")
            if asset not in self._prices:
                raise ValuationUnavailableError(f"no oracle price for {asset}")

        gross = amount_in * self._prices[token_in] / self._prices[token_out]
        return int(gross * (BPS_DENOMINATOR - self.fee_bps) / BPS_DENOMINATOR)

    def swap(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        min_amount_out: int,
        deadline: int,
    ) -> int:
        now = self._clock()
        if now > deadline:
            raise SwapFailedError(f"deadline {deadline} expired at {now}")
        if amount_in <= 0:
            raise SwapFailedError(f"amount_in must be positive, got {amount_in}")
        if self._failures_pending > 0:
            self._failures_pending -= 1
            raise SwapFailedError(f"simulated failure swapping {token_in} for {token_out}")

        try:
            quoted = self.quote(token_in, token_out, amount_in)
        except ValuationUnavailableError as e:
            raise SwapFailedError(str(e)) from e

        amount_out = quoted * (BPS_DENOMINATOR - self.slippage_bps) // BPS_DENOMINATOR
        if amount_out < min_amount_out:
            raise SwapFailedError(
                f"insufficient output: {amount_out} < min {min_amount_out} "
                f"({token_in} -> {token_out})"
            )

        self.history.append(
            SwapRecord(
                token_in=token_in,
                token_out=token_out,
                amount_in=amount_in,
                amount_out=amount_out,
                min_amount_out=min_amount_out,
                deadline=deadline,
                executed_at=now,
            )
        )
        logger.debug(
            "Swapped %d %s for %d %s (min %d)",
            amount_in,
            token_in,
            amount_out,
            token_out,
            min_amount_out,
        )
        return amount_out

    def checkpoint(self) -> int:
        return len(self.history)

    def restore(self, checkpoint: int) -> None:
        """Unwind swaps recorded after ``checkpoint``.

        Fills are priced off the oracle with no inventory, so dropping the
        records is a full reversal. Operations sharing one simulator must not
        interleave.
        """
        undone = len(self.history) - checkpoint
        if undone > 0:
            del self.history[checkpoint:]
            logger.info("Reversed %d swap(s) of a failed operation", undone)
