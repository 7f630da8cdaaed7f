"""Abstract base class for the exchange adapter.

The fund never talks to a trading venue directly. Valuation and rebalancing
go through this two-method contract, so any AMM, aggregator or simulator
that satisfies it can back a fund:

- quote: read-only expected output, used for NAV and trade planning
- swap: executes a trade bounded by a minimum output and a deadline
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class SwapRecord:
    """A swap executed by an exchange adapter.

    Attributes:
        token_in: Asset sold
        token_out: Asset bought
        amount_in: Raw amount sold
        amount_out: Raw amount received
        min_amount_out: Output floor requested by the caller
        deadline: Deadline requested by the caller
        executed_at: UNIX timestamp of execution
    """

    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    min_amount_out: int
    deadline: int
    executed_at: int


class Exchange(ABC):
    """Abstract interface for token exchange venues.

    Implementations must signal failures with the exchange error types:
    ValuationUnavailableError from quote() when a pair cannot be priced,
    SwapFailedError from swap() when a trade cannot be filled in full at or
    above min_amount_out before the deadline.

    Each swap settles on its own, but a fund operation may run several of
    them and fail part way. The fund then restores its own books and calls
    restore() with the token checkpoint() returned when the operation began.
    An adapter must undo every swap it settled since that checkpoint, either
    by reversing the trades or by holding them until the operation ends, so
    venue holdings never drift from the restored books.

    Example:
        >>> exchange = SimulatedExchange("WETH")
        >>> exchange.set_prices({"WBTC": "15"})
        >>> out = exchange.quote("WBTC", "WETH", 10**18)
        >>> exchange.swap("WBTC", "WETH", 10**18, out * 9950 // 10000, deadline)
    """

    @abstractmethod
    def quote(self, token_in: str, token_out: str, amount_in: int) -> int:
        """Expected output for selling amount_in of token_in.

        Args:
            token_in: Asset to sell
            token_out: Asset to buy
            amount_in: Raw amount of token_in

        Returns:
            Raw amount of token_out a swap would return now

        Raises:
            ValuationUnavailableError: If the pair cannot be priced
        """
        pass

    @abstractmethod
    def swap(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        min_amount_out: int,
        deadline: int,
    ) -> int:
        """Sell amount_in of token_in for token_out.

        Args:
            token_in: Asset to sell
            token_out: Asset to buy
            amount_in: Raw amount of token_in
            min_amount_out: Revert if the realized output is lower
            deadline: Revert if executed after this UNIX timestamp

        Returns:
            Realized raw amount of token_out

        Raises:
            SwapFailedError: If the swap cannot be executed as requested
        """
        pass

    @abstractmethod
    def checkpoint(self) -> int:
        """Mark the start of an all-or-nothing fund operation.

        Returns:
            Token to hand back to restore() if the operation fails
        """
        pass

    @abstractmethod
    def restore(self, checkpoint: int) -> None:
        """Undo every swap settled since checkpoint() returned this token."""
        pass
