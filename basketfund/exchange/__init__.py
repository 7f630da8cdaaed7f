"""Exchange Layer - Swap and quote adapters.

The fund consumes an abstract Exchange for valuation and rebalancing.
SimulatedExchange backs simulations and tests.
"""

from basketfund.exchange.base import Exchange, SwapRecord
from basketfund.exchange.simulated_exchange import SimulatedExchange

__all__ = [
    # Abstract interface
    "Exchange",
    # Concrete implementations
    "SimulatedExchange",
    # Data classes
    "SwapRecord",
]
