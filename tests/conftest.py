"""Shared fixtures for basket fund tests."""

import pytest

from basketfund.exchange.simulated_exchange import SimulatedExchange
from basketfund.utils.config import FundSettings

DAO = "0x00000000000000000000000000000000000000d0"


class FakeClock:
    """Manually advanced UNIX clock."""

    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock."""
    return FakeClock()


@pytest.fixture
def settings() -> FundSettings:
    """Create default settings with a protocol fee recipient."""
    return FundSettings(protocol_fee_recipient=DAO)


@pytest.fixture
def exchange(clock) -> SimulatedExchange:
    """Create a fee-free exchange with prices that divide evenly."""
    exchange = SimulatedExchange("WETH", {"fee_bps": 0}, clock=clock)
    exchange.set_prices({"WBTC": 10, "LINK": 2})
    return exchange
