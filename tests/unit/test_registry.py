"""Unit tests for FundRegistry."""

import json
from pathlib import Path

import pytest

from basketfund.exchange.simulated_exchange import SimulatedExchange
from basketfund.fund.fund import Fund
from basketfund.fund.registry import FundRegistry
from basketfund.utils.exceptions import ConfigurationError, InvalidParametersError
from basketfund.utils.logging_enhanced import FundEventLogger

OWNER = "0xowner"
AGENT = "0xagent"


@pytest.fixture
def registry(exchange, settings, clock) -> FundRegistry:
    """Create an empty registry."""
    return FundRegistry(exchange, settings, clock=clock)


def create(registry: FundRegistry, name: str = "Blue Chip", **kwargs) -> Fund:
    params = {
        "name": name,
        "accounting_asset": "WETH",
        "asset_ids": ["WBTC", "LINK"],
        "owner": OWNER,
        "agent": AGENT,
        "agent_fee_bps": 200,
    }
    params.update(kwargs)
    return registry.create_fund(**params)


class TestCreateFund:
    """Test fund creation through the registry."""

    def test_create_registers_fund(self, registry, clock) -> None:
        """Test a created fund is tracked and shares the registry clock."""
        fund = create(registry)

        assert len(registry) == 1
        assert fund.fund_id in registry
        assert registry.get_fund(fund.fund_id) is fund
        assert list(registry) == [fund]
        assert len(fund.fund_id) == 32
        assert fund.now() == clock.now
        assert fund.settings is registry.settings

    def test_unique_ids(self, registry) -> None:
        """Test every fund gets its own id."""
        first = create(registry, "One")
        second = create(registry, "Two")

        assert first.fund_id != second.fund_id
        assert len(registry) == 2

    def test_initial_weights(self, registry) -> None:
        """Test target weights can be set at creation."""
        fund = create(registry, target_weights=[6000, 4000])

        assert fund.get_target_composition_bps() == {"WBTC": 6000, "LINK": 4000}

    def test_exchange_override(self, registry, clock) -> None:
        """Test a fund can use its own exchange."""
        other = SimulatedExchange("WETH", clock=clock)

        fund = create(registry, exchange=other)

        assert fund.exchange is other

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty_name(self, registry, name) -> None:
        """Test a fund needs a name."""
        with pytest.raises(InvalidParametersError, match="name"):
            create(registry, name)

        assert len(registry) == 0

    @pytest.mark.parametrize("fee", [-1, 501])
    def test_fee_out_of_range(self, registry, fee) -> None:
        """Test the fee cap is enforced before the fund exists."""
        with pytest.raises(ConfigurationError, match="agent_fee_bps"):
            create(registry, agent_fee_bps=fee)

        assert len(registry) == 0

    def test_invalid_assets_not_registered(self, registry) -> None:
        """Test a fund that fails validation is not tracked."""
        with pytest.raises(InvalidParametersError):
            create(registry, asset_ids=["WBTC", "WBTC"])

        assert len(registry) == 0

    def test_created_event(self, exchange, settings, clock, tmp_path: Path) -> None:
        """Test creation is logged as a governance event."""
        events = FundEventLogger(log_dir=tmp_path)
        registry = FundRegistry(exchange, settings, clock=clock, events=events)

        fund = create(registry)
        events.close()

        [event] = [
            json.loads(line) for line in (tmp_path / "governance.log").read_text().splitlines()
        ]
        assert event["event_type"] == "fund_created"
        assert event["fund_id"] == fund.fund_id
        assert event["assets"] == ["WBTC", "LINK"]
        assert fund.events is events


class TestLookup:
    """Test registry lookups."""

    def test_unknown_fund(self, registry) -> None:
        """Test an unknown id raises KeyError."""
        with pytest.raises(KeyError, match="Unknown fund"):
            registry.get_fund("missing")

    def test_register_duplicate(self, registry) -> None:
        """Test a fund cannot be registered twice."""
        fund = create(registry)

        with pytest.raises(InvalidParametersError, match="already registered"):
            registry.register(fund)

    def test_register_loaded_fund(self, registry, exchange, settings) -> None:
        """Test externally built funds can be tracked."""
        fund = Fund(
            "loaded", "Loaded", "WETH", ["WBTC"], exchange, OWNER, AGENT, 100, settings=settings
        )

        registry.register(fund)

        assert registry.get_fund("loaded") is fund

    def test_filters(self, registry) -> None:
        """Test funds can be found by agent and owner."""
        mine = create(registry, "Mine")
        theirs = create(registry, "Theirs", owner="0xother", agent="0xotheragent")

        assert registry.funds_by_agent(AGENT) == [mine]
        assert registry.funds_by_owner("0xother") == [theirs]
        assert registry.funds_by_agent("0xnobody") == []
        assert registry.list_funds() == [mine, theirs]
