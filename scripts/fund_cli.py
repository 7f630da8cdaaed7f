#!/usr/bin/env python3
"""Basket fund simulation CLI.

This script runs a fund end to end against the simulated exchange:
- Deposit, target weights and the first allocation
- Price shocks and threshold-driven rebalancing
- Management fee accrual over simulated time
- Proportional in-kind withdrawal
- Scheduled fee collection and rebalancing of stored funds

Examples:
    # Run the default scenario from config/default.yaml
    python scripts/fund_cli.py simulate

    # Shock WBTC to 20 after allocation and accrue 90 days of fees
    python scripts/fund_cli.py simulate --shock WBTC=20 --days 90

    # Persist the resulting fund
    python scripts/fund_cli.py simulate --db data/funds.db

    # Run one keeper pass over the stored funds
    python scripts/fund_cli.py keeper --once

    # Show the effective fund settings
    python scripts/fund_cli.py show-config
"""

import sys
import time
from typing import Dict, Tuple

import click
from rich.console import Console
from rich.table import Table

sys.path.append(".")

from basketfund.exchange.simulated_exchange import SimulatedExchange
from basketfund.fund.fund import Fund
from basketfund.fund.registry import FundRegistry
from basketfund.monitoring.nav_tracker import NavTracker
from basketfund.orchestration.keeper import FundKeeper
from basketfund.storage.fund_store import FundStore
from basketfund.utils.config import FundSettings, load_fund_settings, to_raw_units
from basketfund.utils.exceptions import FundError
from basketfund.utils.logging import setup_logging
from basketfund.utils.logging_enhanced import FundEventLogger

console = Console()

OWNER = "0x0000000000000000000000000000000000000a11"
AGENT = "0x0000000000000000000000000000000000000a9e"
INVESTOR = "0x000000000000000000000000000000000000beef"

SECONDS_PER_DAY = 24 * 60 * 60


class SimulationClock:
    """Manually advanced UNIX clock."""

    def __init__(self, start: int = 1_700_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds

    @classmethod
    def ending_now(cls, duration: int) -> "SimulationClock":
        """Clock whose run of ``duration`` seconds ends at the current real time.

        Funds saved at the end of a simulation then carry real timestamps,
        so a keeper reloading them only accrues fees for real time elapsed.
        """
        return cls(int(time.time()) - duration)


def parse_prices(price_list: Tuple[str, ...]) -> Dict[str, str]:
    """Parse "ASSET=price" strings into a dictionary."""
    prices = {}
    for item in price_list:
        if "=" not in item:
            click.echo(f"Warning: Invalid price '{item}', expected 'ASSET=price'")
            continue
        asset, value = item.split("=", 1)
        prices[asset.strip()] = value.strip()
    return prices


def format_units(amount: int, decimals: int) -> str:
    return f"{amount / 10**decimals:,.6f}"


def create_composition_table(fund: Fund, settings: FundSettings) -> Table:
    """Create current vs target composition table."""
    table = Table(title="Composition", show_header=True, header_style="bold magenta")
    table.add_column("Asset", style="cyan", no_wrap=True)
    table.add_column("Balance", justify="right")
    table.add_column("Value", justify="right", style="green")
    table.add_column("Current (bps)", justify="right")
    table.add_column("Target (bps)", justify="right")

    snapshot = fund.snapshot()
    current = fund.get_current_composition_bps()
    targets = fund.get_target_composition_bps()
    balances = fund.portfolio.balances()

    for asset in fund.portfolio.held_assets():
        table.add_row(
            asset,
            format_units(balances.get(asset, 0), settings.accounting_decimals),
            format_units(snapshot.asset_values.get(asset, 0), settings.accounting_decimals),
            str(current.get(asset, 0)),
            str(targets.get(asset, "-")),
        )
    return table


def create_nav_table(tracker: NavTracker, settings: FundSettings) -> Table:
    """Create NAV history table."""
    table = Table(title="NAV History", show_header=True, header_style="bold magenta")
    table.add_column("Time (UTC)", style="cyan")
    table.add_column("NAV", justify="right", style="green")
    table.add_column("Supply", justify="right")
    table.add_column("Share Price", justify="right")

    history = tracker.get_history()
    for timestamp, row in history.iterrows():
        table.add_row(
            timestamp.strftime("%Y-%m-%d %H:%M"),
            format_units(int(row["total_nav"]), settings.accounting_decimals),
            f"{int(row['total_supply']):,}",
            f"{row['share_price']:.8f}",
        )
    return table


@click.group()
def cli():
    """Basket fund simulation tool."""
    pass


@cli.command()
@click.option("--config", "config_file", type=click.Path(exists=True), help="YAML config file")
@click.option("--deposit", type=str, help="Initial deposit in whole accounting units")
@click.option("--shock", "-s", multiple=True, help="Price after allocation (ASSET=price)")
@click.option("--days", type=int, default=30, help="Days of fee accrual to simulate")
@click.option("--withdraw-pct", type=int, default=50, help="Percent of shares to withdraw")
@click.option("--db", type=click.Path(), help="Save the resulting fund to this SQLite file")
def simulate(config_file, deposit, shock, days, withdraw_pct, db):
    """Run a deposit / rebalance / fee / withdraw scenario."""
    config, settings = load_fund_settings(config_file)
    setup_logging(level=config.get("logging.level", "INFO"))

    accounting = config.get("fund.accounting_asset", "WETH")
    weights = dict(config.get("simulation.weights", {}))
    shocks = parse_prices(shock)
    shock_delay = 60 if shocks else 0
    clock = SimulationClock.ending_now(shock_delay + max(days, 0) * SECONDS_PER_DAY)

    exchange = SimulatedExchange(
        accounting,
        {
            "fee_bps": config.get("simulation.exchange_fee_bps", 30),
            "slippage_bps": config.get("simulation.exchange_slippage_bps", 0),
        },
        clock=clock,
    )
    exchange.set_prices(config.get("simulation.prices", {}))

    events = FundEventLogger(log_dir=config.get("logging.event_log_dir", "logs"))
    registry = FundRegistry(exchange, settings, clock=clock, events=events)

    console.print("[bold]BASKET FUND SIMULATION[/bold]")
    console.print(f"Accounting asset: {accounting}")
    console.print(f"Weights:          {weights}")
    console.print()

    try:
        fund = registry.create_fund(
            name="Simulated Basket",
            accounting_asset=accounting,
            asset_ids=list(weights),
            owner=OWNER,
            agent=AGENT,
            agent_fee_bps=int(config.get("simulation.agent_fee_bps", 200)),
        )
        tracker = NavTracker(fund)

        fund.set_target_weights(weights, caller=AGENT)
        amount = to_raw_units(
            deposit or config.get("simulation.initial_deposit", "10"),
            settings.accounting_decimals,
        )
        result = fund.deposit(amount, INVESTOR)
        tracker.record()
        if result.rebalance is not None:
            tracker.record_rebalance(result.rebalance)
        console.print(f"[green]Deposited[/green] {format_units(amount, settings.accounting_decimals)} "
                      f"{accounting}, minted {result.shares_minted:,} shares")
        console.print(create_composition_table(fund, settings))

        if shocks:
            exchange.set_prices(shocks)
            clock.advance(shock_delay)
            tracker.record()
            needed, deviation = fund.is_rebalance_needed()
            console.print(f"Price shock {shocks}: max deviation {deviation} bps")
            if needed:
                rebalance = fund.trigger_rebalance(caller=AGENT)
                tracker.record_rebalance(rebalance)
                tracker.record()
                console.print(
                    f"[green]Rebalanced[/green] with {len(rebalance.trades)} trades, "
                    f"cost {format_units(rebalance.cost, settings.accounting_decimals)}"
                )
                console.print(create_composition_table(fund, settings))

        if days > 0:
            clock.advance(days * SECONDS_PER_DAY)
            collection = fund.collect_management_fee(caller=AGENT)
            tracker.record_fee(collection)
            tracker.record()
            console.print(
                f"[green]Collected fee[/green] worth "
                f"{format_units(collection.fee_value, settings.accounting_decimals)} "
                f"({collection.agent_shares:,} agent / {collection.protocol_shares:,} protocol shares)"
            )

        shares = fund.balance_of(INVESTOR) * withdraw_pct // 100
        if shares > 0:
            withdrawal = fund.withdraw(shares, INVESTOR, INVESTOR)
            tracker.record()
            received = ", ".join(
                f"{asset}={format_units(value, settings.accounting_decimals)}"
                for asset, value in withdrawal.amounts().items()
            )
            console.print(f"[green]Withdrew[/green] {shares:,} shares: {received}")

        console.print(create_nav_table(tracker, settings))

        metrics = tracker.get_performance_metrics()
        console.print(f"Share price return: {metrics['share_price_return'] * 100:.4f}%")
        console.print(f"Max drawdown:       {metrics['max_drawdown'] * 100:.4f}%")
        console.print(f"Rebalances:         {metrics['rebalance_count']}")

        if db:
            store = FundStore(db)
            store.save_fund(fund)
            store.close()
            console.print(f"Saved fund {fund.fund_id} to {db}")

    except FundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)
    finally:
        events.close()


@cli.command()
@click.option("--config", "config_file", type=click.Path(exists=True), help="YAML config file")
@click.option("--db", type=click.Path(), help="SQLite file with stored funds")
@click.option("--once", is_flag=True, help="Run one fee and rebalance pass and exit")
@click.option("--interval", "-i", default=60, help="Status refresh interval in seconds")
def keeper(config_file, db, once, interval):
    """Maintain stored funds: collect fees and rebalance on a schedule."""
    config, settings = load_fund_settings(config_file)
    setup_logging(level=config.get("logging.level", "INFO"))

    accounting = config.get("fund.accounting_asset", "WETH")
    exchange = SimulatedExchange(
        accounting,
        {
            "fee_bps": config.get("simulation.exchange_fee_bps", 30),
            "slippage_bps": config.get("simulation.exchange_slippage_bps", 0),
        },
    )
    exchange.set_prices(config.get("simulation.prices", {}))

    store = FundStore(db or config.get("storage.db_path", "data/funds.db"))
    events = FundEventLogger(log_dir=config.get("logging.event_log_dir", "logs"))
    registry = FundRegistry(exchange, settings, events=events)
    for fund_id in store.list_fund_ids():
        registry.register(store.load_fund(fund_id, exchange, settings, events=events))

    fund_keeper = FundKeeper(registry, config.get("keeper", {}), store=store)
    console.print(f"[bold]Keeper loaded {len(registry)} funds[/bold]")

    try:
        if once:
            collections = fund_keeper.run_fee_cycle()
            rebalances = fund_keeper.run_rebalance_cycle()
            console.print(
                f"Collected fees on {len(collections)} funds, rebalanced {len(rebalances)} funds"
            )
            return

        fund_keeper.schedule_default_jobs()
        fund_keeper.start()
        console.print("[bold green]Keeper running. Press Ctrl+C to exit.[/bold green]\n")
        try:
            while True:
                time.sleep(interval)
                for job in fund_keeper.get_jobs():
                    console.print(f"[dim]{job.id}: next run {job.next_run_time}[/dim]")
        except KeyboardInterrupt:
            console.print("\n[yellow]Keeper stopped.[/yellow]")
        finally:
            fund_keeper.stop()

    except FundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)
    finally:
        store.close()
        events.close()


@cli.command("show-config")
@click.option("--config", "config_file", type=click.Path(exists=True), help="YAML config file")
def show_config(config_file):
    """Show the effective fund settings."""
    _, settings = load_fund_settings(config_file)

    table = Table(title="Fund Settings", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")

    for name, value in vars(settings).items():
        table.add_row(name, str(value))
    console.print(table)


if __name__ == "__main__":
    cli()
