"""SQLite persistence for fund state.

This module provides the FundStore class, which saves and reloads the
persisted layout of a fund: immutable parameters, allowed assets and target
weights, asset balances, share balances and allowances.
"""

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from basketfund.exchange.base import Exchange
from basketfund.fund.fund import Fund
from basketfund.ledger.share_ledger import LedgerCheckpoint
from basketfund.portfolio.base import PortfolioCheckpoint
from basketfund.utils.config import FundSettings
from basketfund.utils.exceptions import StorageError
from basketfund.utils.logging import get_logger
from basketfund.utils.logging_enhanced import FundEventLogger

logger = get_logger(__name__)


class FundStore:
    """Manages SQLite storage of funds.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str):
        """Initialize the store and create tables.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self.create_tables()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a thread-local database connection."""
        if not hasattr(self._local, "connection"):
            # opened per thread, closed from whichever thread calls close()
            connection = sqlite3.connect(self.db_path, check_same_thread=False)
            connection.row_factory = sqlite3.Row
            connection.execute("PRAGMA foreign_keys = ON")
            self._local.connection = connection
            with self._connections_lock:
                self._connections.append(connection)
        return self._local.connection

    def create_tables(self) -> None:
        """Create necessary database tables if they don't exist."""
        schema_path = Path(__file__).parent / "schema.sql"
        try:
            with open(schema_path, "r", encoding="utf-8") as f:
                schema = f.read()

            conn = self._get_connection()
            conn.executescript(schema)
            conn.commit()
            logger.info("Fund store initialized at %s", self.db_path)
        except (OSError, sqlite3.Error) as e:
            logger.error("Failed to create tables: %s", e)
            raise StorageError(f"Database initialization failed: {e}") from e

    def save_fund(self, fund: Fund) -> None:
        """Upsert the full state of a fund in one transaction.

        Args:
            fund: Fund to persist
        """
        state = fund.state()
        allowances = fund.ledger.checkpoint().allowances
        now = datetime.now(timezone.utc).isoformat()

        conn = self._get_connection()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO funds
                    (fund_id, name, accounting_asset, owner, agent, agent_fee_bps,
                     agent_fee_wallet, protocol_fee_recipient, created_at,
                     last_fee_collection_timestamp, has_allocated, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(fund_id) DO UPDATE SET
                    agent=excluded.agent,
                    last_fee_collection_timestamp=excluded.last_fee_collection_timestamp,
                    has_allocated=excluded.has_allocated,
                    updated_at=excluded.updated_at
                    """,
                    (
                        state.fund_id,
                        state.name,
                        state.accounting_asset,
                        state.owner,
                        state.agent,
                        state.agent_fee_bps,
                        state.agent_fee_wallet,
                        state.protocol_fee_recipient,
                        state.created_at,
                        state.last_fee_collection_timestamp,
                        int(state.has_allocated),
                        now,
                    ),
                )

                for table in ("fund_assets", "asset_balances", "share_balances", "allowances"):
                    conn.execute(f"DELETE FROM {table} WHERE fund_id = ?", (state.fund_id,))

                conn.executemany(
                    "INSERT INTO fund_assets (fund_id, asset_id, position, target_weight_bps) "
                    "VALUES (?, ?, ?, ?)",
                    [
                        (state.fund_id, asset.asset_id, position, asset.target_weight_bps)
                        for position, asset in enumerate(state.allowed_assets)
                    ],
                )
                conn.executemany(
                    "INSERT INTO asset_balances (fund_id, asset_id, balance) VALUES (?, ?, ?)",
                    [(state.fund_id, a, str(b)) for a, b in state.balances.items()],
                )
                conn.executemany(
                    "INSERT INTO share_balances (fund_id, holder, balance) VALUES (?, ?, ?)",
                    [(state.fund_id, h, str(b)) for h, b in state.share_balances.items()],
                )
                conn.executemany(
                    "INSERT INTO allowances (fund_id, owner, spender, amount) VALUES (?, ?, ?, ?)",
                    [
                        (state.fund_id, owner, spender, str(amount))
                        for (owner, spender), amount in allowances.items()
                    ],
                )
            logger.info("Saved fund %s (%d holders)", state.fund_id, len(state.share_balances))
        except sqlite3.Error as e:
            logger.error("Failed to save fund %s: %s", state.fund_id, e)
            raise StorageError(f"Failed to save fund: {e}") from e

    def load_fund(
        self,
        fund_id: str,
        exchange: Exchange,
        settings: Optional[FundSettings] = None,
        clock: Optional[Callable[[], int]] = None,
        events: Optional[FundEventLogger] = None,
    ) -> Fund:
        """Rebuild a fund from storage.

        Args:
            fund_id: Identifier of the stored fund
            exchange: Exchange adapter for the rebuilt fund
            settings: Protocol constants
            clock: Clock for the rebuilt fund
            events: Optional structured event logger

        Returns:
            Fund with the stored balances, weights and fee clock

        Raises:
            StorageError: If the fund is missing or the query fails
        """
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT * FROM funds WHERE fund_id = ?", (fund_id,)).fetchone()
            if row is None:
                raise StorageError(f"Fund not found: {fund_id}")

            assets = conn.execute(
                "SELECT asset_id, target_weight_bps FROM fund_assets "
                "WHERE fund_id = ? ORDER BY position ASC",
                (fund_id,),
            ).fetchall()
            balances = conn.execute(
                "SELECT asset_id, balance FROM asset_balances WHERE fund_id = ?", (fund_id,)
            ).fetchall()
            shares = conn.execute(
                "SELECT holder, balance FROM share_balances WHERE fund_id = ?", (fund_id,)
            ).fetchall()
            allowances = conn.execute(
                "SELECT owner, spender, amount FROM allowances WHERE fund_id = ?", (fund_id,)
            ).fetchall()
        except sqlite3.Error as e:
            logger.error("Failed to load fund %s: %s", fund_id, e)
            raise StorageError(f"Failed to load fund: {e}") from e

        asset_ids = [a["asset_id"] for a in assets]
        targets = {a["asset_id"]: a["target_weight_bps"] for a in assets}
        weights_set = all(w > 0 for w in targets.values())

        fund = Fund(
            fund_id=row["fund_id"],
            name=row["name"],
            accounting_asset=row["accounting_asset"],
            asset_ids=asset_ids,
            exchange=exchange,
            owner=row["owner"],
            agent=row["agent"],
            agent_fee_bps=row["agent_fee_bps"],
            protocol_fee_recipient=row["protocol_fee_recipient"],
            agent_fee_wallet=row["agent_fee_wallet"],
            settings=settings,
            clock=clock,
            events=events,
            created_at=row["created_at"],
        )

        share_balances = {s["holder"]: int(s["balance"]) for s in shares}
        fund.ledger.restore(
            LedgerCheckpoint(
                balances=share_balances,
                allowances={(a["owner"], a["spender"]): int(a["amount"]) for a in allowances},
                total_supply=sum(share_balances.values()),
            )
        )
        fund.portfolio.restore(
            PortfolioCheckpoint(
                targets=targets if weights_set else {},
                balances={b["asset_id"]: int(b["balance"]) for b in balances},
                has_allocated=bool(row["has_allocated"]),
            )
        )
        fund.fees.last_collection_timestamp = row["last_fee_collection_timestamp"]

        logger.info("Loaded fund %s (%s)", fund_id, row["name"])
        return fund

    def list_fund_ids(self) -> List[str]:
        """Ids of all stored funds, oldest first."""
        conn = self._get_connection()
        try:
            rows = conn.execute("SELECT fund_id FROM funds ORDER BY created_at ASC").fetchall()
        except sqlite3.Error as e:
            logger.error("Failed to list funds: %s", e)
            raise StorageError(f"Database error: {e}") from e
        return [r["fund_id"] for r in rows]

    def delete_fund(self, fund_id: str) -> None:
        conn = self._get_connection()
        try:
            with conn:
                conn.execute("DELETE FROM funds WHERE fund_id = ?", (fund_id,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete fund: {e}") from e

    def close(self):
        """Close the connections opened by every thread.

        The store stays usable; a later call reconnects lazily.
        """
        with self._connections_lock:
            connections, self._connections = self._connections, []
            self._local = threading.local()
        for connection in connections:
            connection.close()
        logger.debug("Closed %d fund store connection(s)", len(connections))
