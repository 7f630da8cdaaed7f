"""Storage Layer - SQLite persistence of fund state."""

from basketfund.storage.fund_store import FundStore

__all__ = ["FundStore"]
