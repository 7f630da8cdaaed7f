"""Orchestration Layer - Scheduled maintenance of registered funds."""

from basketfund.orchestration.keeper import FEE_JOB_ID, REBALANCE_JOB_ID, FundKeeper

__all__ = ["FundKeeper", "FEE_JOB_ID", "REBALANCE_JOB_ID"]
