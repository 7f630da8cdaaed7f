"""Monitoring module for NAV and rebalancing cost tracking."""

from basketfund.monitoring.nav_tracker import NavObservation, NavTracker, RebalanceCost

__all__ = ["NavTracker", "NavObservation", "RebalanceCost"]
