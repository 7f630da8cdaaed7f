"""Engine Layer - deposits, withdrawals, rebalancing and fees.

Components:
- InvestmentEngine: NAV-priced deposits and basket withdrawals
- RebalanceEngine: Deviation checks and sell-then-buy rebalancing
- FeeAccrual: Time-based management fee minted as shares
- Role / require_role: Guard clauses for restricted operations
"""

from basketfund.engine.access import FundRoles, Role, require_role
from basketfund.engine.fees import FeeAccrual, FeeCollection
from basketfund.engine.investment import (
    AssetTransfer,
    DepositResult,
    InvestmentEngine,
    WithdrawalResult,
)
from basketfund.engine.rebalance import (
    AssetDeviation,
    DeviationReport,
    RebalanceEngine,
    RebalancePhase,
    RebalanceResult,
)

__all__ = [
    # Engines
    "InvestmentEngine",
    "RebalanceEngine",
    "FeeAccrual",
    # Access control
    "Role",
    "FundRoles",
    "require_role",
    # Results
    "DepositResult",
    "WithdrawalResult",
    "AssetTransfer",
    "RebalanceResult",
    "DeviationReport",
    "AssetDeviation",
    "FeeCollection",
    # Enums
    "RebalancePhase",
]
