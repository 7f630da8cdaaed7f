"""Share Ledger Layer.

Fungible fund shares with transfer, allowance, mint and burn semantics.
"""

from basketfund.ledger.share_ledger import (
    MAX_ALLOWANCE,
    ZERO_ADDRESS,
    LedgerCheckpoint,
    ShareLedger,
    is_zero_address,
)

__all__ = [
    "ShareLedger",
    "LedgerCheckpoint",
    "ZERO_ADDRESS",
    "MAX_ALLOWANCE",
    "is_zero_address",
]
