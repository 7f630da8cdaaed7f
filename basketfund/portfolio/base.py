"""Portfolio state and trade instructions.

This module defines what the fund holds and what it wants to hold:
- AllowedAsset: one asset of the fixed investable set with its target weight
- PortfolioState: target weights plus per-asset balances for one fund
- TradeInstruction: a single sell or buy emitted by the rebalance engine

The allowed-asset set is fixed when the fund is created. Target weights may
change within that set; assets can never be added or removed afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Union

from basketfund.ledger.share_ledger import is_zero_address
from basketfund.utils.config import BPS_DENOMINATOR
from basketfund.utils.exceptions import InsufficientBalanceError, InvalidParametersError

WeightsInput = Union[Mapping[str, int], Sequence[int]]


class TradeSide(Enum):
    """Trade direction relative to the portfolio asset."""

    SELL = "SELL"  # asset -> accounting asset
    BUY = "BUY"  # accounting asset -> asset


@dataclass(frozen=True)
class AllowedAsset:
    """An asset the fund may hold.

    Attributes:
        asset_id: Asset address or identifier
        target_weight_bps: Target share of NAV in basis points (0 when unset)
        balance: Current raw balance held by the fund
    """

    asset_id: str
    target_weight_bps: int
    balance: int


@dataclass
class TradeInstruction:
    """A swap to be sent to the exchange adapter.

    Attributes:
        side: SELL (asset for accounting asset) or BUY (the reverse)
        asset_id: Portfolio asset being sold or bought
        amount_in: Raw amount of the input token
        expected_amount_out: Quoted output at planning time
        min_amount_out: Output floor after slippage tolerance
        deadline: UNIX timestamp after which the swap must not execute
        deviation_bps: Absolute weight deviation that motivated the trade
        amount_out: Realized output, set once executed
    """

    side: TradeSide
    asset_id: str
    amount_in: int
    expected_amount_out: int
    min_amount_out: int
    deadline: int
    deviation_bps: int = 0
    amount_out: Optional[int] = None

    def __post_init__(self):
        """Validate trade fields."""
        if self.amount_in <= 0:
            raise ValueError(f"amount_in must be positive, got {self.amount_in}")
        if self.min_amount_out < 0:
            raise ValueError(f"min_amount_out must be non-negative, got {self.min_amount_out}")
        if self.min_amount_out > self.expected_amount_out:
            raise ValueError(
                f"min_amount_out {self.min_amount_out} exceeds "
                f"expected_amount_out {self.expected_amount_out}"
            )

    @property
    def is_executed(self) -> bool:
        return self.amount_out is not None


@dataclass(frozen=True)
class PortfolioCheckpoint:
    """Copy of portfolio state used to roll back a failed operation."""

    targets: Dict[str, int]
    balances: Dict[str, int]
    has_allocated: bool


class PortfolioState:
    """Allowed assets, target weights and balances of one fund.

    The accounting asset always has a balance slot. It may also be listed as
    an allowed asset, in which case it carries a target weight and shares its
    single balance with the accounting role.

    Example:
        >>> state = PortfolioState("WETH", ["WBTC", "LINK"])
        >>> state.set_target_weights({"WBTC": 6000, "LINK": 4000})
        >>> state.credit("WETH", 10**18)
        >>> state.idle_accounting_balance()
        1000000000000000000
    """

    def __init__(
        self,
        accounting_asset: str,
        asset_ids: Sequence[str],
        target_weights: Optional[WeightsInput] = None,
    ):
        """Initialize portfolio state.

        Args:
            accounting_asset: Asset used for NAV, deposits and trade funding
            asset_ids: The fixed set of allowed assets, in a stable order
            target_weights: Optional initial weights (mapping or list aligned
                with asset_ids)

        Raises:
            InvalidParametersError: Empty, duplicated or zero-address assets,
                or invalid initial weights
        """
        if is_zero_address(accounting_asset):
            raise InvalidParametersError("accounting asset must not be the zero address")
        if not asset_ids:
            raise InvalidParametersError("at least one allowed asset is required")
        if len(set(asset_ids)) != len(asset_ids):
            raise InvalidParametersError(f"duplicate allowed assets: {list(asset_ids)}")
        for asset_id in asset_ids:
            if is_zero_address(asset_id):
                raise InvalidParametersError("allowed asset must not be the zero address")

        self.accounting_asset = accounting_asset
        self._asset_ids: tuple[str, ...] = tuple(asset_ids)
        self._targets: Dict[str, int] = {}
        self._balances: Dict[str, int] = {a: 0 for a in self.held_assets()}
        self.has_allocated = False

        if target_weights is not None:
            self.set_target_weights(target_weights)

    @property
    def asset_ids(self) -> tuple[str, ...]:
        return self._asset_ids

    @property
    def weights_set(self) -> bool:
        return bool(self._targets)

    def held_assets(self) -> List[str]:
        """Every asset the fund can hold: accounting asset first, then allowed."""
        assets = [self.accounting_asset]
        assets.extend(a for a in self._asset_ids if a != self.accounting_asset)
        return assets

    def is_allowed(self, asset_id: str) -> bool:
        return asset_id in self._asset_ids

    def accounting_is_allowed(self) -> bool:
        return self.accounting_asset in self._asset_ids

    def allowed_assets(self) -> List[AllowedAsset]:
        return [
            AllowedAsset(
                asset_id=a,
                target_weight_bps=self._targets.get(a, 0),
                balance=self._balances[a],
            )
            for a in self._asset_ids
        ]

    def target_weights(self) -> Dict[str, int]:
        """Target weight per allowed asset (empty dict until first set)."""
        return {a: self._targets[a] for a in self._asset_ids if a in self._targets}

    def target_weight(self, asset_id: str) -> int:
        """Target weight in bps; 0 for the idle accounting asset."""
        return self._targets.get(asset_id, 0)

    def set_target_weights(self, weights: WeightsInput) -> Dict[str, int]:
        """Replace all target weights.

        Validation happens in full before any state is touched.

        Args:
            weights: Mapping asset -> bps, or a list aligned with asset_ids

        Returns:
            The new target weights

        Raises:
            InvalidParametersError: Unknown or missing assets, a weight that
                is zero or out of range, or a sum different from 10000
        """
        resolved = self._resolve_weights(weights)

        for asset_id, weight in resolved.items():
            if not isinstance(weight, int) or isinstance(weight, bool):
                raise InvalidParametersError(
                    f"weight for {asset_id} must be an integer, got {weight!r}"
                )
            if weight <= 0:
                raise InvalidParametersError(f"weight for {asset_id} must be positive, got {weight}")
            if weight > BPS_DENOMINATOR:
                raise InvalidParametersError(
                    f"weight for {asset_id} exceeds {BPS_DENOMINATOR} bps, got {weight}"
                )

        total = sum(resolved.values())
        if total != BPS_DENOMINATOR:
            raise InvalidParametersError(
                f"target weights must sum to {BPS_DENOMINATOR} bps, got {total}"
            )

        self._targets = resolved
        return self.target_weights()

    def balance_of(self, asset_id: str) -> int:
        try:
            return self._balances[asset_id]
        except KeyError:
            raise InvalidParametersError(f"{asset_id} is not held by this fund") from None

    def balances(self) -> Dict[str, int]:
        return dict(self._balances)

    def idle_accounting_balance(self) -> int:
        """Accounting-asset balance not covered by a target weight."""
        if self.accounting_is_allowed():
            return 0
        return self._balances[self.accounting_asset]

    def credit(self, asset_id: str, amount: int) -> None:
        self._check_amount(amount)
        self._balances[asset_id] = self.balance_of(asset_id) + amount

    def debit(self, asset_id: str, amount: int) -> None:
        self._check_amount(amount)
        balance = self.balance_of(asset_id)
        if balance < amount:
            raise InsufficientBalanceError(
                f"fund holds {balance} of {asset_id}, needs {amount}"
            )
        self._balances[asset_id] = balance - amount

    def checkpoint(self) -> PortfolioCheckpoint:
        return PortfolioCheckpoint(
            targets=dict(self._targets),
            balances=dict(self._balances),
            has_allocated=self.has_allocated,
        )

    def restore(self, checkpoint: PortfolioCheckpoint) -> None:
        self._targets = dict(checkpoint.targets)
        self._balances = dict(checkpoint.balances)
        self.has_allocated = checkpoint.has_allocated

    def _resolve_weights(self, weights: WeightsInput) -> Dict[str, int]:
        if isinstance(weights, Mapping):
            unknown = [a for a in weights if a not in self._asset_ids]
            if unknown:
                raise InvalidParametersError(f"not allowed assets: {unknown}")
            missing = [a for a in self._asset_ids if a not in weights]
            if missing:
                raise InvalidParametersError(f"missing target weights for {missing}")
            return {a: weights[a] for a in self._asset_ids}

        weights = list(weights)
        if len(weights) != len(self._asset_ids):
            raise InvalidParametersError(
                f"expected {len(self._asset_ids)} weights, got {len(weights)}"
            )
        return dict(zip(self._asset_ids, weights))

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise InvalidParametersError(f"amount must be a non-negative integer, got {amount!r}")
