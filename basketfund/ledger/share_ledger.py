"""Fund share ledger.

Tracks share balances, allowances and total supply with ERC20-equivalent
semantics. Mint and burn are internal: only the engines call them.

Invariant: sum(balances) == total_supply after every operation.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple

from basketfund.utils.exceptions import InsufficientBalanceError, InvalidParametersError
from basketfund.utils.logging import get_logger

logger = get_logger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Allowances at this value are never decremented
MAX_ALLOWANCE = 2**256 - 1


def is_zero_address(address: str | None) -> bool:
    """True for None, empty and all-zero addresses."""
    if not address:
        return True
    return address.lower() == ZERO_ADDRESS


@dataclass(frozen=True)
class LedgerCheckpoint:
    """Copy of ledger state used to roll back a failed operation."""

    balances: Dict[str, int]
    allowances: Dict[Tuple[str, str], int]
    total_supply: int


@dataclass
class ShareLedger:
    """Share balances and allowances for one fund.

    Example:
        >>> ledger = ShareLedger()
        >>> ledger.mint("0xalice", 1000)
        >>> ledger.transfer("0xalice", "0xbob", 250)
        >>> ledger.balance_of("0xbob")
        250
    """

    _balances: Dict[str, int] = field(default_factory=dict)
    _allowances: Dict[Tuple[str, str], int] = field(default_factory=dict)
    _total_supply: int = 0

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, holder: str) -> int:
        return self._balances.get(holder, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def holders(self) -> Dict[str, int]:
        """Non-zero balances by holder."""
        return {h: b for h, b in self._balances.items() if b > 0}

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """Move shares between holders.

        Raises:
            InvalidParametersError: zero address or negative amount
            InsufficientBalanceError: sender holds fewer than amount
        """
        if is_zero_address(sender) or is_zero_address(recipient):
            raise InvalidParametersError("transfer to or from the zero address")
        self._check_amount(amount)
        self._debit(sender, amount)
        self._balances[recipient] = self.balance_of(recipient) + amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Set the allowance of spender over owner's shares."""
        if is_zero_address(owner) or is_zero_address(spender):
            raise InvalidParametersError("approve from or to the zero address")
        self._check_amount(amount)
        self._allowances[(owner, spender)] = amount

    def spend_allowance(self, owner: str, spender: str, amount: int) -> None:
        """Consume allowance; unlimited allowances are left untouched.

        Raises:
            InsufficientBalanceError: allowance smaller than amount
        """
        current = self.allowance(owner, spender)
        if current == MAX_ALLOWANCE:
            return
        if current < amount:
            raise InsufficientBalanceError(
                f"allowance {current} of {spender} over {owner} is below {amount}"
            )
        self._allowances[(owner, spender)] = current - amount

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        """Transfer owner's shares on behalf of spender.

        The balance is checked before the allowance is consumed so that a
        failing call leaves both untouched.
        """
        if is_zero_address(owner) or is_zero_address(recipient):
            raise InvalidParametersError("transfer to or from the zero address")
        self._check_amount(amount)
        if self.balance_of(owner) < amount:
            raise InsufficientBalanceError(
                f"{owner} holds {self.balance_of(owner)} shares, needs {amount}"
            )
        self.spend_allowance(owner, spender, amount)
        self.transfer(owner, recipient, amount)

    def mint(self, to: str, amount: int) -> None:
        if is_zero_address(to):
            raise InvalidParametersError("mint to the zero address")
        self._check_amount(amount)
        self._balances[to] = self.balance_of(to) + amount
        self._total_supply += amount
        logger.debug("Minted %d shares to %s (supply=%d)", amount, to, self._total_supply)

    def burn(self, owner: str, amount: int) -> None:
        self._check_amount(amount)
        self._debit(owner, amount)
        self._total_supply -= amount
        logger.debug("Burned %d shares from %s (supply=%d)", amount, owner, self._total_supply)

    def checkpoint(self) -> LedgerCheckpoint:
        return LedgerCheckpoint(
            balances=dict(self._balances),
            allowances=dict(self._allowances),
            total_supply=self._total_supply,
        )

    def restore(self, checkpoint: LedgerCheckpoint) -> None:
        self._balances = dict(checkpoint.balances)
        self._allowances = dict(checkpoint.allowances)
        self._total_supply = checkpoint.total_supply

    def _debit(self, holder: str, amount: int) -> None:
        balance = self.balance_of(holder)
        if balance < amount:
            raise InsufficientBalanceError(
                f"{holder} holds {balance} shares, needs {amount}"
            )
        self._balances[holder] = balance - amount

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise InvalidParametersError(f"amount must be a non-negative integer, got {amount!r}")
