from __future__ import annotations
from typing import Dict, Optional, Tuple
import logging

from .chain import Chain, Contract, transactional
from .core import format_amount
from .errors import InsufficientAllowance, TransferFailed, Unauthorized

logger = logging.getLogger(__name__)


class Token(Contract):
    """Fungible balance ledger with allowances."""

    _state_fields: Tuple[str, ...] = ("balances", "allowances", "total_supply")

    def __init__(self, chain: Chain, name: str, symbol: str, decimals: int = 18,
                 address: Optional[str] = None) -> None:
        super().__init__(chain, address)
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}
        self.total_supply: int = 0

    def balance_of(self, who: str) -> int:
        return int(self.balances.get(who, 0))

    def allowance(self, owner: str, spender: str) -> int:
        return int(self.allowances.get((owner, spender), 0))

    def _move(self, frm: str, to: str, amount: int) -> None:
        amount = int(amount)
        if amount < 0:
            raise TransferFailed("negative amount", {"amount": amount})
        if self.balance_of(frm) < amount:
            raise TransferFailed(
                f"{self.symbol}: transfer amount exceeds balance",
                {"from": frm, "balance": self.balance_of(frm), "amount": amount},
            )
        self.balances[frm] = self.balance_of(frm) - amount
        self.balances[to] = self.balance_of(to) + amount

    def _mint(self, to: str, amount: int) -> None:
        self.balances[to] = self.balance_of(to) + int(amount)
        self.total_supply += int(amount)

    def _burn(self, frm: str, amount: int) -> None:
        if self.balance_of(frm) < amount:
            raise TransferFailed(
                f"{self.symbol}: burn amount exceeds balance",
                {"from": frm, "balance": self.balance_of(frm), "amount": amount},
            )
        self.balances[frm] = self.balance_of(frm) - int(amount)
        self.total_supply -= int(amount)

    @transactional
    def transfer(self, sender: str, to: str, amount: int) -> bool:
        self._move(sender, to, amount)
        self.emit("Transfer", src=sender, dst=to, amount=int(amount))
        return True

    @transactional
    def approve(self, sender: str, spender: str, amount: int) -> bool:
        self.allowances[(sender, spender)] = int(amount)
        self.emit("Approval", owner=sender, spender=spender, amount=int(amount))
        return True

    @transactional
    def transfer_from(self, sender: str, owner: str, to: str, amount: int) -> bool:
        allowed = self.allowance(owner, sender)
        if allowed < amount:
            raise InsufficientAllowance(
                f"{self.symbol}: transfer amount exceeds allowance",
                {"owner": owner, "spender": sender, "allowance": allowed, "amount": int(amount)},
            )
        self._move(owner, to, amount)
        self.allowances[(owner, sender)] = allowed - int(amount)
        self.emit("Transfer", src=owner, dst=to, amount=int(amount))
        return True

    @transactional
    def burn(self, sender: str, amount: int) -> None:
        self._burn(sender, amount)
        self.emit("Transfer", src=sender, dst=None, amount=int(amount))

    def mint_to(self, to: str, amount: int) -> None:
        """Genesis allocation for plain tokens (deployment and tests)."""
        self._mint(to, amount)
        self.emit("Transfer", src=None, dst=to, amount=int(amount))


class GovernanceToken(Token):
    """
    Owner-mintable token with an optional supply cap and a per-holder lock.
    Locked balances count towards ``total_balance_of`` but cannot be moved.
    """

    _state_fields: Tuple[str, ...] = Token._state_fields + ("owner", "locks", "total_locked")

    def __init__(self, chain: Chain, owner: str, name: str = "Power", symbol: str = "POWER",
                 cap: Optional[int] = None, address: Optional[str] = None) -> None:
        super().__init__(chain, name, symbol, 18, address)
        self.owner = owner
        self.cap = cap
        self.locks: Dict[str, int] = {}
        self.total_locked: int = 0

    def _only_owner(self, sender: str) -> None:
        if sender != self.owner:
            raise Unauthorized("Ownable: caller is not the owner", {"caller": sender})

    def remaining_supply(self) -> Optional[int]:
        if self.cap is None:
            return None
        return max(0, self.cap - self.total_supply)

    def lock_of(self, who: str) -> int:
        return int(self.locks.get(who, 0))

    def total_balance_of(self, who: str) -> int:
        return self.balance_of(who) + self.lock_of(who)

    @transactional
    def mint(self, sender: str, to: str, amount: int) -> None:
        self._only_owner(sender)
        remaining = self.remaining_supply()
        if remaining is not None and amount > remaining:
            raise TransferFailed("cap exceeded", {"amount": int(amount), "remaining": remaining})
        self._mint(to, amount)
        self.emit("Transfer", src=None, dst=to, amount=int(amount))

    @transactional
    def lock(self, sender: str, holder: str, amount: int) -> None:
        self._only_owner(sender)
        if self.balance_of(holder) < amount:
            raise TransferFailed("lock amount exceeds balance", {"holder": holder, "amount": int(amount)})
        self.balances[holder] = self.balance_of(holder) - int(amount)
        self.locks[holder] = self.lock_of(holder) + int(amount)
        self.total_locked += int(amount)
        self.emit("Lock", to=holder, value=int(amount))
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("[LOCK] holder=%s amount=%s", holder, format_amount(amount))

    @transactional
    def transfer_ownership(self, sender: str, new_owner: str) -> None:
        self._only_owner(sender)
        previous = self.owner
        self.owner = new_owner
        self.emit("OwnershipTransferred", previous_owner=previous, new_owner=new_owner)
        logger.info("[TOKEN] %s ownership %s -> %s", self.symbol, previous, new_owner)
