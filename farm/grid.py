from __future__ import annotations
from typing import Optional
import logging

from .chain import Chain, transactional
from .errors import InsufficientBalance
from .token import Token

logger = logging.getLogger(__name__)


class Grid(Token):
    """
    Share vault over the governance token. Shares are minted against the
    vault's underlying balance at entry and redeemed pro rata at exit, so
    anything sent to the vault directly (converted fees) raises the share
    price for every holder.
    """

    def __init__(self, chain: Chain, token: Token, name: str = "PowerGrid", symbol: str = "xPOWER",
                 address: Optional[str] = None) -> None:
        super().__init__(chain, name, symbol, 18, address)
        self.token = token

    def underlying(self) -> int:
        return self.token.balance_of(self.address)

    def share_price(self, unit: int = 10 ** 18) -> int:
        if self.total_supply == 0:
            return unit
        return self.underlying() * unit // self.total_supply

    @transactional
    def enter(self, sender: str, amount: int) -> int:
        total_underlying = self.underlying()
        if self.total_supply == 0 or total_underlying == 0:
            shares = int(amount)
        else:
            shares = int(amount) * self.total_supply // total_underlying
        self._mint(sender, shares)
        self.token.transfer_from(self.address, sender, self.address, amount)
        self.emit("Enter", account=sender, amount=int(amount), shares=shares)
        logger.debug("[GRID] enter account=%s amount=%d shares=%d", sender, amount, shares)
        return shares

    @transactional
    def leave(self, sender: str, shares: int) -> int:
        if shares <= 0 or self.balance_of(sender) < shares:
            raise InsufficientBalance(
                "burn amount exceeds balance",
                {"account": sender, "shares": int(shares), "balance": self.balance_of(sender)},
            )
        amount = int(shares) * self.underlying() // self.total_supply
        self._burn(sender, shares)
        self.token.transfer(self.address, sender, amount)
        self.emit("Leave", account=sender, amount=amount, shares=int(shares))
        logger.debug("[GRID] leave account=%s shares=%d amount=%d", sender, shares, amount)
        return amount
