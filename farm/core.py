from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import List, Optional, Literal, Tuple
from collections import deque

ZERO_ADDRESS = "0x" + "0" * 40
SCALE = 10 ** 12

SettlementAction = Literal["deposit", "withdraw", "claim", "emergency_withdraw"]


def format_amount(amount: int, decimals: int = 18) -> str:
    whole, frac = divmod(int(amount), 10 ** decimals)
    return f"{whole}.{frac:0{decimals}d}"[: len(str(whole)) + 5]


# -----------------------------
# Events
# -----------------------------
@dataclass
class Event:
    height: int
    name: str
    contract: str
    args: dict = field(default_factory=dict)

class EventLog:
    def __init__(self, maxlen: Optional[int] = None) -> None:
        self.events = deque(maxlen=maxlen)

    def add(self, e: Event) -> None:
        self.events.append(e)

    def checkpoint(self) -> Tuple[int, Optional[List[Event]]]:
        # a full ring pushes out its oldest entries on append, so keep a copy
        saved = list(self.events) if self.events.maxlen is not None else None
        return len(self.events), saved

    def rollback(self, mark: Tuple[int, Optional[List[Event]]]) -> None:
        length, saved = mark
        if saved is not None:
            self.events = deque(saved, maxlen=self.events.maxlen)
            return
        while len(self.events) > length:
            self.events.pop()

    def tail(self, n: int = 200) -> List[Event]:
        if n <= 0:
            return []
        if n >= len(self.events):
            return list(self.events)
        return list(self.events)[-n:]

    def find(self, name: str, contract: Optional[str] = None) -> List[Event]:
        return [
            e for e in self.events
            if e.name == name and (contract is None or e.contract == contract)
        ]


# -----------------------------
# Accounting records
# -----------------------------
@dataclass
class PoolInfo:
    stake_token: str
    weight: int
    last_reward_height: int
    acc_reward_per_share: int = 0
    total_staked: int = 0

@dataclass
class UserInfo:
    amount: int = 0
    reward_debt: int = 0
    first_deposit_height: int = 0
    last_deposit_height: int = 0
    last_withdraw_height: int = 0

    def accrued(self, acc_reward_per_share: int) -> int:
        return self.amount * acc_reward_per_share // SCALE

    def pending(self, acc_reward_per_share: int) -> int:
        return max(0, self.accrued(acc_reward_per_share) - self.reward_debt)


# -----------------------------
# Receipts
# -----------------------------
@dataclass
class Settlement:
    pool_id: int
    account: str
    action: SettlementAction
    amount: int = 0
    credited: int = 0
    fee: int = 0
    reward_paid: int = 0
    reward_locked: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
