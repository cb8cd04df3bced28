from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple
import logging

from .errors import InvalidFeeRate

logger = logging.getLogger(__name__)

BPS = 10_000
FUND_ROLES = ("dev", "liquidity", "community", "founder")

DEFAULT_WITHDRAW_FEE_STAGES: List[Tuple[int, int]] = [
    (0, 2500),
    (1, 800),
    (1771, 400),
    (5311, 200),
    (14356, 100),
    (28711, 50),
    (43066, 25),
    (57421, 1),
]


def check_bps(fee_bps: int, what: str = "fee") -> int:
    fee_bps = int(fee_bps)
    if fee_bps < 0 or fee_bps > BPS:
        raise InvalidFeeRate(f"{what} out of range", {"bps": fee_bps})
    return fee_bps


def apply_fee(amount: int, fee_bps: int) -> Tuple[int, int]:
    """Return ``(net, fee)`` with the fee rounded down."""
    fee = int(amount) * check_bps(fee_bps) // BPS
    return int(amount) - fee, fee


def check_stages(stages: Sequence[Tuple[int, int]]) -> List[Tuple[int, int]]:
    out = [(int(start), check_bps(bps, "withdraw fee")) for start, bps in stages]
    if not out or out[0][0] != 0:
        raise InvalidFeeRate("withdraw fee stages must start at 0 blocks", {"stages": out})
    starts = [s for s, _ in out]
    if any(b <= a for a, b in zip(starts, starts[1:])):
        raise InvalidFeeRate("withdraw fee stages must be strictly ascending", {"stages": out})
    return out


def check_allocation(allocation: Dict[str, int]) -> Dict[str, int]:
    unknown = set(allocation) - set(FUND_ROLES)
    if unknown:
        raise InvalidFeeRate("unknown fund role", {"roles": sorted(unknown)})
    out = {role: check_bps(allocation.get(role, 0), f"{role} allocation") for role in FUND_ROLES}
    if sum(out.values()) > BPS:
        raise InvalidFeeRate("fund allocation exceeds 100%", {"allocation": out})
    return out


@dataclass
class DepositSplit:
    credited: int
    dev_credit: int
    residue: int

    @property
    def fee(self) -> int:
        return self.dev_credit + self.residue


@dataclass
class FeePolicy:
    dev: str
    liquidity: str
    community: str
    founder: str
    user_deposit_fee_bps: int = 75
    dev_deposit_fee_bps: int = 9925
    withdraw_fee_stages: List[Tuple[int, int]] = field(
        default_factory=lambda: list(DEFAULT_WITHDRAW_FEE_STAGES)
    )
    fund_allocation_bps: Dict[str, int] = field(default_factory=lambda: {role: 0 for role in FUND_ROLES})

    def __post_init__(self) -> None:
        self.user_deposit_fee_bps = check_bps(self.user_deposit_fee_bps, "user deposit fee")
        self.dev_deposit_fee_bps = check_bps(self.dev_deposit_fee_bps, "dev deposit fee")
        self.withdraw_fee_stages = check_stages(self.withdraw_fee_stages)
        self.fund_allocation_bps = check_allocation(self.fund_allocation_bps)

    def recipient(self, role: str) -> str:
        if role not in FUND_ROLES:
            raise KeyError(role)
        return getattr(self, role)

    def recipients(self) -> Dict[str, str]:
        return {role: getattr(self, role) for role in FUND_ROLES}

    def deposit_split(self, amount: int) -> DepositSplit:
        """
        The depositor is credited ``amount`` minus the user fee. Out of that
        fee the dev is credited ``amount`` minus the dev fee (so the two
        rates are complements of each other by default: 75 / 9925 leaves
        0.75% to the dev). Whatever the dev credit does not absorb is the
        residue, forwarded to the community fund.
        """
        credited, user_fee = apply_fee(amount, self.user_deposit_fee_bps)
        _, dev_kept = apply_fee(amount, self.dev_deposit_fee_bps)
        dev_credit = min(user_fee, int(amount) - dev_kept)
        return DepositSplit(credited=credited, dev_credit=dev_credit, residue=user_fee - dev_credit)

    def withdraw_fee_bps(self, blocks_since_deposit: int) -> int:
        fee = self.withdraw_fee_stages[0][1]
        for start, bps in self.withdraw_fee_stages:
            if blocks_since_deposit < start:
                break
            fee = bps
        return fee

    def fund_shares(self, reward: int) -> Tuple[Dict[str, int], int]:
        shares = {
            role: int(reward) * bps // BPS
            for role, bps in self.fund_allocation_bps.items()
            if bps > 0
        }
        return shares, int(reward) - sum(shares.values())

    def set_deposit_fees(self, user_bps: int | None = None, dev_bps: int | None = None) -> None:
        if user_bps is not None:
            self.user_deposit_fee_bps = check_bps(user_bps, "user deposit fee")
        if dev_bps is not None:
            self.dev_deposit_fee_bps = check_bps(dev_bps, "dev deposit fee")
        logger.info(
            "[FEE] deposit fees user=%d dev=%d",
            self.user_deposit_fee_bps, self.dev_deposit_fee_bps,
        )
