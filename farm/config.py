from dataclasses import dataclass, field

from .fees import BPS, DEFAULT_WITHDRAW_FEE_STAGES, FUND_ROLES

UNIT = 10 ** 18

@dataclass
class FarmConfig:
    # Emission schedule
    rewards_per_block: int = 1000 * UNIT
    rewards_start_height: int = 0
    halving_interval_blocks: int = 45360
    token_cap: int | None = None   # None = uncapped governance token

    # Deposit fees (bps). The dev stake credit is amount minus the dev fee.
    user_deposit_fee_bps: int = 75
    dev_deposit_fee_bps: int = 9925

    # Withdrawal fee by blocks since the user's last deposit: (min_blocks, bps)
    withdraw_fee_stages: list[tuple[int, int]] = field(
        default_factory=lambda: list(DEFAULT_WITHDRAW_FEE_STAGES)
    )

    # Share of every pool reward minted to the fund addresses (bps)
    fund_allocation_bps: dict[str, int] = field(default_factory=lambda: {
        "dev": 1000,
        "liquidity": 400,
        "community": 300,
        "founder": 300,
    })
    lock_bonus_percent: int = 75   # of each claimed reward

    # Fee router
    swap_fee_bps: int = 30
    max_bridge_hops: int = 4

    # Simulation
    seed: int = 1
    blocks_per_step: int = 100
    participants: int = 12
    initial_pools: int = 3
    initial_stake_per_participant: int = 10_000
    deposit_size_mean: float = 250.0   # whole tokens
    p_deposit: float = 0.30
    p_withdraw: float = 0.10
    p_claim: float = 0.20
    metrics_stride: int = 1
    event_log_maxlen: int | None = 5000

    def __post_init__(self) -> None:
        if self.rewards_per_block < 0:
            raise ValueError("rewards_per_block must be non-negative")
        if self.rewards_start_height < 0:
            raise ValueError("rewards_start_height must be non-negative")
        if self.halving_interval_blocks <= 0:
            raise ValueError("halving_interval_blocks must be positive")
        if self.token_cap is not None and self.token_cap <= 0:
            raise ValueError("token_cap must be positive")
        for name in ("user_deposit_fee_bps", "dev_deposit_fee_bps", "swap_fee_bps"):
            value = getattr(self, name)
            if value < 0 or value > BPS:
                raise ValueError(f"{name} must be within 0..{BPS}, got {value}")
        starts = [start for start, _ in self.withdraw_fee_stages]
        if not starts or starts[0] != 0 or starts != sorted(set(starts)):
            raise ValueError("withdraw_fee_stages must start at 0 and ascend strictly")
        if any(bps < 0 or bps > BPS for _, bps in self.withdraw_fee_stages):
            raise ValueError("withdraw fee stage out of range")
        unknown = set(self.fund_allocation_bps) - set(FUND_ROLES)
        if unknown:
            raise ValueError(f"unknown fund roles: {sorted(unknown)}")
        if sum(self.fund_allocation_bps.values()) > BPS:
            raise ValueError("fund_allocation_bps must not exceed 100%")
        if not 0 <= self.lock_bonus_percent <= 100:
            raise ValueError("lock_bonus_percent must be within 0..100")
        if self.max_bridge_hops <= 0:
            raise ValueError("max_bridge_hops must be positive")
        if self.blocks_per_step <= 0:
            raise ValueError("blocks_per_step must be positive")
        for name in ("p_deposit", "p_withdraw", "p_claim"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ValueError(f"{name} must be a probability")
