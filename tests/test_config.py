from __future__ import annotations

import pytest

from farm.chain import Chain
from farm.config import FarmConfig, UNIT
from farm.supplier import MasterSupplier
from farm.token import GovernanceToken


def test_defaults() -> None:
    cfg = FarmConfig()
    assert cfg.rewards_per_block == 1000 * UNIT
    assert cfg.user_deposit_fee_bps == 75
    assert cfg.dev_deposit_fee_bps == 9925
    assert cfg.withdraw_fee_stages[0] == (0, 2500)
    assert sum(cfg.fund_allocation_bps.values()) == 2000


@pytest.mark.parametrize(
    "overrides",
    [
        {"rewards_per_block": -1},
        {"halving_interval_blocks": 0},
        {"token_cap": 0},
        {"user_deposit_fee_bps": 10001},
        {"withdraw_fee_stages": [(10, 100)]},
        {"withdraw_fee_stages": [(0, 100), (0, 50)]},
        {"fund_allocation_bps": {"treasury": 1}},
        {"fund_allocation_bps": {"dev": 9000, "founder": 2000}},
        {"lock_bonus_percent": 101},
        {"blocks_per_step": 0},
        {"p_claim": 1.5},
    ],
)
def test_invalid_config_rejected(overrides) -> None:
    with pytest.raises(ValueError):
        FarmConfig(**overrides)


def test_supplier_from_config() -> None:
    chain = Chain()
    owner, dev, liq, com, fnd = (chain.new_address() for _ in range(5))
    token = GovernanceToken(chain, owner=owner)
    cfg = FarmConfig(rewards_start_height=50, halving_interval_blocks=500, lock_bonus_percent=40)
    supplier = MasterSupplier.from_config(
        chain, owner, token, cfg, dev=dev, liquidity=liq, community=com, founder=fnd
    )
    assert supplier.owner == owner
    assert supplier.schedule.start_height == 50
    assert supplier.schedule.halving_interval == 500
    assert supplier.lock_bonus_percent == 40
    assert supplier.fees.recipients() == {"dev": dev, "liquidity": liq, "community": com, "founder": fnd}
    assert supplier.fees.fund_allocation_bps["dev"] == 1000

    # the supplier works on its own copies
    cfg.fund_allocation_bps["dev"] = 0
    assert supplier.fees.fund_allocation_bps["dev"] == 1000
