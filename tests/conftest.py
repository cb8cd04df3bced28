from __future__ import annotations

from types import SimpleNamespace
from typing import Dict, Optional

import pytest

from farm.chain import Chain
from farm.config import UNIT
from farm.fees import DEFAULT_WITHDRAW_FEE_STAGES, FeePolicy
from farm.schedule import EmissionSchedule
from farm.supplier import MasterSupplier
from farm.token import GovernanceToken, Token

MINT_AMOUNT = 1000 * UNIT


@pytest.fixture
def chain() -> Chain:
    return Chain()


@pytest.fixture
def accounts(chain: Chain) -> SimpleNamespace:
    names = ("owner", "alice", "bob", "carol", "dev", "liquidity", "community", "founder")
    return SimpleNamespace(**{name: chain.new_address() for name in names})


@pytest.fixture
def gov(chain: Chain, accounts: SimpleNamespace) -> GovernanceToken:
    return GovernanceToken(chain, owner=accounts.owner)


def _lp(chain: Chain, accounts: SimpleNamespace, name: str, symbol: str) -> Token:
    token = Token(chain, name, symbol)
    for holder in (accounts.alice, accounts.bob, accounts.carol):
        token.mint_to(holder, MINT_AMOUNT)
    return token


@pytest.fixture
def lp(chain: Chain, accounts: SimpleNamespace) -> Token:
    return _lp(chain, accounts, "LPToken", "LP")


@pytest.fixture
def lp2(chain: Chain, accounts: SimpleNamespace) -> Token:
    return _lp(chain, accounts, "LPToken2", "LP2")


@pytest.fixture
def deploy(chain: Chain, accounts: SimpleNamespace, gov: GovernanceToken):
    """
    Build a supplier that owns ``token`` (the shared governance token by
    default). Fees are off unless ``default_fees`` is set, so reward
    arithmetic in tests stays exact.
    """

    def _deploy(
        rewards_per_block: int = 1000 * UNIT,
        start_height: int = 0,
        halving_interval: int = 1000,
        lock_bonus_percent: int = 0,
        default_fees: bool = False,
        withdraw_fees: bool = False,
        allocation: Optional[Dict[str, int]] = None,
        token: Optional[GovernanceToken] = None,
    ) -> MasterSupplier:
        token = token or gov
        fees = FeePolicy(
            dev=accounts.dev,
            liquidity=accounts.liquidity,
            community=accounts.community,
            founder=accounts.founder,
            user_deposit_fee_bps=75 if default_fees else 0,
            dev_deposit_fee_bps=9925 if default_fees else 10000,
            withdraw_fee_stages=list(DEFAULT_WITHDRAW_FEE_STAGES) if (default_fees or withdraw_fees) else [(0, 0)],
            fund_allocation_bps=allocation or {},
        )
        schedule = EmissionSchedule(rewards_per_block, start_height, halving_interval)
        supplier = MasterSupplier(chain, accounts.owner, token, schedule, fees, lock_bonus_percent)
        token.transfer_ownership(token.owner, supplier.address)
        return supplier

    return _deploy

