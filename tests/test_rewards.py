from __future__ import annotations

from farm.config import UNIT
from farm.token import GovernanceToken

RPB = 1000 * UNIT
MINT = 1000 * UNIT


def _farm(deploy, accounts, lp, **kwargs):
    supplier = deploy(**kwargs)
    supplier.add_pool(accounts.owner, 1, lp, True)
    for holder in (accounts.alice, accounts.bob, accounts.carol):
        lp.approve(holder, supplier.address, MINT)
    return supplier


def test_single_staker_earns_every_block(deploy, accounts, lp, chain, gov) -> None:
    supplier = _farm(deploy, accounts, lp)
    supplier.deposit(accounts.alice, 0, 100 * UNIT)
    chain.mine(10)
    assert supplier.pending_reward(0, accounts.alice) == 10 * RPB

    receipt = supplier.claim_reward(accounts.alice, 0)
    assert receipt.reward_paid == 10 * RPB
    assert gov.balance_of(accounts.alice) == 10 * RPB
    assert supplier.pending_reward(0, accounts.alice) == 0


def test_rewards_split_by_stake(deploy, accounts, lp, chain) -> None:
    supplier = _farm(deploy, accounts, lp)
    supplier.deposit(accounts.alice, 0, 100 * UNIT)
    chain.mine(10)
    supplier.deposit(accounts.bob, 0, 300 * UNIT)
    chain.mine(10)
    assert supplier.pending_reward(0, accounts.alice) == 10 * RPB + 10 * RPB // 4
    assert supplier.pending_reward(0, accounts.bob) == 10 * RPB * 3 // 4


def test_rewards_split_by_weight(deploy, accounts, lp, lp2, chain) -> None:
    supplier = deploy()
    supplier.add_pool(accounts.owner, 1, lp)
    supplier.add_pool(accounts.owner, 3, lp2)
    lp.approve(accounts.alice, supplier.address, MINT)
    lp2.approve(accounts.bob, supplier.address, MINT)
    supplier.deposit(accounts.alice, 0, 10 * UNIT)
    supplier.deposit(accounts.bob, 1, 10 * UNIT)
    chain.mine(8)
    assert supplier.pending_reward(0, accounts.alice) == 8 * RPB // 4
    assert supplier.pending_reward(1, accounts.bob) == 8 * RPB * 3 // 4


def test_no_stakers_freezes_accrual(deploy, accounts, lp, chain, gov) -> None:
    supplier = _farm(deploy, accounts, lp)
    chain.mine(100)
    supplier.settle(accounts.carol, 0)
    assert gov.total_supply == 0
    assert supplier.pool_info(0).acc_reward_per_share == 0
    assert supplier.pool_info(0).last_reward_height == 100

    supplier.deposit(accounts.alice, 0, 100 * UNIT)
    assert supplier.pending_reward(0, accounts.alice) == 0
    chain.mine(1)
    assert supplier.pending_reward(0, accounts.alice) == RPB


def test_zero_weight_pool_does_not_mint(deploy, accounts, lp, chain, gov) -> None:
    supplier = _farm(deploy, accounts, lp)
    supplier.deposit(accounts.alice, 0, 100 * UNIT)
    supplier.set_weight(accounts.owner, 0, 0)
    chain.mine(20)
    supplier.claim_reward(accounts.alice, 0)
    assert gov.total_supply == 0


def test_halving_crossed_inside_one_settlement(deploy, accounts, lp, chain) -> None:
    supplier = _farm(deploy, accounts, lp, halving_interval=100)
    chain.advance_to(90)
    supplier.deposit(accounts.alice, 0, 100 * UNIT)
    chain.mine(20)
    assert supplier.reward_per_block() == RPB // 2
    assert supplier.pending_reward(0, accounts.alice) == 10 * RPB + 10 * (RPB // 2)


def test_extra_settlements_do_not_change_rewards(deploy, accounts, lp, chain, gov) -> None:
    supplier = _farm(deploy, accounts, lp)
    supplier.deposit(accounts.alice, 0, 100 * UNIT)
    chain.mine(5)
    supplier.settle(accounts.bob, 0)
    supplier.settle(accounts.bob, 0)
    supplier.mass_update_pools(accounts.bob)
    chain.mine(5)
    supplier.settle(accounts.bob, 0)
    assert supplier.pending_reward(0, accounts.alice) == 10 * RPB
    assert gov.total_supply == 10 * RPB


def test_minted_rewards_are_conserved(deploy, accounts, lp, chain, gov) -> None:
    supplier = _farm(deploy, accounts, lp, halving_interval=7)
    supplier.deposit(accounts.alice, 0, 3 * UNIT)
    chain.mine(3)
    supplier.deposit(accounts.bob, 0, 7 * UNIT)
    chain.mine(5)
    supplier.withdraw(accounts.alice, 0, UNIT)
    chain.mine(4)
    supplier.deposit(accounts.carol, 0, 11 * UNIT)
    chain.mine(9)
    for who in (accounts.alice, accounts.bob, accounts.carol):
        supplier.claim_reward(who, 0)

    paid = sum(gov.total_balance_of(who) for who in (accounts.alice, accounts.bob, accounts.carol))
    assert paid + gov.balance_of(supplier.address) == gov.total_supply
    assert gov.total_supply <= supplier.schedule.rewards_between(0, chain.height)
    # only floor-rounding dust stays behind
    assert gov.balance_of(supplier.address) < UNIT // 10 ** 6


def test_claimed_reward_is_partly_locked(deploy, accounts, lp, chain, gov) -> None:
    supplier = _farm(deploy, accounts, lp, lock_bonus_percent=75)
    supplier.deposit(accounts.alice, 0, 100 * UNIT)
    chain.mine(10)
    receipt = supplier.claim_reward(accounts.alice, 0)
    assert receipt.reward_locked == 10 * RPB * 75 // 100
    assert gov.lock_of(accounts.alice) == 10 * RPB * 75 // 100
    assert gov.balance_of(accounts.alice) == 10 * RPB // 4
    assert gov.total_balance_of(accounts.alice) == 10 * RPB
    assert gov.total_locked == gov.lock_of(accounts.alice)
    events = chain.log.find("SendGovernanceTokenReward", supplier.address)
    assert events[-1].args["amount"] == 10 * RPB


def test_fund_allocation_is_carved_from_the_reward(deploy, accounts, lp, chain, gov) -> None:
    allocation = {"dev": 1000, "liquidity": 400, "community": 300, "founder": 300}
    supplier = _farm(deploy, accounts, lp, allocation=allocation)
    supplier.deposit(accounts.alice, 0, 100 * UNIT)
    chain.mine(10)
    assert supplier.pending_reward(0, accounts.alice) == 10 * RPB * 8000 // 10000
    supplier.claim_reward(accounts.alice, 0)
    assert gov.balance_of(accounts.dev) == 10 * RPB // 10
    assert gov.balance_of(accounts.liquidity) == 10 * RPB * 400 // 10000
    assert gov.balance_of(accounts.community) == 10 * RPB * 300 // 10000
    assert gov.balance_of(accounts.founder) == 10 * RPB * 300 // 10000
    assert gov.total_supply == 10 * RPB


def test_changing_allocation_settles_first(deploy, accounts, lp, chain, gov) -> None:
    supplier = _farm(deploy, accounts, lp)
    supplier.deposit(accounts.alice, 0, 100 * UNIT)
    chain.mine(10)
    supplier.set_fund_allocation(accounts.owner, {"dev": 5000})
    chain.mine(10)
    assert supplier.pending_reward(0, accounts.alice) == 10 * RPB + 5 * RPB
    assert gov.balance_of(accounts.dev) == 0


def test_dev_keeps_earnings_when_credited_more_stake(deploy, accounts, lp, chain) -> None:
    supplier = _farm(deploy, accounts, lp, default_fees=True)
    supplier.deposit(accounts.alice, 0, 100 * UNIT)
    chain.mine(10)
    before = supplier.pending_reward(0, accounts.dev)
    assert before > 0
    supplier.deposit(accounts.bob, 0, 100 * UNIT)
    assert supplier.pending_reward(0, accounts.dev) == before


def test_reward_clamped_to_token_cap(deploy, accounts, lp, chain) -> None:
    capped = GovernanceToken(chain, owner=accounts.owner, cap=5 * RPB)
    supplier = _farm(deploy, accounts, lp, token=capped)
    supplier.deposit(accounts.alice, 0, 100 * UNIT)
    chain.mine(10)
    assert supplier.pending_reward(0, accounts.alice) == 5 * RPB
    supplier.claim_reward(accounts.alice, 0)
    chain.mine(10)
    supplier.claim_reward(accounts.alice, 0)
    assert capped.total_supply == 5 * RPB
    assert capped.balance_of(accounts.alice) == 5 * RPB
    assert capped.remaining_supply() == 0
