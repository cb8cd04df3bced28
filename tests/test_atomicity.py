from __future__ import annotations

from typing import Optional

import pytest

from farm.chain import Chain, Contract, transactional
from farm.config import FarmConfig, UNIT
from farm.errors import InsufficientAllowance, InvalidFeeRate, ReentrantCall, TransferFailed
from farm.supplier import MasterSupplier
from farm.token import GovernanceToken, Token


class ReentrantToken(Token):
    """Stake token that calls back into the supplier while being pulled."""

    def __init__(self, chain: Chain) -> None:
        super().__init__(chain, "Hostile", "HOST")
        self.target: Optional[MasterSupplier] = None

    @transactional
    def transfer_from(self, sender: str, owner: str, to: str, amount: int) -> bool:
        if self.target is not None:
            self.target.deposit(owner, 0, 1)
        return super().transfer_from(sender, owner, to, amount)


class Counter(Contract):
    _state_fields = ("value",)

    def __init__(self, chain: Chain) -> None:
        super().__init__(chain)
        self.value = 0

    @transactional
    def bump_then_fail(self, sender: str) -> None:
        self.value += 1
        self.emit("Bumped", value=self.value)
        raise TransferFailed("boom")

    @transactional
    def bump(self, sender: str) -> str:
        self.value += 1
        self.emit("Bumped", value=self.value)
        return self.chain.origin


class CountingCounter(Counter):
    def __init__(self, chain: Chain) -> None:
        super().__init__(chain)
        self.snapshots = 0

    def snapshot(self) -> dict:
        self.snapshots += 1
        return super().snapshot()


class Relay(Contract):
    _state_fields = ("calls",)

    def __init__(self, chain: Chain) -> None:
        super().__init__(chain)
        self.calls = 0

    @transactional
    def relay_then_fail(self, sender: str, counter: Counter) -> None:
        self.calls += 1
        counter.bump(self.address)
        raise TransferFailed("relay failed")


def test_failed_call_restores_state_and_events(chain, accounts) -> None:
    counter = Counter(chain)
    with pytest.raises(TransferFailed):
        counter.bump_then_fail(accounts.alice)
    assert counter.value == 0
    assert chain.log.find("Bumped") == []
    assert chain.origin is None


def test_nested_calls_share_the_outer_origin(chain, accounts) -> None:
    counter = Counter(chain)
    with chain.transaction(accounts.alice):
        assert counter.bump(accounts.bob) == accounts.alice
    assert counter.value == 1


def test_failed_pull_rolls_back_deposit(deploy, accounts, lp, chain) -> None:
    supplier = deploy()
    supplier.add_pool(accounts.owner, 1, lp)
    events = len(chain.log.events)
    with pytest.raises(InsufficientAllowance):
        supplier.deposit(accounts.alice, 0, 10 * UNIT)
    assert supplier.user_info(0, accounts.alice).amount == 0
    assert supplier.pool_info(0).total_staked == 0
    assert lp.balance_of(accounts.alice) == 1000 * UNIT
    assert len(chain.log.events) == events


def test_reentrant_deposit_is_rejected(deploy, accounts, chain) -> None:
    hostile = ReentrantToken(chain)
    hostile.mint_to(accounts.alice, 100 * UNIT)
    supplier = deploy()
    supplier.add_pool(accounts.owner, 1, hostile)
    hostile.approve(accounts.alice, supplier.address, 100 * UNIT)
    hostile.target = supplier

    with pytest.raises(ReentrantCall):
        supplier.deposit(accounts.alice, 0, 10 * UNIT)
    assert supplier.user_info(0, accounts.alice).amount == 0
    assert supplier.pool_info(0).total_staked == 0
    assert hostile.balance_of(accounts.alice) == 100 * UNIT
    assert chain.log.find("Deposit") == []

    # the guard is released after the failed call
    hostile.target = None
    supplier.deposit(accounts.alice, 0, 10 * UNIT)
    assert supplier.user_info(0, accounts.alice).amount == 10 * UNIT


def test_failed_admin_call_leaves_fees_untouched(deploy, accounts) -> None:
    supplier = deploy(default_fees=True)
    before = supplier.fees.withdraw_fee_stages
    with pytest.raises(InvalidFeeRate):
        supplier.set_withdraw_fee_stages(accounts.owner, [(5, 100)])
    assert supplier.fees.withdraw_fee_stages == before


def _bumped(chain: Chain) -> list:
    return [e.args["value"] for e in chain.log.find("Bumped")]


def test_reverted_call_on_a_full_ring_keeps_older_events() -> None:
    chain = Chain(event_log_maxlen=3)
    alice = chain.new_address()
    counter = Counter(chain)
    for _ in range(3):
        counter.bump(alice)
    assert _bumped(chain) == [1, 2, 3]

    with pytest.raises(TransferFailed):
        counter.bump_then_fail(alice)
    assert _bumped(chain) == [1, 2, 3]
    assert chain.log.events.maxlen == 3

    counter.bump(alice)
    assert _bumped(chain) == [2, 3, 4]


def test_full_ring_drops_rewards_minted_by_a_reverted_deposit() -> None:
    chain = Chain(event_log_maxlen=8)
    owner, alice, dev, liq, com, fnd = (chain.new_address() for _ in range(6))
    gov = GovernanceToken(chain, owner=owner)
    lp = Token(chain, "LPToken", "LP")
    lp.mint_to(alice, 100 * UNIT)
    supplier = MasterSupplier.from_config(
        chain, owner, gov, FarmConfig(), dev=dev, liquidity=liq, community=com, founder=fnd
    )
    gov.transfer_ownership(owner, supplier.address)
    supplier.add_pool(owner, 1, lp)
    lp.approve(alice, supplier.address, 10 * UNIT)
    supplier.deposit(alice, 0, 10 * UNIT)
    # fill the ring
    for _ in range(8):
        lp.approve(alice, supplier.address, 0)
    chain.mine(5)

    before = [(e.name, e.contract, e.args) for e in chain.log.events]
    supply = gov.total_supply
    assert len(before) == 8
    # rewards are minted while settling, then pulling the stake fails
    with pytest.raises(InsufficientAllowance):
        supplier.deposit(alice, 0, 10 * UNIT)
    assert [(e.name, e.contract, e.args) for e in chain.log.events] == before
    assert gov.total_supply == supply
    assert supplier.pool_info(0).last_reward_height < chain.height


def test_only_contracts_a_call_reaches_are_snapshotted(chain, accounts) -> None:
    counter = CountingCounter(chain)
    bystander = CountingCounter(chain)
    counter.bump(accounts.alice)
    assert counter.snapshots == 1
    assert bystander.snapshots == 0

    # a contract is snapshotted once per outer call
    with chain.transaction(accounts.alice):
        counter.bump(accounts.alice)
        counter.bump(accounts.alice)
    assert counter.snapshots == 2
    assert counter.value == 3
    assert bystander.snapshots == 0


def test_failed_call_restores_every_contract_it_reached(chain, accounts) -> None:
    relay = Relay(chain)
    counter = Counter(chain)
    counter.bump(accounts.alice)
    with pytest.raises(TransferFailed, match="relay failed"):
        relay.relay_then_fail(accounts.alice, counter)
    assert relay.calls == 0
    assert counter.value == 1
    assert _bumped(chain) == [1]
