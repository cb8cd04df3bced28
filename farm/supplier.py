"""
Pool registry and reward accounting.

Every pool carries an accumulated reward per staked unit (scaled by
``SCALE``). A user's pending reward is ``amount * acc // SCALE - reward_debt``
and is settled to zero on every interaction, so the cost of a call never
depends on how many users share the pool.
"""
from __future__ import annotations
from dataclasses import replace
from functools import wraps
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union
import logging

from .auth import AuthorizationRegistry, OWNER, PRIVILEGED
from .chain import Chain, Contract, transactional
from .config import FarmConfig
from .core import PoolInfo, UserInfo, Settlement, ZERO_ADDRESS, SCALE, format_amount
from .errors import DuplicatePool, InsufficientBalance, InvalidFeeRate, ReentrantCall, UnknownPool
from .fees import FeePolicy, apply_fee, check_allocation, check_stages
from .schedule import EmissionSchedule
from .token import GovernanceToken, Token

logger = logging.getLogger(__name__)


def nonreentrant(fn):
    @wraps(fn)
    def wrapper(self: "MasterSupplier", *args, **kwargs):
        if self._entered:
            raise ReentrantCall(f"{fn.__name__}: reentrant call", {"method": fn.__name__})
        self._entered = True
        try:
            return fn(self, *args, **kwargs)
        finally:
            self._entered = False
    return wrapper


class MasterSupplier(Contract):
    _state_fields: Tuple[str, ...] = (
        "pools",
        "users",
        "existence",
        "total_weight",
        "auth",
        "fees",
        "lock_bonus_percent",
        "referrers",
        "referral_counts",
    )

    def __init__(self, chain: Chain, owner: str, token: GovernanceToken, schedule: EmissionSchedule,
                 fees: FeePolicy, lock_bonus_percent: int = 75, address: Optional[str] = None) -> None:
        super().__init__(chain, address)
        self.token = token
        self.schedule = schedule
        self.fees = fees
        self.auth = AuthorizationRegistry(owner=owner)
        self.lock_bonus_percent = self._check_lock_percent(lock_bonus_percent)

        self.pools: List[PoolInfo] = []
        self.users: Dict[Tuple[int, str], UserInfo] = {}
        self.existence: Set[str] = set()
        self.total_weight: int = 0
        self.referrers: Dict[str, str] = {}
        self.referral_counts: Dict[str, int] = {}
        self._entered = False

    @classmethod
    def from_config(cls, chain: Chain, owner: str, token: GovernanceToken, cfg: FarmConfig, *,
                    dev: str, liquidity: str, community: str, founder: str) -> "MasterSupplier":
        schedule = EmissionSchedule(
            rewards_per_block=cfg.rewards_per_block,
            start_height=cfg.rewards_start_height,
            halving_interval=cfg.halving_interval_blocks,
        )
        fees = FeePolicy(
            dev=dev,
            liquidity=liquidity,
            community=community,
            founder=founder,
            user_deposit_fee_bps=cfg.user_deposit_fee_bps,
            dev_deposit_fee_bps=cfg.dev_deposit_fee_bps,
            withdraw_fee_stages=list(cfg.withdraw_fee_stages),
            fund_allocation_bps=dict(cfg.fund_allocation_bps),
        )
        return cls(chain, owner, token, schedule, fees, lock_bonus_percent=cfg.lock_bonus_percent)

    # -----------------------------
    # Views
    # -----------------------------
    @property
    def owner(self) -> str:
        return self.auth.owner

    def fund_address(self, role: str) -> str:
        return self.fees.recipient(role)

    def pool_length(self) -> int:
        return len(self.pools)

    def pool_existence(self, stake_token: Union[str, Token]) -> bool:
        return _address_of(stake_token) in self.existence

    def pool_info(self, pool_id: int) -> PoolInfo:
        return replace(self._pool(pool_id))

    def user_info(self, pool_id: int, who: str) -> UserInfo:
        self._pool(pool_id)
        return replace(self.users.get((pool_id, who)) or UserInfo())

    def user_delta(self, pool_id: int, who: str) -> int:
        user = self.user_info(pool_id, who)
        return self.chain.height - user.last_deposit_height

    def reward_per_block(self) -> int:
        return self.schedule.reward_per_block(self.chain.height)

    def pending_reward(self, pool_id: int, who: str) -> int:
        pool = self._pool(pool_id)
        user = self.users.get((pool_id, who)) or UserInfo()
        acc = pool.acc_reward_per_share
        reward = self._pool_reward(pool, self.chain.height)
        if reward > 0:
            _, farmer = self.fees.fund_shares(reward)
            acc += farmer * SCALE // pool.total_staked
        return user.pending(acc)

    def referrer_of(self, who: str) -> str:
        return self.referrers.get(who, ZERO_ADDRESS)

    def referral_count(self, who: str) -> int:
        return int(self.referral_counts.get(who, 0))

    # -----------------------------
    # Internals
    # -----------------------------
    def _pool(self, pool_id: int) -> PoolInfo:
        if not isinstance(pool_id, int) or pool_id < 0 or pool_id >= len(self.pools):
            raise UnknownPool("pool does not exist", {"pool_id": pool_id, "pool_length": len(self.pools)})
        return self.pools[pool_id]

    def _user(self, pool_id: int, who: str) -> UserInfo:
        key = (pool_id, who)
        user = self.users.get(key)
        if user is None:
            user = UserInfo()
            self.users[key] = user
        return user

    def _stake_token(self, pool: PoolInfo) -> Token:
        return self.chain.contracts[pool.stake_token]

    @staticmethod
    def _check_lock_percent(percent: int) -> int:
        percent = int(percent)
        if percent < 0 or percent > 100:
            raise InvalidFeeRate("lock bonus percent out of range", {"percent": percent})
        return percent

    def _pool_reward(self, pool: PoolInfo, height: int) -> int:
        """Reward owed to ``pool`` for ``[last_reward_height, height)``; zero while frozen."""
        if height <= pool.last_reward_height:
            return 0
        if pool.total_staked == 0 or pool.weight == 0 or self.total_weight == 0:
            return 0
        emitted = self.schedule.rewards_between(pool.last_reward_height, height)
        reward = emitted * pool.weight // self.total_weight
        remaining = self.token.remaining_supply()
        if remaining is not None:
            reward = min(reward, remaining)
        return reward

    def _settle(self, pool: PoolInfo) -> int:
        height = self.chain.height
        if height <= pool.last_reward_height:
            return 0
        reward = self._pool_reward(pool, height)
        if reward > 0:
            shares, farmer = self.fees.fund_shares(reward)
            for role, share in shares.items():
                if share > 0:
                    self.token.mint(self.address, self.fees.recipient(role), share)
            if farmer > 0:
                self.token.mint(self.address, self.address, farmer)
            pool.acc_reward_per_share += farmer * SCALE // pool.total_staked
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "[ACC] token=%s blocks=%d..%d reward=%s farmer=%s acc=%d staked=%s",
                    pool.stake_token,
                    pool.last_reward_height,
                    height,
                    format_amount(reward),
                    format_amount(farmer),
                    pool.acc_reward_per_share,
                    format_amount(pool.total_staked),
                )
        pool.last_reward_height = height
        return reward

    def _mass_update(self) -> None:
        for pool in self.pools:
            self._settle(pool)

    def _pay_reward(self, who: str, pending: int) -> Tuple[int, int]:
        paid = min(int(pending), self.token.balance_of(self.address))
        if paid <= 0:
            return 0, 0
        self.token.transfer(self.address, who, paid)
        locked = paid * self.lock_bonus_percent // 100
        if locked > 0:
            self.token.lock(self.address, who, locked)
        self.emit("SendGovernanceTokenReward", user=who, amount=paid, locked=locked)
        return paid, locked

    def _record_referrer(self, who: str, referrer: str) -> None:
        if not referrer or referrer == ZERO_ADDRESS or referrer == who:
            return
        if who in self.referrers:
            return
        self.referrers[who] = referrer
        self.referral_counts[referrer] = self.referral_count(referrer) + 1

    # -----------------------------
    # Pool registry (owner)
    # -----------------------------
    @transactional
    def add_pool(self, sender: str, weight: int, stake_token: Union[str, Token], with_update: bool = True) -> int:
        self.auth.require(sender, OWNER)
        token_addr = _address_of(stake_token)
        if token_addr in self.existence:
            raise DuplicatePool("nonDuplicated: duplicated", {"stake_token": token_addr})
        if int(weight) < 0:
            raise ValueError("weight must be non-negative")
        if with_update:
            self._mass_update()
        last_reward_height = max(self.chain.height, self.schedule.start_height)
        self.total_weight += int(weight)
        self.pools.append(PoolInfo(stake_token=token_addr, weight=int(weight), last_reward_height=last_reward_height))
        self.existence.add(token_addr)
        pool_id = len(self.pools) - 1
        self.emit("PoolAdded", pid=pool_id, stake_token=token_addr, weight=int(weight))
        logger.info("[POOL] added pid=%d token=%s weight=%d total_weight=%d",
                    pool_id, token_addr, weight, self.total_weight)
        return pool_id

    @transactional
    def set_weight(self, sender: str, pool_id: int, weight: int, with_update: bool = True) -> None:
        self.auth.require(sender, OWNER)
        pool = self._pool(pool_id)
        if int(weight) < 0:
            raise ValueError("weight must be non-negative")
        if with_update:
            self._mass_update()
        self.total_weight = self.total_weight - pool.weight + int(weight)
        previous = pool.weight
        pool.weight = int(weight)
        self.emit("PoolWeightSet", pid=pool_id, weight=int(weight))
        logger.info("[POOL] pid=%d weight %d -> %d total_weight=%d",
                    pool_id, previous, weight, self.total_weight)

    @transactional
    def settle(self, sender: str, pool_id: int) -> int:
        return self._settle(self._pool(pool_id))

    @transactional
    def mass_update_pools(self, sender: str) -> None:
        self._mass_update()

    # -----------------------------
    # User operations
    # -----------------------------
    @transactional
    @nonreentrant
    def deposit(self, sender: str, pool_id: int, amount: int, referrer: str = ZERO_ADDRESS) -> Settlement:
        amount = int(amount)
        if amount < 0:
            raise ValueError("amount must be non-negative")
        pool = self._pool(pool_id)
        self._settle(pool)
        acc = pool.acc_reward_per_share
        user = self._user(pool_id, sender)
        pending = user.pending(acc)

        split = self.fees.deposit_split(amount) if amount > 0 else None
        if split is not None:
            height = self.chain.height
            user.amount += split.credited
            if split.dev_credit > 0:
                dev = self._user(pool_id, self.fees.dev)
                dev.amount += split.dev_credit
                # keep whatever the dev has already earned
                dev.reward_debt += split.dev_credit * acc // SCALE
            pool.total_staked += split.credited + split.dev_credit
            if user.first_deposit_height == 0:
                user.first_deposit_height = height
            user.last_deposit_height = height
        user.reward_debt = user.accrued(acc)
        self._record_referrer(sender, referrer)

        if split is not None:
            stake = self._stake_token(pool)
            stake.transfer_from(self.address, sender, self.address, amount)
            if split.residue > 0:
                stake.transfer(self.address, self.fees.community, split.residue)
        paid, locked = self._pay_reward(sender, pending)

        self.emit("Deposit", user=sender, pid=pool_id, amount=amount)
        return Settlement(
            pool_id=pool_id,
            account=sender,
            action="deposit",
            amount=amount,
            credited=split.credited if split else 0,
            fee=split.fee if split else 0,
            reward_paid=paid,
            reward_locked=locked,
        )

    @transactional
    @nonreentrant
    def withdraw(self, sender: str, pool_id: int, amount: int, referrer: str = ZERO_ADDRESS) -> Settlement:
        amount = int(amount)
        pool = self._pool(pool_id)
        held = self.user_info(pool_id, sender).amount
        if amount < 0 or amount > held:
            raise InsufficientBalance("withdraw: not good", {"amount": amount, "staked": held})
        self._settle(pool)
        acc = pool.acc_reward_per_share
        user = self._user(pool_id, sender)
        pending = user.pending(acc)

        net = fee = 0
        if amount > 0:
            height = self.chain.height
            user.amount -= amount
            pool.total_staked -= amount
            fee_bps = self.fees.withdraw_fee_bps(height - user.last_deposit_height)
            net, fee = apply_fee(amount, fee_bps)
            user.last_withdraw_height = height
        user.reward_debt = user.accrued(acc)
        self._record_referrer(sender, referrer)

        paid, locked = self._pay_reward(sender, pending)
        if amount > 0:
            stake = self._stake_token(pool)
            stake.transfer(self.address, sender, net)
            if fee > 0:
                stake.transfer(self.address, self.fees.dev, fee)

        self.emit("Withdraw", user=sender, pid=pool_id, amount=amount, fee=fee)
        return Settlement(
            pool_id=pool_id,
            account=sender,
            action="withdraw",
            amount=amount,
            credited=net,
            fee=fee,
            reward_paid=paid,
            reward_locked=locked,
        )

    @transactional
    @nonreentrant
    def claim_reward(self, sender: str, pool_id: int) -> Settlement:
        pool = self._pool(pool_id)
        self._settle(pool)
        acc = pool.acc_reward_per_share
        user = self._user(pool_id, sender)
        pending = user.pending(acc)
        user.reward_debt = user.accrued(acc)

        paid, locked = self._pay_reward(sender, pending)
        self.emit("ClaimReward", user=sender, pid=pool_id, amount=paid)
        return Settlement(
            pool_id=pool_id,
            account=sender,
            action="claim",
            reward_paid=paid,
            reward_locked=locked,
        )

    @transactional
    @nonreentrant
    def emergency_withdraw(self, sender: str, pool_id: int) -> Settlement:
        """Withdraw the whole stake without settling; pending reward is forfeited."""
        pool = self._pool(pool_id)
        user = self._user(pool_id, sender)
        amount = user.amount
        height = self.chain.height
        fee_bps = self.fees.withdraw_fee_bps(height - user.last_deposit_height)
        net, fee = apply_fee(amount, fee_bps)
        user.amount = 0
        user.reward_debt = 0
        user.last_withdraw_height = height
        pool.total_staked -= amount

        if amount > 0:
            stake = self._stake_token(pool)
            stake.transfer(self.address, sender, net)
            if fee > 0:
                stake.transfer(self.address, self.fees.dev, fee)
        self.emit("EmergencyWithdraw", user=sender, pid=pool_id, amount=amount, fee=fee)
        return Settlement(
            pool_id=pool_id,
            account=sender,
            action="emergency_withdraw",
            amount=amount,
            credited=net,
            fee=fee,
        )

    # -----------------------------
    # Admin surface
    # -----------------------------
    @transactional
    def transfer_ownership(self, sender: str, new_owner: str) -> None:
        previous = self.auth.owner
        self.auth.transfer_ownership(sender, new_owner)
        self.emit("OwnershipTransferred", previous_owner=previous, new_owner=new_owner)

    @transactional
    def add_authorized(self, sender: str, addr: str) -> None:
        self.auth.add_authorized(sender, addr)

    @transactional
    def remove_authorized(self, sender: str, addr: str) -> None:
        self.auth.remove_authorized(sender, addr)

    def _set_fund_address(self, sender: str, role: str, new_addr: str) -> None:
        current = self.fees.recipient(role)
        self.auth.require(sender, PRIVILEGED, holder=current)
        setattr(self.fees, role, new_addr)
        self.emit("FundAddressSet", role=role, previous=current, address=new_addr)
        logger.info("[FEE] %s address %s -> %s", role, current, new_addr)

    @transactional
    def set_dev(self, sender: str, new_addr: str) -> None:
        self._set_fund_address(sender, "dev", new_addr)

    @transactional
    def set_liquidity_fund(self, sender: str, new_addr: str) -> None:
        self._set_fund_address(sender, "liquidity", new_addr)

    @transactional
    def set_community_fund(self, sender: str, new_addr: str) -> None:
        self._set_fund_address(sender, "community", new_addr)

    @transactional
    def set_founder_fund(self, sender: str, new_addr: str) -> None:
        self._set_fund_address(sender, "founder", new_addr)

    @transactional
    def set_user_deposit_fee(self, sender: str, fee_bps: int) -> None:
        self.auth.require(sender, PRIVILEGED)
        self.fees.set_deposit_fees(user_bps=fee_bps)

    @transactional
    def set_dev_deposit_fee(self, sender: str, fee_bps: int) -> None:
        self.auth.require(sender, PRIVILEGED)
        self.fees.set_deposit_fees(dev_bps=fee_bps)

    @transactional
    def set_withdraw_fee_stages(self, sender: str, stages: Sequence[Tuple[int, int]]) -> None:
        self.auth.require(sender, PRIVILEGED)
        self.fees.withdraw_fee_stages = check_stages(stages)
        logger.info("[FEE] withdraw stages %s", self.fees.withdraw_fee_stages)

    @transactional
    def set_fund_allocation(self, sender: str, allocation: Dict[str, int]) -> None:
        self.auth.require(sender, PRIVILEGED)
        allocation = check_allocation(allocation)
        # rewards already accrued are split with the old allocation
        self._mass_update()
        self.fees.fund_allocation_bps = allocation
        logger.info("[FEE] fund allocation %s", allocation)

    @transactional
    def set_lock_bonus_percent(self, sender: str, percent: int) -> None:
        self.auth.require(sender, PRIVILEGED)
        self.lock_bonus_percent = self._check_lock_percent(percent)
        logger.info("[FEE] lock bonus %d%%", self.lock_bonus_percent)

    @transactional
    def reclaim_token_ownership(self, sender: str, new_owner: str) -> None:
        self.auth.require(sender, PRIVILEGED)
        self.token.transfer_ownership(self.address, new_owner)


def _address_of(token: Union[str, Token]) -> str:
    return token if isinstance(token, str) else token.address


