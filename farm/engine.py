from __future__ import annotations
from typing import Dict, List, Optional
import logging
import numpy as np

from .config import FarmConfig, UNIT
from .core import ZERO_ADDRESS
from .errors import FarmError
from .factory import ScenarioFactory, Participant
from .metrics import MetricsStore

logger = logging.getLogger(__name__)


class SimulationEngine:
    """
    Drives a deployed farm with randomly acting participants. One step mines
    ``blocks_per_step`` blocks, then every participant (in random order) may
    deposit, withdraw or claim through the public contract calls.
    """

    def __init__(self, cfg: FarmConfig, seed: Optional[int] = None) -> None:
        self.cfg = cfg
        self.seed = cfg.seed if seed is None else int(seed)
        self.rng = np.random.default_rng(self.seed)

        self.step_count: int = 0
        self.metrics = MetricsStore()
        self.factory = ScenarioFactory(cfg, self.rng)
        self.deployment = self.factory.deploy()

        self.participants: Dict[str, Participant] = {}
        self.rejections: Dict[str, int] = {}
        self._supply_last: int = 0
        self._bootstrap()

    @property
    def chain(self):
        return self.deployment.chain

    @property
    def supplier(self):
        return self.deployment.supplier

    @property
    def token(self):
        return self.deployment.token

    def _bootstrap(self) -> None:
        for _ in range(self.cfg.participants):
            p = self.factory.create_participant(self.deployment)
            self.participants[p.agent_id] = p
        self.snapshot_metrics()

    def add_pool(self, weight: Optional[int] = None) -> int:
        pool_id = self.factory.add_pool(self.deployment, weight)
        stake = self.deployment.stake_tokens[pool_id]
        grant = int(self.cfg.initial_stake_per_participant) * UNIT
        for p in self.participants.values():
            stake.mint_to(p.address, grant)
            stake.approve(p.address, self.supplier.address, grant * 1000)
        return pool_id

    def step(self, n_steps: int = 1) -> None:
        for _ in range(n_steps):
            self.step_count += 1
            self.chain.mine(self.cfg.blocks_per_step)
            order = list(self.participants.values())
            for idx in self.rng.permutation(len(order)):
                self._act(order[int(idx)])
            self.snapshot_metrics()

    def _pick_referrer(self, p: Participant) -> str:
        others = [o for o in self.participants.values() if o.agent_id != p.agent_id]
        if not others or self.rng.random() < 0.5:
            return ZERO_ADDRESS
        return others[int(self.rng.integers(0, len(others)))].address

    def _act(self, p: Participant) -> None:
        cfg = self.cfg
        supplier = self.supplier
        pool_id = self.factory.sample_pool(p, supplier.pool_length())
        r = float(self.rng.random())
        try:
            if r < cfg.p_deposit:
                stake = self.deployment.stake_tokens[pool_id]
                amount = min(self.factory.sample_deposit(), stake.balance_of(p.address))
                if amount > 0:
                    supplier.deposit(p.address, pool_id, amount, self._pick_referrer(p))
            elif r < cfg.p_deposit + cfg.p_withdraw:
                staked = supplier.user_info(pool_id, p.address).amount
                if staked > 0:
                    amount = staked if self.rng.random() < 0.3 else staked // 2
                    supplier.withdraw(p.address, pool_id, amount, ZERO_ADDRESS)
            elif r < cfg.p_deposit + cfg.p_withdraw + cfg.p_claim:
                if supplier.user_info(pool_id, p.address).amount > 0:
                    supplier.claim_reward(p.address, pool_id)
        except FarmError as exc:
            self.rejections[exc.code] = self.rejections.get(exc.code, 0) + 1
            logger.debug("[SIM] %s rejected on pool %d: %s", p.agent_id, pool_id, exc)

    def snapshot_metrics(self) -> None:
        stride = int(self.cfg.metrics_stride or 0)
        if stride <= 0 or self.step_count % stride != 0:
            return
        chain = self.chain
        supplier = self.supplier
        token = self.token
        height = chain.height

        supply = token.total_supply
        minted_step = supply - self._supply_last
        self._supply_last = supply

        pool_rows: List[dict] = []
        total_staked = 0
        for pool_id, pool in enumerate(supplier.pools):
            stakers = sum(
                1 for (pid, _), user in supplier.users.items()
                if pid == pool_id and user.amount > 0
            )
            total_staked += pool.total_staked
            pool_rows.append({
                "step": self.step_count,
                "height": height,
                "pool_id": pool_id,
                "stake_symbol": self.deployment.stake_tokens[pool_id].symbol,
                "weight": pool.weight,
                "total_staked": pool.total_staked / UNIT,
                "acc_reward_per_share": pool.acc_reward_per_share,
                "stakers": stakers,
            })
        self.metrics.add_pool_rows(pool_rows)

        self.metrics.add_network({
            "step": self.step_count,
            "height": height,
            "epoch": supplier.schedule.epoch(height),
            "reward_per_block": supplier.reward_per_block() / UNIT,
            "total_supply": supply / UNIT,
            "minted_step": minted_step / UNIT,
            "total_locked": token.total_locked / UNIT,
            "locked_share": token.total_locked / supply if supply else 0.0,
            "num_pools": supplier.pool_length(),
            "total_staked": total_staked / UNIT,
            "rejections_total": sum(self.rejections.values()),
            "events": len(chain.log.events),
        })
