from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List
import numpy as np

from .chain import Chain
from .config import FarmConfig, UNIT
from .supplier import MasterSupplier
from .token import GovernanceToken, Token

@dataclass
class Participant:
    agent_id: str
    address: str
    home_pool: int

@dataclass
class Deployment:
    chain: Chain
    owner: str
    funds: Dict[str, str]
    token: GovernanceToken
    supplier: MasterSupplier
    stake_tokens: List[Token]

class ScenarioFactory:
    def __init__(self, cfg: FarmConfig, rng: np.random.Generator) -> None:
        self.cfg = cfg
        self.rng = rng
        self.agent_counter = 0
        self.pool_counter = 0

    def _new_agent_id(self) -> str:
        self.agent_counter += 1
        return f"agent_{self.agent_counter:04d}"

    def _new_pool_symbol(self) -> str:
        self.pool_counter += 1
        return f"LP{self.pool_counter:02d}"

    def deploy(self) -> Deployment:
        cfg = self.cfg
        chain = Chain(event_log_maxlen=cfg.event_log_maxlen)
        owner = chain.new_address()
        funds = {role: chain.new_address() for role in ("dev", "liquidity", "community", "founder")}

        token = GovernanceToken(chain, owner=owner, cap=cfg.token_cap)
        supplier = MasterSupplier.from_config(chain, owner, token, cfg, **funds)
        token.transfer_ownership(owner, supplier.address)

        deployment = Deployment(chain, owner, funds, token, supplier, [])
        for _ in range(cfg.initial_pools):
            self.add_pool(deployment)
        return deployment

    def add_pool(self, deployment: Deployment, weight: int | None = None) -> int:
        symbol = self._new_pool_symbol()
        stake = Token(deployment.chain, f"{symbol} Liquidity", symbol)
        if weight is None:
            weight = int(self.rng.integers(1, 5)) * 10
        pool_id = deployment.supplier.add_pool(deployment.owner, weight, stake, True)
        deployment.stake_tokens.append(stake)
        return pool_id

    def create_participant(self, deployment: Deployment) -> Participant:
        agent_id = self._new_agent_id()
        address = deployment.chain.new_address()
        home_pool = int(self.rng.integers(0, max(1, len(deployment.stake_tokens))))
        grant = int(self.cfg.initial_stake_per_participant) * UNIT
        for stake in deployment.stake_tokens:
            stake.mint_to(address, grant)
            stake.approve(address, deployment.supplier.address, grant * 1000)
        return Participant(agent_id=agent_id, address=address, home_pool=home_pool)

    def sample_deposit(self) -> int:
        """Deposit size in base units, exponential around the configured mean."""
        whole = max(1.0, float(self.rng.exponential(self.cfg.deposit_size_mean)))
        return int(whole * 100) * UNIT // 100

    def sample_pool(self, participant: Participant, n_pools: int) -> int:
        # participants mostly farm their home pool
        if n_pools <= 1 or self.rng.random() < 0.8:
            return participant.home_pool
        return int(self.rng.integers(0, n_pools))
