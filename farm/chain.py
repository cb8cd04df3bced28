"""
Serialized host ledger for the farm contracts.

Each public state-changing call runs inside ``Chain.transaction``. A contract
is snapshotted the first time one of its transactional methods is entered
during the outermost call, and if anything raises every snapshotted contract
is restored, so a rejected call leaves no partial mutation behind.
"""
from __future__ import annotations
from contextlib import contextmanager
from functools import wraps
from typing import Dict, Iterator, Optional, Tuple
import copy
import logging

from .core import Event, EventLog

logger = logging.getLogger(__name__)


class Chain:
    def __init__(self, height: int = 0, event_log_maxlen: Optional[int] = None) -> None:
        self.height = int(height)
        self.log = EventLog(maxlen=event_log_maxlen)
        self.contracts: Dict[str, "Contract"] = {}
        self.origin: Optional[str] = None
        self._depth = 0
        self._journal: Dict[str, dict] = {}
        self._address_counter = 0

    # -----------------------------
    # Blocks
    # -----------------------------
    def mine(self, n: int = 1) -> int:
        self.height += max(0, int(n))
        return self.height

    def advance_to(self, height: int) -> int:
        if height > self.height:
            self.height = int(height)
        return self.height

    # -----------------------------
    # Contracts
    # -----------------------------
    def new_address(self) -> str:
        self._address_counter += 1
        return "0x" + f"{self._address_counter:040x}"

    def register(self, contract: "Contract", address: Optional[str] = None) -> str:
        addr = address or self.new_address()
        if addr in self.contracts:
            raise ValueError(f"address already in use: {addr}")
        self.contracts[addr] = contract
        return addr

    def is_contract(self, address: str) -> bool:
        return address in self.contracts

    # -----------------------------
    # Atomic calls
    # -----------------------------
    def _touch(self, contract: Optional["Contract"]) -> None:
        if contract is not None and contract.address not in self._journal:
            self._journal[contract.address] = contract.snapshot()

    @contextmanager
    def transaction(self, origin: str, contract: Optional["Contract"] = None) -> Iterator[None]:
        if self._depth > 0:
            self._touch(contract)
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        log_mark = self.log.checkpoint()
        self.origin = origin
        self._depth = 1
        self._journal = {}
        self._touch(contract)
        try:
            yield
        except BaseException:
            for addr, state in self._journal.items():
                self.contracts[addr].restore(state)
            # events of a reverted call are dropped too
            self.log.rollback(log_mark)
            logger.debug("[TX] reverted origin=%s height=%d touched=%d", origin, self.height, len(self._journal))
            raise
        finally:
            self._depth = 0
            self.origin = None
            self._journal = {}


class Contract:
    _state_fields: Tuple[str, ...] = ()

    def __init__(self, chain: Chain, address: Optional[str] = None) -> None:
        self.chain = chain
        self.address = chain.register(self, address)

    def snapshot(self) -> dict:
        return {f: copy.deepcopy(getattr(self, f)) for f in self._state_fields}

    def restore(self, state: dict) -> None:
        for f, value in state.items():
            setattr(self, f, value)

    def emit(self, name: str, **args) -> None:
        self.chain.log.add(Event(self.chain.height, name, self.address, dict(args)))


def transactional(fn):
    """Run a ``method(self, sender, ...)`` as one atomic call originated by ``sender``."""
    @wraps(fn)
    def wrapper(self: Contract, sender: str, *args, **kwargs):
        with self.chain.transaction(sender, self):
            return fn(self, sender, *args, **kwargs)
    return wrapper
