from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import math

from .chain import Chain, Contract, transactional
from .errors import EoaOnly, InvalidBridge, InvalidPair, NoPathAvailable, TransferFailed, Unauthorized
from .fees import BPS
from .grid import Grid
from .token import Token

logger = logging.getLogger(__name__)


class ValueIndex:
    """Reference value per token; swaps are quoted from it instead of pool curves."""

    def __init__(self, default: int = 1) -> None:
        self.default = int(default)
        self.values: Dict[str, int] = {}
        self.version: int = 1

    def set_value(self, token: str, value: int) -> None:
        self.values[token] = max(0, int(value))
        self.version += 1

    def get_value(self, token: str) -> int:
        return int(self.values.get(token, self.default))


# -----------------------------
# Liquidity pairs
# -----------------------------
class Pair(Token):
    """
    LP token over two tokens. Liquidity, burns and swaps work on whatever was
    sent to the pair since the last sync, the same push-then-call pattern the
    router relies on.
    """

    _state_fields: Tuple[str, ...] = Token._state_fields + ("reserve0", "reserve1")

    def __init__(self, chain: Chain, factory: "PairFactory", token0: str, token1: str) -> None:
        super().__init__(chain, "Liquidity Pair", "LP", 18)
        self.factory = factory
        self.token0, self.token1 = sorted((token0, token1))
        self.reserve0 = 0
        self.reserve1 = 0

    def _token(self, addr: str) -> Token:
        return self.chain.contracts[addr]

    def other(self, token: str) -> str:
        if token == self.token0:
            return self.token1
        if token == self.token1:
            return self.token0
        raise InvalidPair("token not in pair", {"pair": self.address, "token": token})

    def reserve_of(self, token: str) -> int:
        self.other(token)
        return self.reserve0 if token == self.token0 else self.reserve1

    def _sync(self) -> None:
        self.reserve0 = self._token(self.token0).balance_of(self.address)
        self.reserve1 = self._token(self.token1).balance_of(self.address)

    def quote(self, token_in: str, amount_in: int) -> int:
        token_out = self.other(token_in)
        value_in = self.factory.values.get_value(token_in)
        value_out = self.factory.values.get_value(token_out)
        if value_in <= 0 or value_out <= 0:
            raise NoPathAvailable("missing price", {"token_in": token_in, "token_out": token_out})
        gross = int(amount_in) * value_in // value_out
        return gross - gross * self.factory.swap_fee_bps // BPS

    @transactional
    def mint(self, sender: str, to: str) -> int:
        amount0 = self._token(self.token0).balance_of(self.address) - self.reserve0
        amount1 = self._token(self.token1).balance_of(self.address) - self.reserve1
        if self.total_supply == 0:
            liquidity = math.isqrt(amount0 * amount1)
        else:
            liquidity = min(amount0 * self.total_supply // self.reserve0,
                            amount1 * self.total_supply // self.reserve1)
        if liquidity <= 0:
            raise TransferFailed("insufficient liquidity minted", {"pair": self.address})
        self._mint(to, liquidity)
        self._sync()
        self.emit("Mint", sender=sender, amount0=amount0, amount1=amount1)
        return liquidity

    @transactional
    def burn(self, sender: str, to: str) -> Tuple[int, int]:
        liquidity = self.balance_of(self.address)
        if liquidity <= 0:
            raise TransferFailed("insufficient liquidity burned", {"pair": self.address})
        t0, t1 = self._token(self.token0), self._token(self.token1)
        amount0 = liquidity * t0.balance_of(self.address) // self.total_supply
        amount1 = liquidity * t1.balance_of(self.address) // self.total_supply
        self._burn(self.address, liquidity)
        t0.transfer(self.address, to, amount0)
        t1.transfer(self.address, to, amount1)
        self._sync()
        self.emit("Burn", sender=sender, amount0=amount0, amount1=amount1, to=to)
        return amount0, amount1

    @transactional
    def swap(self, sender: str, token_in: str, to: str) -> int:
        token_out = self.other(token_in)
        amount_in = self._token(token_in).balance_of(self.address) - self.reserve_of(token_in)
        amount_out = self.quote(token_in, amount_in)
        if amount_out > self.reserve_of(token_out):
            raise TransferFailed(
                "insufficient liquidity",
                {"pair": self.address, "amount_out": amount_out, "reserve": self.reserve_of(token_out)},
            )
        self._token(token_out).transfer(self.address, to, amount_out)
        self._sync()
        self.emit("Swap", sender=sender, token_in=token_in, amount_in=amount_in,
                  token_out=token_out, amount_out=amount_out, to=to)
        return amount_out


class PairFactory:
    def __init__(self, chain: Chain, values: Optional[ValueIndex] = None, swap_fee_bps: int = 30) -> None:
        self.chain = chain
        self.values = values or ValueIndex()
        self.swap_fee_bps = int(swap_fee_bps)
        self.pairs: Dict[Tuple[str, str], Pair] = {}

    def get_pair(self, token_a: str, token_b: str) -> Optional[Pair]:
        return self.pairs.get(tuple(sorted((token_a, token_b))))

    def create_pair(self, token_a: str, token_b: str) -> Pair:
        if token_a == token_b:
            raise InvalidPair("identical tokens", {"token": token_a})
        key = tuple(sorted((token_a, token_b)))
        if key in self.pairs:
            raise InvalidPair("pair exists", {"tokens": key})
        pair = Pair(self.chain, self, token_a, token_b)
        self.pairs[key] = pair
        logger.debug("[PAIR] created %s for %s/%s", pair.address, *key)
        return pair

    def all_pairs(self) -> List[Pair]:
        return list(self.pairs.values())


# -----------------------------
# Fee router
# -----------------------------
@dataclass
class Hop:
    pair: str
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int

@dataclass
class ConvertReceipt:
    token0: str
    token1: str
    amount0: int
    amount1: int
    amount_out: int
    hops: List[Hop] = field(default_factory=list)


class FeeRouter(Contract):
    """
    Turns LP positions held by the router into the governance token and
    forwards the proceeds to the Grid. Each side of the pair is walked
    along its bridge (WETH when none is set) until it reaches the
    governance token.
    """

    _state_fields: Tuple[str, ...] = ("owner", "bridges")

    def __init__(self, chain: Chain, owner: str, factory: PairFactory, grid: Grid, token: Token, weth: Token,
                 max_hops: int = 4, address: Optional[str] = None) -> None:
        super().__init__(chain, address)
        self.owner = owner
        self.factory = factory
        self.grid = grid
        self.token = token
        self.weth = weth
        self.max_hops = max_hops
        self.bridges: Dict[str, str] = {}
        self._hops: List[Hop] = []

    def bridge_for(self, token: str) -> str:
        return self.bridges.get(token, self.weth.address)

    def bridge_path(self, token: str) -> List[str]:
        """Tokens visited from ``token`` to the governance token."""
        path = [token]
        visited = {token}
        cur = token
        while cur != self.token.address:
            nxt = self.token.address if cur == self.weth.address else self.bridge_for(cur)
            if nxt in visited or len(path) > self.max_hops:
                raise NoPathAvailable("bridge cycle or too many hops", {"path": path + [nxt]})
            path.append(nxt)
            visited.add(nxt)
            cur = nxt
        return path

    @transactional
    def set_bridge(self, sender: str, token: str, bridge: str) -> None:
        if sender != self.owner:
            raise Unauthorized("Ownable: caller is not the owner", {"caller": sender})
        if token == self.token.address or token == self.weth.address or token == bridge:
            raise InvalidBridge("Invalid bridge", {"token": token, "bridge": bridge})
        self.bridges[token] = bridge
        self.emit("LogBridgeSet", token=token, bridge=bridge)
        logger.info("[ROUTE] bridge %s -> %s", token, bridge)

    def _only_eoa(self, sender: str) -> None:
        if sender != self.chain.origin or self.chain.is_contract(sender):
            raise EoaOnly("must use EOA", {"sender": sender, "origin": self.chain.origin})

    @transactional
    def convert(self, sender: str, token0: str, token1: str) -> ConvertReceipt:
        self._only_eoa(sender)
        return self._convert(sender, token0, token1)

    @transactional
    def convert_multiple(self, sender: str, tokens0: Sequence[str], tokens1: Sequence[str]) -> List[ConvertReceipt]:
        self._only_eoa(sender)
        if len(tokens0) != len(tokens1):
            raise ValueError("tokens0 and tokens1 must have the same length")
        return [self._convert(sender, a, b) for a, b in zip(tokens0, tokens1)]

    def _contract(self, addr: str) -> Token:
        return self.chain.contracts[addr]

    def _convert(self, sender: str, token0: str, token1: str) -> ConvertReceipt:
        pair = self.factory.get_pair(token0, token1)
        if pair is None:
            raise InvalidPair("Invalid pair", {"token0": token0, "token1": token1})
        pair.transfer(self.address, pair.address, pair.balance_of(self.address))
        amount0, amount1 = pair.burn(self.address, self.address)
        if token0 != pair.token0:
            amount0, amount1 = amount1, amount0
        self._hops = []
        amount_out = self._convert_step(token0, token1, amount0, amount1, 0)
        receipt = ConvertReceipt(token0, token1, amount0, amount1, amount_out, hops=list(self._hops))
        self.emit("LogConvert", server=sender, token0=token0, token1=token1,
                  amount0=amount0, amount1=amount1, amount_out=amount_out)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("[ROUTE] convert %s/%s hops=%d out=%d", token0, token1, len(self._hops), amount_out)
        return receipt

    def _convert_step(self, token0: str, token1: str, amount0: int, amount1: int, depth: int) -> int:
        if depth > self.max_hops:
            raise NoPathAvailable("too many hops", {"token0": token0, "token1": token1})
        gov = self.token.address
        weth = self.weth.address
        if token0 == token1:
            amount = amount0 + amount1
            if token0 == gov:
                self.token.transfer(self.address, self.grid.address, amount)
                return amount
            if token0 == weth:
                return self._to_gov(weth, amount)
            bridge = self.bridge_for(token0)
            amount = self._swap(token0, bridge, amount, self.address)
            return self._convert_step(bridge, bridge, amount, 0, depth + 1)
        if token0 == gov:
            self.token.transfer(self.address, self.grid.address, amount0)
            return self._to_gov(token1, amount1) + amount0
        if token1 == gov:
            self.token.transfer(self.address, self.grid.address, amount1)
            return self._to_gov(token0, amount0) + amount1
        if token0 == weth:
            return self._to_gov(weth, self._swap(token1, weth, amount1, self.address) + amount0)
        if token1 == weth:
            return self._to_gov(weth, self._swap(token0, weth, amount0, self.address) + amount1)

        bridge0 = self.bridge_for(token0)
        bridge1 = self.bridge_for(token1)
        if bridge0 == token1:
            return self._convert_step(bridge0, token1, self._swap(token0, bridge0, amount0, self.address),
                                      amount1, depth + 1)
        if bridge1 == token0:
            return self._convert_step(token0, bridge1, amount0,
                                      self._swap(token1, bridge1, amount1, self.address), depth + 1)
        return self._convert_step(
            bridge0,
            bridge1,
            self._swap(token0, bridge0, amount0, self.address),
            self._swap(token1, bridge1, amount1, self.address),
            depth + 1,
        )

    def _swap(self, token_in: str, token_out: str, amount_in: int, to: str) -> int:
        pair = self.factory.get_pair(token_in, token_out)
        if pair is None:
            raise NoPathAvailable("Cannot convert", {"token_in": token_in, "token_out": token_out})
        if amount_in <= 0:
            return 0
        self._contract(token_in).transfer(self.address, pair.address, amount_in)
        amount_out = pair.swap(self.address, token_in, to)
        self._hops.append(Hop(pair.address, token_in, token_out, amount_in, amount_out))
        return amount_out

    def _to_gov(self, token: str, amount: int) -> int:
        return self._swap(token, self.token.address, amount, self.grid.address)
