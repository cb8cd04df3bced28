from __future__ import annotations
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class EmissionSchedule:
    """
    Per-block reward that halves every ``halving_interval`` blocks after
    ``start_height``. Nothing is emitted before ``start_height``.
    """
    rewards_per_block: int
    start_height: int
    halving_interval: int

    def __post_init__(self) -> None:
        if self.rewards_per_block < 0:
            raise ValueError("rewards_per_block must be non-negative")
        if self.start_height < 0:
            raise ValueError("start_height must be non-negative")
        if self.halving_interval <= 0:
            raise ValueError("halving_interval must be positive")

    def epoch(self, height: int) -> int:
        if height < self.start_height:
            return 0
        return (int(height) - self.start_height) // self.halving_interval

    def reward_per_block(self, height: int) -> int:
        if height < self.start_height:
            return 0
        return int(self.rewards_per_block) >> self.epoch(height)

    def epoch_boundaries(self, from_height: int, to_height: int) -> List[int]:
        """Halving heights strictly inside ``(from_height, to_height)``."""
        lo = max(int(from_height), self.start_height)
        out: List[int] = []
        boundary = self.start_height + (self.epoch(lo) + 1) * self.halving_interval
        while boundary < to_height:
            out.append(boundary)
            boundary += self.halving_interval
        return out

    def rewards_between(self, from_height: int, to_height: int) -> int:
        """Total emission over the half-open block range ``[from_height, to_height)``."""
        if from_height > to_height:
            raise ValueError(f"from_height {from_height} is after to_height {to_height}")
        lo = max(int(from_height), self.start_height)
        hi = int(to_height)
        if hi <= lo:
            return 0
        total = 0
        cursor = lo
        while cursor < hi:
            rate = self.reward_per_block(cursor)
            if rate == 0:
                # every later epoch is zero as well
                break
            epoch_end = self.start_height + (self.epoch(cursor) + 1) * self.halving_interval
            seg_end = min(hi, epoch_end)
            total += rate * (seg_end - cursor)
            cursor = seg_end
        return total


def rewards_between(start_height: int, rewards_per_block: int, halving_interval: int,
                    from_height: int, to_height: int) -> int:
    return EmissionSchedule(rewards_per_block, start_height, halving_interval).rewards_between(
        from_height, to_height
    )
