from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
import pandas as pd

@dataclass
class MetricsStore:
    network_rows: List[Dict[str, Any]] = field(default_factory=list)
    pool_rows: List[Dict[str, Any]] = field(default_factory=list)

    def add_network(self, row: Dict[str, Any]) -> None:
        self.network_rows.append(row)

    def add_pool_rows(self, rows: List[Dict[str, Any]]) -> None:
        self.pool_rows.extend(rows)

    def latest(self) -> Dict[str, Any]:
        return dict(self.network_rows[-1]) if self.network_rows else {}

    def network_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.network_rows)

    def pool_df(self, pool_id: Optional[int] = None) -> pd.DataFrame:
        df = pd.DataFrame(self.pool_rows)
        if pool_id is None or df.empty:
            return df
        return df[df["pool_id"] == pool_id].reset_index(drop=True)

    def emission_by_epoch(self) -> pd.DataFrame:
        """Minted supply per halving epoch."""
        df = self.network_df()
        if df.empty:
            return df
        return (
            df.groupby("epoch", as_index=False)
            .agg(first_height=("height", "min"), minted=("minted_step", "sum"))
        )

    def stake_share_by_pool(self) -> pd.DataFrame:
        """Each pool's share of all staked tokens, one column per pool, indexed by height."""
        df = self.pool_df()
        if df.empty:
            return df
        wide = df.pivot_table(index="height", columns="stake_symbol", values="total_staked", aggfunc="sum")
        totals = wide.sum(axis=1).replace(0, float("nan"))
        return wide.div(totals, axis=0).fillna(0.0)
