import json
import time
import streamlit as st
import pandas as pd

from farm.config import FarmConfig, UNIT
from farm.core import format_amount
from farm.engine import SimulationEngine
from farm.errors import FarmError

st.set_page_config(page_title="Power Farm Emission Simulator", layout="wide")


def get_engine() -> SimulationEngine:
    if "engine" not in st.session_state:
        cfg = FarmConfig()
        st.session_state.cfg = cfg
        st.session_state.seed = cfg.seed
        st.session_state.engine = SimulationEngine(cfg=cfg, seed=st.session_state.seed)
    return st.session_state.engine


def reset_engine(cfg: FarmConfig, seed: int) -> None:
    st.session_state.cfg = cfg
    st.session_state.engine = SimulationEngine(cfg=cfg, seed=seed)


engine = get_engine()

st.title("Power Farm Emission Simulator")
st.caption("1 step = blocks_per_step blocks; every participant may act once per step.")

def _fmt_duration(seconds: float) -> str:
    if seconds < 0:
        seconds = 0.0
    mins = int(seconds // 60)
    secs = seconds - (mins * 60)
    return f"{mins}m {secs:0.1f}s"

def _fmt(value: float) -> str:
    return f"{float(value):,.2f}"

def _render_kpi_grid(kpis, columns: int = 4) -> None:
    for idx in range(0, len(kpis), columns):
        row = kpis[idx: idx + columns]
        cols = st.columns(columns)
        for col, (label, value) in zip(cols, row):
            col.metric(label, value)

def _format_table_numbers(df: pd.DataFrame) -> pd.DataFrame:
    formatted = df.copy()
    for col in formatted.select_dtypes(include=["float"]).columns:
        formatted[col] = formatted[col].map(lambda value: f"{value:,.2f}" if pd.notnull(value) else "")
    return formatted

def _format_event_args(args) -> str:
    if not args:
        return ""
    try:
        return json.dumps(args, sort_keys=True, default=str)
    except TypeError:
        return str(args)


with st.sidebar:
    st.header("Scenario")
    cfg: FarmConfig = st.session_state.cfg
    seed = st.number_input("Random seed", min_value=1, max_value=100000, value=int(st.session_state.seed))
    rewards = st.number_input("Rewards per block", min_value=0, value=int(cfg.rewards_per_block // UNIT), step=100)
    halving = st.number_input("Halving interval (blocks)", min_value=1, value=int(cfg.halving_interval_blocks), step=1000)
    cap = st.number_input("Token cap (0 = uncapped)", min_value=0, value=int((cfg.token_cap or 0) // UNIT), step=1_000_000)
    participants = st.number_input("Participants", min_value=1, max_value=500, value=int(cfg.participants))
    pools = st.number_input("Initial pools", min_value=1, max_value=50, value=int(cfg.initial_pools))
    blocks_per_step = st.number_input("Blocks per step", min_value=1, value=int(cfg.blocks_per_step), step=100)
    lock_pct = st.slider("Locked share of claimed rewards (%)", 0, 100, int(cfg.lock_bonus_percent))
    if st.button("Restart simulation"):
        try:
            new_cfg = FarmConfig(
                rewards_per_block=int(rewards) * UNIT,
                halving_interval_blocks=int(halving),
                token_cap=int(cap) * UNIT if cap else None,
                participants=int(participants),
                initial_pools=int(pools),
                blocks_per_step=int(blocks_per_step),
                lock_bonus_percent=int(lock_pct),
                seed=int(seed),
            )
        except ValueError as exc:
            st.error(str(exc))
        else:
            st.session_state.seed = int(seed)
            reset_engine(new_cfg, int(seed))
            engine = st.session_state.engine

    st.subheader("Run")
    run_steps = st.slider("Steps to run", min_value=1, max_value=500, value=25)
    c1, c2 = st.columns(2)
    run_one = c1.button("Step 1")
    run_many = c2.button("Run N steps")
    progress_bar = st.progress(0.0, text=st.session_state.get("run_progress_label", "Idle"))
    if run_one or run_many:
        total = 1 if run_one else int(run_steps)
        start_ts = time.time()
        for idx in range(total):
            engine.step(1)
            progress_bar.progress((idx + 1) / total, text=f"Run progress: {(idx + 1) / total:.0%}")
        label = f"Run progress: 100% ({_fmt_duration(time.time() - start_ts)})"
        st.session_state.run_progress_label = label
        progress_bar.progress(1.0, text=label)
    st.caption(f"Step {engine.step_count} at block {engine.chain.height}")

    st.subheader("Pools")
    new_weight = st.number_input("New pool weight", min_value=0, value=20, step=10)
    if st.button("Add pool"):
        try:
            engine.add_pool(int(new_weight))
        except FarmError as exc:
            st.error(str(exc))


latest = engine.metrics.latest()
tab_overview, tab_pools, tab_events = st.tabs(["Emission", "Pools", "Events"])

with tab_overview:
    _render_kpi_grid([
        ("Block height", f"{engine.chain.height:,}"),
        ("Halving epoch", str(latest.get("epoch", 0))),
        ("Reward / block", _fmt(latest.get("reward_per_block", 0.0))),
        ("Total supply", _fmt(latest.get("total_supply", 0.0))),
        ("Locked", _fmt(latest.get("total_locked", 0.0))),
        ("Locked share", f"{latest.get('locked_share', 0.0):.1%}"),
        ("Total staked", _fmt(latest.get("total_staked", 0.0))),
        ("Rejected calls", f"{latest.get('rejections_total', 0):,}"),
    ])
    net = engine.metrics.network_df()
    if not net.empty:
        st.subheader("Supply")
        st.line_chart(net.set_index("height")[["total_supply", "total_locked"]])
        st.subheader("Reward per block")
        st.line_chart(net.set_index("height")[["reward_per_block"]])
        st.subheader("Minted per epoch")
        st.dataframe(_format_table_numbers(engine.metrics.emission_by_epoch()), use_container_width=True)
    st.subheader("Fund addresses")
    st.dataframe(pd.DataFrame([
        {
            "role": role,
            "address": engine.supplier.fund_address(role),
            "balance": format_amount(engine.token.balance_of(engine.supplier.fund_address(role))),
            "allocation_bps": engine.supplier.fees.fund_allocation_bps.get(role, 0),
        }
        for role in ("dev", "liquidity", "community", "founder")
    ]), use_container_width=True)

with tab_pools:
    share = engine.metrics.stake_share_by_pool()
    if not share.empty:
        st.subheader("Share of staked tokens")
        st.area_chart(share)
    rows = []
    for pool_id in range(engine.supplier.pool_length()):
        info = engine.supplier.pool_info(pool_id)
        rows.append({
            "pool_id": pool_id,
            "stake": engine.deployment.stake_tokens[pool_id].symbol,
            "weight": info.weight,
            "total_staked": info.total_staked / UNIT,
            "acc_reward_per_share": info.acc_reward_per_share,
            "last_reward_height": info.last_reward_height,
        })
    st.dataframe(_format_table_numbers(pd.DataFrame(rows)), use_container_width=True)
    if engine.rejections:
        st.subheader("Rejected calls by error")
        st.bar_chart(pd.Series(engine.rejections, name="count"))

with tab_events:
    limit = st.slider("Events shown", min_value=10, max_value=1000, value=200, step=10)
    events = engine.chain.log.tail(limit)
    names = sorted({e.name for e in events})
    selected = st.multiselect("Event types", names, default=names)
    st.dataframe(pd.DataFrame([
        {"height": e.height, "event": e.name, "contract": e.contract, "args": _format_event_args(e.args)}
        for e in reversed(events)
        if e.name in selected
    ]), use_container_width=True)
