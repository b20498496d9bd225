# app.py — Aviator co-pilot dashboard: session controls, round entry, plan + previews, ledger/history

import os
import streamlit as st

# ---- Environment flag ----
APP_ENV = os.getenv("APP_ENV", "prod")

# ---- Page meta (run first) ----
env_suffix = " (DEV)" if APP_ENV == "dev" else ""
st.set_page_config(
    page_title=f"Aviator Co-Pilot{env_suffix}",
    page_icon="✈️",
    layout="wide",
    initial_sidebar_state="expanded",
)

from typing import Any, Dict, List, Optional
import datetime as dt

import pandas as pd

from bet_planner import WagerPlan
from copilot_settings import load_settings
from ledger import MANAGEMENT_TYPES, PROFILES, BASELINE_MODES
from market_signals import (
    MARKET_STATES,
    PINK_LEVELS,
    PURPLE_LEVELS,
    RISK_LEVELS,
    HotSpots,
    MarketSnapshot,
    PatternAlerts,
    PressureSnapshot,
    Round,
    SignalSnapshot,
)
from session_manager import RoundOutput, SessionManager
from status_codes import (
    PAUSE_STATUSES,
    SESSION_LOST,
    SESSION_WON,
    WAGERING_STATUSES,
)
from supabase_client import _get_secret, supabase_configured
from tactics import TACTICS

# ---- Persistence (optional) ----
PERSIST = supabase_configured()
OWNER_ID = _get_secret("COPILOT_OWNER_ID", "default") or "default"

if PERSIST:
    from db import fetch_history, fetch_session_events, load_session_state, persist_round_output, save_session_state


# ---------- Session bootstrap ----------
def _manager() -> SessionManager:
    """One SessionManager per Streamlit session, hydrated from Supabase once."""
    if st.session_state.get("copilot") is not None:
        return st.session_state.copilot

    mgr = SessionManager(load_settings())
    if PERSIST:
        stored = load_session_state(OWNER_ID)
        if stored:
            try:
                mgr.import_state(stored)
            except (TypeError, ValueError, RuntimeError) as e:
                print(f"[app] import_state failed, starting fresh: {e!r}")
                mgr = SessionManager(load_settings())
    st.session_state.copilot = mgr
    return mgr


def _persist(mgr: SessionManager, out: Optional[RoundOutput] = None) -> None:
    if not PERSIST:
        return
    state = mgr.export_state()
    if out is not None:
        persist_round_output(OWNER_ID, out, state)
    else:
        save_session_state(OWNER_ID, state)


mgr = _manager()
st.session_state.setdefault("last_output", None)


# ---------- DataFrame builders ----------
def _plan_rows(label: str, plan) -> List[Dict[str, Any]]:
    rows = []
    for leg_name, leg in (("Safety", plan.safety), ("Profit", plan.profit)):
        rows.append({
            "Plan": label,
            "Leg": leg_name,
            "Stake (R$)": leg.amount if leg.active else 0.0,
            "Target": f"{leg.target:.2f}x" if leg.active else "—",
        })
    return rows


def plans_dataframe(out: RoundOutput) -> pd.DataFrame:
    rows = _plan_rows("Now", out.plan)
    rows += _plan_rows("If win", out.preview_if_win)
    rows += _plan_rows("If loss", out.preview_if_loss)
    return pd.DataFrame(rows)


def confidence_dataframe(out: RoundOutput) -> pd.DataFrame:
    report = out.confidence
    if report is None:
        return pd.DataFrame(columns=["Tactic", "Score", "Weight", "Weighted", "Target", "Reasoning"])
    rows = []
    for name, s in report.scores.items():
        tactic = TACTICS.get(name)
        rows.append({
            "Tactic": tactic.label if tactic else name,
            "Score": round(s.score, 1),
            "Weight": round(s.weight, 1),
            "Weighted": round(s.weighted_score, 1),
            "Target": f"{s.suggested_target:.2f}x" if s.suggested_target else "—",
            "Reasoning": s.reasoning,
        })
    return pd.DataFrame(rows).sort_values("Weighted", ascending=False)


def ledger_dataframe(mgr: SessionManager) -> pd.DataFrame:
    rows = [
        {
            "Time": tx.timestamp[11:19],
            "Type": tx.type,
            "Amount (R$)": tx.signed_amount if tx.type != "Start" else tx.amount,
            "Balance (R$)": tx.resulting_balance,
            "Note": tx.note,
        }
        for tx in reversed(mgr.transactions)
    ]
    return pd.DataFrame(rows)


def history_dataframe(mgr: SessionManager, limit: int = 50) -> pd.DataFrame:
    rows = []
    for rec in reversed(mgr.history_records[-limit:]):
        rows.append({
            "Round": f"{rec.result_round.multiplier:.2f}x",
            "Time": rec.result_round.time,
            "Stake (R$)": rec.plan.total_stake,
            "Targets": " / ".join(f"{leg.target:.2f}x" for leg in rec.plan.legs if leg.active),
            "P/L (R$)": rec.profit,
            "Confidence": round(rec.confidence_score, 0),
            "Market": rec.context_snapshot.get("market_state") or "—",
            "Reasoning": rec.reasoning,
        })
    return pd.DataFrame(rows)


def stored_history_dataframe(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    """Same columns as history_dataframe, built from copilot_history rows."""
    out = []
    for row in rows:
        rec = row.get("record_json") or {}
        plan = WagerPlan.from_dict(rec.get("plan"))
        legs = [leg for leg in plan.legs if leg.active]
        out.append({
            "Round": f"{float(row.get('multiplier') or 0.0):.2f}x",
            "Time": row.get("round_time") or "",
            "Stake (R$)": plan.total_stake,
            "Targets": " / ".join(f"{leg.target:.2f}x" for leg in legs),
            "P/L (R$)": row.get("profit"),
            "Confidence": round(float(row.get("confidence_score") or 0.0), 0),
            "Market": (rec.get("context") or {}).get("market_state") or "—",
            "Reasoning": row.get("reasoning") or "",
        })
    return pd.DataFrame(out)


# ---------- Styles ----------
st.markdown("""
<style>
.hero-card { border:1px solid #2b2b2b;border-radius:12px;padding:12px 14px;background:#101010; }
.hero-title { color:#9ca3af;font-size:.78rem;text-transform:uppercase;letter-spacing:.04em; }
.hero-value { font-size:1.35rem;font-weight:700;margin-top:2px; }
.kicker { color:#9ca3af;font-size:.78rem;margin-top:2px; }
.status-wager { color:#86efac; }
.status-pause { color:#fcd34d; }
.status-end { color:#f9a8d4; }
</style>
""", unsafe_allow_html=True)


# ---------- Sidebar: session controls ----------
with st.sidebar:
    st.header("✈️ Session")
    s = mgr.settings

    with st.form("settings_form"):
        initial = st.number_input("Initial bankroll (R$)", min_value=1.0, value=float(s.initial_bankroll), step=10.0)
        c1, c2 = st.columns(2)
        with c1:
            stop_win = st.number_input("Stop-win %", min_value=0.0, value=float(s.stop_win_pct), step=1.0)
        with c2:
            stop_loss = st.number_input("Stop-loss %", min_value=0.0, value=float(s.stop_loss_pct), step=1.0)
        base_bet = st.number_input("Base bet (R$)", min_value=1.0, max_value=700.0, value=float(s.base_bet), step=0.5)
        management = st.selectbox("Management", MANAGEMENT_TYPES, index=MANAGEMENT_TYPES.index(s.management_type))
        c3, c4 = st.columns(2)
        with c3:
            on_win = st.number_input("On win +%", min_value=0.0, value=float(s.on_win_increase), step=5.0)
        with c4:
            on_loss = st.number_input("On loss +%", min_value=0.0, value=float(s.on_loss_increase), step=5.0)
        profile = st.selectbox("Profile", PROFILES, index=PROFILES.index(s.profile_mode))
        dual = st.toggle("Dual strategy", value=s.dual_strategy)
        smart = st.toggle("Smart mode", value=s.smart_mode)
        cautious = st.toggle("Caution after big spikes", value=s.cautious_mode)
        blue_stop = st.number_input("Pause after N blues (0 = off)", min_value=0, value=int(s.max_blue_streak_stop), step=1)
        hunt_max = st.number_input("Pink-hunt max losses", min_value=0, value=int(s.pink_hunt_max_losses), step=1)
        baseline = st.selectbox("Recovery baseline", BASELINE_MODES, index=BASELINE_MODES.index(s.baseline_mode))
        with st.expander("Tactic weights", expanded=False):
            weights = {
                name: st.slider(t.label, 0, 100, int(s.tactic_weights.get(name, t.default_weight)))
                for name, t in TACTICS.items()
            }
        applied = st.form_submit_button("Apply settings", use_container_width=True)

    if applied:
        changes = dict(
            stop_win_pct=stop_win, stop_loss_pct=stop_loss, base_bet=base_bet,
            management_type=management, on_win_increase=on_win, on_loss_increase=on_loss,
            profile_mode=profile, dual_strategy=dual, smart_mode=smart, cautious_mode=cautious,
            max_blue_streak_stop=int(blue_stop), pink_hunt_max_losses=int(hunt_max),
            baseline_mode=baseline, tactic_weights={k: float(v) for k, v in weights.items()},
        )
        try:
            if mgr.is_active:
                mgr.update_config(**changes)
                mgr.settings = mgr.settings.updated(initial_bankroll=initial)
            else:
                mgr.settings = mgr.settings.updated(initial_bankroll=initial, **changes)
            _persist(mgr)
            st.toast("Settings applied.", icon="✅")
        except ValueError as e:
            st.error(f"Invalid settings: {e}")

    b1, b2 = st.columns(2)
    with b1:
        if st.button("▶️ Start", use_container_width=True, disabled=mgr.is_active):
            st.session_state.last_output = mgr.start_session()
            _persist(mgr)
            st.rerun()
    with b2:
        if st.button("⏹ Stop", use_container_width=True, disabled=not mgr.is_active):
            st.session_state.last_output = mgr.stop_session()
            _persist(mgr)
            st.rerun()
    b3, b4 = st.columns(2)
    with b3:
        if st.button("🔄 Reset", use_container_width=True):
            st.session_state.last_output = mgr.reset_session()
            _persist(mgr)
            st.rerun()
    with b4:
        can_continue = bool(mgr.transactions) and mgr.bankroll.current_bankroll > 0
        if st.button("⏭ Continue", use_container_width=True, disabled=not can_continue,
                     help="New session seeded with the current balance"):
            st.session_state.last_output = mgr.continue_session()
            _persist(mgr)
            st.rerun()

    st.markdown("---")
    with st.form("funds_form", clear_on_submit=True):
        amount = st.number_input("Add / withdraw funds (R$)", value=0.0, step=10.0)
        if st.form_submit_button("Apply correction", use_container_width=True, disabled=not mgr.is_active):
            try:
                tx = mgr.add_funds(amount)
                _persist(mgr)
                if PERSIST:
                    from db import log_transaction
                    log_transaction(OWNER_ID, tx.to_dict())
                st.toast(f"Balance corrected by R$ {amount:+.2f}.", icon="💰")
            except (ValueError, RuntimeError) as e:
                st.error(str(e))

    st.caption("💾 Synced to Supabase" if PERSIST else "🧪 In-memory only (no Supabase credentials)")


# ---------- Main: round + signal entry ----------
st.title("✈️ Aviator Co-Pilot")

with st.form("round_form", clear_on_submit=False):
    st.subheader("New round")
    r1, r2, r3 = st.columns([1, 1, 1])
    with r1:
        multiplier = st.number_input("Multiplier", min_value=1.0, value=1.0, step=0.01, format="%.2f")
    with r2:
        round_date = st.text_input("Date", value=dt.date.today().isoformat())
    with r3:
        round_time = st.text_input("Time (HH:MM:SS)", value=dt.datetime.now().strftime("%H:%M:%S"))

    with st.expander("Market signals", expanded=True):
        g1, g2, g3, g4 = st.columns(4)
        with g1:
            market_state = st.selectbox("Market", ("—",) + MARKET_STATES)
            market_paused = st.checkbox("Market paused")
        with g2:
            pink_level = st.selectbox("Pink pressure", ("—",) + PINK_LEVELS)
            pink_pct = st.number_input("Pink %", min_value=0.0, max_value=100.0, value=0.0, step=5.0)
        with g3:
            purple_level = st.selectbox("Purple pressure", ("—",) + PURPLE_LEVELS)
            purple_pct = st.number_input("Purple %", min_value=0.0, max_value=100.0, value=0.0, step=5.0)
        with g4:
            risk_level = st.selectbox("Pause risk", ("—",) + RISK_LEVELS)
            double_pink = st.checkbox("Double pink alert")
            close_rep = st.checkbox("Close repetition alert")
        h1, h2 = st.columns(2)
        with h1:
            hot_minutes = st.text_input("Hottest pink minutes (e.g. :07, :23)", value="")
        with h2:
            target_house = st.number_input("Target house (0 = none)", min_value=0, value=0, step=1)

    submitted = st.form_submit_button("Submit round", use_container_width=True, type="primary")


def _opt(value: str) -> Optional[str]:
    return None if value == "—" else value


if submitted:
    try:
        new_round = Round(multiplier=float(multiplier), date=round_date.strip(), time=round_time.strip())
    except ValueError as e:
        st.error(str(e))
    else:
        signals = SignalSnapshot(
            market=MarketSnapshot(state=_opt(market_state), is_market_paused=market_paused),
            pink_pressure=PressureSnapshot(level=_opt(pink_level), percentage=pink_pct),
            purple_pressure=PressureSnapshot(level=_opt(purple_level), percentage=purple_pct),
            pause_risk=PressureSnapshot(level=_opt(risk_level)),
            patterns=PatternAlerts(double_pink=double_pink, close_repetition=close_rep),
            hot_spots=HotSpots(hottest_pink_minutes=tuple(m.strip() for m in hot_minutes.split(",") if m.strip())),
            target_house=int(target_house) or None,
        )
        out = mgr.on_round(new_round, signals)
        st.session_state.last_output = out
        _persist(mgr, out)
        for ev in out.events:
            if hasattr(ev, "profile"):
                st.toast(ev.message, icon="🧠")


# ---------- Status ----------
out: RoundOutput = mgr.snapshot()
bk = out.bankroll

if out.status in WAGERING_STATUSES:
    status_cls = "status-wager"
elif out.status in PAUSE_STATUSES:
    status_cls = "status-pause"
elif out.status in (SESSION_WON, SESSION_LOST):
    status_cls = "status-end"
else:
    status_cls = ""

c1, c2, c3, c4 = st.columns(4)
with c1:
    st.markdown(
        "<div class='hero-card'><div class='hero-title'>Status</div>"
        f"<div class='hero-value {status_cls}'>{out.status_label}</div>"
        f"<div class='kicker'>{out.reason}</div></div>",
        unsafe_allow_html=True,
    )
with c2:
    st.markdown(
        "<div class='hero-card'><div class='hero-title'>Bankroll</div>"
        f"<div class='hero-value'>R$ {bk.current_bankroll:.2f}</div>"
        f"<div class='kicker'>Start R$ {bk.initial_bankroll:.2f} · P/L {bk.session_profit:+.2f}</div></div>",
        unsafe_allow_html=True,
    )
with c3:
    st.markdown(
        "<div class='hero-card'><div class='hero-title'>Stops</div>"
        f"<div class='hero-value'>R$ {bk.stop_win_amount:.2f} / R$ {bk.stop_loss_amount:.2f}</div>"
        f"<div class='kicker'>Base bet R$ {bk.base_bet:.2f} · {bk.profile_mode}</div></div>",
        unsafe_allow_html=True,
    )
with c4:
    conf = f"{out.confidence.final_score:.0f}%" if out.confidence else "—"
    dominant = out.confidence.dominant if out.confidence and out.confidence.dominant else "—"
    st.markdown(
        "<div class='hero-card'><div class='hero-title'>Confidence</div>"
        f"<div class='hero-value'>{conf}</div>"
        f"<div class='kicker'>Dominant: {dominant} · losses {bk.consecutive_losses} · hunt {bk.pink_hunt_consecutive_losses}</div></div>",
        unsafe_allow_html=True,
    )

# ---------- Session-end banner ----------
if mgr.session_end is not None and mgr.is_terminal:
    end = mgr.session_end
    if end.type == "win":
        st.success(f"🎯 Stop-win reached: R$ {end.profit_or_loss:+.2f}. Start a new session or continue with the balance.")
    else:
        hint = f" Next best time: {end.next_best_time_suggestion}." if end.next_best_time_suggestion else ""
        st.error(f"🛑 Stop-loss reached: R$ {end.profit_or_loss:+.2f}.{hint}")

last = st.session_state.get("last_output")
if last is not None and last.last_result is not None:
    lr = last.last_result
    icon = "✅" if lr.won else "❌"
    st.info(f"{icon} Last round {lr.round.multiplier:.2f}x → P/L R$ {lr.profit:+.2f}")

st.markdown("---")

# ---------- Plan + confidence ----------
p1, p2 = st.columns([1, 1])
with p1:
    st.subheader("Plan")
    st.dataframe(plans_dataframe(out), use_container_width=True, hide_index=True)
    if not out.plan.is_empty:
        st.caption(out.plan.reason)
with p2:
    st.subheader("Tactics")
    st.dataframe(confidence_dataframe(out), use_container_width=True, hide_index=True)

# ---------- Ledger + history ----------
t1, t2, t3 = st.tabs(["Ledger", "History", "Events"])
with t1:
    st.dataframe(ledger_dataframe(mgr), use_container_width=True, hide_index=True)
with t2:
    history = stored_history_dataframe(fetch_history(OWNER_ID)) if PERSIST else history_dataframe(mgr)
    st.dataframe(history, use_container_width=True, hide_index=True)
    lt = mgr.lifetime
    st.caption(
        f"Lifetime: {lt.rounds_settled} rounds · {lt.wins}W/{lt.losses}L · "
        f"R$ {lt.total_profit:+.2f} · sessions {lt.sessions_won} won / {lt.sessions_lost} lost"
    )
with t3:
    if PERSIST:
        events = fetch_session_events(OWNER_ID, limit=20)
        if events:
            st.dataframe(pd.DataFrame(events)[["ts", "kind", "title", "body"]], use_container_width=True, hide_index=True)
        else:
            st.caption("No events yet.")
    else:
        for ev in reversed(mgr.session_events):
            st.write(ev.to_dict())
