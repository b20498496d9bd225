# session_manager.py — session lifecycle + the per-round step function
#
# on_round(round, signals) is the only place a round is turned into a decision:
#   settle previous plan → terminal checks → data/pauses → score → plan + previews
# The bankroll itself is only ever written through the Ledger.
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bet_planner import (
    EMPTY_PLAN,
    RECOVERY_BRANCHES,
    WagerPlan,
    forward_plans,
    plan as build_plan,
    should_bet,
)
from copilot_settings import CopilotSettings
from ledger import (
    PROFILE_CONSERVATIVE,
    PROFILE_ELITE,
    PROFILE_MODERATE,
    BankrollState,
    Ledger,
    Transaction,
)
from market_signals import (
    MARKET_COLD,
    MARKET_VERY_HOT,
    PINK_CRITICAL,
    PINK_IMMINENT,
    PURPLE_MIN,
    RISK_CRITICAL,
    RISK_HIGH,
    RISK_LOW,
    RISK_MEDIUM,
    Round,
    SignalSnapshot,
    blue_streak,
)
from reconciliation import HistoryRecord, Settlement, settle
from status_codes import (
    BETTING,
    EVALUATING,
    HUNTING,
    INACTIVE,
    PAUSED_BLUE_STREAK,
    PAUSED_CRITICAL_RISK,
    PAUSED_STRATEGIC,
    RECOVERING,
    SESSION_LOST,
    SESSION_WON,
    TERMINAL_STATUSES,
    WAGERING_STATUSES,
    WAITING,
    WAITING_FOR_DATA,
    status_label,
)
from tactics import ConfidenceReport, score

# ----------------------------- Tunables -----------------------------

HISTORY_LIMIT = 1000   # rounds kept in memory; older ones are dropped
RECORDS_LIMIT = 500    # settled-round history records kept for the dashboard

SESSION_WIN = "win"
SESSION_LOSS = "loss"


# ----------------------------- Events / output -----------------------------


@dataclass(frozen=True)
class SessionEndEvent:
    type: str                                  # "win" | "loss"
    profit_or_loss: float
    next_best_time_suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "profit_or_loss": self.profit_or_loss,
            "next_best_time_suggestion": self.next_best_time_suggestion,
        }


@dataclass(frozen=True)
class ProfileChangeEvent:
    previous: str
    profile: str
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"previous": self.previous, "profile": self.profile, "message": self.message}


Event = Union[SessionEndEvent, ProfileChangeEvent]


@dataclass(frozen=True)
class RoundOutput:
    status: str
    reason: str
    plan: WagerPlan
    bankroll: BankrollState
    preview_if_win: WagerPlan = EMPTY_PLAN
    preview_if_loss: WagerPlan = EMPTY_PLAN
    last_result: Optional[Settlement] = None
    confidence: Optional[ConfidenceReport] = None
    events: Sequence[Event] = ()
    history_record: Optional[HistoryRecord] = None

    @property
    def status_label(self) -> str:
        return status_label(self.status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "status_label": self.status_label,
            "reason": self.reason,
            "plan": self.plan.to_dict(),
            "preview_if_win": self.preview_if_win.to_dict(),
            "preview_if_loss": self.preview_if_loss.to_dict(),
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "confidence": self.confidence.to_dict() if self.confidence else None,
            "bankroll": self.bankroll.export_state(),
            "events": [e.to_dict() for e in self.events],
            "history_record": self.history_record.to_dict() if self.history_record else None,
        }


@dataclass
class LifetimeStats:
    """Across every session of this manager (never reset by reset_session)."""
    rounds_settled: int = 0
    wins: int = 0
    losses: int = 0
    total_profit: float = 0.0
    sessions_won: int = 0
    sessions_lost: int = 0

    def record(self, profit: float) -> None:
        self.rounds_settled += 1
        if profit >= 0:
            self.wins += 1
        else:
            self.losses += 1
        self.total_profit = round(self.total_profit + profit, 2)

    @property
    def win_rate(self) -> float:
        return self.wins / self.rounds_settled if self.rounds_settled else 0.0


def select_profile(signals: SignalSnapshot) -> str:
    """
    Smart-mode profile for the current market.

    Conservador: cold market, critical pause risk, or high risk outside a very hot market.
    Elite:       (very hot + pink pressure critical/imminent) or a pattern alert,
                 only while pause risk is low/medium.
    Moderado:    everything else.
    """
    market = signals.market_state
    risk = signals.risk_level

    if market == MARKET_COLD or risk == RISK_CRITICAL or (risk == RISK_HIGH and market != MARKET_VERY_HOT):
        return PROFILE_CONSERVATIVE

    hot_pink = market == MARKET_VERY_HOT and signals.pink_level in (PINK_CRITICAL, PINK_IMMINENT)
    if (hot_pink or signals.patterns.any_alerting) and risk in (RISK_LOW, RISK_MEDIUM):
        return PROFILE_ELITE
    return PROFILE_MODERATE


# ----------------------------- Manager -----------------------------


class SessionManager:
    """
    One co-pilot session at a time, over a shared round history.

    Rounds are recorded even while no session is running, so a session
    started mid-stream can evaluate immediately once min_history is met.
    """

    def __init__(self, settings: Optional[CopilotSettings] = None) -> None:
        self.settings: CopilotSettings = settings or CopilotSettings()
        self.ledger: Ledger = Ledger(self.settings.to_bankroll_state())

        self.history: List[Round] = []
        self.history_records: List[HistoryRecord] = []
        self.session_events: List[Event] = []
        self.lifetime: LifetimeStats = LifetimeStats()

        self.status: str = INACTIVE
        self.reason: str = "Session inactive."
        self.plan: WagerPlan = EMPTY_PLAN
        self.confidence: Optional[ConfidenceReport] = None
        self.session_end: Optional[SessionEndEvent] = None

        self._blue_pause_latched: bool = False
        self._last_notified_profile: Optional[str] = None
        self._last_signals: SignalSnapshot = SignalSnapshot()
        self._last_output: Optional[RoundOutput] = None

    # ---- read side ----
    @property
    def bankroll(self) -> BankrollState:
        return self.ledger.state

    @property
    def is_active(self) -> bool:
        return self.ledger.state.is_active

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def transactions(self) -> Sequence[Transaction]:
        return self.ledger.transactions

    def snapshot(self) -> RoundOutput:
        """Current output without consuming a round."""
        if self._last_output is not None and self._last_output.bankroll == self.bankroll:
            return self._last_output
        if_win, if_loss = self._previews(self.plan, self._last_signals)
        return RoundOutput(
            status=self.status,
            reason=self.reason,
            plan=self.plan,
            bankroll=self.bankroll,
            preview_if_win=if_win,
            preview_if_loss=if_loss,
            confidence=self.confidence,
        )

    # ---- lifecycle ----
    def start_session(
        self,
        settings: Optional[CopilotSettings] = None,
        continue_with_remaining: bool = False,
    ) -> RoundOutput:
        """
        Open a new session. With continue_with_remaining the ending balance of
        the previous session becomes the new initial bankroll.
        """
        if settings is not None:
            self.settings = settings
        opening = None
        if continue_with_remaining and self.ledger.transactions:
            opening = self.ledger.balance
            if opening <= 0:
                raise ValueError("Cannot continue a session with no remaining balance.")

        self.ledger.start(self.settings.to_bankroll_state(opening))
        self._clear_round_state()
        self.status = WAITING_FOR_DATA
        self.reason = "Session started."
        return self._publish(RoundOutput(status=self.status, reason=self.reason, plan=EMPTY_PLAN, bankroll=self.bankroll))

    def continue_session(self) -> RoundOutput:
        return self.start_session(continue_with_remaining=True)

    def reset_session(self) -> RoundOutput:
        """
        Fresh session from the configured initial bankroll: clears streaks,
        pause latches, the outstanding plan and the terminal flag.
        """
        return self.start_session()

    def stop_session(self) -> RoundOutput:
        """Deactivate. The outstanding plan is discarded, never settled."""
        self.ledger.close()
        self.plan = EMPTY_PLAN
        self.confidence = None
        self._blue_pause_latched = False
        self._last_notified_profile = None
        self.status = INACTIVE
        self.reason = "Session stopped."
        return self._publish(RoundOutput(status=self.status, reason=self.reason, plan=EMPTY_PLAN, bankroll=self.bankroll))

    def add_funds(self, amount: float, note: str = "Funds added to session") -> Transaction:
        """Correction transaction; plan and previews are refreshed from the new balance."""
        tx = self.ledger.apply_correction(amount, note)
        self._refresh_plan()
        return tx

    def update_config(self, **changes: Any) -> BankrollState:
        """
        Change settings mid-session. Bankroll-level fields go through the
        Ledger; engine-level ones (smart mode, pauses, cautious mode) only
        touch the settings.
        """
        unknown = set(changes) - {f.name for f in fields(CopilotSettings)}
        if unknown:
            raise ValueError(f"Unknown settings: {sorted(unknown)}")
        self.settings = self.settings.updated(**changes)
        ledger_changes = {
            k: v for k, v in changes.items()
            if k in {
                "stop_win_pct", "stop_loss_pct", "pink_hunt_max_losses", "profile_mode",
                "dual_strategy", "management_type", "on_win_increase", "on_loss_increase",
                "baseline_mode",
            }
        }
        if "base_bet" in changes:
            ledger_changes["base_bet"] = changes["base_bet"]
            ledger_changes["base_bet_unit"] = changes["base_bet"]
        if "tactic_weights" in changes or "smart_mode" in changes:
            ledger_changes["tactic_weights"] = self.settings.effective_weights()
        if "smart_mode" in changes and not self.settings.smart_mode:
            self._last_notified_profile = None
        if ledger_changes:
            self.ledger.reconfigure(**ledger_changes)
        self._refresh_plan()
        return self.bankroll

    def load_history(self, rounds: Sequence[Round]) -> None:
        """Seed the round history (e.g. from storage) without settling anything."""
        for r in rounds:
            if not self._is_duplicate(r):
                self.history.append(r)
        self._trim_history()

    # ---- step function ----
    def on_round(self, new_round: Round, signals: Optional[SignalSnapshot] = None) -> RoundOutput:
        signals = signals or SignalSnapshot()

        # 1. duplicates / inactive
        if self._is_duplicate(new_round):
            return self.snapshot()
        self._last_signals = signals
        previous = self.history[-1] if self.history else None
        self.history.append(new_round)
        self._trim_history()

        if not self.is_active:
            self.status = INACTIVE
            self.reason = "Session inactive."
            self.plan = EMPTY_PLAN
            return self._publish(RoundOutput(status=INACTIVE, reason=self.reason, plan=EMPTY_PLAN, bankroll=self.bankroll))

        # 2. settle the outstanding plan
        settlement = self._settle(new_round, signals)
        record = settlement.history_record if settlement else None
        self.plan = EMPTY_PLAN

        # 3. sticky terminal
        if self.is_terminal:
            return self._publish(RoundOutput(
                status=self.status, reason=self.reason, plan=EMPTY_PLAN, bankroll=self.bankroll,
                last_result=settlement, history_record=record,
            ))

        events: List[Event] = []

        # 4. stop-win / stop-loss
        end = self._check_session_end(signals)
        if end is not None:
            events.append(end)
            return self._publish(RoundOutput(
                status=self.status, reason=self.reason, plan=EMPTY_PLAN, bankroll=self.bankroll,
                last_result=settlement, events=tuple(events), history_record=record,
            ))

        # 5. not enough data yet
        if len(self.history) < self.settings.min_history:
            self.confidence = None
            return self._finish(
                WAITING_FOR_DATA,
                f"Collecting rounds ({len(self.history)}/{self.settings.min_history}).",
                settlement, events, record, signals,
            )

        # 6. smart-mode profile
        if self.settings.smart_mode:
            change = self._auto_tune_profile(signals)
            if change is not None:
                events.append(change)

        # 7-9. pauses
        pause = self._pause_status(new_round, signals)
        if pause is not None:
            self.confidence = None
            return self._finish(pause[0], pause[1], settlement, events, record, signals)

        # 10. score + plan
        self.status = EVALUATING
        report = score(self.history, self.bankroll, signals)
        self.confidence = report
        if not should_bet(report):
            return self._finish(
                WAITING,
                f"Waiting for a clear signal (confidence {report.final_score:.0f}%).",
                settlement, events, record, signals,
            )

        cautious = (
            self.settings.cautious_mode
            and previous is not None
            and previous.multiplier >= self.settings.cautious_after_multiplier
        )
        self.plan = build_plan(report, self.bankroll, report.dominant_tactic, signals, cautious=cautious)
        if self.plan.branch in RECOVERY_BRANCHES:
            status = RECOVERING
        elif self.plan.targets_pink:
            status = HUNTING
        else:
            status = BETTING
        reason = f"{self.plan.reason} (confidence {report.final_score:.0f}%)"
        return self._finish(status, reason, settlement, events, record, signals)

    # ---- internals ----
    def _is_duplicate(self, r: Round) -> bool:
        if not self.history or not r.time:
            return False
        return self.history[-1].key == r.key

    def _trim_history(self) -> None:
        if len(self.history) > HISTORY_LIMIT:
            del self.history[: len(self.history) - HISTORY_LIMIT]

    def _clear_round_state(self) -> None:
        self.plan = EMPTY_PLAN
        self.confidence = None
        self.session_end = None
        self.session_events = []
        self._blue_pause_latched = False
        self._last_notified_profile = None
        self._last_output = None

    def _settle(self, new_round: Round, signals: SignalSnapshot) -> Optional[Settlement]:
        settlement = settle(
            self.plan,
            new_round,
            reasoning=self.reason,
            confidence_score=self.confidence.final_score if self.confidence else 0.0,
            history=self.history,
            signals=signals,
        )
        if settlement is None:
            return None
        tx = self.ledger.apply_settlement(
            settlement.profit,
            settlement.was_pink_hunt,
            note=f"{new_round.multiplier:.2f}x vs {self.plan.branch}",
        )
        settlement = replace(settlement, transaction=tx)
        self.lifetime.record(settlement.profit)
        self.history_records.append(settlement.history_record)
        if len(self.history_records) > RECORDS_LIMIT:
            del self.history_records[: len(self.history_records) - RECORDS_LIMIT]
        return settlement

    def _check_session_end(self, signals: SignalSnapshot) -> Optional[SessionEndEvent]:
        state = self.bankroll
        if state.current_bankroll >= state.stop_win_amount:
            self.status = SESSION_WON
            self.reason = f"Profit of R$ {state.session_profit:.2f} reached."
            event = SessionEndEvent(type=SESSION_WIN, profit_or_loss=state.session_profit)
            self.lifetime.sessions_won += 1
        elif state.current_bankroll <= state.stop_loss_amount:
            hot = signals.hot_spots.hottest_pink_minutes
            self.status = SESSION_LOST
            self.reason = f"Stop loss of R$ {-state.session_profit:.2f} reached."
            event = SessionEndEvent(
                type=SESSION_LOSS,
                profit_or_loss=state.session_profit,
                next_best_time_suggestion=hot[0] if hot else None,
            )
            self.lifetime.sessions_lost += 1
        else:
            return None
        self.confidence = None
        self.session_end = event
        self.session_events.append(event)
        return event

    def _auto_tune_profile(self, signals: SignalSnapshot) -> Optional[ProfileChangeEvent]:
        target = select_profile(signals)
        current = self.bankroll.profile_mode
        if target == current or target == self._last_notified_profile:
            return None
        self.ledger.reconfigure(profile_mode=target)
        self._last_notified_profile = target
        event = ProfileChangeEvent(
            previous=current,
            profile=target,
            message=f'Market changed. Profile adjusted to "{target}".',
        )
        self.session_events.append(event)
        return event

    def _pause_status(self, new_round: Round, signals: SignalSnapshot) -> Optional[Tuple[str, str]]:
        # the blue-streak latch follows every round, even under another pause
        limit = self.settings.max_blue_streak_stop
        streak = blue_streak(self.history)
        if limit > 0:
            if self._blue_pause_latched:
                if new_round.multiplier >= PURPLE_MIN:
                    self._blue_pause_latched = False
            elif streak >= limit:
                self._blue_pause_latched = True
        else:
            self._blue_pause_latched = False

        if signals.risk_level == RISK_CRITICAL:
            return PAUSED_CRITICAL_RISK, "CRITICAL market pause risk detected. Waiting for it to settle."
        if self._blue_pause_latched:
            return PAUSED_BLUE_STREAK, f"Waiting for the market to pay after {streak} blues in a row."

        if signals.market is not None and signals.market.is_market_paused:
            return PAUSED_STRATEGIC, "Market is paying nothing right now. Strategic pause."
        return None

    def _previews(self, current: WagerPlan, signals: Optional[SignalSnapshot] = None) -> Tuple[WagerPlan, WagerPlan]:
        if not self.is_active or self.status not in WAGERING_STATUSES:
            return EMPTY_PLAN, EMPTY_PLAN
        report = self.confidence or ConfidenceReport()
        return forward_plans(report, self.bankroll, current, signals)

    def _finish(
        self,
        status: str,
        reason: str,
        settlement: Optional[Settlement],
        events: List[Event],
        record: Optional[HistoryRecord],
        signals: SignalSnapshot,
    ) -> RoundOutput:
        self.status = status
        self.reason = reason
        # 11. previews from the post-settlement snapshot
        if_win, if_loss = self._previews(self.plan, signals)
        return self._publish(RoundOutput(
            status=status,
            reason=reason,
            plan=self.plan,
            bankroll=self.bankroll,
            preview_if_win=if_win,
            preview_if_loss=if_loss,
            last_result=settlement,
            confidence=self.confidence,
            events=tuple(events),
            history_record=record,
        ))

    def _refresh_plan(self) -> None:
        """Re-plan after a balance/config change, without a new round."""
        if self.plan.is_empty or not self.is_active or self.is_terminal or self.confidence is None:
            self._last_output = None
            return
        self.plan = build_plan(
            self.confidence, self.bankroll, self.confidence.dominant_tactic, self._last_signals, cautious=self.plan.cautious,
        )
        self._last_output = None

    def _publish(self, out: RoundOutput) -> RoundOutput:
        self._last_output = out
        return out

    # ---- persistence ----
    def export_state(self) -> Dict[str, Any]:
        return {
            "settings": self.settings.export_state(),
            "ledger": self.ledger.export_state(),
            "history": [r.to_dict() for r in self.history],
            "status": self.status,
            "reason": self.reason,
            "plan": self.plan.to_dict(),
            "blue_pause_latched": self._blue_pause_latched,
            "last_notified_profile": self._last_notified_profile,
            "session_end": self.session_end.to_dict() if self.session_end else None,
            "lifetime": {
                "rounds_settled": self.lifetime.rounds_settled,
                "wins": self.lifetime.wins,
                "losses": self.lifetime.losses,
                "total_profit": self.lifetime.total_profit,
                "sessions_won": self.lifetime.sessions_won,
                "sessions_lost": self.lifetime.sessions_lost,
            },
        }

    def import_state(self, data: Dict[str, Any]) -> None:
        if not isinstance(data, dict):
            return
        if isinstance(data.get("settings"), dict):
            self.settings = CopilotSettings.import_state(data["settings"])
        if isinstance(data.get("ledger"), dict):
            self.ledger.import_state(data["ledger"])

        self.history = []
        for raw in data.get("history") or []:
            try:
                self.history.append(Round.from_dict(raw))
            except (TypeError, ValueError, AttributeError):
                continue
        self._trim_history()

        self.status = str(data.get("status") or (WAITING_FOR_DATA if self.is_active else INACTIVE))
        self.reason = str(data.get("reason") or "")
        self.plan = WagerPlan.from_dict(data.get("plan"))
        self._blue_pause_latched = bool(data.get("blue_pause_latched", False))
        self._last_notified_profile = data.get("last_notified_profile") or None
        self.confidence = None
        self._last_output = None

        end = data.get("session_end")
        self.session_end = None
        if isinstance(end, dict):
            pl = end.get("profit_or_loss", 0.0)
            self.session_end = SessionEndEvent(
                type=str(end.get("type") or SESSION_LOSS),
                profit_or_loss=float(pl if pl is not None else 0.0),
                next_best_time_suggestion=end.get("next_best_time_suggestion"),
            )

        lt = data.get("lifetime") or {}
        self.lifetime = LifetimeStats(
            rounds_settled=int(lt.get("rounds_settled", 0) or 0),
            wins=int(lt.get("wins", 0) or 0),
            losses=int(lt.get("losses", 0) or 0),
            total_profit=float(lt.get("total_profit", 0.0) or 0.0),
            sessions_won=int(lt.get("sessions_won", 0) or 0),
            sessions_lost=int(lt.get("sessions_lost", 0) or 0),
        )
