# reconciliation.py — settle the previous plan against the round that just landed
#
# Pure: computes the net result and the write-once history record. Booking the
# result is the Ledger's job (SessionManager calls Ledger.apply_settlement).
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple
import datetime as dt

from bet_planner import LegResult, WagerPlan, is_pink_hunt, settlement_profit
from ledger import TX_LOSS, TX_WIN, Transaction
from market_signals import Round, SignalSnapshot, plays_since_last_pink

CONTEXT_ROUNDS = 5  # rounds before the result kept in the history context


@dataclass(frozen=True)
class HistoryRecord:
    """One settled round, for audit/reporting. Never read back by the engine."""
    plan: WagerPlan
    result_round: Round
    profit: float
    reasoning: str
    confidence_score: float
    context_snapshot: Dict[str, Any] = field(default_factory=dict)
    leg_results: Tuple[LegResult, ...] = ()
    timestamp: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan.to_dict(),
            "result_round": self.result_round.to_dict(),
            "profit": self.profit,
            "reasoning": self.reasoning,
            "confidence_score": self.confidence_score,
            "context": dict(self.context_snapshot),
            "leg_results": [r.to_dict() for r in self.leg_results],
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class Settlement:
    round: Round
    plan: WagerPlan
    profit: float
    transaction_type: str
    was_pink_hunt: bool
    leg_results: Tuple[LegResult, ...]
    history_record: HistoryRecord
    transaction: Optional[Transaction] = None  # filled in once the Ledger books it

    @property
    def won(self) -> bool:
        return self.profit >= 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round": self.round.to_dict(),
            "plan": self.plan.to_dict(),
            "profit": self.profit,
            "transaction_type": self.transaction_type,
            "was_pink_hunt": self.was_pink_hunt,
            "leg_results": [r.to_dict() for r in self.leg_results],
            "transaction": self.transaction.to_dict() if self.transaction else None,
        }


def context_snapshot(history: Sequence[Round], signals: Optional[SignalSnapshot]) -> Dict[str, Any]:
    """
    Market context at settlement time. `history` ends with the result round.
    """
    signals = signals or SignalSnapshot()
    before = list(history[:-1])
    market = signals.market

    since_pink = market.plays_since_last_pink if market and market.plays_since_last_pink is not None else None
    if since_pink is None:
        since_pink = plays_since_last_pink(before)

    return {
        "market_state": market.state if market and market.state else None,
        "is_market_paused": bool(market.is_market_paused) if market else False,
        "plays_since_last_pink": since_pink,
        "last_rounds": [r.to_dict() for r in before[-CONTEXT_ROUNDS:]],
        "pink_pressure": signals.pink_pressure.to_dict() if signals.pink_pressure else None,
        "purple_pressure": signals.purple_pressure.to_dict() if signals.purple_pressure else None,
        "pause_risk": signals.pause_risk.to_dict() if signals.pause_risk else None,
        "pink_pattern_status": signals.patterns.status_text,
    }


def settle(
    prev_plan: WagerPlan,
    new_round: Round,
    *,
    reasoning: str = "",
    confidence_score: float = 0.0,
    history: Optional[Sequence[Round]] = None,
    signals: Optional[SignalSnapshot] = None,
) -> Optional[Settlement]:
    """
    Judge `prev_plan` against `new_round`.

    Returns None when the plan carried no stake (nothing to book). Otherwise
    one net result for both legs: a leg wins iff multiplier >= target and pays
    amount × (target − 1), a losing leg costs its amount.
    """
    if prev_plan.is_empty:
        return None

    profit, leg_results = settlement_profit(prev_plan, new_round.multiplier)
    history = list(history) if history is not None else [new_round]

    record = HistoryRecord(
        plan=prev_plan,
        result_round=new_round,
        profit=profit,
        reasoning=reasoning or prev_plan.reason,
        confidence_score=float(confidence_score),
        context_snapshot=context_snapshot(history, signals),
        leg_results=tuple(leg_results),
        timestamp=dt.datetime.now(dt.timezone.utc).isoformat(),
    )

    return Settlement(
        round=new_round,
        plan=prev_plan,
        profit=profit,
        transaction_type=TX_WIN if profit >= 0 else TX_LOSS,
        was_pink_hunt=is_pink_hunt(prev_plan),
        leg_results=tuple(leg_results),
        history_record=record,
    )
