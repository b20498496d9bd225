# tactics.py — Confidence Scoring Engine: tactic registry + weighted aggregator
#
# Each tactic is a small pure evaluator:
#     (history, bankroll, signals) -> (score 0..100, reasoning, suggested_target)
# A tactic scoring 0 abstains. The composite is the weight-normalized mean of
# the tactics that vote:
#     final = Σ(score_i × weight_i) / Σ(weight_i)      (voters only)
# then a -25% penalty when the last 7 rounds lean blue.
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from ledger import BankrollState
from market_signals import (
    MARKET_HOT,
    MARKET_VERY_HOT,
    PINK_CRITICAL,
    PINK_IMMINENT,
    PURPLE_CRITICAL,
    PURPLE_HIGH,
    PURPLE_MIN,
    Round,
    SignalSnapshot,
    blue_streak,
)

Evaluation = Tuple[float, str, float]
Evaluator = Callable[[Sequence[Round], BankrollState, SignalSnapshot], Evaluation]

# ============================================================
# TUNABLES
# ============================================================

# Estimated probability that a blue streak of length N continues one more
# round. Empirical table from the round archive: long blue runs are rarer, so
# the continuation odds fall with streak length. Tune here, nowhere else.
CONTINUATION_PROBABILITY: Dict[int, float] = {
    1: 0.52, 2: 0.51, 3: 0.50, 4: 0.48, 5: 0.45,
    6: 0.42, 7: 0.40, 8: 0.35, 9: 0.30, 10: 0.25,
    11: 0.20, 12: 0.15, 13: 0.12, 14: 0.10, 15: 0.08,
    16: 0.05, 17: 0.05, 18: 0.05, 19: 0.05, 20: 0.05,
    21: 0.05, 22: 0.05, 23: 0.05, 24: 0.05, 25: 0.05,
}
REVERSAL_STREAK_CAP: int = 25
REVERSAL_MIN_STREAK: int = 2
REVERSAL_NEUTRAL_SCORE: float = 50.0
REVERSAL_STRONG_INDICATOR: float = 0.4

# Defensive guard over the most recent rounds
DEFENSIVE_WINDOW: int = 7
DEFENSIVE_PENALTY: float = 0.75  # multiply final score (−25%)

SCORE_MIN: float = 0.0
SCORE_MAX: float = 100.0


# ============================================================
# TYPES
# ============================================================


@dataclass(frozen=True)
class TacticScore:
    name: str
    score: float
    reasoning: str
    suggested_target: float
    weight: float
    weighted_score: float = 0.0

    @property
    def votes(self) -> bool:
        return self.score > 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "score": self.score,
            "reasoning": self.reasoning,
            "suggested_target": self.suggested_target,
            "weight": self.weight,
            "weighted_score": self.weighted_score,
        }


@dataclass(frozen=True)
class ConfidenceReport:
    final_score: float = 0.0
    raw_score: float = 0.0
    scores: Mapping[str, TacticScore] = field(default_factory=dict)
    defensive: bool = False
    dominant: Optional[str] = None

    @property
    def dominant_tactic(self) -> Optional[TacticScore]:
        if self.dominant is None:
            return None
        return self.scores.get(self.dominant)

    def to_dict(self) -> Dict[str, object]:
        return {
            "final_score": self.final_score,
            "raw_score": self.raw_score,
            "defensive": self.defensive,
            "dominant": self.dominant,
            "scores": {k: v.to_dict() for k, v in self.scores.items()},
        }


@dataclass(frozen=True)
class Tactic:
    name: str
    label: str
    default_weight: float
    evaluate: Evaluator


# ============================================================
# REGISTRY
# ============================================================

TACTICS: Dict[str, Tactic] = {}


def register(name: str, label: str, default_weight: float) -> Callable[[Evaluator], Evaluator]:
    """Decorator: add an evaluator to the registry (registration order = tie-break order)."""
    def _wrap(fn: Evaluator) -> Evaluator:
        if name in TACTICS:
            raise ValueError(f"Tactic already registered: {name!r}")
        TACTICS[name] = Tactic(name=name, label=label, default_weight=float(default_weight), evaluate=fn)
        return fn
    return _wrap


def default_weights() -> Dict[str, float]:
    return {name: t.default_weight for name, t in TACTICS.items()}


# ============================================================
# TACTICS
# ============================================================


@register("hot_market", "Hot market", 80)
def hot_market(history: Sequence[Round], bankroll: BankrollState, signals: SignalSnapshot) -> Evaluation:
    state = signals.market_state
    if state == MARKET_VERY_HOT:
        return 100.0, "Market on fire!", 15.00
    if state == MARKET_HOT:
        return 75.0, "Market heating up.", 15.00
    return 0.0, "Cold market, no entry.", 15.00


@register("reversal_hunter", "Reversal after blue streak", 90)
def reversal_hunter(history: Sequence[Round], bankroll: BankrollState, signals: SignalSnapshot) -> Evaluation:
    streak = blue_streak(history)
    if streak < REVERSAL_MIN_STREAK:
        return REVERSAL_NEUTRAL_SCORE, "Neutral signal, waiting.", 2.00

    p_continue = CONTINUATION_PROBABILITY.get(min(streak, REVERSAL_STREAK_CAP), 0.5)
    indicator = (1 - p_continue) - p_continue

    if indicator < 0:
        return 0.0, "Negative reversal indicator! More blue likely.", 2.00
    if indicator > REVERSAL_STRONG_INDICATOR:
        return 100.0, f"STRONG REVERSAL SIGNAL ({indicator:.2f})", 2.00
    return (indicator + 0.5) * 100, f"Reversal signal ({indicator:.2f}) after {streak} blues.", 2.00


@register("hot_signal_hunter", "Hot minute / hot house", 75)
def hot_signal_hunter(history: Sequence[Round], bankroll: BankrollState, signals: SignalSnapshot) -> Evaluation:
    if signals.target_house:
        return 95.0, f"Hunter target on house {signals.target_house}!", 20.00

    minute = signals.current_minute
    if minute is None and history:
        minute = history[-1].minute
    if minute is not None and minute in set(signals.hot_spots.pink_minutes()):
        return 85.0, f"Hot minute :{minute:02d} now!", 18.00
    return 0.0, "No hot minute or house signal.", 0.0


@register("pink_pressure", "Pink pressure trigger", 65)
def pink_pressure(history: Sequence[Round], bankroll: BankrollState, signals: SignalSnapshot) -> Evaluation:
    p = signals.pink_pressure
    if p is not None:
        if p.level == PINK_CRITICAL:
            return 100.0, f"Pink pressure maxed out! ({p.percentage:.0f}%)", 25.00
        if p.level == PINK_IMMINENT:
            return 80.0, f"Pink pressure rising! ({p.percentage:.0f}%)", 20.00
    return 0.0, "No pink pressure.", 0.0


@register("purple_pressure", "Purple pressure trigger", 40)
def purple_pressure(history: Sequence[Round], bankroll: BankrollState, signals: SignalSnapshot) -> Evaluation:
    p = signals.purple_pressure
    if p is not None:
        if p.level == PURPLE_CRITICAL:
            return 100.0, f"CRITICAL purple pressure! ({p.percentage:.0f}%)", 2.00
        if p.level == PURPLE_HIGH:
            return 80.0, f"HIGH purple pressure! ({p.percentage:.0f}%)", 2.00
    return 0.0, "No purple pressure.", 0.0


@register("pink_pattern_proximity", "Pink pattern proximity", 95)
def pink_pattern_proximity(history: Sequence[Round], bankroll: BankrollState, signals: SignalSnapshot) -> Evaluation:
    if signals.patterns.double_pink:
        return 100.0, "DOUBLE PINK signal!", 2.00
    if signals.patterns.close_repetition:
        return 100.0, "CLOSE REPETITION signal!", 2.00
    return 0.0, "No pink pattern active.", 2.00


# Weight preset applied when smart mode is switched on
SMART_PRESET_WEIGHTS: Dict[str, float] = {
    "hot_market": 85,
    "reversal_hunter": 90,
    "hot_signal_hunter": 80,
    "pink_pressure": 65,
    "purple_pressure": 75,
    "pink_pattern_proximity": 95,
}


# ============================================================
# AGGREGATION
# ============================================================


def _clamp(v: float, lo: float = SCORE_MIN, hi: float = SCORE_MAX) -> float:
    if v != v:  # NaN
        return lo
    return max(lo, min(hi, v))


def aggregate(scores: Iterable[TacticScore]) -> float:
    """Weight-normalized mean over voting tactics; 0 when nobody votes."""
    total_weight = 0.0
    weighted_sum = 0.0
    for s in scores:
        if s.score > 0:
            total_weight += s.weight
            weighted_sum += s.score * s.weight
    if total_weight <= 0:
        return 0.0
    return _clamp(weighted_sum / total_weight)


def dominant_tactic(scores: Mapping[str, TacticScore]) -> Optional[TacticScore]:
    """Voting tactic with the largest score × weight; ties keep registry order."""
    best: Optional[TacticScore] = None
    for s in scores.values():
        if s.score <= 0:
            continue
        if best is None or s.score * s.weight > best.score * best.weight:
            best = s
    return best


def is_defensive(history: Sequence[Round]) -> bool:
    """True when the last DEFENSIVE_WINDOW rounds hold more blue than non-blue outcomes."""
    window = list(history[-DEFENSIVE_WINDOW:])
    if len(window) < DEFENSIVE_WINDOW:
        return False
    losing = sum(1 for r in window if r.multiplier < PURPLE_MIN)
    winning = len(window) - losing
    return losing > winning


def score(
    history: Sequence[Round],
    bankroll: BankrollState,
    signals: Optional[SignalSnapshot] = None,
    tactics: Optional[Mapping[str, Tactic]] = None,
) -> ConfidenceReport:
    """Score the current situation. Pure: same inputs → same report."""
    signals = signals or SignalSnapshot()
    registry = TACTICS if tactics is None else tactics

    scores: Dict[str, TacticScore] = {}
    for name, tactic in registry.items():
        raw, reasoning, target = tactic.evaluate(history, bankroll, signals)
        s = _clamp(float(raw))
        weight = _clamp(float(bankroll.tactic_weights.get(name, tactic.default_weight)))
        scores[name] = TacticScore(
            name=name,
            score=s,
            reasoning=reasoning,
            suggested_target=float(target),
            weight=weight,
            weighted_score=s * weight / 100.0 if s > 0 else 0.0,
        )

    raw_score = aggregate(scores.values())
    defensive = is_defensive(history)
    final_score = _clamp(raw_score * DEFENSIVE_PENALTY if defensive else raw_score)
    dominant = dominant_tactic(scores)

    return ConfidenceReport(
        final_score=final_score,
        raw_score=raw_score,
        scores=scores,
        defensive=defensive,
        dominant=dominant.name if dominant else None,
    )