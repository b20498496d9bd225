# bet_planner.py — Bet Plan Generator: two-leg wager plans + win/loss previews
#
# A plan is always two legs:
#   safety: low target, high hit rate, carries the stake
#   profit: higher target, smaller stake, zero-amount when disabled
#
# Branch priority (first match wins):
#   1. Net loss recovery      current < baseline
#   2. Pink-hunt ceiling      pink_hunt_consecutive_losses >= pink_hunt_max_losses > 0
#   3. Loss-recovery run      consecutive_losses > 0 with losses on the book,
#                             skipped while a pink-hunt losing run is below the ceiling
#   4. Normal profit-seeking  dual (safety + profile leg) or single leg
# Cautious override (post-spike) then shrinks the safety stake and drops the profit leg.
#
# Every non-zero amount is clamped to [MIN_BET, MAX_BET]; nothing is rejected.
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple
import math

from ledger import MAX_BET, MIN_BET, PROFILE_CONSERVATIVE, PROFILE_ELITE, PROFILE_MODERATE, BankrollState, clamp_bet, project
from market_signals import PINK_CRITICAL, SignalSnapshot
from tactics import ConfidenceReport, TacticScore

__all__ = [
    "MIN_BET",
    "MAX_BET",
    "BETTING_THRESHOLD",
    "WagerLeg",
    "WagerPlan",
    "LegResult",
    "plan",
    "forward_plans",
    "settlement_profit",
    "is_pink_hunt",
    "should_bet",
]

# ============================================================
# TUNABLES
# ============================================================
BETTING_THRESHOLD: float = 65.0
PINK_MULTIPLIER: float = 10.00          # a leg at or above this target is a pink hunt

# Recovery
SAFE_RECOVERY_TARGET: float = 1.80      # net-loss recovery + fallback for bad divisors
LOSS_RECOVERY_TARGET: float = 1.90      # recovery run after consecutive losses
RECOVERY_MARGIN_RATE: float = 0.10      # profit margin on top of the deficit, × base bet
RECOVERY_BANKROLL_CAP: float = 0.25     # loss-recovery stake never above 25% of bankroll
RECOVERY_PROFIT_TARGET: float = 2.50    # parallel profit leg while recovering (dual only)

# Pink-hunt ceiling
HUNT_PAUSE_TARGET: float = 2.00

# Normal profit-seeking
DUAL_SAFETY_TARGET: float = 1.80
DUAL_PROFIT_RATE: float = 0.50
SINGLE_TARGET: float = 2.50
PROFILE_PROFIT_TARGET: Dict[str, float] = {
    PROFILE_CONSERVATIVE: 2.50,
    PROFILE_MODERATE: 3.00,
    PROFILE_ELITE: 4.00,
}
ELITE_CRITICAL_TARGET: float = 5.00
PATTERN_HUNT_TARGET: float = 20.00      # Elite + double-pink alert only
PATTERN_HUNT_RATE: float = 0.10         # deliberately small stake

# Cautious override
CAUTIOUS_STAKE_RATE: float = 0.25

# Branch names
BRANCH_NONE = "none"
BRANCH_NET_RECOVERY = "net_loss_recovery"
BRANCH_HUNT_CEILING = "pink_hunt_ceiling"
BRANCH_LOSS_RECOVERY = "loss_recovery"
BRANCH_DUAL = "dual"
BRANCH_SINGLE = "single"

RECOVERY_BRANCHES = {BRANCH_NET_RECOVERY, BRANCH_HUNT_CEILING, BRANCH_LOSS_RECOVERY}


# ============================================================
# TYPES
# ============================================================


@dataclass(frozen=True)
class WagerLeg:
    amount: float = 0.0
    target: float = 0.0   # 0 = disabled leg

    def __post_init__(self) -> None:
        a = float(self.amount)
        t = float(self.target)
        if not math.isfinite(a) or a < 0:
            raise ValueError(f"Leg amount must be finite and >= 0, got {self.amount!r}")
        if not math.isfinite(t) or (a > 0 and t < 1.0):
            raise ValueError(f"Active leg target must be >= 1.00, got {self.target!r}")
        object.__setattr__(self, "amount", a)
        object.__setattr__(self, "target", t)

    @property
    def active(self) -> bool:
        return self.amount > 0

    def to_dict(self) -> Dict[str, float]:
        return {"amount": self.amount, "target": self.target}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WagerLeg":
        if not isinstance(data, dict):
            return cls()
        return cls(amount=float(data.get("amount", 0.0) or 0.0), target=float(data.get("target", 0.0) or 0.0))


ZERO_LEG = WagerLeg()


@dataclass(frozen=True)
class WagerPlan:
    safety: WagerLeg = ZERO_LEG
    profit: WagerLeg = ZERO_LEG
    branch: str = BRANCH_NONE
    reason: str = ""
    cautious: bool = False

    @property
    def legs(self) -> Tuple[WagerLeg, WagerLeg]:
        return (self.safety, self.profit)

    @property
    def is_empty(self) -> bool:
        return not self.safety.active and not self.profit.active

    @property
    def total_stake(self) -> float:
        return round(sum(leg.amount for leg in self.legs if leg.active), 2)

    @property
    def targets_pink(self) -> bool:
        return any(leg.active and leg.target >= PINK_MULTIPLIER for leg in self.legs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "safety": self.safety.to_dict(),
            "profit": self.profit.to_dict(),
            "branch": self.branch,
            "reason": self.reason,
            "cautious": self.cautious,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WagerPlan":
        if not isinstance(data, dict):
            return EMPTY_PLAN
        return cls(
            safety=WagerLeg.from_dict(data.get("safety")),
            profit=WagerLeg.from_dict(data.get("profit")),
            branch=str(data.get("branch", BRANCH_NONE) or BRANCH_NONE),
            reason=str(data.get("reason", "") or ""),
            cautious=bool(data.get("cautious", False)),
        )


EMPTY_PLAN = WagerPlan()


@dataclass(frozen=True)
class LegResult:
    amount: float
    target: float
    won: bool
    profit: float

    def to_dict(self) -> Dict[str, Any]:
        return {"amount": self.amount, "target": self.target, "won": self.won, "profit": self.profit}


# ============================================================
# MONEY HELPERS
# ============================================================


def _safe_amount(amount_to_win: float, target: float) -> float:
    """
    Stake that wins `amount_to_win` at `target`.

    A non-positive or non-finite edge (target - 1) falls back to the
    SAFE_RECOVERY_TARGET edge; the result is always clamped and finite.
    """
    edge = target - 1.0
    if not math.isfinite(edge) or edge <= 0:
        edge = SAFE_RECOVERY_TARGET - 1.0
    return clamp_bet(amount_to_win / edge)


def _leg(amount: float, target: float) -> WagerLeg:
    if amount <= 0:
        return ZERO_LEG
    return WagerLeg(amount=clamp_bet(amount), target=target)


def should_bet(report: Optional[ConfidenceReport]) -> bool:
    return bool(report) and report.final_score >= BETTING_THRESHOLD and report.dominant is not None


def is_pink_hunt(p: WagerPlan) -> bool:
    """Profit leg at a pink target, or a lone safety leg at one."""
    if p.profit.active:
        return p.profit.target >= PINK_MULTIPLIER
    return p.safety.active and p.safety.target >= PINK_MULTIPLIER


def settlement_profit(p: WagerPlan, multiplier: float) -> Tuple[float, List[LegResult]]:
    """Net profit of a plan against an observed multiplier (rounded to cents)."""
    results: List[LegResult] = []
    total = 0.0
    for leg in p.legs:
        if not leg.active:
            continue
        won = multiplier >= leg.target
        leg_profit = round(leg.amount * (leg.target - 1.0), 2) if won else -leg.amount
        total += leg_profit
        results.append(LegResult(amount=leg.amount, target=leg.target, won=won, profit=leg_profit))
    return round(total, 2), results


# ============================================================
# PLAN GENERATION
# ============================================================


def plan(
    report: ConfidenceReport,
    bankroll: BankrollState,
    dominant: Optional[TacticScore] = None,
    signals: Optional[SignalSnapshot] = None,
    *,
    cautious: bool = False,
) -> WagerPlan:
    """
    Concrete two-leg plan for the current snapshot.

    Pure: the caller decides whether a plan is warranted (should_bet + lifecycle).
    """
    signals = signals or SignalSnapshot()
    dominant = dominant or report.dominant_tactic
    base_bet = bankroll.base_bet

    # ---- 1. Net loss recovery ----
    if bankroll.in_net_loss:
        amount_to_win = bankroll.deficit + base_bet * RECOVERY_MARGIN_RATE
        stake = _safe_amount(amount_to_win, SAFE_RECOVERY_TARGET)
        # never stake more than the balance on hand
        safety = WagerLeg(clamp_bet(min(stake, max(MIN_BET, bankroll.current_bankroll))), SAFE_RECOVERY_TARGET)
        profit = _leg(base_bet, RECOVERY_PROFIT_TARGET) if bankroll.dual_strategy else ZERO_LEG
        result = WagerPlan(
            safety=safety,
            profit=profit,
            branch=BRANCH_NET_RECOVERY,
            reason=f"Recovery run to get back to green (deficit R$ {bankroll.deficit:.2f}).",
        )
        return _apply_cautious(result, dominant) if cautious else result

    # ---- 2. Pink-hunt ceiling ----
    if bankroll.pink_hunt_ceiling_reached:
        result = WagerPlan(
            safety=WagerLeg(clamp_bet(max(MIN_BET, base_bet)), HUNT_PAUSE_TARGET),
            profit=ZERO_LEG,
            branch=BRANCH_HUNT_CEILING,
            reason=(
                f"Pink hunt paused after {bankroll.pink_hunt_consecutive_losses} losses. "
                "Focus on recovering the loss."
            ),
        )
        return _apply_cautious(result, dominant) if cautious else result

    # ---- 3. Loss-recovery run ----
    loss_total = round(sum(bankroll.recent_losses), 2)
    # a losing pink-hunt run is governed by the ceiling above, not by this branch
    hunting_run = bankroll.pink_hunt_max_losses > 0 and bankroll.pink_hunt_consecutive_losses > 0
    if bankroll.consecutive_losses > 0 and loss_total > 0 and not hunting_run:
        amount_to_win = loss_total + base_bet * RECOVERY_MARGIN_RATE
        stake = _safe_amount(amount_to_win, LOSS_RECOVERY_TARGET)
        cap = bankroll.current_bankroll * RECOVERY_BANKROLL_CAP
        stake = clamp_bet(min(stake, cap))
        result = WagerPlan(
            safety=WagerLeg(stake, LOSS_RECOVERY_TARGET),
            profit=ZERO_LEG,
            branch=BRANCH_LOSS_RECOVERY,
            reason=f"Recovery (loss #{bankroll.consecutive_losses}) | target {LOSS_RECOVERY_TARGET:.2f}x",
        )
        result = _apply_defensive_tag(result, report)
        return _apply_cautious(result, dominant) if cautious else result

    # ---- 4. Normal profit-seeking ----
    if bankroll.dual_strategy:
        profit_target = PROFILE_PROFIT_TARGET.get(bankroll.profile_mode, PROFILE_PROFIT_TARGET[PROFILE_MODERATE])
        profit_amount = base_bet * DUAL_PROFIT_RATE
        if bankroll.profile_mode == PROFILE_CONSERVATIVE:
            reason = f"Conservative hunt (target {profit_target:.2f}x)"
        elif bankroll.profile_mode == PROFILE_ELITE:
            if signals.pink_level == PINK_CRITICAL:
                profit_target = ELITE_CRITICAL_TARGET
                reason = f"Elite hunt under CRITICAL pressure (target {profit_target:.2f}x)"
            else:
                reason = f"Elite hunt (target {profit_target:.2f}x)"
        else:
            reason = f"Moderate hunt (target {profit_target:.2f}x)"

        if bankroll.profile_mode == PROFILE_ELITE and signals.patterns.double_pink:
            profit_amount = max(MIN_BET, base_bet * PATTERN_HUNT_RATE)
            profit_target = PATTERN_HUNT_TARGET
            reason = f"Double pink pattern hunt with a controlled stake (target {profit_target:.2f}x)"

        result = WagerPlan(
            safety=WagerLeg(clamp_bet(base_bet), DUAL_SAFETY_TARGET),
            profit=_leg(profit_amount, profit_target),
            branch=BRANCH_DUAL,
            reason=reason,
        )
    else:
        result = WagerPlan(
            safety=WagerLeg(clamp_bet(base_bet), SINGLE_TARGET),
            profit=ZERO_LEG,
            branch=BRANCH_SINGLE,
            reason=f"Single entry (target {SINGLE_TARGET:.2f}x)",
        )

    result = _apply_defensive_tag(result, report)
    return _apply_cautious(result, dominant) if cautious else result


def _apply_defensive_tag(p: WagerPlan, report: ConfidenceReport) -> WagerPlan:
    if report.defensive:
        return replace(p, reason=f"[DEFENSIVE] {p.reason}")
    return p


def _apply_cautious(p: WagerPlan, dominant: Optional[TacticScore]) -> WagerPlan:
    """Post-spike caution: quarter stake on the safety leg, no profit leg."""
    stake = clamp_bet(max(MIN_BET, p.safety.amount * CAUTIOUS_STAKE_RATE))
    why = dominant.reasoning if dominant else p.reason
    return replace(
        p,
        safety=WagerLeg(stake, p.safety.target),
        profit=ZERO_LEG,
        reason=f"Safety entry (post-spike): {why}",
        cautious=True,
    )


def forward_plans(
    report: ConfidenceReport,
    bankroll: BankrollState,
    current: WagerPlan,
    signals: Optional[SignalSnapshot] = None,
) -> Tuple[WagerPlan, WagerPlan]:
    """
    (if_win, if_loss) previews of the next plan.

    Runs the same branch logic on the bankroll that `current` would leave
    behind if every active leg won / lost, using the same projection the
    Ledger uses. An empty current plan settles nothing, so both previews
    start from today's bankroll.
    """
    if current.is_empty:
        win_state = loss_state = bankroll
    else:
        pink = is_pink_hunt(current)
        win_profit = round(sum(round(leg.amount * (leg.target - 1.0), 2) for leg in current.legs if leg.active), 2)
        loss_profit = -current.total_stake
        win_state = project(bankroll, win_profit, pink)
        loss_state = project(bankroll, loss_profit, pink)

    dominant = report.dominant_tactic
    return (
        plan(report, win_state, dominant, signals),
        plan(report, loss_state, dominant, signals),
    )
