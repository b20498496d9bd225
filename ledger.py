# ledger.py — bankroll snapshot + append-only transaction ledger
#
# The Ledger is the ONLY writer of BankrollState. Everybody else (scoring,
# planning, the dashboard) receives a frozen snapshot and proposes changes
# through Ledger methods.
#
# Invariant: current_bankroll == initial_bankroll + Σ(signed transaction amounts)
from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple
import datetime as dt
import math
import uuid

# ----------------------------- Money limits -----------------------------

MIN_BET: float = 1.00
MAX_BET: float = 700.00

# ----------------------------- Profiles -----------------------------

PROFILE_CONSERVATIVE = "Conservador"
PROFILE_MODERATE = "Moderado"
PROFILE_ELITE = "Elite"
PROFILES = (PROFILE_CONSERVATIVE, PROFILE_MODERATE, PROFILE_ELITE)

# "ia" management: base bet as a share of the live bankroll
IA_BASE_BET_RATE: Dict[str, float] = {
    PROFILE_CONSERVATIVE: 0.01,
    PROFILE_MODERATE: 0.02,
    PROFILE_ELITE: 0.03,
}

MANAGEMENT_MANUAL = "manual"
MANAGEMENT_IA = "ia"
MANAGEMENT_TYPES = (MANAGEMENT_MANUAL, MANAGEMENT_IA)

# Which balance the recovery branches compare against
BASELINE_INITIAL = "initial"     # session's initial bankroll
BASELINE_ADJUSTED = "adjusted"   # initial bankroll + funds added mid-session
BASELINE_MODES = (BASELINE_INITIAL, BASELINE_ADJUSTED)

# ----------------------------- Transactions -----------------------------

TX_WIN = "Win"
TX_LOSS = "Loss"
TX_CORRECTION = "Correction"
TX_START = "Start"
TX_TYPES = (TX_WIN, TX_LOSS, TX_CORRECTION, TX_START)

_BALANCE_TOLERANCE = 0.005


class LedgerIntegrityError(RuntimeError):
    pass


def clamp_bet(amount: float) -> float:
    """Clamp to [MIN_BET, MAX_BET] and round to cents. Non-finite input → MIN_BET."""
    try:
        a = float(amount)
    except (TypeError, ValueError):
        return MIN_BET
    if not math.isfinite(a):
        return MIN_BET
    return round(max(MIN_BET, min(MAX_BET, a)), 2)


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


@dataclass(frozen=True)
class Transaction:
    id: str
    type: str
    amount: float
    timestamp: str
    resulting_balance: float
    note: str = ""

    @property
    def signed_amount(self) -> float:
        if self.type == TX_WIN:
            return self.amount
        if self.type == TX_LOSS:
            return -self.amount
        if self.type == TX_CORRECTION:
            return self.amount
        return 0.0  # Start only records the opening balance

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "amount": self.amount,
            "timestamp": self.timestamp,
            "resulting_balance": self.resulting_balance,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        tx_type = str(data.get("type", ""))
        if tx_type not in TX_TYPES:
            raise ValueError(f"Unknown transaction type: {tx_type!r}")
        return cls(
            id=str(data.get("id") or uuid.uuid4()),
            type=tx_type,
            amount=float(data.get("amount", 0.0)),
            timestamp=str(data.get("timestamp") or _now_iso()),
            resulting_balance=float(data.get("resulting_balance", 0.0)),
            note=str(data.get("note", "") or ""),
        )


# ----------------------------- Bankroll snapshot -----------------------------


@dataclass(frozen=True)
class BankrollState:
    """Read-only view of the session bankroll. Replace, never mutate."""
    initial_bankroll: float = 100.0
    current_bankroll: float = 100.0
    stop_win_pct: float = 20.0
    stop_loss_pct: float = 15.0
    base_bet: float = 1.0
    base_bet_unit: float = 1.0
    consecutive_losses: int = 0
    recent_losses: Tuple[float, ...] = ()
    pink_hunt_consecutive_losses: int = 0
    pink_hunt_max_losses: int = 3
    tactic_weights: Mapping[str, float] = field(default_factory=dict)
    profile_mode: str = PROFILE_MODERATE
    is_active: bool = False
    dual_strategy: bool = False
    management_type: str = MANAGEMENT_MANUAL
    on_win_increase: float = 0.0
    on_loss_increase: float = 0.0
    corrections_total: float = 0.0
    baseline_mode: str = BASELINE_INITIAL

    def __post_init__(self) -> None:
        if self.initial_bankroll <= 0:
            raise ValueError(f"initial_bankroll must be positive, got {self.initial_bankroll!r}")
        if self.stop_win_pct < 0 or self.stop_loss_pct < 0:
            raise ValueError("stop_win_pct and stop_loss_pct must be >= 0")
        if self.profile_mode not in PROFILES:
            raise ValueError(f"Unknown profile: {self.profile_mode!r}")
        if self.management_type not in MANAGEMENT_TYPES:
            raise ValueError(f"Unknown management type: {self.management_type!r}")
        if self.baseline_mode not in BASELINE_MODES:
            raise ValueError(f"Unknown baseline mode: {self.baseline_mode!r}")
        object.__setattr__(self, "tactic_weights", MappingProxyType(dict(self.tactic_weights)))
        object.__setattr__(self, "recent_losses", tuple(float(x) for x in self.recent_losses))

    @property
    def baseline(self) -> float:
        """Balance the recovery branches try to get back to."""
        if self.baseline_mode == BASELINE_ADJUSTED:
            return self.initial_bankroll + self.corrections_total
        return self.initial_bankroll

    @property
    def deficit(self) -> float:
        return max(0.0, round(self.baseline - self.current_bankroll, 2))

    @property
    def in_net_loss(self) -> bool:
        return self.current_bankroll < self.baseline

    @property
    def stop_win_amount(self) -> float:
        return round(self.initial_bankroll * (1 + self.stop_win_pct / 100.0), 2)

    @property
    def stop_loss_amount(self) -> float:
        return round(self.initial_bankroll * (1 - self.stop_loss_pct / 100.0), 2)

    @property
    def session_profit(self) -> float:
        return round(self.current_bankroll - self.initial_bankroll, 2)

    @property
    def pink_hunt_ceiling_reached(self) -> bool:
        return self.pink_hunt_max_losses > 0 and self.pink_hunt_consecutive_losses >= self.pink_hunt_max_losses

    def export_state(self) -> Dict[str, Any]:
        return {
            "initial_bankroll": self.initial_bankroll,
            "current_bankroll": self.current_bankroll,
            "stop_win_pct": self.stop_win_pct,
            "stop_loss_pct": self.stop_loss_pct,
            "base_bet": self.base_bet,
            "base_bet_unit": self.base_bet_unit,
            "consecutive_losses": self.consecutive_losses,
            "recent_losses": list(self.recent_losses),
            "pink_hunt_consecutive_losses": self.pink_hunt_consecutive_losses,
            "pink_hunt_max_losses": self.pink_hunt_max_losses,
            "tactic_weights": dict(self.tactic_weights),
            "profile_mode": self.profile_mode,
            "is_active": self.is_active,
            "dual_strategy": self.dual_strategy,
            "management_type": self.management_type,
            "on_win_increase": self.on_win_increase,
            "on_loss_increase": self.on_loss_increase,
            "corrections_total": self.corrections_total,
            "baseline_mode": self.baseline_mode,
        }

    @classmethod
    def import_state(cls, data: Dict[str, Any]) -> "BankrollState":
        defaults = cls()

        def _f(key: str) -> float:
            try:
                return float(data.get(key, getattr(defaults, key)))
            except (TypeError, ValueError):
                return float(getattr(defaults, key))

        def _i(key: str) -> int:
            try:
                return int(data.get(key, getattr(defaults, key)))
            except (TypeError, ValueError):
                return int(getattr(defaults, key))

        weights = data.get("tactic_weights") or {}
        losses = data.get("recent_losses") or []
        return cls(
            initial_bankroll=_f("initial_bankroll"),
            current_bankroll=_f("current_bankroll"),
            stop_win_pct=_f("stop_win_pct"),
            stop_loss_pct=_f("stop_loss_pct"),
            base_bet=_f("base_bet"),
            base_bet_unit=_f("base_bet_unit"),
            consecutive_losses=_i("consecutive_losses"),
            recent_losses=tuple(float(x) for x in losses) if isinstance(losses, list) else (),
            pink_hunt_consecutive_losses=_i("pink_hunt_consecutive_losses"),
            pink_hunt_max_losses=_i("pink_hunt_max_losses"),
            tactic_weights={str(k): float(v) for k, v in weights.items()} if isinstance(weights, dict) else {},
            profile_mode=str(data.get("profile_mode", defaults.profile_mode)),
            is_active=bool(data.get("is_active", False)),
            dual_strategy=bool(data.get("dual_strategy", False)),
            management_type=str(data.get("management_type", defaults.management_type)),
            on_win_increase=_f("on_win_increase"),
            on_loss_increase=_f("on_loss_increase"),
            corrections_total=_f("corrections_total"),
            baseline_mode=str(data.get("baseline_mode", defaults.baseline_mode)),
        )


def resolve_base_bet(state: BankrollState, balance: float, consecutive_losses: int, won: bool) -> float:
    """
    Base bet for the next round.

    ia:     share of the live balance, by profile.
    manual: flat unit by default; on_win_increase grows it after a win,
            on_loss_increase compounds the unit per consecutive loss.
    """
    if state.management_type == MANAGEMENT_IA:
        return clamp_bet(balance * IA_BASE_BET_RATE.get(state.profile_mode, 0.02))

    if won:
        if state.consecutive_losses > 0:
            # a win closes the loss progression
            return clamp_bet(state.base_bet_unit)
        return clamp_bet(state.base_bet * (1 + state.on_win_increase / 100.0))

    factor = (1 + state.on_loss_increase / 100.0) ** max(0, consecutive_losses)
    return clamp_bet(state.base_bet_unit * factor)


def project(state: BankrollState, profit: float, was_pink_hunt: bool) -> BankrollState:
    """
    Next bankroll snapshot after a settled round with net `profit`.

    Pure: used by the Ledger for the real update AND by the planner for the
    win/loss previews, so both always agree.
    """
    profit = round(float(profit), 2)
    balance = round(state.current_bankroll + profit, 2)
    won = profit >= 0

    if won:
        consecutive = 0
        recent: Tuple[float, ...] = ()
        pink_losses = 0
    else:
        consecutive = state.consecutive_losses + 1
        recent = state.recent_losses + (abs(profit),)
        # any win or a non-hunt loss resets the hunt counter
        pink_losses = state.pink_hunt_consecutive_losses + 1 if was_pink_hunt else 0

    return replace(
        state,
        current_bankroll=balance,
        consecutive_losses=consecutive,
        recent_losses=recent,
        pink_hunt_consecutive_losses=pink_losses,
        base_bet=resolve_base_bet(state, balance, consecutive, won),
    )


# ----------------------------- Ledger -----------------------------

# Fields reconfigure() may touch; balance and streak fields only move via transactions
_CONFIG_FIELDS = {
    "stop_win_pct",
    "stop_loss_pct",
    "base_bet",
    "base_bet_unit",
    "pink_hunt_max_losses",
    "tactic_weights",
    "profile_mode",
    "dual_strategy",
    "management_type",
    "on_win_increase",
    "on_loss_increase",
    "baseline_mode",
}


class Ledger:
    """Append-only transaction log + the live BankrollState it reconciles to."""

    def __init__(self, state: Optional[BankrollState] = None) -> None:
        self._state: BankrollState = state or BankrollState()
        self._transactions: List[Transaction] = []

    # ---- read side ----
    @property
    def state(self) -> BankrollState:
        return self._state

    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        return tuple(self._transactions)

    @property
    def balance(self) -> float:
        return self._state.current_bankroll

    def replay(self) -> float:
        """Balance rebuilt from initial_bankroll + every transaction."""
        total = self._state.initial_bankroll
        for tx in self._transactions:
            total += tx.signed_amount
        return round(total, 2)

    def verify(self) -> None:
        replayed = self.replay()
        if abs(replayed - self._state.current_bankroll) > _BALANCE_TOLERANCE:
            raise LedgerIntegrityError(
                f"Ledger out of balance: replay={replayed:.2f} current={self._state.current_bankroll:.2f}"
            )

    # ---- write side (the only mutators) ----
    def start(self, state: BankrollState, note: str = "Session started") -> BankrollState:
        """Open a fresh session: new log with a single Start entry."""
        opening = round(float(state.initial_bankroll), 2)
        if state.management_type == MANAGEMENT_IA:
            base_bet = clamp_bet(opening * IA_BASE_BET_RATE.get(state.profile_mode, 0.02))
        else:
            base_bet = clamp_bet(state.base_bet_unit)
        self._state = replace(
            state,
            initial_bankroll=opening,
            current_bankroll=opening,
            base_bet=base_bet,
            consecutive_losses=0,
            recent_losses=(),
            pink_hunt_consecutive_losses=0,
            corrections_total=0.0,
            is_active=True,
        )
        self._transactions = [
            Transaction(
                id=str(uuid.uuid4()),
                type=TX_START,
                amount=opening,
                timestamp=_now_iso(),
                resulting_balance=opening,
                note=note,
            )
        ]
        return self._state

    def apply_settlement(self, profit: float, was_pink_hunt: bool, note: str = "") -> Transaction:
        """Book one settled round (net of both legs) as a single Win/Loss entry."""
        if not self._state.is_active:
            raise RuntimeError("Cannot settle a round on an inactive session.")
        profit = round(float(profit), 2)
        if not math.isfinite(profit):
            raise ValueError("Settlement profit must be finite.")

        next_state = project(self._state, profit, was_pink_hunt)
        tx = Transaction(
            id=str(uuid.uuid4()),
            type=TX_WIN if profit >= 0 else TX_LOSS,
            amount=abs(profit),
            timestamp=_now_iso(),
            resulting_balance=next_state.current_bankroll,
            note=note,
        )
        self._append(tx, next_state)
        return tx

    def apply_correction(self, amount: float, note: str = "Funds added to session") -> Transaction:
        """Manual balance correction (deposit > 0, withdrawal < 0)."""
        if not self._state.is_active:
            raise RuntimeError("Cannot correct the balance of an inactive session.")
        amount = round(float(amount), 2)
        if not math.isfinite(amount) or amount == 0:
            raise ValueError("Correction amount must be a non-zero finite value.")
        balance = round(self._state.current_bankroll + amount, 2)
        next_state = replace(
            self._state,
            current_bankroll=balance,
            corrections_total=round(self._state.corrections_total + amount, 2),
        )
        if next_state.management_type == MANAGEMENT_IA:
            next_state = replace(next_state, base_bet=resolve_base_bet(next_state, balance, next_state.consecutive_losses, True))
        tx = Transaction(
            id=str(uuid.uuid4()),
            type=TX_CORRECTION,
            amount=amount,
            timestamp=_now_iso(),
            resulting_balance=balance,
            note=note,
        )
        self._append(tx, next_state)
        return tx

    def reconfigure(self, **changes: Any) -> BankrollState:
        """Change session settings. Balance/streak fields are rejected."""
        bad = set(changes) - _CONFIG_FIELDS
        if bad:
            raise ValueError(f"Not configurable through reconfigure(): {sorted(bad)}")
        if "base_bet" in changes:
            changes["base_bet"] = clamp_bet(changes["base_bet"])
        if "base_bet_unit" in changes:
            changes["base_bet_unit"] = clamp_bet(changes["base_bet_unit"])
        next_state = replace(self._state, **changes)
        if next_state.management_type == MANAGEMENT_IA:
            next_state = replace(
                next_state,
                base_bet=clamp_bet(next_state.current_bankroll * IA_BASE_BET_RATE.get(next_state.profile_mode, 0.02)),
            )
        self._state = next_state
        return self._state

    def close(self) -> BankrollState:
        """Deactivate the session; the log is kept for reporting."""
        self._state = replace(self._state, is_active=False)
        return self._state

    def _append(self, tx: Transaction, next_state: BankrollState) -> None:
        self._transactions.append(tx)
        self._state = next_state
        self.verify()

    # ---- persistence ----
    def export_state(self) -> Dict[str, Any]:
        return {
            "bankroll": self._state.export_state(),
            "transactions": [tx.to_dict() for tx in self._transactions],
        }

    def import_state(self, data: Dict[str, Any]) -> None:
        if not isinstance(data, dict):
            return
        bankroll = data.get("bankroll")
        if isinstance(bankroll, dict):
            self._state = BankrollState.import_state(bankroll)
        raw = data.get("transactions") or []
        self._transactions = [Transaction.from_dict(t) for t in raw if isinstance(t, dict)]
        if self._transactions:
            self.verify()
