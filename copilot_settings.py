# copilot_settings.py — session defaults + env / Streamlit secrets overrides
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Optional
import os

from ledger import (
    BASELINE_INITIAL,
    BASELINE_MODES,
    MANAGEMENT_MANUAL,
    MANAGEMENT_TYPES,
    PROFILE_MODERATE,
    PROFILES,
    BankrollState,
    clamp_bet,
)
from tactics import SMART_PRESET_WEIGHTS, default_weights

ENV_PREFIX = "COPILOT_"

# ----------------------------- Tunables -----------------------------

MIN_HISTORY_DEFAULT = 25           # rounds needed before the engine evaluates anything
CAUTIOUS_AFTER_MULTIPLIER = 50.0   # previous round at/above this → post-spike caution
MAX_BLUE_STREAK_STOP = 3
PINK_HUNT_MAX_LOSSES = 3


@dataclass
class CopilotSettings:
    initial_bankroll: float = 100.0
    stop_win_pct: float = 20.0
    stop_loss_pct: float = 15.0
    base_bet: float = 1.0
    on_win_increase: float = 0.0
    on_loss_increase: float = 0.0
    max_blue_streak_stop: int = MAX_BLUE_STREAK_STOP
    pink_hunt_max_losses: int = PINK_HUNT_MAX_LOSSES
    profile_mode: str = PROFILE_MODERATE
    management_type: str = MANAGEMENT_MANUAL
    dual_strategy: bool = False
    smart_mode: bool = False
    cautious_mode: bool = True
    cautious_after_multiplier: float = CAUTIOUS_AFTER_MULTIPLIER
    min_history: int = MIN_HISTORY_DEFAULT
    baseline_mode: str = BASELINE_INITIAL
    tactic_weights: Dict[str, float] = field(default_factory=default_weights)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.initial_bankroll <= 0:
            raise ValueError("initial_bankroll must be positive")
        if self.stop_win_pct < 0 or self.stop_loss_pct < 0:
            raise ValueError("stop percentages must be >= 0")
        if self.min_history < 1:
            raise ValueError("min_history must be >= 1")
        if self.max_blue_streak_stop < 0 or self.pink_hunt_max_losses < 0:
            raise ValueError("streak limits must be >= 0")
        if self.cautious_after_multiplier < 1.0:
            raise ValueError("cautious_after_multiplier must be >= 1.00")
        if self.profile_mode not in PROFILES:
            raise ValueError(f"Unknown profile: {self.profile_mode!r}")
        if self.management_type not in MANAGEMENT_TYPES:
            raise ValueError(f"Unknown management type: {self.management_type!r}")
        if self.baseline_mode not in BASELINE_MODES:
            raise ValueError(f"Unknown baseline mode: {self.baseline_mode!r}")

    def effective_weights(self) -> Dict[str, float]:
        if self.smart_mode:
            merged = dict(self.tactic_weights)
            merged.update(SMART_PRESET_WEIGHTS)
            return merged
        return dict(self.tactic_weights)

    def to_bankroll_state(self, initial_bankroll: Optional[float] = None) -> BankrollState:
        """Fresh (inactive) bankroll for a new session; Ledger.start() activates it."""
        opening = float(initial_bankroll if initial_bankroll is not None else self.initial_bankroll)
        unit = clamp_bet(self.base_bet)
        return BankrollState(
            initial_bankroll=opening,
            current_bankroll=opening,
            stop_win_pct=float(self.stop_win_pct),
            stop_loss_pct=float(self.stop_loss_pct),
            base_bet=unit,
            base_bet_unit=unit,
            pink_hunt_max_losses=int(self.pink_hunt_max_losses),
            tactic_weights=self.effective_weights(),
            profile_mode=self.profile_mode,
            dual_strategy=bool(self.dual_strategy),
            management_type=self.management_type,
            on_win_increase=float(self.on_win_increase),
            on_loss_increase=float(self.on_loss_increase),
            baseline_mode=self.baseline_mode,
        )

    def updated(self, **changes: Any) -> "CopilotSettings":
        return replace(self, **changes)

    def export_state(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def import_state(cls, data: Dict[str, Any]) -> "CopilotSettings":
        if not isinstance(data, dict):
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        weights = kwargs.get("tactic_weights")
        if isinstance(weights, dict):
            merged = default_weights()
            merged.update({str(k): float(v) for k, v in weights.items()})
            kwargs["tactic_weights"] = merged
        else:
            kwargs.pop("tactic_weights", None)
        return cls(**kwargs)


# ----------------------------- Loading -----------------------------


def _get_secret(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v:
        return v
    try:
        import streamlit as st
        if name in st.secrets:
            v2 = st.secrets[name]
            if v2:
                return str(v2)
    except Exception:
        pass
    return default


def _coerce(raw: str, current: Any) -> Any:
    if isinstance(current, bool):
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw.strip()


def load_settings(base: Optional[CopilotSettings] = None) -> CopilotSettings:
    """
    Defaults, overridden by COPILOT_<FIELD> from the environment or st.secrets.

    e.g. COPILOT_STOP_WIN_PCT=50, COPILOT_DUAL_STRATEGY=true
    Malformed values are reported and skipped.
    """
    settings = base or CopilotSettings()
    changes: Dict[str, Any] = {}
    for f in fields(settings):
        if f.name == "tactic_weights":
            continue
        raw = _get_secret(ENV_PREFIX + f.name.upper())
        if raw is None:
            continue
        try:
            changes[f.name] = _coerce(raw, getattr(settings, f.name))
        except (TypeError, ValueError) as e:
            print(f"[load_settings] ignoring {ENV_PREFIX + f.name.upper()}={raw!r}: {e!r}")

    weights = dict(settings.tactic_weights)
    for name in list(weights):
        raw = _get_secret(f"{ENV_PREFIX}WEIGHT_{name.upper()}")
        if raw is None:
            continue
        try:
            weights[name] = max(0.0, min(100.0, float(raw)))
        except ValueError as e:
            print(f"[load_settings] ignoring weight {name}={raw!r}: {e!r}")
    changes["tactic_weights"] = weights

    return replace(settings, **changes)
