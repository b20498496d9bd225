# market_signals.py — round type + read-only signal snapshots supplied by the analyzers
#
# Nothing in here is computed by the co-pilot itself: market classification,
# pressure and pause-risk levels, pattern alerts and hot-minute tables all come
# from the analysis panels. This module only types them, normalizes their level
# names, and offers a few pure helpers over the round history.
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import math

# ----------------------------- Colors -----------------------------

PURPLE_MIN = 2.00   # first non-blue multiplier
PINK_MIN = 10.00    # pink round

BLUE = "blue"
PURPLE = "purple"
PINK = "pink"

# ----------------------------- Levels -----------------------------

# Market classification (hottest → coldest)
MARKET_VERY_HOT = "VERY_HOT"
MARKET_HOT = "HOT"
MARKET_WARM = "WARM"
MARKET_COLD = "COLD"
MARKET_STATES = (MARKET_VERY_HOT, MARKET_HOT, MARKET_WARM, MARKET_COLD)

# Pink pressure
PINK_LOW = "LOW"
PINK_BUILDING = "BUILDING"
PINK_IMMINENT = "IMMINENT"
PINK_CRITICAL = "CRITICAL"
PINK_LEVELS = (PINK_LOW, PINK_BUILDING, PINK_IMMINENT, PINK_CRITICAL)

# Purple pressure
PURPLE_LOW = "LOW"
PURPLE_BUILDING = "BUILDING"
PURPLE_HIGH = "HIGH"
PURPLE_CRITICAL = "CRITICAL"
PURPLE_LEVELS = (PURPLE_LOW, PURPLE_BUILDING, PURPLE_HIGH, PURPLE_CRITICAL)

# Pause risk
RISK_LOW = "LOW"
RISK_MEDIUM = "MEDIUM"
RISK_HIGH = "HIGH"
RISK_CRITICAL = "CRITICAL"
RISK_LEVELS = (RISK_LOW, RISK_MEDIUM, RISK_HIGH, RISK_CRITICAL)

# Analyzer output still uses the Portuguese labels of the old dashboard
LEVEL_ALIASES: Dict[str, Dict[str, str]] = {
    "market": {
        "MUITO_QUENTE": MARKET_VERY_HOT,
        "QUENTE": MARKET_HOT,
        "MORNO": MARKET_WARM,
        "FRIO": MARKET_COLD,
    },
    "pink": {
        "BAIXA": PINK_LOW,
        "CONSTRUINDO": PINK_BUILDING,
        "EMINENTE": PINK_IMMINENT,
        "CRÍTICA": PINK_CRITICAL,
        "CRITICA": PINK_CRITICAL,
    },
    "purple": {
        "BAIXA": PURPLE_LOW,
        "CONSTRUINDO": PURPLE_BUILDING,
        "ALTA": PURPLE_HIGH,
        "CRÍTICA": PURPLE_CRITICAL,
        "CRITICA": PURPLE_CRITICAL,
    },
    "risk": {
        "BAIXO": RISK_LOW,
        "MÉDIO": RISK_MEDIUM,
        "MEDIO": RISK_MEDIUM,
        "ALTO": RISK_HIGH,
        "CRÍTICO": RISK_CRITICAL,
        "CRITICO": RISK_CRITICAL,
    },
}

_VALID_LEVELS: Dict[str, Tuple[str, ...]] = {
    "market": MARKET_STATES,
    "pink": PINK_LEVELS,
    "purple": PURPLE_LEVELS,
    "risk": RISK_LEVELS,
}


def normalize_level(kind: str, value: Optional[str]) -> Optional[str]:
    """
    Map an analyzer level label to its canonical name.

    Returns None for missing/unknown labels so the consuming tactic abstains
    instead of guessing.
    """
    if value is None:
        return None
    raw = str(value).strip().upper()
    if not raw:
        return None
    raw = LEVEL_ALIASES.get(kind, {}).get(raw, raw)
    return raw if raw in _VALID_LEVELS.get(kind, ()) else None


# ----------------------------- Round -----------------------------


@dataclass(frozen=True)
class Round:
    """One observed outcome. Immutable; the stream is append-only."""
    multiplier: float
    date: str = ""
    time: str = ""

    def __post_init__(self) -> None:
        m = float(self.multiplier)
        if not math.isfinite(m) or m < 1.0:
            raise ValueError(f"Round multiplier must be a finite value >= 1.00, got {self.multiplier!r}")
        object.__setattr__(self, "multiplier", m)

    @property
    def color(self) -> str:
        return color_of(self.multiplier)

    @property
    def minute(self) -> Optional[int]:
        return minute_of(self.time)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.date, self.time)

    def to_dict(self) -> Dict[str, Any]:
        return {"multiplier": self.multiplier, "date": self.date, "time": self.time}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Round":
        return cls(
            multiplier=float(data.get("multiplier", 0.0)),
            date=str(data.get("date", "") or ""),
            time=str(data.get("time", "") or ""),
        )


def color_of(multiplier: float) -> str:
    if multiplier >= PINK_MIN:
        return PINK
    if multiplier >= PURPLE_MIN:
        return PURPLE
    return BLUE


def minute_of(value: Optional[str]) -> Optional[int]:
    """
    Extract the minute from "HH:MM", "HH:MM:SS" or a bare ":MM" / "MM" label.
    Hot-minute tables use the ":MM" form.
    """
    if value is None:
        return None
    parts = str(value).strip().split(":")
    # "HH:MM[:SS]" and ":MM" both carry the minute in the second slot
    candidate = parts[1] if len(parts) >= 2 else parts[0]
    try:
        minute = int(candidate)
    except (TypeError, ValueError):
        return None
    return minute if 0 <= minute <= 59 else None


def blue_streak(history: Sequence[Round]) -> int:
    """Number of trailing consecutive blue rounds."""
    streak = 0
    for r in reversed(history):
        if r.multiplier >= PURPLE_MIN:
            break
        streak += 1
    return streak


def plays_since_last_pink(history: Sequence[Round]) -> int:
    count = 0
    for r in reversed(history):
        if r.multiplier >= PINK_MIN:
            break
        count += 1
    return count


# ----------------------------- Snapshots -----------------------------


@dataclass(frozen=True)
class MarketSnapshot:
    state: Optional[str] = None
    percentage: float = 0.0
    is_market_paused: bool = False
    plays_since_last_pink: Optional[int] = None


@dataclass(frozen=True)
class PressureSnapshot:
    """Shared shape of pink pressure, purple pressure and pause-risk output."""
    level: Optional[str] = None
    percentage: float = 0.0
    factors: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "percentage": self.percentage, "factors": list(self.factors)}


@dataclass(frozen=True)
class PatternAlerts:
    double_pink: bool = False
    close_repetition: bool = False

    @property
    def any_alerting(self) -> bool:
        return self.double_pink or self.close_repetition

    @property
    def status_text(self) -> str:
        if self.double_pink:
            return "Double pink active"
        if self.close_repetition:
            return "Close repetition active"
        return "None"


@dataclass(frozen=True)
class HotSpots:
    hottest_pink_minutes: Tuple[str, ...] = ()
    hottest_houses: Tuple[int, ...] = ()

    def pink_minutes(self) -> List[int]:
        out: List[int] = []
        for label in self.hottest_pink_minutes:
            m = minute_of(label)
            if m is not None:
                out.append(m)
        return out


@dataclass(frozen=True)
class SignalSnapshot:
    """Everything the analyzers hand over for one round. Any part may be missing."""
    market: Optional[MarketSnapshot] = None
    pink_pressure: Optional[PressureSnapshot] = None
    purple_pressure: Optional[PressureSnapshot] = None
    pause_risk: Optional[PressureSnapshot] = None
    patterns: PatternAlerts = field(default_factory=PatternAlerts)
    hot_spots: HotSpots = field(default_factory=HotSpots)
    target_house: Optional[int] = None
    current_minute: Optional[int] = None

    @property
    def market_state(self) -> Optional[str]:
        return self.market.state if self.market else None

    @property
    def pink_level(self) -> Optional[str]:
        return self.pink_pressure.level if self.pink_pressure else None

    @property
    def purple_level(self) -> Optional[str]:
        return self.purple_pressure.level if self.purple_pressure else None

    @property
    def risk_level(self) -> Optional[str]:
        return self.pause_risk.level if self.pause_risk else None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SignalSnapshot":
        """
        Build a snapshot from the analyzers' dict output.

        Accepts both snake_case keys and the camelCase keys the analysis
        panels emit (marketState, pinkPressure, doublePink.isAlerting, ...).
        Unknown or malformed parts are dropped, never fatal.
        """
        if not isinstance(data, dict):
            return cls()

        market = _market_from(data.get("market") or data.get("summary"))
        pink = _pressure_from("pink", _first(data, "pink_pressure", "pinkPressure", "pinkPressureAnalysis"))
        purple = _pressure_from("purple", _first(data, "purple_pressure", "purplePressure", "purplePressureAnalysis"))
        risk = _pressure_from("risk", _first(data, "pause_risk", "pinkPauseRisk", "pauseRisk"))
        patterns = _patterns_from(_first(data, "patterns", "pinkPatternAnalysis", "pattern_alerts"))
        hot_spots = _hot_spots_from(_first(data, "hot_spots", "hotSpots"))

        target_house = _opt_int(_first(data, "target_house", "currentTargetHouse"))
        current_minute = _opt_int(_first(data, "current_minute", "currentMinute"))
        if current_minute is not None and not 0 <= current_minute <= 59:
            current_minute = None

        return cls(
            market=market,
            pink_pressure=pink,
            purple_pressure=purple,
            pause_risk=risk,
            patterns=patterns,
            hot_spots=hot_spots,
            target_house=target_house,
            current_minute=current_minute,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "market": None if self.market is None else {
                "state": self.market.state,
                "percentage": self.market.percentage,
                "is_market_paused": self.market.is_market_paused,
                "plays_since_last_pink": self.market.plays_since_last_pink,
            },
            "pink_pressure": None if self.pink_pressure is None else self.pink_pressure.to_dict(),
            "purple_pressure": None if self.purple_pressure is None else self.purple_pressure.to_dict(),
            "pause_risk": None if self.pause_risk is None else self.pause_risk.to_dict(),
            "patterns": {
                "double_pink": self.patterns.double_pink,
                "close_repetition": self.patterns.close_repetition,
            },
            "hot_spots": {
                "hottest_pink_minutes": list(self.hot_spots.hottest_pink_minutes),
                "hottest_houses": list(self.hot_spots.hottest_houses),
            },
            "target_house": self.target_house,
            "current_minute": self.current_minute,
        }


# ----------------------------- Parsing helpers -----------------------------


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in data and data[k] is not None:
            return data[k]
    return None


def _f(value: Any, default: float = 0.0) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    return out if math.isfinite(out) else default


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _alerting(value: Any) -> bool:
    if isinstance(value, dict):
        return bool(value.get("isAlerting", value.get("is_alerting", False)))
    return bool(value)


def _market_from(raw: Any) -> Optional[MarketSnapshot]:
    if not isinstance(raw, dict):
        return None
    state = normalize_level("market", _first(raw, "state", "marketState", "market_state"))
    return MarketSnapshot(
        state=state,
        percentage=_f(_first(raw, "percentage", "marketStatePercentage")),
        is_market_paused=bool(_first(raw, "is_market_paused", "isMarketPaused") or False),
        plays_since_last_pink=_opt_int(_first(raw, "plays_since_last_pink", "playsSinceLastPink")),
    )


def _pressure_from(kind: str, raw: Any) -> Optional[PressureSnapshot]:
    if not isinstance(raw, dict):
        return None
    factors = raw.get("factors") or []
    if not isinstance(factors, (list, tuple)):
        factors = []
    return PressureSnapshot(
        level=normalize_level(kind, raw.get("level")),
        percentage=_f(raw.get("percentage")),
        factors=tuple(str(x) for x in factors),
    )


def _patterns_from(raw: Any) -> PatternAlerts:
    if not isinstance(raw, dict):
        return PatternAlerts()
    return PatternAlerts(
        double_pink=_alerting(_first(raw, "double_pink", "doublePink")),
        close_repetition=_alerting(_first(raw, "close_repetition", "closeRepetition")),
    )


def _hot_spots_from(raw: Any) -> HotSpots:
    if not isinstance(raw, dict):
        return HotSpots()

    minutes_raw = _first(raw, "hottest_pink_minutes", "hottestPinkMinutes") or []
    minutes: List[str] = []
    if isinstance(minutes_raw, (list, tuple)):
        for m in minutes_raw:
            # {"minute": ":23", "count": 4} or a bare ":23"
            label = m.get("minute") if isinstance(m, dict) else m
            if label is not None and str(label).strip():
                minutes.append(str(label).strip())

    houses_raw = _first(raw, "hottest_houses", "hottestHousesAfterPink") or []
    houses: List[int] = []
    if isinstance(houses_raw, (list, tuple)):
        for h in houses_raw:
            v = _opt_int(h)
            if v is not None:
                houses.append(v)

    return HotSpots(hottest_pink_minutes=tuple(minutes), hottest_houses=tuple(houses))
