# status_codes.py — lifecycle status names + classification only (NO state mutation)
from __future__ import annotations

from typing import Optional

__all__ = [
    "normalize_status",
    "is_terminal",
    "is_paused",
    "is_wagering",
    "status_label",
]

INACTIVE = "INACTIVE"
WAITING_FOR_DATA = "WAITING_FOR_DATA"
EVALUATING = "EVALUATING"
WAITING = "WAITING"
BETTING = "BETTING"
HUNTING = "HUNTING"
RECOVERING = "RECOVERING"
PAUSED_BLUE_STREAK = "PAUSED_BLUE_STREAK"
PAUSED_CRITICAL_RISK = "PAUSED_CRITICAL_RISK"
PAUSED_STRATEGIC = "PAUSED_STRATEGIC"
SESSION_WON = "SESSION_WON"
SESSION_LOST = "SESSION_LOST"

# Terminal until an explicit reset / new session
TERMINAL_STATUSES = {
    SESSION_WON,
    SESSION_LOST,
}

# No plan is issued while one of these is active; only one at a time
PAUSE_STATUSES = {
    PAUSED_CRITICAL_RISK,   # pause-risk signal at its most severe level
    PAUSED_BLUE_STREAK,     # blue streak >= max_blue_streak_stop
    PAUSED_STRATEGIC,       # market snapshot flags the market as paused
}

# A non-zero plan is on the table
WAGERING_STATUSES = {
    BETTING,
    HUNTING,
    RECOVERING,
}

# Labels used by the old dashboard (and still found in stored history rows)
STATUS_ALIASES = {
    "INATIVO": INACTIVE,
    "AGUARDANDO": WAITING,
    "APOSTANDO...": BETTING,
    "APOSTA CAUTELOSA": BETTING,
    "CAÇANDO ROSA...": HUNTING,
    "RECUPERANDO BANCA": RECOVERING,
    "RECUPERANDO (CAÇA)": RECOVERING,
    "PAUSA INTELIGENTE": PAUSED_BLUE_STREAK,
    "PAUSA ESTRATÉGICA": PAUSED_CRITICAL_RISK,
    "META ATINGIDA!": SESSION_WON,
    "LIMITE DE PERDA!": SESSION_LOST,
}

STATUS_LABELS = {
    INACTIVE: "Inactive",
    WAITING_FOR_DATA: "Waiting for data",
    EVALUATING: "Evaluating",
    WAITING: "Waiting for a clear signal",
    BETTING: "Betting",
    HUNTING: "Hunting pink",
    RECOVERING: "Recovering bankroll",
    PAUSED_BLUE_STREAK: "Paused (blue streak)",
    PAUSED_CRITICAL_RISK: "Paused (critical risk)",
    PAUSED_STRATEGIC: "Paused (market stalled)",
    SESSION_WON: "Stop-win reached",
    SESSION_LOST: "Stop-loss reached",
}


def normalize_status(status: Optional[str]) -> str:
    """Normalize a status string (including legacy labels) to its canonical form."""
    raw = str(status or "").strip()
    if raw in STATUS_ALIASES:
        return STATUS_ALIASES[raw]
    return raw.upper()


def is_terminal(status: Optional[str]) -> bool:
    return normalize_status(status) in TERMINAL_STATUSES


def is_paused(status: Optional[str]) -> bool:
    return normalize_status(status) in PAUSE_STATUSES


def is_wagering(status: Optional[str]) -> bool:
    return normalize_status(status) in WAGERING_STATUSES


def status_label(status: Optional[str]) -> str:
    s = normalize_status(status)
    return STATUS_LABELS.get(s, s.replace("_", " ").title())
