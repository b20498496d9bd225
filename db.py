# db.py — persistence helpers for copilot_state + copilot_transactions + copilot_history + copilot_session_events
#
# Every helper is best-effort: failures are printed and swallowed so the
# dashboard keeps running on its in-memory SessionManager.
from __future__ import annotations

from typing import Any, Dict, List, Optional
import datetime as dt
import json  # jsonb can come back as a string

import time
import httpx

from supabase_client import get_supabase

STATE_TABLE = "copilot_state"
TRANSACTIONS_TABLE = "copilot_transactions"
HISTORY_TABLE = "copilot_history"
EVENTS_TABLE = "copilot_session_events"

HISTORY_KEEP = 500   # history rows kept per owner
EVENTS_KEEP = 50     # session-event rows kept per owner


def _sid(x: Any) -> str:
    """Safe id normalize (uuid.UUID -> str, None -> '')."""
    if x is None:
        return ""
    try:
        return str(x)
    except Exception:
        return ""


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def _execute_with_retry(q, *, tries: int = 3, base_sleep: float = 0.2):
    """
    Retry wrapper for transient PostgREST/httpx read/connect hiccups.
    q must be a PostgREST query object that supports .execute().
    """
    last_err = None
    for attempt in range(tries):
        try:
            return q.execute()
        except (httpx.ReadError, httpx.ConnectError, httpx.TimeoutException) as e:
            last_err = e
            time.sleep(base_sleep * (2 ** attempt))  # 0.2, 0.4, 0.8
    raise last_err


def _json_dict(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return {}
    return raw if isinstance(raw, dict) else {}


def _prune(sb, table: str, owner_id: str, keep: int, order_col: str = "ts") -> None:
    """Keep only the newest `keep` rows for an owner."""
    while True:
        old = _execute_with_retry(
            sb.table(table)
            .select("id")
            .eq("owner_id", owner_id)
            .order(order_col, desc=True)
            .offset(keep)
            .limit(500)
        )
        rows = old.data or []
        old_ids = [row["id"] for row in rows if "id" in row]
        if not old_ids:
            break
        sb.table(table).delete().in_("id", old_ids).execute()
        if len(rows) < 500:
            break


# ---------- SESSION STATE ----------

def save_session_state(owner_id: str, state: Dict[str, Any]) -> bool:
    """Upsert SessionManager.export_state() for this owner."""
    owner_id = _sid(owner_id)
    if not owner_id or not isinstance(state, dict):
        print(f"[save_session_state] invalid args owner_id={owner_id} type(state)={type(state)}")
        return False

    bankroll = (state.get("ledger") or {}).get("bankroll") or {}
    payload = {
        "owner_id": owner_id,
        "state_json": state,
        "status": str(state.get("status") or ""),
        "is_active": bool(bankroll.get("is_active", False)),
        "initial_bankroll": float(bankroll.get("initial_bankroll", 0.0) or 0.0),
        "current_bankroll": float(bankroll.get("current_bankroll", 0.0) or 0.0),
        "profile_mode": str(bankroll.get("profile_mode") or ""),
        "updated_at": _now_iso(),
    }

    try:
        sb = get_supabase()
        _execute_with_retry(sb.table(STATE_TABLE).upsert(payload, on_conflict="owner_id"))
        return True
    except Exception as e:
        print(f"[save_session_state] error while saving owner_id={owner_id}: {e!r}")
        return False


def load_session_state(owner_id: str) -> Optional[Dict[str, Any]]:
    """The stored export_state() dict, or None when nothing is stored / on error."""
    owner_id = _sid(owner_id)
    if not owner_id:
        return None

    try:
        sb = get_supabase()
        res = _execute_with_retry(
            sb.table(STATE_TABLE)
            .select("state_json,updated_at")
            .eq("owner_id", owner_id)
            .limit(1)
        )
    except Exception as e:
        print(f"[load_session_state] error for owner_id={owner_id}: {e!r}")
        return None

    rows = getattr(res, "data", None) or []
    if not rows:
        return None
    state = _json_dict((rows[0] or {}).get("state_json"))
    if not state:
        print("[load_session_state] failed to decode state_json; ignoring stored row.")
        return None
    return state


# ---------- TRANSACTIONS ----------

def log_transaction(owner_id: str, tx: Dict[str, Any], session_id: Optional[str] = None) -> None:
    """Append one ledger Transaction (Transaction.to_dict())."""
    owner_id = _sid(owner_id)
    if not owner_id or not isinstance(tx, dict):
        return

    payload = {
        "owner_id": owner_id,
        "session_id": _sid(session_id) or None,
        "tx_id": _sid(tx.get("id")),
        "type": str(tx.get("type") or ""),
        "amount": float(tx.get("amount", 0.0) or 0.0),
        "resulting_balance": float(tx.get("resulting_balance", 0.0) or 0.0),
        "note": str(tx.get("note") or ""),
        "ts": str(tx.get("timestamp") or _now_iso()),
    }

    try:
        sb = get_supabase()
        _execute_with_retry(sb.table(TRANSACTIONS_TABLE).insert(payload))
    except Exception as e:
        print(f"[log_transaction] insert failed for owner_id={owner_id}: {e!r}")


def fetch_transactions(owner_id: str, limit: int = 100) -> List[Dict[str, Any]]:
    owner_id = _sid(owner_id)
    if not owner_id:
        return []
    try:
        sb = get_supabase()
        res = _execute_with_retry(
            sb.table(TRANSACTIONS_TABLE)
            .select("*")
            .eq("owner_id", owner_id)
            .order("ts", desc=True)
            .limit(limit)
        )
    except Exception as e:
        print(f"[fetch_transactions] error for owner_id={owner_id}: {e!r}")
        return []
    return list(res.data or [])


# ---------- HISTORY (settled rounds) ----------

def log_history_record(owner_id: str, record: Dict[str, Any]) -> None:
    """Append one HistoryRecord.to_dict() and prune to the newest HISTORY_KEEP rows."""
    owner_id = _sid(owner_id)
    if not owner_id or not isinstance(record, dict):
        return

    result_round = record.get("result_round") or {}
    payload = {
        "owner_id": owner_id,
        "multiplier": float(result_round.get("multiplier", 0.0) or 0.0),
        "round_date": str(result_round.get("date") or ""),
        "round_time": str(result_round.get("time") or ""),
        "profit": float(record.get("profit", 0.0) or 0.0),
        "confidence_score": float(record.get("confidence_score", 0.0) or 0.0),
        "reasoning": str(record.get("reasoning") or ""),
        "record_json": record,
        "ts": str(record.get("timestamp") or _now_iso()),
    }

    try:
        sb = get_supabase()
        _execute_with_retry(sb.table(HISTORY_TABLE).insert(payload))
    except Exception as e:
        print(f"[log_history_record] insert failed for owner_id={owner_id}: {e!r}")
        return

    try:
        _prune(sb, HISTORY_TABLE, owner_id, HISTORY_KEEP)
    except Exception as e:
        print(f"[log_history_record] prune failed for owner_id={owner_id}: {e!r}")


def fetch_history(owner_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    """Most recent settled rounds, newest first."""
    owner_id = _sid(owner_id)
    if not owner_id:
        return []
    try:
        sb = get_supabase()
        res = _execute_with_retry(
            sb.table(HISTORY_TABLE)
            .select("*")
            .eq("owner_id", owner_id)
            .order("ts", desc=True)
            .limit(limit)
        )
    except Exception as e:
        print(f"[fetch_history] error for owner_id={owner_id}: {e!r}")
        return []

    out: List[Dict[str, Any]] = []
    for row in res.data or []:
        row = dict(row)
        row["record_json"] = _json_dict(row.get("record_json"))
        out.append(row)
    return out


# ---------- SESSION EVENTS ----------

def log_session_event(owner_id: str, kind: str, title: str, body: str, ts: Optional[str] = None) -> None:
    """
    Append one major event (session end, profile change) and keep ~EVENTS_KEEP per owner.

    kind ∈ { "session_win", "session_loss", "profile_change", "funds" }
    """
    owner_id = _sid(owner_id)
    if not owner_id:
        return

    payload = {
        "owner_id": owner_id,
        "kind": kind,
        "title": title,
        "body": body,
        "ts": ts or _now_iso(),
    }

    try:
        sb = get_supabase()
        _execute_with_retry(sb.table(EVENTS_TABLE).insert(payload))
    except Exception as e:
        print(f"[log_session_event] insert failed for owner_id={owner_id}: {e!r}")
        return

    try:
        _prune(sb, EVENTS_TABLE, owner_id, EVENTS_KEEP)
    except Exception as e:
        print(f"[log_session_event] prune failed for owner_id={owner_id}: {e!r}")


def log_session_end(owner_id: str, event: Dict[str, Any], bankroll: Optional[Dict[str, Any]] = None) -> None:
    """SessionEndEvent.to_dict() → one session_win / session_loss event row."""
    if not isinstance(event, dict):
        return
    kind = "session_win" if event.get("type") == "win" else "session_loss"
    pl = float(event.get("profit_or_loss", 0.0) or 0.0)
    title = "Stop-win reached" if kind == "session_win" else "Stop-loss reached"

    body = f"Session P/L R$ {pl:+.2f}."
    if bankroll:
        body += f" Balance R$ {float(bankroll.get('current_bankroll', 0.0) or 0.0):.2f}."
    hint = event.get("next_best_time_suggestion")
    if hint:
        body += f" Next best time: {hint}."

    log_session_event(owner_id, kind, title, body)


def fetch_session_events(owner_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    """Most recent events, newest first."""
    owner_id = _sid(owner_id)
    if not owner_id:
        return []
    try:
        sb = get_supabase()
        res = _execute_with_retry(
            sb.table(EVENTS_TABLE)
            .select("*")
            .eq("owner_id", owner_id)
            .order("ts", desc=True)
            .limit(limit)
        )
    except Exception as e:
        print(f"[fetch_session_events] error for owner_id={owner_id}: {e!r}")
        return []
    return list(res.data or [])


def persist_round_output(owner_id: str, output: Any, state: Dict[str, Any]) -> None:
    """
    Write everything one on_round() step produced: the booked transaction,
    the history record, session events, then the state snapshot.
    """
    settlement = getattr(output, "last_result", None)
    if settlement is not None and settlement.transaction is not None:
        log_transaction(owner_id, settlement.transaction.to_dict())

    record = getattr(output, "history_record", None)
    if record is not None:
        log_history_record(owner_id, record.to_dict())

    for event in getattr(output, "events", ()) or ():
        data = event.to_dict()
        if "type" in data:
            log_session_end(owner_id, data, state.get("ledger", {}).get("bankroll"))
        else:
            log_session_event(owner_id, "profile_change", "Profile adjusted", data.get("message", ""))

    save_session_state(owner_id, state)
