# supabase_client.py — per-session Supabase client for co-pilot persistence
from __future__ import annotations

import os
import streamlit as st

from supabase import create_client, Client

# ---- client options import (version-proof) ----
try:
    from supabase.lib.client_options import ClientOptions as _ClientOptions
except ImportError:
    _ClientOptions = None  # type: ignore


class SupabaseConfigError(RuntimeError):
    pass


def _get_secret(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    if v:
        return v
    try:
        if name in st.secrets:
            v2 = st.secrets[name]
            if v2:
                return str(v2)
    except Exception:
        pass
    return default


def _env() -> str:
    return (_get_secret("APP_ENV", "prod") or "prod").lower().strip()


def _cfg():
    env = _env()
    suffix = "DEV" if env == "dev" else "PROD"

    url = _get_secret(f"SUPABASE_URL_{suffix}") or _get_secret("SUPABASE_URL")
    key = (
        _get_secret(f"SUPABASE_ANON_KEY_{suffix}")
        or _get_secret("SUPABASE_ANON_KEY")
        or _get_secret("SUPABASE_SERVICE_ROLE_KEY")
    )

    if not url or not key:
        raise SupabaseConfigError(
            f"Missing Supabase credentials. Need SUPABASE_URL_{suffix} and SUPABASE_ANON_KEY_{suffix} for APP_ENV={env}."
        )
    return env, url, key


def supabase_configured() -> bool:
    """True when credentials exist for the active APP_ENV (the dashboard runs in-memory otherwise)."""
    try:
        _cfg()
        return True
    except SupabaseConfigError:
        return False


def _make_client(url: str, key: str) -> Client:
    """No SDK auth persistence: the co-pilot has no login flow."""
    if _ClientOptions is None:
        return create_client(url, key)

    opts = _ClientOptions(
        persist_session=False,
        auto_refresh_token=False,
    )
    return create_client(url, key, options=opts)  # type: ignore[arg-type]


def get_supabase() -> Client:
    """Per-Streamlit-session client."""
    if st.session_state.get("supabase_client") is not None:
        return st.session_state.supabase_client

    _, url, key = _cfg()
    st.session_state.supabase_client = _make_client(url, key)
    return st.session_state.supabase_client


def reset_supabase_client() -> None:
    """Force a new client on the next get_supabase() call (e.g. after changing APP_ENV)."""
    st.session_state.pop("supabase_client", None)
