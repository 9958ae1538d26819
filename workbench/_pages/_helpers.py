"""_helpers.py

Utility helpers shared by multiple Streamlit pages.

The module groups three kinds of helpers:

1. **Session wiring** – `get_session` builds the per-browser-session
   :class:`~workbench.services.session.SessionContext` (client, scheduler,
   cache, notifier) plus the controllers, once, inside
   ``st.session_state``.
2. **Event loop glue** – `pump_timers` fires due quote/poll timers on each
   rerun and `refresh_interval_ms` tells ``st_autorefresh`` how soon the
   next rerun must happen; `flush_notifications` turns queued messages
   into toasts.
3. **Formatting helpers** – timestamps in the local zone, USD amounts,
   relative dates, trailing-zero trimming.
"""

from __future__ import annotations

# Third-party -----------------------------------------------------------------
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from zoneinfo import ZoneInfo

import streamlit as st

# Project ---------------------------------------------------------------------
from workbench.config import settings
from workbench.services import (
    OrderSubmissionController,
    QuoteManager,
    SessionContext,
    WithdrawalController,
    build_session,
    default_client,
)
from workbench.services.ledger import LedgerPage

# -----------------------------------------------------------------------------
# 0) Navigation
# -----------------------------------------------------------------------------
def update_page(page: None | str = None) -> None:
    """Update the ?page=... query-parameter in the URL.
    Parameters
    ----------
    page : None | str
        The new page value to set or None to reset to the default.
    """
    # This overwrites/sets the ?page=... query-param
    if page is None:
        st.query_params.update(page=st.session_state.sidebar_page)
    else:
        st.query_params.update(page=page)

# -----------------------------------------------------------------------------
# 1) Session wiring
# -----------------------------------------------------------------------------

def get_session() -> SessionContext:
    """Return this browser session's context, creating it on first use."""
    if "workbench" not in st.session_state:
        cfg = settings()
        session = build_session(
            default_client(),
            profile_id=cfg["PROFILE_ID"],
            transfers_limit=cfg["TRANSFERS_LIMIT"],
        )
        quotes = QuoteManager(session)
        st.session_state["workbench"] = session
        st.session_state["quotes"] = quotes
        st.session_state["orders_ctl"] = OrderSubmissionController(session, quotes)
        st.session_state["withdrawals_ctl"] = WithdrawalController(session)
        st.session_state["ledger_page"] = LedgerPage()
    return st.session_state["workbench"]


def get_quotes() -> QuoteManager:
    get_session()
    return st.session_state["quotes"]


def get_orders_controller() -> OrderSubmissionController:
    get_session()
    return st.session_state["orders_ctl"]


def get_withdrawals_controller() -> WithdrawalController:
    get_session()
    return st.session_state["withdrawals_ctl"]


def get_ledger_page() -> LedgerPage:
    get_session()
    return st.session_state["ledger_page"]

# -----------------------------------------------------------------------------
# 2) Event loop glue
# -----------------------------------------------------------------------------

def pump_timers(session: SessionContext) -> int:
    """Fire every due timer of *session*; returns how many ran."""
    return session.scheduler.run_due()


def refresh_interval_ms(session: SessionContext) -> int:
    """Milliseconds until the next rerun is needed.

    While any timer is live the page reruns at the shortest timer interval,
    otherwise at the idle ``REFRESH_SECONDS`` cadence.
    """
    intervals = [task.interval_ms for task in session.scheduler.active]
    if intervals:
        return min(intervals)
    return settings()["REFRESH_SECONDS"] * 1000


_TOAST_ICONS = {"success": "✅", "info": "ℹ️", "warning": "⚠️", "error": "❌"}


def flush_notifications(session: SessionContext) -> None:
    for note in session.notifier.drain():
        st.toast(note.message, icon=_TOAST_ICONS.get(note.level))

# -----------------------------------------------------------------------------
# 3) Formatting helpers
# -----------------------------------------------------------------------------

LOCAL_TZ = ZoneInfo(settings()["LOCAL_TZ"])
TS_FMT = "%d/%m %H:%M:%S"  # Timestamp format for human-readable dates
ZERO_DISPLAY = "--"  # Default display for missing values


def convert_to_local_time(ts: datetime | None, fmt: str = TS_FMT) -> str:
    """Render a UTC datetime in the configured local zone (naive → UTC)."""
    if ts is None:
        return ZERO_DISPLAY
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(LOCAL_TZ).strftime(fmt)


def relative_date(ts: datetime, now: datetime | None = None) -> str:
    """``Just now`` / ``5m ago`` / ``3h ago`` / ``2d ago`` / local date."""
    now = now or datetime.now(timezone.utc)
    seconds = int((now - ts).total_seconds())
    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    if seconds < 7 * 86400:
        return f"{seconds // 86400}d ago"
    return convert_to_local_time(ts, "%Y-%m-%d")


def _remove_small_zeros(num_str: str) -> str:  # noqa: D401 – short desc fine
    """Strip redundant trailing zeros from a *decimal* string.

    Examples
    --------
    >>> _remove_small_zeros('1.230000')
    '1.23'
    >>> _remove_small_zeros('42.000')
    '42'
    """
    if "." not in num_str:
        return num_str
    return num_str.rstrip("0").rstrip(".")


def fmt_usd(value: Decimal | str | float | None) -> str:
    """``$32,500.00`` – or ``--`` when *value* is not a number."""
    if value is None:
        return ZERO_DISPLAY
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        return ZERO_DISPLAY
    return f"${number:,.2f}"
