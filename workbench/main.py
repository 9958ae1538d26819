"""main.py

Streamlit **entry-point** for the custody workbench.

Responsibilities
----------------
* Define global page layout (wide view, expanded sidebar, title).
* Implement a simple **navigation radio** – Trade / Withdraw / History –
  mirrored in the ``?page=...`` query-param so links are shareable.
* Drive the session's timers: every rerun fires the due quote countdown
  and transfer polls, and ``st_autorefresh`` schedules the next rerun at
  the shortest live timer interval (or the idle *REFRESH_SECONDS*).
* Tear down the views that are no longer on screen so their timers stop.
"""

from __future__ import annotations

# -----------------------------------------------------------------------------
# Third-party imports
# -----------------------------------------------------------------------------
from datetime import datetime, timezone

import streamlit as st
from streamlit_autorefresh import st_autorefresh

# -----------------------------------------------------------------------------
# 0) Global page configuration – must run before any Streamlit call
# -----------------------------------------------------------------------------
from workbench import APP_ICON, APP_NAME

st.set_page_config(
    page_title=APP_NAME,
    page_icon=APP_ICON,
    layout="wide",
    initial_sidebar_state="expanded",
)

# -----------------------------------------------------------------------------
# Local imports (after Streamlit initialisation)
# -----------------------------------------------------------------------------
from workbench.config import settings
from workbench._pages import registry
from workbench._pages._helpers import (
    TS_FMT,
    convert_to_local_time,
    flush_notifications,
    get_quotes,
    get_session,
    get_withdrawals_controller,
    pump_timers,
    refresh_interval_ms,
    update_page,
)

PAGES = list(registry)

# -----------------------------------------------------------------------------
# 1) Sidebar – navigation radio
# -----------------------------------------------------------------------------
st.sidebar.title("Custody Workbench")

initial_page = st.query_params.get("page", PAGES[0])
if initial_page not in PAGES:
    initial_page = PAGES[0]

page = st.sidebar.radio(
    "Navigate",
    PAGES,
    index=PAGES.index(initial_page),
    key="sidebar_page",
    on_change=update_page,  # Update URL query-params when page changes
)

session = get_session()

# -----------------------------------------------------------------------------
# 2) Teardown of views that left the screen
# -----------------------------------------------------------------------------
previous = st.session_state.get("_last_page")
if previous != page:
    if previous == "Trade":
        get_quotes().close()
    if previous == "Withdraw":
        get_withdrawals_controller().close()
    if page == "Trade":
        get_quotes().reopen()
    if page == "Withdraw":
        get_withdrawals_controller().reopen()
    st.session_state["_last_page"] = page

# -----------------------------------------------------------------------------
# 3) Timers – fire what is due, then ask for the next rerun
# -----------------------------------------------------------------------------
pump_timers(session)
st_autorefresh(interval=refresh_interval_ms(session), key="refresh")

# -----------------------------------------------------------------------------
# 4) Routing
# -----------------------------------------------------------------------------
registry[page]()

flush_notifications(session)

st.sidebar.markdown("---")
# Last refresh (updates on every autorefresh)
st.sidebar.metric(
    label="🕒 Last refresh:",
    value=convert_to_local_time(datetime.now(timezone.utc), TS_FMT),
    delta=settings()["LOCAL_TZ"],
    delta_color="off",
)
