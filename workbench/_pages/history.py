"""history.py

Streamlit page for the **unified transaction history**: deposits,
withdrawals, filled trades and stablecoin conversions in one table.

Main features
-------------
* Headline counters (total / completed / pending / failed).
* Tab, inclusive date range and free-text filters.
* 20 rows at a time with a *Load more* button; changing any filter goes
  back to the first page.
* Per-row detail view and a CSV export of everything currently filtered.
"""

from __future__ import annotations

# Third-party ------------------------------------------------------------------
import streamlit as st

# First-party / project --------------------------------------------------------
from workbench.logger import setup_logger, log_extra
from workbench.services import EmptyExport, Transaction
from workbench.services import ledger
from workbench.services.session import CONVERSIONS, ORDERS, TRANSFERS
from ._colors import DIRECTION_SIGN, _row_style, status_light
from ._helpers import LOCAL_TZ, get_ledger_page, get_session, relative_date

logger = setup_logger(__name__)


def _log_export(rows: int, filename: str) -> None:
    logger.info("ledger exported", extra=log_extra(rows=rows, file=filename))


def _label(tx: Transaction) -> str:
    sign = DIRECTION_SIGN.get(tx.direction, "")
    return f"{status_light(tx.status)} {tx.type.capitalize()} · {tx.asset} · {sign}{tx.amount} · {tx.id}"


# -----------------------------------------------------------------------------
# Page renderer
# -----------------------------------------------------------------------------

def render() -> None:  # noqa: D401
    """Draw the **History** page.

    Workflow
    --------
    1. Derive the ledger from the shared collection cache.
    2. Read filters; reset pagination when they change.
    3. Show counters, the styled table, details and the export button.
    """
    st.title("History")

    session = get_session()
    page = get_ledger_page()

    _, top_right = st.columns([0.85, 0.15])
    with top_right:
        if st.button("🔄 Refresh"):
            session.cache.invalidate(TRANSFERS, ORDERS, CONVERSIONS)

    transactions = ledger.from_cache(session.cache)

    # ------------------------------------------------------------------
    # 1) Counters over the whole ledger
    # ------------------------------------------------------------------
    counts = ledger.stats(transactions)
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total", counts["total"])
    c2.metric("Completed", counts["completed"])
    c3.metric("Pending", counts["pending"])
    c4.metric("Failed", counts["failed"])

    # ------------------------------------------------------------------
    # 2) Filters
    # ------------------------------------------------------------------
    tab = st.radio("Type", list(ledger.TAB_TYPES), format_func=str.capitalize, horizontal=True, key="ledger_tab")
    f1, f2, f3 = st.columns([0.25, 0.25, 0.5])
    date_from = f1.date_input("From", value=None, key="ledger_from")
    date_to = f2.date_input("To", value=None, key="ledger_to")
    query = f3.text_input("Search", placeholder="ID, asset, type, status or amount", key="ledger_query")

    signature = (tab, date_from, date_to, query)
    if st.session_state.get("_ledger_filters") != signature:
        page.reset()
        st.session_state["_ledger_filters"] = signature

    filtered = ledger.filter_transactions(transactions, tab, date_from, date_to, query, tz=LOCAL_TZ)

    # ------------------------------------------------------------------
    # 3) Table
    # ------------------------------------------------------------------
    if not filtered:
        st.info("No transactions match the current filters.")
    else:
        visible = page.visible(filtered)
        df = ledger.to_frame(visible)
        df.insert(0, "When", [relative_date(t.date) for t in visible])
        df["Amount"] = [f"{DIRECTION_SIGN.get(t.direction, '')}{t.amount}" for t in visible]
        df = df.drop(columns=["Date"])
        st.dataframe(df.style.apply(_row_style, axis=1), hide_index=True, use_container_width=True)
        st.caption(f"Showing {len(visible)} of {len(filtered)}")

        if page.has_more(filtered):
            st.button("Load more", on_click=page.show_more, key="ledger_more")

        with st.expander("Details", expanded=False):
            chosen = st.selectbox("Transaction", visible, format_func=_label, key="ledger_detail")
            if chosen is not None:
                st.table({"Field": list(chosen.details), "Value": list(chosen.details.values())})

    # ------------------------------------------------------------------
    # 4) Export
    # ------------------------------------------------------------------
    try:
        filename, csv_text = ledger.export_csv(filtered)
    except EmptyExport as err:
        if st.button("⬇️ Export CSV", key="ledger_export_empty"):
            st.warning(str(err))
    else:
        st.download_button(
            "⬇️ Export CSV",
            data=csv_text,
            file_name=filename,
            mime="text/csv",
            on_click=_log_export,
            args=(len(filtered), filename),
            key="ledger_export",
        )
