"""trade.py

Streamlit page for **order entry** and the session's order book.

Key features
------------
* Four order modes: a price-guaranteed *Quote* (with a live countdown and
  automatic renewal), *Market*, *Limit* and *Stop*.
* The submit control stays disabled until the form is valid; submission
  is a two-step confirm so a stray click never trades.
* Estimated total (amount × limit price or last traded price) for the
  non-quote modes.
* Open orders with a cancel button, order history and recent executions.
"""

from __future__ import annotations

# Third-party ------------------------------------------------------------------
import pandas as pd
import streamlit as st

# First-party / project --------------------------------------------------------
from workbench.services import ApiError, InvalidOrder, UpstreamClient
from workbench.services.model import Order, Ticker
from workbench.services.orders import (
    MARKETS,
    ORDER_MODES,
    SIDES,
    TIME_IN_FORCE,
    OrderForm,
    closed_orders,
    estimated_total,
    open_orders,
)
from workbench.services.session import EXECUTIONS, ORDERS
from ._colors import _row_style, status_light
from ._helpers import (
    convert_to_local_time,
    fmt_usd,
    get_orders_controller,
    get_quotes,
    get_session,
)

# Widget keys that hold the typed numbers; cleared after a successful submit.
_INPUT_KEYS = ("trade_amount", "trade_price", "trade_stop")


@st.cache_data(ttl=5, show_spinner=False)
def _ticker(_client: UpstreamClient, market: str) -> Ticker | None:
    """Last traded price, refetched at most every 5 s."""
    try:
        return _client.get_ticker(market)
    except ApiError:
        return None


def _order_form() -> OrderForm:
    if "order_form" not in st.session_state:
        st.session_state["order_form"] = OrderForm()
    return st.session_state["order_form"]


def _orders_frame(orders: list[Order]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Created": convert_to_local_time(o.created_at),
                "Market": MARKETS.get(o.market, o.market),
                "Side": o.side,
                "Type": o.type.capitalize(),
                "Amount": o.amount or o.base_amount or "",
                "Price": fmt_usd(o.price) if o.price else "Market",
                "Status": o.status,
                "ID": o.id,
            }
            for o in orders
        ],
        columns=["Created", "Market", "Side", "Type", "Amount", "Price", "Status", "ID"],
    )


# -----------------------------------------------------------------------------
# Callbacks (run before the next rerun, so they may reset widget state)
# -----------------------------------------------------------------------------

def _confirm(mode: str) -> None:
    ctl = get_orders_controller()
    form = _order_form()
    try:
        result = ctl.submit(mode, form)
    except InvalidOrder as err:
        get_session().notifier.error(str(err))
        result = None
    st.session_state["trade_confirming"] = False
    if result is not None:
        for key in _INPUT_KEYS:
            st.session_state[key] = ""


def _cancel_confirm() -> None:
    st.session_state["trade_confirming"] = False


def _cancel_order(order_id: str) -> None:
    get_orders_controller().cancel(order_id)


# -----------------------------------------------------------------------------
# Page renderer
# -----------------------------------------------------------------------------

def render() -> None:  # noqa: D401
    """Draw the **Trade** page.

    Workflow
    --------
    1. Read market, mode, side and amount.  In *Quote* mode the inputs are
       handed to the quote manager, which discards a stale quote and
       requests a new one.
    2. Show the mode-specific fields and, outside *Quote* mode, the
       estimated total.
    3. Submit → confirm → controller.  Errors surface as toasts.
    4. List open orders (cancellable), order history and executions.
    """
    st.title("Trade")

    session = get_session()
    quotes = get_quotes()
    ctl = get_orders_controller()
    form = _order_form()

    # ------------------------------------------------------------------
    # 1) Core inputs
    # ------------------------------------------------------------------
    left, right = st.columns([0.55, 0.45])
    with left:
        form.market = st.selectbox(
            "Market", list(MARKETS), format_func=MARKETS.get, key="trade_market"
        )
        mode = st.radio(
            "Order type", ORDER_MODES, format_func=str.capitalize, horizontal=True, key="trade_mode"
        )
        form.side = st.radio("Side", SIDES, format_func=str.capitalize, horizontal=True, key="trade_side")
        form.amount = st.text_input("Amount", placeholder="0.00", key="trade_amount")

        # --------------------------------------------------------------
        # 2) Mode-specific fields
        # --------------------------------------------------------------
        if mode in ("LIMIT", "STOP"):
            form.price = st.text_input("Limit price", placeholder="0.00", key="trade_price")
        if mode == "STOP":
            form.stop_price = st.text_input("Stop price", placeholder="0.00", key="trade_stop")
        if mode == "LIMIT":
            form.time_in_force = st.selectbox(
                "Time in force", list(TIME_IN_FORCE), format_func=TIME_IN_FORCE.get, key="trade_tif"
            )

    with right:
        if mode == "QUOTE":
            quote = quotes.set_inputs(form.market, form.side, form.amount)
            if quote is not None:
                st.metric("Quoted price", fmt_usd(quote.price))
                color = "red" if quotes.urgent else "gray"
                st.markdown(f":{color}[Expires in **{quotes.remaining}s**]")
            elif form.amount.strip():
                st.info("Waiting for a quote…")
        else:
            # quotes only live while the Quote mode is on screen
            if quotes.inputs is not None:
                quotes.reset()
            ticker = _ticker(session.client, form.market)
            last_price = ticker.last_price if ticker else None
            if last_price:
                st.metric("Last price", fmt_usd(last_price))
            total = estimated_total(mode, form, last_price)
            st.metric("Est. Total", fmt_usd(total))

    # ------------------------------------------------------------------
    # 3) Submit → confirm
    # ------------------------------------------------------------------
    label = "Execute quote" if mode == "QUOTE" else f"Place {mode.lower()} order"
    if st.button(label, type="primary", disabled=not ctl.can_submit(mode, form), key="trade_submit"):
        st.session_state["trade_confirming"] = True

    if st.session_state.get("trade_confirming"):
        with st.container(border=True):
            st.write(
                f"**{form.side.capitalize()} {form.amount} {MARKETS.get(form.market, form.market)}** "
                f"as a {mode.lower()} order?"
            )
            yes, no = st.columns(2)
            yes.button("Confirm", type="primary", on_click=_confirm, args=(mode,), key="trade_yes")
            no.button("Back", on_click=_cancel_confirm, key="trade_no")

    # ------------------------------------------------------------------
    # 4) Orders & executions
    # ------------------------------------------------------------------
    st.markdown("---")
    orders = session.cache.get(ORDERS)
    tab_open, tab_closed, tab_exec = st.tabs(["Open orders", "Order history", "Executions"])

    with tab_open:
        pending = open_orders(orders)
        if not pending:
            st.info("No open orders.")
        for order in pending:
            cols = st.columns([0.8, 0.2])
            cols[0].write(
                f"{status_light(order.status)} {order.side} {order.amount or order.base_amount} "
                f"{MARKETS.get(order.market, order.market)} @ "
                f"{fmt_usd(order.price) if order.price else 'Market'} · {order.type.capitalize()}"
            )
            cols[1].button("Cancel", key=f"cancel_{order.id}", on_click=_cancel_order, args=(order.id,))

    with tab_closed:
        done = closed_orders(orders)
        if done:
            df = _orders_frame(done)
            st.dataframe(df.style.apply(_row_style, axis=1), hide_index=True, use_container_width=True)
        else:
            st.info("No closed orders.")

    with tab_exec:
        executions = session.cache.get(EXECUTIONS)
        if executions:
            st.dataframe(
                pd.DataFrame(
                    [
                        {
                            "Executed": convert_to_local_time(e.created_at),
                            "Market": MARKETS.get(e.market, e.market),
                            "Side": e.side,
                            "Amount": e.amount,
                            "Price": fmt_usd(e.price),
                            "ID": e.id,
                        }
                        for e in executions
                    ]
                ),
                hide_index=True,
                use_container_width=True,
            )
        else:
            st.info("No executions yet.")
