"""withdraw.py

Streamlit page for **withdrawals**.

* *Crypto* – asset → network → destination → amount, then a fee estimate
  for exactly those inputs.  Submitting is only possible while the
  estimate still matches the form.
* *Fiat wire* – saved account id and a USD amount.

After submission the page follows the new transfer with a three-step
PENDING → PROCESSING → COMPLETED indicator, or a red banner when it fails
or is cancelled.
"""

from __future__ import annotations

import streamlit as st

from workbench.services import CryptoWithdrawalForm, FiatWithdrawalForm, TransferStatusTracker
from workbench.services.tracker import Progress
from workbench.services.withdrawals import ASSET_NETWORKS, default_network
from ._colors import status_light
from ._helpers import _remove_small_zeros, fmt_usd, get_withdrawals_controller

_STEP_LABELS = {"PENDING": "Pending", "PROCESSING": "Processing", "COMPLETED": "Completed"}


def _render_progress(progress: Progress) -> None:
    if progress.failed:
        st.error(progress.banner)
        return
    cols = st.columns(len(progress.steps))
    for col, step in zip(cols, progress.steps):
        marker = status_light(step.name) if step.filled else "⚪"
        label = _STEP_LABELS[step.name]
        col.markdown(f"{marker} **{label}**" if step.current else f"{marker} {label}")


def _render_tracker(tracker: TransferStatusTracker) -> bool:
    """Show the tracked transfer; returns True when one is on screen."""
    if tracker.transfer_id is None:
        return False
    with st.container(border=True):
        st.caption(f"Transfer `{tracker.transfer_id}`")
        _render_progress(tracker.progress)
        label = "New withdrawal" if tracker.terminal else "Stop tracking"
        st.button(label, key=f"reset_{tracker.kind}", on_click=tracker.reset)
    return True


# -----------------------------------------------------------------------------
# Callbacks
# -----------------------------------------------------------------------------

def _crypto_form() -> CryptoWithdrawalForm:
    state = st.session_state
    return CryptoWithdrawalForm(
        asset=state.get("wd_asset", ""),
        network=state.get("wd_network", ""),
        destination_address=state.get("wd_address", ""),
        amount=state.get("wd_amount", ""),
    )


def _submit_crypto() -> None:
    if get_withdrawals_controller().submit_crypto(_crypto_form()) is not None:
        st.session_state["wd_address"] = ""
        st.session_state["wd_amount"] = ""


def _submit_fiat() -> None:
    state = st.session_state
    form = FiatWithdrawalForm(fiat_account_id=state.get("wire_account", ""), amount=state.get("wire_amount", ""))
    if get_withdrawals_controller().submit_fiat(form) is not None:
        state["wire_amount"] = ""


# -----------------------------------------------------------------------------
# Page renderer
# -----------------------------------------------------------------------------

def render() -> None:  # noqa: D401
    """Draw the **Withdraw** page."""
    st.title("Withdraw")

    ctl = get_withdrawals_controller()
    tab_crypto, tab_fiat = st.tabs(["Crypto", "Fiat wire"])

    # ------------------------------------------------------------------
    # Crypto
    # ------------------------------------------------------------------
    with tab_crypto:
        if not _render_tracker(ctl.crypto_tracker):
            asset = st.selectbox("Asset", list(ASSET_NETWORKS), key="wd_asset")
            networks = ASSET_NETWORKS[asset]
            if st.session_state.get("wd_network") not in networks:
                st.session_state["wd_network"] = default_network(asset) or networks[0]
            st.selectbox("Network", networks, format_func=str.capitalize, key="wd_network")
            st.text_input("Destination address", key="wd_address")
            st.text_input("Amount", placeholder="0.00", key="wd_amount")

            form = _crypto_form()
            if st.button("Estimate fee", disabled=not ctl.can_estimate_fee(form), key="wd_estimate"):
                ctl.estimate_fee(form)

            fee = ctl.fee_for(form)
            if fee is not None:
                c1, c2 = st.columns(2)
                c1.metric("Network fee", f"{fee.fee} {form.asset}")
                c2.metric("Total deducted", f"{_remove_small_zeros(str(ctl.total_deducted(form)))} {form.asset}")
                if fee.estimated_arrival:
                    st.caption(f"Estimated arrival: {fee.estimated_arrival}")

            st.button(
                "Withdraw",
                type="primary",
                disabled=not ctl.can_submit_crypto(form),
                on_click=_submit_crypto,
                key="wd_submit",
            )

    # ------------------------------------------------------------------
    # Fiat wire
    # ------------------------------------------------------------------
    with tab_fiat:
        if not _render_tracker(ctl.fiat_tracker):
            st.text_input("Fiat account ID", key="wire_account")
            amount = st.text_input("Amount (USD)", placeholder="0.00", key="wire_amount")
            form = FiatWithdrawalForm(fiat_account_id=st.session_state.get("wire_account", ""), amount=amount)
            if amount.strip():
                st.caption(f"You will receive {fmt_usd(amount)}")
            st.button(
                "Send wire",
                type="primary",
                disabled=not ctl.can_submit_fiat(form),
                on_click=_submit_fiat,
                key="wire_submit",
            )
