"""orders.py

Order entry: validation, submission and cancellation for the four order
modes.

=======  =========================================  =========================
mode     must hold before confirmation                sent to
=======  =========================================  =========================
QUOTE    amount > 0, held unexpired quote for the    ``POST /quote-executions``
         current inputs                              with the quote id only
MARKET   amount > 0, side                            ``POST /orders``
LIMIT    amount > 0, price > 0, time in force        ``POST /orders``
STOP     amount > 0, price > 0, stop price > 0       ``POST /orders``
=======  =========================================  =========================

Validation never raises for the UI: :meth:`OrderSubmissionController.can_submit`
drives the disabled state of the submit control.  Upstream errors become
notifications carrying the server's message and leave the form untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Literal, Optional, Union

from workbench.logger import setup_logger, log_extra
from .errors import ApiError, InvalidOrder
from .model import Order, QuoteExecution, parse_positive
from .quotes import QuoteManager
from .session import EXECUTIONS, ORDERS, SessionContext

logger = setup_logger(__name__)

Mode = Literal["QUOTE", "MARKET", "LIMIT", "STOP"]

ORDER_MODES: tuple[Mode, ...] = ("QUOTE", "MARKET", "LIMIT", "STOP")
SIDES = ("BUY", "SELL")
TIME_IN_FORCE = {
    "GTC": "Good Till Cancel",
    "IOC": "Immediate or Cancel",
    "FOK": "Fill or Kill",
}
MARKETS = {
    "BTCUSD": "BTC / USD",
    "ETHUSD": "ETH / USD",
    "PAXGUSD": "PAXG / USD",
}

OPEN_STATUSES = ("OPEN", "PARTIALLY_FILLED")
CLOSED_STATUSES = ("FILLED", "CANCELLED", "EXPIRED")

_CENTS = Decimal("0.01")


@dataclass
class OrderForm:
    """Raw user input, kept as typed so a failed submit can be retried."""

    market: str = "BTCUSD"
    side: str = "BUY"
    amount: str = ""
    price: str = ""
    stop_price: str = ""
    time_in_force: str = "GTC"

    def clear(self) -> None:
        self.amount = ""
        self.price = ""
        self.stop_price = ""


# -----------------------------------------------------------------------------
# Pure helpers
# -----------------------------------------------------------------------------

def validate(mode: str, form: OrderForm, quotes: QuoteManager | None = None) -> list[str]:
    """Return the reasons *form* cannot be submitted in *mode* (empty = ok)."""
    mode = mode.upper()
    if mode not in ORDER_MODES:
        return [f"unknown order mode {mode!r}"]

    problems: list[str] = []
    if not form.market:
        problems.append("market is required")
    if form.side.upper() not in SIDES:
        problems.append("side must be BUY or SELL")
    if parse_positive(form.amount) is None:
        problems.append("amount must be greater than 0")

    if mode == "QUOTE":
        if quotes is None or not quotes.is_usable():
            problems.append("no active quote")
        elif not quotes.matches(form.market, form.side, form.amount):
            problems.append("quote does not match the current inputs")
    if mode in ("LIMIT", "STOP") and parse_positive(form.price) is None:
        problems.append("price must be greater than 0")
    if mode == "STOP" and parse_positive(form.stop_price) is None:
        problems.append("stop price must be greater than 0")
    if mode == "LIMIT" and form.time_in_force not in TIME_IN_FORCE:
        problems.append("time in force is required")
    return problems


def build_payload(mode: str, form: OrderForm) -> dict:
    """Body for ``POST /orders`` (not used for QUOTE mode)."""
    mode = mode.upper()
    payload = {
        "market": form.market,
        "side": form.side.upper(),
        "amount": form.amount.strip(),
        "type": mode,
    }
    if mode in ("LIMIT", "STOP"):
        payload["price"] = form.price.strip()
    if mode == "STOP":
        payload["stop_price"] = form.stop_price.strip()
    if mode == "LIMIT":
        payload["time_in_force"] = form.time_in_force
    return payload


def estimated_total(mode: str, form: OrderForm, last_price: str | None = None) -> Optional[Decimal]:
    """Display-only ``amount × reference price``, rounded to cents.

    MARKET uses *last_price* (last traded price), LIMIT and STOP use the
    entered price.  ``None`` when any factor is missing – QUOTE mode shows
    the quote price instead.
    """
    mode = mode.upper()
    amount = parse_positive(form.amount)
    if mode == "MARKET":
        reference = parse_positive(last_price)
    elif mode in ("LIMIT", "STOP"):
        reference = parse_positive(form.price)
    else:
        return None
    if amount is None or reference is None:
        return None
    return (amount * reference).quantize(_CENTS)


def open_orders(orders: Iterable[Order]) -> list[Order]:
    return [o for o in orders if o.status in OPEN_STATUSES]


def closed_orders(orders: Iterable[Order]) -> list[Order]:
    return [o for o in orders if o.status in CLOSED_STATUSES]


# -----------------------------------------------------------------------------
# Controller
# -----------------------------------------------------------------------------

class OrderSubmissionController:
    """Submits and cancels orders on behalf of the Trade view."""

    def __init__(self, session: SessionContext, quotes: QuoteManager):
        self.session = session
        self.quotes = quotes
        self.last_error: Optional[str] = None

    def can_submit(self, mode: str, form: OrderForm) -> bool:
        return not validate(mode, form, self.quotes)

    def submit(self, mode: str, form: OrderForm) -> Union[Order, QuoteExecution, None]:
        """Send the order; ``None`` when upstream rejected it.

        Raises
        ------
        InvalidOrder
            *form* does not pass :func:`validate` – the view should never
            have offered the confirmation step.
        """
        mode = mode.upper()
        problems = validate(mode, form, self.quotes)
        if problems:
            raise InvalidOrder("; ".join(problems))

        client = self.session.client
        try:
            if mode == "QUOTE":
                quote = self.quotes.quote
                result = client.execute_quote(quote.id)
            else:
                result = client.create_order(build_payload(mode, form))
        except ApiError as err:
            self.last_error = err.message
            logger.warning(
                "order rejected",
                extra=log_extra(mode=mode, market=form.market, status=err.status, error=err.message),
            )
            self.session.notifier.error(err.message)
            return None

        self.last_error = None
        if mode == "QUOTE":
            self.quotes.consume()
            message = "Quote executed successfully"
        else:
            message = "Order placed successfully"
        form.clear()
        self.session.cache.invalidate(ORDERS, EXECUTIONS)
        self.session.notifier.success(message)
        logger.info("order submitted", extra=log_extra(mode=mode, market=form.market, result_id=result.id))
        return result

    def cancel(self, order_id: str) -> bool:
        """``DELETE /orders?id=``; invalidates the order cache on success."""
        try:
            self.session.client.cancel_order(order_id)
        except ApiError as err:
            self.last_error = err.message
            logger.warning("cancel rejected", extra=log_extra(order_id=order_id, error=err.message))
            self.session.notifier.error(err.message)
            return False
        self.session.cache.invalidate(ORDERS)
        self.session.notifier.success("Order cancelled")
        logger.info("order cancelled", extra=log_extra(order_id=order_id))
        return True
