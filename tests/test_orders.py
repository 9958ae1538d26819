from decimal import Decimal

import pytest

from workbench.services import OrderForm, OrderSubmissionController, QuoteManager
from workbench.services.errors import ApiError, InvalidOrder
from workbench.services.model import parse_positive
from workbench.services.orders import (
    build_payload,
    closed_orders,
    estimated_total,
    open_orders,
    validate,
)
from workbench.services.session import EXECUTIONS, ORDERS
from conftest import make_order


@pytest.fixture
def quotes(session):
    return QuoteManager(session, tick_ms=1000)


@pytest.fixture
def ctl(session, quotes):
    return OrderSubmissionController(session, quotes)


NUMBERS = ["", "0", "-1", "abc", "0.5", "65000"]


@pytest.mark.parametrize("value,expected", [
    ("0.5", Decimal("0.5")),
    (" 2 ", Decimal("2")),
    (3, Decimal("3")),
    ("0", None),
    ("-0.1", None),
    ("", None),
    ("NaN", None),
    ("Infinity", None),
    (None, None),
    (True, None),
])
def test_parse_positive(value, expected):
    assert parse_positive(value) == expected


@pytest.mark.parametrize("amount", NUMBERS)
@pytest.mark.parametrize("price", NUMBERS)
def test_limit_enabled_iff_amount_and_price_positive(ctl, amount, price):
    form = OrderForm(amount=amount, price=price)
    expected = parse_positive(amount) is not None and parse_positive(price) is not None
    assert ctl.can_submit("LIMIT", form) is expected


@pytest.mark.parametrize("stop", ["", "0", "64000"])
@pytest.mark.parametrize("price", ["", "65000"])
def test_stop_also_needs_stop_price(ctl, price, stop):
    form = OrderForm(amount="0.5", price=price, stop_price=stop)
    assert ctl.can_submit("STOP", form) is (bool(price) and stop == "64000")


def test_market_needs_amount_and_side(ctl):
    assert ctl.can_submit("MARKET", OrderForm(amount="1"))
    assert not ctl.can_submit("MARKET", OrderForm(amount="0"))
    assert not ctl.can_submit("MARKET", OrderForm(amount="1", side=""))


def test_limit_requires_time_in_force(ctl):
    assert not ctl.can_submit("LIMIT", OrderForm(amount="1", price="1", time_in_force=""))
    assert ctl.can_submit("LIMIT", OrderForm(amount="1", price="1"))  # GTC default


def test_quote_mode_requires_live_matching_quote(ctl, quotes, clock, session):
    form = OrderForm(market="BTCUSD", side="BUY", amount="0.5")
    assert "no active quote" in validate("QUOTE", form, quotes)

    quotes.set_inputs("BTCUSD", "BUY", "0.5")
    assert ctl.can_submit("QUOTE", form)

    form.amount = "0.6"
    assert not ctl.can_submit("QUOTE", form)

    form.amount = "0.5"
    clock.advance(30)
    assert not ctl.can_submit("QUOTE", form)


def test_unknown_mode_is_rejected():
    assert validate("ICEBERG", OrderForm(amount="1")) == ["unknown order mode 'ICEBERG'"]


def test_estimated_total_for_limit_order():
    total = estimated_total("LIMIT", OrderForm(amount="0.5", price="65000"))
    assert total == Decimal("32500.00")
    assert str(total) == "32500.00"


def test_estimated_total_for_market_uses_last_price():
    form = OrderForm(amount="2", price="1")
    assert estimated_total("MARKET", form, last_price="65000.5") == Decimal("130001.00")
    assert estimated_total("MARKET", form) is None
    assert estimated_total("QUOTE", form, last_price="65000") is None


def test_build_payload_per_mode():
    form = OrderForm(market="ETHUSD", side="sell", amount=" 1 ", price="3000", stop_price="2900", time_in_force="IOC")
    assert build_payload("MARKET", form) == {"market": "ETHUSD", "side": "SELL", "amount": "1", "type": "MARKET"}
    assert build_payload("LIMIT", form)["time_in_force"] == "IOC"
    assert "stop_price" not in build_payload("LIMIT", form)
    stop = build_payload("STOP", form)
    assert (stop["price"], stop["stop_price"]) == ("3000", "2900")
    assert "time_in_force" not in stop


def test_submit_quote_executes_by_id(ctl, quotes, client, session):
    quote = quotes.set_inputs("BTCUSD", "BUY", "0.5")
    form = OrderForm(amount="0.5")

    result = ctl.submit("QUOTE", form)

    assert result.quote_id == quote.id
    assert ("execute_quote", quote.id) in client.calls
    assert client.count("create_order") == 0
    assert session.active_quote is None
    assert session.scheduler.active == []
    assert form.amount == ""
    assert [n.message for n in session.notifier.drain()] == ["Quote executed successfully"]


def test_submit_limit_clears_form_and_invalidates(ctl, client, session):
    session.cache.get(ORDERS)
    session.cache.get(EXECUTIONS)
    form = OrderForm(amount="0.5", price="65000")

    order = ctl.submit("LIMIT", form)

    assert order.status == "OPEN"
    _, payload = client.calls[-1]
    assert payload == {
        "market": "BTCUSD", "side": "BUY", "amount": "0.5", "type": "LIMIT",
        "price": "65000", "time_in_force": "GTC",
    }
    assert (form.amount, form.price) == ("", "")
    assert not session.cache.is_cached(ORDERS)
    assert not session.cache.is_cached(EXECUTIONS)
    assert session.notifier.drain()[0].level == "success"


def test_upstream_rejection_keeps_state(ctl, client, session):
    session.cache.get(ORDERS)
    client.order_result = ApiError("Insufficient funds", status=400)
    form = OrderForm(amount="0.5", price="65000")

    assert ctl.submit("LIMIT", form) is None

    assert form.amount == "0.5"
    assert ctl.last_error == "Insufficient funds"
    assert session.cache.is_cached(ORDERS)
    notes = session.notifier.drain()
    assert [(n.level, n.message) for n in notes] == [("error", "Insufficient funds")]


def test_failed_quote_execution_keeps_quote(ctl, quotes, client, session):
    quotes.set_inputs("BTCUSD", "BUY", "0.5")
    client.execution_result = ApiError("Quote already used")

    assert ctl.submit("QUOTE", OrderForm(amount="0.5")) is None
    assert quotes.quote is not None
    assert quotes.has_timer


def test_submit_invalid_raises(ctl, client):
    with pytest.raises(InvalidOrder):
        ctl.submit("LIMIT", OrderForm(amount="0.5"))
    assert client.count("create_order") == 0


def test_cancel_invalidates_orders(ctl, client, session):
    session.cache.get(ORDERS)
    assert ctl.cancel("o1")
    assert ("cancel_order", "o1") in client.calls
    assert not session.cache.is_cached(ORDERS)

    session.cache.get(ORDERS)
    client.cancel_result = ApiError("Order already filled")
    assert not ctl.cancel("o2")
    assert session.cache.is_cached(ORDERS)


def test_open_and_closed_partitions():
    orders = [
        make_order("a", status="OPEN"),
        make_order("b", status="PARTIALLY_FILLED"),
        make_order("c", status="FILLED"),
        make_order("d", status="CANCELLED"),
        make_order("e", status="EXPIRED"),
    ]
    assert [o.id for o in open_orders(orders)] == ["a", "b"]
    assert [o.id for o in closed_orders(orders)] == ["c", "d", "e"]
