from datetime import datetime, timedelta, timezone

import pytest

from workbench.services import ManualClock, build_session
from workbench.services.model import (
    Conversion,
    FeeEstimate,
    Order,
    Quote,
    QuoteExecution,
    Ticker,
    Transfer,
)

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_quote(clock, qid="q1", price="67525.00", ttl=30, market="BTCUSD", side="BUY", amount="0.5"):
    return Quote(
        id=qid,
        market=market,
        side=side,
        amount=amount,
        price=price,
        expires_at=clock.now() + timedelta(seconds=ttl),
    )


def make_transfer(tid, asset="BTC", amount="1", direction="IN", status="COMPLETED", minutes=0, **kw):
    return Transfer(
        id=tid,
        asset=asset,
        amount=amount,
        direction=direction,
        status=status,
        created_at=T0 + timedelta(minutes=minutes),
        **kw,
    )


def make_order(oid, status="FILLED", market="BTCUSD", side="BUY", amount="0.5", minutes=0, **kw):
    return Order(
        id=oid,
        market=market,
        side=side,
        type=kw.pop("type", "MARKET"),
        amount=amount,
        status=status,
        created_at=T0 + timedelta(minutes=minutes),
        **kw,
    )


def make_conversion(cid, source="USDC", target="USD", amount="100", minutes=0, status="COMPLETED"):
    return Conversion(
        id=cid,
        source_asset=source,
        target_asset=target,
        amount=amount,
        status=status,
        created_at=T0 + timedelta(minutes=minutes),
    )


class FakeClient:
    """Scripted stand-in for UpstreamClient.

    Each endpoint pops from its own script; an ``Exception`` instance in a
    script is raised instead of returned.  Every call is recorded.
    """

    def __init__(self, clock):
        self.clock = clock
        self.calls = []
        self.quotes = []
        self.transfer_polls = []
        self.orders = []
        self.executions = []
        self.transfers = []
        self.conversions = []
        self.order_result = None
        self.execution_result = None
        self.cancel_result = {}
        self.withdrawal_result = None
        self.fee_result = FeeEstimate(fee="0.0001")
        self.ticker = Ticker(market="BTCUSD", last_price="65000")

    @staticmethod
    def _answer(value):
        if isinstance(value, Exception):
            raise value
        return value

    def _next(self, script, default=None):
        return self._answer(script.pop(0) if script else default)

    def get_quote(self, market, side, amount, profile_id=None):
        self.calls.append(("get_quote", market, side, amount))
        return self._next(self.quotes, make_quote(self.clock, market=market, side=side, amount=amount))

    def execute_quote(self, quote_id):
        self.calls.append(("execute_quote", quote_id))
        return self._answer(self.execution_result or QuoteExecution(id="x1", status="FILLED", quote_id=quote_id))

    def create_order(self, payload):
        self.calls.append(("create_order", payload))
        if self.order_result is not None:
            return self._answer(self.order_result)
        return Order(id="o-new", status="OPEN", created_at=self.clock.now(), **payload)

    def list_orders(self):
        self.calls.append(("list_orders",))
        return self._answer(self.orders)

    def cancel_order(self, order_id):
        self.calls.append(("cancel_order", order_id))
        return self._answer(self.cancel_result)

    def list_executions(self):
        self.calls.append(("list_executions",))
        return self._answer(self.executions)

    def get_ticker(self, market):
        self.calls.append(("get_ticker", market))
        return self._answer(self.ticker)

    def list_transfers(self, limit=None, type=None):
        self.calls.append(("list_transfers", limit, type))
        if type is not None:
            return self._next(self.transfer_polls, [])
        return self._answer(self.transfers)

    def estimate_fee(self, asset, network, amount, destination_address):
        self.calls.append(("estimate_fee", asset, network, amount, destination_address))
        return self._answer(self.fee_result)

    def create_crypto_withdrawal(self, asset, network, amount, destination_address):
        self.calls.append(("create_crypto_withdrawal", asset, network, amount, destination_address))
        return self._answer(self.withdrawal_result)

    def create_fiat_withdrawal(self, fiat_account_id, amount, asset="USD"):
        self.calls.append(("create_fiat_withdrawal", fiat_account_id, amount, asset))
        return self._answer(self.withdrawal_result)

    def list_conversions(self):
        self.calls.append(("list_conversions",))
        return self._answer(self.conversions)

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def client(clock):
    return FakeClient(clock)


@pytest.fixture
def session(client, clock):
    return build_session(client, clock=clock, profile_id="default")


# ---------------------------------------------------------------------------
# Fake requests transport for UpstreamClient tests
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if text is not None:
            self.content = text.encode()
        elif payload is not None:
            self.content = b"json"
        else:
            self.content = b""

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeHTTPSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.requests.append(
            {"method": method, "url": url, "params": params, "json": json, "headers": headers, "timeout": timeout}
        )
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

