from datetime import timezone

import pytest
import requests
from pydantic import ValidationError

from workbench.services import UpstreamClient
from workbench.services.errors import ApiError, QuoteUnavailable
from workbench.services.model import Transfer
from conftest import FakeHTTPSession, FakeResponse

BASE = "https://api.test/v2"

QUOTE = {
    "id": "q1",
    "market": "BTCUSD",
    "side": "buy",
    "amount": "0.5",
    "price": 67525.0,
    "expires_at": "2024-03-01T12:00:30",
}


def _client(*responses):
    http = FakeHTTPSession(*responses)
    return UpstreamClient(BASE + "/", "secret", session=http, timeout_s=3), http


def test_get_quote_sends_params_auth_and_parses():
    client, http = _client(FakeResponse(200, QUOTE))

    quote = client.get_quote("BTCUSD", "BUY", "0.5", profile_id="p1")

    req = http.requests[0]
    assert (req["method"], req["url"]) == ("GET", f"{BASE}/quotes")
    assert req["params"] == {"market": "BTCUSD", "side": "BUY", "amount": "0.5", "profile_id": "p1"}
    assert req["headers"]["Authorization"] == "Bearer secret"
    assert req["timeout"] == 3
    assert quote.side == "BUY"
    assert quote.price == "67525.0"
    assert quote.expires_at.tzinfo == timezone.utc


def test_quote_failure_is_quote_unavailable():
    client, _ = _client(FakeResponse(503, {"error": "Market closed"}))
    with pytest.raises(QuoteUnavailable) as exc:
        client.get_quote("BTCUSD", "BUY", "0.5")
    assert exc.value.message == "Market closed"
    assert exc.value.status == 503


def test_server_error_field_is_used_verbatim():
    client, _ = _client(FakeResponse(400, {"error": "Insufficient funds"}))
    with pytest.raises(ApiError) as exc:
        client.create_order({"market": "BTCUSD", "side": "BUY", "amount": "1", "type": "MARKET"})
    assert exc.value.message == "Insufficient funds"
    assert exc.value.payload == {"error": "Insufficient funds"}


@pytest.mark.parametrize("response", [
    FakeResponse(400, {"detail": "nope"}),
    FakeResponse(500, text="<html>oops</html>"),
    FakeResponse(400, {"error": "  "}),
])
def test_missing_error_field_falls_back(response):
    client, _ = _client(response)
    with pytest.raises(ApiError) as exc:
        client.create_order({"market": "BTCUSD", "side": "BUY", "amount": "1", "type": "MARKET"})
    assert exc.value.message == "Failed to place order"


def test_transport_error_is_wrapped():
    boom = requests.ConnectionError("refused")
    client, _ = _client(boom)
    with pytest.raises(ApiError) as exc:
        client.list_orders()
    assert exc.value.status is None
    assert exc.value.__cause__ is boom


def test_create_order_fills_missing_fields_from_request():
    client, http = _client(FakeResponse(201, {"id": "o1"}))
    payload = {"market": "BTCUSD", "side": "BUY", "amount": "1", "type": "LIMIT", "price": "65000"}

    order = client.create_order(payload)

    assert http.requests[0]["json"] == payload
    assert (order.id, order.status, order.price) == ("o1", "OPEN", "65000")


def test_list_endpoints_accept_bare_list_and_envelope():
    row = {"id": "c1", "from_asset": "USDC", "to_asset": "USD", "amount": 10, "status": "completed",
           "created_at": "2024-03-01T12:00:00Z"}
    client, _ = _client(FakeResponse(200, [row]), FakeResponse(200, {"items": [row]}))

    (bare,) = client.list_conversions()
    (wrapped,) = client.list_conversions()
    assert bare == wrapped
    assert (bare.source_asset, bare.target_asset, bare.amount, bare.status) == ("USDC", "USD", "10", "COMPLETED")


def test_unrecognised_list_shape_is_api_error():
    client, _ = _client(FakeResponse(200, {"rows": []}))
    with pytest.raises(ApiError) as exc:
        client.list_transfers()
    assert exc.value.message == "Failed to fetch transfers"


def test_status_lookup_params():
    client, http = _client(FakeResponse(200, {"items": []}))
    assert client.list_transfers(limit=1, type="CRYPTO_WITHDRAWAL") == []
    assert http.requests[0]["params"] == {"limit": 1, "type": "CRYPTO_WITHDRAWAL"}


def test_cancel_order_uses_delete_and_tolerates_no_content():
    client, http = _client(FakeResponse(204))
    assert client.cancel_order("o1") == {}
    assert (http.requests[0]["method"], http.requests[0]["params"]) == ("DELETE", {"id": "o1"})


def test_crypto_withdrawal_partial_answer():
    client, http = _client(FakeResponse(200, {"id": "t1", "status": "PENDING"}))

    transfer = client.create_crypto_withdrawal("BTC", "BITCOIN", "0.5", "bc1qxyz")

    assert http.requests[0]["json"] == {
        "asset": "BTC", "crypto_network": "BITCOIN", "amount": "0.5", "destination_address": "bc1qxyz",
    }
    assert (transfer.id, transfer.status, transfer.asset, transfer.direction) == ("t1", "PENDING", "BTC", "OUT")


def test_estimate_fee_and_ticker():
    client, http = _client(
        FakeResponse(200, {"amount": "0.0002", "estimated_arrival": "10 min"}),
        FakeResponse(200, [{"last_price": 65000}]),
    )
    assert client.estimate_fee("ETH", "ETHEREUM", "1", "0xabc").fee == "0.0002"
    assert http.requests[0]["url"] == f"{BASE}/fees"

    ticker = client.get_ticker("BTCUSD")
    assert (ticker.market, ticker.last_price) == ("BTCUSD", "65000")
    assert http.requests[1]["params"] == {"market": "BTCUSD", "type": "tickers"}


def test_execute_quote_body():
    client, http = _client(FakeResponse(200, {"id": "x1", "status": "FILLED"}))
    execution = client.execute_quote("q1")
    assert http.requests[0]["json"] == {"quote_id": "q1"}
    assert execution.status == "FILLED"


def test_status_outside_closed_set_is_rejected():
    row = {"id": "o1", "market": "BTCUSD", "side": "BUY", "type": "LIMIT", "status": "filled",
           "created_at": "2024-03-01T12:00:00Z"}
    client, _ = _client(FakeResponse(200, [row]), FakeResponse(200, [dict(row, status="SETTLING")]))

    (order,) = client.list_orders()
    assert order.status == "FILLED"

    with pytest.raises(ApiError) as exc:
        client.list_orders()
    assert isinstance(exc.value.__cause__, ValidationError)


def test_transfer_status_must_be_known():
    with pytest.raises(ValidationError):
        Transfer(id="t1", asset="BTC", amount="1", status="APPROVED", created_at="2024-03-01T12:00:00Z")
    assert Transfer(id="t1", asset="BTC", amount="1", created_at="2024-03-01T12:00:00Z").status == "PENDING"
