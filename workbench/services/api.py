"""api.py

Thin synchronous REST wrapper around the upstream custody/exchange API.

* Centralises **base-URL** + **API-key** handling so controllers can simply
  call ``client.get_quote(...)``, ``client.create_order(...)`` … without
  repeating boilerplate.
* Normalises the varying list shapes (bare list vs ``{"items": [...]}``)
  and validates payloads into the pydantic models from :mod:`.model`.
* Turns every failure – HTTP status, transport error, unreadable body –
  into :class:`~workbench.services.errors.ApiError` whose ``message`` is
  the server's ``error`` field or a per-call fallback.
"""

from __future__ import annotations

# -----------------------------------------------------------------------------
# Standard library & 3rd-party imports
# -----------------------------------------------------------------------------
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import requests
from pydantic import ValidationError

from workbench.config import settings
from workbench.logger import setup_logger, log_extra
from .errors import ApiError, QuoteUnavailable
from .model import (
    Conversion,
    Execution,
    FeeEstimate,
    Order,
    Quote,
    QuoteExecution,
    Ticker,
    Transfer,
)

logger = setup_logger(__name__)

# -----------------------------------------------------------------------------
# Internal convenience helpers (prefixed with underscore)
# -----------------------------------------------------------------------------

def _error_message(resp: requests.Response, fallback: str) -> tuple[str, Any]:
    """Pull the human-readable ``error`` field out of a failed response."""
    try:
        payload = resp.json()
    except ValueError:
        return fallback, None
    if isinstance(payload, dict):
        msg = payload.get("error")
        if isinstance(msg, str) and msg.strip():
            return msg, payload
    return fallback, payload


def _extract_items(raw: Any) -> list[dict]:  # noqa: D401 – helper, not user-facing
    """Normalise list endpoints into *list[dict]*.

    Accepts a bare list or an envelope ``{"items": [...]}``; anything else
    raises ``ValueError`` so shape drift surfaces fast.
    """
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict):
        for key in ("items", "data"):
            if key in raw and isinstance(raw[key], list):
                return raw[key]
    raise ValueError(f"Unrecognised list payload shape: {type(raw).__name__}")


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------

class UpstreamClient:
    """One configured connection to the upstream API.

    Parameters
    ----------
    base_url : str
        Root URL, e.g. ``"https://api.sandbox.example.com/v2"``.
    api_key : str
        Bearer token sent on every request.
    session : requests.Session | None
        Injected for connection reuse (and fakes in tests).
    timeout_s : float
        Per-request timeout.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: requests.Session | None = None,
        timeout_s: float = 5.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout_s = timeout_s
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        fallback: str,
        params: dict | None = None,
        body: dict | None = None,
        error_cls: type[ApiError] = ApiError,
    ) -> Any:
        """Perform one call and return the decoded JSON body.

        Raises
        ------
        ApiError
            On transport failure, non-2xx status or a non-JSON 2xx body.
        """
        url = f"{self.base_url}{path}"
        logger.debug("http request", extra=log_extra(method=method, path=path, params=params))
        try:
            resp = self.session.request(
                method, url, params=params, json=body, headers=self.headers, timeout=self.timeout_s
            )
        except requests.RequestException as exc:
            raise error_cls(fallback) from exc

        if not resp.ok:
            message, payload = _error_message(resp, fallback)
            raise error_cls(message, status=resp.status_code, payload=payload)

        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise error_cls(fallback, status=resp.status_code) from exc

    def _parse(self, model, raw: Any, fallback: str, error_cls: type[ApiError] = ApiError):
        try:
            return model.model_validate(raw)
        except ValidationError as exc:
            raise error_cls(fallback, payload=raw) from exc

    def _parse_list(self, model, raw: Any, fallback: str) -> list:
        try:
            return [model.model_validate(item) for item in _extract_items(raw)]
        except (ValueError, ValidationError) as exc:
            raise ApiError(fallback, payload=raw) from exc

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------
    def get_quote(self, market: str, side: str, amount: str, profile_id: str | None = None) -> Quote:
        """`GET /quotes?market&side&amount` → :class:`Quote`."""
        fallback = "Failed to fetch quote"
        params = {"market": market, "side": side, "amount": amount}
        if profile_id:
            params["profile_id"] = profile_id
        raw = self._request("GET", "/quotes", fallback=fallback, params=params, error_cls=QuoteUnavailable)
        return self._parse(Quote, raw, fallback, error_cls=QuoteUnavailable)

    def execute_quote(self, quote_id: str) -> QuoteExecution:
        """`POST /quote-executions {quote_id}`."""
        fallback = "Failed to execute quote"
        raw = self._request("POST", "/quote-executions", fallback=fallback, body={"quote_id": quote_id})
        return self._parse(QuoteExecution, raw, fallback)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def create_order(self, payload: dict) -> Order:
        fallback = "Failed to place order"
        raw = self._request("POST", "/orders", fallback=fallback, body=payload)
        return self._parse(Order, _with_defaults(raw, status="OPEN", **payload), fallback)

    def list_orders(self) -> list[Order]:
        fallback = "Failed to fetch orders"
        return self._parse_list(Order, self._request("GET", "/orders", fallback=fallback), fallback)

    def cancel_order(self, order_id: str) -> dict:
        """`DELETE /orders?id=` – returns the raw acknowledgement."""
        return self._request("DELETE", "/orders", fallback="Failed to cancel order", params={"id": order_id})

    def list_executions(self) -> list[Execution]:
        fallback = "Failed to fetch executions"
        return self._parse_list(Execution, self._request("GET", "/executions", fallback=fallback), fallback)

    def get_ticker(self, market: str) -> Ticker:
        fallback = "Failed to fetch ticker"
        raw = self._request(
            "GET", "/market-data", fallback=fallback, params={"market": market, "type": "tickers"}
        )
        if isinstance(raw, list):
            raw = raw[0] if raw else {}
        if isinstance(raw, dict):
            raw = {"market": market, **raw}
        return self._parse(Ticker, raw, fallback)

    # ------------------------------------------------------------------
    # Transfers & withdrawals
    # ------------------------------------------------------------------
    def list_transfers(self, limit: int | None = None, type: str | None = None) -> list[Transfer]:
        fallback = "Failed to fetch transfers"
        params: dict[str, Any] = {}
        if limit:
            params["limit"] = limit
        if type:
            params["type"] = type
        raw = self._request("GET", "/transfers", fallback=fallback, params=params or None)
        return self._parse_list(Transfer, raw, fallback)

    def estimate_fee(self, asset: str, network: str, amount: str, destination_address: str) -> FeeEstimate:
        fallback = "Failed to estimate fee"
        body = {
            "asset": asset,
            "crypto_network": network,
            "amount": amount,
            "destination_address": destination_address,
        }
        return self._parse(FeeEstimate, self._request("POST", "/fees", fallback=fallback, body=body), fallback)

    def create_crypto_withdrawal(
        self, asset: str, network: str, amount: str, destination_address: str
    ) -> Transfer:
        fallback = "Withdrawal failed"
        body = {
            "asset": asset,
            "crypto_network": network,
            "amount": amount,
            "destination_address": destination_address,
        }
        raw = self._request("POST", "/crypto-withdrawals", fallback=fallback, body=body)
        return self._parse(Transfer, _with_defaults(raw, asset=asset, amount=amount, direction="OUT"), fallback)

    def create_fiat_withdrawal(self, fiat_account_id: str, amount: str, asset: str = "USD") -> Transfer:
        fallback = "Withdrawal failed"
        body = {"fiat_account_id": fiat_account_id, "amount": amount, "asset": asset}
        raw = self._request("POST", "/fiat-withdrawals", fallback=fallback, body=body)
        return self._parse(Transfer, _with_defaults(raw, asset=asset, amount=amount, direction="OUT"), fallback)

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------
    def list_conversions(self) -> list[Conversion]:
        fallback = "Failed to fetch conversions"
        raw = self._request("GET", "/stablecoin-conversions", fallback=fallback)
        return self._parse_list(Conversion, raw, fallback)


def _with_defaults(raw: Any, **defaults: Any) -> Any:
    """Mutating endpoints may echo only ``{id, status}`` – fill the gaps
    from the request so the answer still validates as a full record."""
    if not isinstance(raw, dict):
        return raw
    return {"created_at": datetime.now(timezone.utc), **defaults, **raw}


@lru_cache
def default_client() -> UpstreamClient:
    """Client built from :func:`workbench.config.settings` (one per process)."""
    cfg = settings()
    return UpstreamClient(cfg["API_URL"], cfg["API_KEY"], timeout_s=cfg["HTTP_TIMEOUT"])
