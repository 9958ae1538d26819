"""quotes.py

Quote lifecycle: fetch a price-guaranteed quote for ``(market, side,
amount)``, count down to its ``expires_at`` once per tick and renew it
when it runs out.

The held quote lives in :attr:`SessionContext.active_quote`; this module
is the only writer.  One timer per held quote, released whenever the quote
is cleared (expiry, execution, input change, teardown).
"""

from __future__ import annotations

import math
from typing import Optional

from workbench.config import settings
from workbench.logger import setup_logger, log_extra
from .errors import QuoteUnavailable
from .model import Quote, parse_positive
from .scheduler import PeriodicTask
from .session import SessionContext

logger = setup_logger(__name__)

URGENT_SECONDS = 5  # countdown is highlighted at or below this


class QuoteManager:
    """Holds at most one active quote for the session.

    Parameters
    ----------
    session : SessionContext
        Supplies the client, scheduler (clock + timers) and notifier.
    tick_ms : int | None
        Countdown interval; defaults to ``QUOTE_TICK_MS``.
    auto_renew : bool
        Request a fresh quote when the held one expires.
    """

    def __init__(self, session: SessionContext, tick_ms: int | None = None, auto_renew: bool = True):
        self.session = session
        self.tick_ms = tick_ms or settings()["QUOTE_TICK_MS"]
        self.auto_renew = auto_renew
        self.inputs: Optional[tuple[str, str, str]] = None
        self.remaining = 0
        self._task: Optional[PeriodicTask] = None
        self._closed = False
        session.on_profile_change(lambda: self._clear("profile changed"))

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def quote(self) -> Optional[Quote]:
        return self.session.active_quote

    @property
    def has_timer(self) -> bool:
        return self._task is not None and self._task.running

    @property
    def urgent(self) -> bool:
        return self.quote is not None and self.remaining <= URGENT_SECONDS

    def seconds_left(self, quote: Quote | None = None) -> int:
        """``max(0, floor(expires_at - now))`` in whole seconds."""
        quote = quote or self.quote
        if quote is None:
            return 0
        delta = (quote.expires_at - self.session.clock.now()).total_seconds()
        return max(0, math.floor(delta))

    def is_usable(self, quote: Quote | None = None) -> bool:
        """True while *quote* (default: the held one) is held and unexpired."""
        held = self.quote
        if held is None or (quote is not None and quote.id != held.id):
            return False
        return self.seconds_left(held) > 0

    def matches(self, market: str, side: str, amount: str) -> bool:
        return self.inputs == _key(market, side, amount)

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------
    def set_inputs(self, market: str, side: str, amount: str) -> Optional[Quote]:
        """Point the manager at new form inputs.

        A change of any key discards the held quote immediately; when the
        inputs are valid and nothing is held, a quote is requested.
        """
        key = _key(market, side, amount)
        if key != self.inputs:
            if self.quote is not None:
                self._clear("inputs changed")
            self.inputs = key
        if self.quote is None and self._inputs_valid():
            self.refresh()
        return self.quote

    def request_quote(self, market: str, side: str, amount: str) -> Optional[Quote]:
        """Fetch and hold a quote for the given inputs.

        Returns ``None`` without any network call when *amount* is not a
        positive number.

        Raises
        ------
        QuoteUnavailable
            Upstream refused or could not be reached; nothing is held.
        """
        key = _key(market, side, amount)
        if key != self.inputs and self.quote is not None:
            self._clear("inputs changed")
        self.inputs = key
        if parse_positive(amount) is None:
            return None

        quote = self.session.client.get_quote(key[0], key[1], key[2], profile_id=self.session.profile_id)
        if self._closed or self.inputs != key:
            logger.info("stale quote discarded", extra=log_extra(quote_id=quote.id))
            return None
        self._hold(quote)
        return quote

    def refresh(self) -> Optional[Quote]:
        """:meth:`request_quote` for the current inputs, reporting failures
        as a notification instead of raising."""
        if self.inputs is None:
            return None
        try:
            return self.request_quote(*self.inputs)
        except QuoteUnavailable as err:
            logger.warning("quote unavailable", extra=log_extra(error=err.message, inputs=self.inputs))
            self.session.notifier.error(err.message)
            return None

    def consume(self) -> None:
        """Forget the held quote after a successful execution."""
        self._clear("executed")

    def close(self) -> None:
        """Teardown: release the timer and ignore late results."""
        self._closed = True
        self._clear("view closed")

    def reopen(self) -> None:
        self._closed = False

    def reset(self) -> None:
        """Drop the held quote and forget the inputs (e.g. mode switched away)."""
        self._clear("reset")
        self.inputs = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _inputs_valid(self) -> bool:
        return not self._closed and self.inputs is not None and parse_positive(self.inputs[2]) is not None

    def _hold(self, quote: Quote) -> None:
        self._stop_timer()
        self.session.replace_quote(quote)
        self.remaining = self.seconds_left(quote)
        self._task = self.session.scheduler.start(self.tick_ms, self._tick, owner=("quote", id(self)))
        logger.info(
            "quote held",
            extra=log_extra(quote_id=quote.id, market=quote.market, price=quote.price, remaining=self.remaining),
        )

    def _tick(self) -> None:
        if self.quote is None:
            self._stop_timer()
            return
        self.remaining = min(self.remaining, self.seconds_left())
        if self.remaining > 0:
            return
        self._clear("expired")
        if self.auto_renew and self._inputs_valid():
            self.refresh()

    def _clear(self, reason: str) -> None:
        held = self.quote
        self._stop_timer()
        self.session.replace_quote(None)
        self.remaining = 0
        if held is not None:
            logger.info("quote cleared", extra=log_extra(quote_id=held.id, reason=reason))

    def _stop_timer(self) -> None:
        if self._task is not None:
            self._task.stop()
            self._task = None


def _key(market: str, side: str, amount: str) -> tuple[str, str, str]:
    return (market, (side or "").upper(), (amount or "").strip())
