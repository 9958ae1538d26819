"""tracker.py

Follow one transfer/withdrawal until the upstream system reports a
terminal status.

Polling runs on the session scheduler at a fixed interval (5 s by
default) with no attempt limit and no backoff.  A failed poll is simply
"no update this cycle".  Polling stops on COMPLETED, FAILED or CANCELLED,
or when the owning view calls :meth:`TransferStatusTracker.close`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Union

from workbench.config import settings
from workbench.logger import setup_logger, log_extra
from .errors import ApiError
from .model import Transfer
from .scheduler import PeriodicTask
from .session import SessionContext

logger = setup_logger(__name__)

TERMINAL_STATUSES = frozenset({"COMPLETED", "FAILED", "CANCELLED"})
FAILURE_STATUSES = frozenset({"FAILED", "CANCELLED"})
STATUS_STEPS = ("PENDING", "PROCESSING", "COMPLETED")

Listener = Callable[[str], None]


# -----------------------------------------------------------------------------
# Progress indicator model
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Step:
    name: str
    filled: bool
    current: bool


@dataclass(frozen=True)
class Progress:
    """Either three step markers or, for FAILED/CANCELLED, one banner."""

    status: str
    steps: tuple[Step, ...]
    banner: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.banner is not None


def progress(status: str | None) -> Progress:
    """Map a status onto the PENDING → PROCESSING → COMPLETED markers."""
    status = (status or "PENDING").upper()
    if status in FAILURE_STATUSES:
        return Progress(status, (), banner=f"Transfer {status.lower()}")
    current = STATUS_STEPS.index(status) if status in STATUS_STEPS else -1
    steps = tuple(Step(name, idx <= current, idx == current) for idx, name in enumerate(STATUS_STEPS))
    return Progress(status, steps)


# -----------------------------------------------------------------------------
# Tracker
# -----------------------------------------------------------------------------

class TransferStatusTracker:
    """Polls ``GET /transfers?limit=1&type=<kind>`` for one transfer.

    Parameters
    ----------
    session : SessionContext
        Supplies client, scheduler and notifier.
    kind : str
        Transfer type used for the lookup, e.g. ``"CRYPTO_WITHDRAWAL"``.
    interval_ms : int | None
        Poll interval; defaults to ``STATUS_POLL_MS``.
    """

    def __init__(self, session: SessionContext, kind: str = "CRYPTO_WITHDRAWAL", interval_ms: int | None = None):
        self.session = session
        self.kind = kind
        self.interval_ms = interval_ms or settings()["STATUS_POLL_MS"]
        self.transfer_id: Optional[str] = None
        self.status: Optional[str] = None
        self.history: list[str] = []
        self.polls = 0
        self._listeners: list[Listener] = []
        self._task: Optional[PeriodicTask] = None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with every observed status; returns an unsubscribe."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @property
    def polling(self) -> bool:
        return self._task is not None and self._task.running

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def progress(self) -> Progress:
        return progress(self.status)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def track(self, transfer: Union[Transfer, str], status: str | None = None) -> None:
        """Start following *transfer* (a record or a bare id)."""
        self._stop()
        if isinstance(transfer, Transfer):
            self.transfer_id = transfer.id
            initial = status or transfer.status
        else:
            self.transfer_id = transfer
            initial = status or "PENDING"
        self.status = None
        self.history = []
        self.polls = 0
        self._observe(initial.upper())
        if self.terminal:
            return
        self._task = self.session.scheduler.start(self.interval_ms, self.poll, owner=("tracker", id(self)))
        logger.info("tracking transfer", extra=log_extra(transfer_id=self.transfer_id, kind=self.kind))

    def poll(self) -> Optional[str]:
        """One status check; returns the new status or ``None`` (no update)."""
        if self.transfer_id is None or self.terminal:
            return None
        self.polls += 1
        try:
            items = self.session.client.list_transfers(limit=1, type=self.kind)
        except ApiError as err:
            logger.warning(
                "status check failed", extra=log_extra(transfer_id=self.transfer_id, error=err.message)
            )
            return None

        if not self.polling:
            # view was torn down while the call was in flight
            return None
        match = _pick(items, self.transfer_id)
        if match is None:
            return None
        self._observe(match.status)
        return self.status

    def close(self) -> None:
        """Teardown: stop polling immediately."""
        self._stop()

    def resume(self) -> bool:
        """Restart polling for a transfer left mid-flight by :meth:`close`.

        Does nothing without a tracked id, once terminal, or while already
        polling.  Returns True when a poll task was started.
        """
        if self.transfer_id is None or self.terminal or self.polling:
            return False
        self._task = self.session.scheduler.start(self.interval_ms, self.poll, owner=("tracker", id(self)))
        logger.info("resumed tracking", extra=log_extra(transfer_id=self.transfer_id, status=self.status))
        return True

    def reset(self) -> None:
        """Stop and forget the tracked transfer."""
        self._stop()
        self.transfer_id = None
        self.status = None
        self.history = []
        self.polls = 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _observe(self, status: str) -> None:
        self.status = status
        self.history.append(status)
        for listener in list(self._listeners):
            listener(status)
        if self.terminal:
            self._stop()
            logger.info(
                "transfer reached terminal status",
                extra=log_extra(transfer_id=self.transfer_id, status=status, polls=self.polls),
            )

    def _stop(self) -> None:
        if self._task is not None:
            self._task.stop()
            self._task = None


def _pick(items: list[Transfer], transfer_id: str) -> Optional[Transfer]:
    """The item with the tracked id, else the newest one returned."""
    for item in items:
        if item.id == transfer_id:
            return item
    if not items:
        return None
    logger.debug(
        "status lookup fell back to newest transfer",
        extra=log_extra(transfer_id=transfer_id, used_id=items[0].id),
    )
    return items[0]
