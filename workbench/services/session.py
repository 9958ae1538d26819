"""session.py

Per-session state shared by the controllers.

* :class:`Notifier` – queue of user-facing messages (rendered as toasts).
* :class:`CollectionCache` – one cached list per resource type
  (transfers, orders, executions, conversions).  Mutating calls
  invalidate entries; nothing is ever patched locally.
* :class:`SessionContext` – explicit bundle of client, scheduler, cache,
  notifier, active profile and active quote handed to every component.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Literal, Optional

from workbench.logger import setup_logger, log_extra
from .errors import ApiError
from .model import Quote
from .scheduler import Clock, Scheduler, SystemClock

logger = setup_logger(__name__)

Level = Literal["success", "info", "warning", "error"]

# Resource keys of the shared cache
TRANSFERS = "transfers"
ORDERS = "orders"
EXECUTIONS = "executions"
CONVERSIONS = "conversions"


# -----------------------------------------------------------------------------
# Notifications
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Notification:
    level: Level
    message: str
    created_at: datetime


class Notifier:
    """Collects notifications until the view drains them."""

    def __init__(self, clock: Clock | None = None):
        self.clock = clock or SystemClock()
        self.pending: list[Notification] = []

    def push(self, level: Level, message: str) -> Notification:
        note = Notification(level, message, self.clock.now())
        self.pending.append(note)
        return note

    def success(self, message: str) -> Notification:
        return self.push("success", message)

    def info(self, message: str) -> Notification:
        return self.push("info", message)

    def warning(self, message: str) -> Notification:
        return self.push("warning", message)

    def error(self, message: str) -> Notification:
        return self.push("error", message)

    def drain(self) -> list[Notification]:
        out, self.pending = self.pending, []
        return out


# -----------------------------------------------------------------------------
# Shared collection cache
# -----------------------------------------------------------------------------

class CollectionCache:
    """Lazily loaded lists keyed by resource type.

    Parameters
    ----------
    loaders : dict[str, Callable[[], list]]
        One zero-argument fetcher per resource key.
    notifier : Notifier | None
        Receives an error message when a loader fails.
    """

    def __init__(self, loaders: dict[str, Callable[[], list]], notifier: Notifier | None = None):
        self.loaders = dict(loaders)
        self.notifier = notifier
        self._entries: dict[str, list] = {}
        self._versions: dict[str, int] = {key: 0 for key in self.loaders}

    def get(self, key: str) -> list:
        """Cached list for *key*, fetching it on a miss.

        A failed fetch yields ``[]`` and is not cached, so the next read
        retries.
        """
        if key in self._entries:
            logger.debug("cache hit", extra=log_extra(key=key))
            return self._entries[key]
        try:
            loader = self.loaders[key]
        except KeyError:
            raise KeyError(f"No loader registered for {key!r}") from None

        logger.debug("cache miss", extra=log_extra(key=key))
        try:
            items = list(loader())
        except ApiError as err:
            logger.warning("collection fetch failed", extra=log_extra(key=key, error=err.message))
            if self.notifier is not None:
                self.notifier.error(err.message)
            return []
        self._entries[key] = items
        return items

    def invalidate(self, *keys: str) -> None:
        """Drop the given entries (all of them when no key is passed)."""
        for key in keys or tuple(self.loaders):
            self._entries.pop(key, None)
            self._versions[key] = self._versions.get(key, 0) + 1
        logger.debug("cache invalidated", extra=log_extra(keys=list(keys) or "all"))

    def is_cached(self, key: str) -> bool:
        return key in self._entries

    def version(self, key: str) -> int:
        return self._versions.get(key, 0)


# -----------------------------------------------------------------------------
# Session context
# -----------------------------------------------------------------------------

@dataclass
class SessionContext:
    """Everything a controller needs, passed explicitly instead of globals."""

    client: Any
    scheduler: Scheduler
    notifier: Notifier
    cache: CollectionCache
    profile_id: Optional[str] = None
    active_quote: Optional[Quote] = field(default=None)
    _profile_hooks: list[Callable[[], None]] = field(default_factory=list, repr=False)

    @property
    def clock(self) -> Clock:
        return self.scheduler.clock

    def replace_quote(self, quote: Optional[Quote]) -> None:
        self.active_quote = quote

    def on_profile_change(self, hook: Callable[[], None]) -> None:
        """Run *hook* on every profile switch, before it takes effect."""
        self._profile_hooks.append(hook)

    def replace_profile(self, profile_id: Optional[str]) -> None:
        """Switch profile: drop the quote and every cached collection."""
        if profile_id == self.profile_id:
            return
        for hook in list(self._profile_hooks):
            hook()
        self.profile_id = profile_id
        self.active_quote = None
        self.cache.invalidate()
        logger.info("profile switched", extra=log_extra(profile_id=profile_id))

    def teardown(self) -> None:
        """Release every timer of this session."""
        self.scheduler.stop_all()


def build_session(
    client: Any,
    clock: Clock | None = None,
    profile_id: Optional[str] = None,
    transfers_limit: int = 100,
) -> SessionContext:
    """Wire a :class:`SessionContext` whose cache loads from *client*."""
    clock = clock or SystemClock()
    notifier = Notifier(clock)
    loaders = {
        TRANSFERS: lambda: client.list_transfers(limit=transfers_limit),
        ORDERS: client.list_orders,
        EXECUTIONS: client.list_executions,
        CONVERSIONS: client.list_conversions,
    }
    return SessionContext(
        client=client,
        scheduler=Scheduler(clock),
        notifier=notifier,
        cache=CollectionCache(loaders, notifier),
        profile_id=profile_id,
    )
