"""ledger.py

Unified transaction history built from three unrelated record types.

Pipeline
--------
1. **Normalize** – one pure mapper per source type turns a Transfer,
   Order or Conversion into a canonical :class:`Transaction`.
2. **Merge** – the three streams are concatenated and sorted by ``date``,
   newest first.  Every later stage preserves that order.
3. **Filter** – tab allow-list → inclusive date range → case-insensitive
   search over id, asset, type, status and amount.
4. **Paginate / export** – prefix slices of 20 rows and a CSV dump of the
   whole filtered result.

Transfer classification
-----------------------
The ``direction`` enum is authoritative: CREDIT/IN → deposit,
DEBIT/OUT → withdrawal.  The free-text ``type`` (``"...DEPOSIT..."``,
``"...WITHDRAW..."``) is consulted only when ``direction`` is missing or
unrecognised; a record with neither signal stays a plain ``transfer``.
"""

from __future__ import annotations

# -----------------------------------------------------------------------------
# Standard library & 3rd-party imports
# -----------------------------------------------------------------------------
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional, Union
from zoneinfo import ZoneInfo

import pandas as pd

from workbench.config import settings
from .errors import EmptyExport, UnknownFilter
from .model import Conversion, Order, Transaction, Transfer
from .session import CONVERSIONS, ORDERS, TRANSFERS, CollectionCache

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
TAB_TYPES: dict[str, Optional[frozenset[str]]] = {
    "all": None,
    "deposits": frozenset({"deposit"}),
    "withdrawals": frozenset({"withdrawal"}),
    "trades": frozenset({"trade"}),
    "conversions": frozenset({"conversion"}),
    "transfers": frozenset({"transfer"}),
}

CSV_COLUMNS = ["Date", "Type", "Asset", "Amount", "Direction", "Status", "ID"]

LEDGER_ORDER_STATUSES = frozenset({"FILLED", "PARTIALLY_FILLED"})
CREDIT_DIRECTIONS = frozenset({"CREDIT", "IN"})
DEBIT_DIRECTIONS = frozenset({"DEBIT", "OUT"})

COMPLETED_STATUSES = frozenset({"COMPLETED", "FILLED", "APPROVED"})
PENDING_STATUSES = frozenset({"PENDING", "PROCESSING", "OPEN", "PARTIALLY_FILLED"})
FAILED_STATUSES = frozenset({"FAILED", "CANCELLED", "EXPIRED"})

NA = "N/A"
DETAIL_TS_FMT = "%Y-%m-%d %H:%M:%S UTC"

SourceRecord = Union[Transfer, Order, Conversion]


def _fmt_ts(ts: Optional[datetime]) -> str:
    return ts.astimezone(timezone.utc).strftime(DETAIL_TS_FMT) if ts else NA


# -----------------------------------------------------------------------------
# 1) Per-source mappers
# -----------------------------------------------------------------------------

def classify_transfer(t: Transfer) -> str:
    """deposit / withdrawal / transfer – see module docstring for precedence."""
    direction = (t.direction or "").upper()
    if direction in CREDIT_DIRECTIONS:
        return "deposit"
    if direction in DEBIT_DIRECTIONS:
        return "withdrawal"

    kind = (t.type or "").lower()
    if "deposit" in kind:
        return "deposit"
    if "withdraw" in kind:
        return "withdrawal"
    return "transfer"


def normalize_transfer(t: Transfer) -> Transaction:
    tx_type = classify_transfer(t)
    return Transaction(
        id=t.id,
        type=tx_type,
        asset=t.asset,
        amount=t.amount,
        usd_value=t.amount,
        status=t.status,
        date=t.created_at,
        direction="in" if tx_type == "deposit" else "out",
        details={
            "Transfer ID": t.id,
            "Type": t.type or NA,
            "Direction": t.direction or NA,
            "Destination Address": t.destination_address or NA,
            "Fee": t.fee or "0",
            "Created At": _fmt_ts(t.created_at),
            "Updated At": _fmt_ts(t.updated_at),
        },
        source=t,
    )


def market_base(market: str) -> str:
    """``BTCUSD`` / ``BTC/USD`` / ``BTC-USD`` → ``BTC``."""
    for sep in ("/", "-", "_"):
        if sep in market:
            return market.split(sep, 1)[0]
    if market.endswith("USD") and len(market) > 3:
        return market[:-3]
    return market


def normalize_order(o: Order) -> Transaction:
    amount = o.amount or o.base_amount or "0"
    return Transaction(
        id=o.id,
        type="trade",
        asset=market_base(o.market),
        amount=amount,
        usd_value=o.quote_amount or amount,
        status=o.status,
        date=o.created_at,
        direction="in" if o.side == "BUY" else "out",
        details={
            "Order ID": o.id,
            "Market": o.market,
            "Side": o.side,
            "Type": o.type,
            "Price": o.price or "Market",
            "Amount": o.amount or NA,
            "Base Amount": o.base_amount or NA,
            "Quote Amount": o.quote_amount or NA,
            "Status": o.status,
            "Time in Force": o.time_in_force or NA,
            "Created At": _fmt_ts(o.created_at),
        },
        source=o,
    )


def normalize_conversion(c: Conversion) -> Transaction:
    return Transaction(
        id=c.id,
        type="conversion",
        asset=f"{c.source_asset} > {c.target_asset}",
        amount=c.amount,
        usd_value=c.amount,
        status=c.status,
        date=c.created_at,
        direction="neutral",
        details={
            "Conversion ID": c.id,
            "From Asset": c.source_asset,
            "To Asset": c.target_asset,
            "Amount": c.amount,
            "Status": c.status,
            "Created At": _fmt_ts(c.created_at),
        },
        source=c,
    )


# -----------------------------------------------------------------------------
# 2) Merge
# -----------------------------------------------------------------------------

def normalize(
    transfers: Iterable[Transfer] = (),
    orders: Iterable[Order] = (),
    conversions: Iterable[Conversion] = (),
) -> list[Transaction]:
    """Canonical ledger, newest first.

    Orders that never (partially) filled are left out.
    """
    merged = [
        *(normalize_transfer(t) for t in transfers),
        *(normalize_order(o) for o in orders if o.status in LEDGER_ORDER_STATUSES),
        *(normalize_conversion(c) for c in conversions),
    ]
    merged.sort(key=lambda tx: tx.date, reverse=True)
    return merged


def from_cache(cache: CollectionCache) -> list[Transaction]:
    """Re-derive the ledger from the shared collection cache."""
    return normalize(cache.get(TRANSFERS), cache.get(ORDERS), cache.get(CONVERSIONS))


# -----------------------------------------------------------------------------
# 3) Filter
# -----------------------------------------------------------------------------

def _bound(value: Union[date, datetime, None], tz: ZoneInfo, end: bool) -> Optional[datetime]:
    """Calendar dates cover the whole day in *tz*; datetimes are exact."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=tz)
    return datetime.combine(value, time.max if end else time.min, tzinfo=tz)


def filter_transactions(
    transactions: Iterable[Transaction],
    tab: str = "all",
    date_from: Union[date, datetime, None] = None,
    date_to: Union[date, datetime, None] = None,
    query: str = "",
    tz: str | ZoneInfo | None = None,
) -> list[Transaction]:
    """Narrow *transactions* by tab, inclusive date range and search text.

    Parameters
    ----------
    tab : str
        One of ``all, deposits, withdrawals, trades, conversions, transfers``.
    date_from, date_to : date | datetime | None
        Inclusive bounds; a plain ``date`` spans the whole day in *tz*.
    query : str
        Case-insensitive substring of id, asset, type, status or amount.
    tz : str | ZoneInfo | None
        Zone for plain dates; defaults to ``LOCAL_TZ``.

    Raises
    ------
    UnknownFilter
        *tab* is not in the allow-list.
    """
    if tab not in TAB_TYPES:
        raise UnknownFilter(f"Unknown ledger tab {tab!r}; expected one of {', '.join(TAB_TYPES)}")
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz or settings()["LOCAL_TZ"])

    out = list(transactions)

    allowed = TAB_TYPES[tab]
    if allowed is not None:
        out = [t for t in out if t.type in allowed]

    lo, hi = _bound(date_from, zone, end=False), _bound(date_to, zone, end=True)
    if lo is not None:
        out = [t for t in out if t.date >= lo]
    if hi is not None:
        out = [t for t in out if t.date <= hi]

    q = (query or "").strip().lower()
    if q:
        out = [
            t for t in out
            if any(q in field.lower() for field in (t.id, t.asset, t.type, t.status, t.amount))
        ]
    return out


# -----------------------------------------------------------------------------
# 4) Pagination, stats, export
# -----------------------------------------------------------------------------

class LedgerPage:
    """Prefix view over a filtered ledger that grows by *page_size* rows."""

    def __init__(self, page_size: int | None = None):
        self.page_size = page_size or settings()["PAGE_SIZE"]
        self.count = self.page_size

    def visible(self, transactions: list[Transaction]) -> list[Transaction]:
        return transactions[: self.count]

    def has_more(self, transactions: list[Transaction]) -> bool:
        return self.count < len(transactions)

    def show_more(self) -> int:
        self.count += self.page_size
        return self.count

    def reset(self) -> None:
        self.count = self.page_size


def stats(transactions: Iterable[Transaction]) -> dict[str, int]:
    """Headline counters: total / completed / pending / failed."""
    rows = list(transactions)
    return {
        "total": len(rows),
        "completed": sum(t.status in COMPLETED_STATUSES for t in rows),
        "pending": sum(t.status in PENDING_STATUSES for t in rows),
        "failed": sum(t.status in FAILED_STATUSES for t in rows),
    }


def iso_instant(ts: datetime) -> str:
    """``2024-03-01T12:00:00.000Z`` – UTC with millisecond precision."""
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """One row per transaction in the given order, CSV column names."""
    records = [
        {
            "Date": iso_instant(t.date),
            "Type": t.type,
            "Asset": t.asset,
            "Amount": t.amount,
            "Direction": t.direction,
            "Status": t.status,
            "ID": t.id,
        }
        for t in transactions
    ]
    return pd.DataFrame(records, columns=CSV_COLUMNS)


def to_csv(transactions: Iterable[Transaction]) -> str:
    """Header plus one line per transaction (no trailing newline)."""
    frame = to_frame(transactions)
    return frame.to_csv(index=False, lineterminator="\n").rstrip("\n")


def export_filename(today: date | None = None, prefix: str | None = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"{prefix or settings()['EXPORT_PREFIX']}-{today.isoformat()}.csv"


def export_csv(transactions: list[Transaction], today: date | None = None) -> tuple[str, str]:
    """``(filename, csv_text)`` for the filtered ledger.

    Raises
    ------
    EmptyExport
        Nothing to export – the view shows a notice instead of a file.
    """
    if not transactions:
        raise EmptyExport("No transactions to export")
    return export_filename(today), to_csv(transactions)
