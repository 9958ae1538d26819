"""errors.py

Exception hierarchy shared by the service layer.

Upstream failures always surface as :class:`ApiError` (or a subclass) so
controllers can catch one type, show ``err.message`` verbatim and keep
their state for a manual retry.
"""

from __future__ import annotations

from typing import Any

GENERIC_FAILURE = "Request failed"


class WorkbenchError(Exception):
    """Base class for every error raised by the workbench."""


class ApiError(WorkbenchError):
    """The upstream API refused a call or could not be reached.

    Attributes
    ----------
    message : str
        Human-readable text – the server's ``error`` field when present,
        otherwise the per-call fallback.
    status : int | None
        HTTP status code, ``None`` for transport failures.
    payload : Any
        Parsed error body (may be ``None``).
    """

    code = "API_ERROR"

    def __init__(self, message: str = GENERIC_FAILURE, status: int | None = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload


class QuoteUnavailable(ApiError):
    code = "QUOTE_UNAVAILABLE"


class InvalidOrder(WorkbenchError, ValueError):
    """``submit()`` was called with fields that do not pass validation."""


class EmptyExport(WorkbenchError):
    """CSV export requested over an empty filtered ledger."""


class UnknownFilter(WorkbenchError, ValueError):
    """Ledger tab name outside the known allow-list."""
