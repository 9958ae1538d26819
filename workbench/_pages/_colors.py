"""_colors.py

Colour utilities for the ledger and order tables.

The module provides:
* Emoji *status lights* (`_STATUS_LIGHT`) used in headers and the
  transfer progress indicator.
* Badge palettes keyed by status family and by transaction type.
* `contrast_text_color` to keep text legible on any badge colour.
* `_row_style`, the hook passed to ``DataFrame.style.apply``.
"""

from __future__ import annotations

from typing import List

import pandas as pd

from workbench.services.ledger import COMPLETED_STATUSES, FAILED_STATUSES, PENDING_STATUSES

# -----------------------------------------------------------------------------
# PUBLIC CONSTANTS – status → emoji / colour
# -----------------------------------------------------------------------------
_STATUS_LIGHT: dict[str, str] = {
    "success": "🟢",
    "warning": "🟡",
    "error": "🔴",
    "neutral": "⚪",
}

_BADGE_BG: dict[str, str] = {
    "success": "#00D4AA",
    "warning": "#F5A623",
    "error": "#FF5B5B",
    "neutral": "#8892B0",
}

TYPE_COLORS: dict[str, str] = {
    "deposit": "#00D4AA",
    "withdrawal": "#FF5B5B",
    "trade": "#7B5EA7",
    "conversion": "#F5A623",
    "transfer": "#627EEA",
}

DIRECTION_SIGN: dict[str, str] = {"in": "+", "out": "-", "neutral": ""}


def status_variant(status: str) -> str:
    """Bucket a raw status into success / warning / error / neutral."""
    upper = (status or "").upper()
    if upper in COMPLETED_STATUSES:
        return "success"
    if upper in PENDING_STATUSES:
        return "warning"
    if upper in FAILED_STATUSES:
        return "error"
    return "neutral"


def status_light(status: str) -> str:
    return _STATUS_LIGHT[status_variant(status)]


def contrast_text_color(bg_hex: str) -> str:  # noqa: D401
    """Pick black or white text for best contrast on *bg_hex*.

    Uses the YIQ perceptual luminance formula and returns **black** if the
    background is light, **white** otherwise.
    """
    h = bg_hex.lstrip("#")
    if len(h) == 3:  # allow shorthand e.g. #fff
        h = "".join(ch * 2 for ch in h)
    r, g, b = int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)
    yiq = (r * 299 + g * 587 + b * 114) / 1000
    return "#000000" if yiq >= 128 else "#ffffff"

# -----------------------------------------------------------------------------
# Main styling hook used by dataframe.style.apply
# -----------------------------------------------------------------------------

def _row_style(row: pd.Series) -> List[str]:
    """Colour only the ``Status`` and ``Type`` cells of a ledger row."""
    styles = [""] * len(row)
    cols = list(row.index)

    if "Status" in cols:
        bg = _BADGE_BG[status_variant(str(row["Status"]))]
        styles[cols.index("Status")] = f"background-color:{bg};color:{contrast_text_color(bg)}"
    if "Type" in cols:
        fg = TYPE_COLORS.get(str(row["Type"]))
        if fg:
            styles[cols.index("Type")] = f"color:{fg};font-weight:600"
    return styles
