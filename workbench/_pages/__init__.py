"""Registry of Streamlit pages so main.py can route dynamically."""
from typing import Callable

from . import history, trade, withdraw

Page = Callable[[], None]

registry: dict[str, Page] = {
    "Trade": trade.render,
    "Withdraw": withdraw.render,
    "History": history.render,
}

__all__ = ["registry"]
