"""Public service API."""
from .api import UpstreamClient, default_client
from .errors import ApiError, EmptyExport, InvalidOrder, QuoteUnavailable, UnknownFilter, WorkbenchError
from .model import Conversion, Order, Quote, Transaction, Transfer
from .orders import OrderForm, OrderSubmissionController
from .quotes import QuoteManager
from .scheduler import ManualClock, Scheduler, SystemClock
from .session import SessionContext, build_session
from .tracker import TransferStatusTracker
from .withdrawals import CryptoWithdrawalForm, FiatWithdrawalForm, WithdrawalController

__all__ = [
    "UpstreamClient",
    "default_client",
    "ApiError",
    "EmptyExport",
    "InvalidOrder",
    "QuoteUnavailable",
    "UnknownFilter",
    "WorkbenchError",
    "Conversion",
    "Order",
    "Quote",
    "Transaction",
    "Transfer",
    "OrderForm",
    "OrderSubmissionController",
    "QuoteManager",
    "ManualClock",
    "Scheduler",
    "SystemClock",
    "SessionContext",
    "build_session",
    "TransferStatusTracker",
    "CryptoWithdrawalForm",
    "FiatWithdrawalForm",
    "WithdrawalController",
]
