"""withdrawals.py

Crypto and fiat withdrawals.  A successful submission returns a
:class:`~workbench.services.model.Transfer` whose id is handed to a
:class:`~workbench.services.tracker.TransferStatusTracker`.

Crypto withdrawals need a fee estimate for the exact inputs before they
can be submitted; editing any input invalidates the estimate.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from workbench.logger import setup_logger, log_extra
from .errors import ApiError
from .model import FeeEstimate, Transfer, parse_positive
from .session import TRANSFERS, SessionContext
from .tracker import TransferStatusTracker

logger = setup_logger(__name__)

ASSET_NETWORKS: dict[str, tuple[str, ...]] = {
    "BTC": ("BITCOIN",),
    "ETH": ("ETHEREUM",),
    "USDP": ("ETHEREUM", "SOLANA"),
    "PYUSD": ("ETHEREUM", "SOLANA", "STELLAR"),
    "USDG": ("ETHEREUM", "SOLANA", "INK"),
    "USDL": ("ETHEREUM",),
    "PAXG": ("ETHEREUM",),
}

CRYPTO_KIND = "CRYPTO_WITHDRAWAL"
FIAT_KIND = "FIAT_WITHDRAWAL"


@dataclass
class CryptoWithdrawalForm:
    asset: str = ""
    network: str = ""
    destination_address: str = ""
    amount: str = ""

    def key(self) -> tuple[str, str, str, str]:
        return (self.asset, self.network, self.destination_address.strip(), self.amount.strip())


@dataclass
class FiatWithdrawalForm:
    fiat_account_id: str = ""
    amount: str = ""
    asset: str = "USD"


def default_network(asset: str) -> str:
    """The only network of a single-network asset, else blank (user picks)."""
    networks = ASSET_NETWORKS.get(asset, ())
    return networks[0] if len(networks) == 1 else ""


class WithdrawalController:
    """Fee estimate, validation and submission for both withdrawal kinds."""

    def __init__(self, session: SessionContext, interval_ms: int | None = None):
        self.session = session
        self.crypto_tracker = TransferStatusTracker(session, CRYPTO_KIND, interval_ms)
        self.fiat_tracker = TransferStatusTracker(session, FIAT_KIND, interval_ms)
        self._fee: Optional[FeeEstimate] = None
        self._fee_key: Optional[tuple] = None

    # ------------------------------------------------------------------
    # Crypto
    # ------------------------------------------------------------------
    def can_estimate_fee(self, form: CryptoWithdrawalForm) -> bool:
        return bool(
            form.asset
            and form.network in ASSET_NETWORKS.get(form.asset, ())
            and form.destination_address.strip()
            and parse_positive(form.amount) is not None
        )

    def fee_for(self, form: CryptoWithdrawalForm) -> Optional[FeeEstimate]:
        """The estimate, only while it still belongs to *form*'s inputs."""
        return self._fee if self._fee_key == form.key() else None

    def estimate_fee(self, form: CryptoWithdrawalForm) -> Optional[FeeEstimate]:
        if not self.can_estimate_fee(form):
            return None
        try:
            fee = self.session.client.estimate_fee(
                form.asset, form.network, form.amount.strip(), form.destination_address.strip()
            )
        except ApiError as err:
            logger.warning("fee estimate failed", extra=log_extra(asset=form.asset, error=err.message))
            self.session.notifier.error(err.message)
            return None
        self._fee, self._fee_key = fee, form.key()
        return fee

    def total_deducted(self, form: CryptoWithdrawalForm) -> Optional[Decimal]:
        fee = self.fee_for(form)
        amount = parse_positive(form.amount)
        if fee is None or amount is None:
            return None
        try:
            return amount + Decimal(fee.fee)
        except ArithmeticError:
            return None

    def can_submit_crypto(self, form: CryptoWithdrawalForm) -> bool:
        return self.can_estimate_fee(form) and self.fee_for(form) is not None

    def submit_crypto(self, form: CryptoWithdrawalForm) -> Optional[Transfer]:
        if not self.can_submit_crypto(form):
            return None
        try:
            transfer = self.session.client.create_crypto_withdrawal(
                form.asset, form.network, form.amount.strip(), form.destination_address.strip()
            )
        except ApiError as err:
            return self._rejected(err, form.asset)
        self._fee = self._fee_key = None
        return self._accepted(transfer, self.crypto_tracker)

    # ------------------------------------------------------------------
    # Fiat
    # ------------------------------------------------------------------
    def can_submit_fiat(self, form: FiatWithdrawalForm) -> bool:
        return bool(form.fiat_account_id) and parse_positive(form.amount) is not None

    def submit_fiat(self, form: FiatWithdrawalForm) -> Optional[Transfer]:
        if not self.can_submit_fiat(form):
            return None
        try:
            transfer = self.session.client.create_fiat_withdrawal(
                form.fiat_account_id, form.amount.strip(), asset=form.asset
            )
        except ApiError as err:
            return self._rejected(err, form.asset)
        return self._accepted(transfer, self.fiat_tracker)

    # ------------------------------------------------------------------
    # Shared
    # ------------------------------------------------------------------
    def close(self) -> None:
        self.crypto_tracker.close()
        self.fiat_tracker.close()

    def reopen(self) -> None:
        """Pick up polling again for any transfer still in flight."""
        self.crypto_tracker.resume()
        self.fiat_tracker.resume()

    def _accepted(self, transfer: Transfer, tracker: TransferStatusTracker) -> Transfer:
        self.session.cache.invalidate(TRANSFERS)
        self.session.notifier.success("Withdrawal submitted")
        logger.info(
            "withdrawal submitted",
            extra=log_extra(transfer_id=transfer.id, kind=tracker.kind, status=transfer.status),
        )
        tracker.track(transfer)
        return transfer

    def _rejected(self, err: ApiError, asset: str) -> None:
        logger.warning("withdrawal rejected", extra=log_extra(asset=asset, status=err.status, error=err.message))
        self.session.notifier.error(err.message)
        return None
