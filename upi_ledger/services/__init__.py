"""Business logic services."""

from upi_ledger.services.ledger_store import LedgerStore
from upi_ledger.services.transfer_service import TransferService
from upi_ledger.services.profile_service import ProfileService
from upi_ledger.services.history_service import HistoryService
from upi_ledger.services.advice_service import (
    AdviceContextBuilder,
    AdviceService,
)

__all__ = [
    "LedgerStore",
    "TransferService",
    "ProfileService",
    "HistoryService",
    "AdviceContextBuilder",
    "AdviceService",
]
