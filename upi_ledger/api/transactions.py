"""
Transaction history endpoints.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from upi_ledger.auth import get_caller_id
from upi_ledger.errors import LedgerError
from upi_ledger.models.base import get_db
from upi_ledger.schemas.transaction import (
    SpendingSummary,
    TransactionHistoryItem,
)
from upi_ledger.services.history_service import HistoryService
from upi_ledger.services.ledger_store import LedgerStore

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.get("", response_model=list[TransactionHistoryItem])
def list_transactions(
    limit: int = Query(default=10, ge=1, le=100),
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: Session = Depends(get_db),
):
    """Get the caller's transactions, newest first."""
    service = HistoryService(LedgerStore(db))
    try:
        return service.recent_transactions(caller_id, limit=limit)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/summary", response_model=SpendingSummary)
def spending_summary(
    limit: int | None = Query(default=None, ge=1, le=1000),
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: Session = Depends(get_db),
):
    """Get the caller's outgoing payments totalled per category."""
    service = HistoryService(LedgerStore(db))
    try:
        return service.spending_by_category(caller_id, limit=limit)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
