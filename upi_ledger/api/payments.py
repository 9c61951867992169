"""
Payment API endpoint.

The API layer is thin — it handles HTTP concerns and
delegates all business logic to the TransferService.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from upi_ledger.auth import get_caller_id
from upi_ledger.config import get_settings
from upi_ledger.errors import LedgerError
from upi_ledger.models.base import get_db
from upi_ledger.schemas.transaction import TransferRequest, TransferResponse
from upi_ledger.services.ledger_store import LedgerStore
from upi_ledger.services.transfer_service import TransferService

router = APIRouter(tags=["Payments"])


@router.post("/payments", response_model=TransferResponse)
def process_payment(
    request: TransferRequest,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: Session = Depends(get_db),
):
    """
    Send money to the profile registered under receiverPhone.

    A concurrent change to either balance is retried a few
    times before the request fails with 409.
    """
    attempts = get_settings().TRANSFER_MAX_ATTEMPTS
    service = TransferService(LedgerStore(db), undo_attempts=attempts)
    try:
        service.execute(caller_id, request, max_attempts=attempts)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return TransferResponse()
