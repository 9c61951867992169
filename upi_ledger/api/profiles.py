"""
Profile API endpoints.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from upi_ledger.auth import get_caller_id
from upi_ledger.config import get_settings
from upi_ledger.errors import LedgerError
from upi_ledger.models.base import get_db
from upi_ledger.schemas.profile import ProfileCreate, ProfileResponse
from upi_ledger.services.ledger_store import LedgerStore
from upi_ledger.services.profile_service import ProfileService

router = APIRouter(prefix="/profiles", tags=["Profiles"])


def _service(db: Session) -> ProfileService:
    return ProfileService(LedgerStore(db), get_settings().STARTING_BALANCE)


@router.post("", response_model=ProfileResponse, status_code=201)
def create_profile(
    request: ProfileCreate,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: Session = Depends(get_db),
):
    """Create the caller's profile with the starting balance."""
    try:
        return _service(db).create_profile(caller_id, request)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/me", response_model=ProfileResponse)
def get_my_profile(
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: Session = Depends(get_db),
):
    """Get the caller's profile, including the current balance."""
    try:
        return _service(db).get_profile(caller_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
