"""
Advice API endpoint.

Forwards the caller's question, together with their balance
and recent transactions, to the language model.
"""

import uuid
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException
from openai import OpenAI
from sqlalchemy.orm import Session

from upi_ledger.auth import get_caller_id
from upi_ledger.config import get_settings
from upi_ledger.errors import LedgerError
from upi_ledger.models.base import get_db
from upi_ledger.schemas.advice import AdviceRequest, AdviceResponse
from upi_ledger.services.advice_service import (
    AdviceContextBuilder,
    AdviceService,
)
from upi_ledger.services.ledger_store import LedgerStore

router = APIRouter(tags=["Advice"])


@lru_cache()
def get_llm_client() -> OpenAI | None:
    """Return the completion API client, or None if no key is set."""
    settings = get_settings()
    if not settings.LLM_API_KEY:
        return None
    return OpenAI(base_url=settings.LLM_BASE_URL, api_key=settings.LLM_API_KEY)


@router.post("/advice", response_model=AdviceResponse)
def ask_for_advice(
    request: AdviceRequest,
    caller_id: uuid.UUID = Depends(get_caller_id),
    db: Session = Depends(get_db),
    client: OpenAI | None = Depends(get_llm_client),
):
    settings = get_settings()
    builder = AdviceContextBuilder(
        LedgerStore(db), history_limit=settings.ADVICE_HISTORY_LIMIT
    )
    service = AdviceService(builder, client, model=settings.LLM_MODEL)
    try:
        answer = service.ask(caller_id, request.question)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return AdviceResponse(answer=answer)
