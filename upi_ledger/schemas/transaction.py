"""
Pydantic schemas for payments and transaction history.

The payment request uses camelCase on the wire (receiverPhone)
and snake_case in Python.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from upi_ledger.models.enums import Category, Direction
from upi_ledger.schemas.profile import normalize_phone


class TransferRequest(BaseModel):
    """
    A payment from the caller to the owner of receiver_phone.

    amount is deliberately not range-checked here. The transfer
    service owns that rule so it fails with InvalidAmount.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    receiver_phone: str = Field(min_length=1, max_length=20)
    amount: Decimal = Field(allow_inf_nan=False)
    category: Category = Category.OTHER
    description: str | None = Field(default=None, max_length=255)

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v):
        if v is None or v == "":
            return Category.OTHER
        return v

    @field_validator("receiver_phone", mode="before")
    @classmethod
    def canonical_phone(cls, v):
        if isinstance(v, str):
            return normalize_phone(v)
        return v


class TransferResponse(BaseModel):
    success: bool = True
    message: str = "Payment processed successfully"


class TransactionResponse(BaseModel):
    id: int
    external_id: uuid.UUID
    sender_id: uuid.UUID
    receiver_id: uuid.UUID
    amount: Decimal
    category: Category
    description: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionHistoryItem(BaseModel):
    """A transaction seen from the caller's side."""
    id: int
    direction: Direction
    counterparty_id: uuid.UUID
    counterparty_phone: str
    counterparty_name: str | None
    amount: Decimal
    category: Category
    description: str | None
    created_at: datetime


class CategorySpending(BaseModel):
    category: Category
    total: Decimal


class SpendingSummary(BaseModel):
    total_spent: Decimal
    categories: list[CategorySpending]
