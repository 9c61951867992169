"""
Pydantic schemas for profile operations.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

COUNTRY_PREFIXES = ("+91", "91")
NATIONAL_NUMBER_LENGTH = 10

# Ten-digit Indian mobile number, after normalize_phone
PHONE_PATTERN = r"^[6-9]\d{9}$"


def normalize_phone(value: str) -> str:
    """
    Reduce a mobile number to its ten national digits.

    Whitespace is removed and a leading +91 or 91 is dropped
    when ten digits remain, so '+91 98765 43210', '919876543210'
    and '9876543210' all name the same profile.
    """
    value = "".join(value.split())
    for prefix in COUNTRY_PREFIXES:
        if (value.startswith(prefix)
                and len(value) == len(prefix) + NATIONAL_NUMBER_LENGTH):
            return value[len(prefix):]
    return value


class ProfileCreate(BaseModel):
    """Signup payload. The id comes from the caller's credential."""
    phone: str = Field(pattern=PHONE_PATTERN)
    name: str | None = Field(default=None, max_length=100)
    email: str | None = Field(default=None, min_length=5, max_length=255)

    @field_validator("phone", mode="before")
    @classmethod
    def canonical_phone(cls, v):
        if isinstance(v, str):
            return normalize_phone(v)
        return v


class ProfileResponse(BaseModel):
    id: uuid.UUID
    phone: str
    name: str | None
    email: str | None
    balance: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}
