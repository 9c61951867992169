"""
Profile model.

A user's account record. The id is the identity provider's
user id, the phone number is the public handle other users
send money to, and the balance is kept in minor units.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, BigInteger, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from upi_ledger.models.base import Base
from upi_ledger.money import from_minor_units


class Profile(Base):
    """
    Holds the only mutable money in the system.

    balance_minor must never go below zero. The table does not
    enforce that; the transfer service does.
    """

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    phone: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    balance_minor: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    @property
    def balance(self) -> Decimal:
        return from_minor_units(self.balance_minor)

    def __repr__(self) -> str:
        return f"<Profile {self.phone} balance={self.balance}>"
