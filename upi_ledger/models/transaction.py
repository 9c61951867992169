"""
Transaction model.

One row per completed transfer. Rows are written as the last
step of a successful payment and are never updated or deleted.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, DateTime, BigInteger, ForeignKey,
    Enum as SAEnum, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from upi_ledger.models.base import Base
from upi_ledger.models.enums import Category
from upi_ledger.money import from_minor_units


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, unique=True, nullable=False, default=uuid.uuid4
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("profiles.id"), nullable=False, index=True
    )
    receiver_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("profiles.id"), nullable=False, index=True
    )
    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    category: Mapped[Category] = mapped_column(
        SAEnum(
            Category,
            name="category_enum",
            values_callable=lambda e: [c.value for c in e],
            create_constraint=True,
        ),
        nullable=False,
        default=Category.OTHER,
    )
    description: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, index=True
    )

    # Relationships
    sender: Mapped["Profile"] = relationship(foreign_keys=[sender_id])
    receiver: Mapped["Profile"] = relationship(foreign_keys=[receiver_id])

    @property
    def amount(self) -> Decimal:
        return from_minor_units(self.amount_minor)

    def __repr__(self) -> str:
        return (
            f"<Transaction {self.amount} {self.category.value} "
            f"{self.sender_id} -> {self.receiver_id}>"
        )
