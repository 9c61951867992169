"""
Audit log model.

Records events an operator has to look at. A compensation
failure leaves the ledger inconsistent, and this table is
where it gets written down for manual reconciliation.
"""

from datetime import datetime

from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from upi_ledger.models.base import Base


class AuditLog(Base):
    """
    Immutable record of a system event.

    Audit rows are append-only. You never update
    or delete an audit record.
    """

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
