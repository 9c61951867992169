"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from upi_ledger.models.base import Base
from upi_ledger.models.enums import Category, Direction
from upi_ledger.models.audit_log import AuditLog
from upi_ledger.models.profile import Profile
from upi_ledger.models.transaction import Transaction

__all__ = [
    "Base",
    "Category",
    "Direction",
    "AuditLog",
    "Profile",
    "Transaction",
]
