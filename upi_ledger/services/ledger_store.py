"""
Ledger store — the only code that touches profiles and transactions.

The store behaves like a hosted table API: every write is
committed on its own and there is no way for a caller to
group several writes into one database transaction. Keeping
the ledger consistent across rows is the transfer service's job.

Two balance writes are offered:
1. update_balance — compare-and-swap on the balance the caller read
2. adjust_balance — atomic increment, used only to undo a step

Infrastructure errors are rolled back and raised as
PersistenceFailure so that callers never see SQLAlchemy types.
Lock contention with another writer is raised as Conflict instead,
since nothing was written and the caller may retry.
"""

import json
import uuid

from loguru import logger
from sqlalchemy import select, update, or_
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from upi_ledger.errors import Conflict, PersistenceFailure
from upi_ledger.models.audit_log import AuditLog
from upi_ledger.models.enums import Category
from upi_ledger.models.profile import Profile
from upi_ledger.models.transaction import Transaction

# serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_PG_CODES = {"40001", "40P01", "55P03"}


class LedgerStore:
    """
    Read and write access to the ledger tables.

    The store takes a database session as a constructor
    argument, one per request.
    """

    def __init__(self, db: Session):
        self.db = db

    # --- Reads ---

    def get_profile(self, profile_id: uuid.UUID) -> Profile | None:
        """
        Fetch a profile by id.

        populate_existing forces a reload so a balance cached in
        the identity map is never used as the expected value
        of a conditional write.
        """
        return self._read_one(
            select(Profile).where(Profile.id == profile_id)
        )

    def get_profile_by_phone(self, phone: str) -> Profile | None:
        return self._read_one(
            select(Profile).where(Profile.phone == phone)
        )

    def list_transactions(
        self, participant_id: uuid.UUID, limit: int | None = None
    ) -> list[Transaction]:
        """Return transactions the participant sent or received, newest first."""
        stmt = (
            select(Transaction)
            .where(or_(
                Transaction.sender_id == participant_id,
                Transaction.receiver_id == participant_id,
            ))
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._read_all(stmt)

    def list_sent_transactions(
        self, sender_id: uuid.UUID, limit: int | None = None
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.sender_id == sender_id)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._read_all(stmt)

    # --- Writes ---

    def create_profile(
        self,
        profile_id: uuid.UUID,
        phone: str,
        balance_minor: int,
        name: str | None = None,
        email: str | None = None,
    ) -> Profile:
        profile = Profile(
            id=profile_id,
            phone=phone,
            name=name,
            email=email,
            balance_minor=balance_minor,
        )
        self.db.add(profile)
        self._commit("create profile")
        return profile

    def update_balance(
        self, profile_id: uuid.UUID, expected_minor: int, new_minor: int
    ) -> bool:
        """
        Set a balance only if it still holds the expected value.

        Returns False when the row is missing or another request
        changed the balance since it was read. Nothing is written
        in that case.
        """
        stmt = (
            update(Profile)
            .where(
                Profile.id == profile_id,
                Profile.balance_minor == expected_minor,
            )
            .values(balance_minor=new_minor)
            .execution_options(synchronize_session=False)
        )
        return self._write_row(stmt, "update balance")

    def adjust_balance(self, profile_id: uuid.UUID, delta_minor: int) -> bool:
        """
        Atomically add delta_minor to a balance.

        The write is refused (returns False) if it would take the
        balance below zero or the row does not exist.
        """
        stmt = (
            update(Profile)
            .where(
                Profile.id == profile_id,
                Profile.balance_minor + delta_minor >= 0,
            )
            .values(balance_minor=Profile.balance_minor + delta_minor)
            .execution_options(synchronize_session=False)
        )
        return self._write_row(stmt, "adjust balance")

    def insert_transaction(
        self,
        sender_id: uuid.UUID,
        receiver_id: uuid.UUID,
        amount_minor: int,
        category: Category,
        description: str | None,
    ) -> Transaction:
        txn = Transaction(
            sender_id=sender_id,
            receiver_id=receiver_id,
            amount_minor=amount_minor,
            category=category,
            description=description,
        )
        self.db.add(txn)
        self._commit("insert transaction")
        return txn

    def record_audit(self, event_type: str, details: dict) -> AuditLog:
        entry = AuditLog(
            event_type=event_type,
            details=json.dumps(details, default=str, sort_keys=True),
        )
        self.db.add(entry)
        self._commit("record audit")
        return entry

    # --- Internals ---

    def _read_one(self, stmt):
        try:
            return self.db.execute(
                stmt.execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            self._fail("read", e)

    def _read_all(self, stmt):
        try:
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self._fail("read", e)

    def _write_row(self, stmt, operation: str) -> bool:
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail(operation, e)
        return result.rowcount == 1

    def _commit(self, operation: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail(operation, e)

    def _fail(self, operation: str, error: SQLAlchemyError):
        self.db.rollback()
        if _is_contention(error):
            logger.warning("Write contention during {}: {}", operation, error)
            raise Conflict() from error
        logger.error("Ledger store failed to {}: {}", operation, error)
        raise PersistenceFailure(f"Failed to {operation}") from error


def _is_contention(error: SQLAlchemyError) -> bool:
    """True when the database refused the statement because of another writer."""
    if not isinstance(error, OperationalError):
        return False
    orig = getattr(error, "orig", None)
    if getattr(orig, "pgcode", None) in RETRYABLE_PG_CODES:
        return True
    return "database is locked" in str(orig)
