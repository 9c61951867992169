"""
Transfer service — moves money from one profile to another.

Each transfer:
1. Resolves the caller's profile
2. Validates the amount and the caller's balance
3. Resolves the receiver by phone and refuses self-payments
4. Debits the caller (conditional on the balance just read)
5. Credits the receiver (conditional on the balance just read)
6. Appends the transaction record

The ledger store commits every write on its own, so steps 4-6
are held together by compensation: every balance change that
was applied is recorded, and if a later step fails the applied
changes are undone in reverse order before the error is raised.
An undo that cannot be applied is a CompensationFailure.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from upi_ledger.errors import (
    Conflict,
    CompensationFailure,
    InsufficientBalance,
    LedgerError,
    NotFound,
    PersistenceFailure,
    ReceiverNotFound,
    SelfTransfer,
)
from upi_ledger.models.transaction import Transaction
from upi_ledger.money import to_minor_units
from upi_ledger.schemas.transaction import TransferRequest
from upi_ledger.services.ledger_store import LedgerStore


@dataclass
class AppliedStep:
    """A balance change that has been committed and may need undoing."""
    name: str
    profile_id: uuid.UUID
    delta_minor: int
    applied_at: datetime


class TransferService:

    def __init__(self, store: LedgerStore, undo_attempts: int = 3):
        self.store = store
        self.undo_attempts = max(undo_attempts, 1)

    def execute(
        self,
        caller_id: uuid.UUID,
        request: TransferRequest,
        max_attempts: int = 1,
    ) -> Transaction:
        """
        Run a transfer, retrying from the start on Conflict.

        A Conflict guarantees nothing was persisted, so a retry
        re-reads both balances and validates again.
        """
        max_attempts = max(max_attempts, 1)
        for attempt in range(1, max_attempts + 1):
            try:
                return self.transfer(caller_id, request)
            except Conflict:
                if attempt == max_attempts:
                    raise
                logger.warning(
                    "Transfer conflict for {} (attempt {}/{}), retrying",
                    caller_id, attempt, max_attempts,
                )

    def transfer(
        self, caller_id: uuid.UUID, request: TransferRequest
    ) -> Transaction:
        sender = self.store.get_profile(caller_id)
        if sender is None:
            raise NotFound()

        amount_minor = to_minor_units(request.amount)

        sender_balance = sender.balance_minor
        if sender_balance < amount_minor:
            raise InsufficientBalance()

        receiver = self.store.get_profile_by_phone(request.receiver_phone)
        if receiver is None:
            raise ReceiverNotFound()

        if receiver.id == sender.id:
            raise SelfTransfer()

        receiver_id = receiver.id
        receiver_balance = receiver.balance_minor

        # Debit. A failed compare-and-swap here has changed nothing.
        debited_at = datetime.utcnow()
        if not self.store.update_balance(
            caller_id, sender_balance, sender_balance - amount_minor
        ):
            logger.warning("Debit conflict on profile {}", caller_id)
            raise Conflict()

        applied = [
            AppliedStep("debit", caller_id, -amount_minor, debited_at)
        ]
        context = {
            "caller_id": caller_id,
            "receiver_id": receiver_id,
            "amount_minor": amount_minor,
            "debit_attempted_at": debited_at,
        }

        try:
            credited_at = datetime.utcnow()
            context["credit_attempted_at"] = credited_at
            if not self.store.update_balance(
                receiver_id, receiver_balance, receiver_balance + amount_minor
            ):
                logger.warning("Credit conflict on profile {}", receiver_id)
                raise Conflict()
            applied.append(
                AppliedStep("credit", receiver_id, amount_minor, credited_at)
            )

            txn = self.store.insert_transaction(
                sender_id=caller_id,
                receiver_id=receiver_id,
                amount_minor=amount_minor,
                category=request.category,
                description=request.description,
            )
        except Exception as e:
            self._compensate(applied, context, e)
            raise

        logger.info(
            "Transfer {} of {} paise from {} to {} completed",
            txn.id, amount_minor, caller_id, receiver_id,
        )
        return txn

    def _compensate(
        self, applied: list[AppliedStep], context: dict, cause: Exception
    ) -> None:
        """Undo applied steps newest first; escalate if any undo fails."""
        logger.warning(
            "Rolling back {} step(s) of transfer from {}: {}",
            len(applied), context["caller_id"], _describe(cause),
        )
        pending = list(reversed(applied))
        while pending:
            if not self._undo(pending[0]):
                self._escalate(pending, context, cause)
            pending.pop(0)

    def _undo(self, step: AppliedStep) -> bool:
        """
        Reverse one step, retrying while the row is locked.

        A Conflict from the store means the increment was not
        written, so it is safe to try again.
        """
        for attempt in range(1, self.undo_attempts + 1):
            try:
                return self.store.adjust_balance(
                    step.profile_id, -step.delta_minor
                )
            except Conflict:
                logger.warning(
                    "Undo of {} on {} hit a lock (attempt {}/{})",
                    step.name, step.profile_id, attempt, self.undo_attempts,
                )
            except PersistenceFailure:
                return False
        return False

    def _escalate(
        self, pending: list[AppliedStep], context: dict, cause: Exception
    ) -> None:
        details = dict(context)
        details["cause"] = _describe(cause)
        details["unreversed_steps"] = [
            {
                "step": s.name,
                "profile_id": s.profile_id,
                "delta_minor": s.delta_minor,
                "applied_at": s.applied_at,
            }
            for s in pending
        ]
        logger.critical(
            "LEDGER INCONSISTENT: transfer compensation failed, "
            "manual reconciliation required: {}",
            details,
        )
        try:
            self.store.record_audit("COMPENSATION_FAILURE", details)
        except (Conflict, PersistenceFailure):
            logger.critical(
                "Could not write compensation failure to audit log for "
                "transfer from {}", context["caller_id"],
            )
        raise CompensationFailure(details) from cause


def _describe(error: Exception) -> str:
    if isinstance(error, LedgerError):
        return error.message
    return f"{type(error).__name__}: {error}"
