"""
Tests for the TransferService.

Tests cover:
- Balance conservation on successful transfers
- Every business-rule rejection, with no state change
- Stale reads detected as Conflict, and retried
- Compensation after a failed credit or a failed record write
- Escalation when compensation itself fails
- Two concurrent transfers racing for the same balance
"""

import json
import threading
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import (
    ALICE_ID, BOB_ID, CAROL_ID,
    ALICE_PHONE, BOB_PHONE, CAROL_PHONE,
    make_profile,
)
from upi_ledger.errors import (
    CompensationFailure,
    Conflict,
    InsufficientBalance,
    InvalidAmount,
    NotFound,
    PersistenceFailure,
    ReceiverNotFound,
    SelfTransfer,
)
from upi_ledger.models.audit_log import AuditLog
from upi_ledger.models.enums import Category
from upi_ledger.models.transaction import Transaction
from upi_ledger.schemas.transaction import TransferRequest
from upi_ledger.services.ledger_store import LedgerStore
from upi_ledger.services.transfer_service import TransferService


def pay(phone, amount, category=None, description=None):
    return TransferRequest(
        receiver_phone=phone,
        amount=Decimal(amount),
        category=category,
        description=description,
    )


def balance_of(store, profile_id) -> Decimal:
    return store.get_profile(profile_id).balance


def count_transactions(db_session) -> int:
    return db_session.execute(
        select(func.count()).select_from(Transaction)
    ).scalar()


@pytest.fixture
def accounts(store):
    make_profile(store, ALICE_ID, ALICE_PHONE, "100.00")
    make_profile(store, BOB_ID, BOB_PHONE, "50.00")
    make_profile(store, CAROL_ID, CAROL_PHONE, "0.00")


# --- Stores that misbehave on purpose ---

class RacingStore(LedgerStore):
    """Another request changes the sender's balance just before our debit."""

    def __init__(self, db, racer_delta_minor, races=1):
        super().__init__(db)
        self.racer_delta_minor = racer_delta_minor
        self.races = races

    def update_balance(self, profile_id, expected_minor, new_minor):
        if profile_id == ALICE_ID and self.races > 0:
            self.races -= 1
            self.adjust_balance(profile_id, self.racer_delta_minor)
        return super().update_balance(profile_id, expected_minor, new_minor)


class FailingCreditStore(LedgerStore):
    """The receiver's balance write is rejected by the database."""

    def update_balance(self, profile_id, expected_minor, new_minor):
        if profile_id != ALICE_ID:
            raise PersistenceFailure("Failed to update balance")
        return super().update_balance(profile_id, expected_minor, new_minor)


class FailingRecordStore(LedgerStore):
    """Both balances move, then the transaction insert fails."""

    def insert_transaction(self, **kwargs):
        raise PersistenceFailure("Failed to insert transaction")


class BrokenUndoStore(FailingRecordStore):
    """The record write fails and so does every reversal."""

    def adjust_balance(self, profile_id, delta_minor):
        return False


class ReceiverOnlyUndoFailsStore(FailingRecordStore):
    """Reversing the credit fails; reversing the debit would work."""

    def adjust_balance(self, profile_id, delta_minor):
        if profile_id == BOB_ID:
            raise PersistenceFailure("Failed to adjust balance")
        return super().adjust_balance(profile_id, delta_minor)


class LockedOnceUndoStore(FailingRecordStore):
    """The first reversal finds the row locked by another writer."""

    def __init__(self, db):
        super().__init__(db)
        self.locks = 1

    def adjust_balance(self, profile_id, delta_minor):
        if self.locks > 0:
            self.locks -= 1
            raise Conflict()
        return super().adjust_balance(profile_id, delta_minor)


class AlwaysLockedUndoStore(FailingRecordStore):
    """Every reversal finds the row locked."""

    def adjust_balance(self, profile_id, delta_minor):
        raise Conflict()


class CrashingRecordStore(LedgerStore):
    """The record write fails with an error the store does not wrap."""

    def insert_transaction(self, **kwargs):
        raise RuntimeError("connection reset")


# --- Successful Transfers ---

class TestTransfer:

    def test_transfer_moves_amount(self, store, accounts):
        service = TransferService(store)
        service.transfer(ALICE_ID, pay(BOB_PHONE, "40.00"))

        assert balance_of(store, ALICE_ID) == Decimal("60.00")
        assert balance_of(store, BOB_ID) == Decimal("90.00")

    def test_total_balance_conserved(self, store, accounts):
        before = balance_of(store, ALICE_ID) + balance_of(store, BOB_ID)

        TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "33.33"))

        after = balance_of(store, ALICE_ID) + balance_of(store, BOB_ID)
        assert after == before

    def test_transfer_records_transaction(self, store, db_session, accounts):
        txn = TransferService(store).transfer(
            ALICE_ID, pay(BOB_PHONE, "25.50", Category.FOOD, "Lunch")
        )

        assert txn.id is not None
        assert txn.sender_id == ALICE_ID
        assert txn.receiver_id == BOB_ID
        assert txn.amount == Decimal("25.50")
        assert txn.category == Category.FOOD
        assert txn.description == "Lunch"
        assert txn.created_at is not None
        assert count_transactions(db_session) == 1

    def test_category_defaults_to_other(self, store, accounts):
        txn = TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "1"))
        assert txn.category == Category.OTHER

    def test_entire_balance_can_be_sent(self, store, accounts):
        TransferService(store).transfer(ALICE_ID, pay(CAROL_PHONE, "100.00"))

        assert balance_of(store, ALICE_ID) == Decimal("0.00")
        assert balance_of(store, CAROL_ID) == Decimal("100.00")


# --- Rejections ---

class TestRejections:

    def _assert_unchanged(self, store, db_session):
        assert balance_of(store, ALICE_ID) == Decimal("100.00")
        assert balance_of(store, BOB_ID) == Decimal("50.00")
        assert count_transactions(db_session) == 0

    def test_unknown_caller_rejected(self, store, db_session, accounts):
        with pytest.raises(NotFound):
            TransferService(store).transfer(uuid.uuid4(), pay(BOB_PHONE, "10"))
        self._assert_unchanged(store, db_session)

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_amount_rejected(
        self, store, db_session, accounts, amount
    ):
        with pytest.raises(InvalidAmount):
            TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, amount))
        self._assert_unchanged(store, db_session)

    def test_sub_paise_amount_rejected(self, store, db_session, accounts):
        with pytest.raises(InvalidAmount, match="2 decimal places"):
            TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "10.005"))
        self._assert_unchanged(store, db_session)

    def test_insufficient_balance_rejected(self, store, db_session, accounts):
        with pytest.raises(InsufficientBalance):
            TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "100.01"))
        self._assert_unchanged(store, db_session)

    def test_unknown_receiver_rejected(self, store, db_session, accounts):
        with pytest.raises(ReceiverNotFound):
            TransferService(store).transfer(ALICE_ID, pay("9000000000", "10"))
        self._assert_unchanged(store, db_session)

    def test_self_transfer_rejected(self, store, db_session, accounts):
        with pytest.raises(SelfTransfer):
            TransferService(store).transfer(ALICE_ID, pay(ALICE_PHONE, "10"))
        self._assert_unchanged(store, db_session)

    def test_amount_checked_before_receiver(self, store, accounts):
        """A bad amount is reported even when the receiver is unknown."""
        with pytest.raises(InvalidAmount):
            TransferService(store).transfer(ALICE_ID, pay("9000000000", "0"))


# --- Optimistic Concurrency ---

class TestConflict:

    def test_stale_sender_balance_raises_conflict(self, db_session, accounts):
        store = RacingStore(db_session, racer_delta_minor=-1000)

        with pytest.raises(Conflict):
            TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "40"))

        # Only the concurrent change landed
        assert balance_of(store, ALICE_ID) == Decimal("90.00")
        assert balance_of(store, BOB_ID) == Decimal("50.00")
        assert count_transactions(db_session) == 0

    def test_execute_retries_after_conflict(self, db_session, accounts):
        store = RacingStore(db_session, racer_delta_minor=-1000)

        txn = TransferService(store).execute(
            ALICE_ID, pay(BOB_PHONE, "40"), max_attempts=2
        )

        assert txn.amount == Decimal("40.00")
        assert balance_of(store, ALICE_ID) == Decimal("50.00")
        assert balance_of(store, BOB_ID) == Decimal("90.00")
        assert count_transactions(db_session) == 1

    def test_execute_gives_up_after_max_attempts(self, db_session, accounts):
        store = RacingStore(db_session, racer_delta_minor=-100, races=3)

        with pytest.raises(Conflict):
            TransferService(store).execute(
                ALICE_ID, pay(BOB_PHONE, "10"), max_attempts=3
            )
        assert count_transactions(db_session) == 0

    def test_retry_revalidates_balance(self, db_session, accounts):
        """After the race the sender can no longer afford the payment."""
        store = RacingStore(db_session, racer_delta_minor=-5000)

        with pytest.raises(InsufficientBalance):
            TransferService(store).execute(
                ALICE_ID, pay(BOB_PHONE, "80"), max_attempts=2
            )
        assert balance_of(store, ALICE_ID) == Decimal("50.00")

    def test_concurrent_transfers_only_one_succeeds(
        self, store, session_factory, db_session
    ):
        """Balance 100, two simultaneous payments of 80 to different people."""
        make_profile(store, ALICE_ID, ALICE_PHONE, "100.00")
        make_profile(store, BOB_ID, BOB_PHONE, "0.00")
        make_profile(store, CAROL_ID, CAROL_PHONE, "0.00")

        barrier = threading.Barrier(2)
        outcomes = []

        def send(phone):
            session = session_factory()
            try:
                service = TransferService(LedgerStore(session))
                barrier.wait()
                service.transfer(ALICE_ID, pay(phone, "80"))
                outcomes.append("ok")
            except (Conflict, InsufficientBalance) as e:
                outcomes.append(type(e).__name__)
            finally:
                session.close()

        threads = [
            threading.Thread(target=send, args=(BOB_PHONE,)),
            threading.Thread(target=send, args=(CAROL_PHONE,)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert balance_of(store, ALICE_ID) == Decimal("20.00")
        received = balance_of(store, BOB_ID) + balance_of(store, CAROL_ID)
        assert received == Decimal("80.00")
        assert count_transactions(db_session) == 1


# --- Compensation ---

class TestCompensation:

    def test_failed_credit_restores_sender(self, db_session, accounts):
        store = FailingCreditStore(db_session)

        with pytest.raises(PersistenceFailure):
            TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "40"))

        assert balance_of(store, ALICE_ID) == Decimal("100.00")
        assert balance_of(store, BOB_ID) == Decimal("50.00")
        assert count_transactions(db_session) == 0

    def test_credit_conflict_restores_sender(self, db_session, accounts):
        class StaleReceiverStore(LedgerStore):
            def update_balance(self, profile_id, expected_minor, new_minor):
                if profile_id == BOB_ID:
                    self.adjust_balance(BOB_ID, 700)
                return super().update_balance(
                    profile_id, expected_minor, new_minor
                )

        store = StaleReceiverStore(db_session)

        with pytest.raises(Conflict):
            TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "40"))

        assert balance_of(store, ALICE_ID) == Decimal("100.00")
        assert balance_of(store, BOB_ID) == Decimal("57.00")
        assert count_transactions(db_session) == 0

    def test_failed_record_restores_both_balances(self, db_session, accounts):
        store = FailingRecordStore(db_session)

        with pytest.raises(PersistenceFailure):
            TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "40"))

        assert balance_of(store, ALICE_ID) == Decimal("100.00")
        assert balance_of(store, BOB_ID) == Decimal("50.00")
        assert count_transactions(db_session) == 0

    def test_failed_undo_raises_compensation_failure(
        self, db_session, accounts
    ):
        store = BrokenUndoStore(db_session)

        with pytest.raises(CompensationFailure) as exc_info:
            TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "40"))

        context = exc_info.value.context
        assert context["caller_id"] == ALICE_ID
        assert context["receiver_id"] == BOB_ID
        assert context["amount_minor"] == 4000
        assert "debit_attempted_at" in context
        assert "credit_attempted_at" in context
        steps = [s["step"] for s in context["unreversed_steps"]]
        assert steps == ["credit", "debit"]

    def test_compensation_failure_is_audited(self, db_session, accounts):
        store = BrokenUndoStore(db_session)

        with pytest.raises(CompensationFailure):
            TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "40"))

        audit = db_session.execute(select(AuditLog)).scalar_one()
        assert audit.event_type == "COMPENSATION_FAILURE"
        details = json.loads(audit.details)
        assert details["amount_minor"] == 4000
        assert details["caller_id"] == str(ALICE_ID)

    def test_undo_stops_at_first_failure(self, db_session, accounts):
        """
        If the credit cannot be taken back, the debit is left alone
        too, so money is never created out of nothing.
        """
        store = ReceiverOnlyUndoFailsStore(db_session)

        with pytest.raises(CompensationFailure) as exc_info:
            TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "40"))

        assert balance_of(store, ALICE_ID) == Decimal("60.00")
        assert balance_of(store, BOB_ID) == Decimal("90.00")
        steps = [s["step"] for s in exc_info.value.context["unreversed_steps"]]
        assert steps == ["credit", "debit"]

    def test_locked_undo_is_retried(self, db_session, accounts):
        store = LockedOnceUndoStore(db_session)

        with pytest.raises(PersistenceFailure):
            TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "40"))

        assert balance_of(store, ALICE_ID) == Decimal("100.00")
        assert balance_of(store, BOB_ID) == Decimal("50.00")
        assert db_session.execute(select(AuditLog)).first() is None

    def test_undo_gives_up_while_still_locked(self, db_session, accounts):
        store = AlwaysLockedUndoStore(db_session)

        with pytest.raises(CompensationFailure):
            TransferService(store, undo_attempts=2).transfer(
                ALICE_ID, pay(BOB_PHONE, "40")
            )

        assert balance_of(store, ALICE_ID) == Decimal("60.00")
        assert balance_of(store, BOB_ID) == Decimal("90.00")

    def test_unexpected_error_is_compensated(self, db_session, accounts):
        store = CrashingRecordStore(db_session)

        with pytest.raises(RuntimeError):
            TransferService(store).transfer(ALICE_ID, pay(BOB_PHONE, "40"))

        assert balance_of(store, ALICE_ID) == Decimal("100.00")
        assert balance_of(store, BOB_ID) == Decimal("50.00")
        assert count_transactions(db_session) == 0

    def test_compensation_failure_is_not_a_routine_error(self):
        assert CompensationFailure({}).status_code == 500
        assert not issubclass(CompensationFailure, PersistenceFailure)


# --- Receiver Phone Formats ---

class TestReceiverPhone:

    @pytest.mark.parametrize("phone", [
        BOB_PHONE, "+91" + BOB_PHONE, "91" + BOB_PHONE, "+91 91234 56780",
    ])
    def test_every_format_reaches_the_same_profile(
        self, store, accounts, phone
    ):
        TransferService(store).transfer(ALICE_ID, pay(phone, "10"))

        assert balance_of(store, BOB_ID) == Decimal("60.00")
