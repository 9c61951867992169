"""
History service — the caller's view of the ledger.

Turns raw transaction rows into entries relative to the
caller (sent or received, and who the other party was),
and totals spending per category.
"""

import uuid
from collections import defaultdict

from upi_ledger.models.enums import Category, Direction
from upi_ledger.money import from_minor_units
from upi_ledger.schemas.transaction import (
    CategorySpending,
    SpendingSummary,
    TransactionHistoryItem,
)
from upi_ledger.services.ledger_store import LedgerStore


class HistoryService:

    def __init__(self, store: LedgerStore):
        self.store = store

    def recent_transactions(
        self, caller_id: uuid.UUID, limit: int = 10
    ) -> list[TransactionHistoryItem]:
        """Return the caller's transactions, newest first."""
        items = []
        for txn in self.store.list_transactions(caller_id, limit=limit):
            if txn.sender_id == caller_id:
                direction = Direction.SENT
                counterparty = txn.receiver
            else:
                direction = Direction.RECEIVED
                counterparty = txn.sender
            items.append(TransactionHistoryItem(
                id=txn.id,
                direction=direction,
                counterparty_id=counterparty.id,
                counterparty_phone=counterparty.phone,
                counterparty_name=counterparty.name,
                amount=txn.amount,
                category=txn.category,
                description=txn.description,
                created_at=txn.created_at,
            ))
        return items

    def spending_by_category(
        self, caller_id: uuid.UUID, limit: int | None = None
    ) -> SpendingSummary:
        """
        Total the caller's outgoing payments per category.

        Categories are sorted by total, largest first. Received
        money is not spending and is left out.
        """
        totals: dict[Category, int] = defaultdict(int)
        for txn in self.store.list_sent_transactions(caller_id, limit=limit):
            totals[txn.category] += txn.amount_minor

        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        return SpendingSummary(
            total_spent=from_minor_units(sum(totals.values())),
            categories=[
                CategorySpending(category=cat, total=from_minor_units(total))
                for cat, total in ranked
            ],
        )
