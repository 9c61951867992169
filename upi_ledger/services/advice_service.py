"""
Advice service — answers money questions with a language model.

The model sees the caller's balance, their most recent
transactions and today's date, then the caller's question.
Its answer is relayed unchanged. Nothing here writes to the
ledger, and the model's output is neither cached nor checked.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger
from openai import OpenAI, OpenAIError

from upi_ledger.errors import AdviceUnavailable, Conflict, PersistenceFailure
from upi_ledger.models.transaction import Transaction
from upi_ledger.money import format_amount
from upi_ledger.services.ledger_store import LedgerStore

FALLBACK_ANSWER = "I apologize, but I could not generate a response."

SYSTEM_PROMPT = """You are a helpful AI financial assistant for MoneyMitra, a UPI-style payment app.
You help users understand their spending patterns and provide financial advice.

Current date: {current_date}

User's current balance: {balance}

Recent transactions:
{transactions}

Provide clear, concise, and friendly financial advice. Focus on practical tips for saving, budgeting, and managing money wisely. When asked about the current date, always respond with the date provided above."""


def format_transaction_line(txn: Transaction, caller_id: uuid.UUID) -> str:
    """e.g. 'Sent ₹80 - Food on 10/19/2026'"""
    direction = "Sent" if txn.sender_id == caller_id else "Received"
    day = txn.created_at
    return (
        f"{direction} {format_amount(txn.amount_minor)} - "
        f"{txn.category.value} on {day.month}/{day.day}/{day.year}"
    )


def format_long_date(day: datetime) -> str:
    """e.g. 'Monday, October 19, 2026'"""
    return f"{day:%A, %B} {day.day}, {day.year}"


@dataclass
class AdviceContext:
    """Everything the model is told about the caller."""
    current_date: str
    balance: str
    transaction_lines: list[str] = field(default_factory=list)

    def system_prompt(self) -> str:
        transactions = (
            "\n".join(self.transaction_lines)
            if self.transaction_lines
            else "No transactions yet"
        )
        return SYSTEM_PROMPT.format(
            current_date=self.current_date,
            balance=self.balance,
            transactions=transactions,
        )


class AdviceContextBuilder:
    """
    Assembles the advice context from the ledger.

    A failed read degrades the context instead of failing the
    request: the model is told there are no transactions or
    that the balance is N/A.
    """

    def __init__(self, store: LedgerStore, history_limit: int = 10):
        self.store = store
        self.history_limit = history_limit

    def build(
        self, caller_id: uuid.UUID, now: datetime | None = None
    ) -> AdviceContext:
        now = now or datetime.now()

        try:
            transactions = self.store.list_transactions(
                caller_id, limit=self.history_limit
            )
        except (Conflict, PersistenceFailure) as e:
            logger.error("Transaction fetch for advice failed: {}", e)
            transactions = []

        try:
            profile = self.store.get_profile(caller_id)
        except (Conflict, PersistenceFailure) as e:
            logger.error("Profile fetch for advice failed: {}", e)
            profile = None

        return AdviceContext(
            current_date=format_long_date(now),
            balance=format_amount(profile.balance_minor) if profile else "N/A",
            transaction_lines=[
                format_transaction_line(txn, caller_id) for txn in transactions
            ],
        )


class AdviceService:

    def __init__(
        self,
        builder: AdviceContextBuilder,
        client: OpenAI | None,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ):
        self.builder = builder
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def ask(self, caller_id: uuid.UUID, question: str) -> str:
        if self.client is None:
            raise AdviceUnavailable("AI service not configured")

        context = self.builder.build(caller_id)
        logger.info("Advice question from {}: {}", caller_id, question)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": context.system_prompt()},
                    {"role": "user", "content": question},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            logger.error("AI gateway error: {}", e)
            raise AdviceUnavailable() from e

        if not response.choices:
            return FALLBACK_ANSWER
        return response.choices[0].message.content or FALLBACK_ANSWER
