"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored.
"""

import enum


class Category(str, enum.Enum):
    """Spending category attached to every payment."""
    FOOD = "Food"
    TRAVEL = "Travel"
    BILLS = "Bills"
    SHOPPING = "Shopping"
    ENTERTAINMENT = "Entertainment"
    OTHER = "Other"


class Direction(str, enum.Enum):
    """Which side of a transaction the caller was on."""
    SENT = "SENT"
    RECEIVED = "RECEIVED"
