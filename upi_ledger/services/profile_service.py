"""
Profile service — signup and profile reads.

A profile is created once per identity, the first time the
user signs up, and starts with the configured balance.
"""

import uuid
from decimal import Decimal

from loguru import logger

from upi_ledger.errors import NotFound, PersistenceFailure, ProfileExists
from upi_ledger.models.profile import Profile
from upi_ledger.money import to_minor_units
from upi_ledger.schemas.profile import ProfileCreate
from upi_ledger.services.ledger_store import LedgerStore


class ProfileService:

    def __init__(self, store: LedgerStore, starting_balance: Decimal):
        self.store = store
        self.starting_balance = starting_balance

    def create_profile(
        self, caller_id: uuid.UUID, request: ProfileCreate
    ) -> Profile:
        """Create the caller's profile with the starting balance."""
        starting_balance_minor = to_minor_units(
            self.starting_balance, allow_zero=True
        )

        if self.store.get_profile(caller_id) is not None:
            raise ProfileExists()

        if self.store.get_profile_by_phone(request.phone) is not None:
            raise ProfileExists("Phone number already registered")

        try:
            profile = self.store.create_profile(
                profile_id=caller_id,
                phone=request.phone,
                name=request.name,
                email=request.email,
                balance_minor=starting_balance_minor,
            )
        except PersistenceFailure as e:
            # Lost a race with a concurrent signup for the same id or phone.
            if self.store.get_profile(caller_id) is not None:
                raise ProfileExists() from e
            if self.store.get_profile_by_phone(request.phone) is not None:
                raise ProfileExists("Phone number already registered") from e
            raise

        logger.info("Created profile {} for {}", caller_id, request.phone)
        return profile

    def get_profile(self, caller_id: uuid.UUID) -> Profile:
        profile = self.store.get_profile(caller_id)
        if profile is None:
            raise NotFound("Profile not found")
        return profile
