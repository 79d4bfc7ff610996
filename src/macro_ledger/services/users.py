"""User-related business logic."""

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from macro_ledger.domain.models import UserRecord
from macro_ledger.services.targets import TargetsService


class UserRepository(Protocol):
    """Persistence interface for user data."""

    def get_user(self, user_id: UUID) -> UserRecord | None:
        """Return the user for an id, if present."""

    def create_user(self, first_name: str, last_name: str) -> UserRecord:
        """Create and return a new user record."""

    def update_user(
        self, user_id: UUID, first_name: str, last_name: str
    ) -> UserRecord | None:
        """Update a user's name, returning None when the user is missing."""


@dataclass
class UserService:
    """Application service for user lifecycle actions."""

    repository: UserRepository
    targets_service: TargetsService

    def get_user(self, user_id: UUID) -> UserRecord | None:
        return self.repository.get_user(user_id)

    def create_user(self, first_name: str, last_name: str = "") -> UserRecord:
        """Create a user together with the default macro targets."""
        created = self.repository.create_user(first_name.strip(), last_name.strip())
        self.targets_service.get_or_create(created.id)
        return created

    def update_user(
        self, user_id: UUID, first_name: str, last_name: str = ""
    ) -> UserRecord | None:
        return self.repository.update_user(
            user_id, first_name.strip(), last_name.strip()
        )
