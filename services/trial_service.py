"""
Trial Service for managing generic (card-less) trial periods
"""
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from crud.user import UserRepository
from database_models import User
from config.settings import settings


class TrialService:
    """
    Service for managing user trial periods.
    Handles trial start and validation logic.
    """

    def __init__(self, db: AsyncSession, user_repo: UserRepository):
        """
        Initialize the trial service with database session and user repository.

        Args:
            db: AsyncSession instance for database operations
            user_repo: UserRepository instance for user operations
        """
        self.db = db
        self.user_repo = user_repo

    @property
    def trial_days(self) -> int:
        return settings.subscription_trial_days

    def has_used_trial(self, user: User) -> bool:
        """A user gets one trial; any recorded trial_ends_at counts as used."""
        return self.is_trial_active(user) or user.trial_ends_at is not None

    async def start_trial(self, user: User, days: Optional[int] = None) -> datetime:
        """
        Start a trial period for a user by setting trial_ends_at.

        Args:
            user: User object to start trial for
            days: Trial length, defaults to the configured trial days

        Returns:
            The trial expiry timestamp
        """
        days = self.trial_days if days is None else days
        trial_ends_at = datetime.utcnow() + timedelta(days=days)
        await self.user_repo.update_user(user, {"trial_ends_at": trial_ends_at})
        return trial_ends_at

    def is_trial_active(self, user: User) -> bool:
        """
        Check if a user's generic trial is currently active.

        Args:
            user: User object to check

        Returns:
            True if trial_ends_at is set and still in the future
        """
        if user.trial_ends_at is None:
            return False
        return user.trial_ends_at > datetime.utcnow()
