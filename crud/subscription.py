"""
SubscriptionRepository for the local mirror of Stripe subscriptions
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database_models import Subscription, User


class SubscriptionRepository:
    """
    Repository class for Subscription database operations.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_for_user(self, user: User, type: str = "default") -> Optional[Subscription]:
        """
        Most recent subscription of the given type for a user.

        Args:
            user: Subscription owner
            type: Subscription type, "default" for the main plan

        Returns:
            Subscription object if found, None otherwise
        """
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user.id, Subscription.type == type)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_stripe_id(self, stripe_id: str) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription).where(Subscription.stripe_id == stripe_id)
        )
        return result.scalar_one_or_none()

    async def create(self, user: User, data: dict) -> Subscription:
        """
        Store a new subscription for a user.

        Args:
            user: Subscription owner
            data: Column values (type, stripe_id, stripe_status, stripe_price,
                quantity, trial_ends_at, ends_at)

        Returns:
            Created Subscription object
        """
        subscription = Subscription(user_id=user.id, **data)
        self.db.add(subscription)
        await self.db.flush()
        await self.db.refresh(subscription)
        return subscription

    async def update(self, subscription: Subscription, updates: dict) -> Subscription:
        for key, value in updates.items():
            if hasattr(subscription, key):
                setattr(subscription, key, value)

        await self.db.flush()
        await self.db.refresh(subscription)
        return subscription
