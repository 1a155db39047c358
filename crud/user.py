"""
UserRepository for database operations on User model
"""

from typing import Iterable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database_models import Role, User


class UserRepository:
    """
    Repository class for User database operations.
    Encapsulates all database logic for the User model.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve a user by email address.

        Args:
            email: User's email address (case-insensitive search)

        Returns:
            User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_user_by_stripe_id(self, stripe_id: str) -> Optional[User]:
        """Retrieve the user owning a Stripe customer ID."""
        result = await self.db.execute(
            select(User).where(User.stripe_id == stripe_id)
        )
        return result.scalar_one_or_none()

    async def create_user(self, user_data: dict) -> User:
        """
        Create a new user in the database.

        Args:
            user_data: Dictionary containing user data. Must include:
                - email: str
                - hashed_password: str
                Optional:
                - is_active: bool (defaults to True)
                - roles: list of role names (defaults to none)

        Returns:
            Created User object
        """
        user = User(
            email=user_data["email"].lower(),
            hashed_password=user_data["hashed_password"],
            is_active=user_data.get("is_active", True),
        )
        user.roles = await self.get_or_create_roles(user_data.get("roles", []))
        self.db.add(user)
        await self.db.flush()  # Flush to get the ID without committing
        await self.db.refresh(user)  # Refresh to get the generated ID
        return user

    async def update_user(self, user: User, updates: dict) -> User:
        """
        Update user fields.

        Args:
            user: User object to update
            updates: Dictionary of fields to update (e.g., {"pm_last_four": "4242"})

        Returns:
            Updated User object
        """
        for key, value in updates.items():
            if hasattr(user, key):
                setattr(user, key, value)

        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def get_or_create_roles(self, names: Iterable[str]) -> list:
        """Return Role rows for the given names, creating missing ones."""
        names = list(dict.fromkeys(names))
        if not names:
            return []
        result = await self.db.execute(select(Role).where(Role.name.in_(names)))
        existing = {role.name: role for role in result.scalars().all()}
        roles = []
        for name in names:
            role = existing.get(name)
            if role is None:
                role = Role(name=name)
                self.db.add(role)
            roles.append(role)
        return roles

    async def sync_roles(self, user: User, names: Iterable[str]) -> User:
        """Replace the user's roles with exactly the given role names."""
        user.roles = await self.get_or_create_roles(names)
        await self.db.flush()
        return user

    async def refresh(self, user: User) -> User:
        """Reload the user together with its roles and subscriptions."""
        await self.db.refresh(user)
        return user
