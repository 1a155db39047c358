"""
Activity Service - audit trail of user actions
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import ActivityLog, User

logger = logging.getLogger(__name__)


class ActivityService:
    """
    Writes activity log entries and mirrors them to the application log.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(self, causer: Optional[User], description: str, properties: Optional[dict] = None) -> ActivityLog:
        """
        Record an activity.

        Args:
            causer: User who performed the action (None for system events)
            description: What happened, e.g. "subscribed to plan"
            properties: Extra context stored as JSON

        Returns:
            Created ActivityLog entry
        """
        entry = ActivityLog(
            causer_id=causer.id if causer else None,
            description=description,
            properties=properties or {},
        )
        self.db.add(entry)
        await self.db.flush()

        logger.info(f"Activity: user={entry.causer_id} {description} {entry.properties}")
        return entry

    async def for_causer(self, causer: User) -> list:
        """Activity entries caused by a user, newest first."""
        result = await self.db.execute(
            select(ActivityLog)
            .where(ActivityLog.causer_id == causer.id)
            .order_by(ActivityLog.id.desc())
        )
        return list(result.scalars().all())
