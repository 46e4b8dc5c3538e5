"""Repositories for the side-effect sinks the pipeline writes to.

Timeline events, notifications, tasks and calendar events are owned by the
wider application; the pipeline only appends rows to them.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from legal_intel.database.models import CalendarEvent, Notification, Task, TimelineEvent
from legal_intel.repositories.base_repository import BaseRepository


class TimelineRepository(BaseRepository[TimelineEvent]):
    def __init__(self, session: AsyncSession, tenant_id: Optional[UUID] = None):
        super().__init__(session, TimelineEvent, tenant_id)

    async def record(
        self,
        event_type: str,
        title: str,
        matter_id: Optional[UUID] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        actor_id: Optional[UUID] = None,
    ) -> TimelineEvent:
        """Append a timeline event.

        Args:
            event_type: Machine-readable event name (e.g. ``task_created``)
            title: Human-readable title
            matter_id: Matter the event belongs to
            description: Optional longer text
            metadata: JSON context for the event
            actor_id: User who caused the event, if any
        """
        return await self.create(
            event_type=event_type,
            title=title,
            matter_id=matter_id,
            description=description,
            event_metadata=metadata or {},
            actor_id=actor_id,
        )


class NotificationRepository(BaseRepository[Notification]):
    def __init__(self, session: AsyncSession, tenant_id: Optional[UUID] = None):
        super().__init__(session, Notification, tenant_id)

    async def notify(
        self,
        user_id: UUID,
        title: str,
        body: Optional[str] = None,
        type: str = "system",
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
    ) -> Notification:
        return await self.create(
            user_id=user_id,
            title=title,
            body=body,
            type=type,
            entity_type=entity_type,
            entity_id=entity_id,
        )


class TaskRepository(BaseRepository[Task]):
    def __init__(self, session: AsyncSession, tenant_id: Optional[UUID] = None):
        super().__init__(session, Task, tenant_id)


class CalendarEventRepository(BaseRepository[CalendarEvent]):
    def __init__(self, session: AsyncSession, tenant_id: Optional[UUID] = None):
        super().__init__(session, CalendarEvent, tenant_id)
