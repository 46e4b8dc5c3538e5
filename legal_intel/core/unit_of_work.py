"""Tenant-scoped transactional unit of work."""

from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from legal_intel.database.models import PipelineAction
from legal_intel.repositories.action_repository import ActionRepository
from legal_intel.repositories.activity_repository import (
    CalendarEventRepository,
    NotificationRepository,
    TaskRepository,
    TimelineRepository,
)
from legal_intel.repositories.correction_repository import CorrectionRepository
from legal_intel.repositories.finding_repository import FindingRepository
from legal_intel.repositories.matter_repository import DocumentRepository, MatterRepository
from legal_intel.repositories.pipeline_run_repository import PipelineRunRepository
from legal_intel.repositories.taxonomy_repository import TaxonomyRepository
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


class UnitOfWork:
    """One session and one transaction, scoped to a tenant.

    Usage::

        async with UnitOfWork(async_session_maker, tenant_id) as uow:
            run = await uow.runs.get_by_id(run_id)
            ...

    Commits when the block exits cleanly, rolls back when it raises.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession], tenant_id: UUID):
        self.session_factory = session_factory
        self.tenant_id = tenant_id
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "UnitOfWork":
        self.session = self.session_factory()
        session = self.session
        tenant_id = self.tenant_id

        self.runs = PipelineRunRepository(session, tenant_id)
        self.findings = FindingRepository(session, tenant_id)
        self.actions = ActionRepository(session, tenant_id)
        self.taxonomy = TaxonomyRepository(session)
        self.matters = MatterRepository(session, tenant_id)
        self.documents = DocumentRepository(session, tenant_id)
        self.timeline = TimelineRepository(session, tenant_id)
        self.notifications = NotificationRepository(session, tenant_id)
        self.tasks = TaskRepository(session, tenant_id)
        self.calendar = CalendarEventRepository(session, tenant_id)
        self.corrections = CorrectionRepository(session, tenant_id)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                await self.commit()
            else:
                LOGGER.debug(
                    f"Rolling back unit of work after {exc_type.__name__}",
                    extra={"tenant_id": str(self.tenant_id)},
                )
                await self.rollback()
        finally:
            await self.session.close()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    def savepoint(self):
        """Nested transaction for best-effort writes that may fail on their own."""
        return self.session.begin_nested()

    async def lock_action(self, action_id: UUID) -> Optional[PipelineAction]:
        """SELECT ... FOR UPDATE on an action in this tenant."""
        return await self.actions.lock(action_id)


def unit_of_work_factory(session_factory: Callable[[], AsyncSession]) -> Callable[[UUID], UnitOfWork]:
    """Bind a session factory, returning ``tenant_id -> UnitOfWork``."""

    def _factory(tenant_id: UUID) -> UnitOfWork:
        return UnitOfWork(session_factory, tenant_id)

    return _factory
