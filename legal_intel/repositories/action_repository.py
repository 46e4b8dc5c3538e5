from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from legal_intel.database.models import PipelineAction
from legal_intel.repositories.base_repository import BaseRepository


class ActionRepository(BaseRepository[PipelineAction]):
    """Repository for proposed PipelineAction records."""

    def __init__(self, session: AsyncSession, tenant_id: Optional[UUID] = None):
        super().__init__(session, PipelineAction, tenant_id)

    async def create_many(self, rows: Iterable[Dict[str, Any]]) -> List[PipelineAction]:
        actions = []
        for row in rows:
            if self.tenant_id is not None:
                row.setdefault("tenant_id", self.tenant_id)
            action = PipelineAction(**row)
            self.session.add(action)
            actions.append(action)
        await self.session.flush()
        return actions

    async def list_for_run(self, run_id: UUID) -> List[PipelineAction]:
        query = self._scoped(
            select(PipelineAction)
            .where(PipelineAction.pipeline_run_id == run_id)
            .order_by(PipelineAction.priority, PipelineAction.created_at)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def lock(self, action_id: UUID) -> Optional[PipelineAction]:
        """Load an action with a row lock held until the transaction ends.

        ``populate_existing`` refreshes an already-loaded instance so the
        caller sees the committed state, not a stale identity-map copy.
        """
        query = self._scoped(
            select(PipelineAction)
            .where(PipelineAction.id == action_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()
