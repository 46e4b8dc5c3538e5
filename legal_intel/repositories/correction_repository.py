from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from legal_intel.database.models import EntityCorrection
from legal_intel.repositories.base_repository import BaseRepository


class CorrectionRepository(BaseRepository[EntityCorrection]):
    """Human value corrections, consulted during reconciliation."""

    def __init__(self, session: AsyncSession, tenant_id: Optional[UUID] = None):
        super().__init__(session, EntityCorrection, tenant_id)

    async def list_applicable(self, matter_id: Optional[UUID]) -> List[EntityCorrection]:
        """Corrections that apply to a matter, newest first.

        Includes ``this_matter`` corrections recorded on the matter and every
        ``firm_wide`` correction in the tenant. ``this_instance`` corrections
        only ever affected the finding they were made on.
        """
        scope_filter = EntityCorrection.scope == "firm_wide"
        if matter_id is not None:
            scope_filter = or_(
                scope_filter,
                and_(
                    EntityCorrection.scope == "this_matter",
                    EntityCorrection.matter_id == matter_id,
                ),
            )
        query = self._scoped(
            select(EntityCorrection)
            .where(scope_filter)
            .order_by(EntityCorrection.created_at.desc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
