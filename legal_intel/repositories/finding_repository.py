from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from legal_intel.database.models import PipelineFinding
from legal_intel.repositories.base_repository import BaseRepository
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


class FindingRepository(BaseRepository[PipelineFinding]):
    """Repository for PipelineFinding records."""

    def __init__(self, session: AsyncSession, tenant_id: Optional[UUID] = None):
        super().__init__(session, PipelineFinding, tenant_id)

    async def create_many(self, rows: Iterable[Dict[str, Any]]) -> List[PipelineFinding]:
        """Insert findings in one flush.

        Args:
            rows: Column dicts for each finding

        Returns:
            Created findings
        """
        findings = []
        for row in rows:
            if self.tenant_id is not None:
                row.setdefault("tenant_id", self.tenant_id)
            finding = PipelineFinding(**row)
            self.session.add(finding)
            findings.append(finding)
        await self.session.flush()
        LOGGER.debug(f"Stored {len(findings)} findings")
        return findings

    async def list_for_run(self, run_id: UUID) -> List[PipelineFinding]:
        query = self._scoped(
            select(PipelineFinding)
            .where(PipelineFinding.pipeline_run_id == run_id)
            .order_by(PipelineFinding.category_key, PipelineFinding.field_key)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_for_matter(
        self,
        matter_id: UUID,
        statuses: Optional[Iterable[str]] = None,
        exclude_run_id: Optional[UUID] = None,
    ) -> List[PipelineFinding]:
        """Findings currently stored for a matter.

        Args:
            matter_id: Matter ID
            statuses: Restrict to these resolution statuses
            exclude_run_id: Leave out findings produced by this run
        """
        query = self._scoped(
            select(PipelineFinding).where(PipelineFinding.matter_id == matter_id)
        )
        if statuses is not None:
            query = query.where(PipelineFinding.status.in_([str(s) for s in statuses]))
        if exclude_run_id is not None:
            query = query.where(PipelineFinding.pipeline_run_id != exclude_run_id)
        query = query.order_by(PipelineFinding.created_at.desc())
        result = await self.session.execute(query)
        return list(result.scalars().all())
