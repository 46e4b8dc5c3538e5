from typing import Optional
from uuid import UUID
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from legal_intel.database.models import PipelineRun
from legal_intel.repositories.base_repository import BaseRepository


class PipelineRunRepository(BaseRepository[PipelineRun]):
    """Repository for PipelineRun records."""

    def __init__(self, session: AsyncSession, tenant_id: Optional[UUID] = None):
        super().__init__(session, PipelineRun, tenant_id)

    async def create_run(
        self,
        document_id: UUID,
        matter_id: Optional[UUID],
        stage_statuses: dict,
        triggered_by: Optional[UUID] = None,
    ) -> PipelineRun:
        """Create a queued run for a document.

        Args:
            document_id: Document to process
            matter_id: Matter the document belongs to
            stage_statuses: Initial stage -> status map
            triggered_by: User who requested processing
        """
        return await self.create(
            document_id=document_id,
            matter_id=matter_id,
            status="queued",
            stage_statuses=stage_statuses,
            triggered_by=triggered_by,
            created_at=datetime.now(timezone.utc),
            updated_at=datetime.now(timezone.utc),
        )

    async def add_counts(
        self,
        run: PipelineRun,
        findings: int = 0,
        actions: int = 0,
        tokens: int = 0,
    ) -> PipelineRun:
        """Accumulate produced findings/actions and consumed tokens."""
        run.findings_count = (run.findings_count or 0) + findings
        run.actions_count = (run.actions_count or 0) + actions
        run.total_tokens_used = (run.total_tokens_used or 0) + tokens
        await self.session.flush()
        return run
