from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from legal_intel.database.models import Document, Matter
from legal_intel.repositories.base_repository import BaseRepository


class MatterRepository(BaseRepository[Matter]):
    """Matter lookups and risk score persistence."""

    def __init__(self, session: AsyncSession, tenant_id: Optional[UUID] = None):
        super().__init__(session, Matter, tenant_id)

    async def update_risk(
        self, matter_id: UUID, score: int, factors: List[Dict[str, Any]]
    ) -> Optional[Matter]:
        """Store the latest risk assessment for a matter.

        Args:
            matter_id: Matter ID
            score: Composite score 0..100
            factors: Displayed contributing factors

        Returns:
            Updated matter, or None if not in this tenant
        """
        return await self.update(
            matter_id,
            risk_score=score,
            risk_factors=factors,
            risk_assessed_at=datetime.now(timezone.utc),
        )


class DocumentRepository(BaseRepository[Document]):
    """Document lookups for the pipeline. Upload and storage happen elsewhere."""

    def __init__(self, session: AsyncSession, tenant_id: Optional[UUID] = None):
        super().__init__(session, Document, tenant_id)

    async def store_extracted_text(self, document_id: UUID, text: str) -> Optional[Document]:
        return await self.update(document_id, extracted_text=text)

