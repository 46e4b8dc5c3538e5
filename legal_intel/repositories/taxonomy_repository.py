from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from legal_intel.database.models import (
    TaxonomyActionTrigger,
    TaxonomyCategory,
    TaxonomyDocumentType,
    TaxonomyPack,
    TaxonomyPromptTemplate,
    TaxonomyReconciliationRule,
)
from legal_intel.repositories.base_repository import BaseRepository


class TaxonomyRepository(BaseRepository[TaxonomyPack]):
    """Read access to taxonomy packs and their components.

    Packs are either tenant-owned or system defaults (``tenant_id IS NULL``),
    so this repository is not tenant-filtered; callers pass the tenant
    explicitly.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, TaxonomyPack)

    async def get_active_pack(
        self, practice_area: str, tenant_id: Optional[UUID]
    ) -> Optional[TaxonomyPack]:
        """Get the newest active pack for a practice area.

        Args:
            practice_area: Matter practice area
            tenant_id: Owning tenant, or None for the system default pack
        """
        owner = (
            TaxonomyPack.tenant_id.is_(None)
            if tenant_id is None
            else TaxonomyPack.tenant_id == tenant_id
        )
        query = (
            select(TaxonomyPack)
            .where(
                TaxonomyPack.practice_area == practice_area,
                TaxonomyPack.is_active.is_(True),
                owner,
            )
            .order_by(TaxonomyPack.version.desc())
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_categories(self, pack_id: UUID) -> List[TaxonomyCategory]:
        """Categories with fields eagerly loaded, in display order."""
        query = (
            select(TaxonomyCategory)
            .where(TaxonomyCategory.pack_id == pack_id)
            .options(selectinload(TaxonomyCategory.fields))
            .order_by(TaxonomyCategory.sort_order)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_document_types(self, pack_id: UUID) -> List[TaxonomyDocumentType]:
        result = await self.session.execute(
            select(TaxonomyDocumentType).where(TaxonomyDocumentType.pack_id == pack_id)
        )
        return list(result.scalars().all())

    async def get_prompt_templates(self, pack_id: UUID) -> List[TaxonomyPromptTemplate]:
        result = await self.session.execute(
            select(TaxonomyPromptTemplate).where(TaxonomyPromptTemplate.pack_id == pack_id)
        )
        return list(result.scalars().all())

    async def get_reconciliation_rules(self, pack_id: UUID) -> List[TaxonomyReconciliationRule]:
        result = await self.session.execute(
            select(TaxonomyReconciliationRule).where(TaxonomyReconciliationRule.pack_id == pack_id)
        )
        return list(result.scalars().all())

    async def get_action_triggers(self, pack_id: UUID) -> List[TaxonomyActionTrigger]:
        result = await self.session.execute(
            select(TaxonomyActionTrigger).where(
                TaxonomyActionTrigger.pack_id == pack_id,
                TaxonomyActionTrigger.is_active.is_(True),
            )
        )
        return list(result.scalars().all())
