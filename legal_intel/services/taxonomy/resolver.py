"""Taxonomy pack resolution.

The pipeline depends only on ``TaxonomyResolver``; how packs are stored is
the concern of the implementation.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from legal_intel.repositories.matter_repository import MatterRepository
from legal_intel.repositories.taxonomy_repository import TaxonomyRepository
from legal_intel.services.taxonomy.pack import LoadedPack, build_loaded_pack
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)

__all__ = ["TaxonomyResolver", "DatabaseTaxonomyResolver", "LoadedPack", "build_loaded_pack"]


class TaxonomyResolver(ABC):
    """Ordered lookup: tenant override, then system default, then nothing."""

    @abstractmethod
    async def resolve(self, tenant_id: UUID, practice_area: str) -> Optional[LoadedPack]:
        """Return the active pack for a practice area, or None.

        Absence is not an error; callers skip taxonomy-driven work.
        """

    @abstractmethod
    async def resolve_for_matter(self, tenant_id: UUID, matter_id: UUID) -> Optional[LoadedPack]:
        """Resolve using the matter's practice area. Unknown matter -> None."""

    @abstractmethod
    async def load_by_id(self, pack_id: UUID) -> Optional[LoadedPack]:
        """Reload a specific pack (e.g. the one recorded on a run)."""


class DatabaseTaxonomyResolver(TaxonomyResolver):
    """Resolves packs through TaxonomyRepository."""

    def __init__(self, taxonomy_repo: TaxonomyRepository, matter_repo: Optional[MatterRepository] = None):
        self.taxonomy_repo = taxonomy_repo
        self.matter_repo = matter_repo

    async def resolve(self, tenant_id: UUID, practice_area: str) -> Optional[LoadedPack]:
        pack = await self.taxonomy_repo.get_active_pack(practice_area, tenant_id)
        if pack is None:
            pack = await self.taxonomy_repo.get_active_pack(practice_area, None)

        if pack is None:
            LOGGER.info(
                f"No taxonomy pack for practice area '{practice_area}'",
                extra={"tenant_id": str(tenant_id)},
            )
            return None

        LOGGER.debug(
            f"Resolved taxonomy pack {pack.key} v{pack.version}",
            extra={"pack_id": str(pack.id), "system_default": pack.tenant_id is None},
        )
        return await self._load(pack)

    async def resolve_for_matter(self, tenant_id: UUID, matter_id: UUID) -> Optional[LoadedPack]:
        if self.matter_repo is None:
            raise RuntimeError("resolve_for_matter requires a MatterRepository")
        matter = await self.matter_repo.get_by_id(matter_id)
        if matter is None or not matter.practice_area:
            return None
        return await self.resolve(tenant_id, matter.practice_area)

    async def load_by_id(self, pack_id: UUID) -> Optional[LoadedPack]:
        pack = await self.taxonomy_repo.get_by_id(pack_id)
        if pack is None:
            return None
        return await self._load(pack)

    async def _load(self, pack) -> LoadedPack:
        repo = self.taxonomy_repo
        return build_loaded_pack(
            pack,
            categories=await repo.get_categories(pack.id),
            document_types=await repo.get_document_types(pack.id),
            prompt_templates=await repo.get_prompt_templates(pack.id),
            reconciliation_rules=await repo.get_reconciliation_rules(pack.id),
            action_triggers=await repo.get_action_triggers(pack.id),
        )
