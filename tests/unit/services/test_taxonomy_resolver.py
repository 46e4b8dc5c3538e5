"""Unit tests for DatabaseTaxonomyResolver fallback order."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, call
from uuid import uuid4

import pytest

from legal_intel.services.taxonomy.resolver import DatabaseTaxonomyResolver


def _pack(tenant_id=None, key="pi"):
    return SimpleNamespace(
        id=uuid4(), key=key, name="Personal Injury", practice_area="personal_injury",
        version=2, tenant_id=tenant_id,
    )


def _taxonomy_repo(packs):
    """Repository whose active packs are keyed by owning tenant (None = system)."""
    repo = AsyncMock()

    async def get_active_pack(practice_area, tenant_id):
        return packs.get(tenant_id)

    repo.get_active_pack.side_effect = get_active_pack
    for name in (
        "get_categories", "get_document_types", "get_prompt_templates",
        "get_reconciliation_rules", "get_action_triggers",
    ):
        getattr(repo, name).return_value = []
    return repo


class TestDatabaseTaxonomyResolver:

    @pytest.mark.asyncio
    async def test_tenant_pack_wins_over_system_default(self):
        tenant_id = uuid4()
        tenant_pack = _pack(tenant_id=tenant_id, key="pi-custom")
        repo = _taxonomy_repo({tenant_id: tenant_pack, None: _pack()})

        loaded = await DatabaseTaxonomyResolver(repo).resolve(tenant_id, "personal_injury")

        assert loaded.id == tenant_pack.id
        assert loaded.key == "pi-custom"
        assert not loaded.is_system_default
        repo.get_active_pack.assert_awaited_once_with("personal_injury", tenant_id)

    @pytest.mark.asyncio
    async def test_falls_back_to_system_default(self):
        tenant_id = uuid4()
        system_pack = _pack()
        repo = _taxonomy_repo({None: system_pack})

        loaded = await DatabaseTaxonomyResolver(repo).resolve(tenant_id, "personal_injury")

        assert loaded.id == system_pack.id
        assert loaded.is_system_default
        assert loaded.version == 2
        assert repo.get_active_pack.await_args_list == [
            call("personal_injury", tenant_id),
            call("personal_injury", None),
        ]
        repo.get_categories.assert_awaited_once_with(system_pack.id)

    @pytest.mark.asyncio
    async def test_no_pack_resolves_to_none(self):
        repo = _taxonomy_repo({})

        assert await DatabaseTaxonomyResolver(repo).resolve(uuid4(), "family_law") is None
        repo.get_categories.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resolve_for_matter_uses_practice_area(self):
        tenant_id = uuid4()
        repo = _taxonomy_repo({None: _pack()})
        matters = AsyncMock()
        matters.get_by_id.return_value = SimpleNamespace(practice_area="personal_injury")

        loaded = await DatabaseTaxonomyResolver(repo, matters).resolve_for_matter(tenant_id, uuid4())

        assert loaded.practice_area == "personal_injury"
        assert repo.get_active_pack.await_args_list[0] == call("personal_injury", tenant_id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("matter", [None, SimpleNamespace(practice_area=None)])
    async def test_unknown_matter_or_missing_practice_area_is_none(self, matter):
        repo = _taxonomy_repo({None: _pack()})
        matters = AsyncMock()
        matters.get_by_id.return_value = matter

        assert await DatabaseTaxonomyResolver(repo, matters).resolve_for_matter(uuid4(), uuid4()) is None
        repo.get_active_pack.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_load_by_id_reloads_recorded_pack(self):
        pack = _pack()
        repo = _taxonomy_repo({})
        repo.get_by_id.return_value = pack

        loaded = await DatabaseTaxonomyResolver(repo).load_by_id(pack.id)

        assert loaded.id == pack.id
        repo.get_by_id.return_value = None
        assert await DatabaseTaxonomyResolver(repo).load_by_id(uuid4()) is None
