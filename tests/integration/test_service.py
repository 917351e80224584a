"""Integration tests for the service facade.

Tests WBS set storage, snapshot reads and latest-run lookup.
"""

from __future__ import annotations

import pytest

from wbsmatch.aec.categories import category_filter_with_context
from wbsmatch.aec.elements import BULK_CONTEXT_FILTER
from wbsmatch.config import AecConfig
from wbsmatch.exceptions import DuplicateWbsCode, InvalidWbsRow
from wbsmatch.service import DEFAULT_SOURCE_NAME, WbsMatchService


@pytest.fixture
def service(repository):
    return WbsMatchService(repository)


class TestSaveWbsSet:
    @pytest.mark.asyncio
    async def test_save_and_read_back(self, service, wbs_rows, test_project_id, test_model_id):
        saved = await service.save_wbs_set(test_project_id, test_model_id, "Schedule.xlsx", wbs_rows)

        assert saved.wbs_set_id.startswith("WBSSET#")
        assert saved.rows_saved == 5
        assert saved.model_id == test_model_id

        snapshot = await service.get_latest_wbs_set(test_project_id, test_model_id)

        assert snapshot.wbs_set.wbs_set_id == saved.wbs_set_id
        assert snapshot.wbs_set.row_count == 5
        assert [item.code for item in snapshot.items] == ["3", "3.2", "3.2.1", "3.5", "4"]
        pour = snapshot.items[2]
        assert pour.start_date == "2025-03-01"
        assert pour.parent_code == "3.2"
        assert snapshot.items[3].planned_cost == 12500.46

    @pytest.mark.asyncio
    async def test_default_source_name(self, service, test_project_id):
        saved = await service.save_wbs_set(test_project_id, None, "  ", [{"code": "1", "title": "Site"}])
        assert saved.source_name == DEFAULT_SOURCE_NAME
        assert saved.model_id is None

    @pytest.mark.asyncio
    async def test_duplicate_batch_writes_nothing(self, service, test_project_id, test_model_id):
        rows = [
            {"code": "3.2", "title": "Foundations"},
            {"code": "3.2.1", "title": "Foundation Pour"},
            {"code": " 3.2 ", "title": "Foundations again"},
        ]

        with pytest.raises(DuplicateWbsCode) as exc_info:
            await service.save_wbs_set(test_project_id, test_model_id, None, rows)

        assert exc_info.value.code == "3.2"
        assert await service.get_latest_wbs_set(test_project_id, test_model_id) is None

    @pytest.mark.asyncio
    async def test_invalid_batch_writes_nothing(self, service, test_project_id):
        rows = [{"code": "1", "title": "Site"}, {"code": "1.a", "title": "Bad"}]

        with pytest.raises(InvalidWbsRow, match="Row 1"):
            await service.save_wbs_set(test_project_id, None, None, rows)

        assert await service.get_latest_wbs_set(test_project_id) is None

    @pytest.mark.asyncio
    async def test_project_required(self, service, wbs_rows):
        with pytest.raises(ValueError):
            await service.save_wbs_set(" ", None, None, wbs_rows)


class TestLatestMatchRun:
    @pytest.mark.asyncio
    async def test_none_before_any_run(self, service, wbs_rows, test_project_id, test_model_id):
        assert await service.get_latest_match_run(test_project_id, test_model_id) is None

        await service.save_wbs_set(test_project_id, test_model_id, None, wbs_rows)
        assert await service.get_latest_match_run(test_project_id, test_model_id) is None

    @pytest.mark.asyncio
    async def test_returns_run_with_wbs_rows(
        self, repository, fake_source, make_raw_element, wbs_rows, test_project_id, test_model_id
    ):
        source = fake_source(
            pages={
                BULK_CONTEXT_FILTER: [
                    [make_raw_element("el-1", Assembly_Code="3.2")],
                    [make_raw_element("el-2", Assembly_Code="9.9")],
                ]
            }
        )
        service = WbsMatchService(repository, source=source)
        await service.save_wbs_set(test_project_id, test_model_id, None, wbs_rows)
        summary = await service.run_matching(test_project_id, test_model_id)

        latest = await service.get_latest_match_run(test_project_id, test_model_id)

        assert latest.run.run_id == summary.run_id
        assert latest.run.matched_elements == 1
        assert latest.run.unmatched_elements == 1
        assert [row.element_id for row in latest.run.rows] == ["el-1", "el-2"]
        assert len(latest.wbs_rows) == 5

    @pytest.mark.asyncio
    async def test_element_source_required(self, service):
        with pytest.raises(RuntimeError):
            await service.run_matching("proj-1", "model-1")
        with pytest.raises(RuntimeError):
            await service.resolve_category_elements("model-1", "Walls")


class TestCategoryService:
    @pytest.mark.asyncio
    async def test_resolve_uses_configured_aliases(self, repository, fake_source, make_raw_element):
        aliases_filter = category_filter_with_context("PipeSegments")
        source = fake_source(pages={aliases_filter: [[make_raw_element("p-1")]]})
        service = WbsMatchService(
            repository, source=source, aec=AecConfig(category_aliases={"Pipes": ["PipeSegments"]})
        )

        result = await service.resolve_category_elements("model-1", "Pipes")

        assert result.resolved_token == "PipeSegments"
        assert result.summary.total_elements == 1
