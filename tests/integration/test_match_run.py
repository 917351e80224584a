"""Integration tests for match runs.

Element fetches are served by a scripted source; persistence uses the
in-memory SQLite repository.
"""

from __future__ import annotations

import pytest

from wbsmatch.aec.elements import BULK_CONTEXT_FILTER
from wbsmatch.db.repository import SqlWbsRepository
from wbsmatch.exceptions import MatchRunStageError, NoWbsSet, TransportError
from wbsmatch.matching.orchestrator import (
    MatchRunOrchestrator,
    build_match_run,
    element_item_key,
    match_elements,
)
from wbsmatch.models import MatchStrategy, ModelElement
from wbsmatch.service import WbsMatchService


@pytest.fixture
def model_elements(make_raw_element):
    return [
        make_raw_element("el-1", Assembly_Code="3.2.1"),
        make_raw_element("el-2", Assembly_Code="", Element_Name="Interior Wall Type A"),
    ]


@pytest.fixture
def scheduled_service(repository, fake_source, model_elements):
    source = fake_source(pages={BULK_CONTEXT_FILTER: [model_elements]})
    return WbsMatchService(repository, source=source)


SCHEDULE = [
    {"code": "3.2.1", "title": "Foundation Pour"},
    {"code": "3.5", "title": "Interior Walls"},
]


class TestItemKeys:
    def test_zero_padded(self):
        assert element_item_key(0) == "EL#000001"
        assert element_item_key(41, 42) == "EL#000042"

    def test_width_grows_with_total(self):
        assert element_item_key(0, 1_234_567) == "EL#0000001"


class TestAggregation:
    def test_average_over_matched_only(self, wbs_items):
        elements = [
            ModelElement(element_id="a", assembly_code="3.2"),
            ModelElement(element_id="b", assembly_code="3.2.1.9"),
            ModelElement(element_id="c"),
        ]
        rows = match_elements(elements, wbs_items)

        run = build_match_run(project_id="p", model_id="m", wbs_set_id="s", rows=rows)

        assert [row.item_key for row in rows] == ["EL#000001", "EL#000002", "EL#000003"]
        assert run.matched_elements == 2
        assert run.unmatched_elements == 1
        assert run.average_confidence == 0.95

    def test_no_matches(self, wbs_items):
        run = build_match_run(
            project_id="p",
            model_id="m",
            wbs_set_id="s",
            rows=match_elements([ModelElement(element_id="a")], wbs_items),
        )
        assert run.average_confidence == 0.0
        assert run.run_id.startswith("MATCHRUN#")


class TestMatchRun:
    @pytest.mark.asyncio
    async def test_end_to_end(self, scheduled_service, repository):
        saved = await scheduled_service.save_wbs_set("proj-1", "model-1", "Schedule", SCHEDULE)

        summary = await scheduled_service.run_matching("proj-1", "model-1")

        assert summary.wbs_set_id == saved.wbs_set_id
        assert summary.total_elements == 2
        assert summary.matched_elements == 2
        assert summary.unmatched_elements == 0
        assert summary.average_confidence == 0.75
        assert summary.latest_updated is True

        run = await repository.get_run(summary.run_id)
        first, second = run.rows
        assert first.item_key == "EL#000001"
        assert first.matched_wbs_code == "3.2.1"
        assert first.confidence == 1.0
        assert first.strategy == MatchStrategy.ASSEMBLY_CODE_EXACT
        assert second.matched_wbs_code == "3.5"
        assert second.matched_wbs_title == "Interior Walls"
        assert second.confidence == 0.5
        assert second.strategy == MatchStrategy.DESCRIPTION_SIMILARITY

        wbs_set = await repository.get_set("proj-1", saved.wbs_set_id)
        assert wbs_set.latest_match_run_id == summary.run_id

    @pytest.mark.asyncio
    async def test_explicit_wbs_set(self, scheduled_service):
        older = await scheduled_service.save_wbs_set("proj-1", "model-1", None, SCHEDULE)
        await scheduled_service.save_wbs_set("proj-1", "model-1", None, [{"code": "9", "title": "Other"}])

        summary = await scheduled_service.run_matching("proj-1", "model-1", older.wbs_set_id)

        assert summary.wbs_set_id == older.wbs_set_id
        assert summary.matched_elements == 2

    @pytest.mark.asyncio
    async def test_no_wbs_set(self, scheduled_service):
        with pytest.raises(NoWbsSet):
            await scheduled_service.run_matching("proj-1", "model-1")

    @pytest.mark.asyncio
    async def test_unscoped_set_is_not_used_for_model(self, scheduled_service):
        await scheduled_service.save_wbs_set("proj-1", None, None, SCHEDULE)
        with pytest.raises(NoWbsSet):
            await scheduled_service.run_matching("proj-1", "model-1")

    @pytest.mark.asyncio
    async def test_blank_ids_rejected(self, scheduled_service):
        with pytest.raises(ValueError):
            await scheduled_service.run_matching(" ", "model-1")
        with pytest.raises(ValueError):
            await scheduled_service.run_matching("proj-1", "")

    @pytest.mark.asyncio
    async def test_back_reference_failure_keeps_run(self, session_provider, fake_source, model_elements):
        class StaleBackReference(SqlWbsRepository):
            async def update_set_latest_run(self, project_id, set_id, run):
                raise RuntimeError("conditional write failed")

        repository = StaleBackReference(session_provider)
        service = WbsMatchService(
            repository, source=fake_source(pages={BULK_CONTEXT_FILTER: [model_elements]})
        )
        saved = await service.save_wbs_set("proj-1", "model-1", None, SCHEDULE)

        summary = await service.run_matching("proj-1", "model-1")

        assert summary.latest_updated is False
        assert (await repository.get_run(summary.run_id)).total_elements == 2
        wbs_set = await repository.get_set("proj-1", saved.wbs_set_id)
        assert wbs_set.latest_match_run_id is None

    @pytest.mark.asyncio
    async def test_element_fetch_failure(self, repository, fake_source):
        source = fake_source(errors={BULK_CONTEXT_FILTER: TransportError("503", status_code=503)})
        service = WbsMatchService(repository, source=source)
        await service.save_wbs_set("proj-1", "model-1", None, SCHEDULE)

        with pytest.raises(MatchRunStageError) as exc_info:
            await service.run_matching("proj-1", "model-1")

        assert exc_info.value.stage == MatchRunStageError.ELEMENT_FETCH
        assert isinstance(exc_info.value.cause, TransportError)

    @pytest.mark.asyncio
    async def test_wbs_load_failure(self, session_provider, fake_source):
        class BrokenReads(SqlWbsRepository):
            async def get_latest_set(self, project_id, model_id=None):
                raise RuntimeError("database unavailable")

        orchestrator = MatchRunOrchestrator(BrokenReads(session_provider), fake_source())

        with pytest.raises(MatchRunStageError) as exc_info:
            await orchestrator.run("proj-1", "model-1")

        assert exc_info.value.stage == MatchRunStageError.WBS_LOAD

    @pytest.mark.asyncio
    async def test_persist_failure(self, session_provider, fake_source, model_elements):
        class BrokenWrites(SqlWbsRepository):
            async def save_run(self, run):
                raise RuntimeError("disk full")

        repository = BrokenWrites(session_provider)
        service = WbsMatchService(
            repository, source=fake_source(pages={BULK_CONTEXT_FILTER: [model_elements]})
        )
        saved = await service.save_wbs_set("proj-1", "model-1", None, SCHEDULE)

        with pytest.raises(MatchRunStageError) as exc_info:
            await service.run_matching("proj-1", "model-1")

        assert exc_info.value.stage == MatchRunStageError.PERSIST
        wbs_set = await repository.get_set("proj-1", saved.wbs_set_id)
        assert wbs_set.latest_match_run_id is None
