"""WBS set and match run storage.

``WbsRepository`` is the contract the engine relies on: every read and write
is by exact key. ``SqlWbsRepository`` implements it on SQLAlchemy; each
call runs in its own transaction.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from wbsmatch.db.connection import get_session
from wbsmatch.db.models import MatchRowModel, MatchRunModel, WbsItemModel, WbsSetModel
from wbsmatch.models import MatchResult, MatchRun, MatchStrategy, WbsItem, WbsSet
from wbsmatch.wbs.codes import wbs_level, wbs_sort_key

SessionProvider = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class WbsRepository(Protocol):
    """Persistence operations consumed by the matching engine."""

    async def save_set(self, wbs_set: WbsSet, items: Sequence[WbsItem]) -> None: ...

    async def get_set(self, project_id: str, set_id: str) -> WbsSet | None: ...

    async def get_latest_set(self, project_id: str, model_id: str | None = None) -> WbsSet | None: ...

    async def get_items(self, set_id: str) -> list[WbsItem]: ...

    async def save_run(self, run: MatchRun) -> None: ...

    async def get_run(self, run_id: str) -> MatchRun | None: ...

    async def update_set_latest_run(self, project_id: str, set_id: str, run: MatchRun) -> None: ...


def wbs_item_key(code: str) -> str:
    return f"WBS#{code}"


def _to_wbs_set(row: WbsSetModel) -> WbsSet:
    return WbsSet(
        wbs_set_id=row.set_id,
        project_id=row.project_id,
        model_id=row.model_id,
        source_name=row.source_name,
        row_count=row.row_count,
        created_at=row.created_at,
        updated_at=row.updated_at,
        latest_match_run_id=row.latest_match_run_id,
        latest_match_at=row.latest_match_at,
        last_matched_elements=row.last_matched_elements,
        last_total_elements=row.last_total_elements,
    )


def _to_wbs_item(row: WbsItemModel) -> WbsItem:
    return WbsItem(
        code=row.wbs_code,
        title=row.title,
        level=row.level or wbs_level(row.wbs_code),
        parent_code=row.parent_code or "",
        start_date=row.start_date,
        end_date=row.end_date,
        duration_label=row.duration_label or "",
        baseline_start_date=row.baseline_start_date,
        baseline_end_date=row.baseline_end_date,
        actual_start_date=row.actual_start_date,
        actual_end_date=row.actual_end_date,
        actual_progress_pct=row.actual_progress_pct,
        planned_cost=row.planned_cost,
        actual_cost=row.actual_cost,
        extra_props=row.extra_props,
    )


def _to_match_result(row: MatchRowModel) -> MatchResult:
    return MatchResult(
        item_key=row.item_key,
        element_id=row.element_id,
        revit_element_id=row.revit_element_id,
        external_element_id=row.external_element_id,
        viewer_db_id=row.viewer_db_id,
        db_id=row.db_id,
        category=row.category,
        family_name=row.family_name,
        element_name=row.element_name,
        type_mark=row.type_mark,
        description=row.description,
        assembly_code=row.assembly_code,
        assembly_description=row.assembly_description,
        matched_wbs_code=row.matched_wbs_code,
        matched_wbs_title=row.matched_wbs_title,
        confidence=row.confidence,
        strategy=MatchStrategy(row.strategy),
    )


class SqlWbsRepository:
    """SQLAlchemy-backed ``WbsRepository``."""

    def __init__(self, session_provider: SessionProvider = get_session):
        self._session = session_provider

    async def save_set(self, wbs_set: WbsSet, items: Sequence[WbsItem]) -> None:
        """Write the set header and all of its items in one transaction."""
        async with self._session() as session:
            session.add(
                WbsSetModel(
                    set_id=wbs_set.wbs_set_id,
                    project_id=wbs_set.project_id,
                    model_id=wbs_set.model_id,
                    source_name=wbs_set.source_name,
                    row_count=wbs_set.row_count,
                    created_at=wbs_set.created_at,
                    updated_at=wbs_set.updated_at or wbs_set.created_at,
                )
            )
            # Header must exist before items reference it
            await session.flush()
            session.add_all(
                WbsItemModel(
                    wbs_set_id=wbs_set.wbs_set_id,
                    item_key=wbs_item_key(item.code),
                    wbs_code=item.code,
                    title=item.title,
                    level=item.level,
                    parent_code=item.parent_code,
                    start_date=item.start_date,
                    end_date=item.end_date,
                    duration_label=item.duration_label,
                    baseline_start_date=item.baseline_start_date,
                    baseline_end_date=item.baseline_end_date,
                    actual_start_date=item.actual_start_date,
                    actual_end_date=item.actual_end_date,
                    actual_progress_pct=item.actual_progress_pct,
                    planned_cost=item.planned_cost,
                    actual_cost=item.actual_cost,
                    extra_props=item.extra_props,
                    created_at=wbs_set.created_at,
                )
                for item in items
            )

    async def get_set(self, project_id: str, set_id: str) -> WbsSet | None:
        async with self._session() as session:
            stmt = select(WbsSetModel).where(
                WbsSetModel.project_id == project_id, WbsSetModel.set_id == set_id
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _to_wbs_set(row) if row else None

    async def get_latest_set(self, project_id: str, model_id: str | None = None) -> WbsSet | None:
        """Newest set of a project, optionally restricted to one model."""
        async with self._session() as session:
            stmt = select(WbsSetModel).where(WbsSetModel.project_id == project_id)
            if model_id:
                stmt = stmt.where(WbsSetModel.model_id == model_id)
            stmt = stmt.order_by(WbsSetModel.created_at.desc(), WbsSetModel.set_id.desc()).limit(1)
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _to_wbs_set(row) if row else None

    async def get_items(self, set_id: str) -> list[WbsItem]:
        """Items of a set in WBS order."""
        async with self._session() as session:
            stmt = select(WbsItemModel).where(WbsItemModel.wbs_set_id == set_id)
            rows = (await session.execute(stmt)).scalars().all()
            items = [_to_wbs_item(row) for row in rows]
        return sorted(items, key=lambda item: wbs_sort_key(item.code))

    async def save_run(self, run: MatchRun) -> None:
        """Write the run header and all element rows in one transaction."""
        async with self._session() as session:
            session.add(
                MatchRunModel(
                    run_id=run.run_id,
                    project_id=run.project_id,
                    model_id=run.model_id,
                    wbs_set_id=run.wbs_set_id,
                    total_elements=run.total_elements,
                    matched_elements=run.matched_elements,
                    unmatched_elements=run.unmatched_elements,
                    average_confidence=run.average_confidence,
                    created_at=run.created_at,
                )
            )
            await session.flush()
            session.add_all(
                MatchRowModel(
                    run_id=run.run_id,
                    item_key=row.item_key,
                    element_id=row.element_id,
                    revit_element_id=row.revit_element_id,
                    external_element_id=row.external_element_id,
                    viewer_db_id=row.viewer_db_id,
                    db_id=row.db_id,
                    category=row.category,
                    family_name=row.family_name,
                    element_name=row.element_name,
                    type_mark=row.type_mark,
                    description=row.description,
                    assembly_code=row.assembly_code,
                    assembly_description=row.assembly_description,
                    matched_wbs_code=row.matched_wbs_code,
                    matched_wbs_title=row.matched_wbs_title,
                    confidence=row.confidence,
                    strategy=row.strategy.value,
                )
                for row in run.rows
            )

    async def get_run(self, run_id: str) -> MatchRun | None:
        async with self._session() as session:
            header = await session.get(MatchRunModel, run_id)
            if header is None:
                return None

            stmt = (
                select(MatchRowModel)
                .where(MatchRowModel.run_id == run_id)
                .order_by(MatchRowModel.item_key)
            )
            rows = (await session.execute(stmt)).scalars().all()

            return MatchRun(
                run_id=header.run_id,
                project_id=header.project_id,
                model_id=header.model_id,
                wbs_set_id=header.wbs_set_id,
                total_elements=header.total_elements,
                matched_elements=header.matched_elements,
                unmatched_elements=header.unmatched_elements,
                average_confidence=header.average_confidence,
                created_at=header.created_at,
                rows=[_to_match_result(row) for row in rows],
            )

    async def update_set_latest_run(self, project_id: str, set_id: str, run: MatchRun) -> None:
        """Point the set's back-reference at ``run``.

        Raises:
            LookupError: If the set does not exist
        """
        async with self._session() as session:
            stmt = (
                update(WbsSetModel)
                .where(WbsSetModel.project_id == project_id, WbsSetModel.set_id == set_id)
                .values(
                    latest_match_run_id=run.run_id,
                    latest_match_at=run.created_at,
                    last_matched_elements=run.matched_elements,
                    last_total_elements=run.total_elements,
                    updated_at=run.created_at,
                )
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise LookupError(f"WBS set {set_id} not found for project {project_id}")
