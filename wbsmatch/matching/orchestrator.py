"""Match run orchestration.

Coordinates WBS set lookup → bulk element fetch → per-element matching →
aggregation → persistence of an immutable ``MatchRun``.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from datetime import datetime, timezone
from uuid import uuid4

import structlog

from wbsmatch.aec.client import ElementPageSource
from wbsmatch.aec.elements import fetch_all_elements
from wbsmatch.config import MatchingConfig
from wbsmatch.db.repository import WbsRepository
from wbsmatch.exceptions import MatchRunStageError, NoWbsSet
from wbsmatch.matching.matcher import WbsMatcher
from wbsmatch.models import (
    MatchResult,
    MatchRun,
    MatchRunSummary,
    MatchStrategy,
    ModelElement,
    WbsItem,
    WbsSet,
)

logger = structlog.get_logger(__name__)

ITEM_KEY_WIDTH = 6


def new_run_id() -> str:
    return f"MATCHRUN#{int(time.time() * 1000)}#{uuid4()}"


def element_item_key(index: int, total: int = 0) -> str:
    """Zero-padded, 1-based row key (``EL#000001``)."""
    width = max(ITEM_KEY_WIDTH, len(str(total)))
    return f"EL#{index + 1:0{width}d}"


def match_elements(
    elements: Sequence[ModelElement],
    items: Sequence[WbsItem],
    config: MatchingConfig | None = None,
) -> list[MatchResult]:
    """Match every element, keeping input order as row order."""
    matcher = WbsMatcher(items, config)
    total = len(elements)
    results = []
    for index, element in enumerate(elements):
        decision = matcher.match(element)
        results.append(
            MatchResult(
                item_key=element_item_key(index, total),
                element_id=element.element_id,
                revit_element_id=element.revit_element_id,
                external_element_id=element.external_element_id,
                viewer_db_id=element.viewer_db_id,
                db_id=element.db_id,
                category=element.category,
                family_name=element.family_name,
                element_name=element.element_name,
                type_mark=element.type_mark,
                description=element.description,
                assembly_code=element.assembly_code,
                assembly_description=element.assembly_description,
                matched_wbs_code=decision.matched_code,
                matched_wbs_title=decision.matched_title,
                confidence=decision.confidence,
                strategy=decision.strategy,
            )
        )
    return results


def build_match_run(
    *,
    project_id: str,
    model_id: str,
    wbs_set_id: str,
    rows: list[MatchResult],
    run_id: str | None = None,
    created_at: datetime | None = None,
) -> MatchRun:
    """Aggregate per-element results into a run.

    Average confidence is taken over matched elements only (0 if none).
    """
    matched = [row for row in rows if row.strategy != MatchStrategy.UNMATCHED]
    average = round(sum(row.confidence for row in matched) / len(matched), 4) if matched else 0.0

    return MatchRun(
        run_id=run_id or new_run_id(),
        project_id=project_id,
        model_id=model_id,
        wbs_set_id=wbs_set_id,
        total_elements=len(rows),
        matched_elements=len(matched),
        unmatched_elements=len(rows) - len(matched),
        average_confidence=average,
        created_at=created_at or datetime.now(timezone.utc),
        rows=rows,
    )


class MatchRunOrchestrator:
    """Runs one matching pass for a project/model pair."""

    def __init__(
        self,
        repository: WbsRepository,
        source: ElementPageSource,
        config: MatchingConfig | None = None,
    ):
        self.repository = repository
        self.source = source
        self.config = config or MatchingConfig()

    async def run(
        self, project_id: str, model_id: str, wbs_set_id: str | None = None
    ) -> MatchRunSummary:
        """Execute a full match run.

        Pipeline:
        1. Resolve the WBS set (explicit id, else latest for the model)
        2. Fetch every element of the model (no category filter)
        3. Match each element
        4. Aggregate and persist the run
        5. Point the set's back-reference at the new run

        Returns:
            MatchRunSummary; ``latest_updated`` is False when the run was saved
            but the back-reference could not be updated

        Raises:
            ValueError: If project_id or model_id is blank
            NoWbsSet: If no set exists or the set has no rows
            MatchRunStageError: If loading, fetching or saving fails
        """
        project_id = str(project_id or "").strip()
        model_id = str(model_id or "").strip()
        if not project_id:
            raise ValueError("project_id is required")
        if not model_id:
            raise ValueError("model_id is required")

        log = logger.bind(project_id=project_id, model_id=model_id)

        wbs_set, items = await self._load_wbs(project_id, model_id, wbs_set_id)

        try:
            elements = await fetch_all_elements(self.source, model_id)
        except Exception as exc:
            raise MatchRunStageError(MatchRunStageError.ELEMENT_FETCH, exc) from exc

        run = build_match_run(
            project_id=project_id,
            model_id=model_id,
            wbs_set_id=wbs_set.wbs_set_id,
            rows=match_elements(elements, items, self.config),
        )

        try:
            await self.repository.save_run(run)
        except Exception as exc:
            raise MatchRunStageError(MatchRunStageError.PERSIST, exc) from exc

        latest_updated = True
        try:
            await self.repository.update_set_latest_run(project_id, wbs_set.wbs_set_id, run)
        except Exception as exc:
            # Run is stored and readable by id; it just is not "latest" yet
            latest_updated = False
            log.warning(
                "latest_run_update_failed",
                run_id=run.run_id,
                wbs_set_id=wbs_set.wbs_set_id,
                error=str(exc),
            )

        log.info(
            "match_run_completed",
            run_id=run.run_id,
            wbs_set_id=wbs_set.wbs_set_id,
            total_elements=run.total_elements,
            matched_elements=run.matched_elements,
            average_confidence=run.average_confidence,
        )
        return run.summary(latest_updated=latest_updated)

    async def _load_wbs(
        self, project_id: str, model_id: str, wbs_set_id: str | None
    ) -> tuple[WbsSet, list[WbsItem]]:
        try:
            if wbs_set_id and str(wbs_set_id).strip():
                wbs_set = await self.repository.get_set(project_id, str(wbs_set_id).strip())
            else:
                wbs_set = await self.repository.get_latest_set(project_id, model_id)

            if wbs_set is None:
                raise NoWbsSet("No WBS set found for this project/model")

            items = await self.repository.get_items(wbs_set.wbs_set_id)
        except NoWbsSet:
            raise
        except Exception as exc:
            raise MatchRunStageError(MatchRunStageError.WBS_LOAD, exc) from exc

        if not items:
            raise NoWbsSet(f"Selected WBS set {wbs_set.wbs_set_id} has no rows")
        return wbs_set, items
