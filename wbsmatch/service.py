"""Public entry points of the WBS matching engine.

``WbsMatchService`` is what an outer layer (HTTP handler, CLI) calls. It
binds a remote element source and a repository and exposes the engine's
operations.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import structlog

from wbsmatch.aec.categories import resolve_category_elements
from wbsmatch.aec.client import ElementPageSource
from wbsmatch.aec.elements import fetch_all_elements
from wbsmatch.config import AecConfig, MatchingConfig
from wbsmatch.db.repository import WbsRepository
from wbsmatch.matching.orchestrator import MatchRunOrchestrator
from wbsmatch.models import (
    CategoryResolution,
    LatestMatchRun,
    MatchRunSummary,
    ModelElement,
    SavedWbsSet,
    WbsSet,
    WbsSnapshot,
)
from wbsmatch.wbs.ingestion import sanitize_wbs_rows

logger = structlog.get_logger(__name__)

DEFAULT_SOURCE_NAME = "WBS_Manual"


def new_wbs_set_id() -> str:
    return f"WBSSET#{int(time.time() * 1000)}#{uuid4()}"


def _required(value: Any, name: str) -> str:
    text = str(value if value is not None else "").strip()
    if not text:
        raise ValueError(f"{name} is required")
    return text


class WbsMatchService:
    """Facade over category resolution, WBS storage and match runs."""

    def __init__(
        self,
        repository: WbsRepository,
        source: ElementPageSource | None = None,
        matching: MatchingConfig | None = None,
        aec: AecConfig | None = None,
    ):
        self.repository = repository
        self.source = source
        self.matching = matching or MatchingConfig()
        self.aec = aec or AecConfig()

    def _require_source(self) -> ElementPageSource:
        if self.source is None:
            raise RuntimeError("No element source configured (APS access token missing?)")
        return self.source

    async def resolve_category_elements(self, model_id: str, category: str) -> CategoryResolution:
        """Elements of one category, with the token and filter that found them."""
        return await resolve_category_elements(
            self._require_source(),
            _required(model_id, "model_id"),
            category,
            aliases=self.aec.category_aliases,
        )

    async def fetch_all_elements(self, model_id: str) -> list[ModelElement]:
        return await fetch_all_elements(self._require_source(), _required(model_id, "model_id"))

    async def save_wbs_set(
        self,
        project_id: str,
        model_id: str | None,
        source_name: str | None,
        rows: Iterable[Mapping[str, Any]],
    ) -> SavedWbsSet:
        """Validate and store a new WBS snapshot.

        The batch is validated in full before anything is written, so a
        rejected batch leaves no rows behind.

        Raises:
            ValueError: If project_id is blank
            InvalidWbsRow: If any row is invalid (first offending row reported)
            DuplicateWbsCode: If two rows share a code
        """
        project_id = _required(project_id, "project_id")
        items = sanitize_wbs_rows(rows, max_level=self.matching.wbs_max_level)

        created_at = datetime.now(timezone.utc)
        wbs_set = WbsSet(
            wbs_set_id=new_wbs_set_id(),
            project_id=project_id,
            model_id=str(model_id or "").strip() or None,
            source_name=str(source_name or "").strip() or DEFAULT_SOURCE_NAME,
            row_count=len(items),
            created_at=created_at,
            updated_at=created_at,
        )
        await self.repository.save_set(wbs_set, items)

        logger.info(
            "wbs_set_saved",
            project_id=project_id,
            model_id=wbs_set.model_id,
            wbs_set_id=wbs_set.wbs_set_id,
            rows=len(items),
        )
        return SavedWbsSet(
            wbs_set_id=wbs_set.wbs_set_id,
            rows_saved=len(items),
            model_id=wbs_set.model_id,
            source_name=wbs_set.source_name,
        )

    async def get_latest_wbs_set(
        self, project_id: str, model_id: str | None = None
    ) -> WbsSnapshot | None:
        wbs_set = await self.repository.get_latest_set(
            _required(project_id, "project_id"), str(model_id or "").strip() or None
        )
        if wbs_set is None:
            return None
        items = await self.repository.get_items(wbs_set.wbs_set_id)
        return WbsSnapshot(wbs_set=wbs_set, items=items)

    async def run_matching(
        self, project_id: str, model_id: str, wbs_set_id: str | None = None
    ) -> MatchRunSummary:
        orchestrator = MatchRunOrchestrator(self.repository, self._require_source(), self.matching)
        return await orchestrator.run(project_id, model_id, wbs_set_id)

    async def get_latest_match_run(self, project_id: str, model_id: str) -> LatestMatchRun | None:
        """Most recent run of the latest WBS set for a model, or None."""
        project_id = _required(project_id, "project_id")
        model_id = _required(model_id, "model_id")

        wbs_set = await self.repository.get_latest_set(project_id, model_id)
        if wbs_set is None or not wbs_set.latest_match_run_id:
            return None

        run = await self.repository.get_run(wbs_set.latest_match_run_id)
        if run is None:
            return None

        wbs_rows = await self.repository.get_items(wbs_set.wbs_set_id)
        return LatestMatchRun(run=run, wbs_rows=wbs_rows)
