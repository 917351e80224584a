"""WBSMatch Pydantic models for type-safe data validation.

Element records are built at the fetch boundary from the remote property
bags; everything downstream of the fetcher works on these models only.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MatchStrategy(str, Enum):
    """How an element was linked to a WBS activity."""

    ASSEMBLY_CODE_EXACT = "assembly-code-exact"
    ASSEMBLY_CODE_PREFIX = "assembly-code-prefix"
    DESCRIPTION_SIMILARITY = "description-similarity"
    UNMATCHED = "unmatched"


class PropertyDefinition(BaseModel):
    id: str = ""
    name: str = ""
    description: str = ""
    specification: str = ""


class RawProperty(BaseModel):
    """Unprocessed property as returned by the AEC Data Model service."""

    name: str
    value: Any = None
    definition: PropertyDefinition = Field(default_factory=PropertyDefinition)


class ElementCompliance(BaseModel):
    """How many of the required element fields are populated."""

    filled: int = 0
    total: int = 0
    pct: int = 0


class ModelElement(BaseModel):
    """Normalized BIM element fetched from a model."""

    element_id: str = ""
    external_element_id: str = ""
    revit_element_id: str = ""
    viewer_db_id: int | None = None
    db_id: int | str | None = None

    category: str = ""
    family_name: str = ""
    element_name: str = ""
    type_mark: str = ""
    description: str = ""
    model: str = ""
    manufacturer: str = ""
    assembly_code: str = ""
    assembly_description: str = ""

    count: int = 1
    raw_properties: list[RawProperty] = Field(default_factory=list)
    compliance: ElementCompliance = Field(default_factory=ElementCompliance)

    @field_validator("viewer_db_id")
    @classmethod
    def validate_viewer_db_id(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("viewer_db_id must be a positive integer")
        return v


class CategorySummary(BaseModel):
    total_elements: int = 0
    average_compliance_pct: int = 0
    fully_compliant: int = 0


class CategoryResolution(BaseModel):
    """Outcome of resolving a human category label against a model."""

    rows: list[ModelElement] = Field(default_factory=list)
    resolved_token: str | None = None
    filter_used: str | None = None
    summary: CategorySummary = Field(default_factory=CategorySummary)


class WbsItem(BaseModel):
    """Single activity in a WBS schedule."""

    code: str
    title: str
    level: int
    parent_code: str = ""

    start_date: str | None = None
    end_date: str | None = None
    duration_label: str = ""
    baseline_start_date: str | None = None
    baseline_end_date: str | None = None
    actual_start_date: str | None = None
    actual_end_date: str | None = None
    actual_progress_pct: float | None = None
    planned_cost: float | None = None
    actual_cost: float | None = None
    extra_props: dict[str, Any] | None = None


class WbsSet(BaseModel):
    """Timestamped WBS snapshot for one project/model pair."""

    model_config = ConfigDict(protected_namespaces=())

    wbs_set_id: str
    project_id: str
    model_id: str | None = None
    source_name: str = "WBS_Manual"
    row_count: int = 0
    created_at: datetime
    updated_at: datetime | None = None

    # Non-owning back-reference to the most recent match run
    latest_match_run_id: str | None = None
    latest_match_at: datetime | None = None
    last_matched_elements: int | None = None
    last_total_elements: int | None = None


class SavedWbsSet(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    wbs_set_id: str
    rows_saved: int
    model_id: str | None = None
    source_name: str = "WBS_Manual"


class WbsSnapshot(BaseModel):
    """A WBS set together with its items, in WBS order."""

    wbs_set: WbsSet
    items: list[WbsItem] = Field(default_factory=list)


class MatchResult(BaseModel):
    """Match outcome for a single model element."""

    item_key: str
    element_id: str = ""
    revit_element_id: str = ""
    external_element_id: str = ""
    viewer_db_id: int | None = None
    db_id: int | str | None = None
    category: str = ""
    family_name: str = ""
    element_name: str = ""
    type_mark: str = ""
    description: str = ""
    assembly_code: str = ""
    assembly_description: str = ""

    matched_wbs_code: str | None = None
    matched_wbs_title: str | None = None
    confidence: float = 0.0
    strategy: MatchStrategy = MatchStrategy.UNMATCHED

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("confidence must be between 0 and 1")
        return v

    @property
    def is_matched(self) -> bool:
        return self.strategy != MatchStrategy.UNMATCHED


class MatchRunSummary(BaseModel):
    """Aggregates reported back to the caller of a match run."""

    run_id: str
    wbs_set_id: str
    total_elements: int
    matched_elements: int
    unmatched_elements: int
    average_confidence: float
    latest_updated: bool = True


class MatchRun(BaseModel):
    """Immutable output of one matching pass."""

    run_id: str
    project_id: str
    model_id: str
    wbs_set_id: str
    total_elements: int = 0
    matched_elements: int = 0
    unmatched_elements: int = 0
    average_confidence: float = 0.0
    created_at: datetime
    rows: list[MatchResult] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    def summary(self, latest_updated: bool = True) -> MatchRunSummary:
        return MatchRunSummary(
            run_id=self.run_id,
            wbs_set_id=self.wbs_set_id,
            total_elements=self.total_elements,
            matched_elements=self.matched_elements,
            unmatched_elements=self.unmatched_elements,
            average_confidence=self.average_confidence,
            latest_updated=latest_updated,
        )


class LatestMatchRun(BaseModel):
    """Latest run for a model plus the WBS rows it was matched against."""

    run: MatchRun
    wbs_rows: list[WbsItem] = Field(default_factory=list)
