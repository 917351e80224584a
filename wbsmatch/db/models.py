"""SQLAlchemy async database models for WBSMatch.

Keys mirror the exact-key access pattern of the engine: sets by
(project, set id), items by (set id, item key), match rows by
(run id, item key).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class WbsSetModel(Base):
    """Immutable WBS snapshot header for a project/model pair."""

    __tablename__ = "wbs_sets"

    set_id: Mapped[str] = mapped_column(Text, primary_key=True)
    project_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    model_id: Mapped[str | None] = mapped_column(Text)
    source_name: Mapped[str] = mapped_column(Text, nullable=False, default="WBS_Manual")
    row_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Back-reference to the most recent run (not a foreign key: the run
    # is written first and may exist without being "latest")
    latest_match_run_id: Mapped[str | None] = mapped_column(Text)
    latest_match_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_matched_elements: Mapped[int | None] = mapped_column(Integer)
    last_total_elements: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (Index("idx_wbs_sets_project_model", "project_id", "model_id", "created_at"),)


class WbsItemModel(Base):
    """Single WBS activity belonging to a set."""

    __tablename__ = "wbs_items"

    wbs_set_id: Mapped[str] = mapped_column(
        Text, ForeignKey("wbs_sets.set_id", ondelete="CASCADE"), primary_key=True
    )
    item_key: Mapped[str] = mapped_column(Text, primary_key=True)  # WBS#<code>
    wbs_code: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    parent_code: Mapped[str] = mapped_column(Text, nullable=False, default="")

    start_date: Mapped[str | None] = mapped_column(Text)
    end_date: Mapped[str | None] = mapped_column(Text)
    duration_label: Mapped[str] = mapped_column(Text, nullable=False, default="")
    baseline_start_date: Mapped[str | None] = mapped_column(Text)
    baseline_end_date: Mapped[str | None] = mapped_column(Text)
    actual_start_date: Mapped[str | None] = mapped_column(Text)
    actual_end_date: Mapped[str | None] = mapped_column(Text)
    actual_progress_pct: Mapped[float | None] = mapped_column(Float)
    planned_cost: Mapped[float | None] = mapped_column(Float)
    actual_cost: Mapped[float | None] = mapped_column(Float)
    extra_props: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class MatchRunModel(Base):
    """Header row of an immutable match run."""

    __tablename__ = "match_runs"

    run_id: Mapped[str] = mapped_column(Text, primary_key=True)
    project_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    model_id: Mapped[str] = mapped_column(Text, nullable=False)
    wbs_set_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    total_elements: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    matched_elements: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unmatched_elements: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class MatchRowModel(Base):
    """Per-element match result of a run."""

    __tablename__ = "match_rows"

    run_id: Mapped[str] = mapped_column(
        Text, ForeignKey("match_runs.run_id", ondelete="CASCADE"), primary_key=True
    )
    item_key: Mapped[str] = mapped_column(Text, primary_key=True)  # EL#000001

    element_id: Mapped[str] = mapped_column(Text, nullable=False, default="")
    revit_element_id: Mapped[str] = mapped_column(Text, nullable=False, default="")
    external_element_id: Mapped[str] = mapped_column(Text, nullable=False, default="")
    viewer_db_id: Mapped[int | None] = mapped_column(Integer)
    db_id: Mapped[Any] = mapped_column(JSON)  # int or str, kept as-is
    category: Mapped[str] = mapped_column(Text, nullable=False, default="")
    family_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    element_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type_mark: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    assembly_code: Mapped[str] = mapped_column(Text, nullable=False, default="")
    assembly_description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    matched_wbs_code: Mapped[str | None] = mapped_column(Text)
    matched_wbs_title: Mapped[str | None] = mapped_column(Text)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    strategy: Mapped[str] = mapped_column(Text, nullable=False)
