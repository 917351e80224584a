"""WBS batch ingestion.

Validates submitted schedule rows and turns them into ``WbsItem`` records.
Validation is all-or-nothing: the first offending row rejects the batch.
"""

from __future__ import annotations

import math
import re
import warnings
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from wbsmatch.exceptions import DuplicateWbsCode, InvalidWbsRow
from wbsmatch.models import WbsItem
from wbsmatch.wbs.codes import normalize_wbs_code, parent_code, wbs_level, wbs_sort_key

DEFAULT_MAX_LEVEL = 8

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def _first(row: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key holding something non-empty."""
    for key in keys:
        value = row.get(key)
        if _text(value):
            return value
    return None


def parse_iso_date(value: Any) -> str | None:
    """Parse a date-ish value to ``YYYY-MM-DD``; unparseable values give None.

    Besides ISO dates and timestamps, schedule-export formats such as
    ``03/01/2025`` (month first) and ``March 5, 2025`` are accepted.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    raw = _text(value)
    if not raw:
        return None
    if _ISO_DATE.match(raw):
        try:
            return date.fromisoformat(raw).isoformat()
        except ValueError:
            return None

    with warnings.catch_warnings():
        # pandas warns when it falls back to per-value parsing
        warnings.simplefilter("ignore", UserWarning)
        parsed = pd.to_datetime(raw, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date().isoformat()


def parse_cost(value: Any) -> float | None:
    """Parse a cost, dropping thousands separators, rounded to 2 decimals."""
    raw = _text(value).replace(",", "")
    if not raw:
        return None
    try:
        parsed = float(raw)
    except ValueError:
        return None
    if not math.isfinite(parsed):
        return None
    return round(parsed, 2)


def _parse_pct(value: Any) -> float | None:
    raw = _text(value)
    if not raw:
        return None
    try:
        parsed = float(raw)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def sanitize_wbs_rows(
    rows: Iterable[Mapping[str, Any]], max_level: int = DEFAULT_MAX_LEVEL
) -> list[WbsItem]:
    """Validate a batch of WBS rows and return them in WBS order.

    Args:
        rows: Submitted rows (camelCase or snake_case keys)
        max_level: Deepest level accepted

    Returns:
        WbsItem list sorted by code

    Raises:
        InvalidWbsRow: On the first row with a bad code, depth or empty title,
            or when the batch is empty
        DuplicateWbsCode: When two rows normalize to the same code
    """
    items: list[WbsItem] = []
    seen_codes: set[str] = set()

    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise InvalidWbsRow("row is not a mapping", row_index=index)

        raw_code = _first(row, "code", "wbsCode", "wbs_code")
        code = normalize_wbs_code(raw_code)
        if not code:
            raise InvalidWbsRow(f"invalid WBS code {_text(raw_code)!r}", row_index=index)

        level = wbs_level(code)
        if level > max_level:
            raise InvalidWbsRow(
                f"WBS code {code} is level {level}, maximum is {max_level}", row_index=index
            )

        title = _text(_first(row, "title", "name", "activity"))
        if not title:
            raise InvalidWbsRow(f"missing title for WBS code {code}", row_index=index)

        if code in seen_codes:
            raise DuplicateWbsCode(code, row_index=index)
        seen_codes.add(code)

        extra_props = _first(row, "extraProps", "extra_props")
        items.append(
            WbsItem(
                code=code,
                title=title,
                level=level,
                parent_code=parent_code(code),
                start_date=parse_iso_date(_first(row, "startDate", "start_date")),
                end_date=parse_iso_date(_first(row, "endDate", "end_date")),
                duration_label=_text(_first(row, "duration", "durationLabel", "duration_label")),
                baseline_start_date=parse_iso_date(
                    _first(row, "baselineStartDate", "baseline_start_date")
                ),
                baseline_end_date=parse_iso_date(
                    _first(row, "baselineEndDate", "baseline_end_date")
                ),
                actual_start_date=parse_iso_date(
                    _first(row, "actualStartDate", "actual_start_date")
                ),
                actual_end_date=parse_iso_date(_first(row, "actualEndDate", "actual_end_date")),
                actual_progress_pct=_parse_pct(
                    _first(row, "actualProgressPct", "actual_progress_pct")
                ),
                planned_cost=parse_cost(_first(row, "plannedCost", "planned_cost")),
                actual_cost=parse_cost(_first(row, "actualCost", "actual_cost")),
                extra_props=dict(extra_props) if isinstance(extra_props, Mapping) else None,
            )
        )

    if not items:
        raise InvalidWbsRow("No valid WBS rows were provided")

    return sorted(items, key=lambda item: wbs_sort_key(item.code))


# Spreadsheet header -> row key
_COLUMN_MAP = {
    "wbs": "code",
    "wbs code": "code",
    "code": "code",
    "title": "title",
    "name": "title",
    "activity": "title",
    "task name": "title",
    "start": "startDate",
    "start date": "startDate",
    "finish": "endDate",
    "end": "endDate",
    "end date": "endDate",
    "duration": "duration",
    "baseline start": "baselineStartDate",
    "baseline finish": "baselineEndDate",
    "actual start": "actualStartDate",
    "actual finish": "actualEndDate",
    "% complete": "actualProgressPct",
    "progress": "actualProgressPct",
    "planned cost": "plannedCost",
    "budget": "plannedCost",
    "actual cost": "actualCost",
}


def read_wbs_file(file_path: Path) -> list[dict[str, Any]]:
    """Read WBS rows from a CSV or XLSX schedule export.

    WBS codes are read as text so "3.10" is not turned into 3.1.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file format is unsupported
    """
    if not file_path.exists():
        raise FileNotFoundError(f"WBS file not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
    elif suffix in (".xlsx", ".xls"):
        df = pd.read_excel(file_path, dtype=str, keep_default_na=False)
    else:
        raise ValueError(f"Unsupported file format: {file_path.suffix}. Use CSV or XLSX.")

    renamed = {
        column: _COLUMN_MAP.get(str(column).strip().lower(), str(column).strip())
        for column in df.columns
    }
    df = df.rename(columns=renamed)
    return df.to_dict(orient="records")
