"""Element retrieval and normalization.

Raw elements arrive as loosely-typed property bags. ``map_element`` turns
each one into a ``ModelElement`` by looking up every field in a prioritized
alias list (first alias present wins).
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from wbsmatch.aec.client import ElementPageSource
from wbsmatch.models import (
    CategorySummary,
    ElementCompliance,
    ModelElement,
    PropertyDefinition,
    RawProperty,
)

logger = structlog.get_logger(__name__)

# Bulk filter: instances only, so type-level rows are not counted twice
BULK_CONTEXT_FILTER = "'property.name.Element Context'==Instance"

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "revit_element_id": ("Revit Element ID", "Element Id", "ElementId", "Id"),
    "category": ("Revit Category Type Id", "Category", "Category Name"),
    "family_name": ("Family Name", "Family"),
    "element_name": ("Element Name", "Name"),
    "type_mark": ("Type Mark", "Mark"),
    "description": ("Description", "Type Description"),
    "model": ("Model", "Model Number", "Modelo"),
    "manufacturer": ("Manufacturer", "Fabricante"),
    "assembly_code": ("Assembly Code", "OmniClass Number"),
    "assembly_description": ("Assembly Description", "OmniClass Title"),
}

DB_ID_ALIASES = ("DbId", "dbId", "Db Id")

# Fields counted towards element compliance, in reporting order
REQUIRED_FIELDS = tuple(FIELD_ALIASES)

_POSITIVE_INT = re.compile(r"^\d+$")


def to_text(value: Any) -> str:
    """Render a property value as display text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (str, int, float)):
        return str(value).strip()
    if isinstance(value, (list, tuple)):
        return ", ".join(text for text in (to_text(v) for v in value) if text)
    if isinstance(value, Mapping):
        for key in ("displayValue", "value", "name", "label"):
            if key in value:
                return to_text(value[key])
    return ""


def round_half_up(value: float) -> int:
    """Nearest integer with halves rounded up (42.5 -> 43)."""
    return math.floor(value + 0.5)


def to_positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    text = str(value if value is not None else "").strip()
    if not _POSITIVE_INT.match(text):
        return None
    parsed = int(text)
    return parsed if parsed > 0 else None


def pick_property(properties: Iterable[Mapping[str, Any]], names: Iterable[str]) -> str:
    """Return the value of the first property whose name matches an alias.

    Aliases are tried in priority order and compared case-insensitively.
    """
    by_name: dict[str, Any] = {}
    for prop in properties:
        key = str(prop.get("name") or "").strip().lower()
        if key and key not in by_name:
            by_name[key] = prop.get("value")

    for name in names:
        key = name.strip().lower()
        if key in by_name:
            return to_text(by_name[key])
    return ""


def _raw_property(prop: Mapping[str, Any]) -> RawProperty:
    definition = prop.get("definition") or {}
    return RawProperty(
        name=to_text(prop.get("name")),
        value=prop.get("value"),
        definition=PropertyDefinition(
            id=to_text(definition.get("id")),
            name=to_text(definition.get("name")),
            description=to_text(definition.get("description")),
            specification=to_text(definition.get("specification")),
        ),
    )


def map_element(element: Mapping[str, Any]) -> ModelElement:
    """Map a raw GraphQL element onto a ``ModelElement``."""
    props_payload = element.get("properties") or {}
    properties = props_payload.get("results") if isinstance(props_payload, Mapping) else None
    if not isinstance(properties, list):
        properties = []
    properties = [p for p in properties if isinstance(p, Mapping)]

    alt_ids = element.get("alternativeIdentifiers") or {}

    fields = {name: pick_property(properties, aliases) for name, aliases in FIELD_ALIASES.items()}
    fields["revit_element_id"] = to_text(alt_ids.get("revitElementId")) or fields["revit_element_id"]
    fields["element_name"] = fields["element_name"] or to_text(element.get("name"))

    element_id = to_text(element.get("id"))
    explicit_db_id = pick_property(properties, DB_ID_ALIASES)
    viewer_db_id = (
        to_positive_int(explicit_db_id)
        or to_positive_int(element.get("dbId"))
        or to_positive_int(element_id)
    )
    db_id = viewer_db_id or explicit_db_id or fields["revit_element_id"] or element_id or None

    filled = sum(1 for name in REQUIRED_FIELDS if fields[name])
    total = len(REQUIRED_FIELDS)

    return ModelElement(
        element_id=element_id,
        external_element_id=to_text(alt_ids.get("externalElementId")),
        viewer_db_id=viewer_db_id,
        db_id=db_id,
        count=1,
        raw_properties=[_raw_property(p) for p in properties],
        compliance=ElementCompliance(
            filled=filled, total=total, pct=round_half_up(filled / total * 100) if total else 0
        ),
        **fields,
    )


async def fetch_rows_by_filter(
    source: ElementPageSource, model_id: str, property_filter: str
) -> list[ModelElement]:
    """Fetch every element matching ``property_filter``, following cursors.

    Pages are requested one after the other; rows keep the service order.
    """
    rows: list[ModelElement] = []
    cursor: str | None = None
    pages = 0

    while True:
        page = await source.fetch_page(model_id, property_filter, cursor)
        pages += 1
        rows.extend(map_element(raw) for raw in page.results if isinstance(raw, Mapping))

        cursor = page.cursor or None
        if not cursor:
            break

    logger.info(
        "elements_fetched",
        model_id=model_id,
        property_filter=property_filter,
        pages=pages,
        elements=len(rows),
    )
    return rows


async def fetch_all_elements(source: ElementPageSource, model_id: str) -> list[ModelElement]:
    """Fetch every element instance of a model, without category filtering."""
    if not str(model_id or "").strip():
        raise ValueError("model_id is required")
    return await fetch_rows_by_filter(source, model_id, BULK_CONTEXT_FILTER)


def summarize_compliance(rows: list[ModelElement]) -> CategorySummary:
    """Roll element compliance up into a category summary."""
    total = len(rows)
    if not total:
        return CategorySummary()
    pcts = [row.compliance.pct for row in rows]
    return CategorySummary(
        total_elements=total,
        average_compliance_pct=round_half_up(sum(pcts) / total),
        fully_compliant=sum(1 for pct in pcts if pct >= 100),
    )
