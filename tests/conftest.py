"""Pytest configuration and fixtures for WBSMatch tests.

Provides an in-memory element source, raw element builders, WBS fixtures
and a SQLite-backed repository.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from wbsmatch.aec.client import ElementPage
from wbsmatch.config import DBConfig, reset_config
from wbsmatch.db.connection import build_engine, create_schema, make_session_provider
from wbsmatch.db.repository import SqlWbsRepository
from wbsmatch.models import ModelElement, WbsItem
from wbsmatch.wbs.codes import parent_code, wbs_level


class FakePageSource:
    """Element source serving scripted pages per filter expression.

    ``pages[filter]`` is a list of pages (each a list of raw elements);
    cursors ``c1``, ``c2``... link them. ``errors[filter]`` raises instead.
    Filters with no entry return a single empty page.
    """

    def __init__(
        self,
        pages: dict[str, list[list[dict[str, Any]]]] | None = None,
        errors: dict[str, Exception] | None = None,
    ):
        self.pages = pages or {}
        self.errors = errors or {}
        self.calls: list[tuple[str, str, str | None]] = []

    async def fetch_page(
        self, model_id: str, property_filter: str, cursor: str | None = None
    ) -> ElementPage:
        self.calls.append((model_id, property_filter, cursor))
        if property_filter in self.errors:
            raise self.errors[property_filter]

        pages = self.pages.get(property_filter) or [[]]
        index = int(cursor[1:]) if cursor else 0
        next_cursor = f"c{index + 1}" if index + 1 < len(pages) else None
        return ElementPage(results=pages[index], cursor=next_cursor)

    @property
    def filters_tried(self) -> list[str]:
        return [call[1] for call in self.calls]


def raw_element(
    element_id: str,
    name: str | None = None,
    revit_element_id: str | None = None,
    external_element_id: str | None = None,
    **properties: Any,
) -> dict[str, Any]:
    """Build a GraphQL-shaped element. Property names use spaces for underscores."""
    return {
        "id": element_id,
        "name": name,
        "alternativeIdentifiers": {
            "revitElementId": revit_element_id,
            "externalElementId": external_element_id,
        },
        "properties": {
            "results": [
                {"name": key.replace("_", " "), "value": value}
                for key, value in properties.items()
            ]
        },
    }


def wbs_item(code: str, title: str) -> WbsItem:
    return WbsItem(code=code, title=title, level=wbs_level(code), parent_code=parent_code(code))


@pytest.fixture
def fake_source() -> Callable[..., FakePageSource]:
    """Factory for scripted element sources."""
    return FakePageSource


@pytest.fixture
def make_raw_element() -> Callable[..., dict[str, Any]]:
    return raw_element


@pytest.fixture
def make_wbs_item() -> Callable[[str, str], WbsItem]:
    return wbs_item


@pytest.fixture
def test_project_id() -> str:
    return "b.test-project"


@pytest.fixture
def test_model_id() -> str:
    return "model-urn-1"


@pytest.fixture
def wbs_rows() -> list[dict[str, Any]]:
    """Schedule rows as submitted by a client."""
    return [
        {"code": "3", "title": "Structure"},
        {"code": "3.2", "title": "Foundations"},
        {"code": "3.2.1", "title": "Foundation Pour", "startDate": "2025-03-01"},
        {"code": "3.5", "title": "Interior Walls", "plannedCost": "12,500.456"},
        {"code": "4", "title": "Mechanical Ductwork Installation"},
    ]


@pytest.fixture
def wbs_items() -> list[WbsItem]:
    return [
        wbs_item("3", "Structure"),
        wbs_item("3.2", "Foundations"),
        wbs_item("3.2.1", "Foundation Pour"),
        wbs_item("3.5", "Interior Walls"),
        wbs_item("4", "Mechanical Ductwork Installation"),
    ]


@pytest.fixture
def sample_element() -> ModelElement:
    return ModelElement(
        element_id="el-1",
        revit_element_id="1001",
        category="Walls",
        family_name="Basic Wall",
        element_name="Interior Wall Type A",
    )


@pytest_asyncio.fixture()
async def session_provider():
    """Session provider bound to a fresh in-memory database."""
    engine = build_engine(DBConfig(url="sqlite+aiosqlite:///:memory:"))
    await create_schema(engine)

    try:
        yield make_session_provider(
            sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        )
    finally:
        await engine.dispose()


@pytest.fixture
def repository(session_provider) -> SqlWbsRepository:
    return SqlWbsRepository(session_provider)


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reset_config()
    yield
    reset_config()
