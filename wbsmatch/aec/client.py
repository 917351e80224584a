"""AEC Data Model GraphQL client.

Fetches pages of model elements for an element group (model) using the
service's cursor pagination.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import structlog

from wbsmatch.aec.retry import call_with_retry, is_retryable_error, linear_delay
from wbsmatch.config import AecConfig
from wbsmatch.exceptions import GraphQLQueryError, TransportError

logger = structlog.get_logger(__name__)

ELEMENTS_BY_GROUP_QUERY = """
query GetElementsByFilter($elementGroupId: ID!, $propertyFilter: String!, $cursor: String, $limit: Int) {
  elementsByElementGroup(
    elementGroupId: $elementGroupId,
    filter: { query: $propertyFilter },
    pagination: { cursor: $cursor, limit: $limit }
  ) {
    pagination { cursor pageSize }
    results {
      id
      name
      alternativeIdentifiers {
        revitElementId
        externalElementId
      }
      properties {
        results {
          name
          value
          definition {
            id
            name
            description
            specification
          }
        }
      }
    }
  }
}
"""


@dataclass
class ElementPage:
    """One page of raw elements plus the cursor for the next page."""

    results: list[dict[str, Any]] = field(default_factory=list)
    cursor: str | None = None


class ElementPageSource(Protocol):
    """Anything able to return a page of elements for a filter."""

    async def fetch_page(
        self, model_id: str, property_filter: str, cursor: str | None = None
    ) -> ElementPage: ...


class AecGraphQLClient:
    """Client for the AEC Data Model GraphQL API."""

    def __init__(
        self,
        access_token: str,
        config: AecConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not access_token:
            raise ValueError("Missing APS access token")

        self.config = config or AecConfig()
        self._sleep = sleep
        self.client = httpx.AsyncClient(
            timeout=self.config.request_timeout_s,
            transport=transport,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
        )

    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """POST a GraphQL query and return its ``data`` object.

        Raises:
            GraphQLQueryError: The service answered with an ``errors`` payload
            TransportError: Non-retryable HTTP failure or retries exhausted
        """
        try:
            return await call_with_retry(
                lambda: self._post_once(query, variables),
                attempts=self.config.retry_attempts,
                is_retryable=is_retryable_error,
                delay=linear_delay(self.config.retry_delay_s),
                sleep=self._sleep,
            )
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                f"AEC GraphQL error: {exc.response.status_code} {exc.response.text}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise TransportError(f"AEC GraphQL request failed: {exc}") from exc

    async def _post_once(self, query: str, variables: dict[str, Any] | None) -> dict[str, Any]:
        response = await self.client.post(
            self.config.graphql_url, json={"query": query, "variables": variables or {}}
        )
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError(
                f"AEC GraphQL returned a non-JSON body: {response.text[:200]}",
                status_code=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise TransportError(
                f"AEC GraphQL returned an unexpected payload: {type(payload).__name__}",
                status_code=response.status_code,
            )

        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0] if isinstance(errors[0], dict) else {"message": str(errors[0])}
            message = first.get("message") or "AEC GraphQL error"
            raise GraphQLQueryError(message)

        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    async def fetch_page(
        self, model_id: str, property_filter: str, cursor: str | None = None
    ) -> ElementPage:
        data = await self.execute(
            ELEMENTS_BY_GROUP_QUERY,
            {
                "elementGroupId": model_id,
                "propertyFilter": property_filter,
                "cursor": cursor,
                "limit": self.config.page_limit,
            },
        )
        payload = data.get("elementsByElementGroup") or {}
        results = payload.get("results")
        pagination = payload.get("pagination") or {}
        page = ElementPage(
            results=results if isinstance(results, list) else [],
            cursor=pagination.get("cursor") or None,
        )
        logger.debug(
            "element_page_fetched",
            model_id=model_id,
            elements=len(page.results),
            has_next=page.cursor is not None,
        )
        return page

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> AecGraphQLClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
