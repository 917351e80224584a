"""Error taxonomy for the WBS matching engine.

Empty category results and unmatched elements are returned as data; only
the conditions below are raised.
"""

from __future__ import annotations


class WbsMatchError(Exception):
    """Base class for all engine errors."""


class InvalidCategory(WbsMatchError):
    """Category label is empty or yields no query tokens."""


class UnresolvableCategory(WbsMatchError):
    """Every candidate category filter was rejected as a query syntax error."""

    def __init__(self, category: str, last_error: str = ""):
        self.category = category
        self.last_error = last_error
        super().__init__(
            f"Could not build a valid filter for category '{category}'. {last_error}".strip()
        )


class TransportError(WbsMatchError):
    """Non-retryable remote failure, or the retry budget was exhausted."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class GraphQLQueryError(TransportError):
    """The GraphQL service answered with an ``errors`` payload."""


class InvalidWbsRow(WbsMatchError):
    """A submitted WBS row failed validation; the whole batch is rejected."""

    def __init__(self, message: str, row_index: int | None = None):
        self.row_index = row_index
        if row_index is not None:
            message = f"Row {row_index}: {message}"
        super().__init__(message)


class DuplicateWbsCode(InvalidWbsRow):
    """Two rows in the same batch share a normalized WBS code."""

    def __init__(self, code: str, row_index: int | None = None):
        self.code = code
        super().__init__(f"Duplicate WBS code detected: {code}", row_index=row_index)


class NoWbsSet(WbsMatchError):
    """No WBS set (or an empty one) is available to match against."""


class MatchRunStageError(WbsMatchError):
    """A match run failed; ``stage`` names the step that broke."""

    WBS_LOAD = "wbs-load"
    ELEMENT_FETCH = "element-fetch"
    PERSIST = "persist"

    def __init__(self, stage: str, cause: Exception):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Match run failed during {stage}: {cause}")
