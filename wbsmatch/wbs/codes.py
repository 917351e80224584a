"""WBS code normalization, hierarchy and ordering.

Codes are dotted digit strings ("3.2.1"). Ordering compares segments as
integers, so "3.9" < "3.10" < "4", and a parent sorts before its children.
"""

from __future__ import annotations

import functools
import re

WBS_CODE_PATTERN = re.compile(r"^\d+(\.\d+)*$")
_WHITESPACE = re.compile(r"\s+")


def normalize_code_lookup(value: object) -> str:
    """Strip all whitespace; text that is not a WBS code is upper-cased."""
    raw = _WHITESPACE.sub("", str(value if value is not None else ""))
    if not raw:
        return ""
    if WBS_CODE_PATTERN.match(raw):
        return raw
    return raw.upper()


def normalize_wbs_code(value: object) -> str:
    """Return the canonical WBS code, or "" when the value is not a valid code."""
    code = normalize_code_lookup(value)
    return code if WBS_CODE_PATTERN.match(code) else ""


def code_segments(code: str) -> list[str]:
    return [part for part in normalize_wbs_code(code).split(".") if part]


def wbs_level(code: str) -> int:
    """Number of dot-separated segments (0 for an invalid code)."""
    return len(code_segments(code))


def parent_code(code: str) -> str:
    """All segments but the last, or "" for a top-level code."""
    parts = code_segments(code)
    if len(parts) <= 1:
        return ""
    return ".".join(parts[:-1])


def compare_wbs_codes(a: str, b: str) -> int:
    """Segment-wise numeric comparison; a missing segment counts as -1."""
    a_parts = [int(p) for p in code_segments(a)]
    b_parts = [int(p) for p in code_segments(b)]
    for i in range(max(len(a_parts), len(b_parts))):
        av = a_parts[i] if i < len(a_parts) else -1
        bv = b_parts[i] if i < len(b_parts) else -1
        if av != bv:
            return -1 if av < bv else 1
    return 0


wbs_sort_key = functools.cmp_to_key(compare_wbs_codes)
