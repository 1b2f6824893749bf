"""
Sorting and offset-cursor pagination over a fully matched record set.

Cursors are the decimal string of a zero-based offset into the sorted
matched sequence. They are only meaningful when replayed against the same
query and sort; the matched set is recomputed on every call, so cursors
are not stable across concurrent changes to the store.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from contactkit.core.errors import validation_error
from contactkit.core.models import ContactRecord, Page, Sort, SortField, SortOrder

# Page size used when the caller asks for limit <= 0
DEFAULT_PAGE_LIMIT = 50

_CURSOR_RE = re.compile(r"[+-]?[0-9]+")


@dataclass
class Window:
    """One page of sorted records plus the cursor for the next page."""

    records: list[ContactRecord] = field(default_factory=list)
    next_cursor: str = ""


def parse_cursor(cursor: str | None) -> int:
    """
    Decode a cursor into an offset.

    Args:
        cursor: Cursor string; empty or whitespace means the first page

    Returns:
        Zero-based offset

    Raises:
        ContactsError: validation when the cursor is not a non-negative integer
    """
    text = (cursor or "").strip()
    if not text:
        return 0
    if not _CURSOR_RE.fullmatch(text):
        raise validation_error(f"invalid cursor: {text}")
    offset = int(text)
    if offset < 0:
        raise validation_error(f"invalid cursor: {text}")
    return offset


def encode_cursor(offset: int) -> str:
    return str(offset)


def sort_key(record: ContactRecord, by: SortField) -> tuple[str, str]:
    """Compound key: the primary name field, then the other one, casefolded."""
    given = (record.given_name or "").casefold()
    family = (record.family_name or "").casefold()
    if by == SortField.FAMILY_NAME:
        return family, given
    return given, family


def validate_sort(sort: Sort) -> None:
    """Raise a validation error for an unknown sort field or order."""
    if not isinstance(sort.by, SortField):
        raise validation_error(f"unknown sort field: {sort.by}")
    if not isinstance(sort.order, SortOrder):
        raise validation_error(f"unknown sort order: {sort.order}")


def sort_records(records: Sequence[ContactRecord], sort: Sort) -> list[ContactRecord]:
    """
    Sort records by the compound name key.

    The sort is stable, so records with equal keys keep their enumeration
    order in both directions.

    Raises:
        ContactsError: validation for an unknown sort field or order
    """
    validate_sort(sort)
    return sorted(
        records,
        key=lambda record: sort_key(record, sort.by),
        reverse=sort.order == SortOrder.DESC,
    )


def window(
    matched: Sequence[ContactRecord],
    page: Page,
    sort: Sort,
    default_limit: int = DEFAULT_PAGE_LIMIT,
) -> Window:
    """
    Sort the matched records and cut out the requested page.

    Args:
        matched: Every record that matched the query, in enumeration order
        page: Requested limit and cursor
        sort: Ordering to apply before slicing
        default_limit: Page size used when page.limit <= 0

    Returns:
        Window with at most limit records; next_cursor is "" on the last page
    """
    offset = parse_cursor(page.cursor)
    limit = page.limit if page.limit and page.limit > 0 else default_limit

    ordered = sort_records(matched, sort)
    total = len(ordered)
    start = min(max(offset, 0), total)
    end = min(start + limit, total)

    next_cursor = encode_cursor(end) if end < total else ""
    return Window(records=ordered[start:end], next_cursor=next_cursor)


__all__ = [
    "DEFAULT_PAGE_LIMIT",
    "Window",
    "parse_cursor",
    "encode_cursor",
    "sort_key",
    "validate_sort",
    "sort_records",
    "window",
]
