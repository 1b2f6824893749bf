"""
Query matching for Find.

A Query is a set of optional clauses combined under a MatchPolicy. The
matcher precomputes everything that does not depend on the candidate
record (folded needles, the id set, the union of group members) so that
evaluating a record is a handful of string comparisons.

Counting rule:
    Each populated clause increments ``clauses`` and, when it holds for
    the record, ``matched``. No populated clause matches everything; ALL
    requires every populated clause to hold; ANY requires at least one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from contactkit.core.errors import validation_error
from contactkit.core.models import ContactRecord, Field, MatchPolicy, Query
from contactkit.utils.normalization import fold_text

if TYPE_CHECKING:
    from contactkit.store.base import ContactStore

logger = logging.getLogger(__name__)


def combine(outcomes: Iterable[bool], policy: MatchPolicy) -> bool:
    """
    Apply the counting rule to the outcomes of the populated clauses.

    Args:
        outcomes: One boolean per populated clause
        policy: ALL or ANY

    Returns:
        True when the record matches
    """
    clauses = 0
    matched = 0
    for outcome in outcomes:
        clauses += 1
        if outcome:
            matched += 1

    if clauses == 0:
        return True
    if policy == MatchPolicy.ANY:
        return matched > 0
    return matched == clauses


def clean_ids(ids: Iterable[str]) -> list[str]:
    """Strip ids, dropping blanks and duplicates while preserving order."""
    seen: set[str] = set()
    cleaned: list[str] = []
    for raw in ids or ():
        value = (raw or "").strip()
        if value and value not in seen:
            seen.add(value)
            cleaned.append(value)
    return cleaned


def email_domain(address: str) -> str:
    """Lowercased part after the last '@', or "" when there is none."""
    _, sep, domain = (address or "").strip().rpartition("@")
    if not sep:
        return ""
    return domain.strip().lower()


@dataclass
class QueryMatcher:
    """
    Precomputed clause evaluator for a single Query.

    Build with for_query(); evaluate candidates with matches(). A populated
    clause has a non-None needle (or a non-empty id set).

    Attributes:
        policy: How clause outcomes are combined
        name_needle: Folded name-contains needle
        organization_needle: Folded organization-contains needle
        domain_needle: Lowercased email domain
        note_needle: Folded note-contains needle
        group_member_ids: Union of the members of every group_ids_any group,
            or None when the clause is not populated
        ids: Requested contact ids, or None when the clause is not populated
    """

    policy: MatchPolicy = MatchPolicy.ALL
    name_needle: str | None = None
    organization_needle: str | None = None
    domain_needle: str | None = None
    note_needle: str | None = None
    group_member_ids: set[str] | None = None
    ids: set[str] | None = field(default=None)

    @classmethod
    def for_query(cls, query: Query, store: ContactStore | None = None) -> QueryMatcher:
        """
        Build a matcher for a query.

        Group membership is resolved here, once per query: one
        group_members() call per requested group id. Errors from the store
        propagate and abort the Find.

        Args:
            query: Query to evaluate
            store: Store used to resolve group_ids_any

        Returns:
            QueryMatcher ready to evaluate records

        Raises:
            ContactsError: validation for an unknown match policy, or any
                error raised while reading group members
        """
        if not isinstance(query.match, MatchPolicy):
            raise validation_error(f"unknown match policy: {query.match}")

        matcher = cls(policy=query.match)

        name = (query.name_contains or "").strip()
        if name:
            matcher.name_needle = fold_text(name)

        organization = (query.organization_contains or "").strip()
        if organization:
            matcher.organization_needle = fold_text(organization)

        domain = (query.email_domain or "").strip().lstrip("@").strip().lower()
        if domain:
            matcher.domain_needle = domain

        note = (query.note_contains or "").strip()
        if note:
            matcher.note_needle = fold_text(note)

        group_ids = clean_ids(query.group_ids_any)
        if group_ids:
            if store is None:
                raise ValueError("a store is required to resolve group_ids_any")
            members: set[str] = set()
            for group_id in group_ids:
                group_members = store.group_members(group_id)
                logger.debug(
                    f"Group {group_id} has {len(group_members)} member(s)"
                )
                members.update(group_members)
            matcher.group_member_ids = members

        ids = clean_ids(query.ids)
        if ids:
            matcher.ids = set(ids)

        return matcher

    @property
    def clause_count(self) -> int:
        """Number of populated clauses."""
        return sum(
            1
            for populated in (
                self.name_needle is not None,
                self.organization_needle is not None,
                self.domain_needle is not None,
                self.note_needle is not None,
                self.group_member_ids is not None,
                self.ids is not None,
            )
            if populated
        )

    def required_fields(self) -> frozenset[Field]:
        """Record fields the populated clauses read."""
        needed: set[Field] = set()
        if self.name_needle is not None:
            needed.add(Field.NAMES)
        if self.organization_needle is not None:
            needed.add(Field.ORGANIZATION)
        if self.domain_needle is not None:
            needed.add(Field.EMAILS)
        if self.note_needle is not None:
            needed.add(Field.NOTE)
        return frozenset(needed)

    def outcomes(self, record: ContactRecord) -> list[bool]:
        """Evaluate each populated clause against a record, in clause order."""
        results: list[bool] = []
        if self.name_needle is not None:
            results.append(self.name_needle in fold_text(record.name_text()))
        if self.organization_needle is not None:
            results.append(self.organization_needle in fold_text(record.organization))
        if self.domain_needle is not None:
            results.append(
                any(email_domain(e.value) == self.domain_needle for e in record.emails)
            )
        if self.note_needle is not None:
            results.append(self.note_needle in fold_text(record.note))
        if self.group_member_ids is not None:
            results.append(record.id in self.group_member_ids)
        if self.ids is not None:
            results.append(record.id in self.ids)
        return results

    def matches(self, record: ContactRecord) -> bool:
        """True when the record satisfies the query under its policy."""
        return combine(self.outcomes(record), self.policy)

    def filter(self, records: Iterable[ContactRecord]) -> list[ContactRecord]:
        """Return matching records, preserving enumeration order."""
        return [record for record in records if self.matches(record)]


__all__ = ["QueryMatcher", "combine", "clean_ids", "email_domain"]
