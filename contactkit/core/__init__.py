"""
contactkit.core - Matching, windowing and write reconciliation

Everything in this package is backend independent; store adapters live in
contactkit.store.
"""

from contactkit.core.errors import ContactsError, ErrorCode
from contactkit.core.models import (
    ContactChanges,
    ContactDraft,
    ContactPatch,
    Field,
    FindInput,
    FindOutput,
    GetInput,
    GetOutput,
    GroupRef,
    GroupsAction,
    GroupsInput,
    GroupsOutput,
    MatchPolicy,
    MutateInput,
    MutateOutput,
    MutationOp,
    MutationType,
    Page,
    Query,
    Ref,
    Sort,
    SortField,
    SortOrder,
    UpsertInput,
    UpsertOutput,
)

__all__ = [
    "ContactsError",
    "ErrorCode",
    "ContactChanges",
    "ContactDraft",
    "ContactPatch",
    "Field",
    "FindInput",
    "FindOutput",
    "GetInput",
    "GetOutput",
    "GroupRef",
    "GroupsAction",
    "GroupsInput",
    "GroupsOutput",
    "MatchPolicy",
    "MutateInput",
    "MutateOutput",
    "MutationOp",
    "MutationType",
    "Page",
    "Query",
    "Ref",
    "Sort",
    "SortField",
    "SortOrder",
    "UpsertInput",
    "UpsertOutput",
]
