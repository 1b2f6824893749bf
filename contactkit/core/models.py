"""
Identifier, value and record models for contact primitives.

Provides the typed vocabulary shared by the matcher, windower, write
executor and membership reconciler:
- Stable references (Ref, GroupRef) issued by the backing store
- The store-side ContactRecord and the hydrated Item returned to callers
- Query, Page and Sort selection inputs
- Create/patch/mutation models (ContactDraft, ContactChanges, MutationOp)
- Per-item outcomes (WriteResult, GroupResult)
- Request/response envelopes for the five primitives
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

from contactkit.core.errors import ContactsError

E = TypeVar("E", bound=Enum)


def coerce_enum(enum_cls: type[E], value: Any) -> E | Any:
    """
    Convert a raw value into an enum member when it names one.

    Unknown values are returned unchanged so that callers can report them
    as validation errors instead of failing at construction time.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return value


# =============================================================================
# Enumerations
# =============================================================================


class AuthStatus(str, Enum):
    """Contacts permission state for the current process."""

    NOT_DETERMINED = "not_determined"
    RESTRICTED = "restricted"
    DENIED = "denied"
    AUTHORIZED = "authorized"


class MatchPolicy(str, Enum):
    """How populated Query clauses are combined."""

    ALL = "all"
    ANY = "any"


class SortField(str, Enum):
    """Primary sort key for Find."""

    GIVEN_NAME = "given_name"
    FAMILY_NAME = "family_name"


class SortOrder(str, Enum):
    """Sort direction for Find."""

    ASC = "asc"
    DESC = "desc"


class Field(str, Enum):
    """Logical data selectors for Get hydration."""

    NAMES = "names"
    ORGANIZATION = "organization"
    EMAILS = "emails"
    PHONES = "phones"
    NOTE = "note"
    GROUPS = "groups"


class MutationType(str, Enum):
    """Explicit state transitions accepted by Mutate."""

    SET_NOTE = "set_note"
    SET_ORGANIZATION = "set_organization"
    SET_JOB_TITLE = "set_job_title"
    SET_GIVEN_NAME = "set_given_name"
    SET_FAMILY_NAME = "set_family_name"
    ADD_TO_GROUP = "add_to_group"
    REMOVE_FROM_GROUP = "remove_from_group"
    DELETE = "delete"


# Scalar mutation types and the ContactRecord attribute each one replaces
SCALAR_MUTATIONS: dict[MutationType, str] = {
    MutationType.SET_NOTE: "note",
    MutationType.SET_ORGANIZATION: "organization",
    MutationType.SET_JOB_TITLE: "job_title",
    MutationType.SET_GIVEN_NAME: "given_name",
    MutationType.SET_FAMILY_NAME: "family_name",
}


class GroupsAction(str, Enum):
    """Group catalog operations."""

    LIST = "list"
    CREATE = "create"
    RENAME = "rename"
    DELETE = "delete"


# =============================================================================
# References
# =============================================================================


@dataclass(frozen=True)
class Ref:
    """
    Stable contact reference shared across primitives.

    Attributes:
        id: Store-assigned contact identifier (required)
        container_id: Backend container identifier (advisory)
        account_id: Backend account identifier (advisory, may equal container_id)
    """

    id: str
    container_id: str = ""
    account_id: str = ""


@dataclass(frozen=True)
class GroupRef:
    """Stable group reference shared across group operations."""

    id: str
    container_id: str = ""
    account_id: str = ""


@dataclass
class Group:
    """Discoverable group metadata."""

    ref: GroupRef
    name: str = ""

    @property
    def id(self) -> str:
        return self.ref.id


@dataclass
class LabeledValue:
    """A labeled string value (email address or phone number)."""

    value: str
    label: str = ""


# =============================================================================
# Records
# =============================================================================


@dataclass
class ContactRecord:
    """
    Store-side contact record.

    This is what store adapters enumerate and fetch. Fields a fetch did not
    request are left at their empty defaults.

    Attributes:
        id: Store-assigned identifier ("" until the store creates it)
        container_id: Container the record lives in
        account_id: Account the record belongs to
        given_name: First name
        middle_name: Middle name
        family_name: Last name
        nickname: Nickname
        organization: Organization name
        job_title: Job title
        note: Free-form note text
        emails: Labeled email addresses
        phones: Labeled phone numbers
        group_ids: Identifiers of groups the record belongs to
        modified_at: Last modification time, when the backend exposes one
        etag: Backend concurrency token, passed back on update
    """

    id: str = ""
    container_id: str = ""
    account_id: str = ""
    given_name: str = ""
    middle_name: str = ""
    family_name: str = ""
    nickname: str = ""
    organization: str = ""
    job_title: str = ""
    note: str = ""
    emails: list[LabeledValue] = field(default_factory=list)
    phones: list[LabeledValue] = field(default_factory=list)
    group_ids: list[str] = field(default_factory=list)
    modified_at: datetime | None = None
    etag: str = ""

    def ref(self) -> Ref:
        """Return the stable reference for this record."""
        return Ref(
            id=self.id, container_id=self.container_id, account_id=self.account_id
        )

    def name_text(self) -> str:
        """Given, middle, family and nickname joined by single spaces."""
        parts = [self.given_name, self.middle_name, self.family_name, self.nickname]
        return " ".join(p for p in parts if p)

    def display_name(self) -> str:
        """Given + family name, falling back to the organization."""
        parts = [p for p in (self.given_name, self.family_name) if p]
        if not parts and self.organization:
            return self.organization
        return " ".join(parts)

    def copy(self) -> ContactRecord:
        """Return a deep copy safe to mutate."""
        return copy.deepcopy(self)


@dataclass
class Item:
    """Hydrated contact returned by Get."""

    ref: Ref
    given_name: str = ""
    family_name: str = ""
    middle_name: str = ""
    nickname: str = ""
    organization: str = ""
    job_title: str = ""
    note: str = ""
    emails: list[LabeledValue] = field(default_factory=list)
    phones: list[LabeledValue] = field(default_factory=list)
    group_ids: list[str] = field(default_factory=list)
    modified_at: datetime | None = None

    @classmethod
    def from_record(
        cls, record: ContactRecord, fields: frozenset[Field] | None = None
    ) -> Item:
        """
        Build an Item from a store record, keeping only the requested fields.

        Args:
            record: Source record
            fields: Requested fields; None or empty means all fields

        Returns:
            Item with unrequested fields left empty
        """
        wants = (lambda f: True) if not fields else (lambda f: f in fields)

        item = cls(ref=record.ref(), modified_at=record.modified_at)
        if wants(Field.NAMES):
            item.given_name = record.given_name
            item.family_name = record.family_name
            item.middle_name = record.middle_name
            item.nickname = record.nickname
        if wants(Field.ORGANIZATION):
            item.organization = record.organization
            item.job_title = record.job_title
        if wants(Field.NOTE):
            item.note = record.note
        if wants(Field.EMAILS):
            item.emails = [LabeledValue(e.value, e.label) for e in record.emails]
        if wants(Field.PHONES):
            item.phones = [LabeledValue(p.value, p.label) for p in record.phones]
        if wants(Field.GROUPS):
            item.group_ids = list(record.group_ids)
        return item


@dataclass
class Meta:
    """Optional lightweight metadata aligned with FindOutput.refs."""

    ref: Ref
    display_name: str = ""
    organization: str = ""
    modified_at: datetime | None = None


# =============================================================================
# Selection
# =============================================================================


@dataclass
class Query:
    """
    Typed selection filters for Find.

    Every clause is optional. Strings that are empty after trimming and
    list clauses without a non-blank id count as not populated. A query
    with no populated clause matches every contact.
    """

    name_contains: str = ""
    organization_contains: str = ""
    email_domain: str = ""
    note_contains: str = ""
    group_ids_any: list[str] = field(default_factory=list)
    ids: list[str] = field(default_factory=list)
    match: MatchPolicy = MatchPolicy.ALL

    def __post_init__(self) -> None:
        self.match = coerce_enum(MatchPolicy, self.match or MatchPolicy.ALL)


@dataclass
class Page:
    """Pagination window. cursor is "" for the first page."""

    limit: int = 0
    cursor: str = ""


@dataclass
class Sort:
    """Find ordering."""

    by: SortField = SortField.GIVEN_NAME
    order: SortOrder = SortOrder.ASC

    def __post_init__(self) -> None:
        self.by = coerce_enum(SortField, self.by or SortField.GIVEN_NAME)
        self.order = coerce_enum(SortOrder, self.order or SortOrder.ASC)


# =============================================================================
# Writes
# =============================================================================


@dataclass
class ContactDraft:
    """Create model for Upsert."""

    container_id: str = ""
    given_name: str = ""
    family_name: str = ""
    middle_name: str = ""
    nickname: str = ""
    organization: str = ""
    job_title: str = ""
    note: str = ""
    emails: list[LabeledValue] = field(default_factory=list)
    phones: list[LabeledValue] = field(default_factory=list)
    group_ids: list[str] = field(default_factory=list)


# ContactChanges scalar attributes, in the order they are applied
CHANGE_SCALAR_FIELDS = (
    "given_name",
    "family_name",
    "middle_name",
    "nickname",
    "organization",
    "job_title",
    "note",
)


@dataclass
class ContactChanges:
    """
    Typed patch for an existing contact.

    None means "no change". Any string, including "", replaces the field.
    For emails and phones, None leaves the list untouched while a list
    (even an empty one) replaces it, so [] clears the field.
    """

    given_name: str | None = None
    family_name: str | None = None
    middle_name: str | None = None
    nickname: str | None = None
    organization: str | None = None
    job_title: str | None = None
    note: str | None = None
    emails: list[LabeledValue] | None = None
    phones: list[LabeledValue] | None = None
    add_group_ids: list[str] = field(default_factory=list)
    remove_group_ids: list[str] = field(default_factory=list)

    def has_field_updates(self) -> bool:
        """True when at least one scalar or list field is explicitly set."""
        if any(getattr(self, name) is not None for name in CHANGE_SCALAR_FIELDS):
            return True
        return self.emails is not None or self.phones is not None


@dataclass
class ContactPatch:
    """Applies ContactChanges to a target Ref."""

    ref: Ref
    changes: ContactChanges = field(default_factory=ContactChanges)


@dataclass
class MutationOp:
    """
    One explicit state transition.

    Value semantics depend on type: the replacement text for set_* ops, the
    group id for add_to_group/remove_from_group, ignored for delete.
    """

    type: MutationType
    value: str = ""

    def __post_init__(self) -> None:
        self.type = coerce_enum(MutationType, self.type)


def _check_outcome(succeeded: bool, err: ContactsError | None) -> None:
    if succeeded and err is not None:
        raise ValueError("a succeeded result must not carry an error")
    if not succeeded and err is None:
        raise ValueError("a failed result must carry an error")


@dataclass
class WriteResult:
    """
    Per-item write status.

    err is populated exactly when succeeded is False.
    """

    ref: Ref
    succeeded: bool
    created: bool = False
    updated: bool = False
    err: ContactsError | None = None

    def __post_init__(self) -> None:
        _check_outcome(self.succeeded, self.err)

    @classmethod
    def success(
        cls, ref: Ref, created: bool = False, updated: bool = False
    ) -> WriteResult:
        return cls(ref=ref, succeeded=True, created=created, updated=updated)

    @classmethod
    def failure(cls, ref: Ref, err: ContactsError, created: bool = False) -> WriteResult:
        return cls(ref=ref, succeeded=False, created=created, err=err)


@dataclass
class GroupResult:
    """Per-action group write status. err is populated exactly on failure."""

    group: GroupRef
    succeeded: bool
    created: bool = False
    updated: bool = False
    err: ContactsError | None = None

    def __post_init__(self) -> None:
        _check_outcome(self.succeeded, self.err)

    @classmethod
    def success(
        cls, group: GroupRef, created: bool = False, updated: bool = False
    ) -> GroupResult:
        return cls(group=group, succeeded=True, created=created, updated=updated)

    @classmethod
    def failure(cls, group: GroupRef, err: ContactsError) -> GroupResult:
        return cls(group=group, succeeded=False, err=err)


# =============================================================================
# Request/response envelopes
# =============================================================================


@dataclass
class FindInput:
    query: Query = field(default_factory=Query)
    page: Page = field(default_factory=Page)
    sort: Sort = field(default_factory=Sort)
    include_meta: bool = False


@dataclass
class FindOutput:
    """Selection result. next_cursor is "" when no more pages exist."""

    refs: list[Ref] = field(default_factory=list)
    meta: list[Meta] = field(default_factory=list)
    next_cursor: str = ""


@dataclass
class GetInput:
    refs: list[Ref] = field(default_factory=list)
    fields: list[Field] = field(default_factory=list)


@dataclass
class GetOutput:
    items: list[Item] = field(default_factory=list)


@dataclass
class UpsertInput:
    create: list[ContactDraft] = field(default_factory=list)
    patch: list[ContactPatch] = field(default_factory=list)


@dataclass
class UpsertOutput:
    results: list[WriteResult] = field(default_factory=list)


@dataclass
class MutateInput:
    refs: list[Ref] = field(default_factory=list)
    ops: list[MutationOp] = field(default_factory=list)


@dataclass
class MutateOutput:
    results: list[WriteResult] = field(default_factory=list)


@dataclass
class GroupsInput:
    """
    Request for Groups.

    For create, set name and optional container_id. For rename, set
    group.id and name. For delete, set group.id.
    """

    action: GroupsAction = GroupsAction.LIST
    group: GroupRef = field(default_factory=lambda: GroupRef(id=""))
    name: str = ""
    container_id: str = ""

    def __post_init__(self) -> None:
        self.action = coerce_enum(GroupsAction, self.action or GroupsAction.LIST)


@dataclass
class GroupsOutput:
    groups: list[Group] = field(default_factory=list)
    results: list[GroupResult] = field(default_factory=list)
