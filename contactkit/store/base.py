"""
Backing-store contract.

The core never talks to a contacts backend directly. It depends on two
ports implemented by store adapters:

- ContactStore: enumeration, fetch by id, batched saves, group lookups
- RemovalChannel: the independent channel used to remove a contact from
  a group
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from contactkit.core.errors import ContactsError, ErrorCode
from contactkit.core.models import AuthStatus, ContactRecord, Field, Group


class RemovalChannelError(ContactsError):
    """Raised when the removal channel could not remove a member."""

    def __init__(self, message: str = ""):
        super().__init__(ErrorCode.STORE, message)


@dataclass
class MemberAddition:
    """Adds one contact to one group."""

    contact_id: str
    group_id: str


@dataclass
class GroupDraft:
    """Group to create."""

    name: str
    container_id: str = ""


@dataclass
class GroupRename:
    """Rename of an existing group."""

    group_id: str
    name: str


@dataclass
class SaveRequest:
    """
    A batch of writes submitted to the store in one execute_save() call.

    Usage:
        request = SaveRequest()
        request.add_member(contact_id, group_id)
        request.add_member(contact_id, other_group_id)
        store.execute_save(request)
    """

    add_contacts: list[ContactRecord] = field(default_factory=list)
    update_contacts: list[ContactRecord] = field(default_factory=list)
    delete_contacts: list[str] = field(default_factory=list)
    add_members: list[MemberAddition] = field(default_factory=list)
    add_groups: list[GroupDraft] = field(default_factory=list)
    update_groups: list[GroupRename] = field(default_factory=list)
    delete_groups: list[str] = field(default_factory=list)

    def add_contact(self, record: ContactRecord) -> None:
        self.add_contacts.append(record)

    def update_contact(self, record: ContactRecord) -> None:
        self.update_contacts.append(record)

    def delete_contact(self, contact_id: str) -> None:
        self.delete_contacts.append(contact_id)

    def add_member(self, contact_id: str, group_id: str) -> None:
        self.add_members.append(MemberAddition(contact_id, group_id))

    def add_group(self, name: str, container_id: str = "") -> None:
        self.add_groups.append(GroupDraft(name, container_id))

    def update_group(self, group_id: str, name: str) -> None:
        self.update_groups.append(GroupRename(group_id, name))

    def delete_group(self, group_id: str) -> None:
        self.delete_groups.append(group_id)

    def is_empty(self) -> bool:
        return not (
            self.add_contacts
            or self.update_contacts
            or self.delete_contacts
            or self.add_members
            or self.add_groups
            or self.update_groups
            or self.delete_groups
        )


@dataclass
class SaveResult:
    """Identifiers the store assigned, in submission order."""

    created_contact_ids: list[str] = field(default_factory=list)
    created_group_ids: list[str] = field(default_factory=list)


@dataclass
class RemovalTarget:
    """
    Everything a removal channel may need to locate a membership.

    Strategies use progressively weaker identification: group id, then
    group name, then group name plus the contact's name.
    """

    group_id: str
    contact_id: str
    group_name: str = ""
    given_name: str = ""
    family_name: str = ""


class ContactStore(Protocol):
    """Port to the backing contacts store."""

    def authorization_status(self) -> AuthStatus:
        """Return the current permission state."""
        ...

    def request_access(self) -> bool:
        """Ask for access. Returns True when access was granted."""
        ...

    def enumerate(self, fields: frozenset[Field]) -> list[ContactRecord]:
        """Return every contact in store order with at least the given fields."""
        ...

    def fetch_by_ids(
        self, ids: Iterable[str], fields: frozenset[Field]
    ) -> list[ContactRecord]:
        """Return the contacts that exist among ids. Missing ids are skipped."""
        ...

    def execute_save(self, request: SaveRequest) -> SaveResult:
        """Apply a batch of writes. Raises ContactsError on failure."""
        ...

    def group_members(self, group_id: str) -> list[str]:
        """Return the contact ids that belong to a group."""
        ...

    def resolve_group(self, group_id: str) -> Group | None:
        """Return the group with the given id, or None."""
        ...

    def list_groups(self) -> list[Group]:
        """Return every group in the store."""
        ...


class RemovalChannel(Protocol):
    """Independent write channel for removing a contact from a group."""

    def remove_member(self, target: RemovalTarget) -> None:
        """Remove the membership. Raises RemovalChannelError on failure."""
        ...


__all__ = [
    "ContactStore",
    "RemovalChannel",
    "RemovalChannelError",
    "RemovalTarget",
    "SaveRequest",
    "SaveResult",
    "MemberAddition",
    "GroupDraft",
    "GroupRename",
]
