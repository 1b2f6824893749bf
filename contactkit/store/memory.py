"""
In-memory contact store and removal channel.

Used by the test suite and by the CLI "memory" backend. State can be
loaded from and written back to a YAML snapshot:

    contacts:
      - id: c1
        given_name: Priya
        family_name: Raman
        organization: Acme
        emails:
          - {value: priya@acme.com, label: work}
    groups:
      - id: g1
        name: Friends
        members: [c1]

Fault injection hooks let tests reproduce backend misbehavior: failing
saves, failing group lookups, and membership writes that report success
without persisting.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from contactkit.core.errors import ContactsError, ErrorCode, not_found_error
from contactkit.core.models import (
    AuthStatus,
    ContactRecord,
    Field,
    Group,
    GroupRef,
    LabeledValue,
)
from contactkit.store.base import (
    RemovalChannelError,
    RemovalTarget,
    SaveRequest,
    SaveResult,
)

logger = logging.getLogger(__name__)

# Container identifier used for every record in the in-memory store
DEFAULT_CONTAINER_ID = "local"

# ContactRecord scalar attributes persisted in snapshots
_SNAPSHOT_SCALARS = (
    "given_name",
    "middle_name",
    "family_name",
    "nickname",
    "organization",
    "job_title",
    "note",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStore:
    """
    Dictionary-backed ContactStore.

    Group membership is kept on the group side; ContactRecord.group_ids is
    derived when records are read.

    Attributes:
        status: Authorization status reported to callers
        fail_saves: When set, execute_save() raises this error
        fail_group_lookups: When set, group reads raise this error
        persist_member_adds: When False, member additions report success
            but are not stored
        calls: Names of the store methods invoked, in order
    """

    def __init__(
        self,
        records: Iterable[ContactRecord] | None = None,
        groups: Iterable[Group] | None = None,
        status: AuthStatus = AuthStatus.AUTHORIZED,
        container_id: str = DEFAULT_CONTAINER_ID,
    ):
        self.status = status
        self.container_id = container_id
        self._contacts: dict[str, ContactRecord] = {}
        self._groups: dict[str, Group] = {}
        self._members: dict[str, list[str]] = {}
        self._contact_seq = itertools.count(1)
        self._group_seq = itertools.count(1)

        self.fail_saves: ContactsError | None = None
        self.fail_group_lookups: ContactsError | None = None
        self.persist_member_adds = True
        self.calls: list[str] = []

        for group in groups or ():
            self.put_group(group.ref.id, group.name)
        for record in records or ():
            self.put_contact(record)

    # =========================================================================
    # Seeding helpers
    # =========================================================================

    def put_contact(self, record: ContactRecord) -> ContactRecord:
        """Insert a record directly, bypassing execute_save()."""
        stored = record.copy()
        if not stored.id:
            stored.id = self._next_contact_id()
        stored.container_id = stored.container_id or self.container_id
        stored.account_id = stored.account_id or stored.container_id
        stored.modified_at = stored.modified_at or _now()
        for group_id in stored.group_ids:
            if group_id not in self._groups:
                self.put_group(group_id, group_id)
            self._attach(stored.id, group_id)
        stored.group_ids = []
        self._contacts[stored.id] = stored
        return stored.copy()

    def put_group(self, group_id: str, name: str, members: Iterable[str] = ()) -> Group:
        """Insert a group directly, bypassing execute_save()."""
        group = Group(
            ref=GroupRef(
                id=group_id,
                container_id=self.container_id,
                account_id=self.container_id,
            ),
            name=name,
        )
        self._groups[group_id] = group
        self._members.setdefault(group_id, [])
        for contact_id in members:
            self._attach(contact_id, group_id)
        return group

    def _next_contact_id(self) -> str:
        while True:
            candidate = f"contact-{next(self._contact_seq)}"
            if candidate not in self._contacts:
                return candidate

    def _next_group_id(self) -> str:
        while True:
            candidate = f"group-{next(self._group_seq)}"
            if candidate not in self._groups:
                return candidate

    def _attach(self, contact_id: str, group_id: str) -> None:
        members = self._members.setdefault(group_id, [])
        if contact_id not in members:
            members.append(contact_id)

    def _detach(self, contact_id: str, group_id: str) -> bool:
        members = self._members.get(group_id, [])
        if contact_id in members:
            members.remove(contact_id)
            return True
        return False

    def _groups_of(self, contact_id: str) -> list[str]:
        return [gid for gid, members in self._members.items() if contact_id in members]

    def _project(self, record: ContactRecord, fields: frozenset[Field]) -> ContactRecord:
        projected = record.copy()
        if not fields or Field.GROUPS in fields:
            projected.group_ids = self._groups_of(record.id)
        return projected

    # =========================================================================
    # ContactStore
    # =========================================================================

    def authorization_status(self) -> AuthStatus:
        return self.status

    def request_access(self) -> bool:
        self.calls.append("request_access")
        if self.status == AuthStatus.NOT_DETERMINED:
            self.status = AuthStatus.AUTHORIZED
        return self.status == AuthStatus.AUTHORIZED

    def enumerate(self, fields: frozenset[Field] = frozenset()) -> list[ContactRecord]:
        self.calls.append("enumerate")
        return [self._project(record, fields) for record in self._contacts.values()]

    def fetch_by_ids(
        self, ids: Iterable[str], fields: frozenset[Field] = frozenset()
    ) -> list[ContactRecord]:
        self.calls.append("fetch_by_ids")
        wanted = set(ids)
        return [
            self._project(record, fields)
            for record in self._contacts.values()
            if record.id in wanted
        ]

    def execute_save(self, request: SaveRequest) -> SaveResult:
        """
        Apply a batch of writes atomically.

        Every referenced contact and group is checked before anything is
        applied, so a not_found leaves the store unchanged.
        """
        self.calls.append("execute_save")
        if self.fail_saves is not None:
            raise self.fail_saves

        for record in request.update_contacts:
            if record.id not in self._contacts:
                raise not_found_error(f"contact {record.id} not found")
        for contact_id in request.delete_contacts:
            if contact_id not in self._contacts:
                raise not_found_error(f"contact {contact_id} not found")
        for addition in request.add_members:
            if addition.contact_id not in self._contacts:
                raise not_found_error(f"contact {addition.contact_id} not found")
            if addition.group_id not in self._groups:
                raise not_found_error(f"group {addition.group_id} not found")
        for rename in request.update_groups:
            if rename.group_id not in self._groups:
                raise not_found_error(f"group {rename.group_id} not found")
        for group_id in request.delete_groups:
            if group_id not in self._groups:
                raise not_found_error(f"group {group_id} not found")

        result = SaveResult()
        for record in request.add_contacts:
            stored = record.copy()
            stored.id = ""
            stored.container_id = record.container_id or self.container_id
            stored.account_id = ""
            stored.modified_at = None
            stored.group_ids = []
            created = self.put_contact(stored)
            result.created_contact_ids.append(created.id)

        for record in request.update_contacts:
            stored = record.copy()
            stored.group_ids = []
            stored.modified_at = _now()
            self._contacts[record.id] = stored

        for contact_id in request.delete_contacts:
            del self._contacts[contact_id]
            for members in self._members.values():
                if contact_id in members:
                    members.remove(contact_id)

        for addition in request.add_members:
            if self.persist_member_adds:
                self._attach(addition.contact_id, addition.group_id)
            else:
                logger.debug(
                    f"Dropping member add {addition.contact_id} -> {addition.group_id}"
                )

        for draft in request.add_groups:
            group_id = self._next_group_id()
            self.put_group(group_id, draft.name)
            result.created_group_ids.append(group_id)

        for rename in request.update_groups:
            self._groups[rename.group_id].name = rename.name

        for group_id in request.delete_groups:
            del self._groups[group_id]
            self._members.pop(group_id, None)

        return result

    def group_members(self, group_id: str) -> list[str]:
        self.calls.append("group_members")
        if self.fail_group_lookups is not None:
            raise self.fail_group_lookups
        if group_id not in self._groups:
            raise not_found_error(f"group {group_id} not found")
        return list(self._members.get(group_id, []))

    def resolve_group(self, group_id: str) -> Group | None:
        self.calls.append("resolve_group")
        if self.fail_group_lookups is not None:
            raise self.fail_group_lookups
        group = self._groups.get(group_id)
        if group is None:
            return None
        return Group(ref=group.ref, name=group.name)

    def list_groups(self) -> list[Group]:
        self.calls.append("list_groups")
        if self.fail_group_lookups is not None:
            raise self.fail_group_lookups
        return [Group(ref=g.ref, name=g.name) for g in self._groups.values()]

    # =========================================================================
    # Removal support
    # =========================================================================

    def has_group(self, group_id: str) -> bool:
        return group_id in self._groups

    def find_group_by_name(self, name: str) -> Group | None:
        for group in self._groups.values():
            if group.name == name:
                return group
        return None

    def remove_member(self, contact_id: str, group_id: str) -> bool:
        """Remove a membership directly. Returns False when it did not exist."""
        return self._detach(contact_id, group_id)

    def find_member_by_name(
        self, group_id: str, given_name: str, family_name: str
    ) -> str | None:
        for contact_id in self._members.get(group_id, []):
            record = self._contacts.get(contact_id)
            if (
                record is not None
                and record.given_name == given_name
                and record.family_name == family_name
            ):
                return contact_id
        return None

    # =========================================================================
    # Snapshots
    # =========================================================================

    @classmethod
    def from_snapshot(cls, path: Path) -> InMemoryStore:
        """
        Load a store from a YAML snapshot.

        A missing or empty file yields an empty store.

        Raises:
            ContactsError: store error when the file cannot be read or parsed
        """
        store = cls()
        if not path.exists():
            logger.debug(f"Snapshot not found, starting empty: {path}")
            return store

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ContactsError(
                ErrorCode.STORE, f"cannot read snapshot {path}: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ContactsError(ErrorCode.STORE, f"malformed snapshot {path}")

        for entry in data.get("groups") or []:
            store.put_group(str(entry["id"]), str(entry.get("name", "")))
        for entry in data.get("contacts") or []:
            store.put_contact(_record_from_dict(entry))
        for entry in data.get("groups") or []:
            for contact_id in entry.get("members") or []:
                store._attach(str(contact_id), str(entry["id"]))

        logger.debug(
            f"Loaded {len(store._contacts)} contact(s) and "
            f"{len(store._groups)} group(s) from {path}"
        )
        return store

    def save_snapshot(self, path: Path) -> None:
        """Write the current state to a YAML snapshot."""
        data: dict[str, Any] = {
            "contacts": [_record_to_dict(r) for r in self._contacts.values()],
            "groups": [
                {
                    "id": group.ref.id,
                    "name": group.name,
                    "members": list(self._members.get(group.ref.id, [])),
                }
                for group in self._groups.values()
            ],
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
        except OSError as e:
            raise ContactsError(
                ErrorCode.STORE, f"cannot write snapshot {path}: {e}"
            ) from e


def _labeled_values(entries: Any) -> list[LabeledValue]:
    values = []
    for entry in entries or []:
        if isinstance(entry, str):
            values.append(LabeledValue(value=entry))
        else:
            values.append(
                LabeledValue(
                    value=str(entry.get("value", "")), label=str(entry.get("label", ""))
                )
            )
    return values


def _record_from_dict(entry: dict[str, Any]) -> ContactRecord:
    record = ContactRecord(id=str(entry.get("id", "")))
    for name in _SNAPSHOT_SCALARS:
        setattr(record, name, str(entry.get(name) or ""))
    record.emails = _labeled_values(entry.get("emails"))
    record.phones = _labeled_values(entry.get("phones"))
    modified = entry.get("modified_at")
    if isinstance(modified, datetime):
        record.modified_at = modified
    elif modified:
        record.modified_at = datetime.fromisoformat(str(modified))
    return record


def _record_to_dict(record: ContactRecord) -> dict[str, Any]:
    data: dict[str, Any] = {"id": record.id}
    for name in _SNAPSHOT_SCALARS:
        value = getattr(record, name)
        if value:
            data[name] = value
    if record.emails:
        data["emails"] = [{"value": e.value, "label": e.label} for e in record.emails]
    if record.phones:
        data["phones"] = [{"value": p.value, "label": p.label} for p in record.phones]
    if record.modified_at:
        data["modified_at"] = record.modified_at.isoformat()
    return data


class InMemoryRemovalChannel:
    """
    Removal channel backed by an InMemoryStore.

    Tries the same three strategies as the scripted channel: by group id,
    by group name, and by group name plus the contact's name.

    Attributes:
        fail_with: When set, remove_member() raises this error
        persist: When False, remove_member() reports success without
            removing anything
        calls: Targets passed to remove_member(), in order
    """

    def __init__(self, store: InMemoryStore):
        self.store = store
        self.fail_with: RemovalChannelError | None = None
        self.persist = True
        self.calls: list[RemovalTarget] = []

    def remove_member(self, target: RemovalTarget) -> None:
        self.calls.append(target)
        if self.fail_with is not None:
            raise self.fail_with
        if not self.persist:
            logger.debug(
                f"Dropping member removal {target.contact_id} -> {target.group_id}"
            )
            return

        if self.store.remove_member(target.contact_id, target.group_id):
            return

        group = None
        if target.group_name:
            group = self.store.find_group_by_name(target.group_name)
        if group is None:
            if self.store.has_group(target.group_id):
                return
            raise RemovalChannelError(
                f"remove failed for group {target.group_id}: group not found"
            )
        if self.store.remove_member(target.contact_id, group.ref.id):
            return

        contact_id = self.store.find_member_by_name(
            group.ref.id, target.given_name, target.family_name
        )
        if contact_id is not None:
            self.store.remove_member(contact_id, group.ref.id)
        # Not a member under any strategy: removal is already satisfied


__all__ = ["InMemoryStore", "InMemoryRemovalChannel", "DEFAULT_CONTAINER_ID"]
