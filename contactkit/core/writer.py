"""
Write execution for Upsert and Mutate.

Each public method handles exactly one input item and either returns a
WriteResult or raises a ContactsError; batching and per-item error capture
live in ResultReporter. Scalar changes are submitted as one store save per
item; group membership changes are delegated to the MembershipReconciler
so that they are verified before success is reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from contactkit.core.errors import (
    ContactsError,
    ErrorCode,
    as_contacts_error,
    not_found_error,
    validation_error,
)
from contactkit.core.membership import MembershipReconciler, plan_membership
from contactkit.core.models import (
    CHANGE_SCALAR_FIELDS,
    SCALAR_MUTATIONS,
    ContactDraft,
    ContactPatch,
    ContactRecord,
    LabeledValue,
    MutationOp,
    MutationType,
    Ref,
    WriteResult,
)
from contactkit.store.base import ContactStore, SaveRequest

logger = logging.getLogger(__name__)

# Labels applied to values created without one
DEFAULT_EMAIL_LABEL = "other"
DEFAULT_PHONE_LABEL = "mobile"

_GROUP_MUTATIONS = (MutationType.ADD_TO_GROUP, MutationType.REMOVE_FROM_GROUP)


def clean_labeled_values(
    values: list[LabeledValue] | None, default_label: str
) -> list[LabeledValue]:
    """Drop entries with a blank value and default blank labels."""
    cleaned = []
    for entry in values or []:
        value = (entry.value or "").strip()
        if not value:
            continue
        label = (entry.label or "").strip() or default_label
        cleaned.append(LabeledValue(value=value, label=label))
    return cleaned


def record_from_draft(draft: ContactDraft) -> ContactRecord:
    """Build the record submitted for a create from the draft's non-empty fields."""
    return ContactRecord(
        container_id=(draft.container_id or "").strip(),
        given_name=(draft.given_name or "").strip(),
        family_name=(draft.family_name or "").strip(),
        middle_name=(draft.middle_name or "").strip(),
        nickname=(draft.nickname or "").strip(),
        organization=(draft.organization or "").strip(),
        job_title=(draft.job_title or "").strip(),
        note=draft.note or "",
        emails=clean_labeled_values(draft.emails, DEFAULT_EMAIL_LABEL),
        phones=clean_labeled_values(draft.phones, DEFAULT_PHONE_LABEL),
    )


@dataclass
class MutationPlan:
    """
    The folded effect of a mutation op list.

    Attributes:
        delete: True when any op was delete; all other ops are ignored
        scalars: ContactRecord attribute -> replacement value (later op wins)
        add_group_ids: Groups to add, in op order
        remove_group_ids: Groups to remove, in op order
    """

    delete: bool = False
    scalars: dict[str, str] = field(default_factory=dict)
    add_group_ids: list[str] = field(default_factory=list)
    remove_group_ids: list[str] = field(default_factory=list)


def fold_mutations(ops: list[MutationOp]) -> MutationPlan:
    """
    Validate a mutation op list and fold it into a MutationPlan.

    Every op is validated before anything is folded, so a bad op anywhere
    in the list rejects the whole item without touching the store.

    Raises:
        ContactsError: validation for an empty list, an unknown op type, or a
            group op without a group id
    """
    if not ops:
        raise validation_error("mutation ops are required")

    for op in ops:
        if not isinstance(op.type, MutationType):
            raise validation_error(f"unknown mutation type: {op.type}")
        if op.type in _GROUP_MUTATIONS and not (op.value or "").strip():
            raise validation_error(f"{op.type.value} requires a group id")

    plan = MutationPlan()
    for op in ops:
        if op.type == MutationType.DELETE:
            plan.delete = True
        elif op.type == MutationType.ADD_TO_GROUP:
            plan.add_group_ids.append(op.value.strip())
        elif op.type == MutationType.REMOVE_FROM_GROUP:
            plan.remove_group_ids.append(op.value.strip())
        else:
            plan.scalars[SCALAR_MUTATIONS[op.type]] = op.value or ""
    return plan


class WriteExecutor:
    """
    Executes creates, patches and mutations against a ContactStore.

    Usage:
        executor = WriteExecutor(store, reconciler)
        result = executor.create(ContactDraft(given_name="Priya"))
    """

    def __init__(self, store: ContactStore, reconciler: MembershipReconciler):
        self.store = store
        self.reconciler = reconciler

    def _fetch(self, ref: Ref) -> ContactRecord:
        records = self.store.fetch_by_ids([ref.id], frozenset())
        for record in records:
            if record.id == ref.id:
                return record
        raise not_found_error("contact not found")

    def _save_record(self, record: ContactRecord) -> None:
        request = SaveRequest()
        request.update_contact(record)
        self.store.execute_save(request)

    def create(self, draft: ContactDraft) -> WriteResult:
        """
        Create a contact and attach its requested groups.

        The contact is saved first. When group attachment then fails, the
        result is a failure that still carries the created ref.
        """
        record = record_from_draft(draft)
        request = SaveRequest()
        request.add_contact(record)
        saved = self.store.execute_save(request)
        if not saved.created_contact_ids:
            raise ContactsError(ErrorCode.STORE, "store did not return a contact id")

        record.id = saved.created_contact_ids[0]
        record.account_id = record.account_id or record.container_id
        ref = record.ref()
        logger.info(f"Created contact {ref.id}")

        if not draft.group_ids:
            return WriteResult.success(ref, created=True)

        try:
            transitions = self.reconciler.reconcile(record, add_ids=draft.group_ids)
        except Exception as e:
            error = as_contacts_error(e)
            logger.warning(f"Contact {ref.id} created but group attach failed: {error}")
            return WriteResult.failure(ref, error, created=True)

        return WriteResult.success(ref, created=True, updated=bool(transitions))

    def patch(self, patch: ContactPatch) -> WriteResult:
        """Apply explicitly set changes, then reconcile membership."""
        ref = patch.ref
        if not (ref.id or "").strip():
            raise validation_error("patch ref.id is required")

        changes = patch.changes
        # Rejects overlapping group ids before the store is touched
        plan_membership(changes.add_group_ids, changes.remove_group_ids)

        record = self._fetch(ref)
        updated = False

        if changes.has_field_updates():
            for name in CHANGE_SCALAR_FIELDS:
                value = getattr(changes, name)
                if value is not None:
                    setattr(record, name, value)
            if changes.emails is not None:
                record.emails = clean_labeled_values(changes.emails, DEFAULT_EMAIL_LABEL)
            if changes.phones is not None:
                record.phones = clean_labeled_values(changes.phones, DEFAULT_PHONE_LABEL)
            self._save_record(record)
            updated = True
            logger.info(f"Updated contact {record.id}")

        transitions = self.reconciler.reconcile(
            record,
            add_ids=changes.add_group_ids,
            remove_ids=changes.remove_group_ids,
        )
        updated = updated or bool(transitions)

        return WriteResult.success(record.ref(), updated=updated)

    def mutate(self, ref: Ref, ops: list[MutationOp]) -> WriteResult:
        """Apply a list of named state transitions to one contact."""
        if not (ref.id or "").strip():
            raise validation_error("mutation ref.id is required")

        plan = fold_mutations(ops)
        if not plan.delete:
            plan_membership(plan.add_group_ids, plan.remove_group_ids)

        record = self._fetch(ref)

        if plan.delete:
            request = SaveRequest()
            request.delete_contact(record.id)
            self.store.execute_save(request)
            logger.info(f"Deleted contact {record.id}")
            return WriteResult.success(record.ref(), updated=True)

        updated = False
        if plan.scalars:
            for name, value in plan.scalars.items():
                setattr(record, name, value)
            self._save_record(record)
            updated = True
            logger.info(f"Updated contact {record.id}")

        transitions = self.reconciler.reconcile(
            record,
            add_ids=plan.add_group_ids,
            remove_ids=plan.remove_group_ids,
        )
        updated = updated or bool(transitions)

        return WriteResult.success(record.ref(), updated=updated)


__all__ = [
    "WriteExecutor",
    "MutationPlan",
    "fold_mutations",
    "record_from_draft",
    "clean_labeled_values",
    "DEFAULT_EMAIL_LABEL",
    "DEFAULT_PHONE_LABEL",
]
