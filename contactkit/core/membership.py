"""
Group membership reconciliation with verify-after-write.

Membership changes travel through two independent channels: additions are
batched into a single store save (the direct channel), removals go one
group at a time through a RemovalChannel (the scripted channel). Neither
channel's own success report is trusted. After writing, the reconciler
reads the contact's current group memberships back and only reports
success when they match what was requested.

Per-target lifecycle:

    PENDING -> APPLIED(direct | scripted) -> VERIFIED
                                          -> CONFLICT
    PENDING -> FAILED  (transport error while applying)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from contactkit.core.errors import (
    ContactsError,
    ErrorCode,
    not_found_error,
    validation_error,
)
from contactkit.core.models import ContactRecord, Field, Group
from contactkit.core.query import clean_ids
from contactkit.store.base import (
    ContactStore,
    RemovalChannel,
    RemovalChannelError,
    RemovalTarget,
    SaveRequest,
)

logger = logging.getLogger(__name__)


class MembershipState(str, Enum):
    """Lifecycle state of a single membership change."""

    PENDING = "pending"
    APPLIED = "applied"
    VERIFIED = "verified"
    CONFLICT = "conflict"
    FAILED = "failed"


class MembershipAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"


class ApplyChannel(str, Enum):
    """Which write channel applied the change."""

    DIRECT = "direct"
    SCRIPTED = "scripted"


@dataclass
class MembershipTransition:
    """
    Tracks one (contact, group, action) through the reconciler.

    Attributes:
        contact_id: Contact being added or removed
        group: Resolved target group
        action: ADD or REMOVE
        state: Current lifecycle state
        channel: Channel that applied the change, once APPLIED
        error: Error that moved the transition to FAILED or CONFLICT
    """

    contact_id: str
    group: Group
    action: MembershipAction
    state: MembershipState = MembershipState.PENDING
    channel: ApplyChannel | None = None
    error: ContactsError | None = None

    @property
    def group_id(self) -> str:
        return self.group.ref.id

    def applied(self, channel: ApplyChannel) -> None:
        self._move(MembershipState.APPLIED)
        self.channel = channel

    def verified(self) -> None:
        self._move(MembershipState.VERIFIED)

    def conflicted(self, error: ContactsError) -> None:
        self._move(MembershipState.CONFLICT)
        self.error = error

    def failed(self, error: ContactsError) -> None:
        self._move(MembershipState.FAILED)
        self.error = error

    def _move(self, state: MembershipState) -> None:
        logger.debug(
            f"Membership {self.action.value} {self.contact_id} -> {self.group_id}: "
            f"{self.state.value} -> {state.value}"
        )
        self.state = state


class MembershipConflictError(ContactsError):
    """
    A membership write reported success but was not observed afterwards.

    Attributes:
        transition: The transition that failed verification
    """

    def __init__(self, message: str, transition: MembershipTransition):
        super().__init__(ErrorCode.CONFLICT, message)
        self.transition = transition


@dataclass
class MembershipPlan:
    """Normalized membership change set for one contact."""

    add_ids: list[str] = field(default_factory=list)
    remove_ids: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.add_ids and not self.remove_ids


def plan_membership(
    add_ids: Iterable[str] = (), remove_ids: Iterable[str] = ()
) -> MembershipPlan:
    """
    Strip and de-duplicate group ids, preserving order.

    Raises:
        ContactsError: validation when a group id is both added and removed
    """
    plan = MembershipPlan(add_ids=clean_ids(add_ids), remove_ids=clean_ids(remove_ids))
    overlap = [gid for gid in plan.add_ids if gid in set(plan.remove_ids)]
    if overlap:
        raise validation_error(
            f"group {overlap[0]} cannot be both added and removed"
        )
    return plan


class MembershipReconciler:
    """
    Applies and verifies membership changes for one contact at a time.

    Usage:
        reconciler = MembershipReconciler(store, removal_channel)
        transitions = reconciler.reconcile(record, add_ids=["g1"], remove_ids=[])

    reconcile() returns only when every transition is VERIFIED; anything
    else raises a ContactsError.
    """

    def __init__(self, store: ContactStore, removal_channel: RemovalChannel):
        self.store = store
        self.removal_channel = removal_channel

    def reconcile(
        self,
        record: ContactRecord,
        add_ids: Iterable[str] = (),
        remove_ids: Iterable[str] = (),
    ) -> list[MembershipTransition]:
        """
        Apply membership changes for a contact and verify them.

        Args:
            record: Contact whose membership changes
            add_ids: Groups to add the contact to
            remove_ids: Groups to remove the contact from

        Returns:
            Transitions, all in the VERIFIED state

        Raises:
            ContactsError: validation (overlapping ids), not_found (unknown
                group), store (removal channel failure), conflict
                (verification mismatch), or the store's own save error
        """
        plan = plan_membership(add_ids, remove_ids)
        if plan.is_empty():
            return []

        adds = [
            MembershipTransition(record.id, self._resolve(gid), MembershipAction.ADD)
            for gid in plan.add_ids
        ]
        removes = [
            MembershipTransition(record.id, self._resolve(gid), MembershipAction.REMOVE)
            for gid in plan.remove_ids
        ]

        if adds:
            self._apply_adds(record, adds)
        for transition in removes:
            self._apply_remove(record, transition)

        transitions = adds + removes
        self._verify(transitions)

        logger.info(
            f"Membership verified for {record.id}: "
            f"+{len(adds)} group(s), -{len(removes)} group(s)"
        )
        return transitions

    def _resolve(self, group_id: str) -> Group:
        group = self.store.resolve_group(group_id)
        if group is None:
            raise not_found_error(f"group not found: {group_id}")
        return group

    def _apply_adds(
        self, record: ContactRecord, transitions: list[MembershipTransition]
    ) -> None:
        request = SaveRequest()
        for transition in transitions:
            request.add_member(record.id, transition.group_id)

        try:
            self.store.execute_save(request)
        except ContactsError as e:
            for transition in transitions:
                transition.failed(e)
            raise

        for transition in transitions:
            transition.applied(ApplyChannel.DIRECT)

    def _apply_remove(
        self, record: ContactRecord, transition: MembershipTransition
    ) -> None:
        target = RemovalTarget(
            group_id=transition.group_id,
            contact_id=record.id,
            group_name=transition.group.name,
            given_name=record.given_name,
            family_name=record.family_name,
        )
        try:
            self.removal_channel.remove_member(target)
        except RemovalChannelError as e:
            transition.failed(e)
            raise
        except ContactsError as e:
            error = RemovalChannelError(e.message or str(e))
            transition.failed(error)
            raise error from e

        transition.applied(ApplyChannel.SCRIPTED)

    def _current_groups(self, contact_id: str) -> set[str]:
        """Group ids the store currently lists on the contact itself."""
        records = self.store.fetch_by_ids([contact_id], frozenset({Field.GROUPS}))
        for current in records:
            if current.id == contact_id:
                return set(current.group_ids)
        raise not_found_error(f"contact not found: {contact_id}")

    def _verify(self, transitions: list[MembershipTransition]) -> None:
        groups_by_contact: dict[str, set[str]] = {}
        for transition in transitions:
            if transition.contact_id not in groups_by_contact:
                groups_by_contact[transition.contact_id] = self._current_groups(
                    transition.contact_id
                )
            present = transition.group_id in groups_by_contact[transition.contact_id]
            if transition.action == MembershipAction.ADD and not present:
                message = (
                    f"membership add did not persist for group {transition.group_id}"
                )
            elif transition.action == MembershipAction.REMOVE and present:
                message = (
                    f"membership remove did not persist for group {transition.group_id}"
                )
            else:
                transition.verified()
                continue

            error = MembershipConflictError(message, transition)
            transition.conflicted(error)
            logger.warning(f"{message} (contact {transition.contact_id})")
            raise error


__all__ = [
    "MembershipState",
    "MembershipAction",
    "ApplyChannel",
    "MembershipTransition",
    "MembershipConflictError",
    "MembershipPlan",
    "plan_membership",
    "MembershipReconciler",
]
