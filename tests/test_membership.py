"""
Tests for membership reconciliation with verify-after-write.
"""

import pytest

from contactkit.core.errors import ContactsError, ErrorCode
from contactkit.core.membership import (
    ApplyChannel,
    MembershipAction,
    MembershipConflictError,
    MembershipReconciler,
    MembershipState,
    plan_membership,
)
from contactkit.core.models import ContactRecord
from contactkit.store.base import RemovalChannelError, SaveRequest
from contactkit.store.memory import InMemoryRemovalChannel, InMemoryStore


@pytest.fixture
def store():
    store = InMemoryStore()
    store.put_group("g1", "Friends")
    store.put_group("g2", "Work")
    store.put_contact(ContactRecord(id="c1", given_name="Priya", family_name="Raman"))
    return store


@pytest.fixture
def channel(store):
    return InMemoryRemovalChannel(store)


@pytest.fixture
def reconciler(store, channel):
    return MembershipReconciler(store, channel)


def record(store, contact_id="c1"):
    return store.fetch_by_ids([contact_id])[0]


class TestPlanMembership:
    def test_strips_and_dedupes(self):
        plan = plan_membership([" g1", "g1", ""], ["g2 ", "g2"])
        assert plan.add_ids == ["g1"]
        assert plan.remove_ids == ["g2"]

    def test_empty_plan(self):
        assert plan_membership().is_empty()

    def test_overlap_is_validation_error(self):
        with pytest.raises(ContactsError) as exc_info:
            plan_membership(["g1", "g2"], ["g2"])
        assert exc_info.value.code == ErrorCode.VALIDATION
        assert "g2" in exc_info.value.message


class TestReconcileAdds:
    def test_add_is_applied_directly_and_verified(self, store, reconciler):
        transitions = reconciler.reconcile(record(store), add_ids=["g1", "g2"])

        assert [t.group_id for t in transitions] == ["g1", "g2"]
        assert all(t.state == MembershipState.VERIFIED for t in transitions)
        assert all(t.channel == ApplyChannel.DIRECT for t in transitions)
        assert store.group_members("g1") == ["c1"]
        assert store.group_members("g2") == ["c1"]

    def test_adds_are_batched_into_one_save(self, store, reconciler):
        store.calls.clear()
        reconciler.reconcile(record(store), add_ids=["g1", "g2"])
        assert store.calls.count("execute_save") == 1

    def test_add_that_does_not_persist_is_conflict(self, store, reconciler):
        store.persist_member_adds = False

        with pytest.raises(MembershipConflictError) as exc_info:
            reconciler.reconcile(record(store), add_ids=["g1"])

        error = exc_info.value
        assert error.code == ErrorCode.CONFLICT
        assert error.message == "membership add did not persist for group g1"
        assert error.transition.state == MembershipState.CONFLICT
        assert error.transition.action == MembershipAction.ADD

    def test_save_error_propagates_and_marks_failed(self, store, reconciler):
        store.fail_saves = ContactsError(ErrorCode.STORE, "backend down")

        with pytest.raises(ContactsError) as exc_info:
            reconciler.reconcile(record(store), add_ids=["g1"])
        assert exc_info.value.message == "backend down"

    def test_adding_existing_member_verifies(self, store, reconciler):
        store.put_group("g1", "Friends", members=["c1"])
        transitions = reconciler.reconcile(record(store), add_ids=["g1"])
        assert transitions[0].state == MembershipState.VERIFIED


class TestReconcileRemovals:
    def test_remove_uses_scripted_channel_and_verifies(self, store, channel, reconciler):
        store.put_group("g1", "Friends", members=["c1"])

        transitions = reconciler.reconcile(record(store), remove_ids=["g1"])

        assert transitions[0].channel == ApplyChannel.SCRIPTED
        assert transitions[0].state == MembershipState.VERIFIED
        assert store.group_members("g1") == []
        target = channel.calls[0]
        assert target.group_id == "g1"
        assert target.group_name == "Friends"
        assert target.given_name == "Priya"
        assert target.family_name == "Raman"

    def test_channel_called_once_per_group(self, store, channel, reconciler):
        store.put_group("g1", "Friends", members=["c1"])
        store.put_group("g2", "Work", members=["c1"])
        reconciler.reconcile(record(store), remove_ids=["g1", "g2"])
        assert [t.group_id for t in channel.calls] == ["g1", "g2"]

    def test_channel_success_without_effect_is_conflict(self, store, channel, reconciler):
        store.put_group("g1", "Friends", members=["c1"])
        channel.persist = False

        with pytest.raises(MembershipConflictError) as exc_info:
            reconciler.reconcile(record(store), remove_ids=["g1"])

        assert exc_info.value.message == "membership remove did not persist for group g1"
        assert store.group_members("g1") == ["c1"]

    def test_channel_error_propagates(self, store, channel, reconciler):
        store.put_group("g1", "Friends", members=["c1"])
        channel.fail_with = RemovalChannelError("osascript not found")

        with pytest.raises(RemovalChannelError) as exc_info:
            reconciler.reconcile(record(store), remove_ids=["g1"])
        assert exc_info.value.code == ErrorCode.STORE

    def test_first_channel_error_skips_later_removals(self, store, channel, reconciler):
        store.put_group("g1", "Friends", members=["c1"])
        store.put_group("g2", "Work", members=["c1"])
        channel.fail_with = RemovalChannelError("osascript not found")

        with pytest.raises(RemovalChannelError):
            reconciler.reconcile(record(store), remove_ids=["g1", "g2"])

        assert [t.group_id for t in channel.calls] == ["g1"]
        assert store.group_members("g2") == ["c1"]

    def test_other_contacts_error_is_wrapped(self, store, channel, reconciler):
        store.put_group("g1", "Friends", members=["c1"])
        channel.fail_with = ContactsError(ErrorCode.NOT_FOUND, "gone")

        with pytest.raises(RemovalChannelError) as exc_info:
            reconciler.reconcile(record(store), remove_ids=["g1"])
        assert exc_info.value.message == "gone"

    def test_removing_non_member_verifies(self, store, reconciler):
        transitions = reconciler.reconcile(record(store), remove_ids=["g1"])
        assert transitions[0].state == MembershipState.VERIFIED


class TestReconcileGeneral:
    def test_empty_plan_touches_nothing(self, store, reconciler):
        contact = record(store)
        store.calls.clear()
        assert reconciler.reconcile(contact) == []
        assert store.calls == []

    def test_unknown_group_is_not_found_before_any_write(self, store, reconciler):
        store.calls.clear()
        with pytest.raises(ContactsError) as exc_info:
            reconciler.reconcile(record(store), add_ids=["g1", "nope"])

        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert exc_info.value.message == "group not found: nope"
        assert "execute_save" not in store.calls
        assert store.group_members("g1") == []

    def test_mixed_add_and_remove(self, store, reconciler):
        store.put_group("g2", "Work", members=["c1"])
        transitions = reconciler.reconcile(
            record(store), add_ids=["g1"], remove_ids=["g2"]
        )
        assert [t.action for t in transitions] == [
            MembershipAction.ADD,
            MembershipAction.REMOVE,
        ]
        assert store.group_members("g1") == ["c1"]
        assert store.group_members("g2") == []

    def test_verification_reads_contact_memberships(self, store, reconciler):
        contact = record(store)
        store.calls.clear()

        reconciler.reconcile(contact, add_ids=["g1"])

        assert store.calls[-1] == "fetch_by_ids"
        assert "group_members" not in store.calls

    def test_contact_gone_before_verification_is_not_found(self, store, reconciler):
        contact = record(store)
        request = SaveRequest()
        request.delete_contact("c1")
        store.execute_save(request)

        with pytest.raises(ContactsError) as exc_info:
            reconciler.reconcile(contact, remove_ids=["g1"])
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_overlap_rejected_before_store_access(self, store, reconciler):
        contact = record(store)
        store.calls.clear()
        with pytest.raises(ContactsError):
            reconciler.reconcile(contact, add_ids=["g1"], remove_ids=["g1"])
        assert store.calls == []
