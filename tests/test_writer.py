"""
Tests for the write executor and mutation folding.
"""

import pytest

from contactkit.core.errors import ContactsError, ErrorCode
from contactkit.core.membership import MembershipReconciler
from contactkit.core.models import (
    ContactChanges,
    ContactDraft,
    ContactPatch,
    ContactRecord,
    LabeledValue,
    MutationOp,
    MutationType,
    Ref,
)
from contactkit.core.writer import (
    DEFAULT_EMAIL_LABEL,
    DEFAULT_PHONE_LABEL,
    WriteExecutor,
    clean_labeled_values,
    fold_mutations,
    record_from_draft,
)
from contactkit.store.memory import InMemoryRemovalChannel, InMemoryStore


@pytest.fixture
def store():
    store = InMemoryStore()
    store.put_group("g1", "Friends")
    store.put_group("g2", "Work")
    store.put_contact(
        ContactRecord(
            id="c1",
            given_name="Priya",
            family_name="Raman",
            organization="Acme",
            note="old note",
            emails=[LabeledValue("priya@acme.com", "work")],
        )
    )
    return store


@pytest.fixture
def executor(store):
    return WriteExecutor(store, MembershipReconciler(store, InMemoryRemovalChannel(store)))


def stored(store, contact_id="c1"):
    return store.fetch_by_ids([contact_id])[0]


class TestHelpers:
    def test_clean_labeled_values_drops_blanks_and_defaults_labels(self):
        values = [
            LabeledValue(" a@x.com ", ""),
            LabeledValue("   ", "home"),
            LabeledValue("b@x.com", " home "),
        ]
        cleaned = clean_labeled_values(values, DEFAULT_EMAIL_LABEL)
        assert cleaned == [
            LabeledValue("a@x.com", DEFAULT_EMAIL_LABEL),
            LabeledValue("b@x.com", "home"),
        ]

    def test_record_from_draft_trims_names(self):
        draft = ContactDraft(
            given_name=" Priya ",
            organization=" Acme ",
            phones=[LabeledValue("+1 555 0100")],
        )
        record = record_from_draft(draft)
        assert record.given_name == "Priya"
        assert record.organization == "Acme"
        assert record.phones == [LabeledValue("+1 555 0100", DEFAULT_PHONE_LABEL)]
        assert record.id == ""


class TestFoldMutations:
    def test_empty_ops_is_validation_error(self):
        with pytest.raises(ContactsError) as exc_info:
            fold_mutations([])
        assert exc_info.value.code == ErrorCode.VALIDATION

    def test_unknown_type_is_validation_error(self):
        with pytest.raises(ContactsError) as exc_info:
            fold_mutations([MutationOp(MutationType.SET_NOTE, "x"), MutationOp("explode")])
        assert exc_info.value.message == "unknown mutation type: explode"

    @pytest.mark.parametrize(
        "op_type", [MutationType.ADD_TO_GROUP, MutationType.REMOVE_FROM_GROUP]
    )
    def test_group_op_without_id_is_validation_error(self, op_type):
        with pytest.raises(ContactsError) as exc_info:
            fold_mutations([MutationOp(op_type, "  ")])
        assert exc_info.value.code == ErrorCode.VALIDATION

    def test_later_set_wins(self):
        plan = fold_mutations(
            [
                MutationOp(MutationType.SET_NOTE, "first"),
                MutationOp(MutationType.SET_NOTE, "second"),
            ]
        )
        assert plan.scalars == {"note": "second"}

    def test_set_accepts_empty_value(self):
        plan = fold_mutations([MutationOp(MutationType.SET_ORGANIZATION, "")])
        assert plan.scalars == {"organization": ""}

    def test_delete_flag(self):
        plan = fold_mutations(
            [MutationOp(MutationType.SET_NOTE, "x"), MutationOp(MutationType.DELETE)]
        )
        assert plan.delete is True

    def test_string_types_are_coerced(self):
        plan = fold_mutations([MutationOp("add_to_group", " g1 ")])
        assert plan.add_group_ids == ["g1"]


class TestCreate:
    def test_create_returns_created_ref(self, store, executor):
        result = executor.create(ContactDraft(given_name="Lena", organization="Globex"))

        assert result.succeeded
        assert result.created
        assert not result.updated
        assert result.ref.id
        assert stored(store, result.ref.id).given_name == "Lena"

    def test_create_with_groups_attaches_and_verifies(self, store, executor):
        result = executor.create(ContactDraft(given_name="Lena", group_ids=["g1"]))

        assert result.succeeded
        assert result.created
        assert result.updated
        assert result.ref.id in store.group_members("g1")

    def test_create_with_unknown_group_keeps_created_ref(self, store, executor):
        result = executor.create(ContactDraft(given_name="Lena", group_ids=["nope"]))

        assert not result.succeeded
        assert result.created
        assert result.err.code == ErrorCode.NOT_FOUND
        assert stored(store, result.ref.id).given_name == "Lena"

    def test_create_save_error_raises(self, store, executor):
        store.fail_saves = ContactsError(ErrorCode.STORE, "disk full")
        with pytest.raises(ContactsError):
            executor.create(ContactDraft(given_name="Lena"))


class TestPatch:
    def test_missing_ref_id_is_validation_error(self, executor):
        with pytest.raises(ContactsError) as exc_info:
            executor.patch(ContactPatch(ref=Ref(id=" ")))
        assert exc_info.value.message == "patch ref.id is required"

    def test_unknown_contact_is_not_found(self, executor):
        with pytest.raises(ContactsError) as exc_info:
            executor.patch(ContactPatch(ref=Ref(id="zzz"), changes=ContactChanges(note="x")))
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_only_explicit_fields_change(self, store, executor):
        result = executor.patch(
            ContactPatch(ref=Ref(id="c1"), changes=ContactChanges(note="new note"))
        )

        assert result.succeeded
        assert result.updated
        record = stored(store)
        assert record.note == "new note"
        assert record.organization == "Acme"
        assert record.emails == [LabeledValue("priya@acme.com", "work")]

    def test_empty_string_clears_field(self, store, executor):
        executor.patch(
            ContactPatch(ref=Ref(id="c1"), changes=ContactChanges(organization=""))
        )
        assert stored(store).organization == ""

    def test_empty_list_clears_emails(self, store, executor):
        executor.patch(ContactPatch(ref=Ref(id="c1"), changes=ContactChanges(emails=[])))
        assert stored(store).emails == []

    def test_no_changes_is_unchanged_success(self, store, executor):
        store.calls.clear()
        result = executor.patch(ContactPatch(ref=Ref(id="c1")))

        assert result.succeeded
        assert not result.updated
        assert "execute_save" not in store.calls

    def test_overlapping_groups_rejected_before_fetch(self, store, executor):
        store.calls.clear()
        with pytest.raises(ContactsError) as exc_info:
            executor.patch(
                ContactPatch(
                    ref=Ref(id="c1"),
                    changes=ContactChanges(add_group_ids=["g1"], remove_group_ids=["g1"]),
                )
            )
        assert exc_info.value.code == ErrorCode.VALIDATION
        assert store.calls == []

    def test_patch_with_membership(self, store, executor):
        store.put_group("g2", "Work", members=["c1"])
        result = executor.patch(
            ContactPatch(
                ref=Ref(id="c1"),
                changes=ContactChanges(
                    job_title="CTO", add_group_ids=["g1"], remove_group_ids=["g2"]
                ),
            )
        )

        assert result.succeeded
        assert result.updated
        assert stored(store).job_title == "CTO"
        assert store.group_members("g1") == ["c1"]
        assert store.group_members("g2") == []


class TestMutate:
    def test_missing_ref_id_is_validation_error(self, executor):
        with pytest.raises(ContactsError) as exc_info:
            executor.mutate(Ref(id=""), [MutationOp(MutationType.DELETE)])
        assert exc_info.value.message == "mutation ref.id is required"

    def test_set_ops_apply_in_one_save(self, store, executor):
        store.calls.clear()
        result = executor.mutate(
            Ref(id="c1"),
            [
                MutationOp(MutationType.SET_GIVEN_NAME, "Pri"),
                MutationOp(MutationType.SET_FAMILY_NAME, "R."),
                MutationOp(MutationType.SET_JOB_TITLE, "Engineer"),
            ],
        )

        assert result.succeeded and result.updated
        assert store.calls.count("execute_save") == 1
        record = stored(store)
        assert (record.given_name, record.family_name, record.job_title) == (
            "Pri",
            "R.",
            "Engineer",
        )

    def test_delete_supersedes_other_ops(self, store, executor):
        result = executor.mutate(
            Ref(id="c1"),
            [
                MutationOp(MutationType.SET_NOTE, "ignored"),
                MutationOp(MutationType.ADD_TO_GROUP, "nope"),
                MutationOp(MutationType.DELETE),
            ],
        )

        assert result.succeeded
        assert store.fetch_by_ids(["c1"]) == []

    def test_bad_op_rejects_item_without_writes(self, store, executor):
        store.calls.clear()
        with pytest.raises(ContactsError):
            executor.mutate(
                Ref(id="c1"),
                [MutationOp(MutationType.SET_NOTE, "x"), MutationOp("bogus")],
            )
        assert store.calls == []

    def test_add_to_group_verified(self, store, executor):
        result = executor.mutate(Ref(id="c1"), [MutationOp(MutationType.ADD_TO_GROUP, "g2")])
        assert result.succeeded
        assert store.group_members("g2") == ["c1"]

    def test_unknown_contact_is_not_found(self, executor):
        with pytest.raises(ContactsError) as exc_info:
            executor.mutate(Ref(id="ghost"), [MutationOp(MutationType.SET_NOTE, "x")])
        assert exc_info.value.code == ErrorCode.NOT_FOUND
