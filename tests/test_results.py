"""
Tests for per-item result collection and the result models.
"""

import pytest

from contactkit.core.errors import (
    ContactsError,
    ErrorCode,
    as_contacts_error,
    not_found_error,
    validation_error,
)
from contactkit.core.models import GroupRef, GroupResult, Ref, WriteResult
from contactkit.core.results import ResultReporter


class TestContactsError:
    def test_str_includes_code_and_message(self):
        error = ContactsError(ErrorCode.NOT_FOUND, "contact not found")
        assert str(error) == "contacts: not_found: contact not found"

    def test_str_without_message(self):
        assert str(ContactsError(ErrorCode.STORE)) == "contacts: store"

    def test_code_accepts_string(self):
        assert ContactsError("conflict", "x").code == ErrorCode.CONFLICT

    def test_equality_by_code_and_message(self):
        assert validation_error("bad") == ContactsError(ErrorCode.VALIDATION, "bad")
        assert not_found_error("bad") != validation_error("bad")

    def test_as_contacts_error_passes_through(self):
        error = not_found_error("x")
        assert as_contacts_error(error) is error

    def test_as_contacts_error_wraps_unknown(self):
        error = as_contacts_error(RuntimeError("boom"))
        assert error.code == ErrorCode.UNKNOWN
        assert error.message == "boom"


class TestResultInvariant:
    def test_success_has_no_error(self):
        result = WriteResult.success(Ref(id="c1"), updated=True)
        assert result.succeeded and result.err is None

    def test_failure_requires_error(self):
        with pytest.raises(ValueError):
            WriteResult(ref=Ref(id="c1"), succeeded=False)

    def test_success_rejects_error(self):
        with pytest.raises(ValueError):
            GroupResult(
                group=GroupRef(id="g1"), succeeded=True, err=validation_error("x")
            )


class TestResultReporter:
    def test_one_result_per_item_in_order(self):
        reporter = ResultReporter()

        def missing():
            raise not_found_error("gone")

        reporter.write(Ref(id="a"), lambda: WriteResult.success(Ref(id="a"), updated=True))
        reporter.write(Ref(id="b"), missing)
        reporter.write(Ref(id="c"), lambda: WriteResult.success(Ref(id="c")))

        assert [r.ref.id for r in reporter.results] == ["a", "b", "c"]
        assert [r.succeeded for r in reporter.results] == [True, False, True]
        assert reporter.results[1].err == not_found_error("gone")
        assert reporter.failed == 1

    def test_unexpected_exception_becomes_unknown(self):
        reporter = ResultReporter()

        def explode():
            raise KeyError("missing")

        result = reporter.write(Ref(id="a"), explode)

        assert not result.succeeded
        assert result.err.code == ErrorCode.UNKNOWN

    def test_group_results(self):
        reporter = ResultReporter()

        def bad():
            raise validation_error("group name is required")

        reporter.group(GroupRef(id=""), bad)
        reporter.group(GroupRef(id="g1"), lambda: GroupResult.success(GroupRef(id="g1")))

        assert [r.succeeded for r in reporter.group_results] == [False, True]
        assert reporter.group_results[0].err.code == ErrorCode.VALIDATION
        assert reporter.failed == 1
