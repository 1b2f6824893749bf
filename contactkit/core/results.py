"""
Per-item outcome collection for batch primitives.

Upsert, Mutate and Groups never abort a batch because one item failed.
ResultReporter runs each item, turns whatever it raised into the item's
error, and keeps exactly one result per input item in input order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from contactkit.core.errors import ContactsError, ErrorCode
from contactkit.core.models import GroupRef, GroupResult, Ref, WriteResult

logger = logging.getLogger(__name__)


def _capture(label: str, action: Callable[[], object]) -> tuple[object, ContactsError | None]:
    try:
        return action(), None
    except ContactsError as e:
        logger.warning(f"{label} failed: {e}")
        return None, e
    except Exception as e:
        logger.exception(f"{label} failed unexpectedly")
        return None, ContactsError(ErrorCode.UNKNOWN, str(e) or type(e).__name__)


@dataclass
class ResultReporter:
    """
    Collects WriteResult and GroupResult outcomes.

    Usage:
        reporter = ResultReporter()
        for draft in drafts:
            reporter.write(Ref(id=""), lambda: executor.create(draft))
        return UpsertOutput(results=reporter.results)
    """

    results: list[WriteResult] = field(default_factory=list)
    group_results: list[GroupResult] = field(default_factory=list)

    def write(self, ref: Ref, action: Callable[[], WriteResult]) -> WriteResult:
        """
        Run one write item and record its outcome.

        Args:
            ref: Ref reported when the item fails before producing a result
            action: Callable returning the item's WriteResult

        Returns:
            The recorded result
        """
        value, error = _capture(f"Write {ref.id or '<new>'}", action)
        if error is not None:
            result = WriteResult.failure(ref, error)
        else:
            result = value  # type: ignore[assignment]
        self.results.append(result)
        return result

    def group(self, group: GroupRef, action: Callable[[], GroupResult]) -> GroupResult:
        """Run one group action and record its outcome."""
        value, error = _capture(f"Group action {group.id or '<new>'}", action)
        if error is not None:
            result = GroupResult.failure(group, error)
        else:
            result = value  # type: ignore[assignment]
        self.group_results.append(result)
        return result

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.succeeded) + sum(
            1 for r in self.group_results if not r.succeeded
        )


__all__ = ["ResultReporter"]
