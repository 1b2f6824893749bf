"""
Caller-facing contact primitives.

ContactsClient composes the query matcher, result windower, write executor,
membership reconciler and result reporter over a ContactStore. The intended
flow is find -> get -> decide -> mutate/upsert:

    client = ContactsClient(store, removal_channel)

    found = client.find(FindInput(query=Query(organization_contains="acme")))
    items = client.get(GetInput(refs=found.refs, fields=[Field.EMAILS]))
    client.mutate(MutateInput(
        refs=found.refs,
        ops=[MutationOp(MutationType.ADD_TO_GROUP, "g-vip")],
    ))

Find and Get fail as a whole on any error. Upsert, Mutate and Groups
report one result per item and never abort a batch.
"""

from __future__ import annotations

import logging

from contactkit.core.errors import (
    ContactsError,
    ErrorCode,
    not_found_error,
    validation_error,
)
from contactkit.core.membership import MembershipReconciler
from contactkit.core.models import (
    AuthStatus,
    ContactRecord,
    Field,
    FindInput,
    FindOutput,
    GetInput,
    GetOutput,
    GroupRef,
    GroupResult,
    GroupsAction,
    GroupsInput,
    GroupsOutput,
    Item,
    Meta,
    MutateInput,
    MutateOutput,
    Ref,
    UpsertInput,
    UpsertOutput,
    coerce_enum,
)
from contactkit.core.query import QueryMatcher, clean_ids
from contactkit.core.results import ResultReporter
from contactkit.core.window import (
    DEFAULT_PAGE_LIMIT,
    parse_cursor,
    validate_sort,
    window,
)
from contactkit.core.writer import WriteExecutor
from contactkit.store.base import ContactStore, RemovalChannel, SaveRequest

logger = logging.getLogger(__name__)


class ContactsClient:
    """
    The five contact primitives over a ContactStore.

    Attributes:
        store: Backing contact store
        removal_channel: Channel used to remove group memberships
        default_page_limit: Page size used when Find is called with limit <= 0
    """

    def __init__(
        self,
        store: ContactStore,
        removal_channel: RemovalChannel,
        default_page_limit: int = DEFAULT_PAGE_LIMIT,
    ):
        self.store = store
        self.removal_channel = removal_channel
        self.default_page_limit = (
            default_page_limit if default_page_limit > 0 else DEFAULT_PAGE_LIMIT
        )
        self.reconciler = MembershipReconciler(store, removal_channel)
        self.executor = WriteExecutor(store, self.reconciler)

    # =========================================================================
    # Authorization
    # =========================================================================

    def authorization_status(self) -> AuthStatus:
        return self.store.authorization_status()

    def request_access(self) -> bool:
        """Ask the store for access. Returns True when access is granted."""
        granted = self.store.request_access()
        logger.debug(f"Access request granted: {granted}")
        return granted

    def _ensure_authorized(self) -> None:
        status = self.store.authorization_status()
        if status != AuthStatus.AUTHORIZED:
            raise ContactsError(
                ErrorCode.PERMISSION_DENIED,
                f"contacts access is {getattr(status, 'value', status)}",
            )

    # =========================================================================
    # Find
    # =========================================================================

    def find(self, request: FindInput) -> FindOutput:
        """
        Select contacts matching a query, sorted and paginated.

        The whole store is enumerated and matched on every call; the cursor
        is an offset into that sorted matched sequence.

        Raises:
            ContactsError: permission_denied, validation (cursor, sort or
                match policy), or any store error
        """
        self._ensure_authorized()

        parse_cursor(request.page.cursor)
        validate_sort(request.sort)
        matcher = QueryMatcher.for_query(request.query, self.store)

        fields = set(matcher.required_fields()) | {Field.NAMES}
        if request.include_meta:
            fields.add(Field.ORGANIZATION)

        records = self.store.enumerate(frozenset(fields))
        matched = matcher.filter(records)
        page = window(
            matched, request.page, request.sort, default_limit=self.default_page_limit
        )

        logger.debug(
            f"Find matched {len(matched)} of {len(records)} contact(s), "
            f"returning {len(page.records)}"
        )

        output = FindOutput(
            refs=[record.ref() for record in page.records],
            next_cursor=page.next_cursor,
        )
        if request.include_meta:
            output.meta = [_meta_for(record) for record in page.records]
        return output

    # =========================================================================
    # Get
    # =========================================================================

    def get(self, request: GetInput) -> GetOutput:
        """
        Hydrate refs into items.

        Items come back in request order. Blank and duplicate ids are
        dropped; ids the store does not know are omitted.

        Raises:
            ContactsError: permission_denied, validation (unknown field), or
                any store error
        """
        self._ensure_authorized()

        fields: set[Field] = set()
        for raw in request.fields or []:
            value = coerce_enum(Field, raw)
            if not isinstance(value, Field):
                raise validation_error(f"unknown field: {raw}")
            fields.add(value)
        requested = frozenset(fields) if fields else frozenset(Field)

        ids = clean_ids(ref.id for ref in request.refs)
        if not ids:
            return GetOutput()

        fetch_fields = requested - {Field.GROUPS}
        records = self.store.fetch_by_ids(ids, fetch_fields)
        by_id: dict[str, ContactRecord] = {record.id: record for record in records}

        if Field.GROUPS in requested:
            memberships = self._memberships(set(by_id))
            for record in by_id.values():
                record.group_ids = memberships.get(record.id, [])

        items = [
            Item.from_record(by_id[contact_id], requested)
            for contact_id in ids
            if contact_id in by_id
        ]
        logger.debug(f"Get hydrated {len(items)} of {len(ids)} requested contact(s)")
        return GetOutput(items=items)

    def _memberships(self, contact_ids: set[str]) -> dict[str, list[str]]:
        """Map contact id -> group ids by reading every group's members."""
        memberships: dict[str, list[str]] = {}
        if not contact_ids:
            return memberships
        for group in self.store.list_groups():
            for contact_id in self.store.group_members(group.ref.id):
                if contact_id in contact_ids:
                    memberships.setdefault(contact_id, []).append(group.ref.id)
        return memberships

    # =========================================================================
    # Upsert / Mutate
    # =========================================================================

    def upsert(self, request: UpsertInput) -> UpsertOutput:
        """
        Create drafts, then apply patches, one result per item.

        Raises:
            ContactsError: permission_denied only; item failures are reported
                on the item
        """
        self._ensure_authorized()

        reporter = ResultReporter()
        for draft in request.create:
            reporter.write(
                Ref(id="", container_id=draft.container_id),
                lambda draft=draft: self.executor.create(draft),
            )
        for patch in request.patch:
            reporter.write(patch.ref, lambda patch=patch: self.executor.patch(patch))

        logger.info(
            f"Upsert finished: {len(reporter.results)} item(s), "
            f"{reporter.failed} failed"
        )
        return UpsertOutput(results=reporter.results)

    def mutate(self, request: MutateInput) -> MutateOutput:
        """
        Apply the same op list to every ref, one result per ref.

        Raises:
            ContactsError: permission_denied only; item failures are reported
                on the item
        """
        self._ensure_authorized()

        reporter = ResultReporter()
        for ref in request.refs:
            reporter.write(ref, lambda ref=ref: self.executor.mutate(ref, request.ops))

        logger.info(
            f"Mutate finished: {len(reporter.results)} item(s), "
            f"{reporter.failed} failed"
        )
        return MutateOutput(results=reporter.results)

    # =========================================================================
    # Groups
    # =========================================================================

    def groups(self, request: GroupsInput) -> GroupsOutput:
        """
        List, create, rename or delete a group.

        Mutating actions produce exactly one GroupResult. The current group
        catalog is always listed afterwards.

        Raises:
            ContactsError: permission_denied, validation for an unknown
                action, or any error while listing the catalog
        """
        self._ensure_authorized()

        action = request.action
        if not isinstance(action, GroupsAction):
            raise validation_error(f"unknown groups action: {action}")

        output = GroupsOutput()
        if action != GroupsAction.LIST:
            reporter = ResultReporter()
            handler = {
                GroupsAction.CREATE: self._create_group,
                GroupsAction.RENAME: self._rename_group,
                GroupsAction.DELETE: self._delete_group,
            }[action]
            reporter.group(request.group, lambda: handler(request))
            output.results = reporter.group_results

        output.groups = self.store.list_groups()
        return output

    def _create_group(self, request: GroupsInput) -> GroupResult:
        name = (request.name or "").strip()
        if not name:
            raise validation_error("group name is required")

        save = SaveRequest()
        save.add_group(name, (request.container_id or "").strip())
        saved = self.store.execute_save(save)
        if not saved.created_group_ids:
            raise ContactsError(ErrorCode.STORE, "store did not return a group id")

        group_id = saved.created_group_ids[0]
        created = self.store.resolve_group(group_id)
        ref = created.ref if created is not None else GroupRef(id=group_id)
        logger.info(f"Created group {group_id} ({name})")
        return GroupResult.success(ref, created=True)

    def _rename_group(self, request: GroupsInput) -> GroupResult:
        group_id = (request.group.id or "").strip()
        name = (request.name or "").strip()
        if not group_id or not name:
            raise validation_error("group_id and name are required")

        group = self.store.resolve_group(group_id)
        if group is None:
            raise not_found_error("group not found")

        save = SaveRequest()
        save.update_group(group_id, name)
        self.store.execute_save(save)
        logger.info(f"Renamed group {group_id} to {name}")
        return GroupResult.success(group.ref, updated=True)

    def _delete_group(self, request: GroupsInput) -> GroupResult:
        group_id = (request.group.id or "").strip()
        if not group_id:
            raise validation_error("group_id is required")

        group = self.store.resolve_group(group_id)
        if group is None:
            raise not_found_error("group not found")

        save = SaveRequest()
        save.delete_group(group_id)
        self.store.execute_save(save)
        logger.info(f"Deleted group {group_id}")
        return GroupResult.success(group.ref, updated=True)


def _meta_for(record: ContactRecord) -> Meta:
    return Meta(
        ref=record.ref(),
        display_name=record.display_name(),
        organization=record.organization,
        modified_at=record.modified_at,
    )


__all__ = ["ContactsClient"]
