"""
Google People API contact store.

Implements the ContactStore port over the Google People API:
- Enumerating connections with pagination
- Batched fetch by resource name
- Creating, updating and deleting contacts and contact groups
- Adding group members through contactGroups.members.modify
- Exponential backoff retry for rate limits and server errors

Also provides PeopleAPIRemovalChannel, the removal channel that goes
through the same API.

Contact ids are person resource names ("people/c123"); group ids are
contact group resource names ("contactGroups/abc").

Note:
    execute_save() issues one API call per write in the request. The People
    API has no cross-resource transaction, so a failure part way through a
    request leaves the earlier writes applied.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from contactkit.auth.google_auth import DEFAULT_ACCOUNT, GoogleAuth
from contactkit.core.errors import ContactsError, ErrorCode
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

# personFields needed for each logical field
FIELD_PERSON_FIELDS: dict[Field, tuple[str, ...]] = {
    Field.NAMES: ("names", "nicknames"),
    Field.ORGANIZATION: ("organizations",),
    Field.EMAILS: ("emailAddresses",),
    Field.PHONES: ("phoneNumbers",),
    Field.NOTE: ("biographies",),
    Field.GROUPS: ("memberships",),
}

# Fields to update when modifying contacts
UPDATE_PERSON_FIELDS = ",".join(
    [
        "names",
        "nicknames",
        "emailAddresses",
        "phoneNumbers",
        "organizations",
        "biographies",
    ]
)

GROUP_FIELDS = "name,groupType,memberCount,metadata"

# Maximum number of contacts per page when listing
DEFAULT_PAGE_SIZE = 100

# people.getBatchGet accepts at most 200 resource names
BATCH_GET_LIMIT = 200

# contactGroups.get returns at most this many member resource names
MAX_GROUP_MEMBERS = 1000

# Retry configuration defaults
DEFAULT_MAX_RETRIES = 5
DEFAULT_INITIAL_RETRY_DELAY = 1.0  # seconds
DEFAULT_MAX_RETRY_DELAY = 60.0  # seconds

logger = logging.getLogger(__name__)


class PeopleAPIError(ContactsError):
    """
    Raised when a People API operation fails.

    Attributes:
        status: HTTP status of the failed call, when there was one
    """

    def __init__(self, code: ErrorCode, message: str = "", status: int | None = None):
        super().__init__(code, message)
        self.status = status


class RateLimitError(PeopleAPIError):
    """Raised when rate limit is exceeded and retries are exhausted."""

    def __init__(self, message: str = "", status: int | None = 429):
        super().__init__(ErrorCode.STORE, message, status)


def error_code_for_status(status: int) -> ErrorCode:
    """Map an HTTP status from the People API onto the error taxonomy."""
    if status in (401, 403):
        return ErrorCode.PERMISSION_DENIED
    if status in (404, 410):
        return ErrorCode.NOT_FOUND
    if status in (409, 412):
        return ErrorCode.CONFLICT
    if status == 400:
        return ErrorCode.VALIDATION
    return ErrorCode.STORE


def _is_rate_limited(error: HttpError) -> bool:
    status = error.resp.status
    if status == 429:
        return True
    if status != 403:
        return False
    content = error.content
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    text = str(content or "").lower()
    return "quota" in text or "ratelimit" in text or "rate limit" in text


def _first(entries: list[dict[str, Any]] | None) -> dict[str, Any]:
    """Return the primary entry of a People API list field."""
    if not entries:
        return {}
    for entry in entries:
        if entry.get("metadata", {}).get("primary"):
            return entry
    return entries[0]


def person_to_record(person: dict[str, Any], account_id: str = "") -> ContactRecord:
    """
    Build a ContactRecord from a People API person resource.

    Example person structure::

        {
            'resourceName': 'people/c12345',
            'etag': 'abc123',
            'names': [{'givenName': 'Priya', 'familyName': 'Raman'}],
            'emailAddresses': [{'value': 'priya@acme.com', 'type': 'work'}],
            'organizations': [{'name': 'Acme', 'title': 'CTO'}],
            'biographies': [{'value': 'Met at PyCon'}],
            'memberships': [{'contactGroupMembership':
                {'contactGroupResourceName': 'contactGroups/friends'}}],
            'metadata': {'sources': [{'updateTime': '2024-01-15T10:30:00Z'}]}
        }
    """
    name = _first(person.get("names"))
    organization = _first(person.get("organizations"))
    nickname = _first(person.get("nicknames"))
    biography = _first(person.get("biographies"))

    modified_at = None
    for source in person.get("metadata", {}).get("sources", []):
        update_time = source.get("updateTime")
        if update_time:
            try:
                modified_at = datetime.fromisoformat(update_time.replace("Z", "+00:00"))
            except (ValueError, TypeError):
                pass
            break

    group_ids = []
    for membership in person.get("memberships", []):
        group_name = membership.get("contactGroupMembership", {}).get(
            "contactGroupResourceName"
        )
        if group_name:
            group_ids.append(group_name)

    return ContactRecord(
        id=person.get("resourceName", ""),
        container_id=account_id,
        account_id=account_id,
        given_name=name.get("givenName", ""),
        middle_name=name.get("middleName", ""),
        family_name=name.get("familyName", ""),
        nickname=nickname.get("value", ""),
        organization=organization.get("name", ""),
        job_title=organization.get("title", ""),
        note=biography.get("value", ""),
        emails=[
            LabeledValue(value=e["value"], label=e.get("type", ""))
            for e in person.get("emailAddresses", [])
            if e.get("value")
        ],
        phones=[
            LabeledValue(value=p["value"], label=p.get("type", ""))
            for p in person.get("phoneNumbers", [])
            if p.get("value")
        ],
        group_ids=group_ids,
        modified_at=modified_at,
        etag=person.get("etag", ""),
    )


def record_to_person(record: ContactRecord) -> dict[str, Any]:
    """
    Convert a ContactRecord to People API format for create/update.

    Empty lists are sent for cleared fields so that an update with
    UPDATE_PERSON_FIELDS actually clears them.
    """
    name: dict[str, str] = {}
    if record.given_name:
        name["givenName"] = record.given_name
    if record.middle_name:
        name["middleName"] = record.middle_name
    if record.family_name:
        name["familyName"] = record.family_name

    organization: dict[str, str] = {}
    if record.organization:
        organization["name"] = record.organization
    if record.job_title:
        organization["title"] = record.job_title

    person: dict[str, Any] = {
        "names": [name] if name else [],
        "nicknames": [{"value": record.nickname}] if record.nickname else [],
        "organizations": [organization] if organization else [],
        "biographies": (
            [{"value": record.note, "contentType": "TEXT_PLAIN"}] if record.note else []
        ),
        "emailAddresses": [
            {"value": e.value, "type": e.label} if e.label else {"value": e.value}
            for e in record.emails
        ],
        "phoneNumbers": [
            {"value": p.value, "type": p.label} if p.label else {"value": p.value}
            for p in record.phones
        ],
    }
    if record.etag:
        person["etag"] = record.etag
    return person


def person_fields_for(fields: frozenset[Field]) -> str:
    """Build the personFields mask for the requested logical fields."""
    wanted = fields or frozenset(Field)
    names = ["metadata"]
    for logical in Field:
        if logical in wanted:
            names.extend(FIELD_PERSON_FIELDS[logical])
    return ",".join(names)


class PeopleAPIStore:
    """
    ContactStore backed by the Google People API.

    Attributes:
        account: Account name used for credentials and reported as the
            container and account id of every record
        auth: GoogleAuth used to load credentials lazily

    Usage:
        store = PeopleAPIStore(auth=GoogleAuth(), account="default")
        if store.authorization_status() != AuthStatus.AUTHORIZED:
            store.request_access()
        records = store.enumerate(frozenset({Field.NAMES}))
    """

    def __init__(
        self,
        credentials: Credentials | None = None,
        auth: GoogleAuth | None = None,
        account: str = DEFAULT_ACCOUNT,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_retry_delay: float = DEFAULT_INITIAL_RETRY_DELAY,
        max_retry_delay: float = DEFAULT_MAX_RETRY_DELAY,
    ):
        """
        Initialize the store.

        Args:
            credentials: Ready-made OAuth2 credentials (skips auth lookups)
            auth: Authentication manager used when credentials is None
            account: Account name for token lookup and record ids
            page_size: Number of contacts per page when listing (max 1000)
            max_retries: Maximum retry attempts for failed API calls
            initial_retry_delay: Initial backoff delay in seconds
            max_retry_delay: Maximum backoff delay in seconds
        """
        self.credentials = credentials
        self.auth = auth
        self.account = account
        self.page_size = min(page_size, 1000)
        self.max_retries = max(1, max_retries)
        self.initial_retry_delay = initial_retry_delay
        self.max_retry_delay = max_retry_delay
        self._service = None

    def _get_credentials(self) -> Credentials | None:
        if self.credentials is None and self.auth is not None:
            self.credentials = self.auth.get_credentials(self.account)
        return self.credentials

    @property
    def service(self) -> Any:
        """
        Get or create the Google API service object.

        Raises:
            PeopleAPIError: permission_denied without credentials, store if
                the service cannot be built
        """
        if self._service is None:
            credentials = self._get_credentials()
            if credentials is None:
                raise PeopleAPIError(
                    ErrorCode.PERMISSION_DENIED,
                    f"account {self.account} is not authenticated",
                )
            try:
                self._service = build(
                    "people", "v1", credentials=credentials, cache_discovery=False
                )
                logger.debug("Created People API service")
            except Exception as e:
                logger.error(f"Failed to create People API service: {e}")
                raise PeopleAPIError(
                    ErrorCode.STORE, f"Failed to create API service: {e}"
                ) from e
        return self._service

    def _retry_with_backoff(
        self, operation: Callable[[], Any], operation_name: str
    ) -> Any:
        """
        Execute an operation with exponential backoff retry.

        Rate limits (429, quota 403) and server errors (5xx) are retried;
        every other HTTP error is mapped onto the taxonomy immediately.

        Raises:
            RateLimitError: If retries are exhausted due to rate limits
            PeopleAPIError: For other API errors
        """
        delay = self.initial_retry_delay

        for attempt in range(self.max_retries):
            try:
                return operation()

            except HttpError as e:
                status_code = e.resp.status
                last_attempt = attempt >= self.max_retries - 1

                if _is_rate_limited(e):
                    if last_attempt:
                        raise RateLimitError(
                            f"Rate limit exceeded for {operation_name} "
                            f"after {self.max_retries} retries",
                            status_code,
                        ) from e
                    logger.warning(
                        f"{operation_name} rate limited, retrying in "
                        f"{delay:.1f}s (attempt {attempt + 1}/{self.max_retries})"
                    )
                    time.sleep(delay)
                    delay = min(delay * 2, self.max_retry_delay)
                    continue

                if status_code >= 500 and not last_attempt:
                    logger.warning(
                        f"{operation_name} server error ({status_code}), "
                        f"retrying in {delay:.1f}s"
                    )
                    time.sleep(delay)
                    delay = min(delay * 2, self.max_retry_delay)
                    continue

                logger.debug(f"{operation_name} failed with status {status_code}: {e}")
                raise PeopleAPIError(
                    error_code_for_status(status_code),
                    f"{operation_name} failed: {e.reason}",
                    status_code,
                ) from e

        raise PeopleAPIError(ErrorCode.STORE, f"{operation_name} failed after all retries")

    # =========================================================================
    # Authorization
    # =========================================================================

    def authorization_status(self) -> AuthStatus:
        if self.credentials is not None:
            return AuthStatus.AUTHORIZED if self.credentials.valid else AuthStatus.DENIED
        if self.auth is None:
            return AuthStatus.NOT_DETERMINED
        return self.auth.authorization_status(self.account)

    def request_access(self) -> bool:
        """Run the OAuth flow for the account. Returns True on success."""
        if self.auth is None:
            return self.credentials is not None and self.credentials.valid
        self.credentials = self.auth.authenticate(self.account)
        self._service = None
        return True

    # =========================================================================
    # Contacts
    # =========================================================================

    def enumerate(self, fields: frozenset[Field] = frozenset()) -> list[ContactRecord]:
        """List every connection of the authenticated user."""
        person_fields = person_fields_for(fields)
        logger.debug(f"Listing contacts (personFields={person_fields})")

        records: list[ContactRecord] = []
        page_token: str | None = None

        while True:
            params: dict[str, Any] = {
                "resourceName": "people/me",
                "personFields": person_fields,
                "pageSize": self.page_size,
            }
            if page_token:
                params["pageToken"] = page_token

            def execute_list(p: dict[str, Any] = params) -> Any:
                return self.service.people().connections().list(**p).execute()

            response = self._retry_with_backoff(execute_list, "list_contacts")

            for person in response.get("connections", []):
                records.append(person_to_record(person, self.account))

            page_token = response.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Listed {len(records)} contacts")
        return records

    def fetch_by_ids(
        self, ids: Iterable[str], fields: frozenset[Field] = frozenset()
    ) -> list[ContactRecord]:
        """Fetch contacts by resource name, skipping ones that do not exist."""
        resource_names = list(dict.fromkeys(ids))
        person_fields = person_fields_for(fields)
        records: list[ContactRecord] = []

        for start in range(0, len(resource_names), BATCH_GET_LIMIT):
            batch = resource_names[start : start + BATCH_GET_LIMIT]

            def execute_get(b: list[str] = batch) -> Any:
                return (
                    self.service.people()
                    .getBatchGet(resourceNames=b, personFields=person_fields)
                    .execute()
                )

            response = self._retry_with_backoff(execute_get, "get_contacts")
            for entry in response.get("responses", []):
                person = entry.get("person")
                if not person:
                    logger.debug(
                        f"Contact not returned: {entry.get('requestedResourceName')}"
                    )
                    continue
                records.append(person_to_record(person, self.account))

        return records

    def execute_save(self, request: SaveRequest) -> SaveResult:
        """Apply every write in the request, one API call each, in order."""
        result = SaveResult()

        for record in request.add_contacts:
            body = record_to_person(record)

            def execute_create(b: dict[str, Any] = body) -> Any:
                return (
                    self.service.people()
                    .createContact(body=b, personFields="metadata")
                    .execute()
                )

            response = self._retry_with_backoff(execute_create, "create_contact")
            result.created_contact_ids.append(response.get("resourceName", ""))
            logger.info(f"Created contact: {response.get('resourceName')}")

        for record in request.update_contacts:
            body = record_to_person(record)

            def execute_update(r: ContactRecord = record, b: dict[str, Any] = body) -> Any:
                return (
                    self.service.people()
                    .updateContact(
                        resourceName=r.id,
                        body=b,
                        updatePersonFields=UPDATE_PERSON_FIELDS,
                        personFields="metadata",
                    )
                    .execute()
                )

            self._retry_with_backoff(execute_update, f"update_contact({record.id})")
            logger.info(f"Updated contact: {record.id}")

        for contact_id in request.delete_contacts:

            def execute_delete(c: str = contact_id) -> Any:
                return self.service.people().deleteContact(resourceName=c).execute()

            self._retry_with_backoff(execute_delete, f"delete_contact({contact_id})")
            logger.info(f"Deleted contact: {contact_id}")

        additions: dict[str, list[str]] = {}
        for addition in request.add_members:
            additions.setdefault(addition.group_id, []).append(addition.contact_id)
        for group_id, contact_ids in additions.items():
            response = self.modify_group_members(group_id, add=contact_ids)
            missing = response.get("notFoundResourceNames") or []
            if missing:
                raise PeopleAPIError(
                    ErrorCode.NOT_FOUND, f"contacts not found: {', '.join(missing)}"
                )

        for draft in request.add_groups:
            body = {"contactGroup": {"name": draft.name}}

            def execute_create_group(b: dict[str, Any] = body) -> Any:
                return self.service.contactGroups().create(body=b).execute()

            response = self._retry_with_backoff(
                execute_create_group, f"create_contact_group({draft.name})"
            )
            result.created_group_ids.append(response.get("resourceName", ""))
            logger.info(
                f"Created contact group: {response.get('resourceName')} ({draft.name})"
            )

        for rename in request.update_groups:
            body = {"contactGroup": {"name": rename.name}, "updateGroupFields": "name"}

            def execute_update_group(g: str = rename.group_id, b: dict[str, Any] = body) -> Any:
                return self.service.contactGroups().update(resourceName=g, body=b).execute()

            self._retry_with_backoff(
                execute_update_group, f"update_contact_group({rename.group_id})"
            )
            logger.info(f"Updated contact group: {rename.group_id} -> {rename.name}")

        for group_id in request.delete_groups:

            def execute_delete_group(g: str = group_id) -> Any:
                return (
                    self.service.contactGroups()
                    .delete(resourceName=g, deleteContacts=False)
                    .execute()
                )

            self._retry_with_backoff(
                execute_delete_group, f"delete_contact_group({group_id})"
            )
            logger.info(f"Deleted contact group: {group_id}")

        return result

    # =========================================================================
    # Contact groups
    # =========================================================================

    def _get_group(self, group_id: str, max_members: int = 0) -> dict[str, Any]:
        params: dict[str, Any] = {"resourceName": group_id, "groupFields": GROUP_FIELDS}
        if max_members > 0:
            params["maxMembers"] = min(max_members, MAX_GROUP_MEMBERS)

        def execute_get() -> Any:
            return self.service.contactGroups().get(**params).execute()

        return dict(self._retry_with_backoff(execute_get, f"get_contact_group({group_id})"))

    def _group_from_api(self, data: dict[str, Any]) -> Group:
        return Group(
            ref=GroupRef(
                id=data.get("resourceName", ""),
                container_id=self.account,
                account_id=self.account,
            ),
            name=data.get("formattedName") or data.get("name", ""),
        )

    def group_members(self, group_id: str) -> list[str]:
        """
        Resource names of every contact in the group.

        contactGroups.get lists at most MAX_GROUP_MEMBERS members; larger
        groups are read from the memberships of every connection instead.
        """
        data = self._get_group(group_id, max_members=MAX_GROUP_MEMBERS)
        members = list(data.get("memberResourceNames", []))
        member_count = data.get("memberCount", 0)

        if member_count > len(members):
            logger.debug(
                f"Group {group_id} lists {len(members)} of {member_count} "
                "member(s), reading memberships from connections"
            )
            members = [
                record.id
                for record in self.enumerate(frozenset({Field.GROUPS}))
                if group_id in record.group_ids
            ]

        logger.debug(f"Group {group_id} has {len(members)} member(s)")
        return members

    def resolve_group(self, group_id: str) -> Group | None:
        try:
            data = self._get_group(group_id)
        except PeopleAPIError as e:
            if e.code == ErrorCode.NOT_FOUND:
                return None
            raise
        return self._group_from_api(data)

    def list_groups(self) -> list[Group]:
        groups: list[Group] = []
        page_token: str | None = None

        while True:
            params: dict[str, Any] = {
                "pageSize": self.page_size,
                "groupFields": GROUP_FIELDS,
            }
            if page_token:
                params["pageToken"] = page_token

            def execute_list(p: dict[str, Any] = params) -> Any:
                return self.service.contactGroups().list(**p).execute()

            response = self._retry_with_backoff(execute_list, "list_contact_groups")
            for data in response.get("contactGroups", []):
                groups.append(self._group_from_api(data))

            page_token = response.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Listed {len(groups)} contact groups")
        return groups

    def find_group_by_name(self, name: str) -> Group | None:
        for group in self.list_groups():
            if group.name == name:
                return group
        return None

    def modify_group_members(
        self,
        group_id: str,
        add: list[str] | None = None,
        remove: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Add and/or remove contacts from a group in one call.

        Returns:
            API response; may list notFoundResourceNames and
            canNotRemoveLastContactGroupResourceNames
        """
        body: dict[str, Any] = {}
        if add:
            body["resourceNamesToAdd"] = add
        if remove:
            body["resourceNamesToRemove"] = remove

        def execute_modify() -> Any:
            return (
                self.service.contactGroups()
                .members()
                .modify(resourceName=group_id, body=body)
                .execute()
            )

        response = self._retry_with_backoff(
            execute_modify, f"modify_group_members({group_id})"
        )
        logger.debug(
            f"Modified group members for {group_id}: "
            f"added {len(add or [])}, removed {len(remove or [])}"
        )
        return dict(response or {})


class PeopleAPIRemovalChannel:
    """
    Removes group members through contactGroups.members.modify.

    Strategies, in order:
        1. The group's resource name
        2. A group looked up by name (when the resource name is stale)
        3. A member of that group with the contact's given and family name
    """

    def __init__(self, store: PeopleAPIStore):
        self.store = store

    def _remove(self, group_id: str, contact_id: str) -> bool:
        """Returns False when the contact was not found in the group's account."""
        response = self.store.modify_group_members(group_id, remove=[contact_id])
        if contact_id in (response.get("canNotRemoveLastContactGroupResourceNames") or []):
            raise PeopleAPIError(
                ErrorCode.STORE, f"{contact_id} cannot leave its last contact group"
            )
        return contact_id not in (response.get("notFoundResourceNames") or [])

    def remove_member(self, target: RemovalTarget) -> None:
        try:
            try:
                if self._remove(target.group_id, target.contact_id):
                    return
                group_id = target.group_id
            except PeopleAPIError as e:
                if e.code != ErrorCode.NOT_FOUND or not target.group_name:
                    raise
                group = self.store.find_group_by_name(target.group_name)
                if group is None:
                    raise
                group_id = group.ref.id
                if self._remove(group_id, target.contact_id):
                    return

            if not (target.given_name or target.family_name):
                return
            candidates = self.store.fetch_by_ids(
                self.store.group_members(group_id), frozenset({Field.NAMES})
            )
            for record in candidates:
                if (
                    record.given_name == target.given_name
                    and record.family_name == target.family_name
                ):
                    self._remove(group_id, record.id)
                    return
        except ContactsError as e:
            raise RemovalChannelError(
                f"People API remove failed for group {target.group_id}: {e.message}"
            ) from e


__all__ = [
    "PeopleAPIStore",
    "PeopleAPIRemovalChannel",
    "PeopleAPIError",
    "RateLimitError",
    "error_code_for_status",
    "person_to_record",
    "record_to_person",
    "person_fields_for",
]
