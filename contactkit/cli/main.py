"""
Command-line interface for contactkit.

Provides CLI commands for authentication and for the five contact
primitives.

Usage:
    # Show help
    contactkit --help

    # Authenticate the configured Google account
    contactkit auth

    # Find contacts at Acme whose name contains "priya"
    contactkit find --name priya --org acme --meta

    # Hydrate contacts
    contactkit get people/c123 people/c456 --field names --field emails

    # Add to a group and verify
    contactkit mutate people/c123 --add-group contactGroups/vip

    # Create and patch contacts from a YAML file
    contactkit upsert changes.yaml

    # Manage groups
    contactkit groups list
    contactkit groups create "Book club"
"""

import sys
from pathlib import Path
from typing import Any

import click
import yaml

from contactkit import __version__
from contactkit.auth.google_auth import AuthenticationError, GoogleAuth
from contactkit.cli.formatters import (
    show_find_output,
    show_get_output,
    show_group_results,
    show_groups,
    show_write_results,
)
from contactkit.client import ContactsClient
from contactkit.config.loader import (
    DEFAULT_CONFIG_FILE,
    ConfigError,
    ConfigLoader,
    with_defaults,
)
from contactkit.core.errors import ContactsError, ErrorCode
from contactkit.core.models import (
    ContactChanges,
    ContactDraft,
    ContactPatch,
    Field,
    FindInput,
    GetInput,
    GroupRef,
    GroupsAction,
    GroupsInput,
    LabeledValue,
    MatchPolicy,
    MutateInput,
    MutationOp,
    MutationType,
    Page,
    Query,
    Ref,
    Sort,
    SortField,
    SortOrder,
    UpsertInput,
)
from contactkit.store.applescript import AppleScriptRemovalChannel
from contactkit.store.memory import InMemoryRemovalChannel, InMemoryStore
from contactkit.store.people_api import PeopleAPIRemovalChannel, PeopleAPIStore
from contactkit.utils import resolve_config_dir
from contactkit.utils.logging import cleanup_old_logs, get_logger, setup_logging


def get_config_dir(config_dir: str | None) -> Path:
    """Get the configuration directory path."""
    return resolve_config_dir(config_dir)


def get_config_file(config_dir: Path, config_file: str | None) -> Path:
    """Get the configuration file path."""
    if config_file:
        return Path(config_file)
    return config_dir / DEFAULT_CONFIG_FILE


def fail(message: str) -> None:
    """Print an error and exit with status 1."""
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="contactkit")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output with detailed logging."
)
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=False, file_okay=False, dir_okay=True),
    envvar="CONTACTKIT_CONFIG_DIR",
    help="Configuration directory path (default: ~/.contactkit).",
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    envvar="CONTACTKIT_CONFIG_FILE",
    help="Configuration file path (default: <config-dir>/config.yaml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_dir: str | None,
    config_file: str | None,
) -> None:
    """
    Typed find/get/upsert/mutate/groups primitives for your contacts.

    Group membership changes are read back after writing; a command only
    reports success when the change is observed in the store.
    """
    ctx.ensure_object(dict)

    resolved_config_dir = get_config_dir(config_dir)
    resolved_config_file = get_config_file(resolved_config_dir, config_file)

    ctx.obj["config_dir"] = resolved_config_dir
    ctx.obj["config_file"] = resolved_config_file

    config: dict[str, Any] = {}
    try:
        loader = ConfigLoader(config_dir=resolved_config_dir)
        config = loader.load_from_file(resolved_config_file)
        if config:
            loader.validate(config)
    except ConfigError as e:
        # Keep going on defaults so that --help and auth still work
        click.echo(
            click.style(f"Warning: Configuration error: {e}", fg="yellow"), err=True
        )
        config = {}

    config = with_defaults(config)
    ctx.obj["config"] = config

    effective_verbose = verbose or config.get("verbose", False)
    ctx.obj["verbose"] = effective_verbose

    log_dir = Path(config["log_dir"]) if config.get("log_dir") else None
    setup_logging(verbose=effective_verbose, log_dir=log_dir, enable_file_logging=True)

    log_retention = config.get("log_retention_count", 10)
    if log_retention > 0:
        cleanup_old_logs(log_dir=log_dir, keep_count=log_retention)


# =============================================================================
# Client construction
# =============================================================================


def _snapshot_path(ctx: click.Context) -> Path:
    path = Path(ctx.obj["config"]["snapshot_file"]).expanduser()
    if not path.is_absolute():
        path = ctx.obj["config_dir"] / path
    return path


def build_client(ctx: click.Context) -> ContactsClient:
    """
    Build a ContactsClient for the configured backend.

    The client is cached on the context so that commands which write can
    persist the in-memory snapshot afterwards.
    """
    if "client" in ctx.obj:
        client: ContactsClient = ctx.obj["client"]
        return client

    config = ctx.obj["config"]
    if config["backend"] == "memory":
        store = InMemoryStore.from_snapshot(_snapshot_path(ctx))
        client = ContactsClient(
            store,
            InMemoryRemovalChannel(store),
            default_page_limit=config["default_page_limit"],
        )
    else:
        auth = GoogleAuth(
            config_dir=ctx.obj["config_dir"], auth_timeout=config["auth_timeout"]
        )
        people = PeopleAPIStore(
            auth=auth,
            account=config["account"],
            page_size=config["api_page_size"],
            max_retries=config["api_max_retries"],
            initial_retry_delay=config["api_initial_retry_delay"],
            max_retry_delay=config["api_max_retry_delay"],
        )
        if config["removal_channel"] == "applescript":
            # People resource names are not Contacts app ids
            channel: Any = AppleScriptRemovalChannel(
                timeout=config["script_timeout"], names_only=True
            )
        else:
            channel = PeopleAPIRemovalChannel(people)
        client = ContactsClient(
            people, channel, default_page_limit=config["default_page_limit"]
        )

    ctx.obj["client"] = client
    return client


def persist(ctx: click.Context) -> None:
    """Write the in-memory snapshot back after a write command."""
    client = ctx.obj.get("client")
    if client is not None and isinstance(client.store, InMemoryStore):
        client.store.save_snapshot(_snapshot_path(ctx))


def report_contacts_error(error: ContactsError) -> None:
    logger = get_logger(__name__)
    logger.debug(f"Command failed: {error!r}")
    if error.code == ErrorCode.PERMISSION_DENIED:
        click.echo(click.style(f"Error: {error}", fg="red"), err=True)
        click.echo("Run 'contactkit auth' to grant access.", err=True)
        sys.exit(1)
    fail(str(error))


# =============================================================================
# Auth / Status Commands
# =============================================================================


@cli.command("auth")
@click.option("--account", "-a", default=None, help="Account name (default: from config).")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Force re-authentication even if already authenticated.",
)
@click.pass_context
def auth_command(ctx: click.Context, account: str | None, force: bool) -> None:
    """
    Authenticate a Google account.

    Opens a browser window to complete the OAuth flow and stores the
    credentials for future use.
    """
    logger = get_logger(__name__)
    config_dir = ctx.obj["config_dir"]
    config = ctx.obj["config"]
    account = account or config["account"]

    click.echo(f"Authenticating {account}...")

    try:
        auth = GoogleAuth(config_dir=config_dir, auth_timeout=config["auth_timeout"])

        if not force and auth.is_authenticated(account):
            click.echo(
                click.style(f"Account {account} is already authenticated.", fg="green")
            )
            click.echo("Use --force to re-authenticate.")
            return

        auth.authenticate(account, force_reauth=force)

        email = auth.get_account_email(account)
        label = f"{account} ({email})" if email else account
        click.echo(click.style(f"Successfully authenticated {label}!", fg="green"))
        logger.info(f"Authentication completed for {account}")

    except ValueError as e:
        fail(str(e))

    except FileNotFoundError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        click.echo("\nTo get started:", err=True)
        click.echo("1. Go to https://console.cloud.google.com/", err=True)
        click.echo("2. Create a project and enable the People API", err=True)
        click.echo("3. Create OAuth 2.0 credentials (Desktop application)", err=True)
        click.echo(
            f"4. Download and save as: {config_dir / 'credentials.json'}", err=True
        )
        sys.exit(1)

    except AuthenticationError as e:
        logger.error(f"Authentication failed: {e}")
        click.echo(click.style(f"Authentication failed: {e}", fg="red"), err=True)
        sys.exit(1)


@cli.command("status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """Show configuration and contacts access status."""
    config = ctx.obj["config"]

    click.echo("=== contactkit status ===\n")
    click.echo(f"Configuration directory: {ctx.obj['config_dir']}")
    click.echo(f"Backend: {config['backend']}")

    try:
        if config["backend"] == "memory":
            click.echo(f"Snapshot: {_snapshot_path(ctx)}")
        else:
            auth = GoogleAuth(
                config_dir=ctx.obj["config_dir"], auth_timeout=config["auth_timeout"]
            )
            auth_status = auth.get_auth_status(config["account"])
            creds_status = (
                "Found"
                if auth_status["credentials_exist"]
                else click.style("Not found", fg="red")
            )
            click.echo(f"OAuth credentials: {creds_status}")
            click.echo(f"Account: {auth_status['email'] or config['account']}")
            click.echo(f"Removal channel: {config['removal_channel']}")

        status = build_client(ctx).authorization_status()
    except (ContactsError, ValueError) as e:
        fail(str(e))

    color = "green" if status.value == "authorized" else "yellow"
    click.echo(f"Access: {click.style(status.value, fg=color)}")


# =============================================================================
# Find / Get Commands
# =============================================================================


@cli.command("find")
@click.option("--name", default="", help="Name contains (case/diacritic-insensitive).")
@click.option("--org", "organization", default="", help="Organization contains.")
@click.option("--email-domain", default="", help="Exact email domain, e.g. acme.com.")
@click.option("--note", default="", help="Note contains.")
@click.option("--group", "groups", multiple=True, help="Member of any of these groups.")
@click.option("--id", "ids", multiple=True, help="Restrict to these contact ids.")
@click.option(
    "--match",
    type=click.Choice([p.value for p in MatchPolicy]),
    default=MatchPolicy.ALL.value,
    show_default=True,
    help="Require all populated clauses or any of them.",
)
@click.option("--limit", type=int, default=0, help="Page size (default from config).")
@click.option("--cursor", default="", help="Cursor from a previous page.")
@click.option(
    "--sort",
    "sort_by",
    type=click.Choice([f.value for f in SortField]),
    default=SortField.GIVEN_NAME.value,
    show_default=True,
)
@click.option(
    "--order",
    type=click.Choice([o.value for o in SortOrder]),
    default=SortOrder.ASC.value,
    show_default=True,
)
@click.option("--meta", is_flag=True, help="Show display name and organization.")
@click.pass_context
def find_command(
    ctx: click.Context,
    name: str,
    organization: str,
    email_domain: str,
    note: str,
    groups: tuple[str, ...],
    ids: tuple[str, ...],
    match: str,
    limit: int,
    cursor: str,
    sort_by: str,
    order: str,
    meta: bool,
) -> None:
    """Select contacts matching a query, one ref per line."""
    request = FindInput(
        query=Query(
            name_contains=name,
            organization_contains=organization,
            email_domain=email_domain,
            note_contains=note,
            group_ids_any=list(groups),
            ids=list(ids),
            match=MatchPolicy(match),
        ),
        page=Page(limit=limit, cursor=cursor),
        sort=Sort(by=SortField(sort_by), order=SortOrder(order)),
        include_meta=meta,
    )
    try:
        output = build_client(ctx).find(request)
    except ContactsError as e:
        report_contacts_error(e)
        return
    show_find_output(output)


@cli.command("get")
@click.argument("ids", nargs=-1, required=True)
@click.option(
    "--field",
    "fields",
    multiple=True,
    type=click.Choice([f.value for f in Field]),
    help="Fields to hydrate (default: all).",
)
@click.pass_context
def get_command(ctx: click.Context, ids: tuple[str, ...], fields: tuple[str, ...]) -> None:
    """Hydrate contacts by id."""
    request = GetInput(
        refs=[Ref(id=contact_id) for contact_id in ids],
        fields=[Field(f) for f in fields],
    )
    try:
        output = build_client(ctx).get(request)
    except ContactsError as e:
        report_contacts_error(e)
        return
    show_get_output(output)


# =============================================================================
# Mutate / Upsert Commands
# =============================================================================


@cli.command("mutate")
@click.argument("ids", nargs=-1, required=True)
@click.option("--set-note", default=None, help="Replace the note.")
@click.option("--set-org", default=None, help="Replace the organization.")
@click.option("--set-job-title", default=None, help="Replace the job title.")
@click.option("--set-given-name", default=None, help="Replace the given name.")
@click.option("--set-family-name", default=None, help="Replace the family name.")
@click.option("--add-group", "add_groups", multiple=True, help="Add to group id.")
@click.option("--remove-group", "remove_groups", multiple=True, help="Remove from group id.")
@click.option("--delete", is_flag=True, help="Delete the contacts.")
@click.pass_context
def mutate_command(
    ctx: click.Context,
    ids: tuple[str, ...],
    set_note: str | None,
    set_org: str | None,
    set_job_title: str | None,
    set_given_name: str | None,
    set_family_name: str | None,
    add_groups: tuple[str, ...],
    remove_groups: tuple[str, ...],
    delete: bool,
) -> None:
    """Apply the same state transitions to every given contact."""
    ops: list[MutationOp] = []
    for op_type, value in (
        (MutationType.SET_NOTE, set_note),
        (MutationType.SET_ORGANIZATION, set_org),
        (MutationType.SET_JOB_TITLE, set_job_title),
        (MutationType.SET_GIVEN_NAME, set_given_name),
        (MutationType.SET_FAMILY_NAME, set_family_name),
    ):
        if value is not None:
            ops.append(MutationOp(op_type, value))
    ops.extend(MutationOp(MutationType.ADD_TO_GROUP, g) for g in add_groups)
    ops.extend(MutationOp(MutationType.REMOVE_FROM_GROUP, g) for g in remove_groups)
    if delete:
        ops.append(MutationOp(MutationType.DELETE))

    if not ops:
        fail("nothing to do; pass at least one --set-*, --add-group, --remove-group or --delete")

    try:
        output = build_client(ctx).mutate(
            MutateInput(refs=[Ref(id=contact_id) for contact_id in ids], ops=ops)
        )
        persist(ctx)
    except ContactsError as e:
        report_contacts_error(e)
        return

    if show_write_results(output.results):
        sys.exit(1)


def _labeled(entries: Any) -> list[LabeledValue] | None:
    if entries is None:
        return None
    values = []
    for entry in entries:
        if isinstance(entry, dict):
            values.append(
                LabeledValue(
                    value=str(entry.get("value", "")), label=str(entry.get("label", ""))
                )
            )
        else:
            values.append(LabeledValue(value=str(entry)))
    return values


_DRAFT_KEYS = (
    "container_id",
    "given_name",
    "family_name",
    "middle_name",
    "nickname",
    "organization",
    "job_title",
    "note",
)

_CHANGE_KEYS = (
    "given_name",
    "family_name",
    "middle_name",
    "nickname",
    "organization",
    "job_title",
    "note",
)


def parse_upsert_document(data: Any) -> UpsertInput:
    """
    Build an UpsertInput from a parsed YAML document.

    Expected shape::

        create:
          - given_name: Priya
            organization: Acme
            emails: [priya@acme.com]
            group_ids: [g1]
        patch:
          - id: c1
            note: "Call back in May"
            add_group_ids: [g2]

    Raises:
        click.BadParameter: when the document has the wrong shape
    """
    if data is None:
        return UpsertInput()
    if not isinstance(data, dict):
        raise click.BadParameter("upsert file must contain a YAML mapping")

    request = UpsertInput()
    for entry in data.get("create") or []:
        if not isinstance(entry, dict):
            raise click.BadParameter("each create entry must be a mapping")
        draft = ContactDraft(
            **{key: str(entry[key]) for key in _DRAFT_KEYS if entry.get(key) is not None}
        )
        draft.emails = _labeled(entry.get("emails")) or []
        draft.phones = _labeled(entry.get("phones")) or []
        draft.group_ids = [str(g) for g in entry.get("group_ids") or []]
        request.create.append(draft)

    for entry in data.get("patch") or []:
        if not isinstance(entry, dict):
            raise click.BadParameter("each patch entry must be a mapping")
        changes = ContactChanges(
            **{key: str(entry[key]) for key in _CHANGE_KEYS if entry.get(key) is not None}
        )
        changes.emails = _labeled(entry.get("emails"))
        changes.phones = _labeled(entry.get("phones"))
        changes.add_group_ids = [str(g) for g in entry.get("add_group_ids") or []]
        changes.remove_group_ids = [str(g) for g in entry.get("remove_group_ids") or []]
        request.patch.append(
            ContactPatch(ref=Ref(id=str(entry.get("id") or "")), changes=changes)
        )

    return request


@cli.command("upsert")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def upsert_command(ctx: click.Context, file: Path) -> None:
    """Create and patch contacts described in a YAML file."""
    try:
        with open(file, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        fail(f"cannot parse {file}: {e}")
        return

    request = parse_upsert_document(data)
    if not request.create and not request.patch:
        click.echo("Nothing to upsert.")
        return

    try:
        output = build_client(ctx).upsert(request)
        persist(ctx)
    except ContactsError as e:
        report_contacts_error(e)
        return

    if show_write_results(output.results):
        sys.exit(1)


# =============================================================================
# Groups Commands
# =============================================================================


def _run_groups(ctx: click.Context, request: GroupsInput) -> None:
    try:
        output = build_client(ctx).groups(request)
        if request.action != GroupsAction.LIST:
            persist(ctx)
    except ContactsError as e:
        report_contacts_error(e)
        return

    failed = show_group_results(output.results)
    if request.action == GroupsAction.LIST or ctx.obj.get("verbose"):
        show_groups(output.groups)
    if failed:
        sys.exit(1)


@cli.group("groups")
def groups_group() -> None:
    """List, create, rename and delete groups."""


@groups_group.command("list")
@click.pass_context
def groups_list_command(ctx: click.Context) -> None:
    """List every group."""
    _run_groups(ctx, GroupsInput(action=GroupsAction.LIST))


@groups_group.command("create")
@click.argument("name")
@click.option("--container", "container_id", default="", help="Container id.")
@click.pass_context
def groups_create_command(ctx: click.Context, name: str, container_id: str) -> None:
    """Create a group."""
    _run_groups(
        ctx,
        GroupsInput(action=GroupsAction.CREATE, name=name, container_id=container_id),
    )


@groups_group.command("rename")
@click.argument("group_id")
@click.argument("name")
@click.pass_context
def groups_rename_command(ctx: click.Context, group_id: str, name: str) -> None:
    """Rename a group."""
    _run_groups(
        ctx,
        GroupsInput(action=GroupsAction.RENAME, group=GroupRef(id=group_id), name=name),
    )


@groups_group.command("delete")
@click.argument("group_id")
@click.pass_context
def groups_delete_command(ctx: click.Context, group_id: str) -> None:
    """Delete a group (its contacts are kept)."""
    _run_groups(ctx, GroupsInput(action=GroupsAction.DELETE, group=GroupRef(id=group_id)))


# Module entry point (for python -m contactkit.cli)
if __name__ == "__main__":
    cli()
