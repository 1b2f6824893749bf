"""CLI output formatting functions.

This module contains functions for displaying find pages, hydrated items,
write results and the group catalog on the command line.
"""

from __future__ import annotations

import click

from contactkit.core.models import (
    FindOutput,
    GetOutput,
    Group,
    GroupResult,
    Item,
    WriteResult,
)


def show_find_output(output: FindOutput) -> None:
    """
    Display a page of Find results.

    Prints one line per ref; with metadata the display name and
    organization follow the id.
    """
    meta_by_id = {meta.ref.id: meta for meta in output.meta}
    for ref in output.refs:
        meta = meta_by_id.get(ref.id)
        if meta is None:
            click.echo(ref.id)
            continue
        line = f"{ref.id}  {meta.display_name or '(no name)'}"
        if meta.organization and meta.organization != meta.display_name:
            line += f"  [{meta.organization}]"
        click.echo(line)

    if not output.refs:
        click.echo("No contacts matched.")
    if output.next_cursor:
        click.echo(click.style(f"Next cursor: {output.next_cursor}", fg="cyan"))


def _item_name(item: Item) -> str:
    parts = [item.given_name, item.middle_name, item.family_name]
    name = " ".join(p for p in parts if p)
    if item.nickname:
        name = f"{name} ({item.nickname})" if name else item.nickname
    return name


def show_item(item: Item) -> None:
    """Display one hydrated contact, skipping empty fields."""
    click.echo(click.style(item.ref.id, bold=True))

    name = _item_name(item)
    if name:
        click.echo(f"  Name: {name}")
    if item.organization or item.job_title:
        org = ", ".join(p for p in (item.job_title, item.organization) if p)
        click.echo(f"  Organization: {org}")
    for email in item.emails:
        click.echo(f"  Email ({email.label or 'other'}): {email.value}")
    for phone in item.phones:
        click.echo(f"  Phone ({phone.label or 'other'}): {phone.value}")
    if item.note:
        click.echo(f"  Note: {item.note}")
    if item.group_ids:
        click.echo(f"  Groups: {', '.join(item.group_ids)}")
    if item.modified_at:
        click.echo(f"  Modified: {item.modified_at.isoformat()}")


def show_get_output(output: GetOutput) -> None:
    if not output.items:
        click.echo("No contacts found.")
        return
    for item in output.items:
        show_item(item)


def _status(succeeded: bool, created: bool, updated: bool) -> str:
    if not succeeded:
        return click.style("FAILED", fg="red")
    if created:
        return click.style("created", fg="green")
    if updated:
        return click.style("updated", fg="green")
    return "unchanged"


def show_write_results(results: list[WriteResult]) -> int:
    """
    Display one line per write result.

    Returns:
        Number of failed results
    """
    failed = 0
    for result in results:
        line = f"{result.ref.id or '<new>'}: " + _status(
            result.succeeded, result.created, result.updated
        )
        if result.err is not None:
            failed += 1
            line += f" ({result.err})"
        click.echo(line)
    return failed


def show_group_results(results: list[GroupResult]) -> int:
    """Display one line per group result. Returns the number of failures."""
    failed = 0
    for result in results:
        line = f"{result.group.id or '<new>'}: " + _status(
            result.succeeded, result.created, result.updated
        )
        if result.err is not None:
            failed += 1
            line += f" ({result.err})"
        click.echo(line)
    return failed


def show_groups(groups: list[Group]) -> None:
    if not groups:
        click.echo("No groups.")
        return
    for group in groups:
        click.echo(f"{group.ref.id}  {group.name}")
