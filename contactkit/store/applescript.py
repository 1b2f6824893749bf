"""
AppleScript removal channel for the macOS Contacts app.

Removes a person from a group by running a short script through
``osascript``. Three scripts are tried in order, each identifying the
membership less precisely than the last:

1. Group by id, person by id
2. Group by name, person by id
3. Group by name, person by first and/or last name

The first script that exits successfully wins. The channel does not
check that the removal persisted; MembershipReconciler verifies it.

When the ids come from another backend (People API resource names never
match Contacts app ids) the channel is built with names_only and only the
third script is tried.
"""

from __future__ import annotations

import logging
import subprocess

from contactkit.store.base import RemovalChannelError, RemovalTarget

OSASCRIPT = "osascript"

SCRIPT_TEMPLATE = """tell application "Contacts"
set targetGroup to {group_selector}
set targetPerson to {person_selector}
remove targetPerson from targetGroup
save
end tell
"""

logger = logging.getLogger(__name__)


def escape_applescript(value: str) -> str:
    """Escape a value for use inside an AppleScript string literal."""
    return (value or "").replace("\\", "\\\\").replace('"', '\\"')


def _quoted(value: str) -> str:
    return f'"{escape_applescript(value)}"'


def person_name_selector(given_name: str, family_name: str) -> str:
    """Build the person selector used by the name-based strategy."""
    if given_name and family_name:
        return (
            f"first person whose first name is {_quoted(given_name)} "
            f"and last name is {_quoted(family_name)}"
        )
    if given_name:
        return f"first person whose first name is {_quoted(given_name)}"
    return f"first person whose last name is {_quoted(family_name)}"


def removal_scripts(
    target: RemovalTarget, names_only: bool = False
) -> list[tuple[str, str]]:
    """
    Build the (strategy name, script) pairs applicable to a target.

    Strategies that lack the identifiers they need are skipped. With
    names_only the id-based strategies are skipped too, for ids that are
    not Contacts app ids (such as People API resource names).
    """
    scripts: list[tuple[str, str]] = []
    person_by_id = f"person id {_quoted(target.contact_id)}"

    if target.group_id and not names_only:
        scripts.append(
            (
                "group id",
                SCRIPT_TEMPLATE.format(
                    group_selector=f"first group whose id is {_quoted(target.group_id)}",
                    person_selector=person_by_id,
                ),
            )
        )

    if target.group_name:
        group_by_name = f"first group whose name is {_quoted(target.group_name)}"
        if not names_only:
            scripts.append(
                (
                    "group name",
                    SCRIPT_TEMPLATE.format(
                        group_selector=group_by_name, person_selector=person_by_id
                    ),
                )
            )
        if target.given_name or target.family_name:
            scripts.append(
                (
                    "group name and person name",
                    SCRIPT_TEMPLATE.format(
                        group_selector=group_by_name,
                        person_selector=person_name_selector(
                            target.given_name, target.family_name
                        ),
                    ),
                )
            )

    return scripts


class AppleScriptRemovalChannel:
    """
    Removal channel that drives the Contacts app through osascript.

    Attributes:
        timeout: Seconds to wait for each script; None waits indefinitely
        names_only: Skip the id-based scripts, matching by names alone

    Usage:
        channel = AppleScriptRemovalChannel(timeout=30)
        channel.remove_member(RemovalTarget(group_id="...", contact_id="..."))
    """

    def __init__(
        self,
        timeout: float | None = None,
        executable: str = OSASCRIPT,
        names_only: bool = False,
    ):
        self.timeout = timeout if timeout else None
        self.executable = executable
        self.names_only = names_only

    def _run_script(self, script: str) -> str | None:
        """
        Run one script. Returns None on success, else an error message.
        """
        try:
            result = subprocess.run(
                [self.executable, "-"],
                input=script,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            return f"{self.executable} not found"
        except subprocess.TimeoutExpired:
            return f"script timed out after {self.timeout}s"

        if result.returncode == 0:
            return None
        message = (result.stderr or "").strip()
        return message or f"AppleScript exited with code {result.returncode}"

    def remove_member(self, target: RemovalTarget) -> None:
        """
        Remove a person from a group, trying each strategy in order.

        Raises:
            RemovalChannelError: when the contact id is missing or every
                applicable strategy failed
        """
        if not target.contact_id:
            raise RemovalChannelError(
                f"AppleScript remove failed for group {target.group_id}: "
                "missing contact identifier"
            )

        last_error = "no removal strategy applies"
        for strategy, script in removal_scripts(target, names_only=self.names_only):
            logger.debug(
                f"Removing {target.contact_id} from {target.group_id} by {strategy}"
            )
            error = self._run_script(script)
            if error is None:
                return
            logger.debug(f"AppleScript strategy '{strategy}' failed: {error}")
            last_error = error

        raise RemovalChannelError(
            f"AppleScript remove failed for group {target.group_id}: {last_error}"
        )


__all__ = [
    "AppleScriptRemovalChannel",
    "escape_applescript",
    "person_name_selector",
    "removal_scripts",
]
