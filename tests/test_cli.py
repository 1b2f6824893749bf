"""
Tests for the CLI module.

Tests the command-line interface using Click's testing utilities against
the in-memory backend and a YAML snapshot in a temporary directory.
"""

from pathlib import Path

import click
import pytest
import yaml
from click.testing import CliRunner

from contactkit import __version__
from contactkit.cli import (
    DEFAULT_CONFIG_DIR,
    build_client,
    cli,
    get_config_dir,
    parse_upsert_document,
)
from contactkit.config.loader import with_defaults
from contactkit.store.applescript import AppleScriptRemovalChannel
from contactkit.store.people_api import PeopleAPIRemovalChannel

SNAPSHOT = {
    "contacts": [
        {
            "id": "c1",
            "given_name": "Priya",
            "family_name": "Raman",
            "organization": "Acme Corp",
            "emails": [{"value": "priya@acme.com", "label": "work"}],
        },
        {"id": "c2", "given_name": "Lena", "organization": "Globex"},
    ],
    "groups": [{"id": "g1", "name": "Friends", "members": ["c1"]}],
}


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_dir(tmp_path):
    config = {"backend": "memory", "log_dir": str(tmp_path / "logs")}
    (tmp_path / "config.yaml").write_text(yaml.safe_dump(config))
    (tmp_path / "contacts.yaml").write_text(yaml.safe_dump(SNAPSHOT))
    return tmp_path


def run(runner, config_dir, *args):
    return runner.invoke(cli, ["--config-dir", str(config_dir), *args])


def load_snapshot(config_dir):
    return yaml.safe_load((config_dir / "contacts.yaml").read_text())


class TestHelperFunctions:
    """Tests for CLI helper functions."""

    def test_default_config_dir_is_in_home(self):
        assert Path.home() / ".contactkit" == DEFAULT_CONFIG_DIR

    def test_get_config_dir_with_custom_path(self, tmp_path):
        assert get_config_dir(str(tmp_path)) == tmp_path.resolve()

    def test_parse_upsert_document(self):
        request = parse_upsert_document(
            {
                "create": [
                    {
                        "given_name": "Omar",
                        "emails": ["omar@example.com", {"value": "o@w.com", "label": "work"}],
                        "group_ids": ["g1"],
                    }
                ],
                "patch": [{"id": "c1", "note": "", "add_group_ids": ["g2"]}],
            }
        )

        draft = request.create[0]
        assert draft.given_name == "Omar"
        assert [e.value for e in draft.emails] == ["omar@example.com", "o@w.com"]
        assert draft.emails[1].label == "work"
        assert draft.group_ids == ["g1"]

        patch = request.patch[0]
        assert patch.ref.id == "c1"
        assert patch.changes.note == ""
        assert patch.changes.organization is None
        assert patch.changes.emails is None
        assert patch.changes.add_group_ids == ["g2"]

    def test_parse_upsert_document_empty(self):
        request = parse_upsert_document(None)
        assert request.create == [] and request.patch == []

    def test_build_client_applescript_with_google_matches_by_name(self, tmp_path):
        config = with_defaults({"backend": "google", "removal_channel": "applescript"})
        ctx = click.Context(cli, obj={"config": config, "config_dir": tmp_path})

        client = build_client(ctx)

        assert isinstance(client.removal_channel, AppleScriptRemovalChannel)
        assert client.removal_channel.names_only is True

    def test_build_client_google_default_channel(self, tmp_path):
        config = with_defaults({"backend": "google"})
        ctx = click.Context(cli, obj={"config": config, "config_dir": tmp_path})

        client = build_client(ctx)

        assert isinstance(client.removal_channel, PeopleAPIRemovalChannel)

    @pytest.mark.parametrize("data", [["a"], {"create": ["not a mapping"]}, {"patch": [1]}])
    def test_parse_upsert_document_bad_shape(self, data):
        with pytest.raises(click.BadParameter):
            parse_upsert_document(data)


class TestCLIBasics:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("auth", "status", "find", "get", "mutate", "upsert", "groups"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_invalid_config_warns(self, runner, tmp_path):
        (tmp_path / "config.yaml").write_text("backend: exchange\n")
        result = run(runner, tmp_path, "status")
        assert "Warning: Configuration error" in result.output
        assert "Backend: google" in result.output


class TestStatusCommand:
    def test_memory_backend(self, runner, config_dir):
        result = run(runner, config_dir, "status")

        assert result.exit_code == 0
        assert "=== contactkit status ===" in result.output
        assert "Backend: memory" in result.output
        assert "contacts.yaml" in result.output
        assert "Access: authorized" in result.output

    def test_google_backend_without_token(self, runner, tmp_path):
        (tmp_path / "config.yaml").write_text(
            yaml.safe_dump({"backend": "google", "log_dir": str(tmp_path / "logs")})
        )

        result = run(runner, tmp_path, "status")

        assert result.exit_code == 0
        assert "OAuth credentials: Not found" in result.output
        assert "Removal channel: people_api" in result.output
        assert "Access: not_determined" in result.output


class TestFindCommand:
    def test_find_by_organization(self, runner, config_dir):
        result = run(runner, config_dir, "find", "--org", "acme")
        assert result.exit_code == 0
        assert result.output.strip().splitlines() == ["c1"]

    def test_find_with_meta(self, runner, config_dir):
        result = run(runner, config_dir, "find", "--name", "PRIYA", "--meta")
        assert "c1  Priya Raman  [Acme Corp]" in result.output

    def test_find_all_sorted(self, runner, config_dir):
        result = run(runner, config_dir, "find")
        assert result.output.strip().splitlines() == ["c2", "c1"]

    def test_find_paginates(self, runner, config_dir):
        result = run(runner, config_dir, "find", "--limit", "1")

        assert result.output.splitlines()[0] == "c2"
        assert "Next cursor: 1" in result.output

        second = run(runner, config_dir, "find", "--limit", "1", "--cursor", "1")
        assert second.output.strip().splitlines() == ["c1"]

    def test_find_no_match(self, runner, config_dir):
        result = run(runner, config_dir, "find", "--email-domain", "nowhere.org")
        assert result.exit_code == 0
        assert "No contacts matched." in result.output

    def test_find_bad_cursor(self, runner, config_dir):
        result = run(runner, config_dir, "find", "--cursor", "abc")
        assert result.exit_code == 1
        assert "validation" in result.output

    def test_find_without_access_hints_auth(self, runner, tmp_path):
        (tmp_path / "config.yaml").write_text(
            yaml.safe_dump({"backend": "google", "log_dir": str(tmp_path / "logs")})
        )

        result = run(runner, tmp_path, "find")

        assert result.exit_code == 1
        assert "permission_denied" in result.output
        assert "contactkit auth" in result.output


class TestGetCommand:
    def test_get_hydrates(self, runner, config_dir):
        result = run(runner, config_dir, "get", "c1")

        assert result.exit_code == 0
        assert "Name: Priya Raman" in result.output
        assert "Email (work): priya@acme.com" in result.output
        assert "Groups: g1" in result.output

    def test_get_missing_ids_dropped(self, runner, config_dir):
        result = run(runner, config_dir, "get", "nope")
        assert "No contacts found." in result.output

    def test_get_selected_fields(self, runner, config_dir):
        result = run(runner, config_dir, "get", "c1", "--field", "names")
        assert "Name: Priya Raman" in result.output
        assert "Email" not in result.output


class TestMutateCommand:
    def test_add_to_group_persists(self, runner, config_dir):
        result = run(runner, config_dir, "mutate", "c2", "--add-group", "g1")

        assert result.exit_code == 0
        assert "c2: updated" in result.output
        groups = load_snapshot(config_dir)["groups"]
        assert groups[0]["members"] == ["c1", "c2"]

    def test_set_note(self, runner, config_dir):
        result = run(runner, config_dir, "mutate", "c1", "c2", "--set-note", "hello")

        assert result.exit_code == 0
        contacts = load_snapshot(config_dir)["contacts"]
        assert [c.get("note") for c in contacts] == ["hello", "hello"]

    def test_unknown_contact_fails(self, runner, config_dir):
        result = run(runner, config_dir, "mutate", "missing", "--set-note", "x")
        assert result.exit_code == 1
        assert "FAILED" in result.output

    def test_nothing_to_do(self, runner, config_dir):
        result = run(runner, config_dir, "mutate", "c1")
        assert result.exit_code == 1
        assert "nothing to do" in result.output

    def test_delete(self, runner, config_dir):
        result = run(runner, config_dir, "mutate", "c2", "--delete")
        assert result.exit_code == 0
        assert [c["id"] for c in load_snapshot(config_dir)["contacts"]] == ["c1"]


class TestUpsertCommand:
    def test_create_and_patch(self, runner, config_dir, tmp_path):
        changes = tmp_path / "changes.yaml"
        changes.write_text(
            yaml.safe_dump(
                {
                    "create": [{"given_name": "Omar", "group_ids": ["g1"]}],
                    "patch": [{"id": "c2", "organization": "Initech"}],
                }
            )
        )

        result = run(runner, config_dir, "upsert", str(changes))

        assert result.exit_code == 0
        assert "created" in result.output
        assert "c2: updated" in result.output
        snapshot = load_snapshot(config_dir)
        by_name = {c.get("given_name"): c for c in snapshot["contacts"]}
        assert by_name["Lena"]["organization"] == "Initech"
        assert by_name["Omar"]["id"] in snapshot["groups"][0]["members"]

    def test_empty_file(self, runner, config_dir, tmp_path):
        changes = tmp_path / "empty.yaml"
        changes.write_text("")
        result = run(runner, config_dir, "upsert", str(changes))
        assert result.exit_code == 0
        assert "Nothing to upsert." in result.output

    def test_bad_shape(self, runner, config_dir, tmp_path):
        changes = tmp_path / "bad.yaml"
        changes.write_text("- just a list\n")
        result = run(runner, config_dir, "upsert", str(changes))
        assert result.exit_code == 2

    def test_missing_file(self, runner, config_dir, tmp_path):
        result = run(runner, config_dir, "upsert", str(tmp_path / "nope.yaml"))
        assert result.exit_code == 2


class TestGroupsCommands:
    def test_list(self, runner, config_dir):
        result = run(runner, config_dir, "groups", "list")
        assert result.exit_code == 0
        assert "g1  Friends" in result.output

    def test_create(self, runner, config_dir):
        result = run(runner, config_dir, "groups", "create", "Book club")

        assert result.exit_code == 0
        assert "created" in result.output
        names = [g["name"] for g in load_snapshot(config_dir)["groups"]]
        assert names == ["Friends", "Book club"]

    def test_rename(self, runner, config_dir):
        result = run(runner, config_dir, "groups", "rename", "g1", "Pals")
        assert result.exit_code == 0
        assert load_snapshot(config_dir)["groups"][0]["name"] == "Pals"

    def test_delete_keeps_contacts(self, runner, config_dir):
        result = run(runner, config_dir, "groups", "delete", "g1")

        assert result.exit_code == 0
        snapshot = load_snapshot(config_dir)
        assert snapshot["groups"] == []
        assert len(snapshot["contacts"]) == 2

    def test_unknown_group_fails(self, runner, config_dir):
        result = run(runner, config_dir, "groups", "rename", "nope", "X")
        assert result.exit_code == 1
        assert "FAILED" in result.output
        assert "not_found" in result.output
