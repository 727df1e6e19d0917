"""Tests for CLI commands using Click's CliRunner."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from testsys.cli.main import cli

runner = CliRunner()

MANIFEST = """\
kind: Resource
metadata:
  name: db
spec:
  agent:
    name: duplicator
    configuration:
      info: postgres://db
---
kind: Test
metadata:
  name: t1
spec:
  resources: [db]
  agent:
    name: echo
    configuration:
      database: ${db.info}
"""


@pytest.fixture
def state_dir(tmp_path):
    return tmp_path / "state"


@pytest.fixture
def invoke(state_dir, registry):
    """Invoke the CLI against a temporary state directory and the builtin agents."""

    def _invoke(*args, **kwargs):
        with patch("testsys.cli.main._registry", registry):
            return runner.invoke(cli, ["--state-dir", str(state_dir), *args], **kwargs)

    return _invoke


@pytest.fixture
def manifest(tmp_path):
    path = tmp_path / "tests.yaml"
    path.write_text(MANIFEST)
    return path


class TestCLIBasic:
    """Tests for basic CLI functionality."""

    def test_version(self):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "testsys" in result.output
        assert "0.2.0" in result.output

    def test_help(self):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("add", "status", "delete", "restart-test", "controller", "agent"):
            assert command in result.output

    def test_invalid_config(self, invoke):
        result = invoke("status", env={"TESTSYS_REQUEUE_SECONDS": "soon"})
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output


class TestAddCommand:
    def test_add(self, invoke, manifest):
        result = invoke("add", str(manifest))
        assert result.exit_code == 0
        assert "Created Resource 'db'" in result.output
        assert "Created Test 't1'" in result.output

    def test_add_empty(self, invoke, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        result = invoke("add", str(path))
        assert result.exit_code == 0
        assert "No objects found in manifest." in result.output

    def test_add_invalid(self, invoke, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("kind: Pod\nmetadata:\n  name: x\n")
        result = invoke("add", str(path))
        assert result.exit_code == 1
        assert "Unknown object kind" in result.output

    def test_add_twice(self, invoke, manifest):
        invoke("add", str(manifest))
        result = invoke("add", str(manifest))
        assert result.exit_code == 1
        assert "already exists" in result.output


class TestStatusCommand:
    def test_empty(self, invoke):
        result = invoke("status")
        assert result.exit_code == 0
        assert "No objects found." in result.output

    def test_table(self, invoke, manifest):
        invoke("add", str(manifest))
        result = invoke("status")
        assert result.exit_code == 0
        assert "NAME" in result.output
        assert "db" in result.output
        assert "t1" in result.output
        assert "Finished: no" in result.output

    def test_json(self, invoke, manifest):
        invoke("add", str(manifest))
        result = invoke("status", "--format", "json", "--kind", "test")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["finished"] is False
        assert [row["name"] for row in data["rows"]] == ["t1"]

    def test_invalid_labels(self, invoke):
        result = invoke("status", "--labels", "nope")
        assert result.exit_code == 2
        assert "Invalid label selector" in result.output


class TestDeleteCommand:
    def test_requires_selection(self, invoke):
        result = invoke("delete")
        assert result.exit_code == 2
        assert "Select objects to delete, or pass --all" in result.output

    def test_delete_all(self, invoke, manifest):
        invoke("add", str(manifest))
        result = invoke("delete", "--all")
        assert result.exit_code == 0
        assert result.output.index("Starting Test 't1'") < result.output.index(
            "Starting Resource 'db'"
        )
        assert "Deletion complete." in result.output
        assert "No objects found." in invoke("status").output

    def test_delete_by_name_keeps_dependencies(self, invoke, manifest):
        invoke("add", str(manifest))
        result = invoke("delete", "--name", "t1")
        assert result.exit_code == 0
        assert "Resource 'db'" not in result.output
        assert "db" in invoke("status").output

    def test_force(self, invoke, manifest):
        invoke("add", str(manifest))
        result = invoke("delete", "--kind", "resource", "--force", "--yes")
        assert result.exit_code == 0
        assert "Removed Resource 'db'" in result.output

    def test_force_aborted(self, invoke, manifest):
        invoke("add", str(manifest))
        result = invoke("delete", "--all", "--force", input="n\n")
        assert "Aborted." in result.output
        assert "db" in invoke("status").output


class TestRestartCommand:
    def test_restart(self, invoke, manifest):
        invoke("add", str(manifest))
        result = invoke("restart-test", "t1")
        assert result.exit_code == 0
        assert "Test 't1' restarted." in result.output

    def test_restart_missing(self, invoke):
        result = invoke("restart-test", "nope")
        assert result.exit_code == 1
        assert "does not exist" in result.output


class TestAgentCommands:
    def test_list(self, invoke):
        result = invoke("agent", "list")
        assert result.exit_code == 0
        assert "Installed agents:" in result.output
        assert "duplicator (resource)" in result.output
        assert "echo (test)" in result.output


class TestControllerCommand:
    def test_once_until_passed(self, invoke, manifest):
        invoke("add", str(manifest))
        for _ in range(30):
            result = invoke("controller", "--once")
            assert result.exit_code == 0
            assert "Reconciled 2 objects." in result.output
            data = json.loads(invoke("status", "--format", "json").output)
            if data["finished"]:
                break
        assert data["passed"] is True
        assert data["failed_tests"] == []
