"""Tests for the CLI."""

import json
import os
import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from scopecraft.cli import main
from scopecraft.paths import resolver
from scopecraft.paths.context import build_project_roots


@pytest.fixture
def cli_env():
    """Set up a temp project and home directory for CLI testing."""
    with tempfile.TemporaryDirectory() as tmp:
        project_path = Path(tmp).resolve() / "project"
        project_path.mkdir()
        home_path = Path(tmp).resolve() / "home"

        env = {
            "SCOPECRAFT_PROJECT_ROOT": str(project_path),
            "SCOPECRAFT_HOME": str(home_path),
            "SCOPECRAFT_STANDALONE": "1",
            "SCOPECRAFT_LOG_LEVEL": None,
            "SCOPECRAFT_AUTO_WORKFLOW": None,
            "SCOPECRAFT_AUTO_STATUS": None,
        }
        old_env = {}
        for k, v in env.items():
            old_env[k] = os.environ.get(k)
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v

        roots = build_project_roots(project_path, home_path, standalone=True)
        yield CliRunner(), roots

        for k, v in old_env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


def _created_id(output: str, prefix: str = "Created task: ") -> str:
    for line in output.splitlines():
        if line.startswith(prefix):
            return line[len(prefix):].strip()
    raise AssertionError(f"no {prefix!r} line in output:\n{output}")


class TestCLI:
    def test_help(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Scopecraft" in result.output

    def test_init(self, cli_env):
        runner, roots = cli_env
        result = runner.invoke(main, ["init"])
        assert result.exit_code == 0
        assert "Project initialized" in result.output

        tasks_root = resolver.get_tasks_path(roots)
        for folder in ("backlog", "current", "archive"):
            assert (tasks_root / folder).is_dir()
        assert (resolver.get_config_path(roots) / "project.yaml").is_file()
        assert (roots.execution_root / ".tasks" / ".templates" / "01_feature.md").is_file()

        # Running again creates nothing new
        again = runner.invoke(main, ["init"])
        assert again.exit_code == 0
        assert "Created" not in again.output

    def test_paths_json(self, cli_env):
        runner, roots = cli_env
        result = runner.invoke(main, ["paths", "--json"])
        assert result.exit_code == 0
        report = json.loads(result.output)
        assert set(report) == {"tasks", "templates", "modes", "sessions", "config"}
        assert report["tasks"]["resolved"] == str(resolver.get_tasks_path(roots))

    def test_task_lifecycle(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, ["init"])

        result = runner.invoke(
            main, ["task", "create", "Implement OAuth Login", "--area", "auth", "--tag", "backend", "-p", "high"]
        )
        assert result.exit_code == 0
        task_id = _created_id(result.output)
        assert task_id.startswith("implement-oauth-login-")
        assert "Status: To Do" in result.output

        result = runner.invoke(main, ["task", "list"])
        assert result.exit_code == 0
        assert "backlog:" in result.output
        assert task_id in result.output

        result = runner.invoke(main, ["task", "show", task_id])
        assert result.exit_code == 0
        assert "Title: Implement OAuth Login" in result.output
        assert "Tags: backend" in result.output

        result = runner.invoke(main, ["task", "update", task_id, "--status", "blocked"])
        assert result.exit_code == 0
        assert "Status: Blocked" in result.output
        assert "Workflow: backlog" in result.output

        result = runner.invoke(main, ["task", "log", task_id, "Waiting on provider keys"])
        assert result.exit_code == 0

        result = runner.invoke(main, ["task", "start", task_id])
        assert result.exit_code == 0
        assert "Started task" in result.output
        assert "/current/" in result.output

        result = runner.invoke(main, ["task", "complete", task_id])
        assert result.exit_code == 0
        assert "Completed task" in result.output

        result = runner.invoke(main, ["task", "list", "--workflow", "archive", "--json"])
        assert result.exit_code == 0
        listed = json.loads(result.output)
        assert [t["id"] for t in listed] == [task_id]
        assert listed[0]["status"] == "Done"
        assert listed[0]["workflow_state"] == "archive"

        result = runner.invoke(main, ["task", "show", task_id, "--json"])
        assert "Waiting on provider keys" in json.loads(result.output)["sections"]["log"]

    def test_auto_workflow_from_environment(self, cli_env, monkeypatch):
        runner, _ = cli_env
        monkeypatch.setenv("SCOPECRAFT_AUTO_WORKFLOW", "true")
        task_id = _created_id(runner.invoke(main, ["task", "create", "Pick me up"]).output)

        result = runner.invoke(main, ["task", "update", task_id, "--status", "In Progress"])
        assert result.exit_code == 0
        assert "Workflow: current" in result.output

    def test_move(self, cli_env):
        runner, _ = cli_env
        task_id = _created_id(runner.invoke(main, ["task", "create", "Shelve me"]).output)
        result = runner.invoke(main, ["task", "move", task_id, "archive", "--archive-date", "2025-01"])
        assert result.exit_code == 0
        assert f"Moved {task_id} to archive" in result.output
        assert "2025-01" in result.output

    def test_create_invalid_type(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["task", "create", "Bad", "--type", "epic"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_show_missing(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["task", "show", "nope-0101-AB"])
        assert result.exit_code == 1
        assert "Task not found" in result.output

    def test_update_nothing(self, cli_env):
        runner, _ = cli_env
        task_id = _created_id(runner.invoke(main, ["task", "create", "Idle"]).output)
        result = runner.invoke(main, ["task", "update", task_id])
        assert result.exit_code == 1
        assert "Nothing to update" in result.output

    def test_bad_environment(self, cli_env, monkeypatch):
        runner, _ = cli_env
        monkeypatch.setenv("SCOPECRAFT_STANDALONE", "maybe")
        result = runner.invoke(main, ["task", "list"])
        assert result.exit_code == 1
        assert "SCOPECRAFT_STANDALONE" in result.output


class TestParentCLI:
    def test_parent_flow(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(
            main, ["parent", "create", "Checkout Redesign", "--subtask", "Design", "--subtask", "Build"]
        )
        assert result.exit_code == 0
        parent_id = _created_id(result.output, "Created parent task: ")

        result = runner.invoke(main, ["parent", "add-subtask", parent_id, "Test"])
        assert result.exit_code == 0
        assert "Sequence: 03" in result.output
        test_id = _created_id(result.output, "Created subtask: ")

        result = runner.invoke(main, ["parent", "show", parent_id, "--json"])
        data = json.loads(result.output)
        assert [s["title"] for s in data["subtasks"]] == ["Design", "Build", "Test"]
        build_id = data["subtasks"][1]["id"]

        result = runner.invoke(main, ["parent", "parallelize", parent_id, build_id, test_id])
        assert result.exit_code == 0

        result = runner.invoke(main, ["parent", "show", parent_id])
        assert "parallel with" in result.output

        result = runner.invoke(main, ["task", "list"])
        assert "[parent]" in result.output
        assert "Design" in result.output

    def test_resequence(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["parent", "create", "Epic", "--subtask", "First", "--subtask", "Second"])
        parent_id = _created_id(result.output, "Created parent task: ")
        subtasks = json.loads(runner.invoke(main, ["parent", "show", parent_id, "--json"]).output)["subtasks"]

        result = runner.invoke(
            main,
            ["parent", "resequence", parent_id, f"{subtasks[0]['id']}=02", f"{subtasks[1]['id']}=01"],
        )
        assert result.exit_code == 0
        lines = result.output.strip().splitlines()
        assert lines[0].strip().startswith("01 ") and lines[0].endswith("Second")

        result = runner.invoke(main, ["parent", "resequence", parent_id, "no-equals-sign"])
        assert result.exit_code == 1

    def test_delete_parent_needs_cascade(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["parent", "create", "Epic", "--subtask", "Only"])
        parent_id = _created_id(result.output, "Created parent task: ")

        result = runner.invoke(main, ["task", "delete", parent_id])
        assert result.exit_code == 1
        assert "cascade" in result.output

        result = runner.invoke(main, ["task", "delete", parent_id, "--cascade"])
        assert result.exit_code == 0
        assert f"Deleted task: {parent_id}" in result.output

    def test_promote(self, cli_env):
        runner, _ = cli_env
        task_id = _created_id(runner.invoke(main, ["task", "create", "Grew Too Big"]).output)
        result = runner.invoke(main, ["task", "promote", task_id, "--subtask", "Split it"])
        assert result.exit_code == 0
        assert f"01 01_{task_id}" in result.output
        assert "Split it" in result.output


class TestTemplateCLI:
    def test_template_init_and_list(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["template", "list"])
        assert "No templates found" in result.output

        result = runner.invoke(main, ["template", "init"])
        assert result.exit_code == 0
        assert "Created 6 templates" in result.output

        result = runner.invoke(main, ["template", "list"])
        assert "bug: Bug (02_bug.md)" in result.output

        result = runner.invoke(main, ["task", "create", "Crash on save", "--type", "bug", "--template", "bug"])
        task_id = _created_id(result.output)
        show = runner.invoke(main, ["task", "show", task_id])
        assert "Fix the bug: Crash on save" in show.output
