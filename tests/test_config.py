"""Tests for environment and project-file configuration."""

import tempfile
from pathlib import Path

import pytest
import yaml

from scopecraft.config import PROJECT_CONFIG_FILE, Config, TaskConfig, load_task_config, read_project_config
from scopecraft.errors import ConfigurationError
from scopecraft.paths import resolver
from scopecraft.paths.context import ProjectRoots
from scopecraft.storage.models import WorkflowState

ENV_VARS = (
    "SCOPECRAFT_PROJECT_ROOT",
    "SCOPECRAFT_HOME",
    "SCOPECRAFT_STANDALONE",
    "SCOPECRAFT_LOG_LEVEL",
    "SCOPECRAFT_AUTO_WORKFLOW",
    "SCOPECRAFT_AUTO_STATUS",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def roots():
    with tempfile.TemporaryDirectory() as d:
        base = Path(d).resolve()
        project = base / "project"
        project.mkdir()
        yield ProjectRoots(execution_root=project, main_repo_root=project, user_home=base / "home")


class TestConfigFromEnv:
    def test_defaults(self, clean_env):
        config = Config.from_env()
        assert config.project_root == Path.cwd()
        assert config.user_home is None
        assert config.standalone is False
        assert config.log_level == "WARNING"
        assert config.auto_workflow_transitions is None

    def test_reads_environment(self, clean_env):
        clean_env.setenv("SCOPECRAFT_PROJECT_ROOT", "/srv/project")
        clean_env.setenv("SCOPECRAFT_HOME", "/srv/home")
        clean_env.setenv("SCOPECRAFT_STANDALONE", "yes")
        clean_env.setenv("SCOPECRAFT_LOG_LEVEL", "debug")
        clean_env.setenv("SCOPECRAFT_AUTO_WORKFLOW", "true")
        clean_env.setenv("SCOPECRAFT_AUTO_STATUS", "0")

        config = Config.from_env()
        assert config.project_root == Path("/srv/project")
        assert config.user_home == Path("/srv/home")
        assert config.standalone is True
        assert config.log_level == "DEBUG"
        assert config.auto_workflow_transitions is True
        assert config.auto_status_update is False

    def test_bad_boolean(self, clean_env):
        clean_env.setenv("SCOPECRAFT_STANDALONE", "sometimes")
        with pytest.raises(ConfigurationError):
            Config.from_env()


class TestTaskConfig:
    def test_defaults(self):
        config = TaskConfig()
        assert config.folder_name(WorkflowState.ARCHIVE) == "archive"
        assert config.default_workflow_state == WorkflowState.BACKLOG
        assert not config.auto_workflow_transitions
        assert not config.auto_status_update

    def test_camel_case_keys(self):
        config = TaskConfig.from_mapping(
            {
                "workflowFolders": {"backlog": "todo"},
                "defaultWorkflowState": "current",
                "autoWorkflowTransitions": True,
            }
        )
        assert config.folder_name("backlog") == "todo"
        assert config.default_workflow_state == WorkflowState.CURRENT
        assert config.auto_workflow_transitions is True

    @pytest.mark.parametrize(
        "data",
        [
            {"workflow_folders": ["backlog"]},
            {"workflow_folders": {"someday": "later"}},
            {"workflow_folders": {"current": "a/b"}},
            {"default_workflow_state": "done"},
            {"auto_status_update": "yes"},
        ],
    )
    def test_rejects_bad_values(self, data):
        with pytest.raises(ConfigurationError):
            TaskConfig.from_mapping(data)

    def test_mapping_round_trip(self):
        config = TaskConfig.from_mapping({"workflow_folders": {"current": "doing"}, "auto_status_update": True})
        assert TaskConfig.from_mapping(config.to_mapping()) == config


class TestProjectFile:
    def test_missing_file_reads_empty(self, roots):
        assert read_project_config(roots.execution_root / "nope.yaml") == {}

    def test_non_mapping(self, roots):
        path = roots.execution_root / PROJECT_CONFIG_FILE
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            read_project_config(path)

    def test_load_from_centralized_config(self, roots):
        config_dir = resolver.primary_path("config", roots)
        config_dir.mkdir(parents=True)
        (config_dir / PROJECT_CONFIG_FILE).write_text(
            yaml.safe_dump({"workflow_folders": {"current": "doing"}, "auto_status_update": True})
        )

        task_config = load_task_config(roots)
        assert task_config.folder_name("current") == "doing"
        assert task_config.auto_status_update is True
        assert task_config.templates_dir == resolver.get_templates_path(roots)

    def test_environment_overrides_file(self, roots):
        config_dir = resolver.primary_path("config", roots)
        config_dir.mkdir(parents=True)
        (config_dir / PROJECT_CONFIG_FILE).write_text("auto_workflow_transitions: true\n")

        overrides = Config(project_root=roots.execution_root, auto_workflow_transitions=False)
        assert load_task_config(roots, overrides).auto_workflow_transitions is False

    def test_no_config_anywhere(self, roots):
        assert load_task_config(roots) == TaskConfig(templates_dir=resolver.get_templates_path(roots))
