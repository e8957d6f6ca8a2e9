"""Configuration loading from environment variables and the project config file."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from scopecraft.errors import ConfigurationError
from scopecraft.paths import resolver
from scopecraft.paths.context import ProjectRoots, build_project_roots
from scopecraft.storage.models import WorkflowState

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILE = "project.yaml"

DEFAULT_WORKFLOW_FOLDERS = {state.value: state.value for state in WorkflowState}

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _env_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


@dataclass
class Config:
    project_root: Path = field(default_factory=lambda: Path.cwd())
    user_home: Path | None = None
    standalone: bool = False
    log_level: str = "WARNING"
    auto_workflow_transitions: bool | None = None
    auto_status_update: bool | None = None

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if root := os.environ.get("SCOPECRAFT_PROJECT_ROOT"):
            config.project_root = Path(root)

        if home := os.environ.get("SCOPECRAFT_HOME"):
            config.user_home = Path(home)

        if standalone := os.environ.get("SCOPECRAFT_STANDALONE"):
            config.standalone = _env_bool("SCOPECRAFT_STANDALONE", standalone)

        if level := os.environ.get("SCOPECRAFT_LOG_LEVEL"):
            config.log_level = level.upper()

        if auto_workflow := os.environ.get("SCOPECRAFT_AUTO_WORKFLOW"):
            config.auto_workflow_transitions = _env_bool("SCOPECRAFT_AUTO_WORKFLOW", auto_workflow)

        if auto_status := os.environ.get("SCOPECRAFT_AUTO_STATUS"):
            config.auto_status_update = _env_bool("SCOPECRAFT_AUTO_STATUS", auto_status)

        return config

    def project_roots(self) -> ProjectRoots:
        return build_project_roots(self.project_root, self.user_home, standalone=self.standalone)


def get_config() -> Config:
    return Config.from_env()


@dataclass
class TaskConfig:
    """Workflow settings threaded through every task operation."""

    workflow_folders: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_WORKFLOW_FOLDERS))
    default_workflow_state: WorkflowState = WorkflowState.BACKLOG
    auto_status_update: bool = False
    auto_workflow_transitions: bool = False
    templates_dir: Path | None = None

    def folder_name(self, state: WorkflowState | str) -> str:
        state = WorkflowState(state)
        return self.workflow_folders.get(state.value, state.value)

    def state_for_folder(self, folder: str) -> WorkflowState | None:
        for state in WorkflowState:
            if self.folder_name(state) == folder:
                return state
        return None

    @classmethod
    def from_mapping(cls, data: dict[str, Any], templates_dir: Path | None = None) -> "TaskConfig":
        """Build from a parsed config file, accepting snake_case or camelCase keys."""
        config = cls(templates_dir=templates_dir)

        folders = data.get("workflow_folders", data.get("workflowFolders")) or {}
        if not isinstance(folders, dict):
            raise ConfigurationError("workflow_folders must be a mapping")
        for state_name, folder in folders.items():
            try:
                state = WorkflowState(state_name)
            except ValueError:
                raise ConfigurationError(f"Unknown workflow state in workflow_folders: {state_name}") from None
            if not isinstance(folder, str) or not folder or "/" in folder:
                raise ConfigurationError(f"Invalid folder name for {state.value}: {folder!r}")
            config.workflow_folders[state.value] = folder

        if default_state := data.get("default_workflow_state", data.get("defaultWorkflowState")):
            try:
                config.default_workflow_state = WorkflowState(default_state)
            except ValueError:
                raise ConfigurationError(f"Unknown default workflow state: {default_state}") from None

        for key, camel in (
            ("auto_status_update", "autoStatusUpdate"),
            ("auto_workflow_transitions", "autoWorkflowTransitions"),
        ):
            value = data.get(key, data.get(camel))
            if value is None:
                continue
            if not isinstance(value, bool):
                raise ConfigurationError(f"{key} must be true or false")
            setattr(config, key, value)

        return config

    def to_mapping(self) -> dict[str, Any]:
        return {
            "workflow_folders": dict(self.workflow_folders),
            "default_workflow_state": self.default_workflow_state.value,
            "auto_status_update": self.auto_status_update,
            "auto_workflow_transitions": self.auto_workflow_transitions,
        }


def read_project_config(path: Path) -> dict[str, Any]:
    """Read a project.yaml file. A missing file reads as empty."""
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read project config {path}: {e}", path=str(path)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Project config {path} must be a mapping", path=str(path))
    return data


def load_task_config(roots: ProjectRoots, config: Config | None = None) -> TaskConfig:
    """Load workflow settings for a project, applying environment overrides."""
    config_path = resolver.get_config_path(roots) / PROJECT_CONFIG_FILE
    task_config = TaskConfig.from_mapping(
        read_project_config(config_path),
        templates_dir=resolver.get_templates_path(roots),
    )

    if config is not None:
        if config.auto_workflow_transitions is not None:
            task_config.auto_workflow_transitions = config.auto_workflow_transitions
        if config.auto_status_update is not None:
            task_config.auto_status_update = config.auto_status_update

    logger.debug("Loaded task config from %s", config_path)
    return task_config
