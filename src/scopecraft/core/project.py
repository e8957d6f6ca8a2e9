"""Project initialization and resolved-path reporting."""

import logging
from pathlib import Path

import yaml

from scopecraft.config import PROJECT_CONFIG_FILE, TaskConfig
from scopecraft.core.templates import initialize_templates
from scopecraft.paths import resolver
from scopecraft.paths.context import ProjectRoots
from scopecraft.paths.resolver import PathType
from scopecraft.storage.layout import ensure_workflow_directories, write_text_atomic

logger = logging.getLogger(__name__)


def init_project(roots: ProjectRoots, config: TaskConfig | None = None) -> dict[str, list[Path]]:
    """Create the storage layout for a project. Safe to run repeatedly."""
    config = config or TaskConfig()
    created: dict[str, list[Path]] = {"directories": [], "files": []}

    tasks_root = resolver.get_tasks_path(roots)
    for path in (tasks_root, resolver.get_sessions_path(roots), resolver.primary_path(PathType.CONFIG, roots)):
        if not path.is_dir():
            path.mkdir(parents=True, exist_ok=True)
            created["directories"].append(path)
    created["directories"].extend(ensure_workflow_directories(tasks_root, config))

    config_file = resolver.get_config_path(roots) / PROJECT_CONFIG_FILE
    if not config_file.exists():
        write_text_atomic(config_file, yaml.safe_dump(config.to_mapping(), sort_keys=False))
        created["files"].append(config_file)

    modes_dir = resolver.primary_path(PathType.MODES, roots)
    if not modes_dir.is_dir():
        modes_dir.mkdir(parents=True, exist_ok=True)
        created["directories"].append(modes_dir)

    templates_dir = resolver.primary_path(PathType.TEMPLATES, roots)
    created["files"].extend(initialize_templates(templates_dir))

    logger.info("Initialized project at %s (tasks in %s)", roots.main_repo_root, tasks_root)
    return created


def describe_paths(roots: ProjectRoots) -> dict[str, dict]:
    report = {}
    for path_type in PathType:
        candidates = resolver.resolve_with_precedence(path_type, roots)
        report[path_type.value] = {
            "resolved": str(resolver.resolve(path_type, roots)),
            "candidates": [{"path": str(p), "exists": p.is_dir()} for p in candidates],
        }
    return report
