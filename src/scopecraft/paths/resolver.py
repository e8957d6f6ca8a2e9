"""Resolve logical artifact locations across repo, centralized and global layouts."""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable

from scopecraft.errors import ConfigurationError
from scopecraft.paths.context import ProjectRoots
from scopecraft.paths.encoder import encode

logger = logging.getLogger(__name__)

APP_DIR = ".scopecraft"

Strategy = Callable[[ProjectRoots], Path]


class PathType(str, Enum):
    TASKS = "tasks"
    TEMPLATES = "templates"
    MODES = "modes"
    SESSIONS = "sessions"
    CONFIG = "config"


# ── Strategies ────────────────────────────────────────────────────────────────


def repo_strategy(roots: ProjectRoots) -> Path:
    return roots.execution_root / ".tasks"


def repo_templates_strategy(roots: ProjectRoots) -> Path:
    return repo_strategy(roots) / ".templates"


def repo_modes_strategy(roots: ProjectRoots) -> Path:
    return repo_strategy(roots) / ".modes"


def centralized_strategy(roots: ProjectRoots) -> Path:
    """Per-project store keyed by the main repository, shared by all worktrees."""
    return roots.user_home / APP_DIR / "projects" / encode(roots.main_repo_root)


def centralized_tasks_strategy(roots: ProjectRoots) -> Path:
    return centralized_strategy(roots) / "tasks"


def centralized_sessions_strategy(roots: ProjectRoots) -> Path:
    return centralized_strategy(roots) / "sessions"


def centralized_config_strategy(roots: ProjectRoots) -> Path:
    return centralized_strategy(roots) / "config"


def global_user_strategy(roots: ProjectRoots) -> Path:
    return roots.user_home / APP_DIR


def global_templates_strategy(roots: ProjectRoots) -> Path:
    return global_user_strategy(roots) / "templates"


def local_override_strategy(roots: ProjectRoots) -> Path:
    return roots.execution_root / ".local" / ".tasks"


PATH_STRATEGIES: dict[PathType, list[Strategy]] = {
    PathType.TASKS: [centralized_tasks_strategy],
    PathType.SESSIONS: [centralized_sessions_strategy],
    PathType.TEMPLATES: [repo_templates_strategy, global_templates_strategy],
    PathType.MODES: [repo_modes_strategy],
    PathType.CONFIG: [centralized_config_strategy, repo_strategy],
}


# ── Resolution ────────────────────────────────────────────────────────────────


def _strategies(path_type: PathType | str) -> list[Strategy]:
    try:
        return PATH_STRATEGIES[PathType(path_type)]
    except (KeyError, ValueError):
        raise ConfigurationError(f"Unknown path type: {path_type}") from None


def resolve_with_precedence(path_type: PathType | str, roots: ProjectRoots) -> list[Path]:
    """All candidate paths for a type, highest precedence first."""
    return [strategy(roots) for strategy in _strategies(path_type)]


def primary_path(path_type: PathType | str, roots: ProjectRoots) -> Path:
    return _strategies(path_type)[0](roots)


def resolve(path_type: PathType | str, roots: ProjectRoots) -> Path:
    """Return the first existing candidate, or the primary path so callers can create it."""
    candidates = resolve_with_precedence(path_type, roots)
    for candidate in candidates:
        if candidate.is_dir():
            return candidate
    logger.debug("No %s directory exists yet, defaulting to %s", PathType(path_type).value, candidates[0])
    return candidates[0]


def get_tasks_path(roots: ProjectRoots) -> Path:
    return resolve(PathType.TASKS, roots)


def get_templates_path(roots: ProjectRoots) -> Path:
    return resolve(PathType.TEMPLATES, roots)


def get_modes_path(roots: ProjectRoots) -> Path:
    return resolve(PathType.MODES, roots)


def get_sessions_path(roots: ProjectRoots) -> Path:
    return resolve(PathType.SESSIONS, roots)


def get_config_path(roots: ProjectRoots) -> Path:
    return resolve(PathType.CONFIG, roots)


def find_mode_files(roots: ProjectRoots, name: str) -> list[str]:
    """Find `{name}.md` mode prompts, specialized variants before base.md."""
    modes_dir = get_modes_path(roots)
    if not modes_dir.is_dir():
        return []

    matches = [p for p in modes_dir.rglob(f"{name}.md") if p.is_file()]
    matches.sort(key=lambda p: (p.name == "base.md", p.as_posix()))
    return [p.relative_to(modes_dir).as_posix() for p in matches]
