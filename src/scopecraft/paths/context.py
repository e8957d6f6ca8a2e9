"""Derive the project roots every path strategy works from."""

import logging
from dataclasses import dataclass
from pathlib import Path

from scopecraft.errors import ConfigurationError
from scopecraft.integrations.git import GitError, discover_repo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectRoots:
    execution_root: Path
    main_repo_root: Path
    user_home: Path
    worktree_root: Path | None = None

    @property
    def in_worktree(self) -> bool:
        return self.worktree_root is not None


def build_project_roots(
    start: str | Path | None = None,
    user_home: str | Path | None = None,
    standalone: bool = False,
) -> ProjectRoots:
    """Build ProjectRoots for a starting directory.

    Walks upward to the enclosing checkout. Inside a linked worktree the main
    repository is the worktree's origin and the worktree becomes the
    execution root. Without any repository (or with standalone=True) the
    start directory stands in for both roots.
    """
    start_dir = Path(start) if start is not None else Path.cwd()
    if not start_dir.is_dir():
        raise ConfigurationError(f"No usable project root at {start_dir}", path=str(start_dir))
    start_dir = start_dir.resolve()
    home = Path(user_home).resolve() if user_home is not None else Path.home()

    if standalone:
        return ProjectRoots(execution_root=start_dir, main_repo_root=start_dir, user_home=home)

    try:
        repo = discover_repo(start_dir)
    except (GitError, OSError) as e:
        logger.warning("Ignoring unreadable git metadata above %s: %s", start_dir, e)
        repo = None

    if repo is None:
        logger.debug("No repository above %s, using standalone mode", start_dir)
        return ProjectRoots(execution_root=start_dir, main_repo_root=start_dir, user_home=home)

    return ProjectRoots(
        execution_root=repo.checkout_root,
        main_repo_root=repo.main_root,
        user_home=home,
        worktree_root=repo.checkout_root if repo.is_worktree else None,
    )
