"""Repository discovery from on-disk git metadata.

Only the `.git` entry, the `gitdir:` pointer of a linked worktree and its
`commondir` file are read. The git binary is never invoked.
"""

from dataclasses import dataclass
from pathlib import Path


class GitError(Exception):
    """Raised when git metadata on disk cannot be understood."""


@dataclass
class RepoInfo:
    checkout_root: Path
    main_root: Path
    is_worktree: bool = False


def find_checkout_root(start: Path) -> Path | None:
    """Walk upward from start to the first directory holding a .git entry."""
    for candidate in [start, *start.parents]:
        if (candidate / ".git").exists():
            return candidate
    return None


def read_gitdir_pointer(git_file: Path) -> Path:
    """Read the `gitdir: <path>` line of a worktree's .git file."""
    try:
        content = git_file.read_text(encoding="utf-8").strip()
    except OSError as e:
        raise GitError(f"cannot read {git_file}: {e}") from e

    prefix = "gitdir:"
    if not content.startswith(prefix):
        raise GitError(f"{git_file} is not a gitdir pointer")

    target = Path(content[len(prefix):].strip())
    if not target.is_absolute():
        target = git_file.parent / target
    return target.resolve()


def common_git_dir(gitdir: Path) -> Path:
    """Return the shared .git directory a linked worktree's gitdir belongs to."""
    commondir_file = gitdir / "commondir"
    if commondir_file.is_file():
        pointer = commondir_file.read_text(encoding="utf-8").strip()
        common = Path(pointer)
        if not common.is_absolute():
            common = gitdir / common
        return common.resolve()

    if gitdir.parent.name == "worktrees":
        return gitdir.parent.parent
    return gitdir


def discover_repo(start: Path) -> RepoInfo | None:
    """Find the checkout enclosing start and the main repository behind it."""
    checkout = find_checkout_root(start)
    if checkout is None:
        return None

    dot_git = checkout / ".git"
    if dot_git.is_dir():
        return RepoInfo(checkout_root=checkout, main_root=checkout)

    gitdir = read_gitdir_pointer(dot_git)
    common = common_git_dir(gitdir)
    if common == gitdir:
        # Submodules point at a private gitdir with no shared parent
        return RepoInfo(checkout_root=checkout, main_root=checkout)

    main_root = common.parent if common.name == ".git" else common
    return RepoInfo(
        checkout_root=checkout,
        main_root=main_root,
        is_worktree=main_root != checkout,
    )
