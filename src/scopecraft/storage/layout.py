"""Workflow directory model: where tasks live on disk and how they are found.

    {tasks root}/
      backlog/    {id}.task.md | {id}/_overview.md + {NN}_{slug}.task.md
      current/
      archive/    [YYYY-MM/]...

A directory is a parent task if and only if it holds `_overview.md`.
"""

import logging
import os
import re
import shutil
import tempfile
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Iterator

from scopecraft.config import TaskConfig
from scopecraft.errors import ConflictError, StorageIOError, ValidationError
from scopecraft.storage.models import STATE_SEARCH_ORDER, TaskLocation, WorkflowState

logger = logging.getLogger(__name__)

OVERVIEW_FILE = "_overview.md"
TASK_SUFFIX = ".task.md"

ARCHIVE_DATE_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
SUBTASK_FILE_RE = re.compile(r"^(\d{2})[_-].+\.task\.md$")
SIMPLE_TASK_FILE_RE = re.compile(r"^[a-z0-9-]+-\d{4}-[a-zA-Z0-9]{2}\.task\.md$")


class EntryKind(Enum):
    SIMPLE = "simple"
    PARENT = "parent"
    NOT_A_TASK = "not_a_task"


def is_valid_task_filename(name: str) -> bool:
    return (
        name == OVERVIEW_FILE
        or bool(SUBTASK_FILE_RE.match(name))
        or bool(SIMPLE_TASK_FILE_RE.match(name))
    )


def classify_entry(path: Path) -> EntryKind:
    """Tell whether a directory entry is a simple task, a parent task or neither."""
    if path.name.startswith("."):
        return EntryKind.NOT_A_TASK
    if path.is_dir():
        return EntryKind.PARENT if (path / OVERVIEW_FILE).is_file() else EntryKind.NOT_A_TASK
    if path.is_file() and path.name != OVERVIEW_FILE and is_valid_task_filename(path.name):
        return EntryKind.SIMPLE
    return EntryKind.NOT_A_TASK


# ── Workflow directories ──────────────────────────────────────────────────────


def workflow_dir(root: Path, state: WorkflowState | str, config: TaskConfig) -> Path:
    return root / config.folder_name(state)


def ensure_workflow_directories(root: Path, config: TaskConfig) -> list[Path]:
    """Create the three workflow folders if missing. Returns the ones created."""
    created = []
    for state in WorkflowState:
        path = workflow_dir(root, state, config)
        if not path.is_dir():
            path.mkdir(parents=True, exist_ok=True)
            created.append(path)
    return created


def archive_date_for(on: date | None = None) -> str:
    on = on or date.today()
    return f"{on.year:04d}-{on.month:02d}"


def validate_archive_date(value: str) -> str:
    if not ARCHIVE_DATE_RE.match(value):
        raise ValidationError(f"Archive date must look like YYYY-MM, got {value!r}")
    return value


def location_dir(root: Path, location: TaskLocation, config: TaskConfig) -> Path:
    return root / location.relative_dir(config.folder_name(location.workflow_state))


def parse_task_location(path: Path, root: Path, config: TaskConfig) -> TaskLocation | None:
    """Derive the workflow state (and archive month) from a path under the tasks root."""
    try:
        parts = path.relative_to(root).parts
    except ValueError:
        return None
    if not parts:
        return None

    state = config.state_for_folder(parts[0])
    if state is None:
        return None

    archive_date = None
    if state == WorkflowState.ARCHIVE and len(parts) > 2 and ARCHIVE_DATE_RE.match(parts[1]):
        archive_date = parts[1]
    return TaskLocation(workflow_state=state, archive_date=archive_date)


def task_id_from_filename(path: Path) -> str:
    if path.name == OVERVIEW_FILE:
        return path.parent.name
    if path.name.endswith(TASK_SUFFIX):
        return path.name[: -len(TASK_SUFFIX)]
    return path.stem


# ── Parent folders ────────────────────────────────────────────────────────────


def is_parent_dir(path: Path) -> bool:
    return classify_entry(path) == EntryKind.PARENT


def subtask_sequence(name: str) -> str | None:
    match = SUBTASK_FILE_RE.match(name)
    return match.group(1) if match else None


def subtask_files(parent_dir: Path) -> list[Path]:
    """Subtask files of a parent folder, in sequence order."""
    if not parent_dir.is_dir():
        return []
    return sorted(
        (p for p in parent_dir.iterdir() if p.is_file() and SUBTASK_FILE_RE.match(p.name)),
        key=lambda p: p.name,
    )


def next_sequence_number(parent_dir: Path) -> str:
    sequences = [int(subtask_sequence(p.name)) for p in subtask_files(parent_dir)]
    following = max(sequences, default=0) + 1
    if following > 99:
        raise ValidationError(f"{parent_dir.name} already has the maximum number of subtasks")
    return f"{following:02d}"


def supporting_files(parent_dir: Path) -> list[str]:
    """Markdown files in a parent folder that are neither tasks nor the overview."""
    return sorted(
        p.name
        for p in parent_dir.iterdir()
        if p.is_file()
        and p.suffix == ".md"
        and p.name != OVERVIEW_FILE
        and not p.name.endswith(TASK_SUFFIX)
    )


# ── Scanning and lookup ───────────────────────────────────────────────────────


def _state_dirs(root: Path, state: WorkflowState, config: TaskConfig) -> list[Path]:
    base = workflow_dir(root, state, config)
    if not base.is_dir():
        return []
    if state != WorkflowState.ARCHIVE:
        return [base]
    months = sorted(
        (p for p in base.iterdir() if p.is_dir() and ARCHIVE_DATE_RE.match(p.name)),
        key=lambda p: p.name,
        reverse=True,
    )
    return months + [base]


def scan_task_files(
    root: Path, state: WorkflowState | str, config: TaskConfig
) -> Iterator[tuple[Path, str | None]]:
    """Yield (task file, parent id) for every task stored under one workflow state."""
    for directory in _state_dirs(root, WorkflowState(state), config):
        for entry in sorted(directory.iterdir()):
            kind = classify_entry(entry)
            if kind == EntryKind.SIMPLE:
                yield entry, None
            elif kind == EntryKind.PARENT:
                yield entry / OVERVIEW_FILE, None
                for subtask in subtask_files(entry):
                    yield subtask, entry.name


def _find_subtask(parent_dir: Path, task_id: str) -> Path | None:
    filename = f"{task_id}{TASK_SUFFIX}"
    for path in subtask_files(parent_dir):
        if path.name == filename or path.name[3:] == filename:
            return path
    return None


def _find_in_dir(directory: Path, task_id: str) -> Path | None:
    simple = directory / f"{task_id}{TASK_SUFFIX}"
    if simple.is_file():
        return simple
    overview = directory / task_id / OVERVIEW_FILE
    if overview.is_file():
        return overview
    return None


def _find_by_relative_path(root: Path, task_id: str) -> Path | None:
    candidate = root / task_id
    try:
        candidate.resolve().relative_to(root.resolve())
    except ValueError:
        return None

    for path in (
        candidate if candidate.name.endswith(TASK_SUFFIX) else None,
        candidate.with_name(candidate.name + TASK_SUFFIX),
        candidate / OVERVIEW_FILE,
    ):
        if path is not None and path.is_file():
            return path
    if is_parent_dir(candidate.parent):
        return _find_subtask(candidate.parent, candidate.name)
    return None


def resolve_task_id(
    root: Path,
    task_id: str,
    config: TaskConfig,
    workflow_hint: WorkflowState | str | None = None,
    parent_id: str | None = None,
) -> Path | None:
    """Find the file behind a task ID.

    Bare IDs are searched in current, then backlog, then archive (newest
    month first). Inside each folder, top-level tasks win over subtasks.
    IDs written as relative paths (`current/some-task-0101-AB`) are looked
    up directly. A parent_id limits the search to that parent's folder.
    """
    if not task_id or "\\" in task_id:
        return None
    if "/" in task_id:
        return _find_by_relative_path(root, task_id)

    states = [WorkflowState(workflow_hint)] if workflow_hint else list(STATE_SEARCH_ORDER)

    if parent_id:
        parent_overview = resolve_task_id(root, parent_id, config, workflow_hint)
        if parent_overview is None or parent_overview.name != OVERVIEW_FILE:
            return None
        return _find_subtask(parent_overview.parent, task_id)

    for state in states:
        dirs = _state_dirs(root, state, config)
        for directory in dirs:
            if found := _find_in_dir(directory, task_id):
                return found
        for directory in dirs:
            for entry in sorted(directory.iterdir()):
                if is_parent_dir(entry) and (found := _find_subtask(entry, task_id)):
                    return found
    return None


def task_id_exists(root: Path, task_id: str, config: TaskConfig) -> bool:
    return resolve_task_id(root, task_id, config) is not None


# ── Writing and moving ────────────────────────────────────────────────────────


def write_text_atomic(path: Path, text: str) -> None:
    """Replace a file's content in one step via a temporary sibling."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def move_file(source: Path, destination: Path, text: str | None = None) -> Path:
    """Write destination, verify it, then remove source.

    text replaces the content on the way; None copies the source verbatim.
    """
    if destination.exists():
        raise ConflictError(f"Destination already exists: {destination}", destination=str(destination))

    content = text if text is not None else source.read_text(encoding="utf-8")
    write_text_atomic(destination, content)
    if destination.read_text(encoding="utf-8") != content:
        raise StorageIOError(
            f"Verification of {destination} failed, {source} left in place",
            source=str(source),
            destination=str(destination),
        )

    try:
        source.unlink()
    except OSError as e:
        raise StorageIOError(
            f"Copied to {destination} but could not remove {source}: {e}",
            source=str(source),
            destination=str(destination),
        ) from e
    logger.info("Moved %s -> %s", source, destination)
    return destination


def move_directory(source: Path, destination: Path) -> Path:
    """Copy a parent folder to destination, verify it, then remove source."""
    if destination.exists():
        raise ConflictError(f"Destination already exists: {destination}", destination=str(destination))

    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, destination)

    expected = {p.relative_to(source) for p in source.rglob("*")}
    copied = {p.relative_to(destination) for p in destination.rglob("*")}
    if expected != copied:
        raise StorageIOError(
            f"Verification of {destination} failed, {source} left in place",
            source=str(source),
            destination=str(destination),
        )

    try:
        shutil.rmtree(source)
    except OSError as e:
        raise StorageIOError(
            f"Copied to {destination} but could not remove {source}: {e}",
            source=str(source),
            destination=str(destination),
        ) from e
    logger.info("Moved folder %s -> %s", source, destination)
    return destination
