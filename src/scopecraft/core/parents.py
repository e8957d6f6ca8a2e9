"""Parent tasks: folders with an overview and ordered subtasks."""

import logging
import re
from dataclasses import replace
from datetime import date
from pathlib import Path

from scopecraft.config import TaskConfig
from scopecraft.core import ids
from scopecraft.core import tasks as tasks_mod
from scopecraft.core.events import ChangeFeed, emit
from scopecraft.errors import (
    ConflictError,
    NotFoundError,
    OperationResult,
    StorageIOError,
    ValidationError,
    operation,
)
from scopecraft.storage import documents
from scopecraft.storage.layout import (
    OVERVIEW_FILE,
    TASK_SUFFIX,
    archive_date_for,
    location_dir,
    subtask_files,
    supporting_files,
    task_id_exists,
    write_text_atomic,
)
from scopecraft.storage.models import (
    ParentTask,
    SubtaskSequence,
    Task,
    TaskCreateOptions,
    TaskLocation,
    WorkflowState,
)

logger = logging.getLogger(__name__)

_SEQUENCE_RE = re.compile(r"^(0[1-9]|[1-9]\d)$")
_SEQUENCE_PREFIX_RE = re.compile(r"^\d{2}[_-]")


def create_parent_task(
    root: Path,
    options: TaskCreateOptions,
    config: TaskConfig | None = None,
    feed: ChangeFeed | None = None,
) -> Task:
    """Create `{id}/_overview.md` in the target workflow folder."""
    config = config or TaskConfig()
    root = Path(root)
    on = options.created_on or date.today()

    try:
        state = WorkflowState(options.workflow_state or config.default_workflow_state)
    except ValueError:
        raise ValidationError(f"Unknown workflow state: {options.workflow_state}") from None

    if not options.template:
        options = replace(
            options,
            instruction=options.instruction or f"Coordinate the subtasks that deliver {options.title.strip()}.",
            tasks=options.tasks or ["Break the work down into subtasks", "Track subtask progress"],
        )
    document = tasks_mod.build_document(options, config, tasks_mod.default_status(state, config))

    if options.id:
        if not ids.validate_task_id(options.id):
            raise ValidationError(f"Invalid task ID: {options.id}", task_id=options.id)
        task_id = options.id
    else:
        task_id = ids.generate_unique_task_id(
            options.title, lambda candidate: task_id_exists(root, candidate, config), on
        )
    if task_id_exists(root, task_id, config):
        raise ConflictError(f"Task already exists: {task_id}", task_id=task_id)

    archive_date = archive_date_for(on) if state == WorkflowState.ARCHIVE else None
    folder = location_dir(root, TaskLocation(state, archive_date), config) / task_id
    folder.mkdir(parents=True)
    path = folder / OVERVIEW_FILE
    text = documents.serialize(document)
    write_text_atomic(path, text)

    task = tasks_mod.build_task(path, root, config, documents.parse(text))
    logger.info("Created parent task %s at %s", task.id, folder)
    emit(feed, "created", task.id, path, workflow_state=state)
    return task


def load_parent(root: Path, parent_id: str, config: TaskConfig | None = None) -> ParentTask:
    config = config or TaskConfig()
    root = Path(root)
    task = tasks_mod.load_task(root, parent_id, config)
    if not task.metadata.is_parent_task:
        raise ValidationError(f"{parent_id} is not a parent task", task_id=parent_id)

    folder = task.metadata.path.parent
    subtasks = []
    for path in subtask_files(folder):
        try:
            subtasks.append(tasks_mod.build_task(path, root, config))
        except (ValidationError, OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping unreadable subtask %s: %s", path, e)
    return ParentTask(task=task, subtasks=subtasks, supporting_files=supporting_files(folder))


def _find_subtask(parent: ParentTask, subtask_id: str) -> Task:
    for subtask in parent.subtasks:
        if subtask_id in (subtask.id, _SEQUENCE_PREFIX_RE.sub("", subtask.id)):
            return subtask
    raise NotFoundError(
        f"Subtask {subtask_id} not found in {parent.task.id}",
        task_id=subtask_id,
        parent_id=parent.task.id,
    )


def _restore_names(staged, completed):
    # back through the temporary names so swapped files never overwrite each other
    for temporary, destination in reversed(completed):
        destination.rename(temporary)
    for source, temporary, _ in staged:
        temporary.rename(source)


def resequence_subtasks(
    root: Path,
    parent_id: str,
    sequences: dict[str, str],
    config: TaskConfig | None = None,
    feed: ChangeFeed | None = None,
) -> list[Task]:
    """Rename subtasks to new two-digit sequence numbers.

    Renames go through temporary names first so two subtasks can swap places.
    """
    config = config or TaskConfig()
    root = Path(root)
    parent = load_parent(root, parent_id, config)

    renames = []
    for subtask_id, sequence in sequences.items():
        if not _SEQUENCE_RE.match(sequence):
            raise ValidationError(f"Sequence must be 01-99, got {sequence!r}", sequence=sequence)
        subtask = _find_subtask(parent, subtask_id)
        source = subtask.metadata.path
        renames.append((source, source.with_name(f"{sequence}_{_SEQUENCE_PREFIX_RE.sub('', source.name)}")))

    destinations = [destination for _, destination in renames]
    if len(set(destinations)) != len(destinations):
        raise ConflictError("Two subtasks would end up with the same filename", parent_id=parent_id)
    sources = {source for source, _ in renames}
    for destination in destinations:
        if destination.exists() and destination not in sources:
            raise ConflictError(f"{destination.name} already exists", path=str(destination))

    staged = []
    completed = []
    try:
        for source, destination in renames:
            if source == destination:
                continue
            temporary = source.with_name(f".{source.name}.resequence")
            source.rename(temporary)
            staged.append((source, temporary, destination))
        for _, temporary, destination in staged:
            temporary.rename(destination)
            completed.append((temporary, destination))
    except OSError as e:
        logger.warning("Resequencing %s failed, restoring original names: %s", parent_id, e)
        _restore_names(staged, completed)
        raise StorageIOError(
            f"Could not resequence subtasks of {parent_id}: {e}",
            parent_id=parent_id,
            path=str(e.filename) if e.filename else None,
        ) from e

    for source, _, destination in staged:
        emit(feed, "moved", destination.name.removesuffix(TASK_SUFFIX), destination, previous_path=source)

    logger.info("Resequenced %d subtask(s) of %s", len(staged), parent_id)
    return load_parent(root, parent_id, config).subtasks


def parallelize_subtasks(
    root: Path,
    parent_id: str,
    subtask_ids: list[str],
    sequence: str | None = None,
    config: TaskConfig | None = None,
    feed: ChangeFeed | None = None,
) -> list[Task]:
    """Give several subtasks one shared sequence so they can run side by side."""
    if len(subtask_ids) < 2:
        raise ValidationError("At least two subtasks are needed to run in parallel")
    parent = load_parent(root, parent_id, config)
    selected = [_find_subtask(parent, subtask_id) for subtask_id in subtask_ids]
    shared = sequence or min(s.metadata.sequence_number for s in selected)
    return resequence_subtasks(root, parent_id, {s.id: shared for s in selected}, config, feed)


def sequence_info(root: Path, parent_id: str, config: TaskConfig | None = None) -> list[SubtaskSequence]:
    parent = load_parent(root, parent_id, config)
    by_sequence: dict[str, list[Task]] = {}
    for subtask in parent.subtasks:
        by_sequence.setdefault(subtask.metadata.sequence_number, []).append(subtask)

    return [
        SubtaskSequence(
            id=subtask.id,
            title=subtask.title,
            sequence=subtask.metadata.sequence_number,
            status=subtask.status,
            parallel_with=[
                other.id for other in by_sequence[subtask.metadata.sequence_number] if other.id != subtask.id
            ],
        )
        for subtask in parent.subtasks
    ]


def promote_task(
    root: Path,
    task_id: str,
    subtask_titles: list[str] | None = None,
    keep_original: bool = True,
    config: TaskConfig | None = None,
    feed: ChangeFeed | None = None,
) -> ParentTask:
    """Turn a simple task into a parent folder.

    The task's document becomes the overview. With keep_original it is also
    kept as subtask 01, and any subtask_titles are appended after it.
    """
    config = config or TaskConfig()
    root = Path(root)
    task = tasks_mod.load_task(root, task_id, config)

    if task.metadata.is_parent_task:
        raise ValidationError(f"{task_id} is already a parent task", task_id=task_id)
    if task.is_subtask:
        raise ValidationError(f"{task_id} is a subtask and cannot be promoted", task_id=task_id)
    if task.workflow_state == WorkflowState.ARCHIVE:
        raise ValidationError(f"{task_id} is archived and cannot be promoted", task_id=task_id)

    source = task.metadata.path
    folder = source.parent / task.id
    if folder.exists():
        raise ConflictError(f"{folder} already exists", path=str(folder))

    text = source.read_text(encoding="utf-8")
    folder.mkdir()
    write_text_atomic(folder / OVERVIEW_FILE, text)
    if keep_original:
        write_text_atomic(folder / f"01_{task.id}{TASK_SUFFIX}", text)
    source.unlink()
    logger.info("Promoted %s to a parent task", task.id)
    emit(feed, "moved", task.id, folder / OVERVIEW_FILE, previous_path=source, workflow_state=task.workflow_state)

    frontmatter = task.document.frontmatter
    for title in subtask_titles or []:
        tasks_mod.create_task(
            root,
            TaskCreateOptions(
                title=title,
                type=documents.normalize_type(frontmatter.get("type")) or "feature",
                area=frontmatter.get("area") or "general",
            ),
            config,
            parent_id=task.id,
            feed=feed,
        )
    return load_parent(root, task.id, config)


# ── Public operations ─────────────────────────────────────────────────────────


@operation
def create_parent(
    root: Path,
    options: TaskCreateOptions,
    config: TaskConfig | None = None,
    feed: ChangeFeed | None = None,
) -> OperationResult:
    return create_parent_task(root, options, config, feed)


@operation
def add_subtask(
    root: Path,
    parent_id: str,
    options: TaskCreateOptions,
    config: TaskConfig | None = None,
    feed: ChangeFeed | None = None,
) -> OperationResult:
    """Create a subtask with the next free sequence number."""
    return tasks_mod.create_task(root, options, config, parent_id=parent_id, feed=feed)


@operation
def get_parent(root: Path, parent_id: str, config: TaskConfig | None = None) -> OperationResult:
    return load_parent(root, parent_id, config)


@operation
def list_subtasks(root: Path, parent_id: str, config: TaskConfig | None = None) -> OperationResult:
    return load_parent(root, parent_id, config).subtasks


@operation
def resequence(
    root: Path,
    parent_id: str,
    sequences: dict[str, str],
    config: TaskConfig | None = None,
    feed: ChangeFeed | None = None,
) -> OperationResult:
    return resequence_subtasks(root, parent_id, sequences, config, feed)


@operation
def parallelize(
    root: Path,
    parent_id: str,
    subtask_ids: list[str],
    sequence: str | None = None,
    config: TaskConfig | None = None,
    feed: ChangeFeed | None = None,
) -> OperationResult:
    return parallelize_subtasks(root, parent_id, subtask_ids, sequence, config, feed)


@operation
def subtask_sequence_info(root: Path, parent_id: str, config: TaskConfig | None = None) -> OperationResult:
    return sequence_info(root, parent_id, config)


@operation
def promote_to_parent(
    root: Path,
    task_id: str,
    subtask_titles: list[str] | None = None,
    keep_original: bool = True,
    config: TaskConfig | None = None,
    feed: ChangeFeed | None = None,
) -> OperationResult:
    return promote_task(root, task_id, subtask_titles, keep_original, config, feed)
