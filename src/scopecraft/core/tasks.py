"""Task CRUD operations over the workflow directories.

The `*_task` functions raise ScopecraftError subclasses and are meant for use
inside the package. The short-named operations (`create`, `get`, `update`,
`move`, `delete`, `list_tasks`) wrap them and always return an
OperationResult.
"""

import logging
import shutil
from dataclasses import replace
from datetime import date
from pathlib import Path

from scopecraft.config import TaskConfig
from scopecraft.core import ids
from scopecraft.core.events import ChangeFeed, emit
from scopecraft.core.templates import apply_template, get_template
from scopecraft.errors import (
    ConflictError,
    NotFoundError,
    OperationResult,
    ScopecraftError,
    ValidationError,
    operation,
)
from scopecraft.storage import documents
from scopecraft.storage.layout import (
    OVERVIEW_FILE,
    TASK_SUFFIX,
    archive_date_for,
    is_parent_dir,
    location_dir,
    move_directory,
    move_file,
    next_sequence_number,
    parse_task_location,
    resolve_task_id,
    scan_task_files,
    subtask_files,
    subtask_sequence,
    task_id_exists,
    task_id_from_filename,
    validate_archive_date,
    write_text_atomic,
)
from scopecraft.storage.models import (
    ACTIVE_STATUSES,
    STATE_SEARCH_ORDER,
    STATUS_FOR_STATE,
    TASK_TYPE_SELECTORS,
    Task,
    TaskCreateOptions,
    TaskDocument,
    TaskListOptions,
    TaskLocation,
    TaskMetadata,
    TaskMoveOptions,
    TaskUpdateOptions,
    WorkflowState,
)

logger = logging.getLogger(__name__)


def _state(value: WorkflowState | str) -> WorkflowState:
    try:
        return WorkflowState(value)
    except ValueError:
        raise ValidationError(f"Unknown workflow state: {value}") from None


# ── Loading ───────────────────────────────────────────────────────────────────


def read_document(path: Path) -> TaskDocument:
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError(f"Task file is not valid UTF-8: {path}", path=str(path), reason=e.reason) from e
    return documents.parse(text)


def build_task(path: Path, root: Path, config: TaskConfig, document: TaskDocument | None = None) -> Task:
    """Assemble a Task from its file, deriving metadata from the path."""
    location = parse_task_location(path, root, config)
    if location is None:
        raise ValidationError(f"{path} is not inside a workflow folder", path=str(path))

    is_parent = path.name == OVERVIEW_FILE
    parent_task = None
    sequence = None
    if not is_parent and is_parent_dir(path.parent):
        parent_task = path.parent.name
        sequence = subtask_sequence(path.name)

    return Task(
        metadata=TaskMetadata(
            id=task_id_from_filename(path),
            filename=path.name,
            path=path,
            location=location,
            is_parent_task=is_parent,
            parent_task=parent_task,
            sequence_number=sequence,
        ),
        document=document if document is not None else read_document(path),
    )


def load_task(
    root: Path,
    task_id: str,
    config: TaskConfig | None = None,
    workflow_hint: WorkflowState | str | None = None,
    parent_id: str | None = None,
) -> Task:
    config = config or TaskConfig()
    root = Path(root)
    if workflow_hint is not None:
        workflow_hint = _state(workflow_hint)
    path = resolve_task_id(root, task_id, config, workflow_hint, parent_id)
    if path is None:
        raise NotFoundError(f"Task not found: {task_id}", task_id=task_id)
    return build_task(path, root, config)


def _write_task(path: Path, document: TaskDocument, root: Path, config: TaskConfig) -> Task:
    text = documents.serialize(document)
    write_text_atomic(path, text)
    return build_task(path, root, config, documents.parse(text))


# ── Create ────────────────────────────────────────────────────────────────────


def build_document(options: TaskCreateOptions, config: TaskConfig, status: str | None = None) -> TaskDocument:
    """Build a validated document from a template or bare options."""
    title = (options.title or "").strip()
    if not title:
        raise ValidationError("Task title is required")

    task_type = documents.normalize_type(options.type)
    if task_type is None:
        raise ValidationError(f"Unknown task type: {options.type}", type=options.type)

    if options.status is not None:
        status = documents.normalize_status(options.status)
        if status is None:
            raise ValidationError(f"Unknown status: {options.status}", status=options.status)

    template = ""
    if options.template:
        template = get_template(config.templates_dir, options.template)
        if template is None:
            raise NotFoundError(f"Template not found: {options.template}", template=options.template)

    document = apply_template(
        template,
        title,
        instruction=options.instruction,
        tasks=options.tasks,
        deliverable=options.deliverable,
        custom_sections=options.custom_sections,
    )

    frontmatter = {
        **document.frontmatter,
        "type": task_type,
        "status": status or "To Do",
        "area": options.area,
        "priority": options.priority,
        "assignee": options.assignee,
        "tags": (options.tags if isinstance(options.tags, str) else list(options.tags)) or None,
        **options.custom_metadata,
    }
    document = replace(
        document,
        frontmatter=documents.normalize_frontmatter({k: v for k, v in frontmatter.items() if v is not None}),
    )
    documents.validate_document(document)
    return documents.ensure_required_sections(document)


def parent_folder(root: Path, parent_id: str, config: TaskConfig) -> Path:
    path = resolve_task_id(root, parent_id, config)
    if path is None:
        raise NotFoundError(f"Parent task not found: {parent_id}", task_id=parent_id)
    if path.name != OVERVIEW_FILE:
        raise ValidationError(f"{parent_id} is not a parent task", task_id=parent_id)
    return path.parent


def create_task(
    root: Path,
    options: TaskCreateOptions,
    config: TaskConfig | None = None,
    parent_id: str | None = None,
    feed: ChangeFeed | None = None,
) -> Task:
    config = config or TaskConfig()
    root = Path(root)
    on = options.created_on or date.today()

    if parent_id:
        parent_dir = parent_folder(root, parent_id, config)
        state = parse_task_location(parent_dir, root, config).workflow_state
        document = build_document(options, config, default_status(state, config))

        sequence = next_sequence_number(parent_dir)
        if options.id:
            task_id = options.id if subtask_sequence(f"{options.id}{TASK_SUFFIX}") else f"{sequence}_{options.id}"
        else:
            task_id = ids.generate_subtask_id(
                options.title, sequence, lambda candidate: task_id_exists(root, candidate, config), on
            )
        path = parent_dir / f"{task_id}{TASK_SUFFIX}"
    else:
        state = _state(options.workflow_state or config.default_workflow_state)
        document = build_document(options, config, default_status(state, config))

        archive_date = archive_date_for(on) if state == WorkflowState.ARCHIVE else None
        directory = location_dir(root, TaskLocation(state, archive_date), config)
        if options.id:
            if not ids.validate_task_id(options.id):
                raise ValidationError(f"Invalid task ID: {options.id}", task_id=options.id)
            if task_id_exists(root, options.id, config):
                raise ConflictError(f"Task already exists: {options.id}", task_id=options.id)
            task_id = options.id
        else:
            task_id = ids.generate_unique_task_id(
                options.title, lambda candidate: task_id_exists(root, candidate, config), on
            )
        path = directory / f"{task_id}{TASK_SUFFIX}"

    if path.exists():
        raise ConflictError(f"Task already exists: {task_id}", task_id=task_id, path=str(path))

    task = _write_task(path, document, root, config)
    logger.info("Created task %s at %s", task.id, path)
    emit(feed, "created", task.id, path, workflow_state=task.workflow_state)
    return task


def default_status(state: WorkflowState, config: TaskConfig) -> str:
    if config.auto_status_update:
        return STATUS_FOR_STATE[state]
    return "To Do"


# ── Update ────────────────────────────────────────────────────────────────────


def _is_active(status: str | None) -> bool:
    return status is not None and status.lower() in (s.lower() for s in ACTIVE_STATUSES)


def _should_transition(task: Task, old_status: str | None, new_status: str | None, config: TaskConfig) -> bool:
    if not config.auto_workflow_transitions or new_status is None:
        return False
    if old_status is not None and new_status.lower() == old_status.lower():
        return False
    if task.is_subtask or task.workflow_state == WorkflowState.CURRENT:
        return False
    return _is_active(new_status)


def update_task(
    root: Path,
    task_id: str,
    patch: TaskUpdateOptions,
    config: TaskConfig | None = None,
    parent_id: str | None = None,
    feed: ChangeFeed | None = None,
) -> Task:
    """Apply a partial patch and write the task back in place.

    With auto_workflow_transitions on, a status change to an active status
    pulls a backlog or archived task into current.
    """
    config = config or TaskConfig()
    root = Path(root)
    task = load_task(root, task_id, config, parent_id=parent_id)
    document = task.document
    old_status = documents.normalize_status(document.frontmatter.get("status")) or document.frontmatter.get("status")

    frontmatter = dict(document.frontmatter)
    for key, value in patch.frontmatter.items():
        if value is None:
            frontmatter.pop(key, None)
        else:
            frontmatter[key] = value
    frontmatter = documents.normalize_frontmatter(frontmatter)

    title = patch.title.strip() if patch.title is not None else document.title
    document = replace(document, title=title, frontmatter=frontmatter)
    for name, content in patch.sections.items():
        document = documents.update_section(document, name, content)
    if patch.log_entry:
        document = documents.add_log_entry(document, patch.log_entry)

    touched = set(patch.frontmatter) & set(documents.VALIDATED_FIELDS)
    if patch.title is not None:
        touched.add("title")
    documents.validate_document(document, touched)

    new_status = frontmatter.get("status")
    transition = _should_transition(task, old_status, new_status, config)
    if transition:
        destination = _destination_path(task, location_dir(root, TaskLocation(WorkflowState.CURRENT), config))
        if destination.exists():
            raise ConflictError(
                f"Cannot move {task.id} to current: {destination} already exists",
                task_id=task.id,
                destination=str(destination),
            )

    updated = _write_task(task.metadata.path, document, root, config)
    logger.debug("Updated task %s", updated.id)
    emit(feed, "updated", updated.id, updated.metadata.path, workflow_state=updated.workflow_state)

    if transition:
        logger.info("Status of %s is now %s, moving it to current", updated.id, new_status)
        try:
            updated = _relocate(
                root, updated, WorkflowState.CURRENT, TaskMoveOptions(update_status=False), config, feed
            )
        except ScopecraftError as e:
            e.details.setdefault("updated_path", str(updated.metadata.path))
            raise
    return updated


def update_task_section(
    root: Path,
    task_id: str,
    section: str,
    content: str,
    config: TaskConfig | None = None,
    parent_id: str | None = None,
    feed: ChangeFeed | None = None,
) -> Task:
    patch = TaskUpdateOptions(sections={section: content})
    return update_task(root, task_id, patch, config, parent_id, feed)


def append_task_log(
    root: Path,
    task_id: str,
    message: str,
    config: TaskConfig | None = None,
    parent_id: str | None = None,
    feed: ChangeFeed | None = None,
) -> Task:
    if not message.strip():
        raise ValidationError("Log message must not be empty")
    return update_task(root, task_id, TaskUpdateOptions(log_entry=message), config, parent_id, feed)


# ── Move ──────────────────────────────────────────────────────────────────────


def _destination_path(task: Task, destination_dir: Path) -> Path:
    if task.metadata.is_parent_task:
        return destination_dir / task.metadata.path.parent.name
    return destination_dir / task.metadata.filename


def _relocate(
    root: Path,
    task: Task,
    target: WorkflowState,
    options: TaskMoveOptions,
    config: TaskConfig,
    feed: ChangeFeed | None,
) -> Task:
    if task.is_subtask:
        raise ValidationError(
            f"{task.id} is a subtask of {task.metadata.parent_task}; move the parent task instead",
            task_id=task.id,
        )

    archive_date = None
    if target == WorkflowState.ARCHIVE:
        archive_date = validate_archive_date(options.archive_date) if options.archive_date else archive_date_for()

    current = task.metadata.location
    if current.workflow_state == target and (target != WorkflowState.ARCHIVE or current.archive_date == archive_date):
        raise ValidationError(f"Task {task.id} is already in {target.value}", task_id=task.id)

    update_status = options.update_status if options.update_status is not None else config.auto_status_update
    document = task.document
    if update_status:
        document = replace(document, frontmatter={**document.frontmatter, "status": STATUS_FOR_STATE[target]})

    destination_dir = location_dir(root, TaskLocation(target, archive_date), config)
    source = task.metadata.path
    if task.metadata.is_parent_task:
        folder = move_directory(source.parent, _destination_path(task, destination_dir))
        new_path = folder / OVERVIEW_FILE
        if update_status:
            write_text_atomic(new_path, documents.serialize(document))
    else:
        new_path = _destination_path(task, destination_dir)
        move_file(source, new_path, documents.serialize(document) if update_status else None)

    moved = build_task(new_path, root, config)
    emit(feed, "moved", moved.id, new_path, previous_path=source, workflow_state=target)
    return moved


def move_task(
    root: Path,
    task_id: str,
    target_state: WorkflowState | str,
    options: TaskMoveOptions | None = None,
    config: TaskConfig | None = None,
    parent_id: str | None = None,
    feed: ChangeFeed | None = None,
) -> Task:
    """Relocate a task (a parent's whole folder) to another workflow state."""
    config = config or TaskConfig()
    root = Path(root)
    target = _state(target_state)
    task = load_task(root, task_id, config, parent_id=parent_id)
    return _relocate(root, task, target, options or TaskMoveOptions(), config, feed)


# ── Delete ────────────────────────────────────────────────────────────────────


def delete_task(
    root: Path,
    task_id: str,
    cascade: bool = False,
    config: TaskConfig | None = None,
    parent_id: str | None = None,
    feed: ChangeFeed | None = None,
) -> Task:
    config = config or TaskConfig()
    root = Path(root)
    task = load_task(root, task_id, config, parent_id=parent_id)

    if task.metadata.is_parent_task:
        folder = task.metadata.path.parent
        contents = [p for p in folder.iterdir() if p.name != OVERVIEW_FILE]
        if contents and not cascade:
            subtasks = len(subtask_files(folder))
            raise ConflictError(
                f"Parent task {task.id} has {subtasks} subtask(s) and {len(contents) - subtasks} other file(s); "
                "delete with cascade to remove them",
                task_id=task.id,
                subtasks=subtasks,
            )
        shutil.rmtree(folder)
        logger.info("Deleted parent task %s (%s)", task.id, folder)
    else:
        task.metadata.path.unlink()
        logger.info("Deleted task %s (%s)", task.id, task.metadata.path)

    emit(feed, "deleted", task.id, task.metadata.path, workflow_state=task.workflow_state)
    return task


# ── List ──────────────────────────────────────────────────────────────────────


def _selected(task_type: str, path: Path, parent: str | None) -> bool:
    if task_type == "all":
        return True
    if task_type == "subtask":
        return parent is not None
    if task_type == "parent":
        return path.name == OVERVIEW_FILE
    if task_type == "simple":
        return parent is None and path.name != OVERVIEW_FILE
    return parent is None


def _same_status(a: object, b: object) -> bool:
    a_norm = documents.normalize_status(a) or str(a).strip()
    b_norm = documents.normalize_status(b) or str(b).strip()
    return a_norm.lower() == b_norm.lower()


def _matches(task: Task, filters: TaskListOptions) -> bool:
    frontmatter = task.document.frontmatter
    if filters.type:
        wanted = documents.normalize_type(filters.type) or filters.type
        if documents.normalize_type(frontmatter.get("type")) != wanted:
            return False
    status = frontmatter.get("status")
    if filters.status and (status is None or not _same_status(status, filters.status)):
        return False
    if status is not None and any(_same_status(status, s) for s in filters.exclude_statuses):
        return False
    if filters.area and frontmatter.get("area") != filters.area:
        return False
    if filters.tags:
        tags = frontmatter.get("tags")
        if not tags or not isinstance(tags, list):
            return False
        if not any(isinstance(tag, str) and tag in filters.tags for tag in tags):
            return False
    return True


def find_tasks(root: Path, filters: TaskListOptions | None = None, config: TaskConfig | None = None) -> list[Task]:
    """Scan the workflow folders and return the tasks matching filters.

    parent_id restricts the listing to that parent's subtasks regardless of
    the task_type selector.
    """
    config = config or TaskConfig()
    root = Path(root)
    filters = filters or TaskListOptions()
    if filters.task_type not in TASK_TYPE_SELECTORS:
        raise ValidationError(f"task_type must be one of {', '.join(TASK_TYPE_SELECTORS)}")
    states = [_state(s) for s in filters.workflow_states] if filters.workflow_states else list(STATE_SEARCH_ORDER)
    task_type = "subtask" if filters.parent_id else filters.task_type

    results = []
    for state in states:
        for path, parent in scan_task_files(root, state, config):
            if not _selected(task_type, path, parent):
                continue
            if filters.parent_id and parent != filters.parent_id:
                continue
            try:
                task = build_task(path, root, config)
            except (ValidationError, OSError) as e:
                logger.warning("Skipping unreadable task file %s: %s", path, e)
                continue
            if _matches(task, filters):
                results.append(task)
    return results


# ── Public operations ─────────────────────────────────────────────────────────


@operation
def create(
    root: Path,
    options: TaskCreateOptions,
    config: TaskConfig | None = None,
    parent_id: str | None = None,
    feed: ChangeFeed | None = None,
) -> OperationResult:
    """Create a task, or a subtask when parent_id is given."""
    return create_task(root, options, config, parent_id, feed)


@operation
def get(
    root: Path,
    task_id: str,
    workflow_hint: WorkflowState | str | None = None,
    parent_id: str | None = None,
    config: TaskConfig | None = None,
) -> OperationResult:
    return load_task(root, task_id, config, workflow_hint, parent_id)


@operation
def update(
    root: Path,
    task_id: str,
    patch: TaskUpdateOptions,
    config: TaskConfig | None = None,
    parent_id: str | None = None,
    feed: ChangeFeed | None = None,
) -> OperationResult:
    return update_task(root, task_id, patch, config, parent_id, feed)


@operation
def update_section(
    root: Path,
    task_id: str,
    section: str,
    content: str,
    config: TaskConfig | None = None,
    parent_id: str | None = None,
    feed: ChangeFeed | None = None,
) -> OperationResult:
    return update_task_section(root, task_id, section, content, config, parent_id, feed)


@operation
def append_log(
    root: Path,
    task_id: str,
    message: str,
    config: TaskConfig | None = None,
    parent_id: str | None = None,
    feed: ChangeFeed | None = None,
) -> OperationResult:
    return append_task_log(root, task_id, message, config, parent_id, feed)


@operation
def move(
    root: Path,
    task_id: str,
    target_state: WorkflowState | str,
    options: TaskMoveOptions | None = None,
    config: TaskConfig | None = None,
    parent_id: str | None = None,
    feed: ChangeFeed | None = None,
) -> OperationResult:
    return move_task(root, task_id, target_state, options, config, parent_id, feed)


@operation
def delete(
    root: Path,
    task_id: str,
    cascade: bool = False,
    config: TaskConfig | None = None,
    parent_id: str | None = None,
    feed: ChangeFeed | None = None,
) -> OperationResult:
    """Delete a task. Non-empty parent tasks need cascade=True."""
    return delete_task(root, task_id, cascade, config, parent_id, feed)


@operation
def list_tasks(
    root: Path,
    filters: TaskListOptions | None = None,
    config: TaskConfig | None = None,
) -> OperationResult:
    return find_tasks(root, filters, config)
