"""CLI entry point for the scopecraft task core."""

import json
import sys

import click

from scopecraft.config import get_config, load_task_config
from scopecraft.core import parents as parents_mod
from scopecraft.core import project as project_mod
from scopecraft.core import tasks as tasks_mod
from scopecraft.core import templates as templates_mod
from scopecraft.errors import ConfigurationError, OperationResult
from scopecraft.logging_setup import setup_logging
from scopecraft.paths import resolver
from scopecraft.storage.models import (
    TASK_TYPE_SELECTORS,
    Task,
    TaskCreateOptions,
    TaskListOptions,
    TaskMoveOptions,
    TaskUpdateOptions,
    WorkflowState,
)

STATES = [state.value for state in WorkflowState]

STATUS_ICONS = {
    "To Do": "○",
    "In Progress": "●",
    "Done": "✓",
    "Blocked": "✗",
    "Archived": "▪",
}


def _fail(message: str):
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _workspace():
    """Resolve the project roots, tasks root and workflow config from the environment."""
    try:
        config = get_config()
        roots = config.project_roots()
        return roots, resolver.get_tasks_path(roots), load_task_config(roots, config)
    except ConfigurationError as e:
        _fail(e.message)


def _unwrap(result: OperationResult):
    if not result.success:
        _fail(result.error)
    return result.data


def _task_dict(task: Task, full: bool = False) -> dict:
    frontmatter = task.document.frontmatter
    data = {
        "id": task.id,
        "title": task.title,
        "type": frontmatter.get("type"),
        "status": frontmatter.get("status"),
        "area": frontmatter.get("area"),
        "priority": frontmatter.get("priority"),
        "tags": frontmatter.get("tags") or [],
        "workflow_state": task.workflow_state.value,
        "archive_date": task.metadata.location.archive_date,
        "path": str(task.metadata.path),
        "is_parent_task": task.metadata.is_parent_task,
        "parent_task": task.metadata.parent_task,
        "sequence_number": task.metadata.sequence_number,
    }
    if full:
        data["frontmatter"] = frontmatter
        data["sections"] = task.document.sections
    return data


def _echo_json(data):
    click.echo(json.dumps(data, indent=2, default=str))


def _task_line(task: Task) -> str:
    icon = STATUS_ICONS.get(task.status, "?")
    kind = " [parent]" if task.metadata.is_parent_task else ""
    return f"{icon} {task.id}: {task.title} ({task.status}){kind}"


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log progress to stderr")
def main(verbose):
    """sc - Scopecraft task CLI"""
    try:
        config = get_config()
    except ConfigurationError as e:
        _fail(e.message)
    if verbose:
        setup_logging("DEBUG")
    elif config.log_level != "WARNING":
        setup_logging(config.log_level)


# ── Project Commands ──────────────────────────────────────────────────────────


@main.command("init")
def init_project():
    """Create task storage, templates and config for this project."""
    try:
        config = get_config()
        roots = config.project_roots()
        created = project_mod.init_project(roots, load_task_config(roots, config))
    except ConfigurationError as e:
        _fail(e.message)

    click.echo(f"Project initialized: {roots.main_repo_root}")
    if roots.in_worktree:
        click.echo(f"  Worktree: {roots.worktree_root}")
    click.echo(f"  Tasks: {resolver.get_tasks_path(roots)}")
    for path in created["directories"] + created["files"]:
        click.echo(f"  Created {path}")


@main.command("paths")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def show_paths(json_output):
    """Show where each kind of artifact is stored."""
    try:
        config = get_config()
        roots = config.project_roots()
    except ConfigurationError as e:
        _fail(e.message)

    report = project_mod.describe_paths(roots)
    if json_output:
        _echo_json(report)
        return

    click.echo(f"Execution root: {roots.execution_root}")
    click.echo(f"Main repository: {roots.main_repo_root}")
    for name, info in report.items():
        click.echo(f"  {name}: {info['resolved']}")


# ── Task Commands ─────────────────────────────────────────────────────────────


@main.group("task")
def task_group():
    """Manage tasks."""
    pass


@task_group.command("create")
@click.argument("title")
@click.option("--type", "task_type", default="feature", help="feature, bug, chore, documentation, test, spike or idea")
@click.option("--area", default="general", help="Area of the codebase")
@click.option("--status", default=None, help="Initial status")
@click.option("--priority", "-p", default=None, help="highest, high, medium or low")
@click.option("--assignee", default=None)
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--workflow", type=click.Choice(STATES), default=None, help="Workflow folder")
@click.option("--template", default=None, help="Template ID, e.g. feature or bug")
@click.option("--instruction", "-i", default=None, help="Instruction text")
@click.option("--item", "items", multiple=True, help="Checklist item for the Tasks section (repeatable)")
@click.option("--parent", "parent_id", default=None, help="Create as a subtask of this parent task")
def task_create(title, task_type, area, status, priority, assignee, tags, workflow, template, instruction, items, parent_id):
    """Create a new task."""
    _, root, config = _workspace()
    options = TaskCreateOptions(
        title=title,
        type=task_type,
        area=area,
        status=status,
        priority=priority,
        assignee=assignee,
        tags=list(tags),
        workflow_state=workflow,
        template=template,
        instruction=instruction,
        tasks=list(items) or None,
    )
    task = _unwrap(tasks_mod.create(root, options, config, parent_id=parent_id))
    click.echo(f"Created task: {task.id}")
    click.echo(f"  Title: {task.title}")
    click.echo(f"  Status: {task.status}")
    click.echo(f"  Path: {task.metadata.path}")


@task_group.command("list")
@click.option("--workflow", "workflows", type=click.Choice(STATES), multiple=True, help="Workflow folder (repeatable)")
@click.option("--type", "task_type", default=None, help="Filter by task type")
@click.option("--status", default=None, help="Filter by status")
@click.option("--exclude-status", "exclude_statuses", multiple=True, help="Hide tasks with this status")
@click.option("--area", default=None, help="Filter by area")
@click.option("--tag", "tags", multiple=True, help="Match any of these tags")
@click.option("--task-type", "selector", type=click.Choice(TASK_TYPE_SELECTORS), default="top-level")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def task_list(workflows, task_type, status, exclude_statuses, area, tags, selector, json_output):
    """List tasks."""
    _, root, config = _workspace()
    filters = TaskListOptions(
        workflow_states=list(workflows) or None,
        type=task_type,
        status=status,
        exclude_statuses=list(exclude_statuses),
        area=area,
        tags=list(tags),
        task_type=selector,
    )
    tasks = _unwrap(tasks_mod.list_tasks(root, filters, config))

    if json_output:
        _echo_json([_task_dict(t) for t in tasks])
        return

    if not tasks:
        click.echo("No tasks found.")
        return

    current_state = None
    for task in tasks:
        if task.workflow_state != current_state:
            current_state = task.workflow_state
            click.echo(f"{current_state.value}:")
        click.echo(f"  {_task_line(task)}")

        if task.metadata.is_parent_task and selector == "top-level":
            for sub in _unwrap(parents_mod.list_subtasks(root, task.id, config)):
                click.echo(f"    {sub.metadata.sequence_number} {_task_line(sub)}")


@task_group.command("show")
@click.argument("task_id")
@click.option("--parent", "parent_id", default=None, help="Look the task up inside this parent")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def task_show(task_id, parent_id, json_output):
    """Show task details."""
    _, root, config = _workspace()
    task = _unwrap(tasks_mod.get(root, task_id, parent_id=parent_id, config=config))

    if json_output:
        _echo_json(_task_dict(task, full=True))
        return

    frontmatter = task.document.frontmatter
    click.echo(f"Task: {task.id}")
    click.echo(f"  Title: {task.title}")
    click.echo(f"  Type: {frontmatter.get('type')}")
    click.echo(f"  Status: {task.status}")
    click.echo(f"  Area: {frontmatter.get('area')}")
    if frontmatter.get("priority"):
        click.echo(f"  Priority: {frontmatter['priority']}")
    if frontmatter.get("tags"):
        click.echo(f"  Tags: {', '.join(frontmatter['tags'])}")
    location = task.metadata.location
    click.echo(f"  Workflow: {location.workflow_state.value}" + (f" ({location.archive_date})" if location.archive_date else ""))
    if task.metadata.parent_task:
        click.echo(f"  Parent: {task.metadata.parent_task} (sequence {task.metadata.sequence_number})")
    click.echo(f"  Path: {task.metadata.path}")

    for name, content in task.document.sections.items():
        if content:
            click.echo(f"\n## {name.capitalize() if name.islower() else name}\n\n{content}")


@task_group.command("update")
@click.argument("task_id")
@click.option("--title", default=None)
@click.option("--status", default=None)
@click.option("--type", "task_type", default=None)
@click.option("--area", default=None)
@click.option("--priority", "-p", default=None)
@click.option("--assignee", default=None)
@click.option("--tag", "tags", multiple=True, help="Replace tags (repeatable)")
@click.option("--instruction", default=None, help="Replace the Instruction section")
@click.option("--deliverable", default=None, help="Replace the Deliverable section")
@click.option("--parent", "parent_id", default=None, help="Look the task up inside this parent")
def task_update(task_id, title, status, task_type, area, priority, assignee, tags, instruction, deliverable, parent_id):
    """Update a task's metadata or sections."""
    _, root, config = _workspace()
    frontmatter = {
        key: value
        for key, value in (
            ("status", status),
            ("type", task_type),
            ("area", area),
            ("priority", priority),
            ("assignee", assignee),
            ("tags", list(tags) or None),
        )
        if value is not None
    }
    sections = {
        key: value for key, value in (("instruction", instruction), ("deliverable", deliverable)) if value is not None
    }
    if not frontmatter and not sections and title is None:
        _fail("Nothing to update.")

    patch = TaskUpdateOptions(title=title, frontmatter=frontmatter, sections=sections)
    task = _unwrap(tasks_mod.update(root, task_id, patch, config, parent_id=parent_id))
    click.echo(f"Updated task: {task.id}")
    click.echo(f"  Status: {task.status}")
    click.echo(f"  Workflow: {task.workflow_state.value}")


@task_group.command("log")
@click.argument("task_id")
@click.argument("message")
@click.option("--parent", "parent_id", default=None, help="Look the task up inside this parent")
def task_log(task_id, message, parent_id):
    """Append an entry to a task's log."""
    _, root, config = _workspace()
    task = _unwrap(tasks_mod.append_log(root, task_id, message, config, parent_id=parent_id))
    click.echo(f"Logged to {task.id}")


@task_group.command("move")
@click.argument("task_id")
@click.argument("target", type=click.Choice(STATES))
@click.option("--archive-date", default=None, help="Archive month as YYYY-MM")
@click.option("--update-status/--keep-status", default=None, help="Set the status that fits the target folder")
def task_move(task_id, target, archive_date, update_status):
    """Move a task to another workflow folder."""
    _, root, config = _workspace()
    options = TaskMoveOptions(archive_date=archive_date, update_status=update_status)
    task = _unwrap(tasks_mod.move(root, task_id, target, options, config))
    click.echo(f"Moved {task.id} to {task.workflow_state.value}")
    click.echo(f"  Path: {task.metadata.path}")


@task_group.command("start")
@click.argument("task_id")
@click.option("--parent", "parent_id", default=None, help="Look the task up inside this parent")
def task_start(task_id, parent_id):
    """Start a task - moves it to current and sets it In Progress."""
    _, root, config = _workspace()
    task = _unwrap(tasks_mod.get(root, task_id, parent_id=parent_id, config=config))

    if task.is_subtask or task.workflow_state == WorkflowState.CURRENT:
        patch = TaskUpdateOptions(frontmatter={"status": "In Progress"})
        task = _unwrap(tasks_mod.update(root, task_id, patch, config, parent_id=parent_id))
    else:
        options = TaskMoveOptions(update_status=True)
        task = _unwrap(tasks_mod.move(root, task_id, WorkflowState.CURRENT, options, config))
    click.echo(f"Started task: {task.id}")
    click.echo(f"  Path: {task.metadata.path}")


@task_group.command("complete")
@click.argument("task_id")
@click.option("--parent", "parent_id", default=None, help="Look the task up inside this parent")
@click.option("--archive/--no-archive", default=True, help="Move the finished task to the archive")
def task_complete(task_id, parent_id, archive):
    """Mark a task as done, archiving it by default."""
    _, root, config = _workspace()
    task = _unwrap(tasks_mod.get(root, task_id, parent_id=parent_id, config=config))

    if task.is_subtask or not archive:
        patch = TaskUpdateOptions(frontmatter={"status": "Done"})
        task = _unwrap(tasks_mod.update(root, task_id, patch, config, parent_id=parent_id))
    else:
        options = TaskMoveOptions(update_status=True)
        task = _unwrap(tasks_mod.move(root, task_id, WorkflowState.ARCHIVE, options, config))
    click.echo(f"Completed task: {task.id}")
    click.echo(f"  Path: {task.metadata.path}")


@task_group.command("delete")
@click.argument("task_id")
@click.option("--cascade", is_flag=True, help="Also delete a parent task's subtasks")
@click.option("--parent", "parent_id", default=None, help="Look the task up inside this parent")
def task_delete(task_id, cascade, parent_id):
    """Delete a task."""
    _, root, config = _workspace()
    task = _unwrap(tasks_mod.delete(root, task_id, cascade, config, parent_id=parent_id))
    click.echo(f"Deleted task: {task.id}")


@task_group.command("promote")
@click.argument("task_id")
@click.option("--subtask", "subtasks", multiple=True, help="Title of a subtask to add (repeatable)")
@click.option("--keep-original/--drop-original", default=True, help="Keep the task itself as subtask 01")
def task_promote(task_id, subtasks, keep_original):
    """Turn a simple task into a parent task."""
    _, root, config = _workspace()
    parent = _unwrap(parents_mod.promote_to_parent(root, task_id, list(subtasks), keep_original, config))
    click.echo(f"Promoted {parent.task.id} to a parent task")
    for sub in parent.subtasks:
        click.echo(f"  {sub.metadata.sequence_number} {sub.id}: {sub.title}")


# ── Parent Commands ───────────────────────────────────────────────────────────


@main.group("parent")
def parent_group():
    """Manage parent tasks and their subtasks."""
    pass


@parent_group.command("create")
@click.argument("title")
@click.option("--type", "task_type", default="feature")
@click.option("--area", default="general")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--workflow", type=click.Choice(STATES), default=None, help="Workflow folder")
@click.option("--instruction", "-i", default=None, help="Instruction text")
@click.option("--subtask", "subtasks", multiple=True, help="Title of a subtask to add (repeatable)")
def parent_create(title, task_type, area, tags, workflow, instruction, subtasks):
    """Create a parent task, optionally with subtasks."""
    _, root, config = _workspace()
    options = TaskCreateOptions(
        title=title,
        type=task_type,
        area=area,
        tags=list(tags),
        workflow_state=workflow,
        instruction=instruction,
    )
    parent = _unwrap(parents_mod.create_parent(root, options, config))
    click.echo(f"Created parent task: {parent.id}")
    click.echo(f"  Path: {parent.metadata.path.parent}")

    for sub_title in subtasks:
        sub = _unwrap(parents_mod.add_subtask(root, parent.id, TaskCreateOptions(title=sub_title, type=task_type, area=area), config))
        click.echo(f"  {sub.metadata.sequence_number} {sub.id}: {sub.title}")


@parent_group.command("show")
@click.argument("parent_id")
@click.option("--json-output", "--json", is_flag=True, help="Output as JSON")
def parent_show(parent_id, json_output):
    """Show a parent task with its subtasks."""
    _, root, config = _workspace()
    parent = _unwrap(parents_mod.get_parent(root, parent_id, config))
    sequence = _unwrap(parents_mod.subtask_sequence_info(root, parent_id, config))

    if json_output:
        data = _task_dict(parent.task)
        data["subtasks"] = [_task_dict(s) for s in parent.subtasks]
        data["supporting_files"] = parent.supporting_files
        _echo_json(data)
        return

    click.echo(f"Parent task: {parent.task.id}")
    click.echo(f"  Title: {parent.task.title}")
    click.echo(f"  Status: {parent.task.status}")
    if not parent.subtasks:
        click.echo("  No subtasks.")
    for info in sequence:
        parallel = f" [parallel with: {', '.join(info.parallel_with)}]" if info.parallel_with else ""
        click.echo(f"  {info.sequence} {info.id}: {info.title} ({info.status}){parallel}")
    for name in parent.supporting_files:
        click.echo(f"  + {name}")


@parent_group.command("add-subtask")
@click.argument("parent_id")
@click.argument("title")
@click.option("--type", "task_type", default="feature")
@click.option("--area", default="general")
@click.option("--instruction", "-i", default=None, help="Instruction text")
def parent_add_subtask(parent_id, title, task_type, area, instruction):
    """Add a subtask with the next sequence number."""
    _, root, config = _workspace()
    options = TaskCreateOptions(title=title, type=task_type, area=area, instruction=instruction)
    sub = _unwrap(parents_mod.add_subtask(root, parent_id, options, config))
    click.echo(f"Created subtask: {sub.id}")
    click.echo(f"  Sequence: {sub.metadata.sequence_number}")


@parent_group.command("resequence")
@click.argument("parent_id")
@click.argument("assignments", nargs=-1, required=True)
def parent_resequence(parent_id, assignments):
    """Renumber subtasks, given as SUBTASK_ID=NN pairs."""
    sequences = {}
    for assignment in assignments:
        subtask_id, sep, sequence = assignment.partition("=")
        if not sep:
            _fail(f"Expected SUBTASK_ID=NN, got {assignment!r}")
        sequences[subtask_id] = sequence

    _, root, config = _workspace()
    subtasks = _unwrap(parents_mod.resequence(root, parent_id, sequences, config))
    for sub in subtasks:
        click.echo(f"  {sub.metadata.sequence_number} {sub.id}: {sub.title}")


@parent_group.command("parallelize")
@click.argument("parent_id")
@click.argument("subtask_ids", nargs=-1, required=True)
@click.option("--sequence", default=None, help="Shared sequence number (default: lowest of the group)")
def parent_parallelize(parent_id, subtask_ids, sequence):
    """Let several subtasks run in parallel."""
    _, root, config = _workspace()
    subtasks = _unwrap(parents_mod.parallelize(root, parent_id, list(subtask_ids), sequence, config))
    for sub in subtasks:
        click.echo(f"  {sub.metadata.sequence_number} {sub.id}: {sub.title}")


# ── Template Commands ─────────────────────────────────────────────────────────


@main.group("template")
def template_group():
    """Manage task templates."""
    pass


@template_group.command("list")
def template_list():
    """List available templates."""
    _, _, config = _workspace()
    templates = templates_mod.list_templates(config.templates_dir)
    if not templates:
        click.echo("No templates found. Run 'sc template init' to create the defaults.")
        return
    for info in templates:
        click.echo(f"  {info.id}: {info.name} ({info.filename})")


@template_group.command("init")
def template_init():
    """Create the default templates."""
    roots, _, _ = _workspace()
    templates_dir = resolver.primary_path(resolver.PathType.TEMPLATES, roots)
    created = templates_mod.initialize_templates(templates_dir)
    if not created:
        click.echo(f"Templates already present in {templates_dir}")
        return
    click.echo(f"Created {len(created)} templates in {templates_dir}")


if __name__ == "__main__":
    main()
