"""Data models for the task core."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any


class WorkflowState(str, Enum):
    BACKLOG = "backlog"
    CURRENT = "current"
    ARCHIVE = "archive"


# Order bare IDs are searched in and listings are grouped by
STATE_SEARCH_ORDER = (WorkflowState.CURRENT, WorkflowState.BACKLOG, WorkflowState.ARCHIVE)

TASK_TYPES = ("feature", "bug", "chore", "documentation", "test", "spike", "idea")
TASK_STATUSES = ("To Do", "In Progress", "Done", "Blocked", "Archived")
PRIORITIES = ("highest", "high", "medium", "low")
ACTIVE_STATUSES = ("To Do", "In Progress")

REQUIRED_SECTIONS = ("instruction", "tasks", "deliverable", "log")

STATUS_FOR_STATE = {
    WorkflowState.BACKLOG: "To Do",
    WorkflowState.CURRENT: "In Progress",
    WorkflowState.ARCHIVE: "Done",
}

TASK_TYPE_SELECTORS = ("simple", "parent", "subtask", "top-level", "all")


@dataclass
class TaskIdComponents:
    descriptive_name: str
    date_code: str
    random_suffix: str
    sequence_number: str | None = None

    @property
    def month(self) -> int:
        return int(self.date_code[:2])

    @property
    def day(self) -> int:
        return int(self.date_code[2:])

    def format(self) -> str:
        task_id = f"{self.descriptive_name}-{self.date_code}-{self.random_suffix}"
        if self.sequence_number:
            return f"{self.sequence_number}_{task_id}"
        return task_id


@dataclass
class TaskLocation:
    workflow_state: WorkflowState
    archive_date: str | None = None

    def relative_dir(self, folder_name: str) -> Path:
        if self.archive_date:
            return Path(folder_name) / self.archive_date
        return Path(folder_name)


@dataclass
class TaskDocument:
    title: str = ""
    frontmatter: dict[str, Any] = field(default_factory=dict)
    sections: dict[str, str] = field(default_factory=dict)


@dataclass
class TaskMetadata:
    id: str
    filename: str
    path: Path
    location: TaskLocation
    is_parent_task: bool = False
    parent_task: str | None = None
    sequence_number: str | None = None


@dataclass
class Task:
    metadata: TaskMetadata
    document: TaskDocument

    @property
    def id(self) -> str:
        return self.metadata.id

    @property
    def title(self) -> str:
        return self.document.title

    @property
    def status(self) -> str | None:
        return self.document.frontmatter.get("status")

    @property
    def workflow_state(self) -> WorkflowState:
        return self.metadata.location.workflow_state

    @property
    def is_subtask(self) -> bool:
        return self.metadata.parent_task is not None


@dataclass
class ParentTask:
    task: Task
    subtasks: list[Task] = field(default_factory=list)
    supporting_files: list[str] = field(default_factory=list)


@dataclass
class SubtaskSequence:
    id: str
    title: str
    sequence: str
    status: str | None = None
    parallel_with: list[str] = field(default_factory=list)


@dataclass
class TaskEvent:
    event_type: str
    task_id: str
    path: Path | None = None
    previous_path: Path | None = None
    workflow_state: WorkflowState | None = None
    created_at: datetime | None = None


# ── Operation options ─────────────────────────────────────────────────────────


@dataclass
class TaskCreateOptions:
    title: str
    type: str = "feature"
    area: str = "general"
    status: str | None = None
    priority: str | None = None
    assignee: str | None = None
    tags: list[str] | str = field(default_factory=list)
    workflow_state: WorkflowState | str | None = None
    template: str | None = None
    instruction: str | None = None
    tasks: list[str] | None = None
    deliverable: str | None = None
    custom_metadata: dict[str, Any] = field(default_factory=dict)
    custom_sections: dict[str, str] = field(default_factory=dict)
    id: str | None = None
    created_on: date | None = None


@dataclass
class TaskUpdateOptions:
    title: str | None = None
    frontmatter: dict[str, Any] = field(default_factory=dict)
    sections: dict[str, str] = field(default_factory=dict)
    log_entry: str | None = None


@dataclass
class TaskMoveOptions:
    archive_date: str | None = None
    update_status: bool | None = None


@dataclass
class TaskListOptions:
    workflow_states: list[WorkflowState | str] | None = None
    type: str | None = None
    status: str | None = None
    exclude_statuses: list[str] = field(default_factory=list)
    area: str | None = None
    tags: list[str] = field(default_factory=list)
    task_type: str = "top-level"
    parent_id: str | None = None
