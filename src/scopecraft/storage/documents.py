"""Task document codec: frontmatter plus `## `-delimited Markdown sections.

A stored task looks like:

    ---
    type: feature
    status: To Do
    area: auth
    tags: [backend, security]
    ---

    # Implement OAuth Login

    ## Instruction

    ...

Frontmatter is read as YAML (`---`) or, for older files, TOML (`+++`).
It is always written back as YAML.
"""

import re
import tomllib
from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable

import yaml

from scopecraft.errors import ValidationError
from scopecraft.storage.models import (
    PRIORITIES,
    REQUIRED_SECTIONS,
    TASK_STATUSES,
    TASK_TYPES,
    TaskDocument,
)

FRONTMATTER_ORDER = ("type", "status", "area", "priority", "assignee", "tags")

_SECTION_HEADING_RE = re.compile(r"^## ", re.MULTILINE)

_STATUS_ALIASES = {
    "to do": "To Do",
    "todo": "To Do",
    "in progress": "In Progress",
    "inprogress": "In Progress",
    "done": "Done",
    "complete": "Done",
    "completed": "Done",
    "blocked": "Blocked",
    "archived": "Archived",
}

_TYPE_ALIASES = {
    "feat": "feature",
    "implementation": "feature",
    "enhancement": "feature",
    "fix": "bug",
    "bugfix": "bug",
    "docs": "documentation",
    "doc": "documentation",
    "tests": "test",
    "testing": "test",
    "research": "spike",
    "exploration": "spike",
    "maintenance": "chore",
}

_PRIORITY_ALIASES = {
    "critical": "highest",
    "urgent": "highest",
    "normal": "medium",
}


class _FrontmatterDumper(yaml.SafeDumper):
    pass


def _represent_list(dumper: yaml.SafeDumper, data: list) -> yaml.Node:
    flow = all(not isinstance(item, (list, dict)) for item in data)
    return dumper.represent_sequence("tag:yaml.org,2002:seq", data, flow_style=flow)


_FrontmatterDumper.add_representer(list, _represent_list)


# ── Vocabulary normalization ──────────────────────────────────────────────────


def _label(value: Any) -> str:
    # Drop emoji or other decoration in front of the word
    text = re.sub(r"^[^\w]+", "", str(value).strip().lower())
    text = re.sub(r"[_\-\s]+", " ", text)
    return text.strip()


def normalize_status(value: Any) -> str | None:
    """Map a status label onto its canonical form, or None if unknown."""
    if value is None:
        return None
    label = _label(value)
    return _STATUS_ALIASES.get(label) or _STATUS_ALIASES.get(label.replace(" ", ""))


def normalize_type(value: Any) -> str | None:
    if value is None:
        return None
    label = _label(value)
    if label in TASK_TYPES:
        return label
    return _TYPE_ALIASES.get(label)


def normalize_priority(value: Any) -> str | None:
    if value is None:
        return None
    label = _label(value)
    if label in PRIORITIES:
        return label
    return _PRIORITY_ALIASES.get(label)


def normalize_frontmatter(frontmatter: dict[str, Any]) -> dict[str, Any]:
    """Canonicalize type, status, priority and tags. Unknown values are left as-is."""
    result = dict(frontmatter)
    for key, normalizer in (
        ("type", normalize_type),
        ("status", normalize_status),
        ("priority", normalize_priority),
    ):
        if result.get(key) is not None:
            result[key] = normalizer(result[key]) or result[key]
    if isinstance(result.get("tags"), str):
        result["tags"] = [t.strip() for t in result["tags"].split(",") if t.strip()]
    return result


VALIDATED_FIELDS = ("title", "type", "status", "area", "priority", "tags")


def validate_document(document: TaskDocument, fields: Iterable[str] | None = None) -> None:
    """Check the title and the required common frontmatter fields.

    fields narrows the check, e.g. to the keys a partial update touched.
    """
    fields = set(VALIDATED_FIELDS if fields is None else fields)
    errors = []
    frontmatter = document.frontmatter

    if "title" in fields and not document.title.strip():
        errors.append("title is required")
    if "type" in fields and frontmatter.get("type") not in TASK_TYPES:
        errors.append(f"type must be one of {', '.join(TASK_TYPES)}")
    if "status" in fields and frontmatter.get("status") not in TASK_STATUSES:
        errors.append(f"status must be one of {', '.join(TASK_STATUSES)}")
    if "area" in fields and (not isinstance(frontmatter.get("area"), str) or not frontmatter["area"].strip()):
        errors.append("area is required")
    priority = frontmatter.get("priority")
    if "priority" in fields and priority is not None and priority not in PRIORITIES:
        errors.append(f"priority must be one of {', '.join(PRIORITIES)}")
    tags = frontmatter.get("tags")
    if "tags" in fields and tags is not None and not (
        isinstance(tags, list) and all(isinstance(t, str) for t in tags)
    ):
        errors.append("tags must be a list of strings")

    if errors:
        raise ValidationError(f"Invalid task document: {'; '.join(errors)}", errors=errors)


# ── Sections ──────────────────────────────────────────────────────────────────


def section_key(heading: str) -> str:
    """Key for a section heading: lower-case for the standard sections, verbatim otherwise."""
    heading = heading.strip()
    if heading.lower() in REQUIRED_SECTIONS:
        return heading.lower()
    return heading


def section_title(key: str) -> str:
    if key in REQUIRED_SECTIONS:
        return key.capitalize()
    return key


def sanitize_section_content(content: str) -> str:
    """Demote line-leading `## ` to `### ` so bodies cannot open new sections."""
    return _SECTION_HEADING_RE.sub("### ", content)


def _trim_blank_lines(lines: list[str]) -> str:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return "\n".join(lines[start:end]).rstrip()


def ensure_required_sections(document: TaskDocument) -> TaskDocument:
    sections = {key: document.sections.get(key, "") for key in REQUIRED_SECTIONS}
    sections.update({k: v for k, v in document.sections.items() if k not in REQUIRED_SECTIONS})
    return replace(document, sections=sections)


def update_section(document: TaskDocument, section: str, content: str) -> TaskDocument:
    sections = dict(document.sections)
    sections[section_key(section)] = sanitize_section_content(content.strip())
    return replace(document, sections=sections)


def add_log_entry(document: TaskDocument, message: str, now: datetime | None = None) -> TaskDocument:
    """Append a timestamped line to the log section."""
    now = now or datetime.now()
    entry = f"- {now:%Y-%m-%d %H:%M}: {message.strip()}"
    existing = document.sections.get("log", "").rstrip()
    return update_section(document, "log", f"{existing}\n{entry}" if existing else entry)


def format_tasks_list(items: list[str]) -> str:
    return "\n".join(f"- [ ] {item}" for item in items)


# ── Parse ─────────────────────────────────────────────────────────────────────


def _closing_delimiter(lines: list[str], delimiter: str) -> int | None:
    for index, line in enumerate(lines[1:], start=1):
        if line.rstrip() == delimiter:
            return index
    return None


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Separate the frontmatter mapping from the Markdown body."""
    text = text.lstrip("\ufeff").replace("\r\n", "\n")
    lines = text.split("\n")
    delimiter = lines[0].rstrip() if lines else ""
    if delimiter not in ("---", "+++"):
        return {}, text

    end = _closing_delimiter(lines, delimiter)
    if end is None:
        raise ValidationError(f"Unterminated frontmatter block (missing closing {delimiter})")

    raw = "\n".join(lines[1:end])
    body = "\n".join(lines[end + 1:])
    try:
        if delimiter == "---":
            data = yaml.safe_load(raw) if raw.strip() else {}
        else:
            data = tomllib.loads(raw)
    except (yaml.YAMLError, tomllib.TOMLDecodeError) as e:
        raise ValidationError(f"Malformed frontmatter: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Frontmatter must be a mapping")
    return data, body


def parse(text: str) -> TaskDocument:
    """Parse stored text into a TaskDocument with all standard sections present."""
    frontmatter, body = split_frontmatter(text)

    title = ""
    preamble: list[str] = []
    sections: dict[str, list[str]] = {}
    current: str | None = None

    # serialize demotes body headings, so every "## " line is a section boundary
    for line in body.split("\n"):
        if line.startswith("## "):
            current = section_key(line[3:])
            sections.setdefault(current, [])
            continue
        if current is None and not title and line.startswith("# "):
            title = line[2:].strip()
            continue
        if current is None:
            preamble.append(line)
        else:
            sections[current].append(line)

    parsed = {key: _trim_blank_lines(lines) for key, lines in sections.items()}
    intro = _trim_blank_lines(preamble)
    if intro and not parsed.get("instruction"):
        parsed["instruction"] = intro

    return ensure_required_sections(TaskDocument(title=title, frontmatter=frontmatter, sections=parsed))


# ── Serialize ─────────────────────────────────────────────────────────────────


def _ordered_frontmatter(frontmatter: dict[str, Any]) -> dict[str, Any]:
    ordered = {key: frontmatter[key] for key in FRONTMATTER_ORDER if frontmatter.get(key) is not None}
    for key, value in frontmatter.items():
        if key not in ordered and value is not None:
            ordered[key] = value
    return {k: list(v) if isinstance(v, tuple) else v for k, v in ordered.items()}


def serialize(document: TaskDocument) -> str:
    """Render a TaskDocument as YAML frontmatter plus Markdown sections."""
    parts = []

    frontmatter = _ordered_frontmatter(document.frontmatter)
    if frontmatter:
        dumped = yaml.dump(
            frontmatter,
            Dumper=_FrontmatterDumper,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
        parts.append(f"---\n{dumped}---\n")

    parts.append(f"# {document.title.strip()}\n")

    sections = ensure_required_sections(document).sections
    for key, content in sections.items():
        body = sanitize_section_content(_trim_blank_lines(content.split("\n")))
        heading = f"## {section_title(key)}\n"
        parts.append(f"{heading}\n{body}\n" if body else heading)

    return "\n".join(parts).rstrip("\n") + "\n"
