"""Task templates stored as `NN_type.md` files in the templates directory."""

import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path

from scopecraft.storage import documents
from scopecraft.storage.layout import write_text_atomic
from scopecraft.storage.models import TaskDocument

logger = logging.getLogger(__name__)

TEMPLATE_FILE_RE = re.compile(r"^(\d+)_(\w+)\.md$")
_TITLE_PLACEHOLDER_RE = re.compile(r"<< ?(?:FEATURE )?TITLE ?>>|\[Title\]", re.IGNORECASE)

TEMPLATE_NAMES = {
    "feature": "Feature",
    "bug": "Bug",
    "chore": "Chore",
    "documentation": "Documentation",
    "test": "Test",
    "spike": "Spike",
    "idea": "Idea",
}


@dataclass
class TemplateInfo:
    id: str
    filename: str
    type: str
    name: str


DEFAULT_TEMPLATES = {
    "01_feature.md": """## Instruction

Implement << FEATURE TITLE >> with the following requirements:
- [Requirement 1]
- [Requirement 2]

## Tasks

- [ ] Analyze requirements and sketch the design
- [ ] Implement core functionality
- [ ] Add unit tests
- [ ] Update documentation

## Deliverable

## Log
""",
    "02_bug.md": """## Instruction

Fix the bug: << TITLE >>

**Steps to Reproduce:**
1. [Step 1]

**Expected Behavior:**
[What should happen]

**Actual Behavior:**
[What actually happens]

## Tasks

- [ ] Reproduce the bug
- [ ] Identify root cause
- [ ] Implement fix
- [ ] Add regression test

## Deliverable

## Log
""",
    "03_chore.md": """## Instruction

Complete maintenance task: << TITLE >>

**Purpose:**
[Why this maintenance is needed]

## Tasks

- [ ] Review current state
- [ ] Execute maintenance
- [ ] Verify results

## Deliverable

## Log
""",
    "04_documentation.md": """## Instruction

Create or update documentation for: << TITLE >>

**Target Audience:**
[Who will read this documentation]

## Tasks

- [ ] Outline the structure
- [ ] Write first draft
- [ ] Add examples
- [ ] Review and polish

## Deliverable

## Log
""",
    "05_test.md": """## Instruction

Create or improve tests for: << TITLE >>

**Coverage Goals:**
[What should be tested]

## Tasks

- [ ] Identify test scenarios
- [ ] Implement tests
- [ ] Verify coverage

## Deliverable

## Log
""",
    "06_spike.md": """## Instruction

Research and investigate: << TITLE >>

**Research Questions:**
1. [Question 1]

**Success Criteria:**
[What defines a successful spike]

## Tasks

- [ ] Define research scope
- [ ] Prototype or experiment
- [ ] Document findings and recommendations

## Deliverable

## Log
""",
}


def list_templates(templates_dir: Path | None) -> list[TemplateInfo]:
    if templates_dir is None or not templates_dir.is_dir():
        return []

    templates = []
    for path in templates_dir.iterdir():
        match = TEMPLATE_FILE_RE.match(path.name)
        if match and path.is_file():
            template_type = match.group(2)
            templates.append(
                TemplateInfo(
                    id=template_type,
                    filename=path.name,
                    type=template_type,
                    name=TEMPLATE_NAMES.get(template_type, template_type.title()),
                )
            )
    return sorted(templates, key=lambda t: t.filename)


def get_template(templates_dir: Path | None, template_id: str) -> str | None:
    """Raw content of a template, looked up by type or by file stem."""
    for info in list_templates(templates_dir):
        if template_id in (info.id, info.filename, info.filename.removesuffix(".md")):
            return (templates_dir / info.filename).read_text(encoding="utf-8")
    return None


def apply_template(
    content: str,
    title: str,
    instruction: str | None = None,
    tasks: list[str] | None = None,
    deliverable: str | None = None,
    custom_sections: dict[str, str] | None = None,
) -> TaskDocument:
    """Fill title placeholders and overlay explicitly given sections."""
    filled = _TITLE_PLACEHOLDER_RE.sub(lambda _: title, content)
    document = replace(documents.parse(filled), title=title)

    if instruction:
        document = documents.update_section(document, "instruction", instruction)
    if tasks:
        document = documents.update_section(document, "tasks", documents.format_tasks_list(tasks))
    if deliverable:
        document = documents.update_section(document, "deliverable", deliverable)
    for name, body in (custom_sections or {}).items():
        document = documents.update_section(document, name, body)
    return document


def initialize_templates(templates_dir: Path) -> list[Path]:
    """Write the default templates when the directory holds none yet."""
    templates_dir.mkdir(parents=True, exist_ok=True)
    if list_templates(templates_dir):
        return []

    created = []
    for filename, content in DEFAULT_TEMPLATES.items():
        path = templates_dir / filename
        if not path.exists():
            write_text_atomic(path, content)
            created.append(path)
    logger.info("Initialized %d templates in %s", len(created), templates_dir)
    return created
