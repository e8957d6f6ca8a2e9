"""Tests for task templates."""

import tempfile
from pathlib import Path

import pytest

from scopecraft.core import templates as templates_mod


@pytest.fixture
def templates_dir():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp) / ".templates"


def test_initialize_writes_defaults(templates_dir):
    created = templates_mod.initialize_templates(templates_dir)
    assert [p.name for p in created] == sorted(templates_mod.DEFAULT_TEMPLATES)
    assert templates_mod.initialize_templates(templates_dir) == []


def test_initialize_keeps_existing_templates(templates_dir):
    templates_dir.mkdir()
    (templates_dir / "01_feature.md").write_text("## Instruction\n\nmine\n")
    assert templates_mod.initialize_templates(templates_dir) == []
    assert (templates_dir / "01_feature.md").read_text() == "## Instruction\n\nmine\n"


def test_list_templates(templates_dir):
    templates_mod.initialize_templates(templates_dir)
    (templates_dir / "README.md").write_text("not a template")
    (templates_dir / "07_research_note.md").write_text("## Instruction\n")

    listed = templates_mod.list_templates(templates_dir)
    assert [t.id for t in listed] == ["feature", "bug", "chore", "documentation", "test", "spike", "research_note"]
    assert listed[1].name == "Bug"
    assert listed[-1].name == "Research_Note"


def test_list_templates_without_directory(templates_dir):
    assert templates_mod.list_templates(templates_dir) == []
    assert templates_mod.list_templates(None) == []


@pytest.mark.parametrize("template_id", ["bug", "02_bug.md", "02_bug"])
def test_get_template(templates_dir, template_id):
    templates_mod.initialize_templates(templates_dir)
    assert "Fix the bug" in templates_mod.get_template(templates_dir, template_id)


def test_get_unknown_template(templates_dir):
    templates_mod.initialize_templates(templates_dir)
    assert templates_mod.get_template(templates_dir, "epic") is None


def test_apply_template_placeholders():
    content = "## Instruction\n\nBuild [Title] now. See <<TITLE>>.\n\n## Tasks\n\n- [ ] a\n"
    document = templates_mod.apply_template(content, "Search")
    assert document.title == "Search"
    assert document.sections["instruction"] == "Build Search now. See Search."
    assert document.sections["tasks"] == "- [ ] a"


def test_apply_template_overlays():
    document = templates_mod.apply_template(
        templates_mod.DEFAULT_TEMPLATES["06_spike.md"],
        "Vector search",
        tasks=["Benchmark"],
        deliverable="A recommendation",
        custom_sections={"Risks": "Cost"},
    )
    assert "Research and investigate: Vector search" in document.sections["instruction"]
    assert document.sections["tasks"] == "- [ ] Benchmark"
    assert document.sections["deliverable"] == "A recommendation"
    assert document.sections["Risks"] == "Cost"


def test_apply_empty_template():
    document = templates_mod.apply_template("", "Bare", instruction="Just this")
    assert document.sections["instruction"] == "Just this"
    assert document.sections["log"] == ""
