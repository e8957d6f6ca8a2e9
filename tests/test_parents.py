"""Tests for parent tasks and subtask sequencing."""

import tempfile
from pathlib import Path

import pytest

from scopecraft.config import TaskConfig
from scopecraft.core import parents as parents_mod
from scopecraft.core import tasks as tasks_mod
from scopecraft.errors import ConflictError, ValidationError
from scopecraft.storage.models import TaskCreateOptions, WorkflowState


@pytest.fixture
def root():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp).resolve()


@pytest.fixture
def config():
    return TaskConfig()


@pytest.fixture
def epic(root, config):
    """A parent task with three subtasks."""
    parent = parents_mod.create_parent_task(root, TaskCreateOptions(title="Checkout Redesign", area="web"), config)
    for title in ("Design", "Build", "Test"):
        tasks_mod.create_task(root, TaskCreateOptions(title=title, area="web"), config, parent_id=parent.id)
    return parent


def _bare(task_id: str) -> str:
    return task_id[3:]


class TestCreateParent:
    def test_layout(self, root, config):
        parent = parents_mod.create_parent_task(root, TaskCreateOptions(title="Checkout Redesign"), config)
        assert parent.metadata.path == root / "backlog" / parent.id / "_overview.md"
        assert parent.metadata.is_parent_task
        assert "Coordinate" in parent.document.sections["instruction"]
        assert parent.document.sections["tasks"]

    def test_explicit_id_conflict(self, root, config):
        tasks_mod.create_task(root, TaskCreateOptions(title="Taken", id="taken-0101-AB"), config)
        result = parents_mod.create_parent(root, TaskCreateOptions(title="Again", id="taken-0101-AB"), config)
        assert result.error_kind == "conflict"

    def test_subtask_numbering(self, root, config, epic):
        parent = parents_mod.load_parent(root, epic.id, config)
        assert [s.metadata.sequence_number for s in parent.subtasks] == ["01", "02", "03"]
        assert parent.subtasks[1].id.startswith("02_build-")
        assert all(s.metadata.parent_task == epic.id for s in parent.subtasks)

    def test_subtask_inherits_parent_state(self, root, config):
        parent = parents_mod.create_parent_task(
            root, TaskCreateOptions(title="Live", workflow_state="current"), config
        )
        sub = parents_mod.add_subtask(root, parent.id, TaskCreateOptions(title="Piece"), config).unwrap()
        assert sub.workflow_state == WorkflowState.CURRENT

    def test_add_subtask_to_simple_task(self, root, config):
        simple = tasks_mod.create_task(root, TaskCreateOptions(title="Plain"), config)
        result = parents_mod.add_subtask(root, simple.id, TaskCreateOptions(title="Piece"), config)
        assert result.error_kind == "validation"

    def test_add_subtask_to_missing_parent(self, root, config):
        result = parents_mod.add_subtask(root, "ghost-0101-AB", TaskCreateOptions(title="Piece"), config)
        assert result.error_kind == "not_found"

    def test_supporting_files(self, root, config, epic):
        (epic.metadata.path.parent / "research.md").write_text("notes")
        assert parents_mod.get_parent(root, epic.id, config).data.supporting_files == ["research.md"]

    def test_list_subtasks(self, root, config, epic):
        subtasks = parents_mod.list_subtasks(root, epic.id, config).data
        assert [s.title for s in subtasks] == ["Design", "Build", "Test"]


class TestResequence:
    def test_swap(self, root, config, epic):
        design, build, _ = parents_mod.load_parent(root, epic.id, config).subtasks
        result = parents_mod.resequence_subtasks(root, epic.id, {design.id: "02", build.id: "01"}, config)

        assert [s.title for s in result[:2]] == ["Build", "Design"]
        assert result[0].id == f"01_{_bare(build.id)}"
        assert not design.metadata.path.exists()

    def test_bare_ids(self, root, config, epic):
        test = parents_mod.load_parent(root, epic.id, config).subtasks[2]
        result = parents_mod.resequence_subtasks(root, epic.id, {_bare(test.id): "10"}, config)
        assert result[-1].id == f"10_{_bare(test.id)}"

    @pytest.mark.parametrize("sequence", ["00", "100", "1", "ab"])
    def test_bad_sequence(self, root, config, epic, sequence):
        design = parents_mod.load_parent(root, epic.id, config).subtasks[0]
        result = parents_mod.resequence(root, epic.id, {design.id: sequence}, config)
        assert result.error_kind == "validation"

    def test_unknown_subtask(self, root, config, epic):
        assert parents_mod.resequence(root, epic.id, {"ghost-0101-AB": "05"}, config).error_kind == "not_found"

    def test_refuses_to_overwrite(self, root, config, epic):
        design = parents_mod.load_parent(root, epic.id, config).subtasks[0]
        clash = design.metadata.path.with_name(f"04_{_bare(design.id)}.task.md")
        clash.write_text(design.metadata.path.read_text())
        with pytest.raises(ConflictError):
            parents_mod.resequence_subtasks(root, epic.id, {design.id: "04"}, config)

    def test_failed_rename_restores_original_names(self, root, config, epic, monkeypatch):
        design, build, test = parents_mod.load_parent(root, epic.id, config).subtasks
        blocked = f"01_{_bare(build.id)}.task.md"
        real_rename = Path.rename

        def rename(self, target):
            if Path(target).name == blocked:
                raise PermissionError(13, "Permission denied", str(target))
            return real_rename(self, target)

        monkeypatch.setattr(Path, "rename", rename)
        result = parents_mod.resequence(root, epic.id, {design.id: "02", build.id: "01"}, config)
        monkeypatch.undo()

        assert result.error_kind == "io"
        folder = design.metadata.path.parent
        assert not [p.name for p in folder.iterdir() if p.name.startswith(".")]
        assert [s.id for s in parents_mod.load_parent(root, epic.id, config).subtasks] == [design.id, build.id, test.id]


class TestParallelize:
    def test_shared_sequence(self, root, config, epic):
        design, build, test = parents_mod.load_parent(root, epic.id, config).subtasks
        parents_mod.parallelize_subtasks(root, epic.id, [_bare(build.id), _bare(test.id)], config=config)

        info = {s.title: s for s in parents_mod.sequence_info(root, epic.id, config)}
        assert info["Build"].sequence == info["Test"].sequence == "02"
        assert info["Build"].parallel_with == [info["Test"].id]
        assert info["Design"].parallel_with == []

    def test_explicit_sequence(self, root, config, epic):
        design, build, _ = parents_mod.load_parent(root, epic.id, config).subtasks
        result = parents_mod.parallelize(root, epic.id, [design.id, build.id], sequence="05", config=config)
        assert sorted(s.metadata.sequence_number for s in result.data) == ["03", "05", "05"]

    def test_needs_two(self, root, config, epic):
        design = parents_mod.load_parent(root, epic.id, config).subtasks[0]
        assert parents_mod.parallelize(root, epic.id, [design.id], config=config).error_kind == "validation"


class TestPromote:
    def test_keep_original(self, root, config):
        task = tasks_mod.create_task(root, TaskCreateOptions(title="Grew Too Big", area="api"), config)
        parent = parents_mod.promote_task(root, task.id, ["Split out API", "Write docs"], config=config)

        folder = root / "backlog" / task.id
        assert parent.task.metadata.path == folder / "_overview.md"
        assert not task.metadata.path.exists()
        assert [s.id for s in parent.subtasks][0] == f"01_{task.id}"
        assert [s.title for s in parent.subtasks] == ["Grew Too Big", "Split out API", "Write docs"]
        assert parent.subtasks[1].document.frontmatter["area"] == "api"

    def test_drop_original(self, root, config):
        task = tasks_mod.create_task(root, TaskCreateOptions(title="Grew Too Big"), config)
        parent = parents_mod.promote_task(root, task.id, keep_original=False, config=config)
        assert parent.subtasks == []
        assert parent.task.title == "Grew Too Big"

    def test_promoted_task_is_found_by_id(self, root, config):
        task = tasks_mod.create_task(root, TaskCreateOptions(title="Grew Too Big"), config)
        parents_mod.promote_task(root, task.id, config=config)
        assert tasks_mod.load_task(root, task.id, config).metadata.is_parent_task

    def test_cannot_promote_parent_or_subtask(self, root, config, epic):
        assert parents_mod.promote_to_parent(root, epic.id, config=config).error_kind == "validation"
        sub = parents_mod.load_parent(root, epic.id, config).subtasks[0]
        assert parents_mod.promote_to_parent(root, sub.id, config=config).error_kind == "validation"

    def test_cannot_promote_archived(self, root, config):
        task = tasks_mod.create_task(root, TaskCreateOptions(title="Old", workflow_state="archive"), config)
        with pytest.raises(ValidationError):
            parents_mod.promote_task(root, task.id, config=config)
