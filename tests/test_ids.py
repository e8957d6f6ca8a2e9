"""Tests for task ID generation and parsing."""

import random
import re
from datetime import date

import pytest

from scopecraft.core import ids as ids_mod
from scopecraft.errors import ConflictError


class TestSlugify:
    def test_basic(self):
        assert ids_mod.slugify("Implement OAuth Login") == "implement-oauth-login"

    def test_special_chars(self):
        assert ids_mod.slugify("Auth: Login & Signup!") == "auth-login-signup"

    def test_multiple_spaces(self):
        assert ids_mod.slugify("  too   many   spaces  ") == "too-many-spaces"

    def test_underscores_become_hyphens(self):
        assert ids_mod.slugify("snake_case_title") == "snake-case-title"

    def test_truncation(self):
        assert len(ids_mod.slugify("a" * 100)) == 50

    def test_truncation_drops_trailing_hyphen(self):
        slug = ids_mod.slugify("a" * 49 + " b")
        assert not slug.endswith("-")
        assert slug == "a" * 49


class TestGenerate:
    def test_scenario_format(self):
        task_id = ids_mod.generate_task_id("Implement OAuth Login", date(2025, 5, 18))
        assert re.fullmatch(r"implement-oauth-login-0518-[A-Z0-9]{2}", task_id)

    def test_suffix_alphabet(self):
        assert len(ids_mod.SUFFIX_ALPHABET) == 33
        assert not set("ILO") & set(ids_mod.SUFFIX_ALPHABET)
        for _ in range(50):
            suffix = ids_mod.generate_task_id("x", date(2025, 1, 1))[-2:]
            assert set(suffix) <= set(ids_mod.SUFFIX_ALPHABET)

    def test_empty_slug_falls_back(self):
        assert ids_mod.generate_task_id("!!!", date(2025, 1, 2)).startswith("task-0102-")

    def test_seeded_rng_is_deterministic(self):
        first = ids_mod.generate_task_id("Same", date(2025, 3, 4), random.Random(7))
        second = ids_mod.generate_task_id("Same", date(2025, 3, 4), random.Random(7))
        assert first == second

    @pytest.mark.parametrize(
        "title,on",
        [
            ("Implement OAuth Login", date(2025, 5, 18)),
            ("Fix crash", date(2024, 12, 31)),
            ("x", date(2025, 1, 1)),
        ],
    )
    def test_parse_recovers_components(self, title, on):
        components = ids_mod.parse_task_id(ids_mod.generate_task_id(title, on))
        assert components is not None
        assert components.descriptive_name == ids_mod.slugify(title)
        assert components.month == on.month
        assert components.day == on.day


class TestGenerateUnique:
    def test_retries_on_collision(self):
        seen = []

        def exists(candidate):
            seen.append(candidate)
            return len(seen) <= 3

        task_id = ids_mod.generate_unique_task_id("Build it", exists, date(2025, 5, 18))
        assert len(seen) == 4
        assert task_id == seen[-1]

    def test_timestamp_fallback(self):
        # Plain IDs have exactly three hyphens here; the fallback adds one more
        task_id = ids_mod.generate_unique_task_id(
            "Build it", lambda c: c.count("-") == 3, date(2025, 5, 18)
        )
        assert task_id.count("-") == 4
        assert ids_mod.validate_task_id(task_id)

    def test_exhaustion_raises_conflict(self):
        with pytest.raises(ConflictError):
            ids_mod.generate_unique_task_id("Build it", lambda c: True, date(2025, 5, 18), max_attempts=3)

    def test_subtask_id_has_sequence_prefix(self):
        task_id = ids_mod.generate_subtask_id("Write tests", "03", on=date(2025, 5, 18))
        assert task_id.startswith("03_write-tests-0518-")
        assert ids_mod.parse_task_id(task_id).sequence_number == "03"


class TestParse:
    def test_components(self):
        components = ids_mod.parse_task_id("implement-oauth-login-0518-K3")
        assert components.descriptive_name == "implement-oauth-login"
        assert components.date_code == "0518"
        assert components.random_suffix == "K3"
        assert components.sequence_number is None
        assert components.format() == "implement-oauth-login-0518-K3"

    @pytest.mark.parametrize(
        "task_id",
        ["Implement-0518-AB", "foo-518-AB", "foo-0518-ABC", "foo-0518-ab", "foo--0518-AB", "0518-AB", ""],
    )
    def test_rejects_malformed(self, task_id):
        assert ids_mod.parse_task_id(task_id) is None

    def test_validate_ranges(self):
        assert ids_mod.validate_task_id("foo-1231-AB")
        assert not ids_mod.validate_task_id("foo-1318-AB")
        assert not ids_mod.validate_task_id("foo-0132-AB")
        assert not ids_mod.validate_task_id("foo-0000-AB")
        assert not ids_mod.validate_task_id("a" * 51 + "-0101-AB")
