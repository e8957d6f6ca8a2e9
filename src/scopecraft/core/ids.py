"""Task ID generation and parsing.

IDs look like `implement-oauth-login-0518-K3`: a kebab-case name, the creation
date as MMDD and a two-character random suffix. Subtask IDs additionally carry
a two-digit sequence prefix, as in `01_write-tests-0518-7Q`.
"""

import logging
import random
import re
from datetime import date, datetime
from typing import Callable

from scopecraft.errors import ConflictError, ValidationError
from scopecraft.storage.models import TaskIdComponents

logger = logging.getLogger(__name__)

# Digits and uppercase letters without I, L and O
SUFFIX_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTUVWXYZ"
MAX_NAME_LENGTH = 50
MAX_ATTEMPTS = 20

TASK_ID_RE = re.compile(
    r"^(?:(?P<sequence>\d{2})_)?"
    r"(?P<name>[a-z0-9]+(?:-[a-z0-9]+)*)"
    r"-(?P<date>\d{4})"
    r"-(?P<suffix>[A-Z0-9]{2})$"
)


def slugify(title: str) -> str:
    """Convert a title to a kebab-case name of at most 50 characters."""
    slug = title.lower().strip()
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")[:MAX_NAME_LENGTH]
    return slug.rstrip("-")


def _date_code(on: date) -> str:
    return f"{on.month:02d}{on.day:02d}"


def _suffix(rng: random.Random | None = None) -> str:
    rng = rng or random
    return "".join(rng.choice(SUFFIX_ALPHABET) for _ in range(2))


def generate_task_id(title: str, on: date | None = None, rng: random.Random | None = None) -> str:
    """Generate an ID from a title and date. Uniqueness is not checked."""
    on = on or date.today()
    name = slugify(title) or "task"
    return TaskIdComponents(name, _date_code(on), _suffix(rng)).format()


def generate_unique_task_id(
    title: str,
    exists: Callable[[str], bool],
    on: date | None = None,
    max_attempts: int = MAX_ATTEMPTS,
    rng: random.Random | None = None,
) -> str:
    """Generate an ID that the exists() check does not already know about.

    After max_attempts collisions a timestamp fragment is folded into the name,
    which makes a further collision practically impossible.
    """
    on = on or date.today()
    for _ in range(max_attempts):
        task_id = generate_task_id(title, on, rng)
        if not exists(task_id):
            return task_id

    stamp = datetime.now().strftime("%H%M%S%f")[:8]
    base = (slugify(title) or "task")[: MAX_NAME_LENGTH - len(stamp) - 1].rstrip("-")
    logger.warning("ID space for %r exhausted after %d attempts, adding timestamp", title, max_attempts)
    for _ in range(max_attempts):
        task_id = TaskIdComponents(f"{base}-{stamp}", _date_code(on), _suffix(rng)).format()
        if not exists(task_id):
            return task_id

    raise ConflictError(f"Could not generate a unique ID for {title!r}", title=title)


def generate_subtask_id(
    title: str,
    sequence: str,
    exists: Callable[[str], bool] | None = None,
    on: date | None = None,
) -> str:
    """Generate a subtask ID with an NN_ sequence prefix."""
    if not re.fullmatch(r"\d{2}", sequence):
        raise ValidationError(f"Sequence must be two digits, got {sequence!r}")
    if exists is None:
        return f"{sequence}_{generate_task_id(title, on)}"
    task_id = generate_unique_task_id(title, lambda candidate: exists(f"{sequence}_{candidate}"), on)
    return f"{sequence}_{task_id}"


def parse_task_id(task_id: str) -> TaskIdComponents | None:
    """Split an ID into its components, or None if it does not follow the grammar."""
    match = TASK_ID_RE.match(task_id)
    if not match:
        return None
    return TaskIdComponents(
        descriptive_name=match.group("name"),
        date_code=match.group("date"),
        random_suffix=match.group("suffix"),
        sequence_number=match.group("sequence"),
    )


def validate_task_id(task_id: str) -> bool:
    """Check the grammar plus month, day and name length ranges."""
    components = parse_task_id(task_id)
    if components is None:
        return False
    if len(components.descriptive_name) > MAX_NAME_LENGTH:
        return False
    return 1 <= components.month <= 12 and 1 <= components.day <= 31
