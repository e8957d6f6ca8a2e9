"""One-way encoding of project paths into centralized storage directory names."""

import hashlib
import os
import re
from pathlib import Path

DIGEST_LENGTH = 16
SLUG_LENGTH = 40

_ENCODED_RE = re.compile(r"^[a-z0-9_-]+$")


def normalize_path(path: str | Path) -> str:
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def _readable_slug(normalized: str) -> str:
    # parts[0] is the filesystem anchor
    parts = Path(normalized).parts[1:]
    slug = "-".join(parts[-2:]).lower()
    slug = re.sub(r"[^a-z0-9-]", "_", slug)
    return slug[:SLUG_LENGTH].strip("-_")


def encode(path: str | Path) -> str:
    """Encode an absolute project path as a stable, collision-resistant identifier.

    The result is a short readable slug of the last two path components followed
    by a SHA-256 prefix of the normalized path. It cannot be decoded.
    """
    normalized = normalize_path(path)
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:DIGEST_LENGTH]
    slug = _readable_slug(normalized)
    return f"{slug}-{digest}" if slug else digest


def validate_encoded(identifier: str) -> bool:
    """Check that an identifier is safe to use as a single directory name."""
    return bool(identifier) and bool(_ENCODED_RE.match(identifier))
