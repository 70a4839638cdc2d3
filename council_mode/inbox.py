"""Queued questions: markdown files dropped into an inbox folder.

Each file holds one question in its body. Optional YAML frontmatter sets
the per-question council options (models, classification, tier,
uses_today, force). Processed files move to the archive folder.
"""

import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import frontmatter

_STAMP_FORMAT = "%Y-%m-%dT%H%M"


@dataclass
class InboxQuery:
    path: Path
    query: str
    models: list[str] | None = None
    classification: list[str] | None = None
    tier: str | None = None
    uses_today: int | None = None
    force: bool = False

    @property
    def slug(self) -> str:
        return self.path.stem


def pending_files(inbox_dir: Path, archive_dir: Path) -> list[Path]:
    """Create both folders if needed and list queued .md files, oldest first."""
    for folder in (inbox_dir, archive_dir):
        folder.mkdir(parents=True, exist_ok=True)
    return sorted(inbox_dir.glob("*.md"), key=lambda p: (p.stat().st_mtime, p.name))


def _as_list(value: object) -> list[str] | None:
    # YAML sequence or "a, b" string
    if value is None:
        return None
    raw = value if isinstance(value, (list, tuple)) else str(value).split(",")
    items = [str(v).strip() for v in raw]
    return [item for item in items if item] or None


def load_query(file_path: Path) -> InboxQuery:
    """Read one queued question.

    Raises:
        ValueError: the file has no question text after its frontmatter.
    """
    post = frontmatter.load(str(file_path))
    body = post.content.strip()
    if not body:
        raise ValueError(f"{file_path.name} has no question text")

    meta = post.metadata
    uses_today = meta.get("uses_today")
    return InboxQuery(
        path=file_path,
        query=body,
        models=_as_list(meta.get("models")),
        classification=_as_list(meta.get("classification")),
        tier=str(meta["tier"]) if meta.get("tier") else None,
        uses_today=int(uses_today) if uses_today is not None else None,
        force=bool(meta.get("force", False)),
    )


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move a processed file into archive_dir and return its new path.

    The archived name is "<stamp>_<name>", prefixed with "FAILED_" when the
    question could not be answered. A numeric suffix keeps two files
    archived in the same minute from overwriting each other.
    """
    stem = f"{'FAILED_' if failed else ''}{datetime.now().strftime(_STAMP_FORMAT)}_{file_path.stem}"
    dest = archive_dir / f"{stem}{file_path.suffix}"
    n = 1
    while dest.exists():
        dest = archive_dir / f"{stem}-{n}{file_path.suffix}"
        n += 1
    shutil.move(str(file_path), str(dest))
    return dest
