"""Inbox folder scanning, case-file parsing, and archive logic."""

import shutil
from datetime import datetime
from pathlib import Path

import frontmatter

from deliberation.models import Case


def ensure_dirs(inbox_dir: Path, archive_dir: Path) -> None:
    """Create inbox and archive directories if they don't exist."""
    inbox_dir.mkdir(parents=True, exist_ok=True)
    archive_dir.mkdir(parents=True, exist_ok=True)


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return all .md files in inbox_dir, sorted by mtime ascending (oldest first)."""
    files = list(inbox_dir.glob("*.md"))
    return sorted(files, key=lambda p: p.stat().st_mtime)


def _title_from_body(body: str, fallback: str) -> str:
    for line in body.splitlines():
        line = line.strip().lstrip("#").strip()
        if line:
            return line[:120]
    return fallback


def parse_case(file_path: Path) -> tuple[Case, dict]:
    """Parse a support case from a markdown file with optional YAML frontmatter.

    Recognized frontmatter keys: id, subject, title, category, priority,
    messages (list of prior customer messages). Anything else is returned
    in the metadata dict untouched (e.g. a per-case `rounds` override).

    Returns:
        (case, metadata). If no frontmatter, metadata is {} and the case id
        and title are derived from the file name and the first body line.
    """
    post = frontmatter.load(str(file_path))
    body = post.content.strip()
    metadata = dict(post.metadata)

    messages = metadata.get("messages") or []
    if isinstance(messages, str):
        messages = [messages]

    case = Case(
        id=str(metadata.get("id", file_path.stem)),
        title=str(metadata.get("title") or _title_from_body(body, file_path.stem)),
        description=body,
        subject=str(metadata.get("subject", "unknown")),
        prior_messages=[str(m) for m in messages],
        category=str(metadata.get("category", "general")),
        priority=str(metadata.get("priority", "normal")),
    )
    return case, metadata


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move a processed case file to archive_dir with a timestamp prefix.

    Args:
        file_path: Source file to archive.
        archive_dir: Destination directory.
        failed: If True, prefix filename with "FAILED_".

    Returns:
        Path to the archived file.
    """
    timestamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    prefix = "FAILED_" if failed else ""
    dest = archive_dir / f"{prefix}{timestamp}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    return dest
