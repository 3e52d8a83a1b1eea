"""File I/O for emitting rendered manifests."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from ..core.errors import RenderFailed
from ..core.models import RenderResult

logger = logging.getLogger(__name__)

SENSITIVE_MODE = 0o600


def ensure_parent(path: Path) -> None:
    """Create the directories above a manifest path."""
    path.parent.mkdir(parents=True, exist_ok=True)


def atomic_write_text(path: Path, text: str, mode: int = 0o644) -> None:
    """Write text to a file atomically using a temporary file.

    Args:
        path: Destination file path
        text: Text content to write
        mode: File permissions (octal)
    """
    ensure_parent(path)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp:
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)


def write_manifests(
    result: RenderResult, dest_root: Path, mode: int = 0o644
) -> list[Path]:
    """Write every document of a successful render under ``dest_root``.

    Documents carrying secret values are written with mode 0600.

    Args:
        result: Completed render
        dest_root: Directory receiving one file per document
        mode: File permissions for non-sensitive documents

    Returns:
        Paths written, in document order

    Raises:
        RenderFailed: If the render did not complete; nothing is written
        ValueError: If a document name escapes ``dest_root``
    """
    if not result.ok:
        raise RenderFailed(result.errors)

    root = Path(dest_root).resolve()
    targets: list[tuple[Path, str, int]] = []
    for name, document in result.documents.items():
        target = (root / name).resolve()
        if root not in target.parents:
            raise ValueError(f"document name escapes destination: {name!r}")
        targets.append(
            (target, document.text, SENSITIVE_MODE if document.sensitive else mode)
        )

    written = []
    for target, text, file_mode in targets:
        atomic_write_text(target, text, file_mode)
        written.append(target)
        logger.info(f"Wrote {target}")
    return written
