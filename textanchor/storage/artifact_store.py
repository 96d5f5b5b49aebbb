"""
Write-once store for raw model responses.
Local filesystem under ARTIFACT_ROOT. Files are never overwritten and
never read back by the pipeline; they exist for offline debugging.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog

from textanchor.config import settings
from textanchor.exceptions import PersistenceError
from textanchor.storage.paths import ensure_parent_dirs, raw_output_path

logger = structlog.get_logger(__name__)


class ArtifactStore:
    """
    Save text artifacts to storage.
    All paths are relative to ARTIFACT_ROOT.
    """

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.ARTIFACT_ROOT)

    def save_text(self, relative_path: str, text: str) -> str:
        """Save a text artifact. Returns the relative path."""
        try:
            full_path = ensure_parent_dirs(str(self.root), relative_path)
            # "x" refuses to clobber an existing artifact
            with open(full_path, "x", encoding="utf-8") as fh:
                fh.write(text)
        except OSError as e:
            raise PersistenceError(f"could not write {relative_path}: {e}") from e
        logger.info("artifact_saved_text", path=relative_path, size_chars=len(text))
        return relative_path

    def save_raw_output(self, raw_text: str, label: Optional[str] = None) -> str:
        """
        Persist one raw model response with a short audit header.
        Returns the relative path, which doubles as the report reference.
        """
        now = datetime.now(timezone.utc)
        relative_path = raw_output_path(label=label, now=now)
        header = (
            f"# raw model output\n"
            f"# saved_at: {now.isoformat()}\n"
            f"# label: {label or '-'}\n"
            f"# length: {len(raw_text)}\n"
            f"# ---- begin content ----\n"
        )
        return self.save_text(relative_path, f"{header}{raw_text}\n# ---- end content ----\n")

    def exists(self, relative_path: str) -> bool:
        """Check if an artifact exists."""
        return (self.root / relative_path).exists()

    def full_path(self, relative_path: str) -> Path:
        """Get the absolute filesystem path for an artifact."""
        return self.root / relative_path
