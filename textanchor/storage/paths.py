"""
Collision-free path generation for raw model outputs.
All paths are relative to ARTIFACT_ROOT.
"""

import itertools
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Process-wide sequence; uniqueness across processes comes from the uuid suffix
_sequence = itertools.count(1)
_UNSAFE_LABEL = re.compile(r"[^A-Za-z0-9_.-]+")


def safe_label(label: str) -> str:
    """Reduce a free-form label to a filename-safe slug."""
    return _UNSAFE_LABEL.sub("-", label).strip("-.")[:48]


def raw_output_path(label: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """Path for one raw model response, unique per call."""
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y%m%dT%H%M%S%fZ")
    name = f"raw_output_{stamp}_{next(_sequence):06d}_{uuid.uuid4().hex[:8]}"
    slug = safe_label(label) if label else ""
    if slug:
        name = f"{name}_{slug}"
    return f"raw/{now:%Y%m%d}/{name}.txt"


def ensure_parent_dirs(artifact_root: str, relative_path: str) -> Path:
    """Create parent directories and return the full absolute path."""
    full_path = Path(artifact_root) / relative_path
    full_path.parent.mkdir(parents=True, exist_ok=True)
    return full_path
