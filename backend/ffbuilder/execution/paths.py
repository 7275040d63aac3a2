"""
Output location handling for conversions.

Callers supply an output path relative to the configured base directory
and a base name for the produced files. Both are untrusted:

- The relative path is normalized; root anchors, drive letters and
  leading ".." components are stripped.
- The resolved directory must stay under the base directory, symlinks
  included. Anything else is rejected.
- Base names are reduced to a single safe file-name component.
"""

import logging
import posixpath
import re
from pathlib import Path

from .errors import OutputDirectoryError, ValidationError

logger = logging.getLogger(__name__)

_DRIVE_PATTERN = re.compile(r"^[A-Za-z]:$")
_INVALID_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'


def sanitize_filename(name: str) -> str:
    """
    Sanitize a filename component.

    Removes or replaces characters that are invalid on most filesystems.

    Args:
        name: Raw filename component

    Returns:
        Sanitized filename safe for filesystem use
    """
    # Replace invalid characters with underscore
    sanitized = re.sub(_INVALID_FILENAME_CHARS, "_", name)

    # Remove leading/trailing spaces and dots
    sanitized = sanitized.strip(". ")

    # Ensure non-empty
    if not sanitized:
        sanitized = "output"

    return sanitized


def normalize_relative_path(raw: str) -> str:
    """
    Normalize a caller-supplied path into a relative POSIX path.

    "a/./b" -> "a/b", "../../etc" -> "etc", "/abs/dir" -> "abs/dir",
    "a/../../b" -> "b". An empty result means the base directory itself.

    Raises:
        ValidationError: If the path contains a NUL byte
    """
    if "\x00" in raw:
        raise ValidationError("Output path contains a NUL byte")

    normalized = posixpath.normpath(raw.replace("\\", "/"))
    parts = [part for part in normalized.split("/") if part not in ("", ".")]

    # After normpath, ".." can only appear as a leading run
    while parts and parts[0] == "..":
        parts.pop(0)

    if parts and _DRIVE_PATTERN.match(parts[0]):
        parts.pop(0)

    return "/".join(parts)


def resolve_output_dir(base_dir: Path, raw_path: str) -> Path:
    """
    Resolve the output directory for a job, confined under base_dir.

    Args:
        base_dir: Configured output base directory
        raw_path: Caller-supplied relative output path

    Returns:
        Absolute output directory path (not created)

    Raises:
        ValidationError: If the path escapes base_dir
    """
    base = base_dir.resolve()
    relative = normalize_relative_path(raw_path)
    candidate = (base / relative).resolve() if relative else base

    if not candidate.is_relative_to(base):
        logger.warning(f"[Paths] Rejected output path escaping base: {raw_path!r}")
        raise ValidationError(f"Output path escapes the output directory: {raw_path}")

    return candidate


def ensure_output_dir(path: Path) -> Path:
    """
    Create the output directory and its parents if absent.

    Raises:
        OutputDirectoryError: If the directory cannot be created
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputDirectoryError(path, e.strerror or str(e)) from e

    return path
