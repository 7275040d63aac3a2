"""
Invocation building: request parameters to ffmpeg command lines.

Validation, output path confinement and directory creation happen here,
before any process is started.
"""

from .errors import (
    ExecutionError,
    ValidationError,
    OutputDirectoryError,
)
from .schemas import (
    StreamIngestParams,
    SegmentRemuxParams,
)
from .commands import (
    CommandBuilder,
    Invocation,
    build_srt_url,
)
from .paths import (
    normalize_relative_path,
    resolve_output_dir,
    sanitize_filename,
)

__all__ = [
    "ExecutionError",
    "ValidationError",
    "OutputDirectoryError",
    "StreamIngestParams",
    "SegmentRemuxParams",
    "CommandBuilder",
    "Invocation",
    "build_srt_url",
    "normalize_relative_path",
    "resolve_output_dir",
    "sanitize_filename",
]
