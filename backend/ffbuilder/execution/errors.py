"""
Execution-specific errors.

Raised while turning a request into an ffmpeg invocation, before any
process is started. They reject one request; the service keeps running.
"""

from pathlib import Path
from typing import List, Optional


class ExecutionError(Exception):
    """
    Base exception for invocation build failures.

    All command builder errors inherit from this.
    """

    pass


class ValidationError(ExecutionError):
    """
    Request parameters are missing or malformed.

    Raised before any filesystem or process action:
    - Unknown job kind
    - Required field missing or blank
    - Malformed network address, port outside 1-65535, malformed URL
    - Output path escaping the configured base directory
    """

    def __init__(self, message: str, details: Optional[List[str]] = None):
        self.message = message
        self.details = list(details) if details else [message]
        super().__init__(message)


class OutputDirectoryError(ExecutionError):
    """
    The job output directory cannot be created.

    Wraps the underlying OSError (permission denied, path is a file, ...).
    """

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot create output directory {path}: {reason}")
