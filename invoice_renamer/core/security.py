"""Safety checks for names written to disk."""

import re
from pathlib import Path

from .exceptions import PathTraversalError, SecurityError


def validate_output_name(file_name: str, max_length: int = 255) -> str:
    """Check that a derived file name is a single, plain path component.

    Derived names come from user-editable fields, so they may contain
    anything. They are never rewritten here; an unsafe name is rejected.

    Raises:
        PathTraversalError: If the name contains separators or parent references
        SecurityError: If the name is empty, too long or holds control characters
    """
    if not file_name or not file_name.strip():
        raise SecurityError("Empty filename provided", "empty_filename")

    if "/" in file_name or "\\" in file_name or file_name in (".", "..") or Path(file_name).name != file_name:
        raise PathTraversalError(file_name)

    if re.search(r"[\x00-\x1f]", file_name):
        raise SecurityError(f"Invalid characters in filename: {file_name!r}", "invalid_characters", file_name)

    if len(file_name) > max_length:
        raise SecurityError(
            f"Filename longer than {max_length} characters",
            "filename_length",
            file_name
        )

    return file_name
