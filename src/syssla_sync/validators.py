"""
Input validation functions for syssla_sync.

Provides validation for remote repository paths, wiki filenames and
document content before they reach the remote document store.
"""


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Path")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_remote_path(path: str) -> tuple[bool, str]:
    """
    Validate a repository-relative file or directory path.

    Args:
        path: The path to validate (e.g. ``todos/active.json``)

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot start with '/'
        - Cannot contain '..' segments (path traversal protection)
        - Cannot have empty path segments (e.g., 'wiki//note.md')
    """
    if not path or not path.strip():
        return (False, format_validation_error("Path", "cannot be empty"))

    if path.startswith("/"):
        return (
            False,
            format_validation_error("Path", "must be relative to the repository root"),
        )

    segments = path.rstrip("/").split("/")
    if ".." in segments:
        return (False, format_validation_error("Path", "cannot contain '..'"))

    if "" in segments:
        return (
            False,
            format_validation_error("Path", "cannot have empty path segments"),
        )

    return (True, "")


def validate_wiki_filename(filename: str) -> tuple[bool, str]:
    """
    Validate a wiki filename (path relative to the ``wiki/`` directory).

    Validation rules:
        - Must be a valid relative path
        - Must end in ``.md``
    """
    is_valid, error_msg = validate_remote_path(filename)
    if not is_valid:
        return (False, error_msg.replace("Path", "Wiki filename", 1))

    if not filename.endswith(".md") or filename == ".md":
        return (
            False,
            format_validation_error("Wiki filename", "must end with '.md'"),
        )

    return (True, "")


def validate_content(
    content: str, max_size: int = 1_000_000
) -> tuple[bool, str]:
    """
    Validate document content before upload.

    Args:
        content: The content to validate
        max_size: Maximum size in bytes (default: 1,000,000)

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty
        - Cannot exceed max_size bytes
    """
    if not content:
        return (
            False,
            format_validation_error("Content", "cannot be empty"),
        )

    content_bytes = len(content.encode("utf-8"))
    if content_bytes > max_size:
        return (
            False,
            format_validation_error(
                "Content", f"exceeds maximum size of {max_size} bytes"
            ),
        )

    return (True, "")


def describe_validation_error(error) -> str:
    """
    Flatten a pydantic ``ValidationError`` into one log-friendly line.

    Example:
        ``title: Value error, title cannot be empty; createdAt: Field required``
    """
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "record"
        parts.append(f"{location}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)
