"""
Input validation for operation arguments.

Checks extension numbers, backup ids and retention counts before they
reach the stores, so callers get a clear message instead of a failure
deep inside a sync run.
"""

import re

# Extension numbers are digits; alphanumeric endpoint names are also allowed
_IDENTIFIER = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,39}$")


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Extension")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_identifier(identifier: str) -> tuple[bool, str]:
    """
    Validate an extension identifier.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not identifier or not identifier.strip():
        return (False, format_validation_error("Extension", "cannot be empty"))
    if not _IDENTIFIER.match(identifier.strip()):
        return (
            False,
            format_validation_error(
                "Extension",
                f"'{identifier}' must be up to 40 letters, digits, '.', '_' or '-'",
            ),
        )
    return (True, "")


def validate_backup_id(backup_id: str) -> tuple[bool, str]:
    """
    Validate a backup id (a backup file name, never a path).

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not backup_id or not backup_id.strip():
        return (False, format_validation_error("Backup id", "cannot be empty"))
    if "/" in backup_id or "\\" in backup_id or backup_id in (".", ".."):
        return (
            False,
            format_validation_error("Backup id", "must be a file name, not a path"),
        )
    return (True, "")


def validate_keep(keep: int, max_keep: int = 10000) -> tuple[bool, str]:
    """
    Validate a backup retention count.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if isinstance(keep, bool) or not isinstance(keep, int):
        return (False, format_validation_error("Keep", "must be an integer"))
    if keep < 0 or keep > max_keep:
        return (
            False,
            format_validation_error("Keep", f"must be between 0 and {max_keep}"),
        )
    return (True, "")
