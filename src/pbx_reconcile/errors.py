"""Error taxonomy shared by every reconciliation and backup operation.

File, database, and network failures are translated into one of these
classes at the operation boundary so callers (MCP tools, the CLI, bulk
executors) can classify a failure without inspecting library exceptions.

- ``ParseError`` -- malformed configuration on read.
- ``WriteError`` -- I/O or rename failure while writing a file.
- ``EngineUnreachableError`` -- control interface down or timed out.
- ``ReloadError`` -- engine reported failure applying new configuration.
- ``RepositoryError`` -- database access failure.
- ``NotFoundError`` -- unknown backup id or identifier.
- ``ConflictError`` -- state changed between reconciliation and execution.
"""

from __future__ import annotations


class ReconcileError(Exception):
    """Base class for all engine errors.

    Attributes:
        error_type: Short machine-readable category used in reports.
    """

    error_type = "error"


class ParseError(ReconcileError):
    """Configuration text could not be parsed.

    Args:
        message: Description of the problem.
        path: File being parsed, if known.
        line_number: 1-based line number of the offending line.
    """

    error_type = "parse_error"

    def __init__(
        self,
        message: str,
        path: str | None = None,
        line_number: int | None = None,
    ) -> None:
        self.path = path
        self.line_number = line_number
        location = ""
        if path:
            location = f"{path}:"
        if line_number is not None:
            location += f"{line_number}:"
        super().__init__(f"{location} {message}" if location else message)


class WriteError(ReconcileError):
    """A file could not be written or atomically replaced."""

    error_type = "write_error"


class EngineUnreachableError(ReconcileError):
    """The engine control interface could not be reached in time."""

    error_type = "engine_unreachable"


class ReloadError(ReconcileError):
    """The engine reported a failure while applying configuration.

    Args:
        message: Description of the failure.
        raw_error: Raw error text returned by the engine.
    """

    error_type = "reload_error"

    def __init__(self, message: str, raw_error: str = "") -> None:
        self.raw_error = raw_error
        if raw_error:
            message = f"{message}: {raw_error}"
        super().__init__(message)


class RepositoryError(ReconcileError):
    """The record repository failed to read or write."""

    error_type = "repository_error"


class NotFoundError(ReconcileError):
    """A backup id or identifier does not exist."""

    error_type = "not_found"


class ConflictError(ReconcileError):
    """State changed between reconciliation and the write that acts on it."""

    error_type = "conflict"
