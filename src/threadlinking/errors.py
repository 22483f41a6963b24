"""Error taxonomy and structured results for threadlinking operations.

Store and validation code raises ThreadlinkingError subclasses. Operations in
threadlinking.tools catch them at their boundary and return a failed
OperationResult, so the CLI and the FastMCP wrappers render every failure the
same way.

MCP error string format: "ERROR [{CODE}]: {message}"
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    NOT_LINKED = "NOT_LINKED"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    EMPTY_CONTENT = "EMPTY_CONTENT"
    EMPTY_QUERY = "EMPTY_QUERY"
    LOCK_TIMEOUT = "LOCK_TIMEOUT"
    INDEX_NOT_FOUND = "INDEX_NOT_FOUND"
    STORAGE_CORRUPTION = "STORAGE_CORRUPTION"
    INDEX_ERROR = "INDEX_ERROR"


NOT_FOUND = ErrorCode.NOT_FOUND
NOT_LINKED = ErrorCode.NOT_LINKED
ALREADY_EXISTS = ErrorCode.ALREADY_EXISTS
INVALID_ARGUMENT = ErrorCode.INVALID_ARGUMENT
EMPTY_CONTENT = ErrorCode.EMPTY_CONTENT
EMPTY_QUERY = ErrorCode.EMPTY_QUERY
LOCK_TIMEOUT = ErrorCode.LOCK_TIMEOUT
INDEX_NOT_FOUND = ErrorCode.INDEX_NOT_FOUND
STORAGE_CORRUPTION = ErrorCode.STORAGE_CORRUPTION
INDEX_ERROR = ErrorCode.INDEX_ERROR


class ThreadlinkingError(Exception):
    code: ErrorCode = INVALID_ARGUMENT

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class ValidationError(ThreadlinkingError, ValueError):
    """Bad tag, URL, path or empty input. Raised before any I/O."""
    code = INVALID_ARGUMENT


class NotFoundError(ThreadlinkingError):
    code = NOT_FOUND


class ConflictError(ThreadlinkingError):
    code = ALREADY_EXISTS


class LockTimeout(ThreadlinkingError):
    """Another writer held the document lock for longer than the configured timeout."""
    code = LOCK_TIMEOUT


class StorageCorruption(ThreadlinkingError):
    """A corrupt document could not be moved aside. Not recoverable."""
    code = STORAGE_CORRUPTION


# Failures an operation reports as a result. StorageCorruption is fatal and propagates.
RECOVERABLE_ERRORS = (ValidationError, NotFoundError, ConflictError, LockTimeout)


def error(code: ErrorCode, message: str) -> str:
    """Format a structured error string for tool return values."""
    return f"ERROR [{code.value}]: {message}"


@dataclass
class OperationResult:
    success: bool
    message: str
    data: Any = None
    error: ErrorCode | None = None

    def as_text(self) -> str:
        """Render for an MCP tool response."""
        if self.success:
            return self.message
        return error(self.error or INVALID_ARGUMENT, self.message)


def ok(message: str, data: Any = None) -> OperationResult:
    return OperationResult(success=True, message=message, data=data)


def fail(exc: ThreadlinkingError) -> OperationResult:
    return OperationResult(success=False, message=str(exc), error=exc.code)
