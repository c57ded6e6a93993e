"""
Error taxonomy for the frame serving pipeline.

Every store-facing failure inside a request is wrapped into one of these
classes at the pipeline boundary so that the caller only has to map a small,
closed set of kinds onto responses.
"""

from typing import Any, Optional


class PhotoFrameError(Exception):
    """Base exception for all pipeline errors.

    Args:
        message: Human-readable error description
        details: Optional dictionary containing additional error context

    Example:
        >>> raise PhotoFrameError("Pipeline failed", {"stage": "compose"})
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class PoolExhaustedError(PhotoFrameError):
    """Raised when every pooled store connection is checked out.

    Callers translate this into a "temporarily unavailable" response and must
    not retry internally.
    """


class SelectionFailedError(PhotoFrameError):
    """Raised when the atomic pick-and-advance of album items fails."""


class EmptyAlbumError(SelectionFailedError):
    """Raised when there is nothing in the album to select."""


class DataCorruptionError(PhotoFrameError):
    """Raised when stored item geometry is inconsistent with the canvas.

    Args:
        message: Human-readable error description
        item_id: Identifier of the offending album item, if known
        expected: Expected buffer length in bytes
        actual: Actual buffer length in bytes
        details: Additional context
    """

    def __init__(
        self,
        message: str,
        item_id: Optional[str] = None,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.item_id = item_id
        self.expected = expected
        self.actual = actual

        error_details = details or {}
        if item_id is not None:
            error_details["item_id"] = item_id
        if expected is not None:
            error_details["expected"] = expected
        if actual is not None:
            error_details["actual"] = actual

        super().__init__(message, error_details)


class TelemetryWriteFailedError(PhotoFrameError):
    """Raised when a telemetry record cannot be persisted.

    Never aborts delivery of a frame that has already been composed.
    """


class MalformedPayloadError(PhotoFrameError):
    """Raised when a device payload cannot be decoded or validated.

    Args:
        message: Human-readable error description
        validation_errors: List of specific validation error messages
        details: Additional context
    """

    def __init__(
        self,
        message: str,
        validation_errors: Optional[list[str]] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.validation_errors = validation_errors or []

        error_details = details or {}
        if self.validation_errors:
            error_details["validation_errors"] = self.validation_errors

        super().__init__(message, error_details)
