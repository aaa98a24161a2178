"""Exception hierarchy for the annotation tool.

Services raise these; the API layer maps them onto HTTP status codes.
"""

from typing import Any


class AnnotatorError(Exception):
    """Base exception for the annotation tool."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class NotFoundError(AnnotatorError):
    """A referenced project, image or annotation does not exist."""

    def __init__(self, resource: str, resource_id: int | str) -> None:
        super().__init__(
            f"{resource} not found",
            {"resource": resource, "id": resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(AnnotatorError):
    """The request collides with existing state, e.g. a duplicate project name."""


class InvalidInputError(AnnotatorError):
    """Malformed input rejected before any mutation."""


class DatasetError(InvalidInputError):
    """A dataset import or export was rejected as a whole."""
