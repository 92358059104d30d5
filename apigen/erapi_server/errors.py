"""
Error types for the entity API engine.

This module defines every structured error raised below the HTTP layer:
- ErApiError: Base exception
- ValidationError: One or more field-level validation failures
- CapacityExceededError: Entity collection is full
- BadRequestError: Missing or malformed request body
- UnsupportedMediaTypeError / NotAcceptableError: Content negotiation failures
- NotFoundError: Unknown path or instance id
- MethodNotAllowedError: Known path, unsupported verb
- ForbiddenError: Denied by the access gate
- DatabaseLimitError: Too many named databases

Invariants:
    - All errors inherit from ErApiError
    - ``messages`` is always the complete list rendered in the error body
    - Only the router maps an error to an HTTP status
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class ErApiError(Exception):
    """Base exception for all engine errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ERAPI_ERROR"
        self.details = details or {}

    @property
    def messages(self) -> List[str]:
        """Messages rendered into the ``errorMessages`` body."""
        return [self.message]


class ValidationError(ErApiError):
    """Payload validation failed.

    Raised when:
    - A system generated field is supplied by the client
    - Required field is missing
    - Field value has wrong type or breaks a constraint
    - Unique value collides with another instance
    """

    def __init__(
        self,
        errors: Sequence[str],
        entity_name: Optional[str] = None,
        code: str = "VALIDATION_ERROR",
    ) -> None:
        errors = list(errors)
        super().__init__(
            "; ".join(errors) or "Validation failed",
            code=code,
            details={"entity": entity_name, "errors": errors},
        )
        self.entity_name = entity_name
        self.errors = errors

    @property
    def messages(self) -> List[str]:
        return list(self.errors)


class CapacityExceededError(ValidationError):
    """Entity collection already holds its maximum number of instances."""

    def __init__(self, limit: int, entity_name: Optional[str] = None) -> None:
        super().__init__(
            [f"ERROR: Cannot add instance, maximum limit of {limit} reached"],
            entity_name=entity_name,
            code="CAPACITY_EXCEEDED",
        )
        self.limit = limit


class BadRequestError(ErApiError):
    """Request body missing or not parseable."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="BAD_REQUEST")


class UnsupportedMediaTypeError(ErApiError):
    """Request ``Content-Type`` is not a supported format."""

    def __init__(self, media_type: str, code: str = "UNSUPPORTED_MEDIA_TYPE") -> None:
        super().__init__(
            f"Unsupported content type: {media_type}",
            code=code,
            details={"media_type": media_type},
        )
        self.media_type = media_type


class NotAcceptableError(UnsupportedMediaTypeError):
    """No format listed in ``Accept`` can be produced."""

    def __init__(self, media_type: str) -> None:
        super().__init__(media_type, code="NOT_ACCEPTABLE")
        self.message = f"Unrecognised Accept type: {media_type}"
        self.args = (self.message,)


class NotFoundError(ErApiError):
    """Resource not found.

    Raised when:
    - The path does not belong to any entity
    - The instance id does not exist (or was deleted)
    """

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class MethodNotAllowedError(ErApiError):
    """Path is known but the verb is not mapped to an action."""

    def __init__(self, path: str, verb: str, allowed: Sequence[str]) -> None:
        allowed = list(allowed)
        super().__init__(
            f"Method {verb} not allowed for {path}",
            code="METHOD_NOT_ALLOWED",
            details={"path": path, "verb": verb, "allowed": allowed},
        )
        self.path = path
        self.verb = verb
        self.allowed = allowed


class ForbiddenError(ErApiError):
    """The access gate refused the request."""

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message, code="FORBIDDEN")


class DatabaseLimitError(ErApiError):
    """No more named databases can be created."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"ERROR: Cannot create database, maximum limit of {limit} reached",
            code="DATABASE_LIMIT",
            details={"limit": limit},
        )
        self.limit = limit
