"""Failure taxonomy shared by every component.

Activities raise the MeshError subclasses below and convert them into Temporal
ApplicationErrors whose `type` is the FailureKind value. The governance
workflow reads that type back to decide whether a failure is recovered locally
(AlreadyExists at a guarded step) or terminates the registration.

Only TransientServiceError and PublishFailure are retryable: another attempt
of the same activity may succeed. Whether one is made is up to the caller's
RetryPolicy (the registration workflow publishes exactly once). Everything else
is final: retrying a PermissionDenied grant just burns time.
"""

from __future__ import annotations

from enum import Enum

from temporalio.exceptions import ApplicationError


class FailureKind(str, Enum):
    """Why a step failed. Values are used verbatim as ApplicationError types."""

    ALREADY_EXISTS = "AlreadyExists"
    PERMISSION_DENIED = "PermissionDenied"
    ENTITY_NOT_FOUND = "EntityNotFound"
    TRANSIENT = "TransientServiceError"
    MALFORMED_INPUT = "MalformedInput"
    PUBLISH_FAILURE = "PublishFailure"
    DOMAIN_CONFLICT = "DomainConflict"
    CANCELLED = "Cancelled"
    INTERNAL = "InternalError"

    @property
    def retryable(self) -> bool:
        return self in (FailureKind.TRANSIENT, FailureKind.PUBLISH_FAILURE)

    @classmethod
    def parse(cls, value: str | None) -> FailureKind:
        """Map an ApplicationError type back to a kind; unknown types are internal."""
        try:
            return cls(value)
        except ValueError:
            return cls.INTERNAL


class MeshError(Exception):
    """Base error carrying a FailureKind and the resource it concerns."""

    kind: FailureKind = FailureKind.INTERNAL

    def __init__(self, message: str, *, resource: str = "") -> None:
        super().__init__(message)
        self.resource = resource

    def to_application_error(self) -> ApplicationError:
        """Convert into the error type Temporal carries across the activity boundary."""
        return ApplicationError(
            str(self),
            {"kind": self.kind.value, "resource": self.resource},
            type=self.kind.value,
            non_retryable=not self.kind.retryable,
        )


class AlreadyExistsError(MeshError):
    kind = FailureKind.ALREADY_EXISTS


class PermissionDeniedError(MeshError):
    kind = FailureKind.PERMISSION_DENIED


class EntityNotFoundError(MeshError):
    kind = FailureKind.ENTITY_NOT_FOUND


class TransientServiceError(MeshError):
    kind = FailureKind.TRANSIENT


class PublishFailureError(MeshError):
    kind = FailureKind.PUBLISH_FAILURE


class DomainConflictError(MeshError):
    kind = FailureKind.DOMAIN_CONFLICT
