"""Error taxonomy for the competition engine.

Every failure surfaced to callers is a CompetitionError with:
- kind: stable taxonomy bucket (not_found, conflict, capacity_exceeded, invalid_input, forbidden)
- code: specific machine-readable reason (e.g. 'already_enrolled')
- message: human-readable text
- status_code: suggested HTTP status for the transport layer
- details: structured context for logging/serialization
"""
from __future__ import annotations

from typing import Any, Dict


class CompetitionError(Exception):
    """Base class for all engine errors."""

    kind: str = "error"
    default_code: str = "error"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details: Dict[str, Any] = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.kind}:{self.code}] {self.message}"


class NotFoundError(CompetitionError):
    kind = "not_found"
    default_code = "not_found"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any, message: str | None = None) -> None:
        super().__init__(
            message or f"{resource} {resource_id} not found",
            code=f"{resource.lower()}_not_found",
            details={"resource": resource, "id": resource_id},
        )


class ConflictError(CompetitionError):
    kind = "conflict"
    default_code = "conflict"
    status_code = 409


class AlreadyEnrolledError(ConflictError):
    default_code = "already_enrolled"

    def __init__(self, user_id: int, competition_id: int) -> None:
        super().__init__(
            "User is already participating in this competition",
            details={"user_id": user_id, "competition_id": competition_id},
        )


class NotEnrolledError(ConflictError):
    default_code = "not_enrolled"

    def __init__(self, user_id: int | None, competition_id: int) -> None:
        super().__init__(
            "User is not an active participant in this competition",
            details={"user_id": user_id, "competition_id": competition_id},
        )


class CompetitionClosedError(ConflictError):
    default_code = "competition_closed"

    def __init__(self, competition_id: int) -> None:
        super().__init__(
            "Competition has ended or is no longer active",
            details={"competition_id": competition_id},
        )


class CapacityExceededError(CompetitionError):
    kind = "capacity_exceeded"
    default_code = "capacity_exceeded"
    status_code = 409

    def __init__(self, competition_id: int, max_participants: int) -> None:
        super().__init__(
            "Competition has reached maximum participants",
            details={
                "competition_id": competition_id,
                "max_participants": max_participants,
            },
        )


class InvalidInputError(CompetitionError):
    kind = "invalid_input"
    default_code = "invalid_input"
    status_code = 400


class ForbiddenError(CompetitionError):
    kind = "forbidden"
    default_code = "forbidden"
    status_code = 403


__all__ = [
    "CompetitionError",
    "NotFoundError",
    "ConflictError",
    "AlreadyEnrolledError",
    "NotEnrolledError",
    "CompetitionClosedError",
    "CapacityExceededError",
    "InvalidInputError",
    "ForbiddenError",
]
