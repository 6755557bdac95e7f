from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base for every rule violation raised by the booking core.

    `rule` names the violated rule and `details` carries the values a client
    needs to render a precise message (limits, current usage, ids).
    """

    code = "domain_error"

    def __init__(self, message: str, *, rule: str | None = None, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.rule = rule
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.rule is not None:
            payload["rule"] = self.rule
        payload.update(self.details)
        return payload


class ValidationError(DomainError):
    code = "validation_error"


class QuotaExceededError(DomainError):
    code = "quota_exceeded"


class ConflictError(DomainError):
    code = "conflict"


class UnavailableResourceError(DomainError):
    code = "unavailable"


class ReservationNotFoundError(DomainError):
    code = "not_found"


class ForbiddenError(DomainError):
    code = "forbidden"


class TimingError(DomainError):
    code = "timing"


class VersionConflictError(DomainError):
    code = "version_conflict"


class TransientStoreError(DomainError):
    """Lock contention or a serialization failure; safe to retry."""

    code = "transient"


class DamageReportNotFoundError(DomainError):
    code = "not_found"
