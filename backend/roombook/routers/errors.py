from fastapi import HTTPException, status

from ..domain.errors import (
    ConflictError,
    DamageReportNotFoundError,
    DomainError,
    ForbiddenError,
    QuotaExceededError,
    ReservationNotFoundError,
    TimingError,
    TransientStoreError,
    UnavailableResourceError,
    ValidationError,
    VersionConflictError,
)

_STATUS_BY_ERROR: list[tuple[type[DomainError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (QuotaExceededError, status.HTTP_429_TOO_MANY_REQUESTS),
    (ConflictError, status.HTTP_409_CONFLICT),
    (VersionConflictError, status.HTTP_412_PRECONDITION_FAILED),
    (UnavailableResourceError, status.HTTP_404_NOT_FOUND),
    (ReservationNotFoundError, status.HTTP_404_NOT_FOUND),
    (DamageReportNotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (TimingError, status.HTTP_403_FORBIDDEN),
    (TransientStoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def to_http_exception(exc: DomainError) -> HTTPException:
    status_code = status.HTTP_400_BAD_REQUEST
    for error_cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            status_code = code
            break
    headers = {"Retry-After": "1"} if isinstance(exc, TransientStoreError) else None
    return HTTPException(status_code=status_code, detail=exc.to_dict(), headers=headers)
