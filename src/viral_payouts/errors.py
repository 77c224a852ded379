"""Service-level errors shared by the API and the jobs."""

from __future__ import annotations


class ServiceError(ValueError):
    """Base class for expected failures surfaced to the caller."""

    code = "BAD_REQUEST"
    status_code = 400

    def __init__(self, message: str = "Bad request") -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(ServiceError):
    pass


class UnauthorizedError(ServiceError):
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ForbiddenError(ServiceError):
    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "Not authorized") -> None:
        super().__init__(message)


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(ServiceError):
    code = "CONFLICT"
    status_code = 409


class TooManyRequestsError(ServiceError):
    code = "TOO_MANY_REQUESTS"
    status_code = 429


__all__ = [
    "BadRequestError",
    "ConflictError",
    "ForbiddenError",
    "NotFoundError",
    "ServiceError",
    "TooManyRequestsError",
    "UnauthorizedError",
]
