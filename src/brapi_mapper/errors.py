"""Typed failures raised by the BrAPI engine.

Each exception carries the HTTP-equivalent status code that the service
boundary (``BrapiService.handle()``) uses when it turns the failure into a
BrAPI envelope.  Field-level mapping problems never raise: they are logged
and the field degrades to ``None``.

Usage:
    from brapi_mapper.errors import NotFoundError

    raise NotFoundError("No mapping available for data type 'v2-2.1-Germplasm'.")
"""


class BrapiError(Exception):
    """Base class for all structural BrAPI failures."""

    status_code: int = 500

    def __init__(self, message: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(BrapiError):
    """Unknown call, mapping, search job, or target record."""

    status_code = 404


class BadInputError(BrapiError):
    """Malformed JSON body, missing identifier, or wrong body shape."""

    status_code = 400


class UnauthorizedError(BrapiError):
    """Caller is not authenticated and the call requires it."""

    status_code = 401


class ForbiddenError(BrapiError):
    """Caller is authenticated but lacks permission for the call."""

    status_code = 403


class ConflictError(BrapiError):
    """Create with an identifier that already exists."""

    status_code = 409


# Name used by the storage layer for identifier collisions
ObjectAlreadyExistsError = ConflictError


class UnprocessableError(BrapiError):
    """Mapping lacks an identifier field needed for the operation."""

    status_code = 422


class TooManyRequestsError(BrapiError):
    """Throttled by flood control or search admission."""

    status_code = 429


class StorageError(BrapiError):
    """Backend store failed to persist or load records."""

    status_code = 500


class NotImplementedCallError(BrapiError):
    """Call exists in settings but has no implementation."""

    status_code = 501
