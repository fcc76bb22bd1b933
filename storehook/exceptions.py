"""
Application error taxonomy.

Services raise these; the exception handlers in main.py render them as
{"error": ..., "message": ...} with the matching status code.
"""
from fastapi import status


class StoreHookError(Exception):
    """Base class for errors that map to an HTTP response."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal server error"

    def __init__(self, message: str | None = None, error: str | None = None):
        self.message = message or self.error
        if error:
            self.error = error
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class BadRequestError(StoreHookError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Bad request"


class UnauthorizedError(StoreHookError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"


class NotFoundError(StoreHookError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class ConflictError(StoreHookError):
    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"


class InternalError(StoreHookError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal server error"
