"""
This file contains custom, application-specific exceptions.

Services raise these; `main.py` renders them as `{"detail": message}`
with the matching HTTP status code.
"""
from fastapi import status


class DomainError(Exception):
    """Base class for every error the lesson and earnings services raise on purpose."""
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(DomainError):
    """Raised for invalid input, unknown participants and invalid state transitions."""
    status_code = status.HTTP_400_BAD_REQUEST


class SchedulingConflictError(BadRequestError):
    """Raised when a tutor already has an overlapping lesson."""
    pass


class UnauthorizedError(DomainError):
    """Raised when a user's role or ownership does not permit the action."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(DomainError):
    """Raised when an earnings approval (or its tutor) cannot be found."""
    status_code = status.HTTP_404_NOT_FOUND
