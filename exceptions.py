"""Error hierarchy for the onboarding service.

Services raise these; the handlers registered in ``main.py`` turn them into
JSON responses with the matching HTTP status.
"""

from typing import Optional

from fastapi import status


class OnboardingError(Exception):
    """Base exception for all onboarding errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(OnboardingError):
    """Missing or malformed input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthenticationError(OnboardingError):
    """Missing, invalid or revoked credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class AuthorizationError(OnboardingError):
    """Authenticated, but not allowed to touch this resource."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFoundError(OnboardingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(OnboardingError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class StoreError(OnboardingError):
    """The database rejected or failed an operation.

    The message is logged but never sent to the caller.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"
