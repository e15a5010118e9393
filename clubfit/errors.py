from __future__ import annotations
from typing import Optional


class ClubFitError(Exception):
    """
    Base for every error a service function raises on purpose.
    The HTTP layer maps status_code straight onto the response.
    """
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

class UnauthenticatedError(ClubFitError):
    status_code = 401

class ForbiddenError(ClubFitError):
    status_code = 403

class NotFoundError(ClubFitError):
    # also used when the caller doesn't own the thing, so existence never leaks
    status_code = 404

class ValidationError(ClubFitError):
    status_code = 400

class ConflictError(ClubFitError):
    status_code = 409

    def __init__(self, detail: str, *, session_id: Optional[int] = None):
        super().__init__(detail)
        self.session_id = session_id

class RateLimitError(ClubFitError):
    status_code = 429

    def __init__(self, detail: str, *, retry_after: int):
        super().__init__(detail)
        self.retry_after = retry_after
