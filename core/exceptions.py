"""
API error taxonomy. Services raise these; the json_api decorator in core.utils
turns them into {"error": message} responses with the matching status.
"""


class ApiError(Exception):
    status = 500

    def __init__(self, message, status=None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class ValidationError(ApiError):
    """Missing required field, malformed phone, unknown product reference."""
    status = 400


class NotFoundError(ApiError):
    status = 404


class ConflictError(ApiError):
    """Duplicate customer phone, edit or delete of an already deleted order."""
    status = 409
