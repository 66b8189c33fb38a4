"""
Error kinds raised by the stores, the cart operator and the auth layer.

Each carries the HTTP status it maps to; main.py renders them all through a
single exception handler.
"""


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(StorefrontError):
    """A referenced product or cart line does not exist."""
    status_code = 404


class ValidationError(StorefrontError):
    """Non-numeric or out-of-range quantity/price input."""
    status_code = 422


class StoreError(StorefrontError):
    """The persistence layer failed; the attempted write is not applied."""
    status_code = 503


class AuthError(StorefrontError):
    status_code = 401


class PermissionDeniedError(StorefrontError):
    status_code = 403
