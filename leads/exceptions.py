"""
Errors raised by the lead queue.

Each carries the HTTP status the view boundary answers with; the message is
returned to the client verbatim as {"error": message}.
"""


class DialerError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(DialerError):
    status_code = 400


class ConfirmationMismatchError(ValidationError):
    """Confirmation phrase did not match. Nothing was changed."""


class AuthenticationError(DialerError):
    status_code = 401


class AuthorizationError(DialerError):
    status_code = 403


class NotFoundError(DialerError):
    status_code = 404


class RateLimitedError(DialerError):
    status_code = 429
