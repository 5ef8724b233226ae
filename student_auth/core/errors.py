"""Error types raised by the authentication core.

Everything except ``StartupError`` is caught at the request boundary and
rendered as ``{"ok": false, ...}`` with the class's status code.
"""

from fastapi import status


class AuthError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"ok": False, "message": self.message}


class ValidationError(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Validation failed"

    def __init__(self, errors: list[dict]):
        self.errors = errors
        super().__init__()

    def to_payload(self) -> dict:
        return {"ok": False, "errors": self.errors}


class DuplicateCredential(AuthError):
    status_code = status.HTTP_409_CONFLICT
    message = "SRN or email already registered"


class InvalidCredentials(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid credentials"


class ServerError(AuthError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Server error"


class StartupError(RuntimeError):
    """Required configuration is missing; the process must not start."""
