"""Typed failures raised by the service layer.

Each error carries a stable ``code`` and an HTTP status so the API layer can
translate it without inspecting messages.  ``InvalidCredentials`` and
``AccountLocked`` deliberately share the same code and message: clients must
not be able to tell a locked account from a wrong password.  The class name
is what ends up in the server logs.
"""

from __future__ import annotations

from fastapi import status


class ServiceError(Exception):
    code: str = "SERVICE_ERROR"
    status_code: int = status.HTTP_400_BAD_REQUEST
    message: str = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ─── Authentication ─────────────────────────────────────────────────────────


class InvalidCredentials(ServiceError):
    code = "AUTHENTICATION_FAILED"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid credentials"


class AccountLocked(ServiceError):
    code = InvalidCredentials.code
    status_code = InvalidCredentials.status_code
    message = InvalidCredentials.message


# ─── Second factor ──────────────────────────────────────────────────────────


class InvalidCode(ServiceError):
    code = "INVALID_CODE"
    message = "Invalid verification code"


class TwoFactorNotEnabled(ServiceError):
    code = "TWO_FACTOR_NOT_ENABLED"
    message = "Two-factor authentication is not enabled for this account"


class VerificationFailed(ServiceError):
    code = "VERIFICATION_FAILED"
    message = "Verification failed"


# ─── Infrastructure ─────────────────────────────────────────────────────────


class PersistenceFailure(ServiceError):
    code = "PERSISTENCE_FAILURE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "The request could not be saved, please try again"


# ─── Resources ──────────────────────────────────────────────────────────────


class EmailAlreadyRegistered(ServiceError):
    code = "EMAIL_ALREADY_REGISTERED"
    status_code = status.HTTP_409_CONFLICT
    message = "A user with that email already exists"

