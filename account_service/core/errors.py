"""Error taxonomy for the account service.

Every error is an ``HTTPException`` so services can raise them where the
problem is detected and FastAPI renders them without extra handlers.
"""
from __future__ import annotations

from fastapi import HTTPException


class ServiceError(HTTPException):
    status_code_default = 500
    detail_default = "Internal error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(self.status_code_default, detail or self.detail_default)


class NotFound(ServiceError):
    status_code_default = 404
    detail_default = "Not found"


class ValidationError(ServiceError):
    status_code_default = 400
    detail_default = "Invalid request"


class WeakPassword(ValidationError):
    detail_default = "Password does not meet requirements"


class Conflict(ServiceError):
    status_code_default = 409
    detail_default = "Already exists"


class UsernameTaken(Conflict):
    detail_default = "Username already exists"


class EmailInUse(Conflict):
    detail_default = "Email already in use"


class InvalidCredentials(ServiceError):
    status_code_default = 401
    detail_default = "Invalid username or password"


class Unauthorized(ServiceError):
    status_code_default = 401
    detail_default = "Unauthorized"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail)
        self.headers = {"WWW-Authenticate": "Bearer"}


class InvalidRefreshToken(Unauthorized):
    detail_default = "Invalid refresh token"


class Forbidden(ServiceError):
    status_code_default = 403
    detail_default = "Forbidden"


class TooManyRequests(ServiceError):
    status_code_default = 429
    detail_default = "Too many requests"


class UpstreamError(ServiceError):
    status_code_default = 500
    detail_default = "Upstream service failure"
