"""
Domain exceptions raised by the service layer.

Routers never translate these by hand; ``create_app`` installs one handler
that turns any ``LifeCraftError`` into ``{"detail": message}`` with the
exception's status code.
"""

from __future__ import annotations


class LifeCraftError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(LifeCraftError):
    status_code = 400


class AuthenticationError(LifeCraftError):
    status_code = 401


class PermissionDeniedError(LifeCraftError):
    status_code = 403


class NotFoundError(LifeCraftError):
    status_code = 404


class ConflictError(LifeCraftError):
    status_code = 409


class UpstreamServiceError(LifeCraftError):
    status_code = 502


class ServiceUnavailableError(LifeCraftError):
    status_code = 503
