"""
Service-layer failures.

Every error carries a human-readable message and the HTTP status the JSON
API answers with. There are no error codes and no retry hints.
"""

from __future__ import annotations


class SeaCertError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SeaCertError):
    status_code = 400


class CredentialError(SeaCertError):
    status_code = 401


class PermissionDeniedError(SeaCertError):
    status_code = 403


class NotFoundError(SeaCertError):
    status_code = 404


class WorkflowError(SeaCertError):
    """Requested status change is not allowed from the entity's current status."""

    status_code = 409
