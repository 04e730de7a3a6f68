from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.seacert.errors import CredentialError, PermissionDeniedError
from app.seacert.models import User

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "client": frozenset(
        {
            "projects.view",
            "projects.create",
            "projects.edit",
            "projects.submit",
            "documents.view",
            "documents.upload",
            "documents.comment",
            "certificates.view",
            "notifications.view",
            "dashboard.view",
        }
    ),
    "expert": frozenset(
        {
            "projects.view",
            "documents.view",
            "documents.review",
            "documents.comment",
            "certificates.view",
            "notifications.view",
            "dashboard.view",
        }
    ),
    "manager": frozenset(
        {
            "projects.view",
            "projects.edit",
            "projects.submit",
            "projects.reject",
            "projects.archive",
            "documents.view",
            "documents.review",
            "documents.assign",
            "documents.comment",
            "certificates.view",
            "certificates.issue",
            "certificates.revoke",
            "notifications.view",
            "dashboard.view",
            "users.view",
            "users.fast_track",
        }
    ),
    "admin": frozenset(
        {
            "projects.view",
            "projects.archive",
            "documents.view",
            "certificates.view",
            "certificates.issue",
            "certificates.revoke",
            "notifications.view",
            "dashboard.view",
            "users.view",
            "users.role",
            "users.fast_track",
            "audit.view",
        }
    ),
}


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    return permission_key in ROLE_PERMISSIONS.get(user.role, frozenset())


def ensure_permission(user: User | None, permission_key: str) -> None:
    if not user or not user.is_active:
        raise CredentialError("Not signed in.")
    if not user_has_permission(user, permission_key):
        g.missing_permission = permission_key
        raise PermissionDeniedError(f"Your role may not perform this action ({permission_key}).")


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            # Unauthenticated -> 401, authenticated but unauthorized -> 403 (JSON via error handler).
            ensure_permission(getattr(g, "current_user", None), permission_key)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
