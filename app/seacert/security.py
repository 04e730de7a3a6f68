from __future__ import annotations

import secrets
from flask import session, Request

CSRF_HEADER = "X-CSRF-Token"
CSRF_FIELD = "csrf_token"


def ensure_csrf_token() -> str:
    """
    The per-session anti-forgery token. Login and 2FA hand it to the client,
    which echoes it on every state-changing API call.
    """
    token = session.get(CSRF_FIELD)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_FIELD] = token
    return token


def _submitted_token(req: Request) -> str | None:
    token = req.headers.get(CSRF_HEADER)
    if token:
        return token
    body = req.get_json(silent=True) if req.is_json else None
    if isinstance(body, dict) and body.get(CSRF_FIELD):
        return body[CSRF_FIELD]
    # multipart uploads carry it as a form field
    return req.form.get(CSRF_FIELD) if req.form else None


def validate_csrf(req: Request) -> bool:
    """True when the request echoes this session's token."""
    token = _submitted_token(req)
    expected = session.get(CSRF_FIELD) or ""
    return bool(token) and secrets.compare_digest(str(token), str(expected))
