from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, request, session

from app.seacert.audit import record_event
from app.seacert.credentials import CredentialVerifier, verifier_from_config
from app.seacert.db import get_repository
from app.seacert.errors import CredentialError, NotFoundError, PermissionDeniedError, ValidationError
from app.seacert.models import User
from app.seacert.repository import Repository
from app.seacert.security import ensure_csrf_token
from app.seacert.utils import isoformat, utcnow

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(utcnow())


def find_user(repo: Repository, identifier: str) -> User | None:
    """
    Resolve a login identifier: username first, then email, then display name.
    All comparisons are case-insensitive.
    """
    ident = (identifier or "").strip().lower()
    if not ident:
        return None
    users = repo.list(User)
    for attr in ("username", "email", "name"):
        for u in users:
            if (getattr(u, attr) or "").strip().lower() == ident:
                return u
    return None


def authenticate(repo: Repository, verifier: CredentialVerifier, identifier: str, password: str) -> User:
    user = find_user(repo, identifier)
    if user is None:
        raise NotFoundError("User not found.")
    if not verifier.check_password(user, password):
        raise CredentialError("Incorrect password.")
    if not user.is_active:
        raise PermissionDeniedError("This account is disabled.")
    return user


def verify_second_factor(verifier: CredentialVerifier, user: User, code: str) -> None:
    if not verifier.check_second_factor(user, code):
        raise CredentialError("Incorrect verification code.")


def issue_token(user: User, now: datetime | None = None) -> str:
    """
    Opaque session token: user id plus wall-clock milliseconds.
    It is not signed and does not expire; the signed session cookie is what
    actually authenticates requests.
    """
    now = now or utcnow()
    return f"token-{user.id}-{int(now.timestamp() * 1000)}"


def update_profile(repo: Repository, user: User, payload: dict) -> User:
    changes: dict[str, object] = {}

    name = (payload.get("name") or "").strip()
    if name and name != user.name:
        changes["name"] = name

    email = (payload.get("email") or "").strip().lower()
    if email and email != user.email:
        other = repo.first(User, email=email)
        if other is not None and other.id != user.id:
            raise ValidationError("Email is already in use.")
        changes["email"] = email

    if "organizational_unit" in payload:
        unit = (payload.get("organizational_unit") or "").strip() or None
        if unit != user.organizational_unit:
            changes["organizational_unit"] = unit

    if changes:
        repo.update(user, **changes)
        record_event(
            repo,
            actor=user,
            event_type="profile_update",
            description="Updated own profile",
            entity_type="user",
            entity_id=user.id,
            metadata={"fields": sorted(changes)},
        )
    return user


def user_json(u: User) -> dict:
    return {
        "id": u.id,
        "username": u.username,
        "email": u.email,
        "name": u.name,
        "role": u.role,
        "organizational_unit": u.organizational_unit,
        "has_2fa": u.has_2fa,
        "is_active": u.is_active,
        "can_request_fast_track": u.can_request_fast_track,
        "created_at": isoformat(u.created_at),
    }


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        repo = get_repository()
        user = repo.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise CredentialError("Not signed in.")
    return u


def _start_session(user: User) -> None:
    session.pop("pending_user_id", None)
    session["user_id"] = user.id


def _json_body() -> dict:
    # JSON object or form fields; anything else counts as empty
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else dict(request.form)


@bp.post("/login")
def login_post():
    data = _json_body()
    identifier = (data.get("username") or data.get("email") or "").strip()
    password = data.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return {"error": "Too many login attempts. Please wait 5 minutes."}, 429

    _record_attempt(ip)

    repo = get_repository()
    verifier = verifier_from_config(current_app.config)
    try:
        user = authenticate(repo, verifier, identifier, password)
    except (NotFoundError, CredentialError, PermissionDeniedError) as e:
        record_event(
            repo,
            actor=None,
            event_type="login_failed",
            description=e.message,
            entity_type="user",
            entity_id=identifier.lower() or None,
        )
        repo.commit()
        raise

    _login_attempts[ip].clear()
    session.pop("user_id", None)

    if user.has_2fa:
        session["pending_user_id"] = user.id
        record_event(
            repo,
            actor=user,
            event_type="login_2fa_required",
            description="Password accepted; awaiting second factor",
            entity_type="user",
            entity_id=user.id,
        )
        repo.commit()
        return {"needs_2fa": True, "user": user_json(user)}

    _start_session(user)
    record_event(repo, actor=user, event_type="login", description="Signed in", entity_type="user", entity_id=user.id)
    repo.commit()
    current_app.logger.info("login ok user_id=%s request_id=%s", user.id, getattr(g, "request_id", None))
    return {
        "needs_2fa": False,
        "access_token": issue_token(user),
        "csrf_token": ensure_csrf_token(),
        "user": user_json(user),
    }


@bp.post("/2fa")
def verify_2fa_post():
    data = _json_body()
    code = (data.get("code") or "").strip()

    pending_id = session.get("pending_user_id")
    if not pending_id:
        raise CredentialError("No sign-in is awaiting verification.")

    repo = get_repository()
    user = repo.get(User, int(pending_id))
    if user is None or not user.is_active:
        session.pop("pending_user_id", None)
        raise CredentialError("No sign-in is awaiting verification.")

    verifier = verifier_from_config(current_app.config)
    try:
        verify_second_factor(verifier, user, code)
    except CredentialError as e:
        record_event(
            repo,
            actor=user,
            event_type="login_failed",
            description=e.message,
            entity_type="user",
            entity_id=user.id,
        )
        repo.commit()
        raise

    _start_session(user)
    record_event(repo, actor=user, event_type="login", description="Signed in (2FA)", entity_type="user", entity_id=user.id)
    repo.commit()
    return {
        "access_token": issue_token(user),
        "csrf_token": ensure_csrf_token(),
        "user": user_json(user),
    }


@bp.get("/me")
def me_get():
    return {"user": user_json(_current_user())}


@bp.patch("/me")
def me_patch():
    repo = get_repository()
    user = _current_user()
    update_profile(repo, user, _json_body())
    repo.commit()
    return {"user": user_json(user)}


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        repo = get_repository()
        record_event(repo, actor=user, event_type="logout", description="Signed out", entity_type="user", entity_id=user.id)
        repo.commit()
    session.pop("user_id", None)
    session.pop("pending_user_id", None)
    return {"ok": True}
