import logging
from datetime import timedelta

from flask import Flask, g, request, session
from dotenv import load_dotenv
from sqlalchemy import inspect as sa_inspect
from werkzeug.exceptions import HTTPException

from app.seacert.config import load_config
from app.seacert.db import init_db, teardown_db_session
from app.seacert.errors import SeaCertError
from app.seacert.routes import bp as routes_bp
from app.seacert.auth import bp as auth_bp, load_current_user
from app.seacert.admin import bp as admin_bp
from app.seacert.modules.projects.admin import bp as projects_bp
from app.seacert.modules.documents.admin import bp as documents_bp
from app.seacert.modules.certificates.admin import bp as certificates_bp
from app.seacert.modules.notifications.admin import bp as notifications_bp

REQUIRED_TABLES = (
    "users",
    "audit_events",
    "projects",
    "documents",
    "document_versions",
    "review_comments",
    "certificates",
    "digital_signatures",
    "notifications",
)


def create_app(config_overrides: dict | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    if config_overrides:
        app.config.update(config_overrides)
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    from app.seacert.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login, 2FA and logout happen before a client holds a token.
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return {"error": "CSRF token missing or invalid."}, 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if app.config.get("AUTH_BACKEND") == "static":
            raise RuntimeError("AUTH_BACKEND=static accepts a shared demo password; not allowed in production.")
        if app.config.get("REPOSITORY_BACKEND") == "memory":
            raise RuntimeError("REPOSITORY_BACKEND=memory loses all data on restart; not allowed in production.")

    init_db(app)

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(projects_bp, url_prefix="/api/projects")
    app.register_blueprint(documents_bp, url_prefix="/api/documents")
    app.register_blueprint(certificates_bp, url_prefix="/api/certificates")
    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")

    def _load_user_wrapper():
        if request.path.startswith(("/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    # Schema health (lean): detect a database that was never migrated.
    app.config.setdefault("_schema_health_ok", True)
    app.config.setdefault("_schema_health_missing", [])
    app.config.setdefault("_schema_health_logged", False)

    def _run_schema_health_check() -> None:
        if app.config.get("REPOSITORY_BACKEND") == "memory":
            return
        missing: list[str] = []
        try:
            insp = sa_inspect(app.extensions["sqlalchemy_engine"])
            missing = [t for t in REQUIRED_TABLES if not insp.has_table(t)]
        except Exception as e:
            app.logger.exception("Schema health check failed: %s", e)
        if missing:
            app.config["_schema_health_ok"] = False
            app.config["_schema_health_missing"] = missing
            if not app.config.get("_schema_health_logged"):
                app.config["_schema_health_logged"] = True
                app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
        else:
            app.config["_schema_health_ok"] = True
            app.config["_schema_health_missing"] = []

    _run_schema_health_check()

    @app.before_request
    def _schema_health_guardrail():  # type: ignore[no-redef]
        if app.config.get("_schema_health_ok"):
            return None
        # Tables may have been created since startup (init script, tests).
        _run_schema_health_check()
        if app.config.get("_schema_health_ok"):
            return None
        if request.path.startswith("/api"):
            return {"error": "Database schema out of date.", "missing": app.config.get("_schema_health_missing") or []}, 500
        return None

    @app.errorhandler(SeaCertError)
    def _service_error(e: SeaCertError):  # type: ignore[no-redef]
        if e.status_code == 403:
            app.logger.warning(
                "Forbidden: %s missing_permission=%s request_id=%s",
                e.message,
                getattr(g, "missing_permission", None),
                getattr(g, "request_id", None),
            )
        return {"error": e.message}, e.status_code

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        return {"error": e.description or e.name}, e.code or 500

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return {"error": "Internal server error."}, 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
