from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from flask import Flask, current_app, g
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from app.seacert.repository import MemoryRepository, Repository, SqlRepository


def _engine_options(db_url: str) -> dict[str, object]:
    options: dict[str, object] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("postgres"):
        options.update(pool_recycle=1800, pool_size=5, max_overflow=10, pool_timeout=30)
    return options


def init_db(app: Flask) -> None:
    """
    Build the engine and session factory, or the process-wide memory store
    when REPOSITORY_BACKEND=memory.
    """
    engine = create_engine(app.config["DATABASE_URL"], **_engine_options(app.config["DATABASE_URL"]))
    if app.config.get("ENV") != "production":
        @event.listens_for(engine, "checkout")
        def _log_checkout(dbapi_connection, connection_record, connection_proxy):  # type: ignore[no-redef]
            app.logger.debug("DB connection checkout from pool")

    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        expire_on_commit=False,
        future=True,
    )

    if app.config.get("REPOSITORY_BACKEND") == "memory":
        from app.seacert.seed import seed_demo_users

        store = MemoryRepository()
        seed_demo_users(store, password=app.config.get("DEMO_PASSWORD") or "password")
        app.extensions["memory_repository"] = store
        app.logger.warning("REPOSITORY_BACKEND=memory: data lives in process memory only")


def db_session(app: Flask | None = None) -> Session:
    """Request-scoped session, opened lazily on first use."""
    s = getattr(g, "db_session", None)
    if s is None:
        factory = (app or current_app).extensions["sqlalchemy_sessionmaker"]
        s = g.db_session = factory()
    return s


def get_repository(app: Flask | None = None) -> Repository:
    """The repository request handlers pass to the services."""
    app = app or current_app
    store = app.extensions.get("memory_repository")
    if store is not None:
        return store
    if getattr(g, "repository", None) is None:
        g.repository = SqlRepository(db_session(app))
    return g.repository


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = getattr(g, "db_session", None)
    g.db_session = None
    g.repository = None
    if s is not None:
        # uncommitted work is discarded
        s.close()


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Session for scripts and tests outside a request: commits on success,
    rolls back on error.
    """
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
