import pyotp
import pytest
from werkzeug.security import generate_password_hash

from app.seacert import auth as auth_module
from app.seacert import create_app
from app.seacert.db import session_scope
from app.seacert.models import Base, User
from app.seacert.repository import MemoryRepository
from app.seacert.storage import LocalStorage

PASSWORD = "pw"
OTP_SECRET = "JBSWY3DPEHPK3PXP"

# username, name, role, has_2fa
TEST_USERS = (
    ("client1", "Hossein Karimi", "client", False),
    ("client2", "Reza Tehrani", "client", False),
    ("expert1", "Ali Ahmadi", "expert", True),
    ("expert2", "Neda Farahani", "expert", True),
    ("manager1", "Mohammad Rezaei", "manager", True),
    ("admin1", "Sara Mohammadi", "admin", False),
)


def make_user(repo, username, role, *, name=None, has_2fa=False, can_request_fast_track=False, is_active=True):
    return repo.add(
        User(
            username=username,
            email=f"{username}@example.com",
            name=name or username,
            role=role,
            organizational_unit="Arya Marine Engineering" if role == "client" else "Technical Unit",
            password_hash=generate_password_hash(PASSWORD),
            has_2fa=has_2fa,
            otp_secret=OTP_SECRET if has_2fa else None,
            is_active=is_active,
            can_request_fast_track=can_request_fast_track,
        )
    )


@pytest.fixture(autouse=True)
def _reset_login_rate_limit():
    auth_module._login_attempts.clear()
    yield
    auth_module._login_attempts.clear()


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    for k in ("REPOSITORY_BACKEND", "AUTH_BACKEND", "CERTIFICATE_REQUIRE_APPROVED_DOCUMENTS"):
        monkeypatch.delenv(k, raising=False)
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        for username, name, role, has_2fa in TEST_USERS:
            s.add(
                User(
                    username=username,
                    email=f"{username}@example.com",
                    name=name,
                    role=role,
                    organizational_unit="Arya Marine Engineering" if role == "client" else "Technical Unit",
                    password_hash=generate_password_hash(PASSWORD),
                    has_2fa=has_2fa,
                    otp_secret=OTP_SECRET if has_2fa else None,
                    is_active=True,
                )
            )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def user_id(app, username):
    with session_scope(app) as s:
        return s.query(User).filter(User.username == username).one().id


def login(client, username, password=PASSWORD):
    """Sign in (completing 2FA when the account has it) and return the CSRF token."""
    r = client.post("/auth/login", json={"username": username, "password": password})
    assert r.status_code == 200, r.json
    if r.json["needs_2fa"]:
        r = client.post("/auth/2fa", json={"code": pyotp.TOTP(OTP_SECRET).now()})
        assert r.status_code == 200, r.json
    return r.json["csrf_token"]


@pytest.fixture()
def signed_in(app):
    """signed_in("manager1") -> (test client, CSRF headers) for that user."""

    def _signed_in(username):
        c = app.test_client()
        token = login(c, username)
        return c, {"X-CSRF-Token": token}

    return _signed_in


@pytest.fixture()
def repo():
    return MemoryRepository()


@pytest.fixture()
def storage(tmp_path):
    return LocalStorage(root=tmp_path / "blobs")


@pytest.fixture()
def people(repo):
    """One active user per role (plus a second client and expert) in a memory repository."""
    return {
        "client": make_user(repo, "client1", "client", name="Hossein Karimi"),
        "client2": make_user(repo, "client2", "client", name="Reza Tehrani"),
        "expert": make_user(repo, "expert1", "expert", name="Ali Ahmadi"),
        "expert2": make_user(repo, "expert2", "expert", name="Neda Farahani"),
        "manager": make_user(repo, "manager1", "manager", name="Mohammad Rezaei"),
        "admin": make_user(repo, "admin1", "admin", name="Sara Mohammadi"),
    }
