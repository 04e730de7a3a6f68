from app.seacert.config import load_config


def test_defaults(monkeypatch):
    for k in (
        "DATABASE_URL",
        "REPOSITORY_BACKEND",
        "AUTH_BACKEND",
        "PROJECT_CODE_PREFIX",
        "CERTIFICATE_NUMBER_PREFIX",
        "CERTIFICATE_VALIDITY_DAYS",
        "CERTIFICATE_REQUIRE_APPROVED_DOCUMENTS",
        "ENV",
    ):
        monkeypatch.delenv(k, raising=False)
    cfg = load_config()
    assert cfg["DATABASE_URL"] == "sqlite:///seacert.db"
    assert cfg["REPOSITORY_BACKEND"] == "sql"
    assert cfg["AUTH_BACKEND"] == "hashed"
    assert cfg["PROJECT_CODE_PREFIX"] == "MRN"
    assert cfg["CERTIFICATE_NUMBER_PREFIX"] == "SEA"
    assert cfg["CERTIFICATE_VALIDITY_DAYS"] == 365
    assert cfg["CERTIFICATE_REQUIRE_APPROVED_DOCUMENTS"] is False
    assert cfg["SESSION_COOKIE_SECURE"] is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("AUTH_BACKEND", "Static")
    monkeypatch.setenv("CERTIFICATE_VALIDITY_DAYS", "730")
    monkeypatch.setenv("CERTIFICATE_REQUIRE_APPROVED_DOCUMENTS", "yes")
    cfg = load_config()
    assert cfg["AUTH_BACKEND"] == "static"
    assert cfg["CERTIFICATE_VALIDITY_DAYS"] == 730
    assert cfg["CERTIFICATE_REQUIRE_APPROVED_DOCUMENTS"] is True
    assert cfg["SESSION_COOKIE_SECURE"] is True
