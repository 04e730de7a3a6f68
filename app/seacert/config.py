import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    repository_backend: str
    auth_backend: str
    demo_password: str
    demo_otp_code: str

    project_code_prefix: str
    certificate_number_prefix: str
    certificate_validity_days: int
    certificate_require_approved_documents: bool

    storage_backend: str
    storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = _getenv(name)
    if not raw:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///seacert.db"),
        repository_backend=_getenv("REPOSITORY_BACKEND", "sql").lower(),
        auth_backend=_getenv("AUTH_BACKEND", "hashed").lower(),
        demo_password=_getenv("DEMO_PASSWORD", "password"),
        demo_otp_code=_getenv("DEMO_OTP_CODE", "123456"),
        project_code_prefix=_getenv("PROJECT_CODE_PREFIX", "MRN"),
        certificate_number_prefix=_getenv("CERTIFICATE_NUMBER_PREFIX", "SEA"),
        certificate_validity_days=int(_getenv("CERTIFICATE_VALIDITY_DAYS", "365")),
        certificate_require_approved_documents=_getenv_bool("CERTIFICATE_REQUIRE_APPROVED_DOCUMENTS"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "REPOSITORY_BACKEND": s.repository_backend,
        "AUTH_BACKEND": s.auth_backend,
        "DEMO_PASSWORD": s.demo_password,
        "DEMO_OTP_CODE": s.demo_otp_code,
        "PROJECT_CODE_PREFIX": s.project_code_prefix,
        "CERTIFICATE_NUMBER_PREFIX": s.certificate_number_prefix,
        "CERTIFICATE_VALIDITY_DAYS": s.certificate_validity_days,
        "CERTIFICATE_REQUIRE_APPROVED_DOCUMENTS": s.certificate_require_approved_documents,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # drawings and calculation packages (25MB)
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
    }
