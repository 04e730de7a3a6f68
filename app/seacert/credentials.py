"""
Pluggable credential checks behind the login contract.

`HashedCredentialVerifier` is the real one: werkzeug password hashes and
TOTP codes (pyotp). `StaticCredentialVerifier` accepts one shared demo
password and one shared demo code for every account and must never be
enabled in production.
"""

from __future__ import annotations

from dataclasses import dataclass

import pyotp
from werkzeug.security import check_password_hash

from app.seacert.models import User


class CredentialVerifier:
    def check_password(self, user: User, password: str) -> bool:
        raise NotImplementedError

    def check_second_factor(self, user: User, code: str) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class HashedCredentialVerifier(CredentialVerifier):
    otp_window: int = 1  # accepted clock skew, in 30s steps

    def check_password(self, user: User, password: str) -> bool:
        if not user.password_hash:
            return False
        return check_password_hash(user.password_hash, password)

    def check_second_factor(self, user: User, code: str) -> bool:
        if not user.otp_secret:
            return False
        return pyotp.TOTP(user.otp_secret).verify((code or "").strip(), valid_window=self.otp_window)


@dataclass(frozen=True)
class StaticCredentialVerifier(CredentialVerifier):
    password: str = "password"
    otp_code: str = "123456"

    def check_password(self, user: User, password: str) -> bool:
        return (password or "").strip() == self.password

    def check_second_factor(self, user: User, code: str) -> bool:
        return (code or "").strip() == self.otp_code


def verifier_from_config(config: dict) -> CredentialVerifier:
    backend = (config.get("AUTH_BACKEND") or "hashed").strip().lower()
    if backend == "static":
        return StaticCredentialVerifier(
            password=config.get("DEMO_PASSWORD") or "password",
            otp_code=config.get("DEMO_OTP_CODE") or "123456",
        )
    return HashedCredentialVerifier()


def new_otp_secret() -> str:
    return pyotp.random_base32()
