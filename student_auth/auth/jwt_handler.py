from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Response

from student_auth.core.config import Settings

SESSION_COOKIE_NAME = "token"


@dataclass(frozen=True)
class SessionToken:
    token: str
    issued_at: datetime
    expires_at: datetime

    @property
    def max_age(self) -> int:
        return int((self.expires_at - self.issued_at).total_seconds())


def session_ttl(settings: Settings, remember: bool = False) -> timedelta:
    days = settings.remember_ttl_days if remember else settings.session_ttl_days
    return timedelta(days=days)


class SessionIssuer:
    """Mints signed, stateless session tokens and writes them as cookies."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", secure_cookies: bool = False):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.secure_cookies = secure_cookies

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionIssuer":
        return cls(
            secret_key=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            secure_cookies=settings.is_production,
        )

    def issue_token(self, user_id: int, identifier: str, email: str, ttl: timedelta) -> SessionToken:
        issued_at = datetime.now(timezone.utc).replace(microsecond=0)
        expires_at = issued_at + ttl
        payload = {
            "sub": str(user_id),
            "identifier": identifier,
            "email": email,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
        return SessionToken(token=token, issued_at=issued_at, expires_at=expires_at)

    def decode_token(self, token: str) -> dict:
        return jwt.decode(token, self._secret_key, algorithms=[self._algorithm])

    def set_cookie(self, response: Response, session_token: SessionToken) -> None:
        response.set_cookie(
            key=SESSION_COOKIE_NAME,
            value=session_token.token,
            max_age=session_token.max_age,
            path="/",
            httponly=True,
            samesite="lax",
            secure=self.secure_cookies,
        )
