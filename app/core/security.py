"""
Password hashing and JWT helpers for the single admin account.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from app.core.errors import AuthenticationFailed, TokenRejected


def make_password_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


@dataclass(frozen=True)
class AdminCredentials:
    """Static admin login. The password is hashed once at startup."""

    username: str
    password_hash: str
    pwd_context: CryptContext

    @classmethod
    def from_plain(cls, username: str, password: str, rounds: int = 10) -> "AdminCredentials":
        ctx = make_password_context(rounds)
        return cls(username=username, password_hash=ctx.hash(password), pwd_context=ctx)

    def check(self, username: str, password: str) -> bool:
        # Always run bcrypt so timing doesn't reveal a username mismatch
        name_ok = secrets.compare_digest(username.encode(), self.username.encode())
        password_ok = self.pwd_context.verify(password, self.password_hash)
        return name_ok and password_ok


def create_access_token(subject: str, secret: str, lifetime: timedelta,
                        algorithm: str = "HS256") -> str:
    now = datetime.now(timezone.utc)
    claims = {"sub": subject, "iat": now, "exp": now + lifetime}
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_access_token(token: str, secret: str, algorithm: str = "HS256") -> Dict[str, Any]:
    """
    Verify and decode a bearer token.

    Raises:
        AuthenticationFailed: token expired (401)
        TokenRejected: bad signature, malformed token, wrong algorithm (403)
    """
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except ExpiredSignatureError:
        raise AuthenticationFailed("Token expired")
    except JWTError:
        raise TokenRejected("Invalid token")
