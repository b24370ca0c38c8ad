"""Password hashing and access-token handling."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from academy.config import Settings


class InvalidTokenError(Exception):
    """Raised when a bearer token cannot be decoded or has expired."""


class PasswordHasher:
    def __init__(self, rounds: int = 12):
        self._context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds
        )

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, hashed_password: Optional[str]) -> bool:
        if not hashed_password:
            return False
        return self._context.verify(password, hashed_password)


class TokenService:
    def __init__(self, settings: Settings):
        self.secret = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.expires = timedelta(minutes=settings.access_token_expire_minutes)

    def create_access_token(self, user_id: str, role: str) -> str:
        expire = datetime.now(timezone.utc) + self.expires
        return jwt.encode(
            {"sub": user_id, "role": role, "exp": expire},
            self.secret,
            algorithm=self.algorithm,
        )

    def decode(self, token: str) -> str:
        """Return the user id carried by ``token``."""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as exc:
            raise InvalidTokenError(str(exc)) from exc
        user_id = payload.get("sub")
        if not user_id:
            raise InvalidTokenError("Token has no subject")
        return user_id
