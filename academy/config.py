"""Application settings.

All configuration is read from environment variables once, into an immutable
``Settings`` value that is handed to ``create_app``. Nothing else in the
package reads ``os.environ`` directly.
"""
from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass, field
from typing import List

_ROOT_DIR = pathlib.Path(__file__).parent.parent
DEFAULT_SQLITE_URL = f"sqlite+aiosqlite:///{_ROOT_DIR / 'dev.db'}"

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    version: str = "1.0.0"
    database_url: str = DEFAULT_SQLITE_URL
    sql_echo: bool = False
    cors_origins: List[str] = field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://localhost:3001",
        ]
    )
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7
    bcrypt_rounds: int = 12
    auto_migrate: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            version=os.getenv("APP_VERSION", "1.0.0"),
            database_url=os.getenv("DATABASE_URL", DEFAULT_SQLITE_URL),
            sql_echo=_flag("SQL_ECHO"),
            cors_origins=os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://localhost:3001",
            ).split(","),
            jwt_secret=os.getenv("JWT_SECRET", "change-me-in-production"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            access_token_expire_minutes=int(
                os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7)
            ),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", 12)),
            auto_migrate=_flag("AUTO_MIGRATE"),
        )
