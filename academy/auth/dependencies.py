"""FastAPI dependencies resolving the caller's identity.

The role is always re-read from the user row; the token only carries the
user id, so role changes and deletions take effect on the next request.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from academy.auth.security import InvalidTokenError, PasswordHasher, TokenService
from academy.db.config import get_session
from academy.models.enums import Role
from academy.policy.access import Identity, is_staff
from academy.repositories.errors import StoreUnavailableError
from academy.repositories.user_repo import UserNotFoundError, UserRepository

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


async def get_current_identity(
    token: Optional[str] = Depends(oauth2_scheme),
    tokens: TokenService = Depends(get_token_service),
    session: AsyncSession = Depends(get_session),
) -> Identity:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        user_id = tokens.decode(token)
        user = await UserRepository(session).get(user_id)
    except (InvalidTokenError, UserNotFoundError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    except StoreUnavailableError:
        logger.error("Identity lookup failed: store unavailable", exc_info=True)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")
    return Identity(user_id=user.id, role=user.role)


async def require_staff(identity: Identity = Depends(get_current_identity)) -> Identity:
    if not is_staff(identity):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return identity


async def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    if identity.role != Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return identity
