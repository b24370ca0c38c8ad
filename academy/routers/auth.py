"""Authentication router: self-service registration, login and current user.

Also hosts the registration payload shared with the admin account endpoint.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from academy.auth.dependencies import (
    get_current_identity,
    get_password_hasher,
    get_token_service,
)
from academy.auth.security import PasswordHasher, TokenService
from academy.db.config import get_session
from academy.models.entities import User
from academy.models.enums import Role
from academy.policy.access import Identity
from academy.repositories.errors import ConflictError, StoreUnavailableError
from academy.repositories.user_repo import UserNotFoundError, UserRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

STORE_NOT_INITIALIZED = "Database not initialized. Please run database migrations."


class RegisterRequest(BaseModel):
    fullName: str = Field(..., min_length=1, max_length=200)
    phoneNumber: str = Field(..., min_length=1, max_length=32)
    parentPhoneNumber: str = Field(..., min_length=1, max_length=32)
    password: str = Field(..., min_length=1)
    confirmPassword: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def _consistent(self):
        if self.password != self.confirmPassword:
            raise ValueError("Passwords do not match")
        if self.phoneNumber == self.parentPhoneNumber:
            raise ValueError("Phone number cannot be the same as parent phone number")
        return self


class LoginRequest(BaseModel):
    phoneNumber: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


async def create_student(
    repo: UserRepository, hasher: PasswordHasher, payload: RegisterRequest
) -> User:
    """Create a USER-role account after the uniqueness pre-check.

    The pre-check gives a precise message; a concurrent registration that
    slips past it is still rejected by the unique constraints and surfaces
    as ``ConflictError``.
    """
    conflict = await repo.find_phone_conflict(
        payload.phoneNumber, payload.parentPhoneNumber
    )
    if conflict:
        raise ConflictError(conflict)
    return await repo.create(
        full_name=payload.fullName,
        phone_number=payload.phoneNumber,
        parent_phone_number=payload.parentPhoneNumber,
        hashed_password=hasher.hash(payload.password),
        role=Role.USER,
    )


async def _get_repo(session: AsyncSession = Depends(get_session)) -> UserRepository:
    return UserRepository(session)


@router.post("/register")
async def register(
    payload: RegisterRequest,
    repo: UserRepository = Depends(_get_repo),
    hasher: PasswordHasher = Depends(get_password_hasher),
):
    try:
        user = await create_student(repo, hasher, payload)
    except ConflictError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except StoreUnavailableError as exc:
        logger.error("[REGISTER] store unavailable: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=STORE_NOT_INITIALIZED,
        )
    logger.info("Registered user %s", user.id)
    return {"success": True}


@router.post("/login")
async def login(
    payload: LoginRequest,
    repo: UserRepository = Depends(_get_repo),
    hasher: PasswordHasher = Depends(get_password_hasher),
    tokens: TokenService = Depends(get_token_service),
):
    user = await repo.get_by_phone(payload.phoneNumber)
    if user is None or not hasher.verify(payload.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {
        "access_token": tokens.create_access_token(user.id, user.role.value),
        "token_type": "bearer",
        "user": {
            "id": user.id,
            "fullName": user.full_name,
            "phoneNumber": user.phone_number,
            "role": user.role.value,
        },
    }


@router.get("/me")
async def me(
    identity: Identity = Depends(get_current_identity),
    repo: UserRepository = Depends(_get_repo),
):
    try:
        user = await repo.get(identity.user_id)
    except UserNotFoundError:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user.to_dict()
