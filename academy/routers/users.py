"""Account management: admin-assisted student creation, a student's owned
courses, and staff edits/deletions of user accounts.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from academy.auth.dependencies import get_password_hasher, require_admin, require_staff
from academy.auth.security import PasswordHasher
from academy.db.config import get_session
from academy.models.enums import Role
from academy.policy.access import Identity
from academy.repositories.errors import ConflictError
from academy.repositories.user_repo import UserNotFoundError, UserRepository
from academy.routers.auth import RegisterRequest, create_student

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Users"])


class AccountCreate(RegisterRequest):
    # Accepted for compatibility and ignored: accounts made here are students.
    role: Optional[str] = None


class UserUpdate(BaseModel):
    fullName: Optional[str] = Field(None, min_length=1, max_length=200)
    phoneNumber: Optional[str] = Field(None, min_length=1, max_length=32)
    parentPhoneNumber: Optional[str] = Field(None, min_length=1, max_length=32)
    role: Optional[Role] = None


async def _get_repo(session: AsyncSession = Depends(get_session)) -> UserRepository:
    return UserRepository(session)


@router.post("/admin/accounts")
async def create_account(
    payload: AccountCreate,
    identity: Identity = Depends(require_admin),
    repo: UserRepository = Depends(_get_repo),
    hasher: PasswordHasher = Depends(get_password_hasher),
):
    try:
        user = await create_student(repo, hasher, payload)
    except ConflictError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    logger.info("Admin %s created account %s", identity.user_id, user.id)
    return {
        "success": True,
        "user": {
            "id": user.id,
            "fullName": user.full_name,
            "phoneNumber": user.phone_number,
            "role": user.role.value,
        },
    }


@router.get("/admin/users/{user_id}/courses")
async def list_student_courses(
    user_id: str,
    identity: Identity = Depends(require_admin),
    repo: UserRepository = Depends(_get_repo),
):
    try:
        await repo.get(user_id, role=Role.USER)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="Student not found")
    purchases = await repo.list_active_purchases(user_id)
    return {
        "courses": [
            {
                "id": p.course.id,
                "title": p.course.title,
                "price": p.course.price,
                "isPublished": p.course.is_published,
            }
            for p in purchases
        ]
    }


@router.patch("/teacher/users/{user_id}")
async def update_user(
    user_id: str,
    payload: UserUpdate,
    identity: Identity = Depends(require_staff),
    repo: UserRepository = Depends(_get_repo),
):
    try:
        existing = await repo.get(user_id)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")

    phone = payload.phoneNumber if payload.phoneNumber != existing.phone_number else None
    parent = (
        payload.parentPhoneNumber
        if payload.parentPhoneNumber != existing.parent_phone_number
        else None
    )
    final_phone = existing.phone_number if phone is None else phone
    final_parent = existing.parent_phone_number if parent is None else parent
    if final_phone == final_parent:
        raise HTTPException(
            status_code=400,
            detail="Phone number cannot be the same as parent phone number",
        )
    conflict = await repo.find_phone_conflict(phone, parent, exclude_id=user_id)
    if conflict:
        raise HTTPException(status_code=400, detail=conflict)

    try:
        user = await repo.update(
            user_id,
            full_name=payload.fullName,
            phone_number=phone,
            parent_phone_number=parent,
            role=payload.role,
        )
    except ConflictError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    logger.info("User %s updated by %s", user_id, identity.user_id)
    return user.to_dict()


@router.delete("/teacher/users/{user_id}")
async def delete_user(
    user_id: str,
    identity: Identity = Depends(require_staff),
    repo: UserRepository = Depends(_get_repo),
):
    try:
        await repo.delete(user_id)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("User %s deleted by %s", user_id, identity.user_id)
    return {"success": True}
