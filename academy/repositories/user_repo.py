"""Repository layer for User persistence."""
from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from academy.models.entities import Purchase, User
from academy.models.enums import PurchaseStatus, Role
from academy.repositories.errors import RecordNotFoundError, translate_store_errors

DUPLICATE_PHONE_MESSAGE = "Phone number or parent phone number already exists"


class UserNotFoundError(RecordNotFoundError):
    """Raised when a user record could not be located."""


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # READ -------------------------------------------------------------------
    async def get(self, user_id: str, role: Optional[Role] = None) -> User:
        stmt = select(User).where(User.id == user_id)
        if role is not None:
            stmt = stmt.where(User.role == role)
        async with translate_store_errors(self.session):
            result = await self.session.execute(stmt)
        user = result.scalar_one_or_none()
        if not user:
            raise UserNotFoundError
        return user

    async def get_by_phone(self, phone_number: str) -> Optional[User]:
        async with translate_store_errors(self.session):
            result = await self.session.execute(
                select(User).where(User.phone_number == phone_number)
            )
        return result.scalar_one_or_none()

    async def find_phone_conflict(
        self,
        phone_number: Optional[str],
        parent_phone_number: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> Optional[str]:
        """Return a message naming the first taken phone number, if any.

        This is an early, friendlier check only; the unique constraints on
        both columns remain the actual guarantee.
        """
        clauses = []
        if phone_number:
            clauses.append(User.phone_number == phone_number)
        if parent_phone_number:
            clauses.append(User.parent_phone_number == parent_phone_number)
        if not clauses:
            return None
        stmt = select(User).where(or_(*clauses))
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        async with translate_store_errors(self.session):
            result = await self.session.execute(stmt)
        for existing in result.scalars():
            if phone_number and existing.phone_number == phone_number:
                return "Phone number already exists"
            if parent_phone_number and existing.parent_phone_number == parent_phone_number:
                return "Parent phone number already exists"
        return None

    async def list_active_purchases(self, user_id: str) -> Sequence[Purchase]:
        async with translate_store_errors(self.session):
            result = await self.session.execute(
                select(Purchase)
                .options(selectinload(Purchase.course))
                .where(
                    Purchase.user_id == user_id,
                    Purchase.status == PurchaseStatus.ACTIVE,
                )
                .order_by(Purchase.created_at.desc())
            )
        return result.scalars().all()

    # CREATE -----------------------------------------------------------------
    async def create(
        self,
        full_name: str,
        phone_number: str,
        parent_phone_number: str,
        hashed_password: str,
        role: Role = Role.USER,
    ) -> User:
        user = User(
            full_name=full_name,
            phone_number=phone_number,
            parent_phone_number=parent_phone_number,
            hashed_password=hashed_password,
            role=role,
        )
        async with translate_store_errors(self.session, DUPLICATE_PHONE_MESSAGE):
            self.session.add(user)
            await self.session.commit()
            await self.session.refresh(user)
        return user

    # UPDATE -----------------------------------------------------------------
    async def update(
        self,
        user_id: str,
        full_name: Optional[str] = None,
        phone_number: Optional[str] = None,
        parent_phone_number: Optional[str] = None,
        role: Optional[Role] = None,
    ) -> User:
        user = await self.get(user_id)
        if full_name:
            user.full_name = full_name
        if phone_number:
            user.phone_number = phone_number
        if parent_phone_number:
            user.parent_phone_number = parent_phone_number
        if role is not None:
            user.role = role
        async with translate_store_errors(self.session, DUPLICATE_PHONE_MESSAGE):
            await self.session.commit()
            await self.session.refresh(user)
        return user

    # DELETE -----------------------------------------------------------------
    async def delete(self, user_id: str) -> None:
        user = await self.get(user_id)
        async with translate_store_errors(self.session):
            await self.session.delete(user)
            await self.session.commit()
