"""
Pytest configuration and fixtures for backend testing

Every test gets its own SQLite file database; the application's
``get_session`` dependency is overridden to use it.
"""

import itertools
import os
from datetime import datetime
from typing import Iterable, Optional

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import NullPool

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["AUTO_MIGRATE"] = "false"

from academy.db.config import build_engine, build_session_factory, get_session
from academy.main import app as real_app
from academy.models.entities import (
    Base,
    Chapter,
    Course,
    LiveSession,
    LiveSessionCourse,
    Purchase,
    User,
)
from academy.models.enums import LinkType, PurchaseStatus, Role

_phones = itertools.count(1000)


class Seeder:
    """Writes fixture rows straight through the ORM, bypassing the API."""

    def __init__(self, session_factory, app: FastAPI):
        self.session_factory = session_factory
        self.app = app

    async def _save(self, record):
        async with self.session_factory() as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
        return record

    async def user(
        self,
        role: Role = Role.USER,
        full_name: str = "Test User",
        phone_number: Optional[str] = None,
        password: str = "secret-pass",
    ) -> User:
        n = next(_phones)
        return await self._save(
            User(
                full_name=full_name,
                phone_number=phone_number or f"0100000{n}",
                parent_phone_number=f"0120000{n}",
                hashed_password=self.app.state.password_hasher.hash(password),
                role=role,
            )
        )

    async def course(
        self,
        owner: User,
        price: Optional[float] = None,
        is_published: bool = True,
        title: str = "Course",
    ) -> Course:
        return await self._save(
            Course(
                user_id=owner.id,
                title=title,
                price=price,
                is_published=is_published,
            )
        )

    async def chapter(self, course: Course, is_published: bool = True) -> Chapter:
        return await self._save(
            Chapter(course_id=course.id, title="Chapter", is_published=is_published)
        )

    async def purchase(
        self,
        user: User,
        course: Course,
        status: PurchaseStatus = PurchaseStatus.ACTIVE,
    ) -> Purchase:
        return await self._save(
            Purchase(user_id=user.id, course_id=course.id, status=status)
        )

    async def live_session(
        self,
        courses: Iterable[Course],
        start_date: datetime,
        end_date: Optional[datetime] = None,
        is_free: bool = False,
        is_published: bool = True,
        chapter: Optional[Chapter] = None,
        title: str = "Live session",
    ) -> LiveSession:
        return await self._save(
            LiveSession(
                title=title,
                link_url="https://zoom.us/j/123456789",
                link_type=LinkType.ZOOM,
                start_date=start_date,
                end_date=end_date,
                is_free=is_free,
                is_published=is_published,
                chapter_id=chapter.id if chapter else None,
                course_links=[LiveSessionCourse(course_id=c.id) for c in courses],
            )
        )


@pytest.fixture
async def session_factory(tmp_path):
    engine = build_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def test_app(session_factory):
    async def override_session():
        async with session_factory() as session:
            yield session

    real_app.dependency_overrides[get_session] = override_session
    yield real_app
    real_app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app: FastAPI):
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def seed(session_factory, test_app) -> Seeder:
    return Seeder(session_factory, test_app)


@pytest.fixture
def auth_headers(test_app):
    """Build a bearer header for a seeded user."""
    def _headers(user: User) -> dict:
        token = test_app.state.token_service.create_access_token(
            user.id, user.role.value
        )
        return {"Authorization": f"Bearer {token}"}
    return _headers


# Helper functions for tests
def assert_response_success(response, expected_status=200):
    """Assert that response is successful"""
    assert response.status_code == expected_status, f"Expected {expected_status}, got {response.status_code}: {response.text}"


def assert_response_error(response, expected_status=400):
    """Assert that response is an error in the standard envelope"""
    assert response.status_code == expected_status, f"Expected error {expected_status}, got {response.status_code}: {response.text}"
    body = response.json()
    assert body["success"] is False
    assert isinstance(body["error"], str)
