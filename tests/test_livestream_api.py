"""Live session API: creation, ownership, partial updates, publishing."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from academy.models.entities import LiveSessionCourse
from academy.models.enums import Role
from academy.utils.timeutils import utcnow
from conftest import assert_response_error, assert_response_success


def session_payload(course_ids, **overrides):
    start = utcnow() + timedelta(days=1)
    payload = {
        "title": "  Weekly revision  ",
        "description": "Bring your notes",
        "linkUrl": "https://zoom.us/j/987654321",
        "linkType": "ZOOM",
        "startDate": start.isoformat(),
        "endDate": (start + timedelta(hours=2)).isoformat(),
        "isFree": False,
        "courseIds": list(course_ids),
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def teachers(seed):
    teacher_a = await seed.user(role=Role.TEACHER, full_name="Teacher A")
    teacher_b = await seed.user(role=Role.TEACHER, full_name="Teacher B")
    return teacher_a, teacher_b


class TestCreate:
    async def test_teacher_creates_session_for_owned_courses(
        self, client, seed, teachers, auth_headers
    ):
        teacher_a, _ = teachers
        c1 = await seed.course(teacher_a, title="Algebra")
        c2 = await seed.course(teacher_a, title="Geometry")

        r = await client.post(
            "/api/v1/livestream",
            json=session_payload([c1.id, c2.id]),
            headers=auth_headers(teacher_a),
        )
        assert_response_success(r, 201)
        body = r.json()
        assert body["title"] == "Weekly revision"
        assert body["isPublished"] is False
        assert body["status"] == "not_started"
        assert sorted(c["title"] for c in body["courses"]) == ["Algebra", "Geometry"]
        assert set(body["courses"][0]) == {"id", "title"}

    async def test_session_on_another_teachers_course_is_403(
        self, client, seed, teachers, auth_headers
    ):
        teacher_a, teacher_b = teachers
        course_b = await seed.course(teacher_b)
        r = await client.post(
            "/api/v1/livestream",
            json=session_payload([course_b.id]),
            headers=auth_headers(teacher_a),
        )
        assert_response_error(r, 403)

    async def test_mixed_ownership_is_403(self, client, seed, teachers, auth_headers):
        teacher_a, teacher_b = teachers
        mine = await seed.course(teacher_a)
        theirs = await seed.course(teacher_b)
        r = await client.post(
            "/api/v1/livestream",
            json=session_payload([mine.id, theirs.id]),
            headers=auth_headers(teacher_a),
        )
        assert_response_error(r, 403)

    async def test_admin_may_use_any_course(self, client, seed, teachers, auth_headers):
        _, teacher_b = teachers
        admin = await seed.user(role=Role.ADMIN)
        course_b = await seed.course(teacher_b)
        r = await client.post(
            "/api/v1/livestream",
            json=session_payload([course_b.id]),
            headers=auth_headers(admin),
        )
        assert_response_success(r, 201)

    async def test_student_cannot_create(self, client, seed, teachers, auth_headers):
        student = await seed.user()
        course = await seed.course(teachers[0])
        r = await client.post(
            "/api/v1/livestream",
            json=session_payload([course.id]),
            headers=auth_headers(student),
        )
        assert_response_error(r, 403)

    async def test_unauthenticated_is_401(self, client):
        r = await client.post("/api/v1/livestream", json=session_payload(["x"]))
        assert_response_error(r, 401)

    async def test_unknown_course_is_404(self, client, seed, teachers, auth_headers):
        course = await seed.course(teachers[0])
        r = await client.post(
            "/api/v1/livestream",
            json=session_payload([course.id, "missing-course"]),
            headers=auth_headers(teachers[0]),
        )
        assert_response_error(r, 404)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"linkType": "TEAMS"},
            {"title": "   "},
            {"linkUrl": ""},
            {"courseIds": []},
            {"startDate": None},
        ],
    )
    async def test_invalid_payload_is_400(
        self, client, seed, teachers, auth_headers, overrides
    ):
        course = await seed.course(teachers[0])
        r = await client.post(
            "/api/v1/livestream",
            json=session_payload([course.id], **overrides),
            headers=auth_headers(teachers[0]),
        )
        assert_response_error(r, 400)

    async def test_end_before_start_is_400(self, client, seed, teachers, auth_headers):
        course = await seed.course(teachers[0])
        start = utcnow() + timedelta(days=1)
        r = await client.post(
            "/api/v1/livestream",
            json=session_payload(
                [course.id],
                startDate=start.isoformat(),
                endDate=(start - timedelta(minutes=1)).isoformat(),
            ),
            headers=auth_headers(teachers[0]),
        )
        assert_response_error(r, 400)

    async def test_chapter_must_belong_to_linked_course(
        self, client, seed, teachers, auth_headers
    ):
        teacher_a, _ = teachers
        c1 = await seed.course(teacher_a)
        c2 = await seed.course(teacher_a)
        foreign_chapter = await seed.chapter(c2)
        r = await client.post(
            "/api/v1/livestream",
            json=session_payload([c1.id], chapterId=foreign_chapter.id),
            headers=auth_headers(teacher_a),
        )
        assert_response_error(r, 400)

        r = await client.post(
            "/api/v1/livestream",
            json=session_payload([c1.id], chapterId="missing-chapter"),
            headers=auth_headers(teacher_a),
        )
        assert_response_error(r, 404)

        own_chapter = await seed.chapter(c1)
        r = await client.post(
            "/api/v1/livestream",
            json=session_payload([c1.id], chapterId=own_chapter.id),
            headers=auth_headers(teacher_a),
        )
        assert_response_success(r, 201)
        assert r.json()["chapterId"] == own_chapter.id

    async def test_offset_timestamps_are_normalized_to_utc(
        self, client, seed, teachers, auth_headers
    ):
        course = await seed.course(teachers[0])
        r = await client.post(
            "/api/v1/livestream",
            json=session_payload(
                [course.id],
                startDate="2030-05-01T20:00:00+02:00",
                endDate="2030-05-01T22:00:00+02:00",
            ),
            headers=auth_headers(teachers[0]),
        )
        assert_response_success(r, 201)
        assert r.json()["startDate"] == "2030-05-01T18:00:00+00:00"


class TestUpdate:
    async def test_partial_update_only_touches_supplied_fields(
        self, client, seed, teachers, auth_headers
    ):
        teacher_a, _ = teachers
        course = await seed.course(teacher_a)
        live = await seed.live_session([course], utcnow() + timedelta(days=2))

        r = await client.patch(
            f"/api/v1/livestream/{live.id}",
            json={"title": "Renamed", "linkType": "GOOGLE_MEET"},
            headers=auth_headers(teacher_a),
        )
        assert_response_success(r)
        body = r.json()
        assert body["title"] == "Renamed"
        assert body["linkType"] == "GOOGLE_MEET"
        assert body["linkUrl"] == "https://zoom.us/j/123456789"
        assert [c["id"] for c in body["courses"]] == [course.id]

    async def test_end_date_can_be_cleared(self, client, seed, teachers, auth_headers):
        course = await seed.course(teachers[0])
        start = utcnow() - timedelta(hours=3)
        live = await seed.live_session([course], start, start + timedelta(hours=1))
        r = await client.patch(
            f"/api/v1/livestream/{live.id}",
            json={"endDate": None},
            headers=auth_headers(teachers[0]),
        )
        assert_response_success(r)
        assert r.json()["endDate"] is None
        assert r.json()["status"] == "active"

    async def test_course_ids_replace_whole_link_set(
        self, client, seed, teachers, auth_headers, session_factory
    ):
        teacher_a, _ = teachers
        c1 = await seed.course(teacher_a)
        c2 = await seed.course(teacher_a)
        c3 = await seed.course(teacher_a)
        live = await seed.live_session([c1, c2], utcnow() + timedelta(days=1))

        r = await client.patch(
            f"/api/v1/livestream/{live.id}",
            json={"courseIds": [c2.id, c3.id]},
            headers=auth_headers(teacher_a),
        )
        assert_response_success(r)
        assert sorted(c["id"] for c in r.json()["courses"]) == sorted([c2.id, c3.id])

        async with session_factory() as session:
            linked = (
                await session.execute(
                    select(LiveSessionCourse.course_id).where(
                        LiveSessionCourse.live_session_id == live.id
                    )
                )
            ).scalars().all()
        assert sorted(linked) == sorted([c2.id, c3.id])

    async def test_co_owner_may_update_shared_session(
        self, client, seed, teachers, auth_headers
    ):
        teacher_a, teacher_b = teachers
        ca = await seed.course(teacher_a)
        cb = await seed.course(teacher_b)
        live = await seed.live_session([ca, cb], utcnow() + timedelta(days=1))
        r = await client.patch(
            f"/api/v1/livestream/{live.id}",
            json={"description": "Updated by B"},
            headers=auth_headers(teacher_b),
        )
        assert_response_success(r)

    async def test_relinking_to_unowned_course_is_403(
        self, client, seed, teachers, auth_headers
    ):
        teacher_a, teacher_b = teachers
        ca = await seed.course(teacher_a)
        cb = await seed.course(teacher_b)
        live = await seed.live_session([ca], utcnow() + timedelta(days=1))
        r = await client.patch(
            f"/api/v1/livestream/{live.id}",
            json={"courseIds": [ca.id, cb.id]},
            headers=auth_headers(teacher_a),
        )
        assert_response_error(r, 403)

    async def test_non_owner_is_403(self, client, seed, teachers, auth_headers):
        teacher_a, teacher_b = teachers
        live = await seed.live_session(
            [await seed.course(teacher_a)], utcnow() + timedelta(days=1)
        )
        r = await client.patch(
            f"/api/v1/livestream/{live.id}",
            json={"title": "Hijack"},
            headers=auth_headers(teacher_b),
        )
        assert_response_error(r, 403)

    async def test_relinking_drops_chapter_from_old_course_is_400(
        self, client, seed, teachers, auth_headers
    ):
        teacher_a, _ = teachers
        c1 = await seed.course(teacher_a)
        c2 = await seed.course(teacher_a)
        chapter = await seed.chapter(c1)
        live = await seed.live_session(
            [c1], utcnow() + timedelta(days=1), chapter=chapter
        )
        r = await client.patch(
            f"/api/v1/livestream/{live.id}",
            json={"courseIds": [c2.id]},
            headers=auth_headers(teacher_a),
        )
        assert_response_error(r, 400)

        r = await client.patch(
            f"/api/v1/livestream/{live.id}",
            json={"courseIds": [c2.id], "chapterId": None},
            headers=auth_headers(teacher_a),
        )
        assert_response_success(r)
        assert r.json()["chapterId"] is None

    async def test_missing_session_is_404(self, client, teachers, auth_headers):
        r = await client.patch(
            "/api/v1/livestream/nope",
            json={"title": "x"},
            headers=auth_headers(teachers[0]),
        )
        assert_response_error(r, 404)

    async def test_null_link_type_is_400(self, client, seed, teachers, auth_headers):
        live = await seed.live_session(
            [await seed.course(teachers[0])], utcnow() + timedelta(days=1)
        )
        r = await client.patch(
            f"/api/v1/livestream/{live.id}",
            json={"linkType": None},
            headers=auth_headers(teachers[0]),
        )
        assert_response_error(r, 400)


class TestPublishAndDelete:
    async def test_publish_toggle(self, client, seed, teachers, auth_headers):
        teacher_a, _ = teachers
        live = await seed.live_session(
            [await seed.course(teacher_a)],
            utcnow() + timedelta(days=1),
            is_published=False,
        )
        url = f"/api/v1/livestream/{live.id}/publish"

        r = await client.patch(url, json={"isPublished": True}, headers=auth_headers(teacher_a))
        assert_response_success(r)
        assert r.json()["isPublished"] is True

        r = await client.patch(url, json={"isPublished": "false"}, headers=auth_headers(teacher_a))
        assert r.json()["isPublished"] is False

        r = await client.patch(url, json={"isPublished": "true"}, headers=auth_headers(teacher_a))
        assert r.json()["isPublished"] is True

    async def test_publish_by_non_owner_is_403(self, client, seed, teachers, auth_headers):
        teacher_a, teacher_b = teachers
        live = await seed.live_session(
            [await seed.course(teacher_a)], utcnow() + timedelta(days=1)
        )
        r = await client.patch(
            f"/api/v1/livestream/{live.id}/publish",
            json={"isPublished": True},
            headers=auth_headers(teacher_b),
        )
        assert_response_error(r, 403)

    async def test_delete_cascades_links(
        self, client, seed, teachers, auth_headers, session_factory
    ):
        teacher_a, _ = teachers
        live = await seed.live_session(
            [await seed.course(teacher_a), await seed.course(teacher_a)],
            utcnow() + timedelta(days=1),
        )
        r = await client.delete(
            f"/api/v1/livestream/{live.id}", headers=auth_headers(teacher_a)
        )
        assert_response_success(r)
        assert r.json() == {"success": True}

        async with session_factory() as session:
            remaining = await session.scalar(
                select(func.count()).select_from(LiveSessionCourse)
            )
        assert remaining == 0

        r = await client.get(
            f"/api/v1/livestream/{live.id}", headers=auth_headers(teacher_a)
        )
        assert_response_error(r, 404)

    async def test_delete_by_student_is_403(self, client, seed, teachers, auth_headers):
        live = await seed.live_session(
            [await seed.course(teachers[0])], utcnow() + timedelta(days=1)
        )
        student = await seed.user()
        r = await client.delete(
            f"/api/v1/livestream/{live.id}", headers=auth_headers(student)
        )
        assert_response_error(r, 403)


class TestRead:
    async def test_student_view_of_free_session(self, client, seed, teachers, auth_headers):
        course = await seed.course(teachers[0], price=250)
        live = await seed.live_session(
            [course], utcnow() - timedelta(minutes=5), is_free=True
        )
        student = await seed.user()
        r = await client.get(
            f"/api/v1/livestream/{live.id}", headers=auth_headers(student)
        )
        assert_response_success(r)
        assert r.json()["status"] == "active"
        assert r.json()["courses"] == [{"id": course.id, "title": course.title}]

    async def test_student_needs_purchase_for_paid_session(
        self, client, seed, teachers, auth_headers
    ):
        course = await seed.course(teachers[0], price=250)
        live = await seed.live_session([course], utcnow() + timedelta(hours=1))
        student = await seed.user()
        url = f"/api/v1/livestream/{live.id}"

        assert_response_error(await client.get(url, headers=auth_headers(student)), 403)
        await seed.purchase(student, course)
        assert_response_success(await client.get(url, headers=auth_headers(student)))

    async def test_unpublished_paid_session_hidden(self, client, seed, teachers, auth_headers):
        teacher_a, teacher_b = teachers
        course = await seed.course(teacher_a, price=250)
        live = await seed.live_session(
            [course], utcnow() + timedelta(hours=1), is_published=False
        )
        student = await seed.user()
        await seed.purchase(student, course)
        admin = await seed.user(role=Role.ADMIN)
        url = f"/api/v1/livestream/{live.id}"

        assert_response_error(await client.get(url, headers=auth_headers(student)), 403)
        assert_response_error(await client.get(url, headers=auth_headers(teacher_b)), 403)
        assert_response_success(await client.get(url, headers=auth_headers(teacher_a)))
        assert_response_success(await client.get(url, headers=auth_headers(admin)))

    async def test_teacher_listing(self, client, seed, teachers, auth_headers):
        teacher_a, teacher_b = teachers
        ca = await seed.course(teacher_a)
        cb = await seed.course(teacher_b)
        await seed.live_session([ca], utcnow(), title="A only")
        await seed.live_session([ca, cb], utcnow(), title="Shared")
        await seed.live_session([cb], utcnow(), title="B only")

        r = await client.get("/api/v1/livestream/teacher", headers=auth_headers(teacher_a))
        assert_response_success(r)
        assert sorted(s["title"] for s in r.json()) == ["A only", "Shared"]

    async def test_admin_listing(self, client, seed, teachers, auth_headers):
        teacher_a, _ = teachers
        await seed.live_session([await seed.course(teacher_a)], utcnow())
        admin = await seed.user(role=Role.ADMIN)

        assert_response_error(
            await client.get("/api/v1/livestream/admin", headers=auth_headers(teacher_a)),
            403,
        )
        r = await client.get("/api/v1/livestream/admin", headers=auth_headers(admin))
        assert_response_success(r)
        owner = r.json()[0]["courses"][0]["user"]
        assert owner == {"id": teacher_a.id, "fullName": "Teacher A"}
