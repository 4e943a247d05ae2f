import io
import re
from pathlib import Path

import pytest

from app.portal.db import session_scope
from app.portal.modules.courses.models import Course, CourseEnrollment, CourseLesson, CourseModule, LessonProgress
from app.portal.modules.courses.service import build_video_storage_key, calculate_course_progress, validate_video_upload


@pytest.fixture()
def course_tree(app):
    """One course with one module holding three lessons; returns their ids."""
    with session_scope(app) as s:
        c = Course(title="Onboarding", order_index=0)
        s.add(c)
        s.flush()
        m = CourseModule(course_id=c.id, title="Week 1", order_index=0)
        s.add(m)
        s.flush()
        lessons = [CourseLesson(module_id=m.id, title=f"Lesson {n}", order_index=n) for n in range(3)]
        s.add_all(lessons)
        s.flush()
        return {"course": c.id, "module": m.id, "lessons": [lesson.id for lesson in lessons]}


def _lesson_order(app, module_id):
    with session_scope(app) as s:
        rows = (
            s.query(CourseLesson)
            .filter(CourseLesson.module_id == module_id)
            .order_by(CourseLesson.order_index.asc())
            .all()
        )
        return [(r.id, r.order_index) for r in rows]


def test_admin_builds_course(app, client, admin):
    r = client.post("/admin/courses/new", data={"title": "Sales 101", "description": "Basics"})
    assert r.status_code == 302
    with session_scope(app) as s:
        course = s.query(Course).filter(Course.title == "Sales 101").one()
        course_id = course.id
    assert r.headers["Location"].endswith(f"/admin/courses/{course_id}")

    r = client.post(f"/admin/courses/{course_id}/modules/new", data={"title": "Module A"})
    assert r.status_code == 302
    with session_scope(app) as s:
        module_id = s.query(CourseModule).filter(CourseModule.course_id == course_id).one().id

    r = client.post(
        f"/admin/modules/{module_id}/lessons/new",
        data={"title": "Intro", "video_url": "https://youtu.be/abc", "duration_seconds": "90"},
    )
    assert r.status_code == 302

    r = client.get(f"/admin/courses/{course_id}")
    assert r.status_code == 200
    assert b"Module A" in r.data
    assert b"Intro" in r.data

    r = client.get(f"/courses/{course_id}")
    assert r.status_code == 200
    assert b"https://www.youtube.com/embed/abc" in r.data


def test_course_title_required(app, client, admin):
    r = client.post("/admin/courses/new", data={"title": "  "}, follow_redirects=True)
    assert b"Title is required." in r.data
    with session_scope(app) as s:
        assert s.query(Course).count() == 0


def test_classroom_redirects_to_first_course(client, admin, course_tree):
    r = client.get("/courses")
    assert r.status_code == 302
    assert r.headers["Location"].endswith(f"/courses/{course_tree['course']}")


def test_classroom_empty(client, admin):
    r = client.get("/courses")
    assert r.status_code == 200
    assert b"No courses available yet." in r.data


def test_member_can_learn_but_not_edit(app, client, make_user, login, course_tree):
    make_user("member@example.com", "team_member")
    login("member@example.com")

    r = client.get(f"/courses/{course_tree['course']}?lesson={course_tree['lessons'][1]}")
    assert r.status_code == 200
    assert b"Lesson 1" in r.data
    assert b"Edit course structure" not in r.data

    assert client.get(f"/admin/courses/{course_tree['course']}").status_code == 403
    assert client.post("/admin/courses/new", data={"title": "Nope"}).status_code == 403


def test_toggle_complete_tracks_progress(app, client, make_user, login, course_tree):
    user_id = make_user("member@example.com", "team_member")
    login("member@example.com")
    first = course_tree["lessons"][0]

    r = client.post(f"/courses/lessons/{first}/complete", follow_redirects=True)
    assert b"Lesson completed! Great job!" in r.data
    with session_scope(app) as s:
        enrollment = s.query(CourseEnrollment).filter(CourseEnrollment.user_id == user_id).one()
        assert enrollment.progress == 33
        assert enrollment.completed is False

    for lesson_id in course_tree["lessons"][1:]:
        client.post(f"/courses/lessons/{lesson_id}/complete")
    with session_scope(app) as s:
        enrollment = s.query(CourseEnrollment).filter(CourseEnrollment.user_id == user_id).one()
        assert enrollment.progress == 100
        assert enrollment.completed is True

    # second toggle un-completes
    client.post(f"/courses/lessons/{first}/complete")
    with session_scope(app) as s:
        assert s.query(LessonProgress).filter(LessonProgress.lesson_id == first).count() == 0
        enrollment = s.query(CourseEnrollment).filter(CourseEnrollment.user_id == user_id).one()
        assert enrollment.progress == 67
        assert enrollment.completed is False


def test_calculate_course_progress():
    lessons = [CourseLesson(id=n, module_id=1, title=str(n)) for n in (1, 2, 3, 4)]
    assert calculate_course_progress([], {}) == 0
    assert calculate_course_progress(lessons, {1: True}) == 25
    assert calculate_course_progress(lessons, {1: True, 2: False, 3: True}) == 50


def test_reorder_lessons(app, client, admin, course_tree):
    a, b, c = course_tree["lessons"]
    r = client.post(f"/admin/modules/{course_tree['module']}/lessons/reorder", json={"active_id": c, "over_id": a})
    assert r.status_code == 200
    assert r.json == {"ok": True, "changed": True, "order": [c, a, b]}
    assert _lesson_order(app, course_tree["module"]) == [(c, 0), (a, 1), (b, 2)]


def test_reorder_noop_and_errors(app, client, admin, course_tree):
    a, b, c = course_tree["lessons"]
    url = f"/admin/modules/{course_tree['module']}/lessons/reorder"

    r = client.post(url, json={"active_id": a, "over_id": a})
    assert r.status_code == 200
    assert r.json["changed"] is False

    r = client.post(url, json={"active_id": a, "over_id": 999999})
    assert r.status_code == 400
    assert r.json["ok"] is False

    r = client.post(url, json={"active_id": "x", "over_id": a})
    assert r.status_code == 400

    assert _lesson_order(app, course_tree["module"]) == [(a, 0), (b, 1), (c, 2)]


def test_reorder_modules(app, client, admin, course_tree):
    with session_scope(app) as s:
        m2 = CourseModule(course_id=course_tree["course"], title="Week 2", order_index=1)
        s.add(m2)
        s.flush()
        m2_id = m2.id

    r = client.post(
        f"/admin/courses/{course_tree['course']}/modules/reorder",
        json={"active_id": m2_id, "over_id": course_tree["module"]},
    )
    assert r.json["order"] == [m2_id, course_tree["module"]]


def test_quick_lesson_and_inline_edits(app, client, admin, course_tree):
    r = client.post(f"/admin/modules/{course_tree['module']}/lessons/quick")
    assert r.status_code == 302
    assert "rename=1" in r.headers["Location"]
    with session_scope(app) as s:
        lesson = s.query(CourseLesson).filter(CourseLesson.title == "New Lesson").one()
        lesson_id = lesson.id
        assert lesson.order_index == 3

    client.post(f"/admin/lessons/{lesson_id}/title", data={"title": "Objections"})
    client.post(f"/admin/lessons/{lesson_id}/content", data={"content": "<p>Handle <b>objections</b></p>"})
    with session_scope(app) as s:
        lesson = s.get(CourseLesson, lesson_id)
        assert lesson.title == "Objections"
        assert lesson.content == "<p>Handle <b>objections</b></p>"


def test_delete_module_removes_lessons(app, client, admin, course_tree):
    r = client.post(f"/admin/modules/{course_tree['module']}/delete")
    assert r.status_code == 302
    with session_scope(app) as s:
        assert s.query(CourseModule).count() == 0
        assert s.query(CourseLesson).count() == 0


def test_video_upload_and_playback(app, client, admin, course_tree):
    module_id = course_tree["module"]
    r = client.post(
        f"/admin/modules/{module_id}/lessons/new",
        data={"title": "Recorded call", "video_file": (io.BytesIO(b"fake-video"), "call.MP4")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 302
    with session_scope(app) as s:
        lesson = s.query(CourseLesson).filter(CourseLesson.title == "Recorded call").one()
        lesson_id = lesson.id
        key = lesson.video_file_path
        assert lesson.video_url is None
    assert key.startswith(f"lesson-videos/{module_id}/")
    assert key.endswith(".mp4")

    r = client.get(f"/courses/{course_tree['course']}?lesson={lesson_id}")
    m = re.search(rb'<video src="(/storage/[^"]+)"', r.data)
    assert m is not None
    r = client.get(m.group(1).decode())
    assert r.status_code == 200
    assert r.data == b"fake-video"
    r.close()

    client.post(f"/admin/lessons/{lesson_id}/video/remove")
    with session_scope(app) as s:
        lesson = s.get(CourseLesson, lesson_id)
        assert lesson.video_file_path is None
        assert lesson.video_url is None


def test_validate_video_upload():
    assert validate_video_upload(0, 100) == ["Choose a video file to upload."]
    assert validate_video_upload(10, 100) == []
    assert validate_video_upload(3 * 1024 * 1024, 2 * 1024 * 1024) == ["File size must be less than 2MB."]


def test_build_video_storage_key():
    assert build_video_storage_key(7, "My Clip.mov", now_ms=1700000000000, token="ab12cd34") == (
        "lesson-videos/7/1700000000000-ab12cd34.mov"
    )
    assert build_video_storage_key(7, "noext", now_ms=1, token="t").endswith("/1-t.bin")


def test_reorder_rejects_non_object_json(app, client, admin, course_tree):
    a, b, c = course_tree["lessons"]
    for body in ([a, b], 5, "x"):
        r = client.post(f"/admin/modules/{course_tree['module']}/lessons/reorder", json=body)
        assert r.status_code == 400
        assert r.json["ok"] is False
    r = client.post(f"/admin/courses/{course_tree['course']}/modules/reorder", json=[1, 2])
    assert r.status_code == 400
    assert _lesson_order(app, course_tree["module"]) == [(a, 0), (b, 1), (c, 2)]


def test_failed_lesson_save_discards_uploaded_video(app, client, admin, course_tree, monkeypatch):
    from app.portal.modules.courses import admin as courses_admin

    def _failing_commit(s, success=None):
        s.rollback()
        return False

    monkeypatch.setattr(courses_admin, "commit_or_flash", _failing_commit)
    r = client.post(
        f"/admin/modules/{course_tree['module']}/lessons/new",
        data={"title": "Recorded call", "video_file": (io.BytesIO(b"fake-video"), "call.mp4")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 302
    root = Path(app.config["STORAGE_ROOT"])
    assert not [p for p in root.rglob("*") if p.is_file()]
    with session_scope(app) as s:
        assert s.query(CourseLesson).filter(CourseLesson.title == "Recorded call").count() == 0
