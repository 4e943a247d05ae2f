from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from werkzeug.utils import secure_filename

from app.portal.audit import record_event
from app.portal.constants import LESSON_VIDEO_BUCKET
from app.portal.modules.courses.models import (
    Course,
    CourseEnrollment,
    CourseLesson,
    CourseModule,
    LessonProgress,
)
from app.portal.modules.courses.video import normalize_video_url
from app.portal.ordering import apply_order, move_by_id, next_order_index
from app.portal.utils import clean

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.portal.models import Profile
    from app.portal.storage import Storage


# ---------- Courses ----------

def validate_course_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    return errors


def list_courses(s: "Session") -> list[Course]:
    return s.query(Course).order_by(Course.order_index.asc(), Course.id.asc()).all()


def create_course(s: "Session", payload: dict, user: "Profile") -> Course:
    course = Course(
        title=(payload.get("title") or "").strip(),
        description=clean(payload.get("description")),
        thumbnail_url=clean(payload.get("thumbnail_url")),
        order_index=next_order_index(list_courses(s)),
    )
    s.add(course)
    s.flush()
    record_event(
        s,
        actor=user,
        action="course.create",
        entity_type="Course",
        entity_id=str(course.id),
        metadata={"title": course.title},
    )
    return course


def update_course(s: "Session", course: Course, payload: dict, user: "Profile") -> Course:
    course.title = (payload.get("title") or "").strip()
    course.description = clean(payload.get("description"))
    course.thumbnail_url = clean(payload.get("thumbnail_url"))
    record_event(
        s,
        actor=user,
        action="course.update",
        entity_type="Course",
        entity_id=str(course.id),
        metadata={"title": course.title},
    )
    return course


def delete_course(s: "Session", course: Course, user: "Profile") -> None:
    record_event(
        s,
        actor=user,
        action="course.delete",
        entity_type="Course",
        entity_id=str(course.id),
        metadata={"title": course.title},
    )
    s.delete(course)


# ---------- Modules ----------

def validate_module_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    return errors


def list_modules(s: "Session", course_id: int) -> list[CourseModule]:
    return (
        s.query(CourseModule)
        .filter(CourseModule.course_id == course_id)
        .order_by(CourseModule.order_index.asc(), CourseModule.id.asc())
        .all()
    )


def create_module(s: "Session", course: Course, payload: dict, user: "Profile") -> CourseModule:
    module = CourseModule(
        course_id=course.id,
        title=(payload.get("title") or "").strip(),
        description=clean(payload.get("description")),
        order_index=next_order_index(list_modules(s, course.id)),
    )
    s.add(module)
    s.flush()
    record_event(
        s,
        actor=user,
        action="module.create",
        entity_type="CourseModule",
        entity_id=str(module.id),
        metadata={"course_id": course.id, "title": module.title},
    )
    return module


def update_module(s: "Session", module: CourseModule, payload: dict, user: "Profile") -> CourseModule:
    module.title = (payload.get("title") or "").strip()
    module.description = clean(payload.get("description"))
    record_event(
        s,
        actor=user,
        action="module.update",
        entity_type="CourseModule",
        entity_id=str(module.id),
        metadata={"course_id": module.course_id, "title": module.title},
    )
    return module


def delete_module(s: "Session", module: CourseModule, user: "Profile") -> None:
    """Delete a module and, by cascade, all of its lessons."""
    record_event(
        s,
        actor=user,
        action="module.delete",
        entity_type="CourseModule",
        entity_id=str(module.id),
        metadata={"course_id": module.course_id, "title": module.title, "lessons": len(module.lessons)},
    )
    s.delete(module)


# ---------- Lessons ----------

def validate_lesson_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    raw = str(payload.get("duration_seconds") or "").strip()
    if raw:
        try:
            if int(raw) < 0:
                errors.append("Duration cannot be negative.")
        except (TypeError, ValueError):
            errors.append("Duration must be a whole number of seconds.")
    return errors


def list_lessons(s: "Session", module_id: int) -> list[CourseLesson]:
    return (
        s.query(CourseLesson)
        .filter(CourseLesson.module_id == module_id)
        .order_by(CourseLesson.order_index.asc(), CourseLesson.id.asc())
        .all()
    )


def _duration(payload: dict) -> int:
    raw = str(payload.get("duration_seconds") or "").strip()
    return int(raw) if raw else 0


def create_lesson(s: "Session", module: CourseModule, payload: dict, user: "Profile") -> CourseLesson:
    lesson = CourseLesson(
        module_id=module.id,
        title=(payload.get("title") or "").strip(),
        description=clean(payload.get("description")),
        video_url=clean(payload.get("video_url")),
        video_file_path=clean(payload.get("video_file_path")),
        duration_seconds=_duration(payload),
        content=payload.get("content") or None,
        order_index=next_order_index(list_lessons(s, module.id)),
    )
    if lesson.video_file_path:
        lesson.video_url = None
    s.add(lesson)
    s.flush()
    record_event(
        s,
        actor=user,
        action="lesson.create",
        entity_type="CourseLesson",
        entity_id=str(lesson.id),
        metadata={"module_id": module.id, "title": lesson.title},
    )
    return lesson


def quick_create_lesson(s: "Session", module: CourseModule, user: "Profile") -> CourseLesson:
    """Append a blank "New Lesson" to the module, ready for inline title editing."""
    return create_lesson(s, module, {"title": "New Lesson"}, user)


def update_lesson(s: "Session", lesson: CourseLesson, payload: dict, user: "Profile") -> CourseLesson:
    lesson.title = (payload.get("title") or "").strip()
    lesson.description = clean(payload.get("description"))
    lesson.duration_seconds = _duration(payload)
    if "content" in payload:
        lesson.content = payload.get("content") or None

    new_file = clean(payload.get("video_file_path"))
    new_url = clean(payload.get("video_url"))
    if new_file:
        lesson.video_file_path = new_file
        lesson.video_url = None
    elif new_url:
        lesson.video_url = new_url
        lesson.video_file_path = None

    record_event(
        s,
        actor=user,
        action="lesson.update",
        entity_type="CourseLesson",
        entity_id=str(lesson.id),
        metadata={"module_id": lesson.module_id, "title": lesson.title},
    )
    return lesson


def update_lesson_title(s: "Session", lesson: CourseLesson, title: str, user: "Profile") -> CourseLesson:
    old = lesson.title
    lesson.title = title.strip()
    record_event(
        s,
        actor=user,
        action="lesson.rename",
        entity_type="CourseLesson",
        entity_id=str(lesson.id),
        metadata={"old": old, "new": lesson.title},
    )
    return lesson


def save_lesson_content(s: "Session", lesson: CourseLesson, content: str, user: "Profile") -> CourseLesson:
    lesson.content = content or None
    record_event(
        s,
        actor=user,
        action="lesson.content_update",
        entity_type="CourseLesson",
        entity_id=str(lesson.id),
        metadata={"length": len(content or "")},
    )
    return lesson


def remove_lesson_video(s: "Session", lesson: CourseLesson, user: "Profile") -> CourseLesson:
    record_event(
        s,
        actor=user,
        action="lesson.video_remove",
        entity_type="CourseLesson",
        entity_id=str(lesson.id),
        metadata={"video_url": lesson.video_url, "video_file_path": lesson.video_file_path},
    )
    lesson.video_url = None
    lesson.video_file_path = None
    return lesson


def delete_lesson(s: "Session", lesson: CourseLesson, user: "Profile") -> None:
    record_event(
        s,
        actor=user,
        action="lesson.delete",
        entity_type="CourseLesson",
        entity_id=str(lesson.id),
        metadata={"module_id": lesson.module_id, "title": lesson.title},
    )
    s.delete(lesson)


# ---------- Lesson videos ----------

def validate_video_upload(size_bytes: int, max_bytes: int) -> list[str]:
    if size_bytes <= 0:
        return ["Choose a video file to upload."]
    if size_bytes > max_bytes:
        return [f"File size must be less than {max_bytes // (1024 * 1024)}MB."]
    return []


def build_video_storage_key(module_id: int, filename: str, *, now_ms: int | None = None, token: str | None = None) -> str:
    """lesson-videos/<module_id>/<epoch-ms>-<random>.<ext>"""
    safe = secure_filename(filename or "") or "video"
    ext = safe.rsplit(".", 1)[-1].lower() if "." in safe else "bin"
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    token = token or secrets.token_hex(4)
    return f"{LESSON_VIDEO_BUCKET}/{module_id}/{now_ms}-{token}.{ext}"


def store_lesson_video(storage: "Storage", module_id: int, data: bytes, filename: str, content_type: str) -> str:
    key = build_video_storage_key(module_id, filename)
    storage.put_bytes(key, data, content_type=content_type)
    return key


@dataclass(frozen=True)
class VideoSource:
    kind: str  # "iframe" | "video"
    src: str


def lesson_video_source(lesson: CourseLesson, storage: "Storage", *, ttl: int) -> VideoSource | None:
    """
    External links play as an iframe of the normalised embed URL; uploaded files
    play in a <video> element from a time-limited signed URL.
    """
    if lesson.video_url:
        return VideoSource(kind="iframe", src=normalize_video_url(lesson.video_url))
    if lesson.video_file_path:
        return VideoSource(kind="video", src=storage.signed_url(lesson.video_file_path, expires_in=ttl))
    return None


# ---------- Learner progress ----------

@dataclass
class CourseOutline:
    course: Course
    modules: list[CourseModule]
    lessons: dict[int, list[CourseLesson]]
    completed: dict[int, bool]

    @property
    def all_lessons(self) -> list[CourseLesson]:
        return [lesson for m in self.modules for lesson in self.lessons.get(m.id, [])]

    @property
    def progress(self) -> int:
        return calculate_course_progress(self.all_lessons, self.completed)

    @property
    def first_lesson(self) -> CourseLesson | None:
        if not self.modules:
            return None
        first = self.lessons.get(self.modules[0].id) or []
        return first[0] if first else None


def calculate_course_progress(lessons: list[CourseLesson], completed: dict[int, bool]) -> int:
    if not lessons:
        return 0
    done = sum(1 for lesson in lessons if completed.get(lesson.id))
    return round(done / len(lessons) * 100)


def course_outline(s: "Session", course: Course, user: "Profile") -> CourseOutline:
    modules = list_modules(s, course.id)
    lessons: dict[int, list[CourseLesson]] = {}
    completed: dict[int, bool] = {}
    if modules:
        rows = (
            s.query(CourseLesson)
            .filter(CourseLesson.module_id.in_([m.id for m in modules]))
            .order_by(CourseLesson.order_index.asc(), CourseLesson.id.asc())
            .all()
        )
        for lesson in rows:
            lessons.setdefault(lesson.module_id, []).append(lesson)
        if rows:
            progress_rows = (
                s.query(LessonProgress)
                .filter(LessonProgress.user_id == user.id)
                .filter(LessonProgress.lesson_id.in_([lesson.id for lesson in rows]))
                .all()
            )
            completed = {p.lesson_id: p.completed for p in progress_rows}
    return CourseOutline(course=course, modules=modules, lessons=lessons, completed=completed)


def sync_enrollment(s: "Session", user: "Profile", course: Course) -> CourseEnrollment:
    outline = course_outline(s, course, user)
    enrollment = (
        s.query(CourseEnrollment)
        .filter(CourseEnrollment.user_id == user.id, CourseEnrollment.course_id == course.id)
        .one_or_none()
    )
    if enrollment is None:
        enrollment = CourseEnrollment(user_id=user.id, course_id=course.id)
        s.add(enrollment)
    enrollment.progress = outline.progress
    enrollment.completed = outline.progress == 100
    return enrollment


def toggle_lesson_complete(s: "Session", user: "Profile", lesson: CourseLesson) -> bool:
    """Flip the learner's completion flag for `lesson`. Returns the new state."""
    row = (
        s.query(LessonProgress)
        .filter(LessonProgress.user_id == user.id, LessonProgress.lesson_id == lesson.id)
        .one_or_none()
    )
    if row is not None and row.completed:
        s.delete(row)
        now_completed = False
    else:
        if row is None:
            row = LessonProgress(user_id=user.id, lesson_id=lesson.id)
            s.add(row)
        row.completed = True
        row.completed_at = datetime.utcnow()
        now_completed = True
    s.flush()
    sync_enrollment(s, user, lesson.module.course)
    return now_completed


# ---------- Reordering ----------

def reorder_siblings(
    s: "Session",
    rows: list,
    active_id: int,
    over_id: int | None,
    user: "Profile",
    *,
    entity_type: str,
    parent_id: int | None = None,
) -> list[int] | None:
    """
    Move `active_id` onto `over_id`'s slot and persist order_index 0..N-1 for every row.
    Returns the new id order, or None when the drop changes nothing.
    """
    moved = move_by_id(rows, active_id, over_id)
    if moved is None:
        return None
    order = apply_order(moved)
    record_event(
        s,
        actor=user,
        action=f"{entity_type.lower()}.reorder",
        entity_type=entity_type,
        entity_id=str(active_id),
        metadata={"parent_id": parent_id, "order": order},
    )
    return order
