"""
Classroom (learner view) and course builder (administrator view).

Courses contain modules, modules contain lessons; each level is ordered by
order_index and can be reordered by drag-and-drop through the JSON endpoints.
"""

from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.portal.db import commit_or_flash, db_session
from app.portal.models import Profile
from app.portal.modules.courses.models import Course, CourseLesson, CourseModule
from app.portal.modules.courses.service import (
    course_outline,
    create_course,
    create_lesson,
    create_module,
    delete_course,
    delete_lesson,
    delete_module,
    lesson_video_source,
    list_courses,
    list_lessons,
    list_modules,
    quick_create_lesson,
    remove_lesson_video,
    reorder_siblings,
    save_lesson_content,
    store_lesson_video,
    toggle_lesson_complete,
    update_course,
    update_lesson,
    update_lesson_title,
    update_module,
    validate_course_payload,
    validate_lesson_payload,
    validate_module_payload,
    validate_video_upload,
)
from app.portal.rbac import require_permission, user_has_permission
from app.portal.storage import StorageError, storage_from_config

bp = Blueprint("courses", __name__)


def _current_user() -> Profile:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_or_404(s: Session, model, row_id: int):
    row = s.get(model, row_id)
    if not row:
        abort(404)
    return row


def _course_payload() -> dict:
    return {
        "title": request.form.get("title"),
        "description": request.form.get("description"),
        "thumbnail_url": request.form.get("thumbnail_url"),
    }


def _module_payload() -> dict:
    return {
        "title": request.form.get("title"),
        "description": request.form.get("description"),
    }


def _lesson_payload() -> dict:
    return {
        "title": request.form.get("title"),
        "description": request.form.get("description"),
        "video_url": request.form.get("video_url"),
        "duration_seconds": request.form.get("duration_seconds"),
        "content": request.form.get("content"),
    }


def _lesson_url(lesson: CourseLesson) -> str:
    return url_for("courses.classroom_course", course_id=lesson.module.course_id, lesson=lesson.id)


def _handle_video_upload(module_id: int, payload: dict) -> bool:
    """Store an attached video file (if any) and point the payload at it. False on failure."""
    f = request.files.get("video_file")
    if not f or not f.filename:
        return True
    data = f.read()
    errors = validate_video_upload(len(data), int(current_app.config["MAX_VIDEO_UPLOAD_BYTES"]))
    if errors:
        for e in errors:
            flash(e, "danger")
        return False
    try:
        storage = storage_from_config(current_app.config)
        payload["video_file_path"] = store_lesson_video(
            storage,
            module_id,
            data,
            f.filename,
            (f.mimetype or "application/octet-stream").strip(),
        )
    except StorageError as e:
        current_app.logger.exception("Video upload failed (module_id=%s)", module_id)
        flash(f"Upload failed: {e}", "danger")
        return False
    payload["video_url"] = None
    return True


def _discard_upload(payload: dict) -> None:
    """Remove a freshly stored video whose lesson row did not commit."""
    key = payload.get("video_file_path")
    if not key:
        return
    try:
        storage_from_config(current_app.config).delete(key)
    except StorageError:
        current_app.logger.exception("Could not remove orphaned upload %s", key)


def _reorder_response(s: Session, rows: list, *, entity_type: str, parent_id: int | None = None):
    """Shared body of the drag-end endpoints: {"active_id": .., "over_id": ..}."""
    data = request.get_json(silent=True) if request.is_json else request.form
    if not isinstance(data, dict):
        return {"ok": False, "error": "Expected a JSON object with active_id and over_id."}, 400
    try:
        active_id = int(data.get("active_id"))
        over_raw = data.get("over_id")
        over_id = int(over_raw) if over_raw not in (None, "") else None
    except (TypeError, ValueError):
        return {"ok": False, "error": "active_id and over_id must be integers."}, 400

    try:
        order = reorder_siblings(
            s, rows, active_id, over_id, _current_user(), entity_type=entity_type, parent_id=parent_id
        )
    except KeyError as e:
        return {"ok": False, "error": f"Unknown id {e.args[0]}."}, 400
    if order is None:
        return {"ok": True, "changed": False, "order": [r.id for r in rows]}

    try:
        s.commit()
    except SQLAlchemyError as e:
        s.rollback()
        current_app.logger.exception("Reorder failed (%s parent_id=%s)", entity_type, parent_id)
        return {"ok": False, "error": str(getattr(e, "orig", None) or e), "refetch": True}, 500
    return {"ok": True, "changed": True, "order": order}


# ---------- Classroom ----------

@bp.get("/courses")
@require_permission("courses.view")
def classroom():
    s = db_session()
    courses = list_courses(s)
    if courses:
        return redirect(url_for("courses.classroom_course", course_id=courses[0].id))
    return render_template(
        "courses/classroom.html",
        courses=courses,
        outline=None,
        selected_lesson=None,
        video=None,
        can_edit=user_has_permission(_current_user(), "courses.edit"),
    )


@bp.get("/courses/<int:course_id>")
@require_permission("courses.view")
def classroom_course(course_id: int):
    s = db_session()
    u = _current_user()
    course = _get_or_404(s, Course, course_id)
    outline = course_outline(s, course, u)

    selected = outline.first_lesson
    lesson_id = request.args.get("lesson", type=int)
    if lesson_id:
        selected = next((lesson for lesson in outline.all_lessons if lesson.id == lesson_id), selected)

    video = None
    if selected is not None:
        try:
            video = lesson_video_source(
                selected,
                storage_from_config(current_app.config),
                ttl=int(current_app.config["SIGNED_URL_TTL"]),
            )
        except StorageError as e:
            current_app.logger.error("Could not sign lesson video (lesson_id=%s): %s", selected.id, e)
            flash(f"Video unavailable: {e}", "danger")

    return render_template(
        "courses/classroom.html",
        courses=list_courses(s),
        outline=outline,
        selected_lesson=selected,
        video=video,
        can_edit=user_has_permission(u, "courses.edit"),
    )


@bp.post("/courses/lessons/<int:lesson_id>/complete")
@require_permission("courses.view")
def toggle_complete(lesson_id: int):
    s = db_session()
    lesson = _get_or_404(s, CourseLesson, lesson_id)
    completed = toggle_lesson_complete(s, _current_user(), lesson)
    commit_or_flash(s, "Lesson completed! Great job!" if completed else None)
    return redirect(_lesson_url(lesson))


# ---------- Courses (admin) ----------

@bp.get("/admin/courses/new")
@require_permission("courses.edit")
def course_new_get():
    return render_template("courses/course_form.html", course=None)


@bp.post("/admin/courses/new")
@require_permission("courses.edit")
def course_new_post():
    s = db_session()
    payload = _course_payload()
    errors = validate_course_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("courses.course_new_get"))

    course = create_course(s, payload, _current_user())
    if not commit_or_flash(s, "Course created successfully."):
        return redirect(url_for("courses.course_new_get"))
    return redirect(url_for("courses.builder", course_id=course.id))


@bp.get("/admin/courses/<int:course_id>")
@require_permission("courses.edit")
def builder(course_id: int):
    s = db_session()
    course = _get_or_404(s, Course, course_id)
    modules = list_modules(s, course.id)
    lessons = {m.id: list_lessons(s, m.id) for m in modules}
    return render_template("courses/builder.html", course=course, modules=modules, lessons=lessons)


@bp.get("/admin/courses/<int:course_id>/edit")
@require_permission("courses.edit")
def course_edit_get(course_id: int):
    s = db_session()
    return render_template("courses/course_form.html", course=_get_or_404(s, Course, course_id))


@bp.post("/admin/courses/<int:course_id>/edit")
@require_permission("courses.edit")
def course_edit_post(course_id: int):
    s = db_session()
    course = _get_or_404(s, Course, course_id)
    payload = _course_payload()
    errors = validate_course_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("courses.course_edit_get", course_id=course.id))

    update_course(s, course, payload, _current_user())
    commit_or_flash(s, "Course updated successfully.")
    return redirect(url_for("courses.builder", course_id=course.id))


@bp.post("/admin/courses/<int:course_id>/delete")
@require_permission("courses.edit")
def course_delete(course_id: int):
    s = db_session()
    course = _get_or_404(s, Course, course_id)
    delete_course(s, course, _current_user())
    commit_or_flash(s, "Course deleted successfully.")
    return redirect(url_for("courses.classroom"))


@bp.post("/admin/courses/reorder")
@require_permission("courses.edit")
def courses_reorder():
    s = db_session()
    return _reorder_response(s, list_courses(s), entity_type="Course")


# ---------- Modules (admin) ----------

@bp.get("/admin/courses/<int:course_id>/modules/new")
@require_permission("courses.edit")
def module_new_get(course_id: int):
    s = db_session()
    return render_template("courses/module_form.html", course=_get_or_404(s, Course, course_id), module=None)


@bp.post("/admin/courses/<int:course_id>/modules/new")
@require_permission("courses.edit")
def module_new_post(course_id: int):
    s = db_session()
    course = _get_or_404(s, Course, course_id)
    payload = _module_payload()
    errors = validate_module_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("courses.module_new_get", course_id=course.id))

    create_module(s, course, payload, _current_user())
    commit_or_flash(s, "Module created successfully.")
    return redirect(url_for("courses.builder", course_id=course.id))


@bp.get("/admin/modules/<int:module_id>/edit")
@require_permission("courses.edit")
def module_edit_get(module_id: int):
    s = db_session()
    module = _get_or_404(s, CourseModule, module_id)
    return render_template("courses/module_form.html", course=module.course, module=module)


@bp.post("/admin/modules/<int:module_id>/edit")
@require_permission("courses.edit")
def module_edit_post(module_id: int):
    s = db_session()
    module = _get_or_404(s, CourseModule, module_id)
    payload = _module_payload()
    errors = validate_module_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("courses.module_edit_get", module_id=module.id))

    update_module(s, module, payload, _current_user())
    commit_or_flash(s, "Module updated successfully.")
    return redirect(url_for("courses.builder", course_id=module.course_id))


@bp.post("/admin/modules/<int:module_id>/delete")
@require_permission("courses.edit")
def module_delete(module_id: int):
    s = db_session()
    module = _get_or_404(s, CourseModule, module_id)
    course_id = module.course_id
    delete_module(s, module, _current_user())
    commit_or_flash(s, "Module deleted successfully.")
    return redirect(url_for("courses.builder", course_id=course_id))


@bp.post("/admin/courses/<int:course_id>/modules/reorder")
@require_permission("courses.edit")
def modules_reorder(course_id: int):
    s = db_session()
    course = _get_or_404(s, Course, course_id)
    return _reorder_response(s, list_modules(s, course.id), entity_type="CourseModule", parent_id=course.id)


# ---------- Lessons (admin) ----------

@bp.get("/admin/modules/<int:module_id>/lessons/new")
@require_permission("courses.edit")
def lesson_new_get(module_id: int):
    s = db_session()
    module = _get_or_404(s, CourseModule, module_id)
    return render_template("courses/lesson_form.html", module=module, lesson=None)


@bp.post("/admin/modules/<int:module_id>/lessons/new")
@require_permission("courses.edit")
def lesson_new_post(module_id: int):
    s = db_session()
    module = _get_or_404(s, CourseModule, module_id)
    payload = _lesson_payload()
    errors = validate_lesson_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("courses.lesson_new_get", module_id=module.id))
    if not _handle_video_upload(module.id, payload):
        return redirect(url_for("courses.lesson_new_get", module_id=module.id))

    create_lesson(s, module, payload, _current_user())
    if not commit_or_flash(s, "Lesson created successfully."):
        _discard_upload(payload)
    return redirect(url_for("courses.builder", course_id=module.course_id))


@bp.post("/admin/modules/<int:module_id>/lessons/quick")
@require_permission("courses.edit")
def lesson_quick_create(module_id: int):
    s = db_session()
    module = _get_or_404(s, CourseModule, module_id)
    lesson = quick_create_lesson(s, module, _current_user())
    if not commit_or_flash(s, "Lesson created. Click to edit the lesson details."):
        return redirect(url_for("courses.classroom_course", course_id=module.course_id))
    return redirect(url_for("courses.classroom_course", course_id=module.course_id, lesson=lesson.id, rename=1))


@bp.get("/admin/lessons/<int:lesson_id>/edit")
@require_permission("courses.edit")
def lesson_edit_get(lesson_id: int):
    s = db_session()
    lesson = _get_or_404(s, CourseLesson, lesson_id)
    return render_template("courses/lesson_form.html", module=lesson.module, lesson=lesson)


@bp.post("/admin/lessons/<int:lesson_id>/edit")
@require_permission("courses.edit")
def lesson_edit_post(lesson_id: int):
    s = db_session()
    lesson = _get_or_404(s, CourseLesson, lesson_id)
    payload = _lesson_payload()
    errors = validate_lesson_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("courses.lesson_edit_get", lesson_id=lesson.id))
    if not _handle_video_upload(lesson.module_id, payload):
        return redirect(url_for("courses.lesson_edit_get", lesson_id=lesson.id))

    update_lesson(s, lesson, payload, _current_user())
    if not commit_or_flash(s, "Lesson updated successfully."):
        _discard_upload(payload)
    return redirect(url_for("courses.builder", course_id=lesson.module.course_id))


@bp.post("/admin/lessons/<int:lesson_id>/title")
@require_permission("courses.edit")
def lesson_title(lesson_id: int):
    s = db_session()
    lesson = _get_or_404(s, CourseLesson, lesson_id)
    title = (request.form.get("title") or "").strip()
    if not title:
        flash("Title is required.", "danger")
        return redirect(_lesson_url(lesson))
    update_lesson_title(s, lesson, title, _current_user())
    commit_or_flash(s)
    return redirect(_lesson_url(lesson))


@bp.post("/admin/lessons/<int:lesson_id>/content")
@require_permission("courses.edit")
def lesson_content(lesson_id: int):
    s = db_session()
    lesson = _get_or_404(s, CourseLesson, lesson_id)
    save_lesson_content(s, lesson, request.form.get("content") or "", _current_user())
    commit_or_flash(s, "Content updated successfully.")
    return redirect(_lesson_url(lesson))


@bp.post("/admin/lessons/<int:lesson_id>/video/remove")
@require_permission("courses.edit")
def lesson_video_remove(lesson_id: int):
    s = db_session()
    lesson = _get_or_404(s, CourseLesson, lesson_id)
    remove_lesson_video(s, lesson, _current_user())
    commit_or_flash(s, "Video removed successfully.")
    return redirect(_lesson_url(lesson))


@bp.post("/admin/lessons/<int:lesson_id>/delete")
@require_permission("courses.edit")
def lesson_delete(lesson_id: int):
    s = db_session()
    lesson = _get_or_404(s, CourseLesson, lesson_id)
    course_id = lesson.module.course_id
    delete_lesson(s, lesson, _current_user())
    commit_or_flash(s, "Lesson deleted successfully.")
    return redirect(url_for("courses.classroom_course", course_id=course_id))


@bp.post("/admin/modules/<int:module_id>/lessons/reorder")
@require_permission("courses.edit")
def lessons_reorder(module_id: int):
    s = db_session()
    module = _get_or_404(s, CourseModule, module_id)
    return _reorder_response(s, list_lessons(s, module.id), entity_type="CourseLesson", parent_id=module.id)
