from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.portal.db import commit_or_flash, db_session
from app.portal.modules.documents.models import Document
from app.portal.modules.documents.service import (
    create_document,
    delete_document,
    list_documents,
    update_document,
    validate_document_payload,
)
from app.portal.rbac import require_permission, user_has_permission

bp = Blueprint("documents", __name__)


def _payload() -> dict:
    return {
        "title": request.form.get("title"),
        "description": request.form.get("description"),
        "file_url": request.form.get("file_url"),
        "category": request.form.get("category"),
        "file_type": request.form.get("file_type"),
    }


@bp.get("/documents")
@require_permission("documents.view")
def documents_list():
    s = db_session()
    q = (request.args.get("q") or "").strip()
    return render_template(
        "documents/list.html",
        documents=list_documents(s, q),
        q=q,
        can_edit=user_has_permission(g.current_user, "documents.edit"),
    )


@bp.get("/documents/new")
@require_permission("documents.edit")
def document_new_get():
    return render_template("documents/form.html", document=None)


@bp.post("/documents/new")
@require_permission("documents.edit")
def document_new_post():
    s = db_session()
    payload = _payload()
    errors = validate_document_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("documents.document_new_get"))

    create_document(s, payload, g.current_user)
    commit_or_flash(s, "Document created successfully.")
    return redirect(url_for("documents.documents_list"))


@bp.get("/documents/<int:document_id>/edit")
@require_permission("documents.edit")
def document_edit_get(document_id: int):
    s = db_session()
    doc = s.get(Document, document_id)
    if not doc:
        abort(404)
    return render_template("documents/form.html", document=doc)


@bp.post("/documents/<int:document_id>/edit")
@require_permission("documents.edit")
def document_edit_post(document_id: int):
    s = db_session()
    doc = s.get(Document, document_id)
    if not doc:
        abort(404)
    payload = _payload()
    errors = validate_document_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("documents.document_edit_get", document_id=doc.id))

    update_document(s, doc, payload, g.current_user)
    commit_or_flash(s, "Document updated successfully.")
    return redirect(url_for("documents.documents_list"))


@bp.post("/documents/<int:document_id>/delete")
@require_permission("documents.edit")
def document_delete(document_id: int):
    s = db_session()
    doc = s.get(Document, document_id)
    if not doc:
        abort(404)
    delete_document(s, doc, g.current_user)
    commit_or_flash(s, "Document deleted successfully.")
    return redirect(url_for("documents.documents_list"))
