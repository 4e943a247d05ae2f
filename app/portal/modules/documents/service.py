from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import or_

from app.portal.audit import record_event
from app.portal.modules.documents.models import Document
from app.portal.utils import clean

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.portal.models import Profile


def validate_document_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    if not (payload.get("file_url") or "").strip():
        errors.append("File URL is required.")
    return errors


def list_documents(s: "Session", q: str | None = None) -> list[Document]:
    """Newest first; `q` is a case-insensitive substring match over title, description and category."""
    query = s.query(Document)
    q = (q or "").strip()
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(
                Document.title.ilike(like),
                Document.description.ilike(like),
                Document.category.ilike(like),
            )
        )
    return query.order_by(Document.created_at.desc(), Document.id.desc()).all()


def _apply(doc: Document, payload: dict) -> None:
    doc.title = (payload.get("title") or "").strip()
    doc.file_url = (payload.get("file_url") or "").strip()
    doc.description = clean(payload.get("description"))
    doc.category = clean(payload.get("category"))
    doc.file_type = clean(payload.get("file_type"))


def create_document(s: "Session", payload: dict, user: "Profile") -> Document:
    doc = Document()
    _apply(doc, payload)
    s.add(doc)
    s.flush()
    record_event(
        s,
        actor=user,
        action="document.create",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"title": doc.title, "category": doc.category},
    )
    return doc


def update_document(s: "Session", doc: Document, payload: dict, user: "Profile") -> Document:
    before = {"title": doc.title, "file_url": doc.file_url, "category": doc.category}
    _apply(doc, payload)
    record_event(
        s,
        actor=user,
        action="document.update",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"before": before, "after": {"title": doc.title, "file_url": doc.file_url, "category": doc.category}},
    )
    return doc


def delete_document(s: "Session", doc: Document, user: "Profile") -> None:
    record_event(
        s,
        actor=user,
        action="document.delete",
        entity_type="Document",
        entity_id=str(doc.id),
        metadata={"title": doc.title},
    )
    s.delete(doc)
