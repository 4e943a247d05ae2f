from datetime import datetime, timedelta

from app.portal.db import session_scope
from app.portal.models import AuditEvent
from app.portal.modules.documents.models import Document
from app.portal.modules.documents.service import list_documents, validate_document_payload


def _seed(app):
    base = datetime(2024, 1, 1)
    with session_scope(app) as s:
        s.add_all(
            [
                Document(title="Rate sheet", file_url="https://files/rates.pdf", category="Sales", created_at=base),
                Document(
                    title="Brand kit",
                    file_url="https://files/brand.zip",
                    category="Marketing",
                    description="Logos and colours",
                    created_at=base + timedelta(days=1),
                ),
                Document(title="Compliance", file_url="https://files/c.pdf", created_at=base + timedelta(days=2)),
            ]
        )


def test_list_documents_newest_first_and_search(app):
    _seed(app)
    with session_scope(app) as s:
        assert [d.title for d in list_documents(s)] == ["Compliance", "Brand kit", "Rate sheet"]
        assert [d.title for d in list_documents(s, "marketing")] == ["Brand kit"]
        assert [d.title for d in list_documents(s, "LOGOS")] == ["Brand kit"]
        assert [d.title for d in list_documents(s, "sheet")] == ["Rate sheet"]
        assert list_documents(s, "nothing-matches") == []


def test_validate_document_payload():
    assert validate_document_payload({"title": "x", "file_url": "https://f"}) == []
    assert validate_document_payload({"title": " ", "file_url": ""}) == ["Title is required.", "File URL is required."]


def test_member_views_documents(app, client, make_user, login):
    _seed(app)
    make_user("member@example.com", "team_member")
    login("member@example.com")

    r = client.get("/documents?q=brand")
    assert r.status_code == 200
    assert b"Brand kit" in r.data
    assert b"Rate sheet" not in r.data
    assert b"+ Add document" not in r.data

    r = client.post("/documents/new", data={"title": "X", "file_url": "https://x"})
    assert r.status_code == 403


def test_admin_manages_documents(app, client, admin):
    r = client.post(
        "/documents/new",
        data={"title": "Playbook", "file_url": "https://files/playbook.pdf", "category": "Training", "file_type": "PDF"},
    )
    assert r.status_code == 302
    with session_scope(app) as s:
        doc = s.query(Document).one()
        doc_id = doc.id
        assert doc.category == "Training"
        assert doc.description is None

    client.post(f"/documents/{doc_id}/edit", data={"title": "Playbook v2", "file_url": "https://files/v2.pdf"})
    with session_scope(app) as s:
        doc = s.get(Document, doc_id)
        assert doc.title == "Playbook v2"
        assert doc.category is None

    client.post(f"/documents/{doc_id}/delete")
    with session_scope(app) as s:
        assert s.query(Document).count() == 0
        rows = s.query(AuditEvent).filter(AuditEvent.entity_type == "Document").order_by(AuditEvent.id).all()
        actions = [e.action for e in rows]
        assert actions == ["document.create", "document.update", "document.delete"]


def test_document_requires_file_url(app, client, admin):
    r = client.post("/documents/new", data={"title": "No file"}, follow_redirects=True)
    assert b"File URL is required." in r.data
    with session_scope(app) as s:
        assert s.query(Document).count() == 0
