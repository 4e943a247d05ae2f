import io

import pytest

from app.portal.storage import LocalStorage, S3Storage, StorageError, storage_from_config


def test_local_put_open_delete(tmp_path):
    st = LocalStorage(root=tmp_path, secret_key="k")
    st.put_bytes("lesson-videos/1/a.mp4", b"abc", content_type="video/mp4")
    assert st.exists("lesson-videos/1/a.mp4")
    with st.open("lesson-videos/1/a.mp4") as f:
        assert f.read() == b"abc"
    st.delete("lesson-videos/1/a.mp4")
    assert not st.exists("lesson-videos/1/a.mp4")
    with pytest.raises(StorageError):
        st.open("lesson-videos/1/a.mp4")


def test_local_rejects_parent_traversal(tmp_path):
    st = LocalStorage(root=tmp_path, secret_key="k")
    with pytest.raises(StorageError):
        st.put_bytes("../escape.txt", b"x")


def test_sign_and_unsign(tmp_path):
    st = LocalStorage(root=tmp_path, secret_key="k")
    token = st.sign_key("lesson-videos/2/b.mp4", expires_in=60)
    assert st.unsign_key(token) == "lesson-videos/2/b.mp4"


def test_unsign_rejects_forged_and_expired(tmp_path):
    st = LocalStorage(root=tmp_path, secret_key="k")
    other = LocalStorage(root=tmp_path, secret_key="other")
    with pytest.raises(StorageError):
        st.unsign_key(other.sign_key("x.mp4", expires_in=60))
    with pytest.raises(StorageError):
        st.unsign_key(st.sign_key("x.mp4", expires_in=-1))


def test_signing_needs_secret(tmp_path):
    st = LocalStorage(root=tmp_path)
    with pytest.raises(StorageError):
        st.sign_key("x.mp4", expires_in=60)


def test_storage_from_config(tmp_path):
    local = storage_from_config({"STORAGE_BACKEND": "local", "STORAGE_ROOT": str(tmp_path), "SECRET_KEY": "k"})
    assert isinstance(local, LocalStorage)
    assert local.root == tmp_path

    s3 = storage_from_config(
        {
            "STORAGE_BACKEND": "s3",
            "S3_ENDPOINT": "nyc3.digitaloceanspaces.com",
            "S3_BUCKET": "portal",
            "S3_ACCESS_KEY_ID": "AKIA",
            "S3_SECRET_ACCESS_KEY": "secret",
        }
    )
    assert isinstance(s3, S3Storage)
    assert s3.region == "nyc3"


def test_s3_presigned_url_is_built_offline():
    st = S3Storage(
        endpoint="nyc3.digitaloceanspaces.com",
        region="nyc3",
        bucket="portal",
        access_key_id="AKIA",
        secret_access_key="secret",
    )
    url = st.signed_url("lesson-videos/1/clip.mp4", expires_in=120)
    assert url.startswith("https://")
    assert "lesson-videos/1/clip.mp4" in url
    assert "Expires" in url


def test_signed_url_route_serves_file(app, client):
    st = storage_from_config(app.config)
    st.put_bytes("lesson-videos/3/c.mp4", b"video-bytes")
    with app.test_request_context():
        url = st.signed_url("lesson-videos/3/c.mp4", expires_in=60)
    assert url.startswith("/storage/")

    r = client.get(url)
    assert r.status_code == 200
    assert r.data == b"video-bytes"
    r.close()

    assert client.get("/storage/not-a-token").status_code == 404


def _stubbed_s3(monkeypatch):
    """S3Storage whose client is a botocore Stubber; returns (storage, stubber)."""
    import boto3
    from botocore.stub import Stubber

    st = S3Storage(
        endpoint="nyc3.digitaloceanspaces.com",
        region="nyc3",
        bucket="portal",
        access_key_id="AKIA",
        secret_access_key="secret",
    )
    client = boto3.client(
        "s3",
        endpoint_url="https://nyc3.digitaloceanspaces.com",
        region_name="nyc3",
        aws_access_key_id="AKIA",
        aws_secret_access_key="secret",
    )
    stubber = Stubber(client)
    stubber.activate()
    monkeypatch.setattr(S3Storage, "_client", lambda self: client)
    return st, stubber


def test_s3_failures_raise_storage_error(monkeypatch):
    st, stubber = _stubbed_s3(monkeypatch)
    stubber.add_client_error("put_object", service_error_code="AccessDenied", service_message="Access Denied", http_status_code=403)
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", service_message="Missing", http_status_code=404)
    stubber.add_client_error("delete_object", service_error_code="AccessDenied", service_message="Access Denied", http_status_code=403)

    with pytest.raises(StorageError, match="Access Denied"):
        st.put_bytes("lesson-videos/1/a.mp4", b"abc", content_type="video/mp4")
    with pytest.raises(StorageError, match="Missing"):
        st.open("lesson-videos/1/a.mp4")
    with pytest.raises(StorageError):
        st.delete("lesson-videos/1/a.mp4")
    stubber.assert_no_pending_responses()


def test_s3_upload_failure_is_flashed(app, client, admin, monkeypatch):
    from app.portal.db import session_scope
    from app.portal.modules.courses.models import Course, CourseLesson, CourseModule

    with session_scope(app) as s:
        c = Course(title="Onboarding", order_index=0)
        s.add(c)
        s.flush()
        m = CourseModule(course_id=c.id, title="Week 1", order_index=0)
        s.add(m)
        s.flush()
        module_id = m.id

    _, stubber = _stubbed_s3(monkeypatch)
    stubber.add_client_error("put_object", service_error_code="AccessDenied", service_message="Access Denied", http_status_code=403)
    app.config.update(
        STORAGE_BACKEND="s3",
        S3_ENDPOINT="nyc3.digitaloceanspaces.com",
        S3_BUCKET="portal",
        S3_ACCESS_KEY_ID="AKIA",
        S3_SECRET_ACCESS_KEY="secret",
    )

    r = client.post(
        f"/admin/modules/{module_id}/lessons/new",
        data={"title": "Recorded call", "video_file": (io.BytesIO(b"fake-video"), "call.mp4")},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert r.status_code == 200
    assert b"Upload failed" in r.data
    assert b"Access Denied" in r.data
    with session_scope(app) as s:
        assert s.query(CourseLesson).count() == 0
