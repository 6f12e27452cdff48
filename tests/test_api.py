import json
from urllib.parse import parse_qs, urlparse

import cloudinary.uploader
from fastapi.testclient import TestClient

from app.cloudinary_storage import CloudinaryStorage
from app.config import Settings, get_settings
from app.errors import NotConfiguredError, RemoteStorageError
from app.main import create_app
from app.models import OAuthToken, UploadResult
from app.naming import sanitize_guest_name
from app.oauth import OAuthClient


class FakeStorage:
    name = "Fake"

    def __init__(self, *, fail: bool = False, ready: bool = True):
        self.fail = fail
        self.ready = ready
        self.calls = []

    def ensure_ready(self) -> None:
        if not self.ready:
            raise NotConfiguredError(self.name)

    def upload(self, *, path, guest_name, filename, mime_type):
        self.calls.append(
            {
                "path": path,
                "content": path.read_bytes(),
                "guest_name": guest_name,
                "filename": filename,
                "mime_type": mime_type,
            }
        )
        if self.fail:
            raise RemoteStorageError("provider rejected request api_secret=topsecret")
        folder = f"wedding_photos/{sanitize_guest_name(guest_name)}"
        return UploadResult(id=f"{folder}/{filename}", name=filename, view_url=f"https://cdn.example/{folder}/{filename}")


def build_client(tmp_path, monkeypatch, *, storage=None, oauth: bool = False):
    monkeypatch.chdir(tmp_path)
    for name in ("STORAGE_BACKEND", "GOOGLE_CREDENTIALS_JSON", "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REDIRECT_URIS"):
        monkeypatch.delenv(name, raising=False)

    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("ERROR_LOG_PATH", str(tmp_path / "logs" / "errors.log"))
    monkeypatch.setenv("GOOGLE_TOKEN_PATH", str(tmp_path / "token.json"))
    monkeypatch.setenv("GOOGLE_CREDENTIALS_PATH", str(tmp_path / "missing-credentials.json"))
    monkeypatch.setenv("STATIC_DIR", str(tmp_path / "static"))
    monkeypatch.setenv("MAX_FILE_SIZE_MB", "1")
    monkeypatch.setenv("FRONTEND_ORIGIN", "https://boda.example")
    monkeypatch.setenv("CLOUDINARY_API_SECRET", "topsecret")
    if oauth:
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "client-123")
        monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "client-secret")
        monkeypatch.setenv("GOOGLE_REDIRECT_URIS", "http://localhost:3000/oauth2callback")
    get_settings.cache_clear()

    app = create_app(storage=storage)
    return TestClient(app)


def temp_files(tmp_path):
    return list((tmp_path / "uploads").iterdir())


def test_health_reports_frontend_origin(tmp_path, monkeypatch):
    client = build_client(tmp_path, monkeypatch, storage=FakeStorage())
    with client:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "env": {"frontend": "https://boda.example"}}


def test_index_serves_static_page(tmp_path, monkeypatch):
    static = tmp_path / "static"
    static.mkdir()
    (static / "index.html").write_text("<h1>Boda</h1>", encoding="utf-8")
    client = build_client(tmp_path, monkeypatch, storage=FakeStorage())
    with client:
        response = client.get("/")
        assert response.status_code == 200
        assert "<h1>Boda</h1>" in response.text


def test_upload_forwards_file_and_removes_temp_copy(tmp_path, monkeypatch):
    storage = FakeStorage()
    client = build_client(tmp_path, monkeypatch, storage=storage)
    with client:
        response = client.post(
            "/upload",
            data={"guestName": "Ana María"},
            files={"file": ("beso.jpg", b"jpeg-bytes", "image/jpeg")},
        )
        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        assert payload["file"] == {
            "id": "wedding_photos/Ana_Mar_a/beso.jpg",
            "name": "beso.jpg",
            "viewUrl": "https://cdn.example/wedding_photos/Ana_Mar_a/beso.jpg",
        }

        call = storage.calls[0]
        assert call["content"] == b"jpeg-bytes"
        assert call["guest_name"] == "Ana María"
        assert call["mime_type"] == "image/jpeg"
        assert not call["path"].exists()
        assert temp_files(tmp_path) == []


def test_upload_without_file_returns_bad_request(tmp_path, monkeypatch):
    storage = FakeStorage()
    client = build_client(tmp_path, monkeypatch, storage=storage)
    with client:
        response = client.post("/upload", data={"guestName": "Luis"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "file is required"}
        assert storage.calls == []


def test_upload_without_guest_name_returns_bad_request(tmp_path, monkeypatch):
    storage = FakeStorage()
    client = build_client(tmp_path, monkeypatch, storage=storage)
    with client:
        response = client.post(
            "/upload",
            data={"guestName": "   "},
            files={"file": ("a.jpg", b"data", "image/jpeg")},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "guestName is required"
        assert storage.calls == []


def test_upload_rejects_payload_too_large(tmp_path, monkeypatch):
    storage = FakeStorage()
    client = build_client(tmp_path, monkeypatch, storage=storage)
    with client:
        response = client.post(
            "/upload",
            data={"guestName": "Luis"},
            files={"file": ("huge.jpg", b"a" * (1024 * 1024 + 1), "image/jpeg")},
        )
        assert response.status_code == 413
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "File exceeds the 1 MB limit"
        assert storage.calls == []
        assert temp_files(tmp_path) == []


def test_remote_failure_returns_correlation_id_without_leaking_details(tmp_path, monkeypatch):
    storage = FakeStorage(fail=True)
    client = build_client(tmp_path, monkeypatch, storage=storage)
    with client:
        response = client.post(
            "/upload",
            data={"guestName": "Luis"},
            files={"file": ("fiesta.jpg", b"data", "image/jpeg")},
        )
        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Upload failed, please try again"
        assert "topsecret" not in response.text
        assert "provider rejected" not in response.text
        assert temp_files(tmp_path) == []

    lines = (tmp_path / "logs" / "errors.log").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["id"] == body["id"]
    assert entry["guestName"] == "Luis"
    assert entry["filename"] == "fiesta.jpg"
    assert "topsecret" not in entry["message"]
    assert "topsecret" not in entry["stack"]
    assert "[REDACTED]" in entry["message"]


def test_uploads_from_two_guests_do_not_collide(tmp_path, monkeypatch):
    storage = FakeStorage()
    client = build_client(tmp_path, monkeypatch, storage=storage)
    with client:
        first = client.post("/upload", data={"guestName": "Ana"}, files={"file": ("x.jpg", b"1", "image/jpeg")})
        second = client.post("/upload", data={"guestName": "Luis"}, files={"file": ("x.jpg", b"2", "image/jpeg")})
        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json()["file"]["id"] != second.json()["file"]["id"]
        assert storage.calls[0]["path"] != storage.calls[1]["path"]


def test_upload_reports_unconfigured_storage(tmp_path, monkeypatch):
    storage = FakeStorage(ready=False)
    client = build_client(tmp_path, monkeypatch, storage=storage)
    with client:
        response = client.post(
            "/upload",
            data={"guestName": "Luis"},
            files={"file": ("x.jpg", b"1", "image/jpeg")},
        )
        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Fake not configured"}


def test_drive_upload_without_credentials_is_not_configured(tmp_path, monkeypatch):
    client = build_client(tmp_path, monkeypatch)
    with client:
        response = client.post(
            "/upload",
            data={"guestName": "Luis"},
            files={"file": ("x.jpg", b"1", "image/jpeg")},
        )
        assert response.status_code == 500
        assert "not configured" in response.json()["error"]
        assert temp_files(tmp_path) == []


def test_auth_routes_fail_closed_without_credentials(tmp_path, monkeypatch):
    client = build_client(tmp_path, monkeypatch, storage=FakeStorage())
    with client:
        auth = client.get("/auth", follow_redirects=False)
        assert auth.status_code == 500
        assert "not configured" in auth.text

        callback = client.get("/oauth2callback", params={"code": "abc"})
        assert callback.status_code == 500


def test_auth_redirects_to_consent_page(tmp_path, monkeypatch):
    client = build_client(tmp_path, monkeypatch, storage=FakeStorage(), oauth=True)
    with client:
        response = client.get("/auth", params={"login_hint": "novios@example.com"}, follow_redirects=False)
        assert response.status_code == 302
        location = urlparse(response.headers["location"])
        query = parse_qs(location.query)
        assert location.netloc == "accounts.google.com"
        assert query["scope"] == ["https://www.googleapis.com/auth/drive.file"]
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["select_account"]
        assert query["login_hint"] == ["novios@example.com"]
        assert query["client_id"] == ["client-123"]

        forced = client.get("/auth", params={"force": "1"}, follow_redirects=False)
        assert parse_qs(urlparse(forced.headers["location"]).query)["prompt"] == ["consent select_account"]

        overridden = client.get(
            "/auth",
            params={"force": "1", "prompt": "consent", "authuser": "2"},
            follow_redirects=False,
        )
        overridden_query = parse_qs(urlparse(overridden.headers["location"]).query)
        assert overridden_query["prompt"] == ["consent"]
        assert overridden_query["authuser"] == ["2"]
        assert "authuser" not in query


def test_oauth_callback_persists_token(tmp_path, monkeypatch):
    def fake_exchange(self, code):
        assert code == "one-time-code"
        return OAuthToken(access_token="access-1", refresh_token="refresh-1")

    monkeypatch.setattr(OAuthClient, "exchange_code", fake_exchange)
    client = build_client(tmp_path, monkeypatch, storage=FakeStorage(), oauth=True)
    with client:
        missing = client.get("/oauth2callback")
        assert missing.status_code == 400

        response = client.get("/oauth2callback", params={"code": "one-time-code"})
        assert response.status_code == 200
        assert "Authentication complete" in response.text

    saved = json.loads((tmp_path / "token.json").read_text(encoding="utf-8"))
    assert saved["access_token"] == "access-1"
    assert saved["refresh_token"] == "refresh-1"


def test_oauth_callback_exchange_failure_returns_server_error(tmp_path, monkeypatch):
    def failing_exchange(self, code):
        raise ValueError("invalid_grant")

    monkeypatch.setattr(OAuthClient, "exchange_code", failing_exchange)
    client = build_client(tmp_path, monkeypatch, storage=FakeStorage(), oauth=True)
    with client:
        response = client.get("/oauth2callback", params={"code": "stale"})
        assert response.status_code == 500
        assert not (tmp_path / "token.json").exists()


def test_duplicate_cloudinary_upload_is_reported_as_failure(tmp_path, monkeypatch):
    def existing_upload(file, **options):
        return {"public_id": "wedding_photos/Ana/IMG_0001", "secure_url": "https://old.example", "existing": True}

    monkeypatch.setattr(cloudinary.uploader, "upload", existing_upload)
    storage = CloudinaryStorage(
        Settings(
            _env_file=None,
            cloudinary_cloud_name="demo-cloud",
            cloudinary_api_key="123456",
            cloudinary_api_secret="topsecret",
        )
    )
    client = build_client(tmp_path, monkeypatch, storage=storage)
    with client:
        response = client.post(
            "/upload",
            data={"guestName": "Ana"},
            files={"file": ("IMG_0001.jpg", b"new-bytes", "image/jpeg")},
        )
        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["id"]
        assert "https://old.example" not in response.text
        assert temp_files(tmp_path) == []

    entry = json.loads((tmp_path / "logs" / "errors.log").read_text(encoding="utf-8").splitlines()[0])
    assert "asset already exists" in entry["message"]
